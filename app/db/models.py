from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, Integer, DateTime, Float

Base = declarative_base()

class SensorReading(Base):
    __tablename__ = "sensor_readings"
    id = Column(Integer, primary_key=True)
    voltage = Column(Float, default=0.0)
    current = Column(Float, default=0.0)
    power = Column(Float, default=0.0)
    energy = Column(Float, default=0.0)
    frequency = Column(Float, default=0.0)
    pf = Column(Float, default=0.0)
    timestamp = Column(DateTime(timezone=True), index=True)   # UTC capture time
