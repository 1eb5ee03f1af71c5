# app/api/routes/current.py
from fastapi import APIRouter

from app.services.current_store import current_store

router = APIRouter()


@router.get("/api/sensor-data")
def sensor_data():
    return current_store.as_dict()
