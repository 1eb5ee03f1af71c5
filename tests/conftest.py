from datetime import datetime, timezone
from types import SimpleNamespace

import paho.mqtt.client as mqtt
import pytest
from sqlalchemy.orm import sessionmaker

from app.db.models import Base
from app.db.session import make_engine
from app.services.current_store import TelemetryStore


class FakeClock:
    """Manually advanced clock, seconds."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeInfo:
    def __init__(self, rc=mqtt.MQTT_ERR_SUCCESS, published=True):
        self.rc = rc
        self._published = published

    def wait_for_publish(self, timeout=None):
        return None

    def is_published(self):
        return self._published


class FakeMqttClient:
    """Just enough of paho's Client for MqttBridge."""

    def __init__(self, publish_rc=mqtt.MQTT_ERR_SUCCESS, acked=True, raise_on_publish=None):
        self.on_connect = None
        self.on_disconnect = None
        self.on_message = None
        self.published = []
        self.subscriptions = []
        self.connect_args = None
        self.loop_started = 0
        self.loop_stopped = 0
        self._publish_rc = publish_rc
        self._acked = acked
        self._raise = raise_on_publish

    def connect_async(self, host, port, keepalive=60):
        self.connect_args = (host, port, keepalive)

    def loop_start(self):
        self.loop_started += 1

    def loop_stop(self):
        self.loop_stopped += 1

    def disconnect(self):
        return mqtt.MQTT_ERR_SUCCESS

    def subscribe(self, topics, qos=0):
        self.subscriptions.append(topics)
        return (mqtt.MQTT_ERR_SUCCESS, 1)

    def publish(self, topic, payload, qos=0, retain=False):
        if self._raise is not None:
            raise self._raise
        self.published.append((topic, payload, qos, retain))
        return FakeInfo(self._publish_rc, self._acked)


def make_msg(topic: str, payload):
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return SimpleNamespace(topic=topic, payload=payload)


MQTT_CONF = {
    "host": "broker.test",
    "port": 1883,
    "qos": 1,
    "sensor_prefix": "sensor",
    "switch_status_topic": "esp32/sw01/status",
    "switch_control_topic": "esp32/sw01/status",
    "publish_timeout_s": 1,
}


@pytest.fixture
def store():
    return TelemetryStore()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_client():
    return FakeMqttClient()


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
    yield factory
    engine.dispose()


@pytest.fixture
def wall_clock():
    class WallClock:
        def __init__(self):
            self.now = datetime(2025, 11, 3, 10, 15, 5, tzinfo=timezone.utc)

        def __call__(self):
            return self.now

    return WallClock()
