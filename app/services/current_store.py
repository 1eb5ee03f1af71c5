# app/services/current_store.py
from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Dict, Any, Optional
import threading

from app.core.config import SENSOR_METRICS


@dataclass
class TelemetrySnapshot:
    voltage: float = 0.0
    current: float = 0.0
    power: float = 0.0
    energy: float = 0.0
    frequency: float = 0.0
    pf: float = 0.0
    switch_status: int = 0      # SW01: 0 = off, 1 = on

    def measurements(self) -> Dict[str, float]:
        return {m: getattr(self, m) for m in SENSOR_METRICS}

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = self.measurements()
        # key name kept for the dashboard front-end
        out["sw01Status"] = self.switch_status
        return out


class TelemetryStore:
    """
    The single authoritative snapshot of the sensor node.

    Writers: the MQTT network thread (sensor/switch topics), the alerts engine
    (cutoff) and the control API. Every write and read goes through the lock,
    readers get copies.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._snap = TelemetrySnapshot()

    def apply_metric(self, key: str, value: float) -> bool:
        """Overwrite one measurement. Returns False for unknown keys."""
        if key not in SENSOR_METRICS:
            return False
        with self._lock:
            setattr(self._snap, key, float(value))
        return True

    def set_switch_status(self, value: int) -> bool:
        """Last writer wins. Returns True if the stored status changed."""
        v = int(value)
        with self._lock:
            if self._snap.switch_status == v:
                return False
            self._snap.switch_status = v
            return True

    def get(self, key: str) -> Optional[float]:
        with self._lock:
            return getattr(self._snap, key, None)

    @property
    def switch_status(self) -> int:
        with self._lock:
            return self._snap.switch_status

    @property
    def power(self) -> float:
        with self._lock:
            return self._snap.power

    def snapshot(self) -> TelemetrySnapshot:
        with self._lock:
            return replace(self._snap)

    def as_dict(self) -> Dict[str, Any]:
        return self.snapshot().as_dict()

    def reset(self) -> None:
        with self._lock:
            self._snap = TelemetrySnapshot()


current_store = TelemetryStore()
