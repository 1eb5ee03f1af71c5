# app/services/control_debouncer.py
from __future__ import annotations

import threading
import logging
from typing import Any, Callable, Optional

from app.services.current_store import TelemetryStore

log = logging.getLogger("control")


class InvalidControlValue(ValueError):
    pass


def _check_value(value: Any) -> int:
    # exactly 0 or 1; True/"1"/0.5 are client errors
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value not in (0, 1):
        raise InvalidControlValue("Value must be 0 or 1")
    return int(value)


class ControlDebouncer:
    """
    Manual SW01 commands. The stored switch status changes at once, the MQTT
    command goes out only after `delay_s` without a newer request.
    """

    def __init__(self, store: TelemetryStore, publish: Callable[[int], Any], delay_s: float = 1.0):
        self.store = store
        self._publish = publish
        self.delay_s = float(delay_s)
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._gen = 0

    def request(self, value: Any) -> int:
        v = _check_value(value)
        # status write and its scheduled publish must not interleave with another request
        with self._lock:
            self.store.set_switch_status(v)
            self._cancel_unlocked()
            self._gen += 1
            gen = self._gen
            self._timer = threading.Timer(self.delay_s, self._fire, args=(v, gen))
            self._timer.daemon = True
            self._timer.start()
        log.debug("control %s scheduled in %.3fs", v, self.delay_s)
        return v

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def stop(self) -> None:
        with self._lock:
            self._cancel_unlocked()

    def _cancel_unlocked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        # a timer already running _fire sees a stale generation and drops out
        self._gen += 1

    def _fire(self, value: int, gen: int) -> None:
        with self._lock:
            if gen != self._gen:
                return
            self._timer = None
        try:
            self._publish(value)
        except Exception as e:
            log.error(f"[control] publish of {value} failed: {e}")
