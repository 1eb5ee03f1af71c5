# app/services/alerts_engine.py
"""
Power threshold alerts for SW01.

Every new sensor/power value is classified:

    power >  cutoff_limit                  → CRITICAL: switch off + critical alert
    warning_limit < power <= cutoff_limit  → WARNING:  warning alert
    power <= warning_limit                 → NORMAL:   suppression reset

Each severity has its own cooldown. A cutoff stamps both timestamps, so
falling back into the warning band right after a cutoff stays quiet.
The cutoff timestamp is cleared only once power is strictly below the
warning line (hysteresis band between warning and cutoff).
"""
from __future__ import annotations

import time
import threading
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from app.services.current_store import TelemetryStore

log = logging.getLogger("alerts")


class PowerZone(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass
class AlertSuppression:
    last_warning_at: Optional[float] = None
    last_cutoff_at: Optional[float] = None


def _cutoff_text(watts: float) -> str:
    return (
        "🚨 *Power cut off!* 🚨\n"
        f"Power usage exceeded the limit ({watts:.2f} W)\n"
        "The switch was turned off automatically."
    )


def _warning_text(watts: float) -> str:
    return (
        "⚠️ *Warning!* ⚠️\n"
        f"Power usage is close to the limit ({watts:.2f} W)\n"
        "Please reduce the load."
    )


class AlertsEngine:
    def __init__(
        self,
        store: TelemetryStore,
        publish_control: Callable[[int], Any],
        notify: Callable[[str], Any],
        *,
        warning_limit: float,
        cutoff_limit: float,
        cooldown_s: float = 300.0,
        clock: Callable[[], float] = time.time,
        cancel_control: Optional[Callable[[], Any]] = None,
    ):
        if cutoff_limit <= warning_limit:
            raise ValueError("cutoff_limit must be greater than warning_limit")
        self.store = store
        self._publish_control = publish_control
        self._notify = notify
        self.warning_limit = float(warning_limit)
        self.cutoff_limit = float(cutoff_limit)
        self.cooldown_s = float(cooldown_s)
        self._clock = clock
        self._cancel_control = cancel_control

        self._lock = threading.RLock()
        self.suppression = AlertSuppression()
        self.last_zone: Optional[PowerZone] = None
        self._counters = {"cutoff": 0, "warning": 0, "suppressed": 0}

    def classify(self, watts: float) -> PowerZone:
        if watts > self.cutoff_limit:
            return PowerZone.CRITICAL
        if watts > self.warning_limit:
            return PowerZone.WARNING
        return PowerZone.NORMAL

    def _cooled_down(self, last: Optional[float], now: float) -> bool:
        return last is None or (now - last) > self.cooldown_s

    def process_power(self, watts: float) -> PowerZone:
        now = self._clock()
        zone = self.classify(watts)
        with self._lock:
            if zone != self.last_zone:
                log.info("power zone %s → %s (%.2f W)",
                         self.last_zone.value if self.last_zone else "-", zone.value, watts)
            self.last_zone = zone

            if zone is PowerZone.CRITICAL:
                self._on_critical(watts, now)
            elif zone is PowerZone.WARNING:
                self._on_warning(watts, now)
            else:
                self._on_normal(watts)
        return zone

    def _on_critical(self, watts: float, now: float) -> None:
        sup = self.suppression
        if not self._cooled_down(sup.last_cutoff_at, now):
            self._counters["suppressed"] += 1
            log.debug("cutoff suppressed (%.2f W)", watts)
            return

        log.warning("cutoff limit reached (%.2f W > %.2f W): switching SW01 off",
                    watts, self.cutoff_limit)
        # a debounced manual "on" must not go out after the cutoff
        if self._cancel_control is not None:
            try:
                self._cancel_control()
            except Exception as e:
                log.error(f"[alerts] cancel pending control failed: {e}")
        self._safe(self._publish_control, 0, what="cutoff publish")
        # local state follows intent before the node confirms
        self.store.set_switch_status(0)
        self._safe(self._notify, _cutoff_text(watts), what="cutoff alert")

        sup.last_cutoff_at = now
        sup.last_warning_at = now
        self._counters["cutoff"] += 1

    def _on_warning(self, watts: float, now: float) -> None:
        sup = self.suppression
        if not self._cooled_down(sup.last_warning_at, now):
            self._counters["suppressed"] += 1
            log.debug("warning suppressed (%.2f W)", watts)
            return

        log.warning("warning limit reached (%.2f W > %.2f W)", watts, self.warning_limit)
        self._safe(self._notify, _warning_text(watts), what="warning alert")
        sup.last_warning_at = now
        self._counters["warning"] += 1

    def _on_normal(self, watts: float) -> None:
        sup = self.suppression
        if sup.last_warning_at is not None:
            sup.last_warning_at = None
            log.info("power back to normal, warning cooldown reset")
        if sup.last_cutoff_at is not None and watts < self.warning_limit:
            sup.last_cutoff_at = None
            log.info("power below warning limit, cutoff cooldown reset")

    @staticmethod
    def _safe(fn: Callable[[Any], Any], arg: Any, *, what: str) -> None:
        try:
            fn(arg)
        except Exception as e:
            log.error(f"[alerts] {what} failed: {e}")

    def diag(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "warning_limit": self.warning_limit,
                "cutoff_limit": self.cutoff_limit,
                "cooldown_s": self.cooldown_s,
                "last_zone": self.last_zone.value if self.last_zone else None,
                "last_warning_at": self.suppression.last_warning_at,
                "last_cutoff_at": self.suppression.last_cutoff_at,
                "counters": dict(self._counters),
            }
