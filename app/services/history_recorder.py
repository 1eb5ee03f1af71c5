# app/services/history_recorder.py
from __future__ import annotations

import queue
import threading
import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from app.db.models import SensorReading
from app.services.current_store import TelemetrySnapshot, TelemetryStore

log = logging.getLogger("history")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def minute_bucket(ts: datetime) -> int:
    return int(ts.timestamp() // 60)


class HistoryRecorder:
    """
    Writes the snapshot to sensor_readings at most once per wall-clock minute.

    on_event() is called from the MQTT thread after every sensor message; the
    INSERT itself happens on a writer thread. While a write is in flight no
    other one is queued. A failed write leaves last_saved_at untouched so the
    next event retries.
    """

    def __init__(
        self,
        store: TelemetryStore,
        session_factory: Optional[Callable] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self._session_factory = session_factory
        self._clock = clock
        self._lock = threading.Lock()
        self._pending = False
        self.last_saved_at: Optional[datetime] = None
        self.failures = 0
        self._queue: "queue.Queue[Optional[Tuple[TelemetrySnapshot, datetime]]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._writer_loop, name="history", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        if self._thread and self._thread.is_alive():
            self._queue.put(None)
            self._thread.join(timeout=timeout)
        self._thread = None

    def flush(self) -> None:
        self._queue.join()

    def due(self, now: datetime) -> bool:
        if self.last_saved_at is None:
            return True
        return minute_bucket(now) > minute_bucket(self.last_saved_at)

    def on_event(self) -> bool:
        """Queue a write if this minute has none yet. Returns True if queued."""
        now = self._clock()
        with self._lock:
            if self._pending or not self.due(now):
                return False
            self._pending = True
        self._queue.put((self.store.snapshot(), now))
        return True

    def _factory(self):
        if self._session_factory is not None:
            return self._session_factory
        from app.db.session import SessionLocal
        return SessionLocal

    def _write(self, snap: TelemetrySnapshot, ts: datetime) -> None:
        try:
            with self._factory()() as s:
                s.add(SensorReading(timestamp=ts, **snap.measurements()))
                s.commit()
        except Exception as e:
            log.error("failed to save sensor reading: %s", e)
            with self._lock:
                self._pending = False
                self.failures += 1
            return

        log.info("sensor reading saved at %s", ts.isoformat())
        with self._lock:
            self.last_saved_at = ts
            self._pending = False

    def _writer_loop(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is None:
                    return
                self._write(*item)
            finally:
                self._queue.task_done()

    def diag(self) -> dict:
        with self._lock:
            return {
                "last_saved_at": self.last_saved_at.isoformat() if self.last_saved_at else None,
                "pending": self._pending,
                "failures": self.failures,
            }
