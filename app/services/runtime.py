# app/services/runtime.py
"""
Process-wide wiring of the SW01 pipeline.

    MqttBridge ──► current_store
        │ sensor/power
        ▼
    AlertsEngine ──► MqttBridge.publish_control(0), Notifier.notify(text)
        │
    HistoryRecorder (every sensor event, once a minute)

    ControlDebouncer ◄── POST /api/control

Usage:
  ensure_started()      # FastAPI startup, after settings.load_yaml_config() and init_db()
  runtime_instance()    # routes; None until started
  stop_if_running()     # FastAPI shutdown
"""
from __future__ import annotations

import threading
import logging
from dataclasses import dataclass
from typing import Optional

from app.core.config import Settings, settings
from app.services.alerts_engine import AlertsEngine
from app.services.control_debouncer import ControlDebouncer
from app.services.current_store import TelemetryStore, current_store
from app.services.history_recorder import HistoryRecorder
from app.services.mqtt_bridge import MqttBridge
from app.services.notifier import Notifier, TelegramSender

_log = logging.getLogger("runtime")

_LOCK = threading.Lock()
_RUNTIME: Optional["Runtime"] = None


@dataclass
class Runtime:
    store: TelemetryStore
    bridge: MqttBridge
    engine: AlertsEngine
    notifier: Notifier
    debouncer: ControlDebouncer
    recorder: HistoryRecorder

    def start(self) -> None:
        self.notifier.start()
        self.recorder.start()
        self.bridge.connect()

    def stop(self) -> None:
        self.debouncer.stop()
        try:
            self.bridge.disconnect()
        except Exception as e:
            _log.warning(f"mqtt disconnect error: {e}")
        self.recorder.stop()
        self.notifier.stop()


def build_runtime(cfg: Settings, store: TelemetryStore, client=None, session_factory=None) -> Runtime:
    alerts = cfg.alerts
    sender = TelegramSender(
        cfg.telegram_bot_token,
        cfg.telegram_chat_id,
        insecure_tls=bool(alerts.get("insecure_tls", False)),
        timeout=int(alerts.get("http_timeout_s", 10) or 10),
    )
    notifier = Notifier(sender)
    recorder = HistoryRecorder(store, session_factory=session_factory)
    bridge = MqttBridge(cfg.mqtt, store, recorder=recorder, client=client)
    debouncer = ControlDebouncer(store, bridge.publish_control,
                                 delay_s=cfg.control_debounce_ms / 1000.0)
    engine = AlertsEngine(
        store,
        bridge.publish_control,
        notifier.notify,
        warning_limit=cfg.power_warning_limit,
        cutoff_limit=cfg.power_cutoff_limit,
        cooldown_s=cfg.alert_cooldown_s,
        cancel_control=debouncer.stop,
    )
    bridge.engine = engine
    return Runtime(store, bridge, engine, notifier, debouncer, recorder)


def install(rt: Optional[Runtime]) -> None:
    """Replace the process runtime without starting it (tests, tooling)."""
    global _RUNTIME
    with _LOCK:
        _RUNTIME = rt


def ensure_started() -> Runtime:
    global _RUNTIME
    with _LOCK:
        if _RUNTIME is None:
            rt = build_runtime(settings, current_store)
            rt.start()
            _RUNTIME = rt
            if not settings.telegram_enabled:
                _log.warning("TELEGRAM_BOT_TOKEN/TELEGRAM_CHAT_ID not set: alerts will only be logged")
            _log.info(
                "power limits set: WARN at %sW, CUTOFF at %sW",
                settings.power_warning_limit, settings.power_cutoff_limit,
            )
        return _RUNTIME


def runtime_instance() -> Optional[Runtime]:
    return _RUNTIME


def stop_if_running() -> None:
    global _RUNTIME
    with _LOCK:
        if _RUNTIME is not None:
            try:
                _RUNTIME.stop()
            finally:
                _RUNTIME = None
