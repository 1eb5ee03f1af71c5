# app/core/config.py
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List

import yaml
from pydantic import Field, PrivateAttr
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.core.validate_cfg import validate_cfg, validate_limits

SENSOR_METRICS = ("voltage", "current", "power", "energy", "frequency", "pf")

DEFAULT_MQTT: Dict[str, Any] = {
    "host": "broker.hivemq.com",
    "port": 1883,
    "client_id": "",
    "keepalive": 60,
    "qos": 1,
    "sensor_prefix": "sensor",
    "switch_status_topic": "esp32/sw01/status",
    "switch_control_topic": "esp32/sw01/status",
    "publish_timeout_s": 5,
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # path to the YAML with mqtt/db/history sections (CONFIG_FILE overrides)
    config_file: str = Field(default="config.yaml", validation_alias="CONFIG_FILE")

    # telegram: both optional, missing -> notifications disabled
    telegram_bot_token: str = Field(default="", validation_alias="TELEGRAM_BOT_TOKEN")
    telegram_chat_id: str = Field(default="", validation_alias="TELEGRAM_CHAT_ID")

    # thresholds, same unit as sensor/power (W)
    power_warning_limit: float = Field(default=2000.0, validation_alias="POWER_WARNING_LIMIT")
    power_cutoff_limit: float = Field(default=2300.0, validation_alias="POWER_CUTOFF_LIMIT")
    alert_cooldown_s: float = Field(default=300.0, validation_alias="ALERT_COOLDOWN_S")

    control_debounce_ms: int = Field(default=1000, validation_alias="CONTROL_DEBOUNCE_MS")

    _cfg: Dict[str, Any] = PrivateAttr(default_factory=dict)
    _config_path: Path | None = PrivateAttr(default=None)

    # ───────── paths ─────────
    @property
    def config_path(self) -> Path:
        if self._config_path is None:
            p = Path(self.config_file)
            if not p.is_absolute():
                p = Path.cwd() / p
            self._config_path = p
        return self._config_path

    # ───────── YAML cfg ─────────
    @property
    def cfg(self) -> Dict[str, Any]:
        return self._cfg

    def set_cfg(self, data: Dict[str, Any]) -> None:
        validate_cfg(data or {})
        self._cfg = data or {}

    def load_yaml_config(self) -> None:
        """Read config.yaml (if present) and check limits from the environment."""
        p = self.config_path
        if p.exists():
            with open(p, "r", encoding="utf-8") as f:
                self.set_cfg(yaml.safe_load(f) or {})
        else:
            self._cfg = {}
        validate_limits(self.power_warning_limit, self.power_cutoff_limit)

    # ───────── sections ─────────
    @property
    def mqtt(self) -> Dict[str, Any]:
        merged = dict(DEFAULT_MQTT)
        merged.update(self._cfg.get("mqtt", {}) or {})
        return merged

    @property
    def history(self) -> Dict[str, Any]:
        return self._cfg.get("history", {}) or {}

    @property
    def alerts(self) -> Dict[str, Any]:
        return self._cfg.get("alerts", {}) or {}

    @property
    def db_url(self) -> str:
        return (self._cfg.get("db", {}) or {}).get("url", "sqlite:///./data/data.db")

    @property
    def sensor_topics(self) -> List[str]:
        prefix = str(self.mqtt["sensor_prefix"]).strip("/")
        return [f"{prefix}/{m}" for m in SENSOR_METRICS]

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_bot_token.strip() and str(self.telegram_chat_id).strip())


settings = Settings()
