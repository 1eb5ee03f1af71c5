# app/core/validate_cfg.py
from __future__ import annotations
from typing import Dict, Any, Optional


def _as_int(v, name, min_: Optional[int] = None, max_: Optional[int] = None) -> int:
    try:
        iv = int(v)
    except Exception:
        raise ValueError(f"{name}: expected an integer, got {v!r}")
    if min_ is not None and iv < min_:
        raise ValueError(f"{name}: must be >= {min_} (got {iv})")
    if max_ is not None and iv > max_:
        raise ValueError(f"{name}: must be <= {max_} (got {iv})")
    return iv


def _as_float(v, name, min_: Optional[float] = None) -> float:
    try:
        fv = float(v)
    except Exception:
        raise ValueError(f"{name}: expected a number, got {v!r}")
    if min_ is not None and fv < min_:
        raise ValueError(f"{name}: must be >= {min_} (got {fv})")
    return fv


def _as_bool(v, name) -> bool:
    if isinstance(v, bool):
        return v
    # yaml may give 'true'/'false'/1/0
    if isinstance(v, (int, float)) and v in (0, 1):
        return bool(v)
    if isinstance(v, str) and v.lower() in ("true", "false"):
        return v.lower() == "true"
    raise ValueError(f"{name}: must be true/false")


def _as_topic(v, name) -> str:
    s = str(v or "").strip()
    if not s:
        raise ValueError(f"{name}: must not be empty")
    if "+" in s or "#" in s:
        raise ValueError(f"{name}: wildcards are not allowed ({s!r})")
    return s


def validate_limits(warning: float, cutoff: float) -> None:
    w = _as_float(warning, "POWER_WARNING_LIMIT", 0)
    c = _as_float(cutoff, "POWER_CUTOFF_LIMIT", 0)
    if c <= w:
        raise ValueError(
            f"POWER_CUTOFF_LIMIT ({c}) must be greater than POWER_WARNING_LIMIT ({w})"
        )


def validate_cfg(cfg: Dict[str, Any]) -> None:
    """Raises ValueError with a readable message if the YAML config is broken."""
    if not isinstance(cfg, dict):
        raise ValueError("root YAML must be a mapping")

    # ─── mqtt ───
    mqtt = cfg.get("mqtt", {}) or {}
    if not isinstance(mqtt, dict):
        raise ValueError("mqtt: must be a mapping")
    if "host" in mqtt and not str(mqtt.get("host", "")).strip():
        raise ValueError("mqtt.host: must not be empty")
    if "port" in mqtt:
        _as_int(mqtt["port"], "mqtt.port", 1, 65535)
    if "qos" in mqtt:
        _as_int(mqtt["qos"], "mqtt.qos", 0, 2)
    if "keepalive" in mqtt:
        _as_int(mqtt["keepalive"], "mqtt.keepalive", 5)
    if "publish_timeout_s" in mqtt:
        _as_float(mqtt["publish_timeout_s"], "mqtt.publish_timeout_s", 0)
    for key in ("sensor_prefix", "switch_status_topic", "switch_control_topic"):
        if key in mqtt:
            _as_topic(mqtt[key], f"mqtt.{key}")

    # ─── db ───
    db = cfg.get("db", {}) or {}
    if not isinstance(db, dict):
        raise ValueError("db: must be a mapping")
    if "url" in db and not str(db.get("url", "")).strip():
        raise ValueError("db.url: required (e.g. sqlite:///./data/data.db)")

    # ─── history ───
    hist = cfg.get("history", {}) or {}
    if not isinstance(hist, dict):
        raise ValueError("history: must be a mapping")
    max_limit = _as_int(hist.get("max_limit", 5000), "history.max_limit", 1)
    if "default_limit" in hist:
        _as_int(hist["default_limit"], "history.default_limit", 1, max_limit)

    # ─── alerts ───
    alerts = cfg.get("alerts", {}) or {}
    if not isinstance(alerts, dict):
        raise ValueError("alerts: must be a mapping")
    if "http_timeout_s" in alerts:
        _as_int(alerts["http_timeout_s"], "alerts.http_timeout_s", 1)
    if "insecure_tls" in alerts:
        _as_bool(alerts["insecure_tls"], "alerts.insecure_tls")
