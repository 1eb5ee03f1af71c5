import pytest

from app.core.config import Settings
from app.core.validate_cfg import validate_cfg, validate_limits


def test_defaults_without_env(monkeypatch, tmp_path):
    for var in ("TELEGRAM_BOT_TOKEN", "TELEGRAM_CHAT_ID", "POWER_WARNING_LIMIT",
                "POWER_CUTOFF_LIMIT", "ALERT_COOLDOWN_S", "CONTROL_DEBOUNCE_MS"):
        monkeypatch.delenv(var, raising=False)
    s = Settings(_env_file=None, CONFIG_FILE=str(tmp_path / "missing.yaml"))
    s.load_yaml_config()
    assert s.power_warning_limit == 2000
    assert s.power_cutoff_limit == 2300
    assert s.alert_cooldown_s == 300
    assert s.control_debounce_ms == 1000
    assert not s.telegram_enabled
    assert s.mqtt["switch_status_topic"] == "esp32/sw01/status"
    assert s.sensor_topics[2] == "sensor/power"
    assert s.db_url == "sqlite:///./data/data.db"


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
    monkeypatch.setenv("TELEGRAM_CHAT_ID", "-100")
    monkeypatch.setenv("POWER_WARNING_LIMIT", "1500")
    monkeypatch.setenv("POWER_CUTOFF_LIMIT", "1800.5")
    s = Settings(_env_file=None)
    assert s.telegram_enabled
    assert s.power_warning_limit == 1500
    assert s.power_cutoff_limit == 1800.5


def test_yaml_sections_are_merged(tmp_path):
    p = tmp_path / "config.yaml"
    p.write_text(
        "mqtt:\n  host: 10.0.0.5\n  sensor_prefix: meter\n"
        "db:\n  url: sqlite:///./x.db\n"
        "history:\n  default_limit: 50\n",
        encoding="utf-8",
    )
    s = Settings(_env_file=None, CONFIG_FILE=str(p))
    s.load_yaml_config()
    assert s.mqtt["host"] == "10.0.0.5"
    assert s.mqtt["port"] == 1883
    assert s.sensor_topics[0] == "meter/voltage"
    assert s.db_url == "sqlite:///./x.db"
    assert s.history["default_limit"] == 50


def test_inverted_limits_fail_at_load(tmp_path):
    s = Settings(_env_file=None, CONFIG_FILE=str(tmp_path / "none.yaml"),
                 POWER_WARNING_LIMIT=2500, POWER_CUTOFF_LIMIT=2300)
    with pytest.raises(ValueError, match="POWER_CUTOFF_LIMIT"):
        s.load_yaml_config()


@pytest.mark.parametrize("cfg, msg", [
    ([], "root YAML"),
    ({"mqtt": {"port": 0}}, "mqtt.port"),
    ({"mqtt": {"qos": 3}}, "mqtt.qos"),
    ({"mqtt": {"host": " "}}, "mqtt.host"),
    ({"mqtt": {"switch_status_topic": "esp32/+/status"}}, "wildcards"),
    ({"db": {"url": ""}}, "db.url"),
    ({"history": {"default_limit": 10, "max_limit": 5}}, "history.default_limit"),
    ({"alerts": {"insecure_tls": "maybe"}}, "alerts.insecure_tls"),
])
def test_validate_cfg_errors(cfg, msg):
    with pytest.raises(ValueError, match=msg):
        validate_cfg(cfg)


def test_validate_cfg_accepts_example():
    validate_cfg({
        "mqtt": {"host": "broker.hivemq.com", "port": 1883, "qos": 1},
        "db": {"url": "sqlite:///./data/data.db"},
        "alerts": {"insecure_tls": "false", "http_timeout_s": 10},
    })
    validate_limits(2000, 2300)
