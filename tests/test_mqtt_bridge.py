from unittest.mock import Mock

import paho.mqtt.client as mqtt
import pytest

from app.services.mqtt_bridge import MqttBridge, PayloadError, decode_text, parse_float, parse_switch
from tests.conftest import MQTT_CONF, FakeMqttClient, make_msg


@pytest.fixture
def engine():
    return Mock()


@pytest.fixture
def recorder():
    return Mock()


@pytest.fixture
def bridge(store, engine, recorder, fake_client):
    return MqttBridge(MQTT_CONF, store, engine=engine, recorder=recorder, client=fake_client)


def test_decode_text_unwraps_json_envelope():
    assert decode_text(b"  230.5 ") == "230.5"
    assert decode_text(b'{"value": "1"}') == "1"
    assert decode_text(b'{"other": 1}') == '{"other": 1}'


def test_parsers_reject_garbage():
    assert parse_float("12.5") == 12.5
    for bad in ("", "abc", "nan", "inf"):
        with pytest.raises(PayloadError):
            parse_float(bad)
    assert parse_switch("1") == 1
    for bad in ("2", "on", "1.0"):
        with pytest.raises(PayloadError):
            parse_switch(bad)


def test_connect_subscribes_all_topics(bridge, fake_client):
    bridge.connect()
    assert fake_client.connect_args == ("broker.test", 1883, 60)
    assert fake_client.loop_started == 1

    fake_client.on_connect(fake_client, None, None, 0, None)
    assert bridge.connected
    topics = [t for t, qos in fake_client.subscriptions[-1]]
    assert topics == [
        "sensor/voltage", "sensor/current", "sensor/power",
        "sensor/energy", "sensor/frequency", "sensor/pf",
        "esp32/sw01/status",
    ]
    bridge.disconnect()


def test_sensor_message_updates_store_and_records(bridge, store, engine, recorder, fake_client):
    fake_client.on_message(fake_client, None, make_msg("sensor/voltage", "229.7"))
    assert store.get("voltage") == 229.7
    engine.process_power.assert_not_called()
    recorder.on_event.assert_called_once()


def test_power_message_goes_to_engine(bridge, store, engine):
    bridge.handle_message("sensor/power", "2150.25")
    assert store.power == 2150.25
    engine.process_power.assert_called_once_with(2150.25)


def test_malformed_payload_is_skipped(bridge, store, engine, recorder):
    store.apply_metric("power", 100.0)
    bridge.handle_message("sensor/power", "n/a")
    assert store.power == 100.0
    engine.process_power.assert_not_called()
    recorder.on_event.assert_called_once()


def test_decode_text_rejects_invalid_utf8():
    with pytest.raises(PayloadError):
        decode_text(b"2\xff100")


def test_non_utf8_power_payload_is_skipped(bridge, store, engine, recorder, fake_client):
    store.apply_metric("power", 0.0)
    fake_client.on_message(fake_client, None, make_msg("sensor/power", b"2\xff100"))
    assert store.power == 0.0
    engine.process_power.assert_not_called()
    # a message still arrived
    recorder.on_event.assert_called_once()


def test_non_utf8_switch_payload_is_skipped(bridge, store, fake_client):
    store.set_switch_status(1)
    fake_client.on_message(fake_client, None, make_msg("esp32/sw01/status", b"\xfe0"))
    assert store.switch_status == 1


def test_unknown_topic_is_ignored(bridge, store, engine):
    before = store.snapshot()
    bridge.handle_message("sensor/temperature", "25")
    assert store.snapshot() == before
    engine.process_power.assert_not_called()


def test_switch_status_overwrites_without_side_effects(bridge, store, engine, recorder):
    assert store.switch_status == 0
    bridge.handle_message("esp32/sw01/status", "1")
    assert store.switch_status == 1
    bridge.handle_message("esp32/sw01/status", "1")
    bridge.handle_message("esp32/sw01/status", "0")
    assert store.switch_status == 0
    engine.process_power.assert_not_called()
    recorder.on_event.assert_not_called()


def test_bad_switch_status_is_ignored(bridge, store, recorder):
    store.set_switch_status(1)
    bridge.handle_message("esp32/sw01/status", "7")
    bridge.handle_message("esp32/sw01/status", "on")
    assert store.switch_status == 1
    recorder.on_event.assert_not_called()


def test_engine_error_does_not_escape(bridge, engine, recorder, fake_client):
    engine.process_power.side_effect = RuntimeError("boom")
    fake_client.on_message(fake_client, None, make_msg("sensor/power", "2500"))
    recorder.on_event.assert_called_once()


def test_publish_control_is_retained_qos1(bridge, fake_client):
    bridge.connect()
    bridge.publish_control(0)
    bridge.publish_control(1)
    bridge.flush()
    assert fake_client.published == [
        ("esp32/sw01/status", "0", 1, True),
        ("esp32/sw01/status", "1", 1, True),
    ]
    bridge.disconnect()


def test_publish_failures_are_logged_not_raised(store):
    client = FakeMqttClient(publish_rc=mqtt.MQTT_ERR_NO_CONN)
    b = MqttBridge(MQTT_CONF, store, client=client)
    assert b.send_control(0) is False

    client = FakeMqttClient(acked=False)
    b = MqttBridge(MQTT_CONF, store, client=client)
    assert b.send_control(0) is False

    client = FakeMqttClient(raise_on_publish=RuntimeError("socket closed"))
    b = MqttBridge(MQTT_CONF, store, client=client)
    assert b.send_control(1) is False


def test_custom_sensor_prefix(store, engine):
    conf = dict(MQTT_CONF, sensor_prefix="home/meter")
    b = MqttBridge(conf, store, engine=engine, client=FakeMqttClient())
    assert "home/meter/power" in b.topics
    b.handle_message("home/meter/power", "10")
    engine.process_power.assert_called_once_with(10.0)
