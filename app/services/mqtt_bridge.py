# app/services/mqtt_bridge.py
from __future__ import annotations
import json, math, queue, threading
from typing import Optional, List, Union

import paho.mqtt.client as mqtt

from app.core.config import SENSOR_METRICS
from app.services.current_store import TelemetryStore

import logging

log = logging.getLogger("mqtt")


class PayloadError(ValueError):
    pass


def decode_text(payload: Union[bytes, str]) -> str:
    if isinstance(payload, (bytes, bytearray)):
        try:
            s = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise PayloadError(f"payload is not utf-8: {e}")
    else:
        s = str(payload)
    s = s.strip()
    # accept both "1" and {"value":"1"}
    if s.startswith("{"):
        try:
            j = json.loads(s)
            if isinstance(j, dict) and "value" in j:
                s = str(j["value"]).strip()
        except ValueError:
            pass
    return s


def parse_float(s: str) -> float:
    try:
        v = float(s)
    except (TypeError, ValueError):
        raise PayloadError(f"not a number: {s!r}")
    if not math.isfinite(v):
        raise PayloadError(f"not a finite number: {s!r}")
    return v


def parse_switch(s: str) -> int:
    try:
        v = int(s)
    except (TypeError, ValueError):
        raise PayloadError(f"not an integer: {s!r}")
    if v not in (0, 1):
        raise PayloadError(f"switch status must be 0 or 1, got {v}")
    return v


class MqttBridge:
    """
    Link to the sensor node: sensor/* and switch status in, switch commands out.

    Inbound messages are handled on paho's network thread one at a time.
    Outbound commands go through out_queue to a publisher thread, so nobody
    waits on the broker ack.
    """

    def __init__(self, conf: dict, store: TelemetryStore, engine=None, recorder=None,
                 client: Optional[mqtt.Client] = None):
        self.conf = conf
        self.store = store
        self.engine = engine
        self.recorder = recorder

        self.client = client or mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=conf.get("client_id", ""),
            protocol=mqtt.MQTTv311,
        )
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

        self.qos = int(conf.get("qos", 1))
        self.sensor_prefix = str(conf.get("sensor_prefix", "sensor")).strip("/")
        self.switch_status_topic = str(conf.get("switch_status_topic", "esp32/sw01/status"))
        self.switch_control_topic = str(conf.get("switch_control_topic", "esp32/sw01/status"))
        self.publish_timeout_s = float(conf.get("publish_timeout_s", 5))

        self.connected = False
        self.out_queue: "queue.Queue[Optional[int]]" = queue.Queue()
        self._publisher: Optional[threading.Thread] = None

    @property
    def topics(self) -> List[str]:
        return [f"{self.sensor_prefix}/{m}" for m in SENSOR_METRICS] + [self.switch_status_topic]

    # ── connection ───────────────────────────────────────────────────────────
    def connect(self):
        # broker down is not fatal: paho keeps retrying in its loop
        try:
            self.client.connect_async(self.conf["host"], int(self.conf["port"]),
                                      int(self.conf.get("keepalive", 60)))
        except Exception as e:
            log.error(f"[mqtt] initial connect failed: {e}")
        self.client.loop_start()
        self._start_publisher()

    def disconnect(self):
        self.flush_timeout(2.0)
        if self._publisher and self._publisher.is_alive():
            self.out_queue.put(None)
            self._publisher.join(timeout=2.0)
        self._publisher = None
        try:
            self.client.disconnect()
        finally:
            self.client.loop_stop()

    def _on_connect(self, client, userdata, flags, rc, properties=None):
        log.info(f"[mqtt] connected rc={rc}")
        if rc != 0:
            return
        self.connected = True
        # subscriptions are lost on reconnect, redo them every time
        try:
            client.subscribe([(t, self.qos) for t in self.topics])
            log.info(f"[mqtt] subscribed: {', '.join(self.topics)}")
        except Exception as e:
            log.warning(f"[mqtt] subscribe failed: {e}")

    def _on_disconnect(self, client, userdata, flags, rc, properties=None):
        self.connected = False
        log.warning(f"[mqtt] disconnected rc={rc}")

    # ── inbound ──────────────────────────────────────────────────────────────
    def _on_message(self, client, userdata, msg):
        try:
            self.handle_message(msg.topic, msg.payload)
        except Exception as e:
            log.error(f"[mqtt] handler error for {msg.topic}: {e}")

    def _metric_key(self, topic: str) -> str:
        head = self.sensor_prefix + "/"
        if topic.startswith(head):
            return topic[len(head):]
        parts = topic.split("/")
        return parts[1] if len(parts) > 1 else ""

    def handle_message(self, topic: str, payload: Union[bytes, str]) -> None:
        # 1. switch status from the node (physical button, echo of our command)
        if topic == self.switch_status_topic:
            try:
                status = parse_switch(decode_text(payload))
            except PayloadError as e:
                log.warning(f"[mqtt] bad switch status on {topic}: {e}")
                return
            if self.store.set_switch_status(status):
                log.info(f"[mqtt] switch status updated from MQTT: {status}")
            return

        # 2. sensor values
        key = self._metric_key(topic)
        if key in SENSOR_METRICS:
            try:
                value = parse_float(decode_text(payload))
            except PayloadError as e:
                log.warning(f"[mqtt] skip {topic}: {e}")
            else:
                self.store.apply_metric(key, value)
                log.debug(f"[mqtt] received: {topic} = {value}")
                if key == "power" and self.engine is not None:
                    try:
                        self.engine.process_power(value)
                    except Exception as e:
                        log.error(f"[alerts] process_power error: {e}")

        # 3. minute history
        if self.recorder is not None:
            try:
                self.recorder.on_event()
            except Exception as e:
                log.error(f"[history] on_event error: {e}")

    # ── outbound ─────────────────────────────────────────────────────────────
    def publish_control(self, value: int) -> None:
        self.out_queue.put(int(value))

    def flush(self) -> None:
        self.out_queue.join()

    def flush_timeout(self, timeout: float) -> None:
        t = threading.Thread(target=self.out_queue.join, daemon=True)
        t.start()
        t.join(timeout=timeout)

    def _start_publisher(self) -> None:
        if self._publisher and self._publisher.is_alive():
            return
        self._publisher = threading.Thread(target=self._publisher_loop, name="mqtt-publisher", daemon=True)
        self._publisher.start()

    def send_control(self, value: int) -> bool:
        """Publish one switch command and wait briefly for the broker ack."""
        command = str(int(value))
        topic = self.switch_control_topic
        try:
            info = self.client.publish(topic, command, qos=1, retain=True)
            if info.rc != mqtt.MQTT_ERR_SUCCESS:
                log.error(f"[mqtt] failed to publish control message: {topic} = {command} (rc={info.rc})")
                return False
            info.wait_for_publish(timeout=self.publish_timeout_s)
            if not info.is_published():
                log.error(f"[mqtt] control message not acknowledged: {topic} = {command}")
                return False
        except Exception as e:
            log.error(f"[mqtt] failed to publish control message: {topic} = {command}: {e}")
            return False
        log.info(f"[mqtt] control message sent: {topic} = {command}")
        return True

    def _publisher_loop(self):
        while True:
            value = self.out_queue.get()
            try:
                if value is None:
                    return
                self.send_control(value)
            finally:
                self.out_queue.task_done()
