"""
Stand-in for the ESP32/PZEM node: publishes sensor/* readings and answers
switch commands on esp32/sw01/status, so the service can be tried without
hardware.

    python send_to_mqtt.py --host 127.0.0.1 --power 2100 --count 10
"""
import argparse
import random
import time

from paho.mqtt import client as mqtt_client

SENSOR_PREFIX = "sensor"
SWITCH_TOPIC = "esp32/sw01/status"


def connect_mqtt(host: str, port: int) -> mqtt_client.Client:
    def on_connect(client, userdata, flags, rc, properties=None):
        if rc == 0:
            print("Connected to MQTT broker")
            client.subscribe(SWITCH_TOPIC, qos=1)
        else:
            print(f"Connect failed, rc={rc}")

    def on_message(client, userdata, msg):
        print(f"Switch command: {msg.payload.decode('utf-8', errors='ignore')}")

    client_id = f"sw01-sim-{random.randint(0, 1000)}"
    client = mqtt_client.Client(mqtt_client.CallbackAPIVersion.VERSION2, client_id)
    client.on_connect = on_connect
    client.on_message = on_message
    client.connect(host, port)
    return client


def reading(power: float) -> dict:
    voltage = round(random.uniform(218.0, 232.0), 1)
    pf = round(random.uniform(0.85, 0.99), 2)
    return {
        "voltage": voltage,
        "current": round(power / (voltage * pf), 3),
        "power": power,
        "energy": round(random.uniform(10.0, 12.0), 3),
        "frequency": round(random.uniform(49.9, 50.1), 1),
        "pf": pf,
    }


def run():
    p = argparse.ArgumentParser(description="SW01 sensor node simulator")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=1883)
    p.add_argument("--power", type=float, default=500.0, help="watts to report")
    p.add_argument("--jitter", type=float, default=20.0)
    p.add_argument("--count", type=int, default=0, help="0 = forever")
    p.add_argument("--interval", type=float, default=2.0)
    args = p.parse_args()

    client = connect_mqtt(args.host, args.port)
    client.loop_start()
    sent = 0
    try:
        while args.count == 0 or sent < args.count:
            power = max(0.0, args.power + random.uniform(-args.jitter, args.jitter))
            for metric, value in reading(round(power, 1)).items():
                client.publish(f"{SENSOR_PREFIX}/{metric}", str(value))
            print(f"published power={power:.1f} W")
            sent += 1
            time.sleep(args.interval)
    except KeyboardInterrupt:
        pass
    finally:
        client.loop_stop()
        client.disconnect()


if __name__ == '__main__':
    run()
