# powerhub/mqtt_handler.py
import asyncio
import json
import logging
import time
from queue import Empty, Queue

import paho.mqtt.client as mqtt

from .errors import PowerHubError
from .settings import Settings

log = logging.getLogger("powerhub.mqtt")


def _rc_int(rc) -> int:
    # Handles paho v2.x ReasonCode objects or plain ints
    try:
        return int(getattr(rc, "value", rc))
    except (TypeError, ValueError):
        return -1


def parse_telemetry_message(topic: str, payload: bytes, topic_base: str) -> tuple[str, dict] | None:
    """Turn `<base>/<nodeId>/telemetry` + JSON payload into (node_id, readings)."""
    parts = topic.split("/")
    if len(parts) != 3 or parts[0] != topic_base or parts[2] != "telemetry" or not parts[1]:
        return None
    try:
        data = json.loads(payload.decode("utf-8")) if payload else {}
    except (UnicodeDecodeError, json.JSONDecodeError):
        log.warning("Dropped malformed telemetry payload on %s", topic)
        return None
    if not isinstance(data, dict):
        log.warning("Dropped non-object telemetry payload on %s", topic)
        return None
    return parts[1], data


def start_mqtt(message_queue: Queue, settings: Settings) -> mqtt.Client:
    client = mqtt.Client(
        client_id=f"powerhub-gateway-{int(time.time())}",
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,  # paho 2.x
    )
    client.enable_logger(log)

    if settings.mqtt_username and settings.mqtt_password:
        client.username_pw_set(settings.mqtt_username, settings.mqtt_password)

    client.reconnect_delay_set(min_delay=1, max_delay=30)
    topic = f"{settings.mqtt_topic_base}/+/telemetry"

    def on_connect(client, userdata, flags, reason_code, properties):
        rc = _rc_int(reason_code)
        if rc != mqtt.CONNACK_ACCEPTED:
            log.warning("Connect failed rc=%s (5=Not authorized). Retrying…", rc)
            return
        res, mid = client.subscribe(topic, qos=0)
        log.info("Connected. SUB %s res=%s mid=%s", topic, res, mid)

    def on_disconnect(client, userdata, flags, reason_code, properties):
        log.warning("Disconnected rc=%s. Reconnecting…", _rc_int(reason_code))

    def on_message(client, userdata, msg):
        # paho network thread: hand over to the event loop, touch nothing else
        parsed = parse_telemetry_message(msg.topic, msg.payload, settings.mqtt_topic_base)
        if parsed is not None:
            message_queue.put(parsed)

    client.on_connect = on_connect
    client.on_disconnect = on_disconnect
    client.on_message = on_message

    log.info(
        "Bootstrapping host=%s port=%s user=%s base=%s",
        settings.mqtt_host, settings.mqtt_port,
        "<set>" if settings.mqtt_username else "<none>", settings.mqtt_topic_base,
    )

    client.connect(settings.mqtt_host, settings.mqtt_port, keepalive=30)
    client.loop_start()
    return client


def drain_queue(message_queue: Queue, gateway) -> int:
    """Apply every queued telemetry message through the gateway."""
    applied = 0
    while True:
        try:
            node_id, data = message_queue.get_nowait()
        except Empty:
            return applied
        try:
            gateway.report_telemetry(node_id, data.get("voltage"), data.get("current"), data.get("power"))
            applied += 1
        except PowerHubError as e:
            log.warning("Rejected MQTT telemetry for node %s: %s", node_id, e.message)


async def queue_forwarder(message_queue: Queue, gateway, poll_interval: float = 0.1):
    while True:
        drain_queue(message_queue, gateway)
        await asyncio.sleep(poll_interval)
