import json
import logging
import re
import secrets
import ssl
import threading
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import paho.mqtt.client as mqtt
from sqlalchemy.exc import SQLAlchemyError

from . import crud
from .db import SessionLocal
from .models import CountEvent, DIRECTIONS, ParsedCount
from .settings import Settings, settings

logger = logging.getLogger("gs_retail.ingestor")

# =========================
# Constants
# =========================
LOCAL_FORMAT = "%Y-%m-%d %H:%M:%S"
CONNECT_RETRY_S = 5
RECONNECT_MIN_DELAY_S = 1
RECONNECT_MAX_DELAY_S = 60

# SQLite INTEGER is a signed 64-bit value
MAX_COUNT = 2**63 - 1

_FRACTION_RE = re.compile(r"\.(\d+)")

_stop = threading.Event()


class PayloadError(ValueError):
    """Message body that cannot become a row."""


# =========================
# Parsing
# =========================
def _parse_utc(value: str) -> datetime:
    s = value.strip()
    if s.endswith(("Z", "z")):
        s = s[:-1] + "+00:00"
    # fromisoformat only takes 3 or 6 fractional digits before 3.11
    s = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), s, count=1)
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def to_local_timestamp(utc_time, tz_name: str = "Europe/Stockholm") -> str:
    if not isinstance(utc_time, str) or not utc_time.strip():
        raise ValueError(f"UtcTime missing or not a string: {utc_time!r}")
    try:
        tz = ZoneInfo(tz_name)
    except ZoneInfoNotFoundError as e:
        raise ValueError(f"unknown timezone {tz_name!r}") from e
    try:
        return _parse_utc(utc_time).astimezone(tz).strftime(LOCAL_FORMAT)
    except (ValueError, OverflowError) as e:
        raise ValueError(f"UtcTime not convertible: {utc_time!r} ({e})") from e


def _count_value(value) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        raise PayloadError(f"Count is not a number: {value!r}")
    try:
        if isinstance(value, str):
            s = value.strip()
            n = int(s) if s.lstrip("+-").isdigit() else int(float(s))
        else:
            n = int(value)
    except (TypeError, ValueError, OverflowError) as e:
        raise PayloadError(f"Count is not a number: {value!r}") from e
    if n < 0:
        raise PayloadError(f"Count is negative: {n}")
    if n > MAX_COUNT:
        raise PayloadError(f"Count out of range: {n}")
    return n


def parse_count_payload(raw, tz_name: str = "Europe/Stockholm") -> ParsedCount:
    """
    Turns a people-counting message into the values stored in `counts`.

    Expected shape:
        {"UtcTime": "...Z", "Data": {"Direction": "in", "Count": 3}, ...}

    Count defaults to 0 when absent. Raises PayloadError for everything
    that cannot be stored.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            text = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as e:
            raise PayloadError("payload is not valid UTF-8") from e
    else:
        text = str(raw)

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise PayloadError(f"invalid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise PayloadError("payload is not a JSON object")

    data = payload.get("Data") or {}
    if not isinstance(data, dict):
        raise PayloadError("Data is not an object")

    direction = data.get("Direction")
    if not isinstance(direction, str) or direction.strip().lower() not in DIRECTIONS:
        raise PayloadError(f"unknown Direction: {direction!r}")

    count = _count_value(data.get("Count"))

    try:
        timestamp = to_local_timestamp(payload.get("UtcTime"), tz_name)
    except ValueError as e:
        raise PayloadError(f"bad UtcTime: {e}") from e

    return ParsedCount(
        timestamp=timestamp,
        direction=direction.strip().lower(),
        count=count,
        raw_payload=text,
    )


# =========================
# Ingest
# =========================
def process_message(raw, topic: str, session_factory=None, tz_name: str | None = None) -> CountEvent | None:
    """Parse one message and append it. Failures are logged and dropped."""
    logger.debug("message on %s (%d bytes)", topic, len(raw))

    try:
        parsed = parse_count_payload(raw, tz_name or settings.LOCAL_TZ)
    except PayloadError as e:
        logger.warning("Dropping payload on %s: %s", topic, e)
        return None

    db = (session_factory or SessionLocal)()
    try:
        return crud.insert_count(db, parsed)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Error inserting data: %s", e)
        return None
    except Exception:
        db.rollback()
        logger.exception("Unexpected error storing payload from %s", topic)
        return None
    finally:
        db.close()


# =========================
# MQTT callbacks
# =========================
def _on_connect(client, userdata, flags, reason_code, properties=None):
    if reason_code.is_failure:
        logger.error("MQTT connection refused: %s", reason_code)
        return
    topic = userdata["topic"]
    logger.info("Connected to MQTT broker")
    result, _mid = client.subscribe(topic)
    if result != mqtt.MQTT_ERR_SUCCESS:
        logger.error("Subscription error on %s: rc=%s", topic, result)


def _on_subscribe(client, userdata, mid, reason_code_list, properties=None):
    for rc in reason_code_list:
        if rc.is_failure:
            logger.error("Subscription rejected for %s: %s", userdata["topic"], rc)
        else:
            logger.info("Subscribed to topic: %s", userdata["topic"])


def _on_message(client, userdata, msg):
    process_message(msg.payload, msg.topic, tz_name=userdata["tz"])


def _on_disconnect(client, userdata, flags, reason_code, properties=None):
    if _stop.is_set():
        logger.info("MQTT disconnected")
    else:
        logger.warning("MQTT connection lost (%s), client will reconnect", reason_code)


# =========================
# Client
# =========================
def build_client(cfg: Settings = settings) -> mqtt.Client:
    client = mqtt.Client(
        mqtt.CallbackAPIVersion.VERSION2,
        client_id=f"gs-retail-server-{secrets.token_hex(4)}",
        transport="websockets" if cfg.use_websockets else "tcp",
        userdata={"topic": cfg.MQTT_TOPIC, "tz": cfg.LOCAL_TZ},
    )

    if cfg.use_websockets:
        client.ws_set_options(path=cfg.MQTT_PATH)

    if cfg.use_ssl:
        if cfg.MQTT_TLS_VERIFY:
            client.tls_set(cert_reqs=ssl.CERT_REQUIRED)
        else:
            client.tls_set(cert_reqs=ssl.CERT_NONE)
            client.tls_insecure_set(True)

    if cfg.MQTT_USERNAME:
        client.username_pw_set(cfg.MQTT_USERNAME, cfg.MQTT_PASSWORD)

    client.reconnect_delay_set(min_delay=RECONNECT_MIN_DELAY_S, max_delay=RECONNECT_MAX_DELAY_S)

    client.on_connect = _on_connect
    client.on_subscribe = _on_subscribe
    client.on_message = _on_message
    client.on_disconnect = _on_disconnect
    return client


# =========================
# Start / stop
# =========================
def start_mqtt(cfg: Settings = settings):
    _stop.clear()
    client = build_client(cfg)
    url = f"{cfg.MQTT_PROTOCOL}://{cfg.MQTT_HOST}:{cfg.MQTT_PORT}{cfg.MQTT_PATH if cfg.use_websockets else ''}"

    def _run():
        # after the first successful connect, loop_forever reconnects by itself
        while not _stop.is_set():
            try:
                logger.info("Connecting to %s ...", url)
                client.connect(cfg.MQTT_HOST, cfg.MQTT_PORT, keepalive=60)
                client.loop_forever()
                return
            except Exception as e:
                logger.error("MQTT error: %s. Retrying in %ss...", e, CONNECT_RETRY_S)
                _stop.wait(CONNECT_RETRY_S)

    th = threading.Thread(target=_run, name="mqtt-ingestor", daemon=True)
    th.start()
    return client, th


def stop_mqtt(client: mqtt.Client, thread: threading.Thread | None = None, timeout: float = 5.0):
    _stop.set()
    client.disconnect()
    if thread is not None:
        thread.join(timeout=timeout)
