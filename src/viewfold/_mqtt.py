"""Internal MQTT event-stream runtime and payload decoding."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, cast

import paho.mqtt.client as mqtt

from viewfold._redact import redact_for_log
from viewfold.config import EngineConfig
from viewfold.exceptions import ViewfoldStreamError


@dataclass(frozen=True)
class StreamMessage:
    """Decoded message from the event stream."""

    name: str
    topic: str
    payload: dict[str, Any]
    is_snapshot: bool = False


def _decode_json_object(payload: bytes) -> dict[str, Any]:
    try:
        parsed = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ViewfoldStreamError(f"Payload is not UTF-8 JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ViewfoldStreamError("Payload decoded to non-object JSON")
    return parsed


def decode_stream_message(topic: str, payload: bytes, *, topic_prefix: str) -> StreamMessage:
    """Decode a raw MQTT message into a :class:`StreamMessage`.

    ``<prefix>/snapshot`` carries the bulk snapshot. ``<prefix>/events/<name>``
    carries one event; a payload shaped ``{"event": name, "data": {...}}``
    overrides the topic-derived name.
    """
    parsed = _decode_json_object(payload)
    prefix = topic_prefix.rstrip("/")

    if topic == f"{prefix}/snapshot":
        return StreamMessage(name="snapshot", topic=topic, payload=parsed, is_snapshot=True)

    events_root = f"{prefix}/events/"
    if not topic.startswith(events_root):
        raise ViewfoldStreamError(f"Unexpected topic {topic}")

    name = topic[len(events_root) :]
    body: dict[str, Any] = parsed
    envelope_name = parsed.get("event")
    envelope_data = parsed.get("data")
    if isinstance(envelope_name, str) and envelope_name and isinstance(envelope_data, dict):
        name = envelope_name
        body = envelope_data

    if not name or "/" in name:
        raise ViewfoldStreamError(f"Cannot derive event name from topic {topic}")
    return StreamMessage(name=name, topic=topic, payload=body)


class EventStreamRuntime:
    """Threaded paho-mqtt runtime that emits decoded messages onto an asyncio loop.

    Every callback runs on the loop thread, so the engine sees one message
    at a time in arrival order.
    """

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        config: EngineConfig,
        on_message: Callable[[StreamMessage], None],
        on_connected: Callable[[], None] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._loop = loop
        self._config = config
        self._on_message = on_message
        self._on_connected = on_connected
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether the MQTT runtime is actively running."""
        return self._running

    def start(self) -> None:
        """Connect and subscribe to the event and snapshot topics."""
        self.stop()
        config = self._config
        if not config.broker_host:
            raise ViewfoldStreamError("No broker_host configured")
        self._logger.debug(
            "MQTT runtime start requested host=%s port=%s prefix=%s client_id=%s",
            config.broker_host,
            config.broker_port,
            config.topic_prefix,
            config.client_id,
        )

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            client_id=config.client_id,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if config.broker_username:
            client.username_pw_set(config.broker_username, config.broker_password)
        if config.broker_tls:
            client.tls_set()

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("MQTT connect failed: %s", reason_code)
                return
            self._logger.debug("MQTT connected reason=%s", reason_code)
            c.subscribe([(config.events_topic, 1), (config.snapshot_topic, 1)])
            if self._on_connected is not None:
                self._loop.call_soon_threadsafe(self._on_connected)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            try:
                message = decode_stream_message(msg.topic, msg.payload, topic_prefix=config.topic_prefix)
            except ViewfoldStreamError:
                self._logger.debug("MQTT payload decode failure topic=%s", msg.topic, exc_info=True)
                return
            if not message.is_snapshot:
                self._logger.debug(
                    "Received event name=%s payload=%s",
                    message.name,
                    redact_for_log(message.payload),
                )
            self._loop.call_soon_threadsafe(self._on_message, message)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.warning("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        # Set before connecting: on_connect may fire before start() returns.
        self._client = client
        self._running = True
        try:
            client.connect(config.broker_host, config.broker_port, keepalive=config.keepalive)
        except OSError:
            self._client = None
            self._running = False
            raise
        client.loop_start()
        self._logger.debug("MQTT network loop started")

    def publish(self, topic: str, payload: dict[str, Any]) -> None:
        client = self._client
        if client is None:
            raise ViewfoldStreamError("MQTT runtime is not running")
        client.publish(topic, json.dumps(payload, separators=(",", ":")), qos=1)

    def stop(self) -> None:
        """Stop and disconnect current MQTT client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("MQTT disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("MQTT network loop stopped")
