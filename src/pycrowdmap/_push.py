"""Internal MQTT push runtime and payload parsing.

The server publishes two kinds of messages under a topic prefix:

* ``<prefix>/snapshot`` with ``{"counts": {...}}`` (full replacement)
* ``<prefix>/live_count_update`` with ``{"event_id": ..., "livecount": ...}``

On every (re)connect the runtime subscribes to ``<prefix>/#`` and
publishes a ``<prefix>/subscribe_all`` request so the server answers
with a fresh snapshot.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, cast

import paho.mqtt.client as mqtt

from pycrowdmap._constants import LIVE_COUNT_TOPIC, SNAPSHOT_TOPIC
from pycrowdmap.exceptions import CrowdMapError


class PushKind(StrEnum):
    SNAPSHOT = "snapshot"
    LIVE_COUNT = "live_count_update"
    OTHER = "other"


@dataclass(frozen=True)
class PushEvent:
    """Normalized decoded push message."""

    kind: PushKind
    topic: str
    payload: dict[str, Any]


def classify_topic(topic: str, prefix: str) -> PushKind:
    base = prefix.rstrip("/")
    if topic == f"{base}/{SNAPSHOT_TOPIC}":
        return PushKind.SNAPSHOT
    if topic == f"{base}/{LIVE_COUNT_TOPIC}":
        return PushKind.LIVE_COUNT
    return PushKind.OTHER


def decode_push_payload(payload: bytes) -> dict[str, Any]:
    """Parse MQTT payload bytes into a JSON object."""
    try:
        parsed = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CrowdMapError("Push payload is not valid JSON") from exc
    if not isinstance(parsed, dict):
        raise CrowdMapError("Push payload decoded to non-object JSON")
    return parsed


class CrowdPushRuntime:
    """Threaded paho-mqtt runtime that emits parsed events onto an asyncio loop.

    Connection changes are reported through *on_connection_change*
    (``True`` on connect, ``False`` on disconnect); both callbacks run on
    the event loop thread. paho retries dropped connections on its own,
    spaced by *reconnect_interval*.
    """

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        topic_prefix: str,
        on_event: Callable[[PushEvent], None],
        on_connection_change: Callable[[bool], None],
        keepalive: int = 60,
        reconnect_interval: float = 10.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self._loop = loop
        self._prefix = topic_prefix.rstrip("/")
        self._on_event = on_event
        self._on_connection_change = on_connection_change
        self._keepalive = keepalive
        self._reconnect_interval = max(1, int(reconnect_interval))
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether the network loop thread is active."""
        return self._running

    def _notify_connection(self, connected: bool) -> None:
        self._loop.call_soon_threadsafe(self._on_connection_change, connected)

    def start(self, host: str, port: int, *, tls: bool = False) -> None:
        """Connect (asynchronously) and start the network loop."""
        self.stop()
        self._logger.debug("Push runtime start requested host=%s port=%s prefix=%s", host, port, self._prefix)

        client = mqtt.Client(
            callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2,
            protocol=mqtt.MQTTv5,
        )
        client.enable_logger(self._logger)
        if tls:
            client.tls_set()
        client.reconnect_delay_set(min_delay=1, max_delay=self._reconnect_interval)

        def on_connect(
            c: mqtt.Client,
            _userdata: Any,
            _flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if reason_code.value != 0:
                self._logger.warning("Push connect failed: %s", reason_code)
                return
            self._logger.info("Connected to real-time server.")
            c.subscribe(f"{self._prefix}/#", qos=1)
            c.publish(f"{self._prefix}/subscribe_all", payload="{}", qos=1)
            self._notify_connection(True)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            kind = classify_topic(msg.topic, self._prefix)
            if kind == PushKind.OTHER:
                return
            try:
                parsed = decode_push_payload(msg.payload)
            except CrowdMapError:
                self._logger.debug("Push payload parse failure topic=%s", msg.topic, exc_info=True)
                return
            self._logger.debug("Received PUBLISH topic=%s parsed=%s", msg.topic, parsed)
            self._loop.call_soon_threadsafe(self._on_event, PushEvent(kind=kind, topic=msg.topic, payload=parsed))

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if not self._running:
                return
            self._logger.warning("Disconnected from real-time server: %s", reason_code)
            self._notify_connection(False)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        client.connect_async(host, port, keepalive=self._keepalive)
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("Push network loop started")

    def stop(self) -> None:
        """Stop and disconnect the current client if running."""
        client = self._client
        self._client = None
        was_running = self._running
        self._running = False

        if client is None:
            return
        try:
            if was_running:
                self._logger.debug("Push disconnect requested")
                client.disconnect()
        finally:
            client.loop_stop()
            self._logger.debug("Push network loop stopped")
