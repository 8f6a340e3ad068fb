"""Internal MQTT runtime feeding roster snapshots from the game bridge."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, cast

import paho.mqtt.client as mqtt

from petsync._redact import redact_for_log
from petsync.exceptions import PetSyncError

#: Topic suffix for each feed, published under ``<prefix>/<suffix>``.
FEED_TOPICS: tuple[str, ...] = ("active", "inventory", "store", "store_count", "ability_triggers")


@dataclass(frozen=True)
class FeedMessage:
    """A decoded snapshot for one feed."""

    feed: str
    topic: str
    payload: Any


def decode_feed_payload(payload: bytes) -> Any:
    """Decode MQTT payload bytes into a JSON value."""
    text = payload.decode("utf-8", errors="replace").strip()
    if not text:
        raise PetSyncError("MQTT payload is empty")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise PetSyncError(f"MQTT payload is not JSON: {text[:64]}") from exc


def feed_for_topic(topic: str, prefix: str) -> str | None:
    """Return the feed name for *topic* under *prefix*, or ``None``."""
    head = f"{prefix.rstrip('/')}/"
    if not topic.startswith(head):
        return None
    suffix = topic[len(head) :]
    return suffix if suffix in FEED_TOPICS else None


class FeedMqttRuntime:
    """Threaded paho-mqtt runtime that emits feed snapshots onto an asyncio loop."""

    def __init__(
        self,
        *,
        loop: asyncio.AbstractEventLoop,
        topic_prefix: str,
        on_message: Callable[[FeedMessage], None],
        feeds: Iterable[str] = FEED_TOPICS,
        keepalive: int = 60,
        logger: logging.Logger | None = None,
    ) -> None:
        self._loop = loop
        self._prefix = topic_prefix.rstrip("/")
        self._on_message = on_message
        self._feeds = tuple(feeds)
        self._keepalive = keepalive
        self._logger = logger or logging.getLogger(__name__)
        self._client: mqtt.Client | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether the MQTT runtime is actively running."""
        return self._running

    @property
    def topics(self) -> list[str]:
        return [f"{self._prefix}/{feed}" for feed in self._feeds]

    def handle_payload(self, topic: str, payload: bytes) -> None:
        """Decode one PUBLISH and hand it to the asyncio loop."""
        feed = feed_for_topic(topic, self._prefix)
        if feed is None:
            self._logger.debug("Ignoring MQTT message on unknown topic=%s", topic)
            return
        try:
            parsed = decode_feed_payload(payload)
        except PetSyncError:
            self._logger.debug("MQTT payload parse failure topic=%s", topic, exc_info=True)
            return
        self._logger.debug("Received PUBLISH topic=%s parsed=%s", topic, redact_for_log(parsed))
        self._loop.call_soon_threadsafe(self._on_message, FeedMessage(feed=feed, topic=topic, payload=parsed))

    def start(self, host: str, port: int) -> None:
        """Connect to the broker and subscribe to every feed topic."""
        self.stop()
        self._logger.debug("MQTT runtime start requested host=%s port=%s prefix=%s", host, port, self._prefix)

        client = mqtt.Client(callback_api_version=cast(Any, mqtt).CallbackAPIVersion.VERSION2)
        client.enable_logger(self._logger)

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
            self._logger.debug("MQTT connected successfully reason=%s", reason_code)
            for topic in self.topics:
                c.subscribe(topic, qos=0)

        def on_message(_c: mqtt.Client, _userdata: Any, msg: mqtt.MQTTMessage) -> None:
            try:
                self.handle_payload(msg.topic, msg.payload)
            except Exception:
                self._logger.debug("MQTT message dispatch failure", exc_info=True)

        def on_disconnect(
            _client: mqtt.Client,
            _userdata: Any,
            _disconnect_flags: Any,
            reason_code: Any,
            _properties: Any,
        ) -> None:
            if self._running:
                self._logger.debug("MQTT disconnected: %s", reason_code)

        client.on_connect = on_connect
        client.on_message = on_message
        client.on_disconnect = on_disconnect

        client.connect(host, port, keepalive=self._keepalive)
        client.loop_start()

        self._client = client
        self._running = True
        self._logger.debug("MQTT network loop started")

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
