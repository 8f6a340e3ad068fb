from __future__ import annotations

import asyncio

import pytest

from petsync._mqtt import FEED_TOPICS, FeedMessage, FeedMqttRuntime, decode_feed_payload, feed_for_topic
from petsync.exceptions import PetSyncError
from petsync.feeds import RosterFeeds
from petsync.service import PetTeamService
from petsync.storage import KeyValueStore


def test_decode_feed_payload() -> None:
    assert decode_feed_payload(b' {"items": []} ') == {"items": []}
    assert decode_feed_payload(b"3") == 3

    with pytest.raises(PetSyncError, match="empty"):
        decode_feed_payload(b"  ")
    with pytest.raises(PetSyncError, match="not JSON"):
        decode_feed_payload(b"{oops")


def test_feed_for_topic() -> None:
    assert feed_for_topic("petsync/active", "petsync") == "active"
    assert feed_for_topic("petsync/store_count", "petsync/") == "store_count"
    assert feed_for_topic("petsync/unknown", "petsync") is None
    assert feed_for_topic("other/active", "petsync") is None


@pytest.mark.asyncio
async def test_runtime_dispatches_decoded_payloads_to_loop() -> None:
    received: list[FeedMessage] = []
    runtime = FeedMqttRuntime(
        loop=asyncio.get_running_loop(),
        topic_prefix="game/pets/",
        on_message=received.append,
    )

    assert runtime.topics == [f"game/pets/{feed}" for feed in FEED_TOPICS]
    assert not runtime.is_running

    runtime.handle_payload("game/pets/inventory", b'{"items": [{"id": "a"}]}')
    runtime.handle_payload("game/pets/inventory", b"not json")
    runtime.handle_payload("game/other", b"{}")
    assert received == []

    await asyncio.sleep(0)

    assert received == [FeedMessage(feed="inventory", topic="game/pets/inventory", payload={"items": [{"id": "a"}]})]


def test_stop_without_start_is_noop() -> None:
    loop = asyncio.new_event_loop()
    try:
        runtime = FeedMqttRuntime(loop=loop, topic_prefix="p", on_message=lambda _m: None)
        runtime.stop()
        assert not runtime.is_running
    finally:
        loop.close()


@pytest.mark.asyncio
async def test_service_publishes_mqtt_messages_into_feeds() -> None:
    feeds = RosterFeeds.in_memory()
    service = PetTeamService(feeds=feeds, storage=KeyValueStore())
    seen: list[object] = []
    feeds.store_count.on_change(seen.append)

    service._on_mqtt_message(FeedMessage(feed="store_count", topic="petsync/store_count", payload=7))
    service._on_mqtt_message(FeedMessage(feed="nope", topic="petsync/nope", payload=1))

    assert seen == [7]
    assert await feeds.store_count.get() == 7
