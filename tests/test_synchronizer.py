from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from petsync.feeds import Unsubscribe, ValueFeed
from petsync.models.entity import Entity
from petsync.state.merge import MERGE_ORDER, RosterSource, merge_by_priority
from petsync.state.synchronizer import FeedState, InventorySynchronizer


def _item(pet_id: str, **extra: Any) -> dict[str, Any]:
    item: dict[str, Any] = {"id": pet_id, "itemType": "Pet", "petSpecies": "Bee", "xp": 0, "hunger": 50}
    item.update(extra)
    return item


class _SlowFeed(ValueFeed):
    """Feed whose ``get`` yields to the loop before answering."""

    def __init__(self, value: Any) -> None:
        super().__init__(value)
        self.subscribe_calls = 0

    async def get(self) -> Any:
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        return await super().get()

    def on_change(self, callback: Callable[[Any], None]) -> Unsubscribe:
        self.subscribe_calls += 1
        return super().on_change(callback)


class _BrokenFeed:
    def __init__(self, *, fail_get: bool = True, fail_subscribe: bool = False) -> None:
        self.fail_get = fail_get
        self.fail_subscribe = fail_subscribe

    async def get(self) -> Any:
        if self.fail_get:
            raise RuntimeError("feed unavailable")
        return []

    def on_change(self, callback: Callable[[Any], None]) -> Unsubscribe:
        if self.fail_subscribe:
            raise RuntimeError("subscribe failed")
        return lambda: None


def _sync(
    *,
    active: Any = None,
    inventory: Any = None,
    store: Any = None,
    **kwargs: Any,
) -> tuple[InventorySynchronizer, ValueFeed, ValueFeed, ValueFeed]:
    active_feed = ValueFeed(active if active is not None else [])
    inventory_feed = ValueFeed(inventory if inventory is not None else {"items": []})
    store_feed = ValueFeed(store if store is not None else [])
    synchronizer = InventorySynchronizer(active=active_feed, inventory=inventory_feed, store=store_feed, **kwargs)
    return synchronizer, active_feed, inventory_feed, store_feed


def test_merge_order_is_lowest_priority_first() -> None:
    assert MERGE_ORDER == (RosterSource.STORE, RosterSource.INVENTORY, RosterSource.ACTIVE)


def test_merge_by_priority_later_lists_win_and_keep_first_position() -> None:
    low = [Entity(id="x", species="Low"), Entity(id="y")]
    high = [Entity(id="x", species="High")]

    merged = merge_by_priority([low, high])

    assert [e.id for e in merged] == ["x", "y"]
    assert merged[0].species == "High"


@pytest.mark.asyncio
async def test_inventory_wins_over_store_and_active_wins_over_inventory() -> None:
    synchronizer, *_ = _sync(
        store=[_item("X", name="from-store"), _item("Y", name="from-store")],
        inventory={"items": [_item("X", name="from-inventory"), _item("Y", name="from-inventory")]},
        active=[{"slot": _item("Y", name="from-active")}],
    )

    roster = {e.id: e for e in await synchronizer.get_merged_roster()}

    assert roster["X"].display_name == "from-inventory"
    assert roster["Y"].display_name == "from-active"
    assert len(roster) == 2


@pytest.mark.asyncio
async def test_volatile_inventory_changes_do_not_rebuild() -> None:
    synchronizer, _, inventory, _ = _sync(inventory={"items": [_item("A")]})
    await synchronizer.get_merged_roster()
    rebuilds: list[list[Entity]] = []
    synchronizer.on_rebuild(rebuilds.append)

    inventory.publish({"items": [_item("A", xp=999, hunger=1)]})
    assert rebuilds == []

    inventory.publish({"items": [_item("A", name="Buzz")]})
    assert len(rebuilds) == 1
    assert rebuilds[0][0].display_name == "Buzz"


@pytest.mark.asyncio
async def test_volatile_active_changes_do_not_rebuild() -> None:
    synchronizer, active, _, _ = _sync(active=[{"slot": _item("A")}])
    await synchronizer.get_merged_roster()
    count = synchronizer.rebuild_count

    active.publish([{"slot": _item("A", xp=10)}])
    assert synchronizer.rebuild_count == count

    active.publish([])
    assert synchronizer.rebuild_count == count + 1
    assert synchronizer.roster_snapshot() == []


@pytest.mark.asyncio
async def test_store_feed_rebuilds_on_every_change_by_default() -> None:
    synchronizer, _, _, store = _sync(store=[_item("S")])
    await synchronizer.get_merged_roster()
    count = synchronizer.rebuild_count

    store.publish([_item("S", xp=5)])

    assert synchronizer.rebuild_count == count + 1


@pytest.mark.asyncio
async def test_store_feed_suppression_can_be_enabled() -> None:
    synchronizer, _, _, store = _sync(store=[_item("S")], suppress_store_rebuilds=True)
    await synchronizer.get_merged_roster()
    count = synchronizer.rebuild_count

    store.publish([_item("S", xp=5)])

    assert synchronizer.rebuild_count == count


@pytest.mark.asyncio
async def test_concurrent_first_calls_subscribe_once() -> None:
    active = _SlowFeed([{"slot": _item("A")}])
    inventory = _SlowFeed({"items": [_item("B")]})
    store = _SlowFeed([_item("C")])
    synchronizer = InventorySynchronizer(active=active, inventory=inventory, store=store)

    results = await asyncio.gather(*(synchronizer.get_merged_roster() for _ in range(5)))

    assert (active.subscribe_calls, inventory.subscribe_calls, store.subscribe_calls) == (1, 1, 1)
    assert all({e.id for e in roster} == {"A", "B", "C"} for roster in results)
    assert synchronizer.feed_state(RosterSource.ACTIVE) is FeedState.STARTED


@pytest.mark.asyncio
async def test_failing_feed_keeps_cache_and_does_not_raise() -> None:
    inventory = ValueFeed({"items": [_item("B")]})
    synchronizer = InventorySynchronizer(active=_BrokenFeed(), inventory=inventory, store=ValueFeed([]))

    roster = await synchronizer.get_merged_roster()

    assert [e.id for e in roster] == ["B"]


@pytest.mark.asyncio
async def test_failed_subscribe_is_retried_on_next_call() -> None:
    broken = _BrokenFeed(fail_get=False, fail_subscribe=True)
    synchronizer = InventorySynchronizer(active=broken, inventory=ValueFeed({"items": []}), store=ValueFeed([]))

    await synchronizer.get_merged_roster()
    assert synchronizer.feed_state(RosterSource.ACTIVE) is FeedState.NOT_STARTED

    broken.fail_subscribe = False
    await synchronizer.get_merged_roster()
    assert synchronizer.feed_state(RosterSource.ACTIVE) is FeedState.STARTED


@pytest.mark.asyncio
async def test_non_pet_items_are_ignored() -> None:
    synchronizer, *_ = _sync(
        inventory={"items": [_item("A"), {"id": "seed-1", "itemType": "Seed"}, "junk"]},
    )

    roster = await synchronizer.get_merged_roster()

    assert [e.id for e in roster] == ["A"]


@pytest.mark.asyncio
async def test_aclose_unsubscribes_every_feed() -> None:
    synchronizer, active, inventory, store = _sync()
    await synchronizer.get_merged_roster()
    assert active.listener_count == inventory.listener_count == store.listener_count == 1

    await synchronizer.aclose()

    assert active.listener_count == inventory.listener_count == store.listener_count == 0
    assert synchronizer.feed_state(RosterSource.STORE) is FeedState.NOT_STARTED


@pytest.mark.asyncio
async def test_find_entity_reads_cache_without_starting() -> None:
    synchronizer, *_ = _sync(inventory={"items": [_item("A")]})
    assert synchronizer.find_entity("A") is None

    await synchronizer.get_merged_roster()

    entity = synchronizer.find_entity("A")
    assert entity is not None and entity.species == "Bee"


@pytest.mark.asyncio
async def test_empty_roster_refetch_does_not_renotify() -> None:
    synchronizer, *_ = _sync()
    await synchronizer.get_merged_roster()
    rebuilds: list[list[Entity]] = []
    synchronizer.on_rebuild(rebuilds.append)
    count = synchronizer.rebuild_count

    for _ in range(3):
        assert await synchronizer.get_merged_roster() == []

    assert synchronizer.rebuild_count == count
    assert rebuilds == []
