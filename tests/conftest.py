from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
from typing import Any

import pytest

from petsync.exceptions import PetSyncActionError
from petsync.feeds import RosterFeeds, ValueFeed


def pet(pet_id: str, species: str = "Bee", **extra: Any) -> dict[str, Any]:
    """Raw inventory item for a pet."""
    item: dict[str, Any] = {
        "id": pet_id,
        "itemType": "Pet",
        "petSpecies": species,
        "name": None,
        "xp": 0,
        "hunger": 100,
        "mutations": [],
        "targetScale": 1.0,
        "abilities": [],
    }
    item.update(extra)
    return item


class FakeGame:
    """In-memory game implementing :class:`petsync.actions.PetActions`.

    Every successful action updates the pet locations and republishes the
    active, inventory, store and store-count feeds.
    """

    def __init__(
        self,
        *,
        active: Iterable[str] = (),
        inventory: Iterable[str] = (),
        store: Iterable[str] = (),
        inventory_capacity: int = 100,
        store_capacity: int = 25,
        favorites: Iterable[str] = (),
        pets: Mapping[str, dict[str, Any]] | None = None,
    ) -> None:
        self.pets: dict[str, dict[str, Any]] = dict(pets or {})
        self.active = list(active)
        self.inventory = list(inventory)
        self.store = list(store)
        for pet_id in [*self.active, *self.inventory, *self.store]:
            self.pets.setdefault(pet_id, pet(pet_id))
        self.inventory_capacity = inventory_capacity
        self.store_capacity = store_capacity
        self.favorites = list(favorites)
        self.fail_on: set[tuple[str, str]] = set()
        self.fail_once: set[tuple[str, str]] = set()
        self.calls: list[tuple[Any, ...]] = []
        self.busy = 0
        self.max_busy = 0
        self.feeds = RosterFeeds(
            active=ValueFeed([], name="active"),
            inventory=ValueFeed({"items": []}, name="inventory"),
            store=ValueFeed([], name="store"),
            store_count=ValueFeed(0, name="store_count"),
            ability_triggers=ValueFeed({}, name="ability_triggers"),
        )
        self.publish()

    # ------------------------------------------------------------------
    # Feed helpers
    # ------------------------------------------------------------------

    def _feed(self, name: str) -> ValueFeed:
        feed = getattr(self.feeds, name)
        assert isinstance(feed, ValueFeed)
        return feed

    def publish(self) -> None:
        self._feed("active").publish([{"slot": dict(self.pets[pid])} for pid in self.active])
        self._feed("inventory").publish({"items": [dict(self.pets[pid]) for pid in self.inventory]})
        self._feed("store").publish([dict(self.pets[pid]) for pid in self.store])
        self._feed("store_count").publish(len(self.store))

    async def _enter(self, action: str, *args: Any) -> None:
        self.calls.append((action, *args))
        self.busy += 1
        self.max_busy = max(self.max_busy, self.busy)
        try:
            await asyncio.sleep(0)
        finally:
            self.busy -= 1
        key = (action, str(args[0]) if args else "")
        if key in self.fail_once:
            self.fail_once.discard(key)
            raise PetSyncActionError(f"{action} failed", action=action)
        if key in self.fail_on:
            raise PetSyncActionError(f"{action} failed", action=action)

    @staticmethod
    def _refuse(action: str, reason: str) -> PetSyncActionError:
        return PetSyncActionError(f"{action}: {reason}", action=action)

    # ------------------------------------------------------------------
    # PetActions
    # ------------------------------------------------------------------

    async def swap_pet(self, active_id: str, new_id: str) -> None:
        await self._enter("swap_pet", active_id, new_id)
        if active_id not in self.active or new_id not in self.inventory:
            raise self._refuse("swap_pet", "invalid ids")
        self.active[self.active.index(active_id)] = new_id
        self.inventory.remove(new_id)
        self.inventory.append(active_id)
        self.publish()

    async def place_pet(self, entity_id: str, position: Mapping[str, int], surface: str, layer: int) -> None:
        await self._enter("place_pet", entity_id, dict(position), surface, layer)
        if entity_id not in self.inventory or len(self.active) >= 3:
            raise self._refuse("place_pet", "cannot place")
        self.inventory.remove(entity_id)
        self.active.append(entity_id)
        self.publish()

    async def store_pet(self, entity_id: str) -> None:
        await self._enter("store_pet", entity_id)
        if entity_id not in self.active:
            raise self._refuse("store_pet", "not active")
        self.active.remove(entity_id)
        self.inventory.append(entity_id)
        self.publish()

    async def put_item_in_storage(self, entity_id: str, store_name: str) -> None:
        await self._enter("put_item_in_storage", entity_id, store_name)
        if entity_id not in self.inventory or len(self.store) >= self.store_capacity:
            raise self._refuse("put_item_in_storage", "cannot store")
        self.inventory.remove(entity_id)
        self.store.append(entity_id)
        self.publish()

    async def retrieve_item_from_storage(self, entity_id: str, store_name: str) -> None:
        await self._enter("retrieve_item_from_storage", entity_id, store_name)
        if entity_id not in self.store or len(self.inventory) >= self.inventory_capacity:
            raise self._refuse("retrieve_item_from_storage", "cannot retrieve")
        self.store.remove(entity_id)
        self.inventory.append(entity_id)
        self.publish()

    async def get_favorite_ids(self) -> list[str]:
        return list(self.favorites)

    async def is_inventory_full(self) -> bool:
        return len(self.inventory) >= self.inventory_capacity

    def action_names(self) -> list[str]:
        return [call[0] for call in self.calls]


class Notifications:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def __call__(self, title: str, message: str) -> None:
        self.messages.append((title, message))


@pytest.fixture
def notifications() -> Notifications:
    return Notifications()


@pytest.fixture
def make_game() -> type[FakeGame]:
    return FakeGame


@pytest.fixture
def make_pet() -> Any:
    return pet
