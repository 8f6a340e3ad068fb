"""Merged roster cache fed by the active, inventory and store feeds.

This is the only component allowed to combine the three entity feeds.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from petsync.feeds import FeedAdapter, Unsubscribe
from petsync.ingestion.normalize import (
    entities_from_active,
    entities_from_inventory,
    entities_from_store,
    signature_map,
)
from petsync.models.entity import Entity
from petsync.state.merge import MERGE_ORDER, RosterSource, merge_by_priority

_logger = logging.getLogger(__name__)

_PARSERS: dict[RosterSource, Callable[[Any], list[Entity]]] = {
    RosterSource.ACTIVE: entities_from_active,
    RosterSource.INVENTORY: entities_from_inventory,
    RosterSource.STORE: entities_from_store,
}


class FeedState(StrEnum):
    NOT_STARTED = "not_started"
    STARTING = "starting"
    STARTED = "started"


@dataclass
class _FeedSlot:
    source: RosterSource
    feed: FeedAdapter
    suppress: bool
    state: FeedState = FeedState.NOT_STARTED
    entities: list[Entity] = field(default_factory=list)
    signature: dict[str, str] | None = None
    unsubscribe: Unsubscribe | None = None
    starting: asyncio.Future[None] | None = None


class InventorySynchronizer:
    """Maintain one deduplicated roster from three independent feeds.

    When an id appears in several feeds the active version wins over the
    inventory one, which wins over the store one. Snapshots of suppressed
    feeds whose stable signatures did not change are ignored.
    """

    def __init__(
        self,
        *,
        active: FeedAdapter,
        inventory: FeedAdapter,
        store: FeedAdapter,
        suppress_store_rebuilds: bool = False,
    ) -> None:
        self._slots: dict[RosterSource, _FeedSlot] = {
            RosterSource.INVENTORY: _FeedSlot(RosterSource.INVENTORY, inventory, suppress=True),
            RosterSource.ACTIVE: _FeedSlot(RosterSource.ACTIVE, active, suppress=True),
            RosterSource.STORE: _FeedSlot(RosterSource.STORE, store, suppress=suppress_store_rebuilds),
        }
        self._roster: list[Entity] = []
        self._listeners: list[Callable[[list[Entity]], None]] = []
        self.rebuild_count = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_merged_roster(self) -> list[Entity]:
        """Start the feed subscriptions if needed and return the merged roster."""
        await self.ensure_started()
        return list(self._roster)

    def roster_snapshot(self) -> list[Entity]:
        """Return the cached roster without starting any feed."""
        return list(self._roster)

    def find_entity(self, entity_id: str) -> Entity | None:
        for entity in self._roster:
            if entity.id == entity_id:
                return entity
        return None

    def feed_state(self, source: RosterSource) -> FeedState:
        return self._slots[source].state

    def on_rebuild(self, callback: Callable[[list[Entity]], None]) -> Unsubscribe:
        """Register a listener called with the merged roster after each rebuild."""
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(callback)
            except ValueError:
                pass

        return _unsubscribe

    async def ensure_started(self) -> None:
        for slot in self._slots.values():
            await self._start_feed(slot)

        if not self._roster:
            await self._refetch_all()

    async def aclose(self) -> None:
        """Unsubscribe from every feed and forget cached state."""
        for slot in self._slots.values():
            unsubscribe = slot.unsubscribe
            slot.unsubscribe = None
            slot.state = FeedState.NOT_STARTED
            slot.signature = None
            slot.entities = []
            if unsubscribe is not None:
                try:
                    unsubscribe()
                except Exception:
                    _logger.debug("Unsubscribe from %s feed failed", slot.source, exc_info=True)
        self._roster = []
        self._listeners.clear()

    # ------------------------------------------------------------------
    # Feed lifecycle
    # ------------------------------------------------------------------

    async def _start_feed(self, slot: _FeedSlot) -> None:
        if slot.state is FeedState.STARTED:
            return
        if slot.state is FeedState.STARTING and slot.starting is not None:
            # Another caller is mid-start; wait for it instead of subscribing twice.
            await asyncio.shield(slot.starting)
            return

        slot.state = FeedState.STARTING
        starting: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        slot.starting = starting
        subscribed = False
        try:
            try:
                snapshot = await slot.feed.get()
                self._accept(slot, snapshot, force=True)
            except Exception:
                _logger.debug("Initial %s feed fetch failed; keeping cached roster", slot.source, exc_info=True)

            try:
                slot.unsubscribe = slot.feed.on_change(lambda snap, s=slot: self._on_feed_change(s, snap))
                subscribed = True
            except Exception:
                _logger.debug("Subscribing to %s feed failed", slot.source, exc_info=True)
        finally:
            slot.state = FeedState.STARTED if subscribed else FeedState.NOT_STARTED
            slot.starting = None
            if not starting.done():
                starting.set_result(None)

    async def _refetch_all(self) -> None:
        slots = [self._slots[source] for source in MERGE_ORDER]
        try:
            snapshots = await asyncio.gather(*(slot.feed.get() for slot in slots))
        except Exception:
            _logger.debug("Roster refetch failed; keeping cached roster", exc_info=True)
            return
        for slot, snapshot in zip(slots, snapshots, strict=True):
            slot.entities = _PARSERS[slot.source](snapshot)
            if slot.suppress:
                slot.signature = signature_map(slot.entities)
        self._rebuild(only_if_changed=True)

    def _on_feed_change(self, slot: _FeedSlot, snapshot: Any) -> None:
        try:
            self._accept(slot, snapshot, force=False)
        except Exception:
            _logger.debug("Failed to apply %s feed change", slot.source, exc_info=True)

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------

    def _accept(self, slot: _FeedSlot, snapshot: Any, *, force: bool) -> bool:
        entities = _PARSERS[slot.source](snapshot)
        if slot.suppress:
            signature = signature_map(entities)
            if not force and slot.signature is not None and signature == slot.signature:
                return False
            slot.signature = signature
        slot.entities = entities
        self._rebuild()
        return True

    def _rebuild(self, *, only_if_changed: bool = False) -> None:
        roster = merge_by_priority([self._slots[source].entities for source in MERGE_ORDER])
        if only_if_changed and [e.signature() for e in roster] == [e.signature() for e in self._roster]:
            self._roster = roster
            return
        self._roster = roster
        self.rebuild_count += 1
        for listener in list(self._listeners):
            try:
                listener(list(self._roster))
            except Exception:
                _logger.debug("Roster listener failed", exc_info=True)
