"""Entity feed adapters.

Every external source (active roster, inventory, store, store count, ability
triggers) is consumed through the same two-call contract: ``get()`` returns the
current raw snapshot and ``on_change(cb)`` registers a listener and returns an
unsubscribe callable.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

_logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]


class FeedAdapter(Protocol):
    """Structural feed interface.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (:class:`ValueFeed`) concrete.
    """

    async def get(self) -> Any: ...

    def on_change(self, callback: Callable[[Any], None]) -> Unsubscribe: ...


class ValueFeed:
    """In-process feed holding the latest published snapshot.

    Snapshots are deep-copied on publish so later mutation by the producer
    cannot leak into consumers.
    """

    def __init__(self, value: Any = None, *, name: str = "") -> None:
        self.name = name
        self._value = copy.deepcopy(value)
        self._listeners: list[Callable[[Any], None]] = []

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    async def get(self) -> Any:
        return copy.deepcopy(self._value)

    def on_change(self, callback: Callable[[Any], None]) -> Unsubscribe:
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(callback)
            except ValueError:
                pass

        return _unsubscribe

    def publish(self, value: Any) -> None:
        """Replace the snapshot and notify every listener."""
        self._value = copy.deepcopy(value)
        for listener in list(self._listeners):
            try:
                listener(copy.deepcopy(self._value))
            except Exception:
                _logger.debug("Feed %s listener failed", self.name or "<unnamed>", exc_info=True)


@dataclass(slots=True)
class RosterFeeds:
    """The set of feeds one service session consumes."""

    active: FeedAdapter
    inventory: FeedAdapter
    store: FeedAdapter
    store_count: FeedAdapter
    ability_triggers: FeedAdapter | None = None
    entity_metadata: FeedAdapter | None = None

    @property
    def metadata(self) -> FeedAdapter:
        """Metadata feed used to backfill hunger; defaults to the active feed."""
        return self.entity_metadata if self.entity_metadata is not None else self.active

    @classmethod
    def in_memory(cls) -> RosterFeeds:
        return cls(
            active=ValueFeed([], name="active"),
            inventory=ValueFeed({"items": []}, name="inventory"),
            store=ValueFeed([], name="store"),
            store_count=ValueFeed(0, name="store_count"),
            ability_triggers=ValueFeed({}, name="ability_triggers"),
        )
