"""Deterministic roster merge policy.

This module contains *no* raw payload parsing. The ingestion layer is
responsible for producing canonical entities.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from enum import StrEnum

from petsync.models.entity import Entity


class RosterSource(StrEnum):
    STORE = "store"
    INVENTORY = "inventory"
    ACTIVE = "active"


def source_priority(source: RosterSource) -> int:
    """Higher wins when the same id appears in several feeds."""
    # The active roster reflects the most recent state of a pet.
    priorities: dict[RosterSource, int] = {
        RosterSource.ACTIVE: 30,
        RosterSource.INVENTORY: 20,
        RosterSource.STORE: 10,
    }
    return priorities.get(source, 0)


#: Sources ordered lowest priority first, the order :func:`merge_by_priority` expects.
MERGE_ORDER: tuple[RosterSource, ...] = tuple(sorted(RosterSource, key=source_priority))


def merge_by_priority(lists_low_to_high: Sequence[Iterable[Entity]]) -> list[Entity]:
    """Merge entity lists so later (higher priority) lists win on id clashes.

    The result keeps the position at which an id was first seen.
    """
    merged: dict[str, Entity] = {}
    for entities in lists_low_to_high:
        for entity in entities:
            merged[entity.id] = entity
    return list(merged.values())
