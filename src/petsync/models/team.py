"""Team and equip result models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from petsync._constants import TEAM_SLOT_COUNT
from petsync.models._base import PetSyncBaseModel


def normalize_slots(value: Any) -> tuple[str | None, ...]:
    """Truncate or pad *value* to exactly three slots.

    Empty strings and non-string entries become empty slots.
    """
    items = list(value) if isinstance(value, (list, tuple)) else []
    slots: list[str | None] = []
    for item in items[:TEAM_SLOT_COUNT]:
        if item is None:
            slots.append(None)
            continue
        text = str(item).strip()
        slots.append(text or None)
    while len(slots) < TEAM_SLOT_COUNT:
        slots.append(None)
    return tuple(slots)


class Team(PetSyncBaseModel):
    """A named set of up to three pet ids."""

    id: str
    name: str = "Team"
    slots: tuple[str | None, ...] = Field(default=(None, None, None))

    @field_validator("slots", mode="before")
    @classmethod
    def _fixed_slots(cls, value: Any) -> tuple[str | None, ...]:
        return normalize_slots(value)

    def target_ids(self) -> list[str]:
        """Non-empty slot ids, deduplicated, in slot order."""
        seen: list[str] = []
        for slot in self.slots:
            if slot and slot not in seen:
                seen.append(slot)
        return seen


class EquipResult(BaseModel):
    """Counters reported by one equip run."""

    model_config = ConfigDict(frozen=True)

    swapped: int = 0
    placed: int = 0
    skipped: int = 0
    aborted: bool = False
