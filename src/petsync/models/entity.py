"""Canonical pet entity."""

from __future__ import annotations

import json

from pydantic import Field

from petsync.models._base import PetSyncBaseModel


class Entity(PetSyncBaseModel):
    """A pet as seen by the merged roster.

    Entities are projections of the active, inventory and store feeds;
    they are rebuilt on every accepted feed change.
    """

    id: str
    species: str = ""
    display_name: str | None = None
    experience: float = 0.0
    hunger_level: float = 0.0
    mutation_tags: tuple[str, ...] = Field(default_factory=tuple)
    target_scale: float | None = None
    ability_ids: tuple[str, ...] = Field(default_factory=tuple)

    def signature(self) -> str:
        """Stable fingerprint excluding experience and hunger."""
        return json.dumps(
            {
                "id": self.id,
                "species": self.species,
                "displayName": self.display_name,
                "mutationTags": list(self.mutation_tags),
                "targetScale": self.target_scale,
                "abilityIds": list(self.ability_ids),
            },
            separators=(",", ":"),
        )

    def to_raw_item(self) -> dict[str, object]:
        """Render as an inventory item, the shape external pickers expect."""
        return {
            "id": self.id,
            "itemType": "Pet",
            "petSpecies": self.species,
            "name": self.display_name,
            "xp": self.experience,
            "hunger": self.hunger_level,
            "mutations": list(self.mutation_tags),
            "targetScale": self.target_scale,
            "abilities": list(self.ability_ids),
        }
