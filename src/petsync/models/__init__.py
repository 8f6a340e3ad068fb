"""Data models for petsync."""

from petsync.models._base import PetSyncBaseModel
from petsync.models.ability_log import AbilityEvent, AbilityLogEntry, AbilityLogPayload, AbilityStats
from petsync.models.entity import Entity
from petsync.models.team import EquipResult, Team, normalize_slots

__all__ = [
    "AbilityEvent",
    "AbilityLogEntry",
    "AbilityLogPayload",
    "AbilityStats",
    "Entity",
    "EquipResult",
    "PetSyncBaseModel",
    "Team",
    "normalize_slots",
]
