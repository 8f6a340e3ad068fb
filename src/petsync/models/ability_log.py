"""Ability event and ability log models."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from petsync._constants import LOG_PAYLOAD_VERSION
from petsync.models._base import PetSyncBaseModel


class AbilityEvent(PetSyncBaseModel):
    """One normalized ability trigger read from the raw feed."""

    entity_id: str
    ability_id: str
    performed_at: int
    payload: dict[str, Any] = Field(default_factory=dict)
    derived_percentage: float | None = None
    """Hunger percentage of the entity when the event was read, if known."""
    position: dict[str, Any] | None = None


class AbilityLogEntry(PetSyncBaseModel):
    """A formatted, accepted ability trigger."""

    entity_id: str = Field(default="", validation_alias=AliasChoices("entityId", "entity_id", "petId"))
    species: str | None = None
    name: str | None = None
    ability_id: str = Field(validation_alias=AliasChoices("abilityId", "ability_id"))
    ability_name: str = Field(validation_alias=AliasChoices("abilityName", "ability_name"))
    formatted_detail: str = Field(
        default="",
        validation_alias=AliasChoices("formattedDetail", "formatted_detail", "data"),
    )
    performed_at: int = Field(validation_alias=AliasChoices("performedAt", "performed_at"))
    display_time: str = Field(
        default="",
        validation_alias=AliasChoices("displayTime", "display_time", "time12"),
    )


class AbilityLogPayload(BaseModel):
    """Persisted ability log document."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    version: int = LOG_PAYLOAD_VERSION
    cutoff: int = Field(default=0, validation_alias=AliasChoices("cutoff", "cutoffTimestamp"))
    logs: list[Any] = Field(default_factory=list, validation_alias=AliasChoices("logs", "entries"))


class AbilityStats(BaseModel):
    """Running per-ability counters."""

    model_config = ConfigDict(populate_by_name=True)

    triggers: int = 0
    total_value: float = Field(default=0.0, alias="totalValue")
