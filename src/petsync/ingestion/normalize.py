"""Normalization helpers.

Centralizes defensive parsing of raw feed records into canonical
:class:`~petsync.models.Entity` and :class:`~petsync.models.AbilityEvent`
objects.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from petsync.models.ability_log import AbilityEvent
from petsync.models.entity import Entity


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_int(value: Any) -> int | None:
    parsed = safe_float(value)
    if parsed is None:
        return None
    return int(parsed)


def safe_str(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    text = value.strip()
    return text if text else None


def str_tuple(value: Any) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(item for item in value if isinstance(item, str))


def _field(record: Mapping[str, Any], key: str) -> Any:
    """Read *key* from the record, falling back to its ``data`` envelope."""
    value = record.get(key)
    if value is not None:
        return value
    nested = record.get("data")
    if isinstance(nested, Mapping):
        return nested.get(key)
    return None


def _entity_from_record(record: Mapping[str, Any]) -> Entity | None:
    entity_id = safe_str(record.get("id"))
    if entity_id is None:
        return None
    try:
        return Entity(
            id=entity_id,
            species=safe_str(_field(record, "petSpecies")) or "",
            display_name=safe_str(_field(record, "name")),
            experience=safe_float(_field(record, "xp")) or 0.0,
            hunger_level=safe_float(_field(record, "hunger")) or 0.0,
            mutation_tags=str_tuple(_field(record, "mutations")),
            target_scale=safe_float(_field(record, "targetScale")),
            ability_ids=str_tuple(_field(record, "abilities")),
        )
    except ValidationError:
        return None


def entity_from_inventory_item(item: Any) -> Entity | None:
    """Normalize an inventory or store item; non-pet items yield ``None``."""
    if not isinstance(item, Mapping) or item.get("itemType") != "Pet":
        return None
    return _entity_from_record(item)


def entity_from_active_slot(entry: Any) -> Entity | None:
    """Normalize an active roster entry of the form ``{"slot": {...}}``."""
    if not isinstance(entry, Mapping):
        return None
    slot = entry.get("slot")
    if not isinstance(slot, Mapping):
        return None
    return _entity_from_record(slot)


def inventory_items(snapshot: Any) -> list[Any]:
    """Return the item list of an inventory snapshot (``{"items": [...]}`` or a list)."""
    if isinstance(snapshot, Mapping):
        items = snapshot.get("items")
        return list(items) if isinstance(items, list) else []
    if isinstance(snapshot, list):
        return list(snapshot)
    return []


def entities_from_inventory(snapshot: Any) -> list[Entity]:
    return [e for e in map(entity_from_inventory_item, inventory_items(snapshot)) if e is not None]


def entities_from_store(snapshot: Any) -> list[Entity]:
    items = snapshot if isinstance(snapshot, list) else []
    return [e for e in map(entity_from_inventory_item, items) if e is not None]


def entities_from_active(snapshot: Any) -> list[Entity]:
    entries = snapshot if isinstance(snapshot, list) else []
    return [e for e in map(entity_from_active_slot, entries) if e is not None]


def active_ids(snapshot: Any, limit: int) -> list[str]:
    """Ids of the active roster, in slot order, at most *limit*."""
    return [entity.id for entity in entities_from_active(snapshot)][:limit]


def store_ids(snapshot: Any) -> set[str]:
    """Ids of every item in a store snapshot, pets or not."""
    items = snapshot if isinstance(snapshot, list) else []
    ids: set[str] = set()
    for item in items:
        if isinstance(item, Mapping):
            item_id = safe_str(item.get("id"))
            if item_id is not None:
                ids.add(item_id)
    return ids


def signature_map(entities: list[Entity]) -> dict[str, str]:
    return {entity.id: entity.signature() for entity in entities}


# ---------------------------------------------------------------------------
# Ability trigger feed
# ---------------------------------------------------------------------------


def normalize_hunger_pct(value: Any) -> float | None:
    """Parse a hunger percentage; fractions in ``(0, 1]`` are scaled to percent."""
    pct = safe_float(value)
    if pct is None:
        return None
    if 0 < pct <= 1:
        pct *= 100
    return pct


def _hunger_from(source: Any) -> Any:
    if not isinstance(source, Mapping):
        return None
    for key in ("hungerPct", "hunger_percentage", "hunger"):
        value = source.get(key)
        if value is not None:
            return value
    slot = source.get("slot")
    if isinstance(slot, Mapping):
        for key in ("hungerPct", "hunger"):
            value = slot.get(key)
            if value is not None:
                return value
    stats = source.get("stats")
    if isinstance(stats, Mapping):
        value = stats.get("hungerPct")
        if value is not None:
            return value
        hunger = stats.get("hunger")
        if isinstance(hunger, Mapping):
            return hunger.get("pct") if hunger.get("pct") is not None else hunger.get("percent")
    return None


def index_infos_by_entity_id(snapshot: Any) -> dict[str, Any]:
    """Index a metadata snapshot (active roster shape) by entity id."""
    out: dict[str, Any] = {}
    entries = snapshot if isinstance(snapshot, list) else []
    for entry in entries:
        if not isinstance(entry, Mapping):
            continue
        slot = entry.get("slot")
        raw_id = slot.get("id") if isinstance(slot, Mapping) else entry.get("id")
        entity_id = safe_str(raw_id)
        if entity_id is not None:
            out[entity_id] = entry
    return out


def events_from_trigger_map(snapshot: Any, infos: Mapping[str, Any] | None = None) -> list[AbilityEvent]:
    """Flatten a raw trigger snapshot keyed by entity id into events.

    Entries without an ability id or a usable timestamp are dropped. Missing
    hunger percentages are backfilled from *infos*.
    """
    if not isinstance(snapshot, Mapping):
        return []
    events: list[AbilityEvent] = []
    for raw_id, entry in snapshot.items():
        entity_id = safe_str(raw_id)
        if entity_id is None or not isinstance(entry, Mapping):
            continue
        trigger = entry.get("lastAbilityTrigger")
        if not isinstance(trigger, Mapping):
            continue
        ability_id = safe_str(trigger.get("abilityId"))
        performed_at = safe_int(trigger.get("performedAt"))
        if ability_id is None or not performed_at:
            continue

        raw_hunger = _hunger_from(entry)
        if raw_hunger is None and infos:
            raw_hunger = _hunger_from(infos.get(entity_id))

        data = trigger.get("data")
        position = entry.get("position")
        events.append(
            AbilityEvent(
                entity_id=entity_id,
                ability_id=ability_id,
                performed_at=performed_at,
                payload=dict(data) if isinstance(data, Mapping) else {},
                derived_percentage=normalize_hunger_pct(raw_hunger),
                position=dict(position) if isinstance(position, Mapping) else None,
            )
        )
    return events
