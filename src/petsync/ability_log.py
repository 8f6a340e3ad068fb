"""Ability trigger log.

Incoming triggers are deduplicated against a per-entity watermark and a
global cutoff, formatted through the :class:`~petsync.abilities.AbilityRegistry`
and kept in a bounded, persisted log.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, tzinfo
from typing import Any

from pydantic import ValidationError

from petsync._constants import (
    HUNGER_EPSILON,
    LOG_CAPACITY,
    LOG_CUTOFF_SKEW_MS,
    LOG_PAYLOAD_VERSION,
    PATH_ABILITY_LOGS,
    PATH_ABILITY_STATS,
)
from petsync.abilities import AbilityRegistry
from petsync.exceptions import PetSyncStorageError
from petsync.feeds import FeedAdapter, Unsubscribe
from petsync.ingestion.normalize import events_from_trigger_map, index_infos_by_entity_id
from petsync.models.ability_log import AbilityEvent, AbilityLogEntry, AbilityLogPayload, AbilityStats
from petsync.state.synchronizer import InventorySynchronizer
from petsync.storage import KeyValueStore

_logger = logging.getLogger(__name__)

LogsListener = Callable[[list[AbilityLogEntry]], None]


def now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


def format_display_time(performed_at: int, tz: tzinfo | None = None) -> str:
    """Format an epoch-ms timestamp as ``h:mm AM``."""
    moment = datetime.fromtimestamp(performed_at / 1000, tz=tz)
    hour = moment.hour % 12 or 12
    suffix = "AM" if moment.hour < 12 else "PM"
    return f"{hour}:{moment.minute:02d} {suffix}"


class AbilityEventIngester:
    """Bounded, deduplicated, persisted ability log.

    Parameters
    ----------
    storage : KeyValueStore
        Holds the log payload and the per-ability stats.
    registry : AbilityRegistry, optional
        Ability names and detail formatters.
    synchronizer : InventorySynchronizer, optional
        Used only to annotate entries with species and name.
    capacity : int
        Maximum number of log entries.
    cutoff_skew_ms : int
        Tolerance below the cutoff within which events are still accepted.
    clock : callable
        Returns the current epoch time in milliseconds. Read once at
        construction for :attr:`session_started_at`.
    tz : tzinfo, optional
        Zone used for display times; local time when omitted.
    """

    def __init__(
        self,
        storage: KeyValueStore,
        *,
        registry: AbilityRegistry | None = None,
        synchronizer: InventorySynchronizer | None = None,
        capacity: int = LOG_CAPACITY,
        cutoff_skew_ms: int = LOG_CUTOFF_SKEW_MS,
        clock: Callable[[], int] = now_ms,
        tz: tzinfo | None = None,
    ) -> None:
        self._storage = storage
        self._registry = registry or AbilityRegistry.default()
        self._synchronizer = synchronizer
        self._capacity = max(1, capacity)
        self._clock = clock
        self._tz = tz
        self.cutoff_skew_ms = cutoff_skew_ms
        self.cutoff_ms = 0
        self.session_started_at = clock()

        self._logs: list[AbilityLogEntry] = []
        self._watermarks: dict[str, int] = {}
        self._listeners: list[LogsListener] = []
        self._stats: dict[str, AbilityStats] = {}
        self._infos: dict[str, Any] = {}
        self._unsubscribers: list[Unsubscribe] = []

        self.restore()
        self._stats = self._load_stats()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._logs)

    def watermark(self, entity_id: str) -> int:
        return self._watermarks.get(entity_id, 0)

    def get_ability_logs(
        self,
        ability_ids: Iterable[str] | None = None,
        since: int | None = None,
        limit: int | None = None,
    ) -> list[AbilityLogEntry]:
        """Return log entries newest first, optionally filtered."""
        wanted = set(ability_ids) if ability_ids else None
        entries = [
            entry
            for entry in self._logs
            if (not since or entry.performed_at >= since) and (wanted is None or entry.ability_id in wanted)
        ]
        entries.sort(key=lambda entry: entry.performed_at, reverse=True)
        if limit:
            return entries[: max(0, limit)]
        return entries

    def get_seen_ability_ids(self) -> list[str]:
        return sorted({entry.ability_id for entry in self._logs})

    @property
    def stats(self) -> dict[str, AbilityStats]:
        return dict(self._stats)

    def on_ability_logs(self, callback: LogsListener) -> Unsubscribe:
        """Subscribe to log changes; *callback* runs once immediately."""
        self._listeners.append(callback)
        try:
            callback(self.get_ability_logs())
        except Exception:
            _logger.debug("Ability log listener failed", exc_info=True)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(callback)
            except ValueError:
                pass

        return _unsubscribe

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest_event(self, event: AbilityEvent) -> AbilityLogEntry | None:
        """Process one event; returns the new entry or ``None`` when dropped."""
        if not event.ability_id or not event.performed_at:
            return None

        performed_at = event.performed_at
        if performed_at <= self._watermarks.get(event.entity_id, 0):
            return None
        self._watermarks[event.entity_id] = performed_at

        if self.cutoff_ms > 0 and performed_at < self.cutoff_ms - self.cutoff_skew_ms:
            _logger.debug("Dropping %s trigger of %s older than cutoff", event.ability_id, event.entity_id)
            return None

        hunger = event.derived_percentage
        if hunger is not None:
            if 0 < hunger <= 1:
                hunger *= 100
            if hunger <= HUNGER_EPSILON:
                _logger.debug("Dropping %s trigger of starving %s", event.ability_id, event.entity_id)
                return None

        entity = self._synchronizer.find_entity(event.entity_id) if self._synchronizer is not None else None
        entry = AbilityLogEntry(
            entity_id=event.entity_id,
            species=entity.species if entity is not None else None,
            name=entity.display_name if entity is not None else None,
            ability_id=event.ability_id,
            ability_name=self._registry.display_name(event.ability_id),
            formatted_detail=self._registry.format_detail(event.ability_id, event.payload),
            performed_at=performed_at,
            display_time=format_display_time(performed_at, self._tz),
        )
        self._record_stats(event)
        self._push(entry)
        return entry

    def ingest_map(self, raw_map: Any, infos: Mapping[str, Any] | None = None) -> list[AbilityLogEntry]:
        """Ingest a raw trigger snapshot keyed by entity id."""
        accepted: list[AbilityLogEntry] = []
        for event in events_from_trigger_map(raw_map, infos if infos is not None else self._infos):
            entry = self.ingest_event(event)
            if entry is not None:
                accepted.append(entry)
        return accepted

    def clear(self) -> None:
        """Empty the log and ignore events older than now (minus the skew)."""
        self._logs.clear()
        self._watermarks.clear()
        self.cutoff_ms = self._clock()
        self._notify()
        self.persist()

    def _push(self, entry: AbilityLogEntry) -> None:
        self._logs.append(entry)
        if len(self._logs) > self._capacity:
            del self._logs[: len(self._logs) - self._capacity]
        self._notify()
        self.persist()

    def _notify(self) -> None:
        snapshot = self.get_ability_logs()
        for listener in list(self._listeners):
            try:
                listener(list(snapshot))
            except Exception:
                _logger.debug("Ability log listener failed", exc_info=True)

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def _load_stats(self) -> dict[str, AbilityStats]:
        raw = self._storage.read(PATH_ABILITY_STATS, {})
        if not isinstance(raw, dict):
            return {}
        stats: dict[str, AbilityStats] = {}
        for ability_id, value in raw.items():
            if not isinstance(value, dict):
                continue
            try:
                stats[str(ability_id)] = AbilityStats.model_validate(value)
            except ValidationError:
                _logger.debug("Dropping malformed stats for %s", ability_id, exc_info=True)
        return stats

    def _record_stats(self, event: AbilityEvent) -> None:
        current = self._stats.get(event.ability_id, AbilityStats())
        value = self._registry.extract_value(event.ability_id, event.payload)
        self._stats[event.ability_id] = AbilityStats(
            triggers=current.triggers + 1,
            total_value=current.total_value + value if value > 0 else current.total_value,
        )
        try:
            self._storage.write(
                PATH_ABILITY_STATS,
                {ability_id: stats.model_dump(by_alias=True) for ability_id, stats in self._stats.items()},
            )
        except PetSyncStorageError:
            _logger.warning("Failed to persist ability stats", exc_info=True)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def persist(self) -> None:
        payload = AbilityLogPayload(
            version=LOG_PAYLOAD_VERSION,
            cutoff=self.cutoff_ms,
            logs=[entry.model_dump(by_alias=True) for entry in self._logs],
        )
        try:
            self._storage.write(PATH_ABILITY_LOGS, payload.model_dump())
        except PetSyncStorageError:
            _logger.warning("Failed to persist ability log", exc_info=True)

    def restore(self) -> None:
        """Load the persisted log; malformed payloads leave the defaults."""
        raw = self._storage.read(PATH_ABILITY_LOGS)
        if raw is None:
            return
        try:
            payload = AbilityLogPayload.model_validate(raw)
        except ValidationError:
            _logger.warning("Persisted ability log is malformed; starting empty")
            return

        restored: list[AbilityLogEntry] = []
        for item in payload.logs:
            entry = self._entry_from_persisted(item)
            if entry is not None:
                restored.append(entry)

        restored.sort(key=lambda entry: entry.performed_at)
        self._logs = restored[-self._capacity :]
        self._watermarks = {}
        for entry in self._logs:
            if entry.performed_at > self._watermarks.get(entry.entity_id, 0):
                self._watermarks[entry.entity_id] = entry.performed_at
        if payload.cutoff > 0:
            self.cutoff_ms = payload.cutoff
        _logger.debug("Restored %d ability log entries (cutoff=%d)", len(self._logs), self.cutoff_ms)

    def _entry_from_persisted(self, item: Any) -> AbilityLogEntry | None:
        if not isinstance(item, dict):
            return None
        ability_id = item.get("abilityId")
        try:
            performed_at = int(item.get("performedAt") or 0)
        except (TypeError, ValueError):
            return None
        if not isinstance(ability_id, str) or not ability_id or not performed_at:
            return None
        data = dict(item)
        data["performedAt"] = performed_at
        if not isinstance(data.get("abilityName"), str) or not data["abilityName"].strip():
            data["abilityName"] = ability_id
        if not isinstance(data.get("displayTime") or data.get("time12"), str):
            data["displayTime"] = format_display_time(performed_at, self._tz)
        detail = data.get("formattedDetail", data.get("data"))
        if detail is not None and not isinstance(detail, str):
            data.pop("data", None)
            data["formattedDetail"] = str(detail)
        try:
            return AbilityLogEntry.model_validate(data)
        except ValidationError:
            _logger.debug("Dropping malformed persisted log entry %r", item, exc_info=True)
            return None

    # ------------------------------------------------------------------
    # Feed lifecycle
    # ------------------------------------------------------------------

    async def start(self, trigger_feed: FeedAdapter, metadata_feed: FeedAdapter | None = None) -> None:
        """Ingest from *trigger_feed*, backfilling hunger from *metadata_feed*."""
        self.stop()
        if metadata_feed is not None:
            try:
                self._infos = index_infos_by_entity_id(await metadata_feed.get())
            except Exception:
                _logger.debug("Initial metadata fetch failed", exc_info=True)
            try:
                self._unsubscribers.append(metadata_feed.on_change(self._on_metadata))
            except Exception:
                _logger.debug("Subscribing to metadata feed failed", exc_info=True)

        try:
            self.ingest_map(await trigger_feed.get())
        except Exception:
            _logger.debug("Initial ability trigger fetch failed", exc_info=True)
        try:
            self._unsubscribers.append(trigger_feed.on_change(self._on_triggers))
        except Exception:
            _logger.debug("Subscribing to ability trigger feed failed", exc_info=True)

    def stop(self) -> None:
        unsubscribers = self._unsubscribers
        self._unsubscribers = []
        for unsubscribe in unsubscribers:
            try:
                unsubscribe()
            except Exception:
                _logger.debug("Unsubscribe failed", exc_info=True)

    @property
    def is_watching(self) -> bool:
        return bool(self._unsubscribers)

    def _on_metadata(self, snapshot: Any) -> None:
        self._infos = index_infos_by_entity_id(snapshot)

    def _on_triggers(self, snapshot: Any) -> None:
        try:
            self.ingest_map(snapshot)
        except Exception:
            _logger.debug("Failed to ingest ability triggers", exc_info=True)
