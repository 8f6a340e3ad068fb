"""Per-session pet team service."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import tzinfo
from typing import Any

import aiohttp

from petsync._constants import TEAM_SLOT_COUNT
from petsync._mqtt import FeedMessage, FeedMqttRuntime
from petsync._transport import BridgeTransport
from petsync.abilities import AbilityRegistry
from petsync.ability_log import AbilityEventIngester, LogsListener, now_ms
from petsync.actions import HttpPetActions, Notifier, PetActions, log_notifier
from petsync.config import PetSyncConfig
from petsync.equip import TeamEquipEngine
from petsync.exceptions import PetSyncError
from petsync.feeds import RosterFeeds, Unsubscribe, ValueFeed
from petsync.models.ability_log import AbilityLogEntry, AbilityStats
from petsync.models.entity import Entity
from petsync.models.team import EquipResult, Team
from petsync.picker import PetPicker, wait_for_selection
from petsync.state.synchronizer import InventorySynchronizer
from petsync.storage import KeyValueStore
from petsync.teams import SearchMode, TeamSearch, TeamsListener, TeamStore, filter_roster, parse_team_search

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilteredRoster:
    """Entities matching a search, with the favorited subset of their ids."""

    entities: list[Entity]
    favorited_ids: list[str] = field(default_factory=list)

    @property
    def items(self) -> list[dict[str, Any]]:
        """Entities rendered as raw inventory items."""
        return [entity.to_raw_item() for entity in self.entities]


class PetTeamService:
    """Own the roster synchronizer, team store, equip engine and ability log.

    Usage::

        async with PetTeamService(config) as service:
            team = service.create_team("Farm")
            await service.use_team(team.id)
    """

    def __init__(
        self,
        config: PetSyncConfig | None = None,
        *,
        feeds: RosterFeeds | None = None,
        actions: PetActions | None = None,
        storage: KeyValueStore | None = None,
        registry: AbilityRegistry | None = None,
        notifier: Notifier = log_notifier,
        session: aiohttp.ClientSession | None = None,
        clock: Callable[[], int] = now_ms,
        tz: tzinfo | None = None,
    ) -> None:
        self._config = config or PetSyncConfig()
        self._external_session = session is not None
        self._http_session = session
        self._mqtt_runtime: FeedMqttRuntime | None = None
        self._notifier = notifier

        self.feeds = feeds or RosterFeeds.in_memory()
        self.storage = storage or KeyValueStore(self._config.storage_path)
        self.registry = registry or AbilityRegistry.default()
        self.synchronizer = InventorySynchronizer(
            active=self.feeds.active,
            inventory=self.feeds.inventory,
            store=self.feeds.store,
            suppress_store_rebuilds=self._config.suppress_store_rebuilds,
        )
        self.teams = TeamStore(self.storage)
        self.ability_log = AbilityEventIngester(
            self.storage,
            registry=self.registry,
            synchronizer=self.synchronizer,
            capacity=self._config.log_capacity,
            cutoff_skew_ms=self._config.log_cutoff_skew_ms,
            clock=clock,
            tz=tz,
        )
        self._actions = actions
        self._engine: TeamEquipEngine | None = self._build_engine(actions) if actions is not None else None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> PetTeamService:
        if self._actions is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            transport = BridgeTransport(
                self._config.bridge_url,
                self._http_session,
                timeout=self._config.request_timeout,
            )
            self._actions = HttpPetActions(transport)
            self._engine = self._build_engine(self._actions)
        self._start_mqtt()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stop every watcher and release owned resources."""
        self._stop_mqtt()
        self.ability_log.stop()
        await self.synchronizer.aclose()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    def _build_engine(self, actions: PetActions) -> TeamEquipEngine:
        return TeamEquipEngine(
            teams=self.teams,
            synchronizer=self.synchronizer,
            feeds=self.feeds,
            actions=actions,
            notifier=self._notifier,
            config=self._config,
        )

    def _require_engine(self) -> TeamEquipEngine:
        if self._engine is None:
            raise PetSyncError("Service not initialized. Use 'async with PetTeamService(...) as service:'")
        return self._engine

    # ------------------------------------------------------------------
    # MQTT
    # ------------------------------------------------------------------

    def _start_mqtt(self) -> None:
        """Best-effort MQTT startup (failures must not break the HTTP flow)."""
        if not self._config.mqtt_enabled:
            return
        if self._mqtt_runtime is not None and self._mqtt_runtime.is_running:
            return
        try:
            runtime = FeedMqttRuntime(
                loop=asyncio.get_running_loop(),
                topic_prefix=self._config.mqtt_topic_prefix,
                on_message=self._on_mqtt_message,
                keepalive=self._config.mqtt_keepalive,
                logger=_logger,
            )
            runtime.start(self._config.mqtt_host, self._config.mqtt_port)
            self._mqtt_runtime = runtime
        except Exception:
            _logger.debug("MQTT startup failed", exc_info=True)

    def _stop_mqtt(self) -> None:
        runtime = self._mqtt_runtime
        self._mqtt_runtime = None
        if runtime is not None:
            runtime.stop()

    def _on_mqtt_message(self, message: FeedMessage) -> None:
        """Publish a snapshot into its feed (called on the loop via call_soon_threadsafe)."""
        feed = getattr(self.feeds, message.feed, None)
        if not isinstance(feed, ValueFeed):
            _logger.debug("No publishable feed for MQTT topic %s", message.topic)
            return
        feed.publish(message.payload)

    # ------------------------------------------------------------------
    # Roster
    # ------------------------------------------------------------------

    async def get_merged_roster(self) -> list[Entity]:
        return await self.synchronizer.get_merged_roster()

    async def build_filtered_roster(
        self,
        team_id: str | None = None,
        *,
        query: str | None = None,
        exclude_ids: Iterable[str] = (),
    ) -> FilteredRoster:
        """Filter the merged roster by *query* or by the team's saved search.

        *query* is always a free-text match; the ``ab:``/``sp:`` prefixes only
        apply to saved team searches.
        """
        search: TeamSearch
        if query is not None and query.strip():
            search = TeamSearch(SearchMode.TEXT, query.strip())
        elif team_id is not None:
            search = parse_team_search(self.teams.get_team_search(team_id))
        else:
            search = TeamSearch(SearchMode.TEXT, "")

        roster = await self.synchronizer.get_merged_roster()
        excluded = set(exclude_ids)
        entities = [e for e in filter_roster(roster, search, self.registry) if e.id not in excluded]

        favorited: list[str] = []
        if self._actions is not None:
            try:
                kept = {entity.id for entity in entities}
                favorited = [fid for fid in await self._actions.get_favorite_ids() if fid in kept]
            except Exception:
                _logger.debug("Fetching favorite ids failed", exc_info=True)
        return FilteredRoster(entities=entities, favorited_ids=favorited)

    async def choose_slot_pet(
        self,
        team_id: str,
        slot_index: int,
        picker: PetPicker,
        search_override: str | None = None,
    ) -> Entity | None:
        """Let the user pick an entity for one team slot and save it.

        Returns ``None`` when the team is unknown, nothing matches or no
        selection was made in time.
        """
        index = max(0, min(TEAM_SLOT_COUNT - 1, int(slot_index)))
        team = self.teams.get_team(team_id)
        if team is None:
            return None

        exclude = {slot for i, slot in enumerate(team.slots) if i != index and slot}
        filtered = await self.build_filtered_roster(team_id, query=search_override, exclude_ids=exclude)
        if not filtered.entities:
            return None

        await picker.show(filtered.items, filtered.favorited_ids)
        try:
            selected = await wait_for_selection(
                picker,
                len(filtered.entities),
                timeout=self._config.picker_timeout,
                poll_interval=self._config.picker_poll_interval,
            )
        finally:
            try:
                await picker.close()
            except Exception:
                _logger.debug("Closing picker failed", exc_info=True)

        if selected is None:
            return None
        chosen = filtered.entities[selected]
        slots = list(team.slots)
        slots[index] = chosen.id
        self.teams.save_team(team.id, slots=slots)
        return chosen

    # ------------------------------------------------------------------
    # Teams
    # ------------------------------------------------------------------

    def get_teams(self) -> list[Team]:
        return self.teams.get_teams()

    def get_team(self, team_id: str) -> Team | None:
        return self.teams.get_team(team_id)

    def create_team(self, name: str | None = None) -> Team:
        return self.teams.create_team(name)

    def delete_team(self, team_id: str) -> bool:
        return self.teams.delete_team(team_id)

    def save_team(
        self,
        team_id: str,
        *,
        name: str | None = None,
        slots: Sequence[str | None] | None = None,
    ) -> Team | None:
        return self.teams.save_team(team_id, name=name, slots=slots)

    def set_teams_order(self, team_ids: Sequence[str]) -> None:
        self.teams.set_teams_order(team_ids)

    def get_team_search(self, team_id: str) -> str:
        return self.teams.get_team_search(team_id)

    def set_team_search(self, team_id: str, raw: str | None) -> None:
        self.teams.set_team_search(team_id, raw)

    def on_teams_change(self, callback: TeamsListener) -> Unsubscribe:
        return self.teams.on_teams_change(callback)

    async def use_team(self, team_id: str) -> EquipResult:
        return await self._require_engine().use_team(team_id)

    async def use_next_team(self) -> EquipResult | None:
        return await self._require_engine().use_adjacent_team(1)

    async def use_previous_team(self) -> EquipResult | None:
        return await self._require_engine().use_adjacent_team(-1)

    # ------------------------------------------------------------------
    # Ability log
    # ------------------------------------------------------------------

    async def start_ability_log_watcher(self) -> bool:
        """Start ingesting ability triggers; ``False`` when no trigger feed exists."""
        trigger_feed = self.feeds.ability_triggers
        if trigger_feed is None:
            _logger.debug("No ability trigger feed configured")
            return False
        await self.synchronizer.ensure_started()
        await self.ability_log.start(trigger_feed, self.feeds.metadata)
        return True

    def stop_ability_log_watcher(self) -> None:
        self.ability_log.stop()

    def get_ability_logs(
        self,
        ability_ids: Iterable[str] | None = None,
        since: int | None = None,
        limit: int | None = None,
    ) -> list[AbilityLogEntry]:
        return self.ability_log.get_ability_logs(ability_ids, since=since, limit=limit)

    def on_ability_logs(self, callback: LogsListener) -> Unsubscribe:
        return self.ability_log.on_ability_logs(callback)

    def clear_ability_logs(self) -> None:
        self.ability_log.clear()

    @property
    def ability_stats(self) -> dict[str, AbilityStats]:
        return self.ability_log.stats

    @property
    def ability_logs_session_start(self) -> int:
        """Epoch ms at which this session started collecting ability triggers."""
        return self.ability_log.session_started_at
