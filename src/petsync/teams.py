"""Persisted teams, per-team search strings and team navigation."""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Literal

from pydantic import ValidationError

from petsync._constants import PATH_LAST_USED_TEAM, PATH_TEAM_SEARCH, PATH_TEAMS
from petsync.abilities import AbilityRegistry, strip_level
from petsync.exceptions import PetSyncStorageError
from petsync.feeds import Unsubscribe
from petsync.models.entity import Entity
from petsync.models.team import Team, normalize_slots
from petsync.storage import KeyValueStore

_logger = logging.getLogger(__name__)

_SEARCH_PREFIX_RE = re.compile(r"^(ab|sp):\s*(.*)$", re.IGNORECASE)

TeamsListener = Callable[[list[Team]], None]


# ---------------------------------------------------------------------------
# Search mini-language
# ---------------------------------------------------------------------------


class SearchMode(StrEnum):
    ABILITY = "ability"
    SPECIES = "species"
    TEXT = "text"


@dataclass(frozen=True)
class TeamSearch:
    mode: SearchMode
    value: str


def parse_team_search(raw: str | None) -> TeamSearch:
    """Parse ``ab:<name>``, ``sp:<species>`` or a free-text query."""
    text = (raw or "").strip()
    match = _SEARCH_PREFIX_RE.match(text)
    if match is None:
        return TeamSearch(SearchMode.TEXT, text)
    mode = SearchMode.ABILITY if match.group(1).lower() == "ab" else SearchMode.SPECIES
    return TeamSearch(mode, match.group(2).strip())


def _matches_text(entity: Entity, query: str, registry: AbilityRegistry) -> bool:
    if query in entity.id.lower() or query in entity.species.lower():
        return True
    if entity.display_name and query in entity.display_name.lower():
        return True
    for ability_id in entity.ability_ids:
        if query in ability_id.lower() or query in registry.display_name(ability_id).lower():
            return True
    return any(query in tag.lower() for tag in entity.mutation_tags)


def filter_roster(
    entities: Iterable[Entity],
    search: TeamSearch | str | None,
    registry: AbilityRegistry,
) -> list[Entity]:
    """Apply a team search to *entities*, keeping their order."""
    parsed = search if isinstance(search, TeamSearch) else parse_team_search(search)
    items = list(entities)
    if not parsed.value:
        return items

    if parsed.mode is SearchMode.ABILITY:
        target = strip_level(parsed.value)
        if not target:
            return []
        return [
            entity
            for entity in items
            if any(registry.name_without_level(a).lower() == target for a in entity.ability_ids)
        ]

    if parsed.mode is SearchMode.SPECIES:
        species = parsed.value.lower()
        return [entity for entity in items if entity.species.lower() == species]

    query = parsed.value.lower()
    return [entity for entity in items if _matches_text(entity, query, registry)]


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class TeamStore:
    """Durable, observable team collection.

    Every mutation is written through to *storage* before listeners are
    notified with the full team list.
    """

    def __init__(self, storage: KeyValueStore) -> None:
        self._storage = storage
        self._teams: list[Team] = self._load_teams()
        self._search: dict[str, str] = self._load_search()
        last_used = storage.read(PATH_LAST_USED_TEAM)
        self._last_used: str | None = last_used if isinstance(last_used, str) and last_used else None
        self._listeners: list[TeamsListener] = []

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load_teams(self) -> list[Team]:
        raw = self._storage.read(PATH_TEAMS, [])
        if not isinstance(raw, list):
            _logger.warning("Persisted teams are malformed; starting with no teams")
            return []
        teams: list[Team] = []
        for entry in raw:
            if not isinstance(entry, dict):
                continue
            try:
                teams.append(Team.model_validate(entry))
            except ValidationError:
                _logger.debug("Dropping malformed persisted team %r", entry, exc_info=True)
        return teams

    def _load_search(self) -> dict[str, str]:
        raw = self._storage.read(PATH_TEAM_SEARCH, {})
        if not isinstance(raw, dict):
            return {}
        return {str(k): v for k, v in raw.items() if isinstance(v, str)}

    def _write(self, path: str, value: Any) -> None:
        # In-memory state stays authoritative for the session when the disk write fails.
        try:
            self._storage.write(path, value)
        except PetSyncStorageError:
            _logger.warning("Failed to persist %s", path, exc_info=True)

    def _save_teams(self) -> None:
        self._write(PATH_TEAMS, [team.model_dump(mode="json") for team in self._teams])

    def _save_search(self) -> None:
        self._write(PATH_TEAM_SEARCH, self._search)

    def _commit(self) -> None:
        self._save_teams()
        self._notify()

    def _notify(self) -> None:
        snapshot = self.get_teams()
        for listener in list(self._listeners):
            try:
                listener(list(snapshot))
            except Exception:
                _logger.debug("Teams listener failed", exc_info=True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_teams(self) -> list[Team]:
        return list(self._teams)

    def get_team(self, team_id: str) -> Team | None:
        for team in self._teams:
            if team.id == team_id:
                return team
        return None

    def on_teams_change(self, callback: TeamsListener) -> Unsubscribe:
        """Subscribe to team list changes; *callback* runs once immediately."""
        self._listeners.append(callback)
        try:
            callback(self.get_teams())
        except Exception:
            _logger.debug("Teams listener failed", exc_info=True)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(callback)
            except ValueError:
                pass

        return _unsubscribe

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_team(self, name: str | None = None) -> Team:
        label = (name or "").strip() or f"Team {len(self._teams) + 1}"
        team = Team(id=uuid.uuid4().hex, name=label, slots=(None, None, None))
        self._teams.append(team)
        self._commit()
        return team

    def delete_team(self, team_id: str) -> bool:
        team = self.get_team(team_id)
        if team is None:
            return False
        self._teams.remove(team)
        if self._search.pop(team_id, None) is not None:
            self._save_search()
        self._commit()
        return True

    def save_team(
        self,
        team_id: str,
        *,
        name: str | None = None,
        slots: Sequence[str | None] | None = None,
    ) -> Team | None:
        """Partially update a team; ``None`` arguments keep the current value."""
        for index, current in enumerate(self._teams):
            if current.id != team_id:
                continue
            updates: dict[str, Any] = {}
            if name is not None:
                updates["name"] = name
            if slots is not None:
                updates["slots"] = normalize_slots(slots)
            updated = current.model_copy(update=updates)
            self._teams[index] = updated
            self._commit()
            return updated
        return None

    def set_teams_order(self, team_ids: Sequence[str]) -> None:
        """Reorder teams; teams not listed keep their relative order at the end."""
        by_id = {team.id: team for team in self._teams}
        ordered: list[Team] = []
        for team_id in team_ids:
            team = by_id.pop(team_id, None)
            if team is not None:
                ordered.append(team)
        ordered.extend(by_id.values())
        self._teams = ordered
        self._commit()

    def get_team_search(self, team_id: str) -> str:
        return self._search.get(team_id, "")

    def set_team_search(self, team_id: str, raw: str | None) -> None:
        self._search[team_id] = (raw or "").strip()
        self._save_search()

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    @property
    def last_used_team_id(self) -> str | None:
        return self._last_used

    def mark_team_as_used(self, team_id: str | None) -> None:
        self._last_used = team_id or None
        self._write(PATH_LAST_USED_TEAM, self._last_used)

    def adjacent_team(self, direction: Literal[1, -1]) -> Team | None:
        """Team after (``1``) or before (``-1``) the last used one, wrapping."""
        if not self._teams:
            return None
        ids = [team.id for team in self._teams]
        if self._last_used is None or self._last_used not in ids:
            return self._teams[0] if direction == 1 else self._teams[-1]
        index = (ids.index(self._last_used) + direction) % len(ids)
        return self._teams[index]
