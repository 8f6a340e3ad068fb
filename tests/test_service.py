from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC
from typing import Any

import pytest

from petsync.config import PetSyncConfig
from petsync.exceptions import PetSyncError
from petsync.feeds import ValueFeed
from petsync.models.team import EquipResult
from petsync.service import PetTeamService
from petsync.storage import KeyValueStore


class _Picker:
    def __init__(self, select: int | None) -> None:
        self.select = select
        self.shown: list[tuple[list[dict[str, Any]], list[str]]] = []
        self.closed = False

    async def show(self, items: Sequence[dict[str, Any]], favorited_ids: Sequence[str]) -> None:
        self.shown.append((list(items), list(favorited_ids)))

    def is_open(self) -> bool:
        return not self.closed

    def selected_index(self) -> int | None:
        return self.select

    async def close(self) -> None:
        self.closed = True


def _service(game: Any, **kwargs: Any) -> PetTeamService:
    kwargs.setdefault("config", PetSyncConfig(picker_timeout=0.05, picker_poll_interval=0.01))
    return PetTeamService(feeds=game.feeds, actions=game, storage=KeyValueStore(), tz=UTC, **kwargs)


@pytest.mark.asyncio
async def test_use_team_and_cycle(make_game: Any) -> None:
    game = make_game(active=["A"], inventory=["B"])
    async with _service(game) as service:
        first = service.create_team("One")
        second = service.create_team("Two")
        service.save_team(first.id, slots=["A"])
        service.save_team(second.id, slots=["B"])

        assert await service.use_team(second.id) == EquipResult(swapped=1)
        assert game.active == ["B"]

        await service.use_next_team()
        assert game.active == ["A"]
        await service.use_previous_team()
        assert game.active == ["B"]


@pytest.mark.asyncio
async def test_use_team_requires_initialized_service() -> None:
    service = PetTeamService(storage=KeyValueStore())
    team = service.create_team()

    with pytest.raises(PetSyncError, match="not initialized"):
        await service.use_team(team.id)


@pytest.mark.asyncio
async def test_build_filtered_roster_uses_team_search_and_favorites(make_game: Any, make_pet: Any) -> None:
    game = make_game(
        inventory=["a", "b", "c"],
        pets={"a": make_pet("a", "Bee"), "b": make_pet("b", "Worm"), "c": make_pet("c", "Bee", name="Queen")},
        favorites=["c", "b"],
    )
    async with _service(game) as service:
        team = service.create_team()
        service.set_team_search(team.id, "sp:bee")

        filtered = await service.build_filtered_roster(team.id)
        assert [e.id for e in filtered.entities] == ["a", "c"]
        assert filtered.favorited_ids == ["c"]
        assert filtered.items[1]["name"] == "Queen"

        by_query = await service.build_filtered_roster(team.id, query="queen")
        assert [e.id for e in by_query.entities] == ["c"]

        excluded = await service.build_filtered_roster(exclude_ids=["a"])
        assert [e.id for e in excluded.entities] == ["b", "c"]


@pytest.mark.asyncio
async def test_choose_slot_pet_saves_selection(make_game: Any) -> None:
    game = make_game(active=["A"], inventory=["B", "C"], favorites=["C"])
    async with _service(game) as service:
        team = service.create_team()
        service.save_team(team.id, slots=["A", None, None])
        picker = _Picker(select=1)

        chosen = await service.choose_slot_pet(team.id, 5, picker)

        assert chosen is not None and chosen.id == "C"
        assert [item["id"] for item in picker.shown[0][0]] == ["B", "C"]
        assert picker.shown[0][1] == ["C"]
        assert picker.closed
        assert service.get_team(team.id).slots == ("A", None, "C")


@pytest.mark.asyncio
async def test_choose_slot_pet_timeout_leaves_team_unchanged(make_game: Any) -> None:
    game = make_game(inventory=["B"])
    async with _service(game) as service:
        team = service.create_team()
        picker = _Picker(select=None)

        assert await service.choose_slot_pet(team.id, 0, picker) is None
        assert picker.closed
        assert service.get_team(team.id).slots == (None, None, None)
        assert await service.choose_slot_pet("missing", 0, picker) is None


@pytest.mark.asyncio
async def test_ability_log_watcher(make_game: Any, make_pet: Any) -> None:
    game = make_game(active=["A"], pets={"A": make_pet("A", "Bunny")})
    async with _service(game) as service:
        assert await service.start_ability_log_watcher() is True
        seen: list[int] = []
        service.on_ability_logs(lambda logs: seen.append(len(logs)))

        triggers = game.feeds.ability_triggers
        assert isinstance(triggers, ValueFeed)
        triggers.publish(
            {"A": {"lastAbilityTrigger": {"abilityId": "CoinFinderI", "performedAt": 1_000, "data": {"coinsFound": 3}}}}
        )

        (entry,) = service.get_ability_logs()
        assert entry.species == "Bunny"
        assert entry.formatted_detail == "+ 3 coins"
        assert seen == [0, 1]
        assert service.ability_stats["CoinFinderI"].triggers == 1

        service.clear_ability_logs()
        assert service.get_ability_logs() == []

    assert triggers.listener_count == 0
    assert game.feeds.active.listener_count == 0


def test_ability_logs_session_start_comes_from_clock() -> None:
    service = PetTeamService(storage=KeyValueStore(), clock=lambda: 1_234)

    assert service.ability_logs_session_start == 1_234
