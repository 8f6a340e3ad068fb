from __future__ import annotations

import pytest

from petsync.abilities import AbilityDefinition, AbilityRegistry
from petsync.models.entity import Entity
from petsync.teams import SearchMode, TeamSearch, filter_roster, parse_team_search


@pytest.fixture
def registry() -> AbilityRegistry:
    return AbilityRegistry.default(
        {
            "CoinFinderI": AbilityDefinition(name="Coin Finder I"),
            "CoinFinderIII": AbilityDefinition(name="Coin Finder III"),
            "RainDance": AbilityDefinition(name="Rain Dance"),
        }
    )


@pytest.fixture
def roster() -> list[Entity]:
    return [
        Entity(id="p1", species="Bee", display_name="Buzz", ability_ids=["CoinFinderI"]),
        Entity(id="p2", species="Bunny", ability_ids=["CoinFinderIII", "RainDance"]),
        Entity(id="p3", species="Worm", mutation_tags=["Rainbow"]),
    ]


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("ab: Coin Finder", TeamSearch(SearchMode.ABILITY, "Coin Finder")),
        ("SP:bee", TeamSearch(SearchMode.SPECIES, "bee")),
        ("  buzz ", TeamSearch(SearchMode.TEXT, "buzz")),
        ("", TeamSearch(SearchMode.TEXT, "")),
        (None, TeamSearch(SearchMode.TEXT, "")),
        ("abc: x", TeamSearch(SearchMode.TEXT, "abc: x")),
    ],
)
def test_parse_team_search(raw: str | None, expected: TeamSearch) -> None:
    assert parse_team_search(raw) == expected


def test_ability_search_ignores_level(registry: AbilityRegistry, roster: list[Entity]) -> None:
    assert [e.id for e in filter_roster(roster, "ab:Coin Finder", registry)] == ["p1", "p2"]
    assert [e.id for e in filter_roster(roster, "ab:coin finder ii", registry)] == ["p1", "p2"]
    assert [e.id for e in filter_roster(roster, "ab:Rain Dance", registry)] == ["p2"]
    assert filter_roster(roster, "ab:Coin", registry) == []


def test_species_search_is_exact_and_case_insensitive(registry: AbilityRegistry, roster: list[Entity]) -> None:
    assert [e.id for e in filter_roster(roster, "sp:BEE", registry)] == ["p1"]
    assert filter_roster(roster, "sp:Be", registry) == []


def test_text_search_matches_names_abilities_and_mutations(registry: AbilityRegistry, roster: list[Entity]) -> None:
    assert [e.id for e in filter_roster(roster, "buzz", registry)] == ["p1"]
    assert [e.id for e in filter_roster(roster, "rain", registry)] == ["p2", "p3"]
    assert [e.id for e in filter_roster(roster, "P3", registry)] == ["p3"]


def test_empty_search_keeps_everything(registry: AbilityRegistry, roster: list[Entity]) -> None:
    assert filter_roster(roster, "  ", registry) == roster
    assert filter_roster(roster, "sp:", registry) == roster
