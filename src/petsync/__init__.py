"""petsync - Pet roster synchronization and team equip engine."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("petsync")
except PackageNotFoundError:
    __version__ = "0+local"
from petsync.abilities import AbilityDefinition, AbilityRegistry
from petsync.ability_log import AbilityEventIngester
from petsync.actions import HttpPetActions, Notifier, PetActions
from petsync.config import PetSyncConfig
from petsync.equip import TeamEquipEngine
from petsync.exceptions import (
    PetSyncActionError,
    PetSyncConfigError,
    PetSyncError,
    PetSyncStorageError,
    PetSyncTransportError,
    TeamNotFoundError,
)
from petsync.feeds import FeedAdapter, RosterFeeds, ValueFeed
from petsync.models import (
    AbilityEvent,
    AbilityLogEntry,
    AbilityStats,
    Entity,
    EquipResult,
    Team,
)
from petsync.picker import PetPicker
from petsync.service import FilteredRoster, PetTeamService
from petsync.state.synchronizer import InventorySynchronizer
from petsync.storage import KeyValueStore
from petsync.teams import TeamStore, filter_roster, parse_team_search

__all__ = [
    "__version__",
    "AbilityDefinition",
    "AbilityEvent",
    "AbilityEventIngester",
    "AbilityLogEntry",
    "AbilityRegistry",
    "AbilityStats",
    "Entity",
    "EquipResult",
    "FeedAdapter",
    "FilteredRoster",
    "HttpPetActions",
    "InventorySynchronizer",
    "KeyValueStore",
    "Notifier",
    "PetActions",
    "PetPicker",
    "PetSyncActionError",
    "PetSyncConfig",
    "PetSyncConfigError",
    "PetSyncError",
    "PetSyncStorageError",
    "PetSyncTransportError",
    "PetTeamService",
    "RosterFeeds",
    "Team",
    "TeamEquipEngine",
    "TeamNotFoundError",
    "TeamStore",
    "ValueFeed",
    "filter_roster",
    "parse_team_search",
]
