"""Internal constants shared across the library."""

DEFAULT_BRIDGE_URL = "http://127.0.0.1:8765"
USER_AGENT = "petsync/0.1"

# ------------------------------------------------------------------
# Roster capacities
# ------------------------------------------------------------------

ACTIVE_CAPACITY = 3
STORE_CAPACITY = 25
STORE_NAME = "PetHutch"
TEAM_SLOT_COUNT = 3

DEFAULT_PLACE_SURFACE = "Boardwalk"
DEFAULT_PLACE_LAYER = 64

# ------------------------------------------------------------------
# Ability log
# ------------------------------------------------------------------

LOG_CAPACITY = 500
LOG_CUTOFF_SKEW_MS = 1500
LOG_PAYLOAD_VERSION = 1
# Hunger percentages at or below this are treated as zero.
HUNGER_EPSILON = 1e-6

# ------------------------------------------------------------------
# External picker
# ------------------------------------------------------------------

PICKER_TIMEOUT = 20.0
PICKER_POLL_INTERVAL = 0.08

# ------------------------------------------------------------------
# Persisted key-value paths
# ------------------------------------------------------------------

PATH_TEAMS = "pets.teams"
PATH_TEAM_SEARCH = "pets.teamSearch"
PATH_LAST_USED_TEAM = "pets.lastUsedTeam"
PATH_ABILITY_LOGS = "pets.abilityLogs"
PATH_ABILITY_STATS = "stats.abilities"
