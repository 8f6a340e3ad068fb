"""Custom exception hierarchy for petsync."""

from __future__ import annotations


class PetSyncError(Exception):
    """Base exception for all petsync errors."""


class PetSyncConfigError(PetSyncError):
    """Invalid or missing configuration."""


class PetSyncStorageError(PetSyncError):
    """Persisted state could not be written."""


class PetSyncTransportError(PetSyncError):
    """HTTP-level failure (network, non-200, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class PetSyncActionError(PetSyncError):
    """The game bridge refused a remote pet action."""

    def __init__(
        self,
        message: str,
        *,
        action: str = "",
        endpoint: str = "",
    ) -> None:
        self.action = action
        self.endpoint = endpoint
        super().__init__(message)


class TeamNotFoundError(PetSyncError):
    """No team exists with the requested id."""

    def __init__(self, team_id: str) -> None:
        self.team_id = team_id
        super().__init__(f"Team not found: {team_id}")
