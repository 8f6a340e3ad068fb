"""Service configuration for petsync."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from petsync._constants import (
    ACTIVE_CAPACITY,
    DEFAULT_BRIDGE_URL,
    DEFAULT_PLACE_LAYER,
    DEFAULT_PLACE_SURFACE,
    LOG_CAPACITY,
    LOG_CUTOFF_SKEW_MS,
    PICKER_POLL_INTERVAL,
    PICKER_TIMEOUT,
    STORE_CAPACITY,
    STORE_NAME,
)
from petsync.exceptions import PetSyncConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class PetSyncConfig:
    """Service configuration.

    Parameters
    ----------
    bridge_url : str
        Base URL of the game bridge that performs remote pet mutations.
    storage_path : str
        JSON file holding persisted teams, search strings and ability logs.
    store_name : str
        Storage name passed to ``put``/``retrieve`` calls.
    store_capacity : int
        Maximum number of entities the external store can hold.
    active_capacity : int
        Number of active roster slots.
    log_capacity : int
        Maximum number of ability log entries kept in memory and on disk.
    log_cutoff_skew_ms : int
        Tolerance applied to the cutoff set when the log is cleared.
    picker_timeout : float
        Seconds to wait for a selection in an external picker.
    picker_poll_interval : float
        Seconds between two picker polls.
    place_surface : str
        Surface passed to ``place_pet`` calls.
    place_layer : int
        Layer passed to ``place_pet`` calls.
    suppress_store_rebuilds : bool
        Apply signature suppression to the store feed as well. Off by default,
        which rebuilds the roster on every store notification.
    mqtt_enabled : bool
        Feed the roster from MQTT topics when no feeds are injected.
    mqtt_host : str
        MQTT broker host.
    mqtt_port : int
        MQTT broker port.
    mqtt_topic_prefix : str
        Prefix of the per-feed topics (``<prefix>/active`` etc.).
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    request_timeout : float
        Total timeout in seconds for one bridge request.
    """

    bridge_url: str = DEFAULT_BRIDGE_URL
    storage_path: str = "petsync-state.json"
    store_name: str = STORE_NAME
    store_capacity: int = STORE_CAPACITY
    active_capacity: int = ACTIVE_CAPACITY
    log_capacity: int = LOG_CAPACITY
    log_cutoff_skew_ms: int = LOG_CUTOFF_SKEW_MS
    picker_timeout: float = PICKER_TIMEOUT
    picker_poll_interval: float = PICKER_POLL_INTERVAL
    place_surface: str = DEFAULT_PLACE_SURFACE
    place_layer: int = DEFAULT_PLACE_LAYER
    suppress_store_rebuilds: bool = False
    mqtt_enabled: bool = False
    mqtt_host: str = "127.0.0.1"
    mqtt_port: int = 1883
    mqtt_topic_prefix: str = "petsync"
    mqtt_keepalive: int = 60
    request_timeout: float = 10.0

    @classmethod
    def from_env(cls, **overrides: Any) -> PetSyncConfig:
        """Create configuration from environment variables.

        Reads optional ``PETSYNC_*`` variables. Explicit keyword arguments
        override environment values.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "PETSYNC_BRIDGE_URL": "bridge_url",
            "PETSYNC_STORAGE_PATH": "storage_path",
            "PETSYNC_STORE_NAME": "store_name",
            "PETSYNC_PLACE_SURFACE": "place_surface",
            "PETSYNC_MQTT_HOST": "mqtt_host",
            "PETSYNC_MQTT_TOPIC_PREFIX": "mqtt_topic_prefix",
        }
        _ENV_INT_MAP = {
            "PETSYNC_STORE_CAPACITY": "store_capacity",
            "PETSYNC_ACTIVE_CAPACITY": "active_capacity",
            "PETSYNC_LOG_CAPACITY": "log_capacity",
            "PETSYNC_LOG_CUTOFF_SKEW_MS": "log_cutoff_skew_ms",
            "PETSYNC_PLACE_LAYER": "place_layer",
            "PETSYNC_MQTT_PORT": "mqtt_port",
            "PETSYNC_MQTT_KEEPALIVE": "mqtt_keepalive",
        }
        _ENV_FLOAT_MAP = {
            "PETSYNC_PICKER_TIMEOUT": "picker_timeout",
            "PETSYNC_PICKER_POLL_INTERVAL": "picker_poll_interval",
            "PETSYNC_REQUEST_TIMEOUT": "request_timeout",
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val
        for env_map, convert in ((_ENV_INT_MAP, int), (_ENV_FLOAT_MAP, float)):
            for env_key, field_name in env_map.items():
                val = env.get(env_key)
                if val is None or field_name in overrides:
                    continue
                try:
                    config_kwargs[field_name] = convert(val)
                except ValueError as exc:
                    raise PetSyncConfigError(f"{env_key} must be a number, got {val!r}") from exc

        if "mqtt_enabled" not in overrides:
            config_kwargs["mqtt_enabled"] = _env_bool(env.get("PETSYNC_MQTT_ENABLED"), False)

        if "suppress_store_rebuilds" not in overrides:
            config_kwargs["suppress_store_rebuilds"] = _env_bool(
                env.get("PETSYNC_SUPPRESS_STORE_REBUILDS"),
                False,
            )

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
