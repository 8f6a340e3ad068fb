from __future__ import annotations

import pytest

from petsync.config import PetSyncConfig
from petsync.exceptions import PetSyncConfigError


def test_defaults() -> None:
    config = PetSyncConfig()

    assert config.store_name == "PetHutch"
    assert config.store_capacity == 25
    assert config.log_capacity == 500
    assert config.log_cutoff_skew_ms == 1500
    assert config.suppress_store_rebuilds is False
    assert config.mqtt_enabled is False


def test_from_env_reads_prefixed_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PETSYNC_BRIDGE_URL", "http://bridge:9000")
    monkeypatch.setenv("PETSYNC_STORE_CAPACITY", "30")
    monkeypatch.setenv("PETSYNC_PICKER_TIMEOUT", "2.5")
    monkeypatch.setenv("PETSYNC_MQTT_ENABLED", "yes")
    monkeypatch.setenv("PETSYNC_SUPPRESS_STORE_REBUILDS", "maybe")

    config = PetSyncConfig.from_env()

    assert config.bridge_url == "http://bridge:9000"
    assert config.store_capacity == 30
    assert config.picker_timeout == 2.5
    assert config.mqtt_enabled is True
    assert config.suppress_store_rebuilds is False


def test_overrides_win_over_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PETSYNC_STORE_CAPACITY", "not-a-number")
    monkeypatch.setenv("PETSYNC_MQTT_ENABLED", "1")
    monkeypatch.setenv("PETSYNC_STORE_NAME", "Barn")

    config = PetSyncConfig.from_env(store_capacity=10, mqtt_enabled=False, store_name="Shed")

    assert config.store_capacity == 10
    assert config.mqtt_enabled is False
    assert config.store_name == "Shed"


def test_invalid_number_raises_config_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PETSYNC_PICKER_TIMEOUT", "soon")

    with pytest.raises(PetSyncConfigError, match="PETSYNC_PICKER_TIMEOUT"):
        PetSyncConfig.from_env()
