"""
Tests for configuration loading and validation
"""

import pytest

from conflator.config import ConflationConfig, get_config, load_config_from_env, validate_config

ENV_KEYS = [
    "CONFLATOR_ROUTABLE_KEY",
    "CONFLATOR_ALREADY_CONFLATED_KEY",
    "CONFLATOR_SPLICE_TOLERANCE_M",
    "CONFLATOR_DUPLICATE_RADIUS_M",
    "CONFLATOR_MERGE_BUILDING_ADDRESS",
    "CONFLATOR_DUPLICATE_NODE_DISTANCE_M",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Unset CONFLATOR_* variables; anything a .env file sets is undone afterwards"""
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    return monkeypatch


def test_defaults_are_valid():
    config = ConflationConfig()
    validate_config(config)
    assert config.detection.duplicate_radius_m == 1.0
    assert config.splice.tolerance_m == 5.0
    assert config.simplify.acceptable_removal_percent == 20.0
    assert config.duplicate_ways.node_distance_m == 0.6
    assert isinstance(get_config(), ConflationConfig)


def test_invalid_values_are_all_reported():
    config = ConflationConfig()
    config.connection_key = config.duplicate_key
    config.splice.tolerance_m = 0
    config.simplify.acceptable_removal_percent = 150
    config.duplicate_ways.node_distance_m = -1

    with pytest.raises(ValueError) as excinfo:
        validate_config(config)
    message = str(excinfo.value)
    assert "must differ" in message
    assert "splice.tolerance_m" in message
    assert "acceptable_removal_percent" in message
    assert "duplicate_ways.node_distance_m" in message


def test_missing_keys_are_rejected():
    config = ConflationConfig()
    config.routable_key = ""
    config.already_conflated_key = ""
    with pytest.raises(ValueError, match="routable_key"):
        validate_config(config)


def test_environment_overrides(clean_env, tmp_path):
    clean_env.setenv("CONFLATOR_SPLICE_TOLERANCE_M", "2.5")
    clean_env.setenv("CONFLATOR_DUPLICATE_RADIUS_M", "wide")
    clean_env.setenv("CONFLATOR_MERGE_BUILDING_ADDRESS", "off")
    clean_env.setenv("CONFLATOR_DUPLICATE_NODE_DISTANCE_M", "1.5")

    config = load_config_from_env(str(tmp_path / "missing.env"))
    assert config.splice.tolerance_m == 2.5
    assert config.detection.duplicate_radius_m == 1.0
    assert not config.address.enabled
    assert config.duplicate_ways.node_distance_m == 1.5


def test_env_file(clean_env, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("CONFLATOR_ROUTABLE_KEY=railway\nCONFLATOR_ALREADY_CONFLATED_KEY=esri:conflated\n")
    clean_env.setenv("CONFLATOR_ALREADY_CONFLATED_KEY", "source:conflated")

    config = load_config_from_env(str(env_file))
    assert config.routable_key == "railway"
    # variables already set win over the file
    assert config.already_conflated_key == "source:conflated"
