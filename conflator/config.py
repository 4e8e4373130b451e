"""
Configuration settings for the conflation toolkit
"""

from dataclasses import dataclass, field
from typing import List, Optional
import os

from dotenv import load_dotenv
from loguru import logger


@dataclass
class DetectionConfig:
    """Thresholds for the missing-connection discovery pass"""
    # Radius to look for coincident nodes (meters, great-circle)
    duplicate_radius_m: float = 1.0

    # Max distance between a crossing point and an existing vertex (meters)
    crossing_precision_m: float = 1.0

    # Way ends closer than this to another routable way are proposed as connections
    unconnected_distance_m: float = 10.0
    detect_unconnected_ends: bool = True

    # Prompt id used for the "don't ask again" toggle
    prompt_id: str = "conflation.missing_connection_tags"


@dataclass
class SpliceConfig:
    """Settings for splicing nodes into existing ways"""
    # A node farther than this from the target segment is not spliced (meters)
    tolerance_m: float = 5.0


@dataclass
class SimplifyConfig:
    """Settings for over-noded way simplification"""
    tolerance_m: float = 0.5
    # Removing more than this share of nodes requires confirmation (percent)
    acceptable_removal_percent: float = 20.0
    prompt_id: str = "conflation.simplify_way"


@dataclass
class AddressConfig:
    """Settings for building / address merging"""
    enabled: bool = True
    address_prefix: str = "addr:"
    housenumber_key: str = "addr:housenumber"
    source_key: str = "source"
    # Search radius around an address node for duplicate addresses (degrees)
    search_radius_deg: float = 0.001
    # Keys compared when looking for an existing duplicate address
    match_keys: List[str] = field(default_factory=lambda: [
        "addr:street",
        "addr:unit",
        "addr:housenumber",
        "addr:housename",
    ])


@dataclass
class DuplicateWaysConfig:
    """Settings for merging duplicate ways"""
    # Nodes of two ways closer than this are the same point (meters, great-circle)
    node_distance_m: float = 0.6
    # Ways sharing a value for this key are duplicates even without common nodes
    orig_id_key: str = "orig_id"


@dataclass
class ConflationConfig:
    """Conflation configuration"""
    # Tag that marks a way as routable (crossing / simplification passes)
    routable_key: str = "highway"
    building_key: str = "building"

    # Marker key meaning "already conflated upstream"
    already_conflated_key: str = "conflation:conflated"

    # Directive keys for the built-in commands
    duplicate_key: str = "dupe"
    connection_key: str = "conn"

    # Earth radius used for great-circle distances (meters)
    earth_radius_m: float = 6378137.0

    detection: DetectionConfig = field(default_factory=DetectionConfig)
    splice: SpliceConfig = field(default_factory=SpliceConfig)
    simplify: SimplifyConfig = field(default_factory=SimplifyConfig)
    address: AddressConfig = field(default_factory=AddressConfig)
    duplicate_ways: DuplicateWaysConfig = field(default_factory=DuplicateWaysConfig)


# Global config instance
config = ConflationConfig()


def get_config() -> ConflationConfig:
    """Get global configuration"""
    return config


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"Ignoring {name}={value!r}: not a number")
        return default


def load_config_from_env(env_path: Optional[str] = None) -> ConflationConfig:
    """
    Build a configuration from CONFLATOR_* environment variables.

    A .env file is loaded first (existing variables win).
    """
    if env_path and os.path.exists(env_path):
        load_dotenv(env_path, override=False)
    else:
        load_dotenv()

    cfg = ConflationConfig()
    cfg.routable_key = os.getenv("CONFLATOR_ROUTABLE_KEY", cfg.routable_key)
    cfg.already_conflated_key = os.getenv(
        "CONFLATOR_ALREADY_CONFLATED_KEY", cfg.already_conflated_key
    )
    cfg.detection.duplicate_radius_m = _env_float(
        "CONFLATOR_DUPLICATE_RADIUS_M", cfg.detection.duplicate_radius_m
    )
    cfg.detection.crossing_precision_m = _env_float(
        "CONFLATOR_CROSSING_PRECISION_M", cfg.detection.crossing_precision_m
    )
    cfg.detection.unconnected_distance_m = _env_float(
        "CONFLATOR_UNCONNECTED_DISTANCE_M", cfg.detection.unconnected_distance_m
    )
    cfg.splice.tolerance_m = _env_float("CONFLATOR_SPLICE_TOLERANCE_M", cfg.splice.tolerance_m)
    cfg.simplify.tolerance_m = _env_float("CONFLATOR_SIMPLIFY_TOLERANCE_M", cfg.simplify.tolerance_m)
    cfg.simplify.acceptable_removal_percent = _env_float(
        "CONFLATOR_ACCEPTABLE_REMOVAL_PERCENT", cfg.simplify.acceptable_removal_percent
    )
    cfg.duplicate_ways.node_distance_m = _env_float(
        "CONFLATOR_DUPLICATE_NODE_DISTANCE_M", cfg.duplicate_ways.node_distance_m
    )
    merge = os.getenv("CONFLATOR_MERGE_BUILDING_ADDRESS")
    if merge is not None:
        cfg.address.enabled = merge.strip().lower() not in ("0", "false", "no", "off")
    return cfg


def validate_config(config: ConflationConfig) -> None:
    """
    Validate that all required configuration values are set.
    Raises ValueError if any required value is missing or invalid.
    """
    errors = []

    if not config.routable_key:
        errors.append("routable_key is required in config but not set")
    if not config.building_key:
        errors.append("building_key is required in config but not set")
    if not config.duplicate_key or not config.connection_key:
        errors.append("duplicate_key and connection_key are required")
    elif config.duplicate_key == config.connection_key:
        errors.append("duplicate_key and connection_key must differ")
    if not config.already_conflated_key:
        errors.append("already_conflated_key is required in config but not set")

    if config.detection.duplicate_radius_m <= 0:
        errors.append(f"detection.duplicate_radius_m must be positive, got {config.detection.duplicate_radius_m}")
    if config.detection.crossing_precision_m <= 0:
        errors.append(f"detection.crossing_precision_m must be positive, got {config.detection.crossing_precision_m}")
    if config.detection.unconnected_distance_m < 0:
        errors.append(f"detection.unconnected_distance_m must not be negative, got {config.detection.unconnected_distance_m}")
    if config.splice.tolerance_m <= 0:
        errors.append(f"splice.tolerance_m must be positive, got {config.splice.tolerance_m}")
    if config.simplify.tolerance_m <= 0:
        errors.append(f"simplify.tolerance_m must be positive, got {config.simplify.tolerance_m}")
    if config.duplicate_ways.node_distance_m <= 0:
        errors.append(f"duplicate_ways.node_distance_m must be positive, got {config.duplicate_ways.node_distance_m}")
    if not 0 <= config.simplify.acceptable_removal_percent <= 100:
        errors.append(
            f"simplify.acceptable_removal_percent must be between 0 and 100, "
            f"got {config.simplify.acceptable_removal_percent}"
        )

    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        raise ValueError(error_msg)
