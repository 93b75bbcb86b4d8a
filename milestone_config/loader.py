"""
Configuration Loader (``milestone_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``milestone_config.schema`` types.  Runtime callers go through
``milestone_config.get_active_config()`` rather than calling this directly.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Out-of-range or non-numeric values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from milestone_config.schema import DatabaseSettings, GovernanceConfig, GovernanceSettings

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, name: str) -> Decimal:
    """Parse a Decimal from YAML; floats go through their string form."""
    if isinstance(value, bool):
        raise ValueError(f"{name}: expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{name}: expected a number, got {value!r}") from exc


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    """Parse DatabaseSettings from a dict."""
    return DatabaseSettings(
        url=data["url"],
        echo=bool(data.get("echo", False)),
        pool_size=int(data.get("pool_size", 20)),
        max_overflow=int(data.get("max_overflow", 10)),
        pool_timeout=int(data.get("pool_timeout", 30)),
    )


def parse_governance(data: dict[str, Any]) -> GovernanceSettings:
    """Parse GovernanceSettings from a dict; absent keys keep their defaults."""
    defaults = GovernanceSettings()
    settings = GovernanceSettings(
        token_unit=parse_decimal(data.get("token_unit", defaults.token_unit), "token_unit"),
        tokens_per_unit=int(data.get("tokens_per_unit", defaults.tokens_per_unit)),
        approval_threshold=parse_decimal(
            data.get("approval_threshold", defaults.approval_threshold),
            "approval_threshold",
        ),
        approval_latch=bool(data.get("approval_latch", defaults.approval_latch)),
        release_tolerance=parse_decimal(
            data.get("release_tolerance", defaults.release_tolerance),
            "release_tolerance",
        ),
    )
    if settings.token_unit <= 0:
        raise ValueError("token_unit must be > 0")
    if settings.tokens_per_unit < 1:
        raise ValueError("tokens_per_unit must be >= 1")
    if not Decimal("0") <= settings.approval_threshold < Decimal("1"):
        raise ValueError("approval_threshold must be in [0, 1)")
    if settings.release_tolerance < 0:
        raise ValueError("release_tolerance must be >= 0")
    return settings


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def parse_config(data: dict[str, Any]) -> GovernanceConfig:
    """
    Parse a full GovernanceConfig from a dict.

    Required keys: ``config_id``, ``version``, ``database.url``.
    """
    log_level = str(data.get("log_level", "INFO")).upper()
    if log_level not in _LOG_LEVELS:
        raise ValueError(f"log_level must be one of {sorted(_LOG_LEVELS)}, got {log_level!r}")

    return GovernanceConfig(
        config_id=data["config_id"],
        version=int(data["version"]),
        database=parse_database(data["database"]),
        governance=parse_governance(data.get("governance") or {}),
        log_level=log_level,
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> GovernanceConfig:
    """Load and parse one configuration file."""
    return parse_config(load_yaml_file(path))
