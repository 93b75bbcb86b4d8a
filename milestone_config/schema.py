"""
GovernanceConfig schema.

The human-authored YAML configuration set is parsed by the loader into these
frozen types.  ``GovernanceConfig`` is the sole runtime artifact returned by
``milestone_config.get_active_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class DatabaseSettings:
    """Connection settings handed to ``init_engine_from_url``."""

    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30


@dataclass(frozen=True)
class GovernanceSettings:
    """Governance constants as authored in YAML."""

    token_unit: Decimal = Decimal("0.001")
    tokens_per_unit: int = 100
    approval_threshold: Decimal = Decimal("0.5")
    approval_latch: bool = True
    release_tolerance: Decimal = Decimal("0.0001")


@dataclass(frozen=True)
class GovernanceConfig:
    """A loaded, validated configuration set."""

    config_id: str
    version: int
    database: DatabaseSettings
    governance: GovernanceSettings = field(default_factory=GovernanceSettings)
    log_level: str = "INFO"
    checksum: str = ""
