"""
Config -> Kernel Bridges.

Converts a GovernanceConfig into kernel inputs.  These live in
milestone_config (the producer) because the kernel must never import
milestone_config.

Usage:
    from milestone_config.bridges import build_governance_parameters

    config = get_active_config()
    params = build_governance_parameters(config)
    VotingEngine(session, parameters=params)
"""

from __future__ import annotations

from milestone_config.schema import GovernanceConfig
from milestone_kernel.db.engine import init_engine_from_url
from milestone_kernel.domain.governance import GovernanceParameters


def build_governance_parameters(config: GovernanceConfig) -> GovernanceParameters:
    """Translate the governance section into kernel GovernanceParameters."""
    settings = config.governance
    return GovernanceParameters(
        token_unit=settings.token_unit,
        tokens_per_unit=settings.tokens_per_unit,
        approval_threshold=settings.approval_threshold,
        approval_latch=settings.approval_latch,
        release_tolerance=settings.release_tolerance,
    )


def init_engine_from_config(config: GovernanceConfig):
    """Initialize the kernel engine from the database section."""
    db = config.database
    return init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
    )
