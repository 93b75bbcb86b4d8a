"""
milestone_config -- single public entrypoint for governance configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``GovernanceConfig``.

Architecture position:
    Configuration -- sits above ``milestone_kernel``.  The kernel MUST NEVER
    import from ``milestone_config``; ``milestone_config.bridges`` translates
    the config into kernel inputs.

Invariants enforced:
    - Single entrypoint: runtime config flows through ``get_active_config()``.
    - ``MILESTONE_DATABASE_URL``, when set, overrides the configured
      database URL.  It is the only environment variable consulted.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` / ``KeyError`` -- schema validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``MILESTONE_CONFIG_TRACE`` log entry with the config id, version and
    checksum.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from milestone_config.loader import load_config
from milestone_config.schema import GovernanceConfig

_logger = logging.getLogger("milestone_kernel.config")

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

DATABASE_URL_ENV = "MILESTONE_DATABASE_URL"


def get_active_config(config_path: Path | str | None = None) -> GovernanceConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a configuration file.  Defaults to
            milestone_config/sets/default.yaml.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ValueError: If configuration validation fails.
    """
    path = Path(config_path) if config_path else _DEFAULT_CONFIG_PATH
    config = load_config(path)

    override = os.environ.get(DATABASE_URL_ENV)
    if override:
        config = replace(config, database=replace(config.database, url=override))

    _logger.info(
        "MILESTONE_CONFIG_TRACE",
        extra={
            "trace_type": "MILESTONE_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "database_url_overridden": bool(override),
            "approval_latch": config.governance.approval_latch,
        },
    )
    return config


__all__ = ["DATABASE_URL_ENV", "GovernanceConfig", "get_active_config"]
