"""
docengine_config -- single public entrypoint for engine configuration.

Responsibility:
    ``get_active_config()`` is the ONLY way to obtain configuration at
    runtime.  No other component reads configuration files or environment
    variables.

Architecture position:
    Configuration -- sits beside ``docengine``.  The engine's services
    receive parsed values (SequenceDefinition, timeouts) and never import
    this package; only bootstrap code and tests do.

Environment overrides (read here and nowhere else):
    DOCENGINE_CONFIG_DIR    directory holding ``<name>.yaml`` sets
    DOCENGINE_DATABASE_URL  replaces ``settings.database_url``

Failure modes:
    - ``FileNotFoundError`` -- no set with the requested name.
    - ``ValueError`` / ``KeyError`` -- parse failures (see loader).

Audit relevance:
    Every successful call logs ``config_loaded`` with the set name, version
    and checksum, tying issued numbers back to the configuration in force.
"""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path

from docengine.logging_config import get_logger
from docengine_config.loader import load_configuration
from docengine_config.schema import (
    EngineConfiguration,
    EngineSettings,
    SequenceDefinition,
)

__all__ = [
    "EngineConfiguration",
    "EngineSettings",
    "SequenceDefinition",
    "get_active_config",
]

logger = get_logger("config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"

_ENV_CONFIG_DIR = "DOCENGINE_CONFIG_DIR"
_ENV_DATABASE_URL = "DOCENGINE_DATABASE_URL"


def get_active_config(
    config_dir: Path | None = None,
    name: str = "default",
) -> EngineConfiguration:
    """
    The ONLY public configuration entrypoint.

    Args:
        config_dir: Override path to the configuration sets directory.
            Falls back to $DOCENGINE_CONFIG_DIR, then docengine_config/sets/.
        name: Configuration set name; the file loaded is ``<name>.yaml``.

    Raises:
        FileNotFoundError: If the set does not exist.
        ValueError: If the set fails validation.
    """
    env_dir = os.environ.get(_ENV_CONFIG_DIR)
    sets_dir = Path(config_dir or env_dir or _DEFAULT_CONFIG_DIR)

    path = sets_dir / f"{name}.yaml"
    if not path.is_file():
        raise FileNotFoundError(f"Configuration set '{name}' not found in {sets_dir}")

    config = load_configuration(path)

    database_url = os.environ.get(_ENV_DATABASE_URL)
    if database_url:
        config = dataclasses.replace(
            config,
            settings=dataclasses.replace(config.settings, database_url=database_url),
        )

    logger.info(
        "config_loaded",
        extra={
            "config_name": config.name,
            "config_version": config.version,
            "checksum": config.checksum,
            "sequence_count": len(config.sequences),
            "database_url_overridden": bool(database_url),
        },
    )
    return config
