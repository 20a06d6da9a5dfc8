"""
Configuration Loader (``docengine_config.loader``).

Responsibility
--------------
Load a YAML configuration set and parse it into the frozen dataclasses of
``docengine_config.schema``.  Runtime callers go through
``docengine_config.get_active_config()`` instead of calling this directly.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required fields have no silent defaults.
* A document type appears at most once per set.
* ``compute_checksum`` is a deterministic SHA-256 of the raw set, so two
  loads of the same file always report the same identity.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Out-of-range values  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from docengine.domain.numbering import ResetFrequency
from docengine_config.schema import (
    EngineConfiguration,
    EngineSettings,
    SequenceDefinition,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_settings(data: dict[str, Any]) -> EngineSettings:
    """Parse EngineSettings; every key is optional."""
    defaults = EngineSettings()
    settings = EngineSettings(
        database_url=str(data.get("database_url", defaults.database_url)),
        allocation_timeout_ms=int(
            data.get("allocation_timeout_ms", defaults.allocation_timeout_ms)
        ),
        validation_timeout_ms=int(
            data.get("validation_timeout_ms", defaults.validation_timeout_ms)
        ),
        echo_sql=bool(data.get("echo_sql", defaults.echo_sql)),
    )
    if settings.allocation_timeout_ms <= 0:
        raise ValueError(
            f"allocation_timeout_ms must be positive, got {settings.allocation_timeout_ms}"
        )
    if settings.validation_timeout_ms <= 0:
        raise ValueError(
            f"validation_timeout_ms must be positive, got {settings.validation_timeout_ms}"
        )
    return settings


def parse_sequence(document_type: str, data: dict[str, Any]) -> SequenceDefinition:
    """
    Parse one SequenceDefinition.

    Raises:
        KeyError: ``prefix`` is missing.
        ValueError: unknown reset_frequency, number_length < 1 or
            next_number < 1.
    """
    raw_frequency = data.get("reset_frequency", ResetFrequency.NEVER.value)
    try:
        frequency = ResetFrequency(raw_frequency)
    except ValueError:
        raise ValueError(
            f"Sequence '{document_type}': unknown reset_frequency {raw_frequency!r}"
        ) from None

    definition = SequenceDefinition(
        document_type=document_type,
        prefix=str(data["prefix"]),
        separator=str(data.get("separator", "-")),
        number_length=int(data.get("number_length", 5)),
        suffix=str(data.get("suffix", "")),
        reset_frequency=frequency,
        next_number=int(data.get("next_number", 1)),
        is_active=bool(data.get("is_active", True)),
    )
    if definition.number_length < 1:
        raise ValueError(
            f"Sequence '{document_type}': number_length must be >= 1, "
            f"got {definition.number_length}"
        )
    if definition.next_number < 1:
        raise ValueError(
            f"Sequence '{document_type}': next_number must be >= 1, "
            f"got {definition.next_number}"
        )
    return definition


def parse_configuration(data: dict[str, Any]) -> EngineConfiguration:
    """
    Parse a whole configuration set.

    Expected shape::

        name: default
        version: 1
        settings: {allocation_timeout_ms: 5000, ...}
        sequences:
          sales_invoice: {prefix: INV, number_length: 5, reset_frequency: yearly}
    """
    sequences_data = data.get("sequences") or {}
    if not isinstance(sequences_data, dict):
        raise ValueError("'sequences' must be a mapping of document_type -> definition")

    sequences = tuple(
        parse_sequence(document_type, definition or {})
        for document_type, definition in sequences_data.items()
    )

    return EngineConfiguration(
        name=str(data["name"]),
        version=int(data.get("version", 1)),
        settings=parse_settings(data.get("settings") or {}),
        sequences=sequences,
        checksum=compute_checksum(data),
    )


def load_configuration(path: Path) -> EngineConfiguration:
    """Load and parse the configuration set stored at ``path``."""
    return parse_configuration(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
