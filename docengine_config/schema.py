"""
Configuration schema (``docengine_config.schema``).

Frozen dataclasses describing one configuration set: engine settings plus
the numbering sequence of every document type.  Instances are produced by
``docengine_config.loader`` and consumed by SequenceAllocator and the
database bootstrap; nothing mutates them after parsing.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from docengine.domain.numbering import NumberFormat, ResetFrequency


@dataclass(frozen=True)
class EngineSettings:
    """Runtime knobs.  Timeouts are per call, in milliseconds."""

    database_url: str = "sqlite:///docengine.db"
    allocation_timeout_ms: int = 5000
    validation_timeout_ms: int = 5000
    echo_sql: bool = False


@dataclass(frozen=True)
class SequenceDefinition:
    """
    Numbering rules for one document type.

    ``next_number`` seeds a newly registered sequence (for example when
    migrating from a system that already issued INV-00006).
    """

    document_type: str
    prefix: str = ""
    separator: str = "-"
    number_length: int = 5
    suffix: str = ""
    reset_frequency: ResetFrequency = ResetFrequency.NEVER
    next_number: int = 1
    is_active: bool = True

    @property
    def number_format(self) -> NumberFormat:
        return NumberFormat(
            prefix=self.prefix,
            separator=self.separator,
            number_length=self.number_length,
            suffix=self.suffix,
        )


@dataclass(frozen=True)
class EngineConfiguration:
    """A complete, parsed configuration set."""

    name: str
    version: int
    settings: EngineSettings
    sequences: tuple[SequenceDefinition, ...] = field(default_factory=tuple)
    checksum: str = ""

    def sequence_for(self, document_type: str) -> SequenceDefinition | None:
        for definition in self.sequences:
            if definition.document_type == document_type:
                return definition
        return None
