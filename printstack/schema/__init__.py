"""Inventory entities, identities and snapshot migration."""

from printstack.schema.entities import (
    CURRENT_VERSION,
    OTHER,
    Difficulty,
    QualityRating,
    Filament,
    Requirement,
    Model,
    FilamentUsage,
    UsageVariance,
    Print,
    Snapshot,
    extract_tags,
)
from printstack.schema.identity import IdGenerator
from printstack.schema.migration import (
    LEGACY_FLAT,
    UNKNOWN,
    SnapshotMigrator,
    detect_version,
    migrate,
    migrate_with_report,
)

__all__ = [
    "CURRENT_VERSION",
    "OTHER",
    "Difficulty",
    "QualityRating",
    "Filament",
    "Requirement",
    "Model",
    "FilamentUsage",
    "UsageVariance",
    "Print",
    "Snapshot",
    "extract_tags",
    "IdGenerator",
    "LEGACY_FLAT",
    "UNKNOWN",
    "SnapshotMigrator",
    "detect_version",
    "migrate",
    "migrate_with_report",
]
