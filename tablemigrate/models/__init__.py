"""Data models for the migration application."""

from .schema import (
    TableIdentifier,
    parse_table_specs,
    ColumnDefinition,
    SchemaDefinition,
    MappedType,
)
from .migration import (
    ExecutionStatus,
    ExecutionResult,
    TranslationProposal,
    TranslationState,
    TranslationAttempt,
    TranslationOutcome,
    MigrationStatus,
    ExistingTablePolicy,
    MigrationStep,
    MigrationRun,
    SourceSettings,
    TargetSettings,
    MigrationConfig,
)
from .record import (
    RowBatch,
    MigrationResult,
)
from .report import (
    MissingColumnPolicy,
    ColumnFingerprint,
    ColumnComparison,
    ReconciliationReport,
)

__all__ = [
    "TableIdentifier",
    "parse_table_specs",
    "ColumnDefinition",
    "SchemaDefinition",
    "MappedType",
    "ExecutionStatus",
    "ExecutionResult",
    "TranslationProposal",
    "TranslationState",
    "TranslationAttempt",
    "TranslationOutcome",
    "MigrationStatus",
    "ExistingTablePolicy",
    "MigrationStep",
    "MigrationRun",
    "SourceSettings",
    "TargetSettings",
    "MigrationConfig",
    "RowBatch",
    "MigrationResult",
    "MissingColumnPolicy",
    "ColumnFingerprint",
    "ColumnComparison",
    "ReconciliationReport",
]
