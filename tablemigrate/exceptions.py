"""Exceptions raised by the migration components.

Everything inherits from ``TableMigrateError`` so callers can catch the whole
family with one ``except`` clause. Only the fatal errors leave a component;
recoverable ones (``TranslationFailure``, single batch failures) are handled
where they occur.
"""

from typing import Any, Dict, List, Optional


class TableMigrateError(Exception):
    """Base exception for all migration errors."""

    def __init__(self, message: str = "", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "error_type": type(self).__name__,
            "error": self.message,
            "details": self.details,
        }


class OperationTimeout(TableMigrateError, TimeoutError):
    """
    An external call did not finish within its timeout.

    ``pending`` is the future of the call, which may still be running.
    """

    def __init__(self, message: str = "", details: Optional[Dict[str, Any]] = None, pending: Any = None):
        super().__init__(message, details)
        self.pending = pending


class SchemaCheckError(TableMigrateError):
    """The target catalog could not be queried for table existence."""


class SchemaRetrievalError(TableMigrateError):
    """The source schema could not be retrieved."""


class TranslationFailure(TableMigrateError):
    """A single translation attempt failed before its DDL could be executed."""


class FatalTranslationFailure(TableMigrateError):
    """All translation attempts were used without producing executable DDL."""

    def __init__(self, message: str, attempts: List[Any], details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.attempts = list(attempts)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["attempts"] = [a.to_dict() for a in self.attempts]
        return result


class MigrationProgressError(TableMigrateError):
    """Base for data-move errors that carry partial progress."""

    def __init__(
        self,
        message: str,
        rows_written: int = 0,
        batches_written: int = 0,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.rows_written = rows_written
        self.batches_written = batches_written
        self.result = None  # MigrationResult, attached by the mover

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["rows_written"] = self.rows_written
        result["batches_written"] = self.batches_written
        return result


class DataWriteFailure(MigrationProgressError):
    """A batch still failed after its retries were exhausted."""

    def __init__(
        self,
        message: str,
        batch_number: int,
        attempts: int,
        rows_written: int = 0,
        batches_written: int = 0,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, rows_written, batches_written, details)
        self.batch_number = batch_number
        self.attempts = attempts

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["batch_number"] = self.batch_number
        result["attempts"] = self.attempts
        return result


class SourceReadError(MigrationProgressError):
    """Reading rows from the source failed during a data move."""


class MigrationCancelled(MigrationProgressError):
    """The caller cancelled the data move."""


class TargetNotEmptyError(TableMigrateError):
    """The target table already holds rows and the run may not clear it."""


class ReconciliationComputeError(TableMigrateError):
    """Either side could not be read while computing fingerprints."""


class ColumnMismatchError(TableMigrateError):
    """Columns exist on only one side and the policy treats that as fatal."""

    def __init__(self, message: str, report: Any, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.report = report

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["report"] = self.report.to_dict()
        return result
