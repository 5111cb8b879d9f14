"""Reconciliation report models."""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
from enum import Enum
from datetime import datetime

from .migration import utcnow


class MissingColumnPolicy(str, Enum):
    """How columns present on only one side are treated."""
    IGNORE = "ignore"  # dropped from the report
    WARN = "warn"  # listed as existence mismatches
    FAIL = "fail"  # listed, then the reconciliation raises


@dataclass(frozen=True)
class ColumnFingerprint:
    """Statistics of one column on one side."""
    column_name: str
    null_count: int
    distinct_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "column_name": self.column_name,
            "null_count": self.null_count,
            "distinct_count": self.distinct_count,
        }


@dataclass(frozen=True)
class ColumnComparison:
    """Side-by-side fingerprints of one column name."""
    column_name: str
    exists_in_source: bool
    exists_in_target: bool
    source: Optional[ColumnFingerprint] = None
    target: Optional[ColumnFingerprint] = None

    @property
    def compared(self) -> bool:
        return self.source is not None and self.target is not None

    @property
    def null_count_match(self) -> Optional[bool]:
        if not self.compared:
            return None
        return self.source.null_count == self.target.null_count

    @property
    def distinct_count_match(self) -> Optional[bool]:
        if not self.compared:
            return None
        return self.source.distinct_count == self.target.distinct_count

    @property
    def matched(self) -> bool:
        return bool(self.null_count_match and self.distinct_count_match)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result: Dict[str, Any] = {
            "exists_in_source": self.exists_in_source,
            "exists_in_target": self.exists_in_target,
        }
        if self.compared:
            result.update({
                "null_count": {
                    "source": self.source.null_count,
                    "target": self.target.null_count,
                },
                "distinct_count": {
                    "source": self.source.distinct_count,
                    "target": self.target.distinct_count,
                },
                "null_count_match": self.null_count_match,
                "distinct_count_match": self.distinct_count_match,
            })
        return result


@dataclass(frozen=True)
class ReconciliationReport:
    """
    Terminal artifact of a migration run.

    ``columns`` holds exactly the columns present on both sides. Columns found
    on one side only are kept apart in ``missing_columns`` and never compared
    numerically.
    """
    source_table: str
    target_table: str
    source_row_count: int
    target_row_count: int
    columns: Mapping[str, ColumnComparison] = field(default_factory=dict)
    missing_columns: Mapping[str, ColumnComparison] = field(default_factory=dict)
    missing_column_policy: MissingColumnPolicy = MissingColumnPolicy.WARN
    generated_at: datetime = field(default_factory=utcnow)

    @property
    def row_count_match(self) -> bool:
        return self.source_row_count == self.target_row_count

    @property
    def mismatched_columns(self):
        return sorted(name for name, c in self.columns.items() if not c.matched)

    @property
    def matched(self) -> bool:
        """True when row counts and every common column match and nothing is missing."""
        return (
            self.row_count_match
            and not self.mismatched_columns
            and not self.missing_columns
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "source_table": self.source_table,
            "target_table": self.target_table,
            "row_count": {
                "source": self.source_row_count,
                "target": self.target_row_count,
            },
            "row_count_match": self.row_count_match,
            "columns": {name: self.columns[name].to_dict() for name in sorted(self.columns)},
            "missing_columns": {
                name: self.missing_columns[name].to_dict()
                for name in sorted(self.missing_columns)
            },
            "missing_column_policy": self.missing_column_policy.value,
            "matched": self.matched,
            "generated_at": self.generated_at.isoformat(),
        }
