"""Row batch and data-move result models."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from datetime import datetime


@dataclass
class RowBatch:
    """
    A bounded, ordered chunk of rows.

    Each row maps an upper-cased column name to a scalar value. Batches are
    ephemeral: created per chunk and dropped once written.
    """
    batch_number: int
    table_name: str
    rows: List[Dict[str, Any]] = field(default_factory=list)
    max_size: Optional[int] = None
    # Identifies the data move the batch belongs to; stable across retries
    run_id: str = ""

    def __post_init__(self):
        if self.max_size is not None and len(self.rows) > self.max_size:
            raise ValueError(
                f"Batch {self.batch_number} has {len(self.rows)} rows, "
                f"exceeding the chunk bound of {self.max_size}"
            )

    def __len__(self) -> int:
        return len(self.rows)

    @property
    def columns(self) -> List[str]:
        """Column names in the order of the first row."""
        if not self.rows:
            return []
        return list(self.rows[0].keys())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_number": self.batch_number,
            "table_name": self.table_name,
            "row_count": len(self.rows),
            "columns": self.columns,
            "run_id": self.run_id,
        }


@dataclass
class MigrationResult:
    """Outcome of moving one table's rows from source to target."""
    table_name: str
    rows_read: int = 0
    rows_written: int = 0
    batches_produced: int = 0
    batches_written: int = 0
    batch_retries: int = 0
    cancelled: bool = False
    errors: List[Dict[str, Any]] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return (
            not self.errors
            and not self.cancelled
            and self.batches_written == self.batches_produced
            and self.rows_written == self.rows_read
        )

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "table_name": self.table_name,
            "rows_read": self.rows_read,
            "rows_written": self.rows_written,
            "batches_produced": self.batches_produced,
            "batches_written": self.batches_written,
            "batch_retries": self.batch_retries,
            "cancelled": self.cancelled,
            "success": self.success,
            "errors": self.errors,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
        }
