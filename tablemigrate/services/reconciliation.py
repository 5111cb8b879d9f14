"""Statistical reconciliation of a migrated table against its source."""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Set

import pandas as pd

from .report_builder import ReportBuilder
from ..exceptions import ColumnMismatchError, ReconciliationComputeError
from ..extractors.base import SourceConnector
from ..loaders.base import TargetConnector
from ..models.report import ColumnFingerprint, MissingColumnPolicy, ReconciliationReport
from ..models.schema import TableIdentifier

logger = logging.getLogger(__name__)


def _hashable(value: Any) -> Any:
    """Distinct-value key for a cell; binary buffers compare by content."""
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, (list, dict, set)):
        return repr(value)
    return value


@dataclass
class _SideStats:
    """Running statistics of one side."""
    row_count: int = 0
    columns: Set[str] = field(default_factory=set)
    null_counts: Dict[str, int] = field(default_factory=dict)
    distinct_values: Dict[str, Set[Any]] = field(default_factory=dict)

    def add_column(self, name: str) -> None:
        if name not in self.columns:
            self.columns.add(name)
            self.null_counts[name] = 0
            self.distinct_values[name] = set()

    def update(self, frame: pd.DataFrame) -> None:
        self.row_count += len(frame)
        for name in frame.columns:
            self.add_column(name)
            series = frame[name]
            self.null_counts[name] += int(series.isna().sum())
            self.distinct_values[name].update(_hashable(v) for v in series.dropna())

    def fingerprints(self) -> Dict[str, ColumnFingerprint]:
        return {
            name: ColumnFingerprint(
                column_name=name,
                null_count=self.null_counts[name],
                distinct_count=len(self.distinct_values[name]),
            )
            for name in sorted(self.columns)
        }


class ReconciliationEngine:
    """
    Compares source and target with row counts and per-column fingerprints.

    For each column the null count and the number of distinct non-null values
    are computed on both sides. Only columns present on both sides are
    compared; column names are matched case-insensitively. The engine reports
    discrepancies and never modifies data.

    Rows are streamed in chunks into DataFrames, so memory grows with the
    number of distinct values, not the number of rows.
    """

    def __init__(
        self,
        source: SourceConnector,
        target: TargetConnector,
        missing_column_policy: str = "warn",
        chunk_size: int = 10000,
        report_builder: Optional[ReportBuilder] = None,
    ):
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")

        self.source = source
        self.target = target
        self.missing_column_policy = MissingColumnPolicy(missing_column_policy)
        self.chunk_size = chunk_size
        self.report_builder = report_builder or ReportBuilder()

    def reconcile(self, identifier: TableIdentifier) -> ReconciliationReport:
        """
        Build the reconciliation report for one table.

        Raises:
            ReconciliationComputeError: Either side could not be read
            ColumnMismatchError: One-sided columns exist and the policy is FAIL
        """
        source_name = identifier.source_qualified_name
        target_name = identifier.target_qualified_name

        source_stats = self._collect(
            "source", source_name, self.source.list_columns, self.source.read_source_rows
        )
        target_stats = self._collect(
            "target", target_name, self.target.list_columns, self.target.query_target_table
        )

        report = self.report_builder.build_reconciliation(
            source_table=source_name,
            target_table=target_name,
            source_row_count=source_stats.row_count,
            target_row_count=target_stats.row_count,
            source_fingerprints=source_stats.fingerprints(),
            target_fingerprints=target_stats.fingerprints(),
            missing_column_policy=self.missing_column_policy,
        )

        if not report.row_count_match:
            logger.warning(
                f"Row count mismatch for {target_name}: "
                f"source={report.source_row_count} target={report.target_row_count}"
            )
        for name in report.mismatched_columns:
            comparison = report.columns[name]
            logger.warning(
                f"Column {name} differs: nulls {comparison.source.null_count}/{comparison.target.null_count}, "
                f"distinct {comparison.source.distinct_count}/{comparison.target.distinct_count}"
            )

        if report.missing_columns:
            sides = ", ".join(
                f"{name} ({'source' if c.exists_in_source else 'target'} only)"
                for name, c in sorted(report.missing_columns.items())
            )
            if self.missing_column_policy == MissingColumnPolicy.FAIL:
                raise ColumnMismatchError(
                    f"Columns present on one side only: {sides}",
                    report=report,
                    details={"table": target_name},
                )
            logger.warning(f"Columns present on one side only: {sides}")

        logger.info(self.report_builder.summarize(report))
        return report

    def _collect(
        self,
        side: str,
        table_name: str,
        list_columns: Callable[[str], List[str]],
        read_rows: Callable[[str], Iterable[Dict[str, Any]]],
    ) -> _SideStats:
        stats = _SideStats()
        try:
            for name in list_columns(table_name):
                stats.add_column(str(name).upper())

            for chunk in self._chunks(read_rows(table_name)):
                frame = pd.DataFrame(chunk, dtype=object)
                frame.columns = [str(c).upper() for c in frame.columns]
                if frame.columns.duplicated().any():
                    raise ReconciliationComputeError(
                        f"Columns of {table_name} collide on upper-case names",
                        details={"side": side, "table": table_name},
                    )
                frame = frame.reindex(columns=sorted(stats.columns | set(frame.columns)))
                stats.update(frame)

        except ReconciliationComputeError:
            raise
        except Exception as e:
            raise ReconciliationComputeError(
                f"Failed to read {side} table {table_name}: {e}",
                details={"side": side, "table": table_name},
            ) from e

        logger.debug(f"Fingerprinted {side} {table_name}: {stats.row_count} rows, {len(stats.columns)} columns")
        return stats

    def _chunks(self, rows: Iterable[Dict[str, Any]]) -> Iterator[List[Dict[str, Any]]]:
        chunk: List[Dict[str, Any]] = []
        for row in rows:
            chunk.append(row)
            if len(chunk) >= self.chunk_size:
                yield chunk
                chunk = []
        if chunk:
            yield chunk
