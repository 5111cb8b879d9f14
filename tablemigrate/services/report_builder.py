"""Assemble, serialize and persist reconciliation and run reports."""

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from ..models.migration import utcnow
from ..models.report import (
    ColumnComparison,
    ColumnFingerprint,
    MissingColumnPolicy,
    ReconciliationReport,
)

logger = logging.getLogger(__name__)


class ReportBuilder:
    """Builds the immutable reconciliation report and writes JSON artifacts."""

    def __init__(self, output_dir: Union[str, Path] = "./data"):
        self.output_dir = Path(output_dir)

    def build_reconciliation(
        self,
        source_table: str,
        target_table: str,
        source_row_count: int,
        target_row_count: int,
        source_fingerprints: Mapping[str, ColumnFingerprint],
        target_fingerprints: Mapping[str, ColumnFingerprint],
        missing_column_policy: MissingColumnPolicy = MissingColumnPolicy.WARN,
    ) -> ReconciliationReport:
        """
        Pair up fingerprints by (upper-cased) column name.

        Columns on both sides are compared; one-sided columns go to
        ``missing_columns`` unless the policy is IGNORE.
        """
        missing_column_policy = MissingColumnPolicy(missing_column_policy)
        source = {name.upper(): fp for name, fp in source_fingerprints.items()}
        target = {name.upper(): fp for name, fp in target_fingerprints.items()}

        columns: Dict[str, ColumnComparison] = {}
        for name in sorted(source.keys() & target.keys()):
            columns[name] = ColumnComparison(
                column_name=name,
                exists_in_source=True,
                exists_in_target=True,
                source=source[name],
                target=target[name],
            )

        missing: Dict[str, ColumnComparison] = {}
        if missing_column_policy != MissingColumnPolicy.IGNORE:
            for name in sorted(source.keys() ^ target.keys()):
                missing[name] = ColumnComparison(
                    column_name=name,
                    exists_in_source=name in source,
                    exists_in_target=name in target,
                )

        return ReconciliationReport(
            source_table=source_table,
            target_table=target_table,
            source_row_count=source_row_count,
            target_row_count=target_row_count,
            columns=columns,
            missing_columns=missing,
            missing_column_policy=missing_column_policy,
        )

    def to_json(self, artifact: Any, indent: int = 2) -> str:
        """Serialize anything with a ``to_dict`` method."""
        data = artifact.to_dict() if hasattr(artifact, "to_dict") else artifact
        return json.dumps(data, indent=indent, default=str)

    def save(
        self,
        artifact: Any,
        prefix: str = "reconciliation",
        name: str = "",
        output_dir: Optional[Union[str, Path]] = None,
    ) -> Path:
        """
        Write an artifact as timestamped JSON.

        Returns:
            Path of the written file
        """
        directory = Path(output_dir) if output_dir else self.output_dir
        directory.mkdir(parents=True, exist_ok=True)

        parts = [prefix]
        if name:
            parts.append(re.sub(r"[^A-Za-z0-9_.-]+", "_", name))
        parts.append(utcnow().strftime("%Y%m%d_%H%M%S_%f"))
        filepath = directory / ("_".join(parts) + ".json")

        with open(filepath, "w") as f:
            f.write(self.to_json(artifact))
        logger.info(f"Saved {prefix} report to {filepath}")
        return filepath

    def summarize(self, report: ReconciliationReport) -> str:
        """One-line human summary of a reconciliation report."""
        status = "MATCH" if report.matched else "MISMATCH"
        summary = (
            f"{status} {report.source_table} -> {report.target_table}: "
            f"rows {report.source_row_count}/{report.target_row_count}, "
            f"{len(report.columns) - len(report.mismatched_columns)}/{len(report.columns)} columns match"
        )
        if report.mismatched_columns:
            summary += f", mismatched: {', '.join(report.mismatched_columns)}"
        if report.missing_columns:
            summary += f", missing: {', '.join(sorted(report.missing_columns))}"
        return summary
