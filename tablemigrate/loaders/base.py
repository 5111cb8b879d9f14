"""Base target connector interface."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List
import logging

from ..models.migration import ExecutionResult
from ..models.record import RowBatch

logger = logging.getLogger(__name__)


class TargetConnector(ABC):
    """
    Base class for target warehouse connectors.

    Write operations report failures as ``ExecutionResult`` values so that the
    caller decides on retries; catalog lookups raise.
    """

    name = "target"

    @abstractmethod
    def table_exists(self, table_name: str) -> bool:
        """
        Check the target catalog for a table.

        Raises:
            Exception: Any driver error; callers must not read it as "absent"
        """
        pass

    @abstractmethod
    def execute_ddl(self, ddl: str) -> None:
        """Execute one DDL statement, raising the driver error on failure."""
        pass

    @abstractmethod
    def write_batch(self, table_name: str, batch: RowBatch) -> ExecutionResult:
        """
        Write a batch of rows as one operation.

        Returns:
            ExecutionResult with the raw driver message on failure
        """
        pass

    @abstractmethod
    def query_target_table(self, table_name: str) -> Iterator[Dict[str, Any]]:
        """Stream the rows of a target table."""
        pass

    @abstractmethod
    def list_columns(self, table_name: str) -> List[str]:
        """Column names of a target table in ordinal order."""
        pass

    @abstractmethod
    def truncate_table(self, table_name: str) -> None:
        """Remove every row from a target table."""
        pass

    def cancel_write(self, table_name: str, batch: RowBatch) -> None:
        """
        Ask the target to abort an in-flight write of ``batch``.

        Called after a write timed out; the caller still waits for the write
        to return before retrying it. Connectors without a cancel do nothing.
        """
        pass

    def count_rows(self, table_name: str) -> int:
        """Count rows by streaming the table; connectors override with COUNT(*)."""
        return sum(1 for _ in self.query_target_table(table_name))

    def validate_connection(self) -> bool:
        """Validate the connection to the target."""
        return True
