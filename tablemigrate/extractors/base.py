"""Base source connector interface."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List
import logging

from ..models.schema import SchemaDefinition

logger = logging.getLogger(__name__)


class SourceConnector(ABC):
    """
    Base class for source database connectors.

    Connectors own their connection settings and open a connection per
    operation; nothing is shared process-wide.
    """

    name = "source"

    @abstractmethod
    def fetch_source_schema(self, table_name: str) -> SchemaDefinition:
        """
        Extract the DDL and column list of a source table.

        Args:
            table_name: One to three part table name

        Returns:
            SchemaDefinition for the table

        Raises:
            SchemaRetrievalError: If the table or its metadata cannot be read
        """
        pass

    @abstractmethod
    def read_source_rows(self, table_name: str) -> Iterator[Dict[str, Any]]:
        """
        Stream the rows of a source table.

        The sequence is lazy, finite and restartable: each call opens a new
        cursor. No row order is guaranteed.

        Yields:
            One dict per row, keyed by the source column name
        """
        pass

    @abstractmethod
    def list_columns(self, table_name: str) -> List[str]:
        """Column names of a source table in ordinal order."""
        pass

    def validate_connection(self) -> bool:
        """Validate the connection to the source."""
        return True
