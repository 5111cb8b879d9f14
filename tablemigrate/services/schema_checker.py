"""Target table existence check."""

import logging
from typing import Optional

from .timeouts import TimeoutRunner
from ..exceptions import OperationTimeout, SchemaCheckError
from ..loaders.base import TargetConnector
from ..models.schema import TableIdentifier

logger = logging.getLogger(__name__)


class SchemaExistenceChecker:
    """Answers whether the target table already exists. Never creates anything."""

    def __init__(self, target: TargetConnector, timeout: Optional[float] = 60.0, workers: int = 1):
        self.target = target
        self.timeout = timeout
        self._runner = TimeoutRunner(workers, name="tablemigrate-check")

    def exists(self, identifier: TableIdentifier) -> bool:
        """
        Check the target catalog for the identifier's target table.

        Raises:
            SchemaCheckError: If the catalog query fails or times out. A failed
                check is never reported as "absent".
        """
        table_name = identifier.target_qualified_name
        try:
            found = self._runner.call(
                self.target.table_exists,
                self.timeout,
                table_name,
                description=f"table_exists({table_name})",
            )
        except OperationTimeout as e:
            raise SchemaCheckError(
                f"Existence check for {table_name} timed out",
                details={"table": table_name, "timeout": self.timeout},
            ) from e
        except Exception as e:
            raise SchemaCheckError(
                f"Existence check for {table_name} failed: {e}",
                details={"table": table_name},
            ) from e

        logger.info(f"Target table {table_name} {'exists' if found else 'does not exist'}")
        return bool(found)
