"""Submit candidate DDL to the target and report a structured result."""

import logging
from typing import Optional

from .timeouts import TimeoutRunner
from ..exceptions import OperationTimeout
from ..loaders.base import TargetConnector
from ..models.migration import ExecutionResult

logger = logging.getLogger(__name__)


def normalize_statement(ddl: str) -> str:
    """Strip whitespace and trailing semicolons, then terminate with exactly one."""
    statement = (ddl or "").strip()
    while statement.endswith(";"):
        statement = statement[:-1].rstrip()
    return f"{statement};" if statement else ""


class DDLExecutor:
    """
    Executes one DDL statement against the target.

    Failures are returned, not raised: the error message is the target's own
    message, unmodified, so it can drive the next translation attempt. There
    are no retries at this level.
    """

    def __init__(self, target: TargetConnector, timeout: Optional[float] = 60.0, workers: int = 1):
        self.target = target
        self.timeout = timeout
        self._runner = TimeoutRunner(workers, name="tablemigrate-ddl")

    def execute(self, ddl: str) -> ExecutionResult:
        statement = normalize_statement(ddl)
        if not statement:
            return ExecutionResult.failure("Empty DDL statement")

        logger.debug(f"Executing DDL:\n{statement}")
        try:
            self._runner.call(
                self.target.execute_ddl,
                self.timeout,
                statement,
                description="DDL execution",
            )
        except OperationTimeout:
            return ExecutionResult.failure(
                f"DDL execution timed out after {self.timeout} seconds"
            )
        except Exception as e:
            logger.warning(f"DDL execution failed: {e}")
            return ExecutionResult.failure(str(e))

        return ExecutionResult.success()
