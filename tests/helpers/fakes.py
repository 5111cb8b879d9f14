"""In-memory connectors and scripted oracles for tests."""

import re
import threading
import time
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Union

from tablemigrate.exceptions import SchemaRetrievalError
from tablemigrate.extractors.base import SourceConnector
from tablemigrate.loaders.base import TargetConnector
from tablemigrate.models.migration import ExecutionResult, TranslationProposal
from tablemigrate.models.record import RowBatch
from tablemigrate.models.schema import ColumnDefinition, SchemaDefinition
from tablemigrate.services.knowledge import KnowledgeService
from tablemigrate.services.llm_inference import TranslationOracle

_CREATE_TABLE = re.compile(r"CREATE\s+TABLE\s+(\S+)\s*\(", re.IGNORECASE)


class InMemorySource(SourceConnector):
    """Source connector serving rows and DDL from dicts."""

    name = "memory-source"

    def __init__(
        self,
        tables: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        ddl: Optional[Dict[str, str]] = None,
        columns: Optional[Dict[str, List[ColumnDefinition]]] = None,
        fail_after: Optional[int] = None,
    ):
        self.tables = tables or {}
        self.ddl = ddl or {}
        self.columns = columns or {}
        self.fail_after = fail_after
        self.reads = 0

    def fetch_source_schema(self, table_name: str) -> SchemaDefinition:
        if table_name not in self.ddl:
            raise SchemaRetrievalError(f"Source table not found: {table_name}")
        return SchemaDefinition(
            ddl=self.ddl[table_name],
            columns=list(self.columns.get(table_name, [])),
            table_name=table_name,
        )

    def read_source_rows(self, table_name: str) -> Iterator[Dict[str, Any]]:
        self.reads += 1
        for index, row in enumerate(self.tables[table_name]):
            if self.fail_after is not None and index >= self.fail_after:
                raise ConnectionError("connection reset by peer")
            yield dict(row)

    def list_columns(self, table_name: str) -> List[str]:
        if table_name in self.columns:
            return [c.name for c in self.columns[table_name]]
        rows = self.tables.get(table_name) or []
        return list(rows[0].keys()) if rows else []


class InMemoryTarget(TargetConnector):
    """
    Target connector keeping tables in memory.

    ``ddl_errors`` are raised by successive ``execute_ddl`` calls before any
    DDL succeeds. ``write_failures`` maps a batch number to how many writes of
    that batch fail before one succeeds (-1 fails forever).
    """

    name = "memory-target"

    def __init__(
        self,
        tables: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        ddl_errors: Optional[Sequence[Union[Exception, str]]] = None,
        write_failures: Optional[Dict[int, int]] = None,
        write_delay: float = 0.0,
        exists_error: Optional[Exception] = None,
    ):
        self.tables: Dict[str, List[Dict[str, Any]]] = tables or {}
        self.ddl_errors = list(ddl_errors or [])
        self.write_failures = dict(write_failures or {})
        self.write_delay = write_delay
        self.exists_error = exists_error

        self.executed_ddl: List[str] = []
        self.write_attempts: Dict[int, int] = {}
        self.max_concurrent_writes = 0
        self.truncated: List[str] = []
        self.cancelled_writes: List[int] = []
        self._active_writes = 0
        self._lock = threading.Lock()

    def table_exists(self, table_name: str) -> bool:
        if self.exists_error is not None:
            raise self.exists_error
        return table_name in self.tables

    def execute_ddl(self, ddl: str) -> None:
        self.executed_ddl.append(ddl)
        if self.ddl_errors:
            error = self.ddl_errors.pop(0)
            raise error if isinstance(error, Exception) else RuntimeError(error)

        match = _CREATE_TABLE.search(ddl)
        if match:
            self.tables.setdefault(match.group(1), [])

    def write_batch(self, table_name: str, batch: RowBatch) -> ExecutionResult:
        with self._lock:
            self._active_writes += 1
            self.max_concurrent_writes = max(self.max_concurrent_writes, self._active_writes)
            attempt = self.write_attempts.get(batch.batch_number, 0) + 1
            self.write_attempts[batch.batch_number] = attempt

        try:
            if self.write_delay:
                time.sleep(self.write_delay)

            remaining = self.write_failures.get(batch.batch_number, 0)
            if remaining == -1 or attempt <= remaining:
                return ExecutionResult.failure(f"Simulated write failure for batch {batch.batch_number}")

            with self._lock:
                self.tables.setdefault(table_name, []).extend(dict(row) for row in batch.rows)
            return ExecutionResult.success()
        finally:
            with self._lock:
                self._active_writes -= 1

    def cancel_write(self, table_name: str, batch: RowBatch) -> None:
        self.cancelled_writes.append(batch.batch_number)

    def query_target_table(self, table_name: str) -> Iterator[Dict[str, Any]]:
        for row in list(self.tables.get(table_name, [])):
            yield dict(row)

    def list_columns(self, table_name: str) -> List[str]:
        rows = self.tables.get(table_name) or []
        return list(rows[0].keys()) if rows else []

    def truncate_table(self, table_name: str) -> None:
        self.truncated.append(table_name)
        self.tables[table_name] = []

    def rows(self, table_name: str) -> List[Dict[str, Any]]:
        return list(self.tables.get(table_name, []))


class ScriptedOracle(TranslationOracle):
    """
    Oracle returning scripted answers in order.

    Each entry is DDL text, an exception to raise, or a callable receiving the
    call's keyword arguments. The last entry repeats once the script runs out.
    """

    name = "scripted"

    def __init__(self, script: Sequence[Union[str, Exception, Callable[..., str]]]):
        self.script = list(script)
        self.calls: List[Dict[str, str]] = []

    def translate(
        self,
        source_ddl: str,
        prior_candidate: str = "",
        diagnostics: str = "",
        prior_error: str = "",
        target_table: str = "",
    ) -> TranslationProposal:
        call = {
            "source_ddl": source_ddl,
            "prior_candidate": prior_candidate,
            "diagnostics": diagnostics,
            "prior_error": prior_error,
            "target_table": target_table,
        }
        self.calls.append(call)

        index = min(len(self.calls), len(self.script)) - 1
        answer = self.script[index]
        if isinstance(answer, Exception):
            raise answer
        if callable(answer):
            answer = answer(**call)
        return TranslationProposal(ddl=answer, explanation=f"scripted answer {len(self.calls)}")


class StaticKnowledge(KnowledgeService):
    """Knowledge service returning a fixed text and remembering the queries."""

    name = "static"

    def __init__(self, text: str = "", error: Optional[Exception] = None):
        self.text = text
        self.error = error
        self.queries: List[str] = []

    def search(self, query: str) -> str:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        return self.text


def make_rows(count: int, start: int = 1) -> List[Dict[str, Any]]:
    """Employee-like rows with a nullable column."""
    return [
        {
            "EmployeeID": i,
            "FirstName": f"Name{i}",
            "Dept": None if i % 3 == 0 else f"D{i % 4}",
        }
        for i in range(start, start + count)
    ]


class FakeCursor:
    """DB-API cursor answering queries through a responder callable."""

    def __init__(self, connection: "FakeConnection"):
        self.connection = connection
        self.sfqid: Optional[str] = None
        self._rows: List[Any] = []

    def execute(self, sql: str, params: Any = None) -> None:
        self.connection.executed.append((sql, params))
        self.sfqid = f"query-{len(self.connection.executed)}"
        self._rows = list(self.connection.responder(sql, params) or [])

    def fetchall(self) -> List[Any]:
        rows, self._rows = self._rows, []
        return rows

    def fetchmany(self, size: int) -> List[Any]:
        rows, self._rows = self._rows[:size], self._rows[size:]
        return rows

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class FakeConnection:
    """DB-API connection recording every statement executed on it."""

    def __init__(self, responder: Optional[Callable[[str, Any], List[Any]]] = None):
        self.responder = responder or (lambda sql, params: [])
        self.executed: List[Any] = []
        self.closed = False

    def cursor(self, *args: Any) -> FakeCursor:
        return FakeCursor(self)

    def close(self) -> None:
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
