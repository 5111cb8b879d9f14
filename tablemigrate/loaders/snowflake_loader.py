"""Snowflake target connector built on snowflake-connector-python."""

import json
import logging
import os
import tempfile
import threading
import uuid
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .base import TargetConnector
from ..models.migration import ExecutionResult, TargetSettings
from ..models.record import RowBatch
from ..models.schema import name_parts
from ..services.encoding import build_insert_statement, quote_identifier, write_csv

logger = logging.getLogger(__name__)


def resolve_identifier(name: str) -> str:
    """
    Quote one name part the way Snowflake resolves it.

    Unquoted identifiers resolve upper-case, and migrated columns are
    upper-cased, so every part is quoted in upper case.
    """
    return quote_identifier(name.upper())


class SnowflakeLoader(TargetConnector):
    """
    Target connector for Snowflake.

    Supports:
    - Catalog lookups through INFORMATION_SCHEMA
    - Staged bulk loads (CSV -> PUT to the user stage -> COPY INTO)
    - Multi-row INSERT loads
    - Cortex COMPLETE and Cortex Search calls
    """

    name = "snowflake"

    FILE_FORMAT = (
        "FILE_FORMAT=(TYPE=CSV SKIP_HEADER=1 FIELD_OPTIONALLY_ENCLOSED_BY='\"' "
        "ESCAPE_UNENCLOSED_FIELD=NONE NULL_IF=() EMPTY_FIELD_AS_NULL=TRUE)"
    )

    def __init__(self, settings: TargetSettings, fetch_size: int = 10000):
        """
        Initialize the loader.

        Args:
            settings: Snowflake connection settings
            fetch_size: Rows fetched per round trip when reading a table
        """
        self.settings = settings
        self.fetch_size = fetch_size
        self._connection = None
        self._connection_lock = threading.Lock()
        # Cursors of in-flight batch writes, keyed by (table, run id, batch number)
        self._active_writes: Dict[Tuple[str, str, int], Any] = {}
        self._active_lock = threading.Lock()

    @property
    def connection(self):
        """Get or create the Snowflake connection (shared; cursors per operation)."""
        with self._connection_lock:
            if self._connection is None:
                try:
                    import snowflake.connector
                except ImportError:
                    raise ImportError(
                        "snowflake-connector-python package required for Snowflake loading"
                    )

                kwargs: Dict[str, Any] = {
                    "account": self.settings.account,
                    "user": self.settings.user,
                    "password": self.settings.password,
                    "warehouse": self.settings.warehouse,
                    "database": self.settings.database,
                    "schema": self.settings.schema,
                }
                if self.settings.role:
                    kwargs["role"] = self.settings.role
                if self.settings.timeout:
                    kwargs["session_parameters"] = {
                        "STATEMENT_TIMEOUT_IN_SECONDS": int(self.settings.timeout),
                    }

                self._connection = snowflake.connector.connect(**kwargs)
                logger.info(f"Connected to Snowflake account {self.settings.account}")
        return self._connection

    def close(self):
        with self._connection_lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    def qualified_name(self, table_name: str) -> str:
        """Render a one to three part table name for SQL."""
        database, schema, table = name_parts(table_name)
        parts = [p for p in (database, schema, table) if p]
        return ".".join(resolve_identifier(p) for p in parts)

    def _catalog_filter(self, table_name: str) -> Tuple[str, str, Tuple[Any, ...]]:
        """Catalog prefix, WHERE clause and bind parameters for a table."""
        database, schema, table = name_parts(table_name)
        catalog = f"{resolve_identifier(database)}." if database else ""

        if schema:
            where = "UPPER(TABLE_SCHEMA) = %s AND UPPER(TABLE_NAME) = %s"
            params: Tuple[Any, ...] = (schema.upper(), table.upper())
        else:
            where = "TABLE_SCHEMA = CURRENT_SCHEMA() AND UPPER(TABLE_NAME) = %s"
            params = (table.upper(),)
        return catalog, where, params

    def _execute(
        self,
        sql: str,
        params: Optional[Tuple[Any, ...]] = None,
        write_key: Optional[Tuple[str, str, int]] = None,
    ) -> List[Any]:
        cursor = self.connection.cursor()
        if write_key is not None:
            with self._active_lock:
                self._active_writes[write_key] = cursor
        try:
            cursor.execute(sql, params)
            return cursor.fetchall()
        finally:
            if write_key is not None:
                with self._active_lock:
                    self._active_writes.pop(write_key, None)
            cursor.close()

    @staticmethod
    def _write_key(table_name: str, batch: RowBatch) -> Tuple[str, str, int]:
        return (table_name, batch.run_id, batch.batch_number)

    def table_exists(self, table_name: str) -> bool:
        catalog, where, params = self._catalog_filter(table_name)
        rows = self._execute(
            f"SELECT COUNT(*) FROM {catalog}INFORMATION_SCHEMA.TABLES WHERE {where}",
            params,
        )
        return bool(rows and rows[0][0] > 0)

    def execute_ddl(self, ddl: str) -> None:
        logger.debug(f"Executing on Snowflake: {ddl}")
        self._execute(ddl)

    def list_columns(self, table_name: str) -> List[str]:
        catalog, where, params = self._catalog_filter(table_name)
        rows = self._execute(
            f"SELECT COLUMN_NAME FROM {catalog}INFORMATION_SCHEMA.COLUMNS "
            f"WHERE {where} ORDER BY ORDINAL_POSITION",
            params,
        )
        return [row[0] for row in rows]

    def truncate_table(self, table_name: str) -> None:
        logger.info(f"Truncating {table_name}")
        self._execute(f"TRUNCATE TABLE IF EXISTS {self.qualified_name(table_name)}")

    def count_rows(self, table_name: str) -> int:
        rows = self._execute(f"SELECT COUNT(*) FROM {self.qualified_name(table_name)}")
        return int(rows[0][0]) if rows else 0

    def query_target_table(self, table_name: str) -> Iterator[Dict[str, Any]]:
        """Stream table rows as dicts keyed by column name."""
        from snowflake.connector import DictCursor

        cursor = self.connection.cursor(DictCursor)
        try:
            cursor.execute(f"SELECT * FROM {self.qualified_name(table_name)}")
            while True:
                rows = cursor.fetchmany(self.fetch_size)
                if not rows:
                    break
                for row in rows:
                    yield row
        finally:
            cursor.close()

    def write_batch(self, table_name: str, batch: RowBatch) -> ExecutionResult:
        """Write one batch with the configured write mode."""
        if not batch.rows:
            return ExecutionResult.success()

        try:
            if self.settings.write_mode == "insert":
                self._execute(
                    build_insert_statement(self.qualified_name(table_name), batch),
                    write_key=self._write_key(table_name, batch),
                )
            else:
                self._stage_and_copy(table_name, batch)
        except Exception as e:
            return ExecutionResult.failure(str(e))

        logger.debug(f"Wrote batch {batch.batch_number} ({len(batch)} rows) to {table_name}")
        return ExecutionResult.success()

    def stage_location(self, batch: RowBatch) -> str:
        """
        User-stage directory of a batch.

        Derived from the run id and batch number so every retry of a batch
        stages the same file, and COPY load metadata skips a file already loaded.
        """
        run_id = batch.run_id or uuid.uuid4().hex
        return f"@~/{self.settings.stage_path}/{run_id}/{batch.batch_number:06d}"

    def _stage_and_copy(self, table_name: str, batch: RowBatch) -> None:
        """Write the batch to CSV, PUT it on the user stage and COPY it in."""
        columns = batch.columns
        stage = self.stage_location(batch)
        filename = f"batch_{batch.batch_number:06d}.csv"

        with tempfile.TemporaryDirectory(prefix="tablemigrate_") as tmp:
            path = os.path.join(tmp, filename)
            with open(path, "w", newline="", encoding="utf-8") as f:
                write_csv(batch, f, columns)

            file_url = "file://" + path.replace("\\", "/")
            self._execute(f"PUT '{file_url}' {stage} AUTO_COMPRESS=TRUE OVERWRITE=FALSE")

        column_list = ", ".join(quote_identifier(c) for c in columns)
        positions = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        self._execute(
            f"COPY INTO {self.qualified_name(table_name)} ({column_list}) "
            f"FROM (SELECT {positions} FROM {stage}) "
            f"FILES=('{filename}.gz') "
            f"{self.FILE_FORMAT} ON_ERROR='ABORT_STATEMENT' PURGE=TRUE",
            write_key=self._write_key(table_name, batch),
        )

    def cancel_write(self, table_name: str, batch: RowBatch) -> None:
        """Cancel the running statement of a batch write with SYSTEM$CANCEL_QUERY."""
        with self._active_lock:
            cursor = self._active_writes.get(self._write_key(table_name, batch))
        query_id = getattr(cursor, "sfqid", None) if cursor is not None else None
        if not query_id:
            logger.debug(f"No running statement to cancel for batch {batch.batch_number}")
            return

        logger.warning(f"Cancelling query {query_id} of batch {batch.batch_number}")
        self._execute("SELECT SYSTEM$CANCEL_QUERY(%s)", (query_id,))

    def cortex_complete(self, model: str, prompt: str) -> str:
        """Run SNOWFLAKE.CORTEX.COMPLETE and return the completion text."""
        rows = self._execute("SELECT SNOWFLAKE.CORTEX.COMPLETE(%s, %s)", (model, prompt))
        return rows[0][0] if rows and rows[0][0] is not None else ""

    def cortex_search(
        self,
        service: str,
        query: str,
        columns: Optional[List[str]] = None,
        limit: int = 3,
    ) -> List[Dict[str, Any]]:
        """Query a Cortex Search service and return its result rows."""
        payload = {"query": query, "columns": columns or ["CHUNK"], "limit": limit}
        rows = self._execute(
            "SELECT SNOWFLAKE.CORTEX.SEARCH_PREVIEW(%s, %s)",
            (service, json.dumps(payload)),
        )
        if not rows or not rows[0][0]:
            return []
        return json.loads(rows[0][0]).get("results", [])

    def validate_connection(self) -> bool:
        """Validate the connection to Snowflake."""
        try:
            self._execute("SELECT CURRENT_VERSION()")
            return True
        except Exception as e:
            logger.error(f"Snowflake connection validation failed: {e}")
            return False
