"""SQL Server source connector built on python-tds."""

import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .base import SourceConnector
from ..exceptions import SchemaRetrievalError
from ..models.migration import SourceSettings
from ..models.schema import ColumnDefinition, SchemaDefinition, name_parts

logger = logging.getLogger(__name__)


def quote_bracket(name: str) -> str:
    """Quote a SQL Server identifier with brackets."""
    return "[" + name.replace("]", "]]") + "]"


def render_source_ddl(schema: str, table: str, columns: List[ColumnDefinition]) -> str:
    """
    Render a CREATE TABLE statement from catalog metadata.

    Used when no DDL-generating procedure is configured on the server.
    """
    lines = []
    for column in columns:
        parts = [quote_bracket(column.name), column.type_descriptor]
        if column.is_identity:
            parts.append("IDENTITY(1,1)")
        parts.append("NULL" if column.nullable else "NOT NULL")
        if column.default_expr:
            parts.append(f"DEFAULT {column.default_expr}")
        lines.append("    " + " ".join(parts))

    primary_key = [quote_bracket(c.name) for c in columns if c.is_primary_key]
    if primary_key:
        lines.append(f"    PRIMARY KEY ({', '.join(primary_key)})")

    body = ",\n".join(lines)
    return f"CREATE TABLE {quote_bracket(schema)}.{quote_bracket(table)} (\n{body}\n);"


class SQLServerExtractor(SourceConnector):
    """
    Source connector for SQL Server.

    Supports:
    - Column metadata from INFORMATION_SCHEMA
    - DDL from a server-side procedure or rendered from metadata
    - Streaming reads with fetchmany
    """

    name = "sqlserver"

    COLUMNS_QUERY = (
        "SELECT c.COLUMN_NAME, c.DATA_TYPE, c.CHARACTER_MAXIMUM_LENGTH, "
        "c.NUMERIC_PRECISION, c.NUMERIC_SCALE, c.IS_NULLABLE, c.COLUMN_DEFAULT, "
        "COLUMNPROPERTY(OBJECT_ID(QUOTENAME(c.TABLE_SCHEMA) + '.' + QUOTENAME(c.TABLE_NAME)), "
        "c.COLUMN_NAME, 'IsIdentity') AS IS_IDENTITY "
        "FROM {catalog}INFORMATION_SCHEMA.COLUMNS c "
        "WHERE c.TABLE_SCHEMA = %s AND c.TABLE_NAME = %s "
        "ORDER BY c.ORDINAL_POSITION"
    )

    PRIMARY_KEY_QUERY = (
        "SELECT kcu.COLUMN_NAME "
        "FROM {catalog}INFORMATION_SCHEMA.TABLE_CONSTRAINTS tc "
        "JOIN {catalog}INFORMATION_SCHEMA.KEY_COLUMN_USAGE kcu "
        "ON tc.CONSTRAINT_NAME = kcu.CONSTRAINT_NAME AND tc.TABLE_SCHEMA = kcu.TABLE_SCHEMA "
        "WHERE tc.CONSTRAINT_TYPE = 'PRIMARY KEY' AND tc.TABLE_SCHEMA = %s AND tc.TABLE_NAME = %s "
        "ORDER BY kcu.ORDINAL_POSITION"
    )

    # Integer-valued precision reported for types that take no precision
    _IMPLICIT_PRECISION = {"int", "bigint", "smallint", "tinyint", "float", "real", "money", "smallmoney"}

    def __init__(self, settings: SourceSettings):
        """
        Initialize the extractor.

        Args:
            settings: SQL Server connection settings
        """
        self.settings = settings

    def _connect(self):
        """Open a new connection; one per operation."""
        try:
            import pytds
        except ImportError:
            raise ImportError("python-tds package required for SQL Server extraction")

        return pytds.connect(
            server=self.settings.server,
            database=self.settings.database,
            user=self.settings.user,
            password=self.settings.password or "",
            port=self.settings.port,
            timeout=self.settings.timeout,
            login_timeout=self.settings.login_timeout,
            as_dict=True,
        )

    def _resolve(self, table_name: str) -> Tuple[Optional[str], str, str]:
        database, schema, table = name_parts(table_name)
        return database, schema or self.settings.schema, table

    def _qualified(self, table_name: str) -> str:
        database, schema, table = self._resolve(table_name)
        parts = [database] if database else []
        parts.extend([schema, table])
        return ".".join(quote_bracket(p) for p in parts)

    def fetch_source_schema(self, table_name: str) -> SchemaDefinition:
        """Read column metadata and DDL for a table."""
        database, schema, table = self._resolve(table_name)
        catalog = f"{quote_bracket(database)}." if database else ""

        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(self.COLUMNS_QUERY.format(catalog=catalog), (schema, table))
                    column_rows = cur.fetchall()

                    if not column_rows:
                        raise SchemaRetrievalError(
                            f"Source table not found: {schema}.{table}",
                            details={"table": table_name},
                        )

                    cur.execute(self.PRIMARY_KEY_QUERY.format(catalog=catalog), (schema, table))
                    primary_key = {row["COLUMN_NAME"] for row in cur.fetchall()}

                    columns = [self._column_from_row(row, primary_key) for row in column_rows]

                    if self.settings.ddl_procedure:
                        cur.execute(
                            f"EXEC {self.settings.ddl_procedure} @TableName=%s, @SchemaName=%s",
                            (table, schema),
                        )
                        rows = cur.fetchall()
                        if not rows or not rows[0].get("TableDDL"):
                            raise SchemaRetrievalError(
                                f"{self.settings.ddl_procedure} returned no DDL for {schema}.{table}",
                                details={"table": table_name},
                            )
                        ddl = rows[0]["TableDDL"]
                    else:
                        ddl = render_source_ddl(schema, table, columns)

        except SchemaRetrievalError:
            raise
        except Exception as e:
            raise SchemaRetrievalError(
                f"Failed to retrieve schema for {table_name}: {e}",
                details={"table": table_name},
            ) from e

        logger.info(f"Retrieved schema for {schema}.{table} ({len(columns)} columns)")
        return SchemaDefinition(ddl=ddl, columns=columns, table_name=table)

    def _column_from_row(self, row: Dict[str, Any], primary_key: set) -> ColumnDefinition:
        data_type = row["DATA_TYPE"]
        precision = row.get("NUMERIC_PRECISION")
        if data_type.lower() in self._IMPLICIT_PRECISION:
            precision = None

        return ColumnDefinition(
            name=row["COLUMN_NAME"],
            source_type=data_type,
            nullable=str(row.get("IS_NULLABLE", "YES")).upper() == "YES",
            default_expr=row.get("COLUMN_DEFAULT"),
            max_length=row.get("CHARACTER_MAXIMUM_LENGTH"),
            precision=precision,
            scale=row.get("NUMERIC_SCALE") if precision is not None else None,
            is_identity=bool(row.get("IS_IDENTITY")),
            is_primary_key=row["COLUMN_NAME"] in primary_key,
        )

    def read_source_rows(self, table_name: str) -> Iterator[Dict[str, Any]]:
        """Stream rows with fetchmany; a new connection per call."""
        query = f"SELECT * FROM {self._qualified(table_name)}"
        logger.debug(f"Streaming source rows: {query}")

        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(query)
                while True:
                    rows = cur.fetchmany(self.settings.fetch_size)
                    if not rows:
                        break
                    for row in rows:
                        yield dict(row)

    def list_columns(self, table_name: str) -> List[str]:
        """Column names in ordinal order."""
        database, schema, table = self._resolve(table_name)
        catalog = f"{quote_bracket(database)}." if database else ""

        with self._connect() as conn:
            with conn.cursor() as cur:
                cur.execute(self.COLUMNS_QUERY.format(catalog=catalog), (schema, table))
                return [row["COLUMN_NAME"] for row in cur.fetchall()]

    def validate_connection(self) -> bool:
        """Validate the connection to SQL Server."""
        try:
            with self._connect() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1 AS OK")
                    cur.fetchall()
            return True
        except Exception as e:
            logger.error(f"SQL Server connection validation failed: {e}")
            return False
