"""Value encoding for batch writes: SQL literals and staged CSV files."""

import math
import logging
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, TextIO

from ..models.record import RowBatch
from ..models.schema import split_qualified_name

logger = logging.getLogger(__name__)

NULL_LITERAL = "NULL"


def escape_text(value: str) -> str:
    """Double embedded quotes and backslashes for a single-quoted literal."""
    return value.replace("\\", "\\\\").replace("'", "''")


def quote_identifier(name: str) -> str:
    """Double-quote an identifier, doubling embedded double quotes."""
    return '"' + str(name).replace('"', '""') + '"'


def quote_qualified_name(name: str) -> str:
    """Quote every part of a dotted table name."""
    return ".".join(quote_identifier(part) for part in split_qualified_name(name))


def _as_text(value: Any) -> str:
    """Text form of a non-numeric value."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, (date, time)):
        return value.isoformat()
    return str(value)


def encode_literal(value: Any) -> str:
    """
    Encode one value as a SQL literal.

    - None -> NULL
    - bool -> TRUE / FALSE
    - int, Decimal, finite float -> unquoted
    - everything else (text, temporal, binary as hex, NaN/inf) -> quoted with
      quotes escaped by doubling
    """
    if value is None:
        return NULL_LITERAL
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, Decimal):
        if value.is_finite():
            return str(value)
        return f"'{escape_text(str(value))}'"
    if isinstance(value, float):
        if math.isfinite(value):
            return repr(value)
        return f"'{escape_text(str(value))}'"
    return f"'{escape_text(_as_text(value))}'"


def encode_row(row: Dict[str, Any], columns: List[str]) -> str:
    """Encode a row as a parenthesized VALUES tuple in column order."""
    return "(" + ", ".join(encode_literal(row.get(col)) for col in columns) + ")"


def build_insert_statement(table_name: str, batch: RowBatch) -> str:
    """Build a single multi-row INSERT for a batch."""
    columns = batch.columns
    if not columns:
        raise ValueError(f"Batch {batch.batch_number} has no columns to insert")

    column_list = ", ".join(quote_identifier(col) for col in columns)
    values = ", ".join(encode_row(row, columns) for row in batch.rows)
    return f"INSERT INTO {quote_qualified_name(table_name)} ({column_list}) VALUES {values}"


def _csv_field(value: Any) -> str:
    """
    Encode one CSV field.

    NULL is an empty unquoted field and every text value is enclosed in double
    quotes, so an empty string or any text at all never reads back as NULL.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, Decimal) and value.is_finite():
        return str(value)
    if isinstance(value, float) and math.isfinite(value):
        return repr(value)
    return '"' + _as_text(value).replace('"', '""') + '"'


def write_csv(batch: RowBatch, stream: TextIO, columns: Optional[Iterable[str]] = None) -> int:
    """
    Write a batch as CSV for a staged bulk load.

    The load must use ``FIELD_OPTIONALLY_ENCLOSED_BY='"'`` with
    ``EMPTY_FIELD_AS_NULL=TRUE`` and no ``NULL_IF`` markers. Returns the
    number of rows written.
    """
    columns = list(columns) if columns is not None else batch.columns
    stream.write(",".join(_csv_field(str(col)) for col in columns) + "\n")
    for row in batch.rows:
        stream.write(",".join(_csv_field(row.get(col)) for col in columns) + "\n")
    return len(batch.rows)
