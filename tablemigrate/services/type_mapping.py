"""Static SQL Server to Snowflake type mapping."""

import re
import logging
from types import MappingProxyType
from typing import Iterable, List, Mapping, Tuple

from ..models.schema import ColumnDefinition, MappedType

logger = logging.getLogger(__name__)


# Target type per source base type. "{args}" is replaced with the source
# type's parameters when the target keeps them.
_TYPE_MAP = {
    "int": "INTEGER",
    "integer": "INTEGER",
    "bigint": "BIGINT",
    "smallint": "SMALLINT",
    "tinyint": "NUMBER(3, 0)",
    "bit": "BOOLEAN",
    "decimal": "NUMBER{args}",
    "numeric": "NUMBER{args}",
    "money": "NUMBER(19,4)",
    "smallmoney": "NUMBER(10,4)",
    "float": "FLOAT",
    "real": "FLOAT",
    "datetime": "TIMESTAMP_NTZ",
    "datetime2": "TIMESTAMP_NTZ",
    "smalldatetime": "TIMESTAMP_NTZ",
    "datetimeoffset": "TIMESTAMP_TZ",
    "date": "DATE",
    "time": "TIME",
    "char": "VARCHAR",
    "varchar": "VARCHAR",
    "nchar": "CHAR{args}",
    "nvarchar": "VARCHAR",
    "text": "STRING",
    "ntext": "STRING",
    "binary": "BINARY",
    "varbinary": "BINARY",
    "image": "BINARY",
    "uniqueidentifier": "STRING",
}

TYPE_MAP: Mapping[str, str] = MappingProxyType(_TYPE_MAP)

_TYPE_PATTERN = re.compile(r"^\s*\[?([A-Za-z_][A-Za-z0-9_ ]*?)\]?\s*(\(([^)]*)\))?\s*$")


def parse_type(source_type: str) -> Tuple[str, List[str]]:
    """
    Split a type descriptor into base name and parameters.

    ``"decimal(10, 2)"`` -> ``("decimal", ["10", "2"])``
    """
    match = _TYPE_PATTERN.match(source_type or "")
    if not match:
        return (source_type or "").strip().lower(), []

    base = match.group(1).strip().lower()
    args = []
    if match.group(3) is not None:
        args = [a.strip().lower() for a in match.group(3).split(",") if a.strip()]
    return base, args


def map_type(source_type: str) -> MappedType:
    """
    Map a source type descriptor to its target type.

    Types missing from the table come back verbatim with ``mapped=False``;
    callers treat them as hints, not errors.
    """
    base, args = parse_type(source_type)
    template = TYPE_MAP.get(base)

    if template is None:
        return MappedType(source_type=source_type, target_type=source_type, mapped=False)

    rendered_args = ""
    if "{args}" in template and args and "max" not in args:
        rendered_args = "(" + ",".join(args) + ")"
    return MappedType(
        source_type=source_type,
        target_type=template.format(args=rendered_args),
        mapped=True,
    )


def mapping_hints(columns: Iterable[ColumnDefinition]) -> str:
    """
    Render type hints for a column list.

    Unmapped types are listed separately so the translator has to decide
    on them explicitly.
    """
    mapped_lines = []
    unmapped_lines = []

    for column in columns:
        result = map_type(column.type_descriptor)
        if result.mapped:
            mapped_lines.append(f"  {column.name}: {result.source_type} -> {result.target_type}")
        else:
            unmapped_lines.append(f"  {column.name}: {result.source_type}")

    if not mapped_lines and not unmapped_lines:
        return ""

    sections = []
    if mapped_lines:
        sections.append("Type mapping hints:\n" + "\n".join(mapped_lines))
    if unmapped_lines:
        logger.info(f"{len(unmapped_lines)} column(s) have no static type mapping")
        sections.append(
            "Unmapped source types (choose a target type explicitly):\n"
            + "\n".join(unmapped_lines)
        )
    return "\n\n".join(sections)


def describe_type_map() -> str:
    """Render the type table, one ``source -> target`` line per entry."""
    return "\n".join(
        f"{source} -> {target.format(args='(p,s)' if source in ('decimal', 'numeric') else '(n)')}"
        for source, target in TYPE_MAP.items()
    )
