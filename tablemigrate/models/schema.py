"""Schema models for table identifiers, source columns and type mappings."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


def split_qualified_name(name: str) -> List[str]:
    """
    Split a dotted table name into its parts.

    Dots inside ``[brackets]`` or ``"double quotes"`` do not split, and the
    delimiters themselves are removed from each part.
    """
    parts = []
    current = []
    closer = None

    for char in name.strip():
        if closer:
            if char == closer:
                closer = None
            else:
                current.append(char)
        elif char == "[":
            closer = "]"
        elif char == '"':
            closer = '"'
        elif char == ".":
            parts.append("".join(current))
            current = []
        else:
            current.append(char)

    if closer:
        raise ValueError(f"Unterminated identifier in table name: {name}")

    parts.append("".join(current))
    if any(not part.strip() for part in parts):
        raise ValueError(f"Invalid table name: {name!r}")
    return [part.strip() for part in parts]


def name_parts(name: str) -> Tuple[Optional[str], Optional[str], str]:
    """Return ``(database, schema, table)`` for a one to three part name."""
    parts = split_qualified_name(name)
    if len(parts) > 3:
        raise ValueError(f"Too many name parts in {name!r}")
    padded = [None] * (3 - len(parts)) + parts
    return padded[0], padded[1], padded[2]


@dataclass(frozen=True)
class TableIdentifier:
    """Names of one table on both sides of a migration."""
    source_qualified_name: str
    target_qualified_name: str

    def __post_init__(self):
        # Validates both names eagerly so bad input fails at construction.
        name_parts(self.source_qualified_name)
        name_parts(self.target_qualified_name)

    @classmethod
    def parse(cls, spec: str) -> "TableIdentifier":
        """
        Build an identifier from ``source[:target]``.

        Without a target, e.g. ``dbo.Employees``, the bare source table name
        is the target, resolved in the configured target schema.
        """
        spec = spec.strip()
        if not spec:
            raise ValueError("Table specification is empty")

        if ":" in spec:
            source, target = spec.split(":", 1)
        else:
            source, target = spec, ""

        if not target.strip():
            target = name_parts(source)[2]

        return cls(source_qualified_name=source.strip(), target_qualified_name=target.strip())

    @property
    def source_table(self) -> str:
        return name_parts(self.source_qualified_name)[2]

    @property
    def target_table(self) -> str:
        return name_parts(self.target_qualified_name)[2]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "source": self.source_qualified_name,
            "target": self.target_qualified_name,
        }

    def __str__(self) -> str:
        return f"{self.source_qualified_name} -> {self.target_qualified_name}"


@dataclass
class ColumnDefinition:
    """A column as described by the source catalog."""
    name: str
    source_type: str
    nullable: bool = True
    default_expr: Optional[str] = None
    max_length: Optional[int] = None  # -1 means (max)
    precision: Optional[int] = None
    scale: Optional[int] = None
    is_identity: bool = False
    is_primary_key: bool = False

    @property
    def type_descriptor(self) -> str:
        """Source type with its length or precision, e.g. ``varchar(50)``."""
        base = self.source_type.strip()
        if "(" in base:
            return base

        lowered = base.lower()
        if lowered in ("decimal", "numeric") and self.precision is not None:
            return f"{base}({self.precision},{self.scale or 0})"
        if self.max_length is not None and lowered in (
            "char", "varchar", "nchar", "nvarchar", "binary", "varbinary"
        ):
            length = "max" if self.max_length == -1 else str(self.max_length)
            return f"{base}({length})"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result = {
            "name": self.name,
            "source_type": self.type_descriptor,
            "nullable": self.nullable,
        }
        if self.default_expr is not None:
            result["default"] = self.default_expr
        if self.is_identity:
            result["identity"] = True
        if self.is_primary_key:
            result["primary_key"] = True
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ColumnDefinition":
        """Create from dictionary representation."""
        return cls(
            name=data["name"],
            source_type=data.get("source_type", data.get("type", "")),
            nullable=data.get("nullable", True),
            default_expr=data.get("default"),
            max_length=data.get("max_length"),
            precision=data.get("precision"),
            scale=data.get("scale"),
            is_identity=data.get("identity", False),
            is_primary_key=data.get("primary_key", False),
        )


@dataclass
class SchemaDefinition:
    """Source DDL text plus the structured column list when available."""
    ddl: str
    columns: List[ColumnDefinition] = field(default_factory=list)
    table_name: str = ""

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "table_name": self.table_name,
            "ddl": self.ddl,
            "columns": [c.to_dict() for c in self.columns],
        }


@dataclass(frozen=True)
class MappedType:
    """Result of looking a source type up in the static type map."""
    source_type: str
    target_type: str
    mapped: bool = True

    @property
    def unmapped(self) -> bool:
        return not self.mapped

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_type": self.source_type,
            "target_type": self.target_type,
            "mapped": self.mapped,
        }


def parse_table_specs(specs: List[str]) -> List[TableIdentifier]:
    """Parse ``source[:target]`` table arguments, also accepting comma-separated lists."""
    identifiers = []
    for spec in specs:
        for part in spec.split(","):
            if part.strip():
                identifiers.append(TableIdentifier.parse(part))
    return identifiers
