"""Column metadata, type mapping and rename rule models."""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional


# Postgres type name -> MySQL column type. Keys are lowercase.
TYPE_MAPPING: Dict[str, str] = {
    "uuid": "VARCHAR(36)",
    "text": "TEXT",
    "varchar": "VARCHAR(255)",
    "character varying": "VARCHAR(255)",
    "character": "CHAR(1)",
    "integer": "INT",
    "smallint": "SMALLINT",
    "bigint": "BIGINT",
    "boolean": "BOOLEAN",
    "timestamp with time zone": "DATETIME",
    "timestamp without time zone": "DATETIME",
    "date": "DATE",
    "time": "TIME",
    "numeric": "DECIMAL(10,2)",
    "decimal": "DECIMAL(10,2)",
    "real": "FLOAT",
    "double precision": "DOUBLE",
    "json": "JSON",
    "jsonb": "JSON",
    "bytea": "BLOB",
    "user-defined": "VARCHAR(50)",
}

FALLBACK_TYPE = "TEXT"

# Marker for a rename rule that removes the column entirely.
DROP = None


@dataclass
class ColumnDefinition:
    """Description of one source column."""
    name: str
    source_type: str
    nullable: bool = True
    default_value: Optional[Any] = None
    max_length: Optional[int] = None

    @classmethod
    def from_openapi_property(
        cls,
        name: str,
        prop: Dict[str, Any],
        required: Iterable[str] = ()
    ) -> "ColumnDefinition":
        """Create from a PostgREST OpenAPI column property."""
        source_type = prop.get("format") or prop.get("type") or FALLBACK_TYPE.lower()
        if prop.get("enum"):
            source_type = "user-defined"
        # Array columns are reported as e.g. "text[]"; store them as JSON.
        if source_type.endswith("[]"):
            source_type = "jsonb"
        return cls(
            name=name,
            source_type=source_type,
            nullable=name not in set(required),
            default_value=prop.get("default"),
            max_length=prop.get("maxLength"),
        )


@dataclass
class ColumnRenameRule:
    """
    Column renames for one table.

    Each entry maps an old column name to its new name, or to DROP to
    remove the column. Lookups are exact matches on the identifier.
    """
    table: str
    renames: Dict[str, Optional[str]] = field(default_factory=dict)

    def target_name(self, column: str) -> Optional[str]:
        """New name for a column; DROP when it is removed."""
        if column in self.renames:
            return self.renames[column]
        return column

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ColumnRenameRule":
        renames = {}
        for old, new in data.get("renames", {}).items():
            renames[old] = DROP if new in (None, "", "drop", "DROP") else new
        return cls(table=data["table"], renames=renames)

