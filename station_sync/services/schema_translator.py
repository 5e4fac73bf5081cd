"""Builds MySQL CREATE TABLE statements from source column metadata."""

import logging
import math
import re
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..models.schema import TYPE_MAPPING, FALLBACK_TYPE, ColumnDefinition
from ..models.record import SourceRow
from .rename_rules import RenameRegistry

logger = logging.getLogger(__name__)

TABLE_OPTIONS = "ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_unicode_ci"

INT_MIN, INT_MAX = -2147483648, 2147483647

# MySQL cannot give these columns a literal default.
NO_DEFAULT_TYPES = ("TEXT", "JSON", "BLOB")
TIMESTAMP_TYPES = ("DATETIME", "TIMESTAMP")

_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?$")
_QUOTED_RE = re.compile(r"^'((?:[^']|'')*)'(?:::[\w\s\".]+)?$")


def quote_identifier(name: str) -> str:
    """Backtick-quote a MySQL identifier."""
    return "`" + name.replace("`", "``") + "`"


def quote_literal(value: str) -> str:
    """Single-quote a string literal for use inside DDL."""
    return "'" + value.replace("\\", "\\\\").replace("'", "''") + "'"


def infer_column_type(value: Any) -> str:
    """
    Guess a MySQL column type from one sample value.

    This is a best-effort fallback for tables without column metadata: a
    null sample or a short first value can pick a type that later rows
    do not fit.
    """
    if value is None:
        return "TEXT"
    if isinstance(value, bool):
        return "BOOLEAN"
    if isinstance(value, int):
        return "INT" if INT_MIN <= value <= INT_MAX else "BIGINT"
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return "INT" if INT_MIN <= value <= INT_MAX else "BIGINT"
        return "DECIMAL(10,2)"
    if isinstance(value, Decimal):
        if value.is_finite() and value == value.to_integral_value():
            return "INT" if INT_MIN <= value <= INT_MAX else "BIGINT"
        return "DECIMAL(10,2)"
    if isinstance(value, str):
        return "VARCHAR(255)" if len(value) <= 255 else "TEXT"
    if isinstance(value, (datetime, date, time)):
        return "DATETIME"
    if isinstance(value, (dict, list, tuple)):
        return "JSON"
    return FALLBACK_TYPE


def map_source_type(source_type: str, max_length: Optional[int] = None) -> str:
    """Translate a Postgres type name to a MySQL column type."""
    key = (source_type or "").strip().lower()
    if max_length and ("varchar" in key or "character" in key):
        return f"VARCHAR({int(max_length)})"
    return TYPE_MAPPING.get(key, FALLBACK_TYPE)


def translate_default(default: Any, mysql_type: str) -> Optional[str]:
    """
    Translate a Postgres column default to a MySQL DEFAULT expression.

    Returns None when the default has no safe MySQL equivalent.
    """
    if default is None:
        return None
    base_type = mysql_type.split("(")[0].upper()
    if base_type in NO_DEFAULT_TYPES:
        return None

    if isinstance(default, bool):
        return "1" if default else "0"
    if isinstance(default, (int, float, Decimal)):
        return str(default)

    text = str(default).strip()
    lowered = text.lower()

    if lowered in ("true", "false"):
        return "1" if lowered == "true" else "0"
    if _NUMBER_RE.match(text):
        return text
    if "now()" in lowered or lowered.startswith("current_timestamp"):
        return "CURRENT_TIMESTAMP" if base_type in TIMESTAMP_TYPES else None
    if "gen_random_uuid()" in lowered or "uuid_generate_v4()" in lowered:
        return "(UUID())" if base_type in ("VARCHAR", "CHAR") else None

    match = _QUOTED_RE.match(text)
    if match:
        return quote_literal(match.group(1).replace("''", "'"))
    if "(" in text or "::" in text:
        logger.debug(f"Dropping default without a MySQL equivalent: {text}")
        return None
    return quote_literal(text)


class SchemaTranslator:
    """
    Produces CREATE TABLE IF NOT EXISTS statements for the MySQL target.

    Explicit column metadata is preferred; a sample row is used only when
    no metadata is available. Rename rules are applied first so the DDL
    matches the rows the copier will insert.
    """

    def __init__(
        self,
        renames: Optional[RenameRegistry] = None,
        primary_key: Optional[str] = "id"
    ):
        """
        Initialize the translator.

        Args:
            renames: Rename rules applied before columns are emitted
            primary_key: Column declared PRIMARY KEY when present
        """
        self.renames = renames or RenameRegistry()
        self.primary_key = primary_key

    def columns_from_sample(self, table: str, row: SourceRow) -> List[Dict[str, str]]:
        """Column name/type pairs inferred from one row, after renames."""
        renamed = self.renames.apply_to_row(table, row)
        return [{"name": name, "type": infer_column_type(value)} for name, value in renamed.items()]

    def build_ddl(
        self,
        table: str,
        columns: Optional[List[ColumnDefinition]] = None,
        sample_row: Optional[SourceRow] = None
    ) -> str:
        """
        Build the DDL for one table.

        Args:
            table: Target table name
            columns: Source column metadata
            sample_row: Representative row, used when columns is empty

        Returns:
            A CREATE TABLE IF NOT EXISTS statement
        """
        if columns:
            lines = self._lines_from_definitions(table, columns)
        elif sample_row is not None:
            lines = self._lines_from_sample(table, sample_row)
        else:
            raise ValueError(f"Need column metadata or a sample row to create {table}")

        if not lines:
            raise ValueError(f"No columns left to create table {table}")

        body = ",\n".join(lines)
        return f"CREATE TABLE IF NOT EXISTS {quote_identifier(table)} (\n{body}\n) {TABLE_OPTIONS}"

    def _lines_from_definitions(self, table: str, columns: List[ColumnDefinition]) -> List[str]:
        lines = []
        has_key = False
        for column in self.renames.apply_to_columns(table, columns):
            mysql_type = map_source_type(column.source_type, column.max_length)
            is_key = column.name == self.primary_key
            if is_key:
                mysql_type = self._key_type(mysql_type)
                has_key = True

            line = f"  {quote_identifier(column.name)} {mysql_type}"
            if not column.nullable or is_key:
                line += " NOT NULL"
            default = translate_default(column.default_value, mysql_type)
            if default is not None:
                line += f" DEFAULT {default}"
            lines.append(line)

        if has_key:
            lines.append(f"  PRIMARY KEY ({quote_identifier(self.primary_key)})")
        return lines

    def _lines_from_sample(self, table: str, row: SourceRow) -> List[str]:
        lines = []
        has_key = False
        for column in self.columns_from_sample(table, row):
            mysql_type = column["type"]
            if column["name"] == self.primary_key:
                mysql_type = self._key_type(mysql_type) + " NOT NULL"
                has_key = True
            lines.append(f"  {quote_identifier(column['name'])} {mysql_type}")

        if has_key:
            lines.append(f"  PRIMARY KEY ({quote_identifier(self.primary_key)})")
        return lines

    @staticmethod
    def _key_type(mysql_type: str) -> str:
        # Key columns need a bounded length.
        if mysql_type.split("(")[0].upper() in NO_DEFAULT_TYPES:
            return "VARCHAR(255)"
        return mysql_type
