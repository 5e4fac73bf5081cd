"""Row-level models for data moving between stores."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from datetime import datetime

# One source record: column name -> value.
SourceRow = Dict[str, Any]

SNIPPET_LENGTH = 100


def truncate_snippet(text: str, length: int = SNIPPET_LENGTH) -> str:
    """Shorten a statement or row preview for diagnostics."""
    if len(text) <= length:
        return text
    return text[:length] + "..."


@dataclass
class RowFailure:
    """A row that could not be written to the target."""
    table: str
    snippet: str
    error: str
    error_code: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "table": self.table,
            "snippet": self.snippet,
            "error": self.error,
            "error_code": self.error_code,
        }


@dataclass
class ParsedInsert:
    """Rows recovered from one INSERT statement of a MySQL data dump."""
    table: str
    columns: List[str]
    rows: List[SourceRow] = field(default_factory=list)
    statement_index: int = 0


@dataclass
class DumpFile:
    """Parsed contents of a MySQL data dump, grouped by table."""
    path: str
    inserts: List[ParsedInsert] = field(default_factory=list)
    skipped_statements: List[str] = field(default_factory=list)
    parsed_at: datetime = field(default_factory=datetime.utcnow)

    def rows_by_table(self) -> Dict[str, List[SourceRow]]:
        """Rows grouped by table, in first-seen table order."""
        grouped: Dict[str, List[SourceRow]] = {}
        for insert in self.inserts:
            grouped.setdefault(insert.table, []).extend(insert.rows)
        return grouped

    @property
    def tables(self) -> List[str]:
        return list(self.rows_by_table().keys())
