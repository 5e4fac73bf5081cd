"""Data models for the sync layer."""

from .schema import (
    TYPE_MAPPING,
    DROP,
    ColumnDefinition,
    ColumnRenameRule,
)
from .migration import (
    MigrationStatus,
    SyncOptions,
    SyncResult,
    SyncSummary,
    TableCopyReport,
    MigrationReport,
)
from .record import (
    SourceRow,
    RowFailure,
    ParsedInsert,
    DumpFile,
)

__all__ = [
    "TYPE_MAPPING",
    "DROP",
    "ColumnDefinition",
    "ColumnRenameRule",
    "MigrationStatus",
    "SyncOptions",
    "SyncResult",
    "SyncSummary",
    "TableCopyReport",
    "MigrationReport",
    "SourceRow",
    "RowFailure",
    "ParsedInsert",
    "DumpFile",
]
