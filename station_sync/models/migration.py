"""Sync and migration run models."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum
from datetime import datetime, timezone

from .record import RowFailure


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MigrationStatus(str, Enum):
    """Status of a table or resource within a run."""
    PENDING = "pending"
    EXTRACTING = "extracting"
    LOADING = "loading"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class SyncOptions:
    """Options for a sync invocation."""
    dry_run: bool = False
    batch_size: Optional[int] = None  # Source page size
    all_or_nothing: bool = False  # Roll back a resource on any row failure


@dataclass
class SyncResult:
    """
    Counters for one resource or table.

    inserted + updated + errors never exceeds total; rows ignored as
    duplicates and rows seen in a dry run only count toward total.
    """
    total: int = 0
    inserted: int = 0
    updated: int = 0
    errors: int = 0

    def merge(self, other: "SyncResult") -> None:
        self.total += other.total
        self.inserted += other.inserted
        self.updated += other.updated
        self.errors += other.errors

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "inserted": self.inserted,
            "updated": self.updated,
            "errors": self.errors,
        }


@dataclass
class TableCopyReport:
    """Outcome of copying one table or resource."""
    table: str
    result: SyncResult = field(default_factory=SyncResult)
    status: MigrationStatus = MigrationStatus.PENDING
    failures: List[RowFailure] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    ddl: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "table": self.table,
            "status": self.status.value,
            "result": self.result.to_dict(),
            "failures": [f.to_dict() for f in self.failures],
            "warnings": self.warnings,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class SyncSummary:
    """Per-resource results of a full sync."""
    results: Dict[str, SyncResult] = field(default_factory=dict)
    dry_run: bool = False
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON shape returned by the admin endpoint."""
        data: Dict[str, Any] = {name: r.to_dict() for name, r in self.results.items()}
        data["timestamp"] = self.timestamp.isoformat()
        data["dryRun"] = self.dry_run
        return data


@dataclass
class MigrationReport:
    """A complete table migration or dump file run."""
    name: str = ""
    dry_run: bool = False
    tables: List[TableCopyReport] = field(default_factory=list)
    verified_counts: Dict[str, Optional[int]] = field(default_factory=dict)
    started_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    def add_table(self, table: str) -> TableCopyReport:
        """Add a new table report to the run."""
        report = TableCopyReport(table=table, started_at=utcnow())
        self.tables.append(report)
        return report

    def get_table(self, table: str) -> Optional[TableCopyReport]:
        for report in self.tables:
            if report.table == table:
                return report
        return None

    @property
    def totals(self) -> SyncResult:
        total = SyncResult()
        for report in self.tables:
            total.merge(report.result)
        return total

    @property
    def failed_tables(self) -> List[str]:
        return [t.table for t in self.tables if t.status == MigrationStatus.FAILED]

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "dry_run": self.dry_run,
            "tables": [t.to_dict() for t in self.tables],
            "totals": self.totals.to_dict(),
            "verified_counts": self.verified_counts,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
        }
