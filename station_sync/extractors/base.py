"""Base extractor interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterator, List, Optional
from datetime import datetime
import logging

from ..models.record import SourceRow
from ..models.schema import ColumnDefinition

logger = logging.getLogger(__name__)


@dataclass
class ExtractionResult:
    """Result of reading one table from a source."""
    table: str
    rows: List[SourceRow] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def total_extracted(self) -> int:
        return len(self.rows)

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None


class BaseExtractor(ABC):
    """
    Base class for source extractors.

    Extractors read rows of a named table from a source store. Errors
    propagate: a missing table raises SourceTableNotFound, an unreachable
    source raises SourceConnectionError.
    """

    def __init__(self, source_name: str, batch_size: int = 1000):
        """
        Initialize the extractor.

        Args:
            source_name: Name of the source store, used in logs
            batch_size: Default page size for stream()
        """
        self.source_name = source_name
        self.batch_size = batch_size

    @abstractmethod
    def extract_batch(self, table: str, offset: int = 0, limit: int = 1000) -> List[SourceRow]:
        """
        Read one page of rows.

        Args:
            table: Source table name
            offset: Starting offset
            limit: Maximum rows to return

        Returns:
            List of rows
        """
        pass

    def get_columns(self, table: str) -> Optional[List[ColumnDefinition]]:
        """Column metadata for a table, or None when the source has none."""
        return None

    def stream(self, table: str, batch_size: Optional[int] = None) -> Iterator[List[SourceRow]]:
        """
        Stream rows in pages.

        Args:
            table: Source table name
            batch_size: Size of each page (defaults to self.batch_size)

        Yields:
            Pages of rows
        """
        batch_size = batch_size or self.batch_size
        offset = 0

        while True:
            batch = self.extract_batch(table, offset=offset, limit=batch_size)
            if not batch:
                break

            yield batch
            # PostgREST caps responses at max-rows, so a short page is not the end.
            offset += len(batch)

    def extract(self, table: str, batch_size: Optional[int] = None) -> ExtractionResult:
        """Read every row of a table."""
        result = ExtractionResult(table=table, started_at=datetime.utcnow())
        for batch in self.stream(table, batch_size):
            result.rows.extend(batch)
            logger.info(f"Fetched {len(batch)} rows from {table} (total: {len(result.rows)})")
        result.completed_at = datetime.utcnow()
        logger.info(f"Total rows fetched from {table}: {result.total_extracted} in {result.duration_seconds:.2f}s")
        return result
