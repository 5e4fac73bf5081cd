"""Row-by-row copying into the target store."""

import json
import logging
from datetime import date, datetime, timezone
from typing import Any, Callable, Collection, Dict, List, Optional

import pymysql
from dateutil import parser as date_parser

from ..errors import driver_code, driver_message
from ..loaders.base import BaseLoader
from ..models.migration import MigrationStatus, TableCopyReport, utcnow
from ..models.record import RowFailure, SourceRow, truncate_snippet, SNIPPET_LENGTH
from .rename_rules import RenameRegistry
from .schema_translator import quote_identifier

logger = logging.getLogger(__name__)

# Failures that only affect the current row.
ROW_ERRORS = (pymysql.MySQLError, TypeError, ValueError)


def to_json_text(value: Any) -> str:
    """Serialize a dict or list as compact JSON text."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)


def parse_timestamp(value: Any) -> Any:
    """
    Convert an ISO-8601 timestamp to a naive UTC datetime.

    None and non-string values other than datetimes pass through.
    Raises ValueError for strings that are not timestamps.
    """
    if value is None or isinstance(value, datetime):
        if isinstance(value, datetime) and value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if not isinstance(value, str):
        return value

    parsed = date_parser.isoparse(value.strip())
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def serialize_value(value: Any, as_timestamp: bool = False) -> Any:
    """Turn a source value into something the MySQL driver can bind."""
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return to_json_text(value)
    if as_timestamp:
        return parse_timestamp(value)
    return value


def merge_for_update(incoming: SourceRow, existing: Dict[str, Any]) -> SourceRow:
    """Take each incoming value unless it is None, else keep the existing one."""
    return {
        column: value if value is not None else existing.get(column)
        for column, value in incoming.items()
    }


class BatchCopier:
    """
    Copies rows of one table into the target, one statement per row.

    A failing row is counted and skipped; it never aborts the table. The
    first few failures per table are logged in full, the rest only
    counted. Lost connections are not row failures and propagate.
    """

    def __init__(
        self,
        loader: BaseLoader,
        renames: Optional[RenameRegistry] = None,
        max_logged_errors: int = 5,
        progress_every: int = 100,
        commit_every: int = 100,
        snippet_length: int = SNIPPET_LENGTH
    ):
        """
        Initialize the copier.

        Args:
            loader: Open target loader
            renames: Rename rules applied to every row
            max_logged_errors: Failures per table logged verbatim
            progress_every: Rows between progress log lines
            commit_every: Rows between commits in copy_table
            snippet_length: Length of recorded row previews
        """
        self.loader = loader
        self.renames = renames or RenameRegistry()
        self.max_logged_errors = max_logged_errors
        self.progress_every = progress_every
        self.commit_every = commit_every
        self.snippet_length = snippet_length

    def prepare_row(
        self,
        table: str,
        row: SourceRow,
        timestamp_columns: Collection[str] = ()
    ) -> SourceRow:
        """Apply renames and serialize values for binding."""
        renamed = self.renames.apply_to_row(table, row)
        return {
            column: serialize_value(value, column in timestamp_columns)
            for column, value in renamed.items()
        }

    def copy_table(
        self,
        table: str,
        rows: Optional[List[SourceRow]] = None,
        fetch: Optional[Callable[[], List[SourceRow]]] = None,
        ignore_duplicates: bool = False,
        timestamp_columns: Collection[str] = (),
        report: Optional[TableCopyReport] = None
    ) -> TableCopyReport:
        """
        Insert every row of a table.

        Args:
            table: Target table
            rows: Rows to insert
            fetch: Callable returning the rows, used when rows is None
            ignore_duplicates: Use INSERT IGNORE; ignored rows count only toward total
            timestamp_columns: Columns whose ISO strings become datetimes
            report: Existing report to fill in

        Returns:
            TableCopyReport with the table's SyncResult
        """
        if rows is None:
            if fetch is None:
                raise ValueError("copy_table needs rows or a fetch callable")
            rows = fetch()

        report = report or TableCopyReport(table=table, started_at=utcnow())
        report.result.total = len(rows)

        if not rows:
            report.status = MigrationStatus.SKIPPED
            report.warnings.append(f"No data in {table}")
            report.completed_at = utcnow()
            logger.warning(f"No data in {table}, skipping")
            return report

        report.status = MigrationStatus.LOADING
        logger.info(f"Inserting {len(rows)} rows into {table}...")

        for index, row in enumerate(rows, 1):
            try:
                prepared = self.prepare_row(table, row, timestamp_columns)
                affected = self.loader.insert_row(table, prepared, ignore=ignore_duplicates)
                if affected or not ignore_duplicates:
                    report.result.inserted += 1
            except ROW_ERRORS as e:
                self.record_failure(report, row, e)

            # Rows are independent; commit in chunks.
            if index % self.commit_every == 0:
                self.loader.commit()
            if index % self.progress_every == 0:
                logger.info(f"  {table}: {index}/{len(rows)} rows processed")

        self.loader.commit()
        self.finish(report)
        return report

    def upsert_row(
        self,
        table: str,
        row: SourceRow,
        key: str = "id",
        on_create: Optional[Callable[[SourceRow], SourceRow]] = None,
        on_update: Optional[Callable[[SourceRow, Dict[str, Any]], SourceRow]] = None,
        timestamp_columns: Collection[str] = ()
    ) -> str:
        """
        Insert a row, or update it when its primary key already exists.

        Updates merge field by field: a None source value keeps the
        existing target value.

        Returns:
            "inserted" or "updated"
        """
        prepared = self.prepare_row(table, row, timestamp_columns)
        key_value = prepared.get(key)
        if key_value is None:
            raise ValueError(f"Row for {table} has no {key}")

        existing = self.loader.find_by_pk(table, key, key_value)
        if existing is None:
            data = on_create(prepared) if on_create else prepared
            self.loader.insert_row(table, self._serialize(data))
            return "inserted"

        data = on_update(prepared, existing) if on_update else merge_for_update(prepared, existing)
        data = {c: v for c, v in data.items() if c != key}
        self.loader.update_row(table, key, key_value, self._serialize(data))
        return "updated"

    def record_failure(self, report: TableCopyReport, row: SourceRow, error: Exception) -> RowFailure:
        """Count a failed row and keep a short preview of it."""
        report.result.errors += 1
        failure = RowFailure(
            table=report.table,
            snippet=truncate_snippet(self.describe_row(report.table, row), self.snippet_length),
            error=driver_message(error),
            error_code=driver_code(error),
        )
        report.failures.append(failure)

        if report.result.errors <= self.max_logged_errors:
            logger.error(f"Error inserting into {report.table}: {failure.error}")
            logger.error(f"  Row: {failure.snippet}")
        return failure

    def finish(self, report: TableCopyReport) -> None:
        """Close out a table report and log its summary."""
        suppressed = report.result.errors - self.max_logged_errors
        if suppressed > 0:
            logger.warning(f"{suppressed} more errors in {report.table} were not logged")

        report.status = MigrationStatus.COMPLETED
        report.completed_at = utcnow()
        result = report.result
        logger.info(
            f"{report.table}: {result.inserted} inserted, {result.updated} updated, "
            f"{result.errors} errors ({result.total} rows)"
        )

    @staticmethod
    def describe_row(table: str, row: SourceRow) -> str:
        columns = ", ".join(quote_identifier(c) for c in row)
        values = json.dumps(list(row.values()), default=str, ensure_ascii=False)
        return f"INSERT INTO {quote_identifier(table)} ({columns}) VALUES {values}"

    @staticmethod
    def _serialize(row: SourceRow) -> SourceRow:
        return {column: serialize_value(value) for column, value in row.items()}
