"""Sync orchestrator - coordinates resource syncs and table migrations."""

import logging
from typing import Any, Callable, Dict, List, Optional, Set

import pymysql

from .config import SyncSettings, VERIFY_TABLES
from .errors import (
    SourceConnectionError,
    SourceError,
    SourceTableNotFound,
    TargetConnectionError,
    driver_message,
)
from .extractors.base import BaseExtractor
from .extractors.supabase_extractor import SupabaseExtractor
from .extractors.sql_dump_extractor import SqlDumpExtractor
from .loaders.base import BaseLoader
from .loaders.mysql_loader import MySQLLoader
from .models.migration import (
    MigrationReport,
    MigrationStatus,
    SyncOptions,
    SyncSummary,
    TableCopyReport,
    utcnow,
)
from .models.record import SourceRow
from .models.schema import DROP, ColumnDefinition
from .services.batch_copier import BatchCopier
from .services.rename_rules import RenameRegistry
from .services.resource_sync import DEFAULT_RESOURCES, ResourceDefinition, ResourceSyncer
from .services.schema_translator import SchemaTranslator

logger = logging.getLogger(__name__)

TIMESTAMP_SOURCE_TYPES = ("timestamp", "date")


class SyncOrchestrator:
    """
    Runs syncs from the Supabase source into the MySQL shadow database.

    Handles:
    - users/profiles resource sync with merge-on-update
    - table migration with DDL from metadata or a sample row
    - MySQL data dump loading with INSERT IGNORE
    - target health checks and row count verification

    Every operation opens one target connection and closes it on exit.
    Runs are sequential: one resource or table at a time, one row at a
    time.
    """

    def __init__(
        self,
        settings: Optional[SyncSettings] = None,
        extractor: Optional[BaseExtractor] = None,
        loader_factory: Optional[Callable[[], BaseLoader]] = None,
        renames: Optional[RenameRegistry] = None,
        resources: Optional[List[ResourceDefinition]] = None
    ):
        """
        Initialize the orchestrator.

        Args:
            settings: Connection settings (read from the environment by default)
            extractor: Source extractor (Supabase by default)
            loader_factory: Returns an unopened target loader (MySQL by default)
            renames: Column rename rules (Station-2100 defaults)
            resources: Resources synced by run_full_sync
        """
        self.settings = settings or SyncSettings.from_env()
        self._extractor = extractor
        self.loader_factory = loader_factory or (lambda: MySQLLoader(self.settings.mysql))
        self.renames = renames or RenameRegistry.default()
        self.resources = resources or list(DEFAULT_RESOURCES)
        self.translator = SchemaTranslator(self.renames)

    @property
    def extractor(self) -> BaseExtractor:
        if self._extractor is None:
            self._extractor = SupabaseExtractor(self.settings.supabase)
        return self._extractor

    def _copier(self, loader: BaseLoader) -> BatchCopier:
        return BatchCopier(loader, self.renames)

    def _fetch(self, table: str, report: TableCopyReport, batch_size: Optional[int] = None) -> Optional[List[SourceRow]]:
        """Fetch all rows; None when the table is missing."""
        try:
            return self.extractor.extract(table, batch_size).rows
        except SourceTableNotFound:
            message = f"Table {table} not found in source, skipping"
            logger.warning(message)
            report.warnings.append(message)
            report.status = MigrationStatus.SKIPPED
            report.completed_at = utcnow()
            return None

    def run_full_sync(self, options: Optional[SyncOptions] = None) -> SyncSummary:
        """
        Sync every resource (users, then profiles).

        Args:
            options: Sync options

        Returns:
            SyncSummary with one SyncResult per resource

        Raises:
            SourceConnectionError: the source is unreachable
            TargetConnectionError: the target is unreachable
        """
        options = options or SyncOptions()
        summary = SyncSummary(dry_run=options.dry_run)
        logger.info(f"Starting full sync (dry run: {options.dry_run})")

        if options.dry_run:
            for resource in self.resources:
                summary.results[resource.name] = self._sync_resource(resource, None, options).result
            return summary

        with self.loader_factory() as loader:
            for resource in self.resources:
                summary.results[resource.name] = self._sync_resource(resource, loader, options).result

        logger.info(f"Full sync finished: {summary.to_dict()}")
        return summary

    def _sync_resource(
        self,
        resource: ResourceDefinition,
        loader: Optional[BaseLoader],
        options: SyncOptions
    ) -> TableCopyReport:
        report = TableCopyReport(table=resource.name, started_at=utcnow(), status=MigrationStatus.EXTRACTING)
        logger.info(f"Syncing {resource.name}...")

        try:
            rows = self._fetch(resource.source_table, report, options.batch_size)
        except SourceConnectionError:
            raise
        except SourceError as e:
            logger.error(f"Error fetching {resource.name}: {e}")
            report.result.errors += 1
            report.status = MigrationStatus.FAILED
            report.completed_at = utcnow()
            return report

        if rows is None:
            return report

        if loader is None:
            report.result.total = len(rows)
            report.status = MigrationStatus.COMPLETED
            report.completed_at = utcnow()
            logger.info(f"[dry run] {resource.name}: {len(rows)} rows would be synced")
            return report

        syncer = ResourceSyncer(loader, self._copier(loader))
        return syncer.sync(resource, rows, options, report)

    def migrate_tables(
        self,
        tables: Optional[List[str]] = None,
        options: Optional[SyncOptions] = None,
        use_metadata: bool = True
    ) -> MigrationReport:
        """
        Copy whole tables from the source into the target.

        Each table is created if needed (from source column metadata, or
        from its first row) and then filled with plain INSERTs. Missing
        or empty tables are skipped with a warning. A table that fails
        for any reason other than lost connectivity is logged and the
        run moves on.

        Args:
            tables: Tables to copy (settings.tables by default)
            options: Sync options; dry runs only count rows
            use_metadata: Read column metadata from the source when available

        Returns:
            MigrationReport with one TableCopyReport per table
        """
        options = options or SyncOptions()
        tables = tables or self.settings.tables
        report = MigrationReport(name="supabase-to-mysql", dry_run=options.dry_run)

        logger.info(f"Migrating {len(tables)} tables (dry run: {options.dry_run})")

        if options.dry_run:
            for table in tables:
                table_report = report.add_table(table)
                self._migrate_table(table, None, options, use_metadata, table_report)
        else:
            loader = self.loader_factory()
            if isinstance(loader, MySQLLoader):
                loader.ensure_database()
            with loader:
                for table in tables:
                    table_report = report.add_table(table)
                    self._migrate_table(table, loader, options, use_metadata, table_report)

        report.completed_at = utcnow()
        self._log_report(report)
        return report

    def _migrate_table(
        self,
        table: str,
        loader: Optional[BaseLoader],
        options: SyncOptions,
        use_metadata: bool,
        report: TableCopyReport
    ) -> None:
        logger.info(f"Processing table: {table}")
        report.status = MigrationStatus.EXTRACTING

        try:
            rows = self._fetch(table, report, options.batch_size)
            if rows is None:
                return

            report.result.total = len(rows)
            if not rows:
                message = f"No data in {table}, skipping"
                logger.warning(message)
                report.warnings.append(message)
                report.status = MigrationStatus.SKIPPED
                report.completed_at = utcnow()
                return

            columns = self.extractor.get_columns(table) if use_metadata else None
            if columns:
                report.ddl = self.translator.build_ddl(table, columns=columns)
                timestamp_columns = self.timestamp_columns(table, columns)
            else:
                logger.info(f"No column metadata for {table}; inferring types from the first row")
                report.ddl = self.translator.build_ddl(table, sample_row=rows[0])
                timestamp_columns = set()

            if loader is None:
                report.status = MigrationStatus.COMPLETED
                report.completed_at = utcnow()
                logger.info(f"[dry run] {table}: {len(rows)} rows would be copied")
                return

            loader.execute(report.ddl)
            logger.info(f"Created table {table}")
            self._copier(loader).copy_table(
                table, rows, timestamp_columns=timestamp_columns, report=report
            )

        except (SourceConnectionError, TargetConnectionError):
            raise
        except Exception as e:
            logger.error(f"Failed to migrate {table}: {e}")
            report.status = MigrationStatus.FAILED
            report.warnings.append(str(e))
            report.completed_at = utcnow()

    def timestamp_columns(self, table: str, columns: List[ColumnDefinition]) -> Set[str]:
        """Target names of timestamp columns, after renames; dropped columns are left out."""
        rule = self.renames.get(table)
        names = set()
        for column in columns:
            if not column.source_type.lower().startswith(TIMESTAMP_SOURCE_TYPES):
                continue
            name = rule.target_name(column.name) if rule else column.name
            if name is not DROP:
                names.add(name)
        return names

    def migrate_dump_file(
        self,
        path: str,
        options: Optional[SyncOptions] = None,
        verify_tables: Optional[List[str]] = None
    ) -> MigrationReport:
        """
        Load a MySQL data dump into the target.

        Rows are renamed per table and written with INSERT IGNORE, so rows
        whose primary key already exists are left untouched. Foreign key
        checks are disabled while loading.

        Args:
            path: Dump file path
            options: Sync options; dry runs only parse and count
            verify_tables: Tables counted after the load

        Returns:
            MigrationReport with one TableCopyReport per table
        """
        options = options or SyncOptions()
        extractor = SqlDumpExtractor(path)
        dump = extractor.read()
        report = MigrationReport(name=f"data-file:{path}", dry_run=options.dry_run)

        for statement in dump.skipped_statements:
            logger.warning(f"Skipped unparseable statement: {statement}")

        if options.dry_run:
            for table in extractor.tables:
                table_report = report.add_table(table)
                table_report.result.total = len(extractor.extract(table).rows)
                table_report.status = MigrationStatus.COMPLETED
                table_report.completed_at = utcnow()
            report.completed_at = utcnow()
            self._log_report(report)
            return report

        with self.loader_factory() as loader:
            copier = self._copier(loader)
            loader.execute("SET FOREIGN_KEY_CHECKS = 0")
            try:
                for table in extractor.tables:
                    table_report = report.add_table(table)
                    try:
                        copier.copy_table(
                            table,
                            fetch=lambda t=table: extractor.extract(t).rows,
                            ignore_duplicates=True,
                            report=table_report,
                        )
                    except TargetConnectionError:
                        raise
                    except Exception as e:
                        logger.error(f"Failed to load {table}: {e}")
                        table_report.status = MigrationStatus.FAILED
                        table_report.warnings.append(str(e))
            finally:
                loader.execute("SET FOREIGN_KEY_CHECKS = 1")

            report.verified_counts = self.count_tables(
                loader, verify_tables if verify_tables is not None else VERIFY_TABLES
            )

        report.completed_at = utcnow()
        self._log_report(report)
        return report

    def verify_counts(self, tables: Optional[List[str]] = None) -> Dict[str, Optional[int]]:
        """Row counts per table; None for tables that cannot be read."""
        with self.loader_factory() as loader:
            return self.count_tables(loader, tables or VERIFY_TABLES)

    def count_tables(self, loader: BaseLoader, tables: List[str]) -> Dict[str, Optional[int]]:
        counts: Dict[str, Optional[int]] = {}
        for table in tables:
            try:
                counts[table] = loader.count_rows(table)
                logger.info(f"  {table}: {counts[table]} rows")
            except pymysql.MySQLError as e:
                counts[table] = None
                logger.warning(f"  {table}: table not found or error - {e}")
        return counts

    def ping(self) -> Dict[str, Any]:
        """
        Check the target: server version and table count.

        Returns:
            {"ok": True, "details": {...}} or {"ok": False, "error": message}
        """
        loader = self.loader_factory()
        try:
            with loader:
                if isinstance(loader, MySQLLoader):
                    return loader.ping()
                loader.execute("SELECT 1")
                return {
                    "ok": True,
                    "details": {"database": self.settings.mysql.database, "connection": "active"},
                }
        except TargetConnectionError as e:
            logger.error(f"Target ping failed: {e}")
            return {"ok": False, "error": driver_message(e.__cause__) if e.__cause__ else str(e)}

    def _log_report(self, report: MigrationReport) -> None:
        totals = report.totals
        logger.info("=" * 50)
        logger.info(f"{report.name} finished (dry run: {report.dry_run})")
        for table in report.tables:
            r = table.result
            logger.info(
                f"  {table.table}: {table.status.value} - {r.total} rows, "
                f"{r.inserted} inserted, {r.updated} updated, {r.errors} errors"
            )
        logger.info(
            f"Total: {totals.total} rows, {totals.inserted} inserted, "
            f"{totals.updated} updated, {totals.errors} errors"
        )
        if report.failed_tables:
            logger.warning(f"Failed tables: {', '.join(report.failed_tables)}")
