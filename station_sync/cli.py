"""Command line entry point for the Supabase to MySQL sync tools."""

import argparse
import json
import logging
import sys
from typing import List, Optional

from .config import SyncSettings, VERIFY_TABLES, load_env_files
from .errors import SyncError
from .loaders.mysql_loader import MySQLLoader
from .models.migration import MigrationReport, SyncOptions
from .orchestrator import SyncOrchestrator
from .services.rename_rules import RenameRegistry
from .watchdog import DEFAULT_HEALTH_URL, Watchdog

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_DUMP_FILE = "mysql/data/station2100_mysql_data.sql"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="station-sync",
        description="Station-2100 sync tools - copy Supabase data into the MySQL shadow database"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--log-file", help="Also append log lines to this file")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Table migration
    migrate_parser = subparsers.add_parser("migrate", help="Copy Supabase tables into MySQL")
    migrate_parser.add_argument("--tables", nargs="+", help="Tables to copy (default: SYNC_TABLES)")
    migrate_parser.add_argument("--dry-run", action="store_true", help="Count rows without writing")
    migrate_parser.add_argument("--no-metadata", action="store_true",
                                help="Infer column types from the first row only")
    migrate_parser.add_argument("--rename-rules", help="JSON file with extra column rename rules")
    migrate_parser.add_argument("--report", help="Write the run report as JSON to this file")

    # Dump file load
    file_parser = subparsers.add_parser("migrate-file", help="Load a MySQL data dump")
    file_parser.add_argument("--file", default=DEFAULT_DUMP_FILE, help="Path to the dump file")
    file_parser.add_argument("--dry-run", action="store_true", help="Parse and count without writing")
    file_parser.add_argument("--rename-rules", help="JSON file with extra column rename rules")
    file_parser.add_argument("--report", help="Write the run report as JSON to this file")

    # Resource sync
    sync_parser = subparsers.add_parser("sync", help="Sync users and profiles")
    sync_parser.add_argument("--dry-run", action="store_true", help="Count rows without writing")
    sync_parser.add_argument("--all-or-nothing", action="store_true",
                             help="Roll back a whole resource when any row fails")

    subparsers.add_parser("ping", help="Check the MySQL connection")

    verify_parser = subparsers.add_parser("verify", help="Check MySQL and report table counts")
    verify_parser.add_argument("--tables", nargs="+", help="Tables to count")

    serve_parser = subparsers.add_parser("serve", help="Run the admin HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, help="Port (default: SYNC_PORT)")

    watchdog_parser = subparsers.add_parser("watchdog", help="Restart the dev server when it stops responding")
    watchdog_parser.add_argument("--url", default=DEFAULT_HEALTH_URL, help="Health URL to poll")
    watchdog_parser.add_argument("--interval", type=float, default=10.0, help="Seconds between checks")
    watchdog_parser.add_argument("cmd", nargs=argparse.REMAINDER,
                                 help="Command to supervise (default: npm run dev)")

    return parser


def setup_logging(verbose: bool, log_file: Optional[str], level: str = "INFO") -> None:
    log_level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(level=log_level, format=LOG_FORMAT, handlers=handlers)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    load_env_files()

    try:
        settings = SyncSettings.from_env()
    except SyncError as e:
        setup_logging(args.verbose, args.log_file)
        logger.error(f"Invalid configuration: {e}")
        return 1

    setup_logging(args.verbose, args.log_file, settings.log_level)

    commands = {
        "migrate": run_migrate,
        "migrate-file": run_migrate_file,
        "sync": run_sync,
        "ping": run_ping,
        "verify": run_verify,
        "serve": run_serve,
        "watchdog": run_watchdog,
    }
    handler = commands.get(args.command)
    if handler is None:
        parser.print_help()
        return 0

    try:
        return handler(args, settings)
    except SyncError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 1


def _renames(path: Optional[str]) -> RenameRegistry:
    return RenameRegistry.from_file(path) if path else RenameRegistry.default()


def _print_report(report: MigrationReport, output: Optional[str] = None) -> None:
    totals = report.totals
    print("\n" + "=" * 60)
    print("MIGRATION COMPLETE" if not report.dry_run else "DRY RUN COMPLETE")
    print("=" * 60)
    print(f"Tables: {len(report.tables)}")
    print(f"Rows: {totals.total}")
    print(f"Inserted: {totals.inserted}")
    print(f"Errors: {totals.errors}")
    if report.failed_tables:
        print(f"Failed tables: {', '.join(report.failed_tables)}")
    if report.verified_counts:
        print("\nRow counts:")
        for table, count in report.verified_counts.items():
            print(f"  {table}: {count if count is not None else 'unavailable'}")

    if output:
        with open(output, "w") as f:
            json.dump(report.to_dict(), f, indent=2)
        print(f"\nReport saved to: {output}")


def run_migrate(args, settings: SyncSettings) -> int:
    """Copy tables from Supabase into MySQL."""
    orchestrator = SyncOrchestrator(settings, renames=_renames(args.rename_rules))
    report = orchestrator.migrate_tables(
        tables=args.tables,
        options=SyncOptions(dry_run=args.dry_run),
        use_metadata=not args.no_metadata,
    )
    _print_report(report, args.report)
    return 0


def run_migrate_file(args, settings: SyncSettings) -> int:
    """Load a MySQL data dump file."""
    orchestrator = SyncOrchestrator(settings, renames=_renames(args.rename_rules))
    try:
        report = orchestrator.migrate_dump_file(args.file, SyncOptions(dry_run=args.dry_run))
    except FileNotFoundError:
        logger.error(f"Data file not found: {args.file}")
        return 1
    _print_report(report, args.report)
    return 0


def run_sync(args, settings: SyncSettings) -> int:
    """Sync users and profiles."""
    orchestrator = SyncOrchestrator(settings)
    summary = orchestrator.run_full_sync(
        SyncOptions(dry_run=args.dry_run, all_or_nothing=args.all_or_nothing)
    )
    print(json.dumps(summary.to_dict(), indent=2))
    return 0


def run_ping(args, settings: SyncSettings) -> int:
    """Print the MySQL ping result."""
    result = SyncOrchestrator(settings).ping()
    print(json.dumps(result, indent=2, default=str))
    return 0 if result.get("ok") else 1


def run_verify(args, settings: SyncSettings) -> int:
    """Connect with retries, make sure the database exists and count rows."""
    loader = MySQLLoader(settings.mysql)
    loader.connect_with_retry(create_database=True)
    try:
        result = loader.ping()
        if not result["ok"]:
            logger.error(f"MySQL check failed: {result['error']}")
            return 1
        details = result["details"]
        print(f"MySQL {details['version']} - database {details['database']} "
              f"({details['tables']} tables)")
        orchestrator = SyncOrchestrator(settings, loader_factory=lambda: loader)
        counts = orchestrator.count_tables(loader, args.tables or VERIFY_TABLES)
    finally:
        loader.close()

    for table, count in counts.items():
        print(f"  {table}: {count if count is not None else 'unavailable'}")
    return 0


def run_serve(args, settings: SyncSettings) -> int:
    """Run the admin API with uvicorn."""
    import uvicorn

    port = args.port or settings.port
    logger.info(f"Serving admin API on http://{args.host}:{port}")
    uvicorn.run("station_sync.api.main:app", host=args.host, port=port)
    return 0


def run_watchdog(args, settings: SyncSettings) -> int:
    """Supervise the dev server."""
    command = [c for c in args.cmd if c != "--"] or None
    watchdog = Watchdog(health_url=args.url, command=command, check_interval=args.interval)
    watchdog.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
