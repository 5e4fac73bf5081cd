"""MySQL target loader built on PyMySQL."""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

import pymysql
import pymysql.err

from .base import BaseLoader
from ..config import MySQLConfig
from ..errors import TargetConnectionError, driver_code, driver_message
from ..models.record import SourceRow
from ..services.schema_translator import quote_identifier

logger = logging.getLogger(__name__)

# Client error codes meaning the server is unreachable or went away.
LOST_CONNECTION_CODES = {2003, 2005, 2006, 2013, 2055}


def is_connection_lost(error: Exception) -> bool:
    """True when a PyMySQL error means the connection is unusable."""
    if isinstance(error, pymysql.err.InterfaceError):
        return True
    if isinstance(error, pymysql.err.OperationalError):
        return driver_code(error) in LOST_CONNECTION_CODES
    return False


class MySQLLoader(BaseLoader):
    """
    Loader for the MySQL shadow database.

    Holds a single connection for the lifetime of a sync invocation.
    Use it as a context manager so the connection is closed on every
    exit path:

        with MySQLLoader(config) as loader:
            loader.insert_row("customers", {"id": "c1"})
    """

    def __init__(
        self,
        config: MySQLConfig,
        connection: Optional[Any] = None,
        connect: Callable[..., Any] = pymysql.connect
    ):
        """
        Initialize the MySQL loader.

        Args:
            config: Target connection settings
            connection: Already-open DB-API connection to use
            connect: Connection factory, pymysql.connect by default
        """
        super().__init__("mysql")
        self.config = config
        self._connection = connection
        self._connect = connect
        self._owns_connection = connection is None

    def open(self) -> "MySQLLoader":
        """Open the connection if it is not open yet."""
        if self._connection is None:
            try:
                self._connection = self._connect(**self.config.to_connection_params())
            except pymysql.MySQLError as e:
                raise TargetConnectionError(
                    f"Cannot connect to MySQL at {self.config.describe()}: {driver_message(e)}"
                ) from e
            self._owns_connection = True
            logger.info(f"Connected to MySQL {self.config.describe()}")
        return self

    def close(self) -> None:
        """Close the connection if this loader opened it."""
        if self._connection is not None and self._owns_connection:
            try:
                self._connection.close()
            except pymysql.MySQLError as e:
                logger.warning(f"Error closing MySQL connection: {e}")
            logger.debug("MySQL connection closed")
        self._connection = None

    @property
    def connection(self) -> Any:
        if self._connection is None:
            raise TargetConnectionError("MySQL connection is not open")
        return self._connection

    def ensure_database(self) -> None:
        """Create the configured database when it does not exist yet."""
        params = self.config.to_connection_params(with_database=False)
        try:
            server = self._connect(**params)
        except pymysql.MySQLError as e:
            raise TargetConnectionError(
                f"Cannot connect to MySQL server {self.config.host}:{self.config.port}: {driver_message(e)}"
            ) from e

        try:
            with server.cursor() as cursor:
                cursor.execute(
                    f"CREATE DATABASE IF NOT EXISTS {quote_identifier(self.config.database)} "
                    "CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
                )
            server.commit()
            logger.info(f"Database {self.config.database} is ready")
        finally:
            server.close()

    def _run(self, sql: str, params: Optional[List[Any]] = None, fetch: Optional[str] = None) -> Any:
        try:
            with self.connection.cursor() as cursor:
                affected = cursor.execute(sql, params)
                if fetch == "one":
                    return cursor.fetchone()
                if fetch == "all":
                    return cursor.fetchall()
                return affected
        except pymysql.MySQLError as e:
            if is_connection_lost(e):
                raise TargetConnectionError(f"Lost MySQL connection: {driver_message(e)}") from e
            raise

    def execute(self, sql: str, params: Optional[List[Any]] = None) -> int:
        return self._run(sql, params)

    def query_one(self, sql: str, params: Optional[List[Any]] = None) -> Optional[Dict[str, Any]]:
        return self._run(sql, params, fetch="one")

    def insert_row(self, table: str, row: SourceRow, ignore: bool = False) -> int:
        if not row:
            raise ValueError(f"Refusing to insert an empty row into {table}")
        columns = ", ".join(quote_identifier(c) for c in row)
        placeholders = ", ".join(["%s"] * len(row))
        verb = "INSERT IGNORE INTO" if ignore else "INSERT INTO"
        sql = f"{verb} {quote_identifier(table)} ({columns}) VALUES ({placeholders})"
        return self.execute(sql, list(row.values()))

    def find_by_pk(self, table: str, key: str, value: Any) -> Optional[Dict[str, Any]]:
        sql = f"SELECT * FROM {quote_identifier(table)} WHERE {quote_identifier(key)} = %s LIMIT 1"
        return self.query_one(sql, [value])

    def update_row(self, table: str, key: str, value: Any, row: SourceRow) -> int:
        if not row:
            return 0
        assignments = ", ".join(f"{quote_identifier(c)} = %s" for c in row)
        sql = f"UPDATE {quote_identifier(table)} SET {assignments} WHERE {quote_identifier(key)} = %s"
        return self.execute(sql, list(row.values()) + [value])

    def count_rows(self, table: str) -> int:
        result = self.query_one(f"SELECT COUNT(*) AS count FROM {quote_identifier(table)}")
        return int(result["count"]) if result else 0

    def begin(self) -> None:
        self.connection.begin()

    def commit(self) -> None:
        self.connection.commit()

    def rollback(self) -> None:
        self.connection.rollback()

    def ping(self) -> Dict[str, Any]:
        """
        Report server version and table count for the configured database.

        Returns:
            {"ok": True, "details": {...}} or {"ok": False, "error": message}
        """
        try:
            version = self.query_one("SELECT VERSION() AS version")
            tables = self.query_one(
                "SELECT COUNT(*) AS count FROM information_schema.tables WHERE table_schema = %s",
                [self.config.database],
            )
        except (pymysql.MySQLError, TargetConnectionError) as e:
            logger.error(f"MySQL ping failed: {e}")
            return {"ok": False, "error": driver_message(e)}

        return {
            "ok": True,
            "details": {
                "version": version["version"] if version else None,
                "database": self.config.database,
                "tables": int(tables["count"]) if tables else 0,
                "connection": "active",
            },
        }

    def connect_with_retry(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Optional[Callable[[float], None]] = None,
        create_database: bool = False
    ) -> "MySQLLoader":
        """
        Open the connection, retrying with exponential backoff.

        With create_database, each attempt first runs ensure_database so a
        server that is still starting gets the same retries.

        Raises:
            TargetConnectionError: after the last failed attempt
        """
        sleep = sleep or time.sleep
        for attempt in range(1, max_attempts + 1):
            try:
                if create_database:
                    self.ensure_database()
                return self.open()
            except TargetConnectionError as e:
                if attempt == max_attempts:
                    logger.error(f"Giving up on MySQL after {attempt} attempts")
                    raise
                delay = base_delay * (2 ** (attempt - 1))
                logger.warning(f"Connection attempt {attempt} failed: {e}; retrying in {delay:.0f}s")
                sleep(delay)
        return self
