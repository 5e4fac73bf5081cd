"""Shared fixtures: an in-memory target, a fake source and settings."""

import copy
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pymysql
import pytest

from station_sync.config import MySQLConfig, SupabaseConfig, SyncSettings
from station_sync.errors import SourceTableNotFound
from station_sync.extractors.base import BaseExtractor
from station_sync.loaders.base import BaseLoader


class InMemoryLoader(BaseLoader):
    """
    Target store kept in dicts.

    Enforces primary keys on "id", supports transactions and savepoints
    by snapshotting the tables, and records every statement it runs.
    """

    def __init__(self, fail_on: Optional[Dict[str, Any]] = None):
        super().__init__("memory")
        self.tables: Dict[str, Dict[Any, Dict[str, Any]]] = {}
        self.statements: List[str] = []
        self.inserts: List[tuple] = []
        self.fail_on = fail_on or {}
        self.opened = False
        self.closed = False
        self.commits = 0
        self.rollbacks = 0
        self._transaction: Optional[Dict[str, Dict[Any, Dict[str, Any]]]] = None
        self._savepoints: Dict[str, Dict[str, Dict[Any, Dict[str, Any]]]] = {}
        self._row_ids = 0

    def open(self):
        self.opened = True
        return self

    def close(self):
        self.closed = True

    def execute(self, sql, params=None):
        self.statements.append(sql)
        if sql.startswith("SAVEPOINT "):
            self._savepoints[sql.split()[-1]] = copy.deepcopy(self.tables)
        elif sql.startswith("ROLLBACK TO SAVEPOINT "):
            self.tables = copy.deepcopy(self._savepoints[sql.split()[-1]])
        elif sql.startswith("RELEASE SAVEPOINT "):
            self._savepoints.pop(sql.split()[-1], None)
        elif sql.startswith("CREATE TABLE IF NOT EXISTS "):
            name = sql.split("`")[1]
            self.tables.setdefault(name, {})
        return 0

    def insert_row(self, table, row, ignore=False):
        self.inserts.append((table, dict(row), ignore))
        rows = self.tables.setdefault(table, {})
        key = row.get("id")
        if key is not None and self.fail_on.get(table) == key:
            raise pymysql.err.DataError(1406, f"Data too long for column 'name' at row {key}")
        if key is None:
            self._row_ids += 1
            key = f"_row{self._row_ids}"
        if key in rows:
            if ignore:
                return 0
            raise pymysql.err.IntegrityError(1062, f"Duplicate entry '{key}' for key 'PRIMARY'")
        rows[key] = dict(row)
        return 1

    def find_by_pk(self, table, key, value):
        row = self.tables.get(table, {}).get(value)
        return dict(row) if row is not None else None

    def update_row(self, table, key, value, row):
        if self.fail_on.get(table) == value:
            raise pymysql.err.DataError(1406, f"Data too long for column 'name' at row {value}")
        self.tables[table][value].update(row)
        return 1

    def count_rows(self, table):
        if table not in self.tables:
            raise pymysql.err.ProgrammingError(1146, f"Table 'shadow.{table}' doesn't exist")
        return len(self.tables[table])

    def begin(self):
        self._transaction = copy.deepcopy(self.tables)

    def commit(self):
        self._transaction = None
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1
        if self._transaction is not None:
            self.tables = self._transaction
            self._transaction = None


class FakeExtractor(BaseExtractor):
    """Source backed by a dict of table -> rows."""

    def __init__(self, tables: Dict[str, List[Dict[str, Any]]], columns=None, batch_size: int = 2):
        super().__init__("fake", batch_size=batch_size)
        self.tables = tables
        self.columns = columns or {}
        self.requested: List[str] = []

    def extract_batch(self, table, offset=0, limit=1000):
        self.requested.append(table)
        if table not in self.tables:
            raise SourceTableNotFound(table)
        return [dict(r) for r in self.tables[table][offset:offset + limit]]

    def get_columns(self, table):
        return self.columns.get(table)


def make_response(status_code: int = 200, body: Any = None, text: str = ""):
    """A requests.Response stand-in."""
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.text = text
    if body is None:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def loader():
    return InMemoryLoader()


@pytest.fixture
def settings():
    return SyncSettings(
        mysql=MySQLConfig(database="shadow"),
        supabase=SupabaseConfig(url="https://project.supabase.co", service_role_key="service-key"),
        allow_sync=True,
        tables=["customers", "profiles"],
    )
