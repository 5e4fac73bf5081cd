"""Tests for row-by-row copying."""

import json
from datetime import datetime

import pytest

from station_sync.errors import TargetConnectionError
from station_sync.models.migration import MigrationStatus
from station_sync.services.batch_copier import (
    BatchCopier,
    merge_for_update,
    parse_timestamp,
    serialize_value,
)
from station_sync.services.rename_rules import RenameRegistry

from conftest import InMemoryLoader


class TestSerializeValue:
    def test_null_is_bound_as_none(self):
        assert serialize_value(None) is None
        assert serialize_value(None, as_timestamp=True) is None

    def test_objects_become_compact_json(self):
        value = {"tags": ["a", "b"], "nested": {"n": 1}, "name": "Zürich"}
        text = serialize_value(value)
        assert text == '{"tags":["a","b"],"nested":{"n":1},"name":"Zürich"}'
        assert json.loads(text) == value

    def test_timestamps(self):
        assert parse_timestamp("2024-03-01T10:15:30.12345+02:00") == datetime(2024, 3, 1, 8, 15, 30, 123450)
        assert parse_timestamp("2024-03-01T10:15:30Z") == datetime(2024, 3, 1, 10, 15, 30)
        assert serialize_value("2024-03-01 10:15:30", as_timestamp=True) == datetime(2024, 3, 1, 10, 15, 30)

    def test_bad_timestamp_raises(self):
        with pytest.raises(ValueError):
            parse_timestamp("not a date")


def test_merge_keeps_existing_values_for_nulls():
    merged = merge_for_update({"name": None, "email": "new@example.com"}, {"name": "Old", "email": "old@example.com"})
    assert merged == {"name": "Old", "email": "new@example.com"}


class TestCopyTable:
    def test_null_values_are_bound_not_stringified(self, loader):
        BatchCopier(loader).copy_table("customers", [{"id": "c1", "name": None}])
        table, row, _ = loader.inserts[0]
        assert row["name"] is None

    def test_empty_table_issues_no_statements(self, loader):
        report = BatchCopier(loader).copy_table("customers", [])
        assert report.result.total == 0
        assert report.status == MigrationStatus.SKIPPED
        assert loader.inserts == []
        assert loader.statements == []

    def test_rows_from_fetch(self, loader):
        report = BatchCopier(loader).copy_table("customers", fetch=lambda: [{"id": "c1"}, {"id": "c2"}])
        assert report.result.inserted == 2

    def test_one_bad_row_does_not_abort_the_rest(self):
        loader = InMemoryLoader(fail_on={"customers": "c3"})
        rows = [{"id": f"c{i}", "name": f"Customer {i}"} for i in range(1, 6)]

        report = BatchCopier(loader).copy_table("customers", rows)

        assert report.result.total == 5
        assert report.result.errors == 1
        assert report.result.inserted + report.result.updated == 4
        assert report.failures[0].error_code == 1406
        assert report.failures[0].snippet.startswith("INSERT INTO `customers`")
        assert loader.commits == 1

    def test_duplicate_customer(self, loader):
        rows = [{"id": "c1", "name": "Acme"}, {"id": "c1", "name": "Acme Dup"}]

        report = BatchCopier(loader).copy_table("customers", rows)

        assert report.result.total == 2
        assert report.result.inserted == 1
        assert report.result.errors == 1
        assert loader.tables["customers"]["c1"]["name"] == "Acme"
        assert "Duplicate entry" in report.failures[0].error

    def test_duplicate_ignored_counts_only_toward_total(self, loader):
        rows = [{"id": "c1", "name": "Acme"}, {"id": "c1", "name": "Acme Dup"}]

        report = BatchCopier(loader).copy_table("customers", rows, ignore_duplicates=True)

        assert report.result.total == 2
        assert report.result.inserted == 1
        assert report.result.errors == 0
        assert all(ignore for _, _, ignore in loader.inserts)

    def test_renames_are_applied(self, loader):
        BatchCopier(loader, RenameRegistry.default()).copy_table(
            "user_roles", [{"id": "r1", "role": "admin", "updated_at": "2024-01-01"}]
        )
        assert loader.tables["user_roles"]["r1"] == {"id": "r1", "role_name": "admin"}

    def test_only_first_failures_are_logged(self, caplog):
        loader = InMemoryLoader()
        rows = [{"id": "c1"}] * 8

        report = BatchCopier(loader, max_logged_errors=5).copy_table("customers", rows)

        assert report.result.errors == 7
        assert len(report.failures) == 7
        logged = [r for r in caplog.records if r.message.startswith("Error inserting into customers")]
        assert len(logged) == 5
        assert "2 more errors in customers were not logged" in caplog.text

    def test_lost_connection_propagates(self, loader):
        def broken(table, row, ignore=False):
            raise TargetConnectionError("Lost MySQL connection")

        loader.insert_row = broken
        with pytest.raises(TargetConnectionError):
            BatchCopier(loader).copy_table("customers", [{"id": "c1"}])

    def test_commits_in_chunks_before_a_lost_connection(self, loader):
        insert = loader.insert_row

        def drops_at_c5(table, row, ignore=False):
            if row["id"] == "c5":
                raise TargetConnectionError("Lost MySQL connection")
            return insert(table, row, ignore)

        loader.insert_row = drops_at_c5
        rows = [{"id": f"c{i}"} for i in range(1, 7)]

        with pytest.raises(TargetConnectionError):
            BatchCopier(loader, commit_every=2).copy_table("customers", rows)
        assert loader.commits == 2
        assert sorted(loader.tables["customers"]) == ["c1", "c2", "c3", "c4"]


class TestUpsertRow:
    def test_insert_then_update_merges(self, loader):
        copier = BatchCopier(loader)

        assert copier.upsert_row("customers", {"id": "c1", "name": "Acme", "city": "Paris"}) == "inserted"
        assert copier.upsert_row("customers", {"id": "c1", "name": "Acme Dup", "city": None}) == "updated"

        assert loader.tables["customers"]["c1"] == {"id": "c1", "name": "Acme Dup", "city": "Paris"}

    def test_row_without_key_is_rejected(self, loader):
        with pytest.raises(ValueError):
            BatchCopier(loader).upsert_row("customers", {"name": "Anonymous"})
