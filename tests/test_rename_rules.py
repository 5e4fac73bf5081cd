"""Tests for structured column renames."""

import json

from station_sync.models.schema import ColumnDefinition, ColumnRenameRule, DROP
from station_sync.services.rename_rules import RenameRegistry


def test_default_rules_cover_station_tables():
    registry = RenameRegistry.default()
    assert set(registry.tables) >= {"profiles", "inventory_products", "job_cards", "exchange_rates"}


def test_apply_to_row_renames_and_drops():
    registry = RenameRegistry.default()
    row = {
        "id": "r1",
        "base_currency": "USD",
        "target_currency": "EUR",
        "last_updated": "2024-01-01",
        "manual_override": True,
    }
    assert registry.apply_to_row("exchange_rates", row) == {
        "id": "r1",
        "from_currency": "USD",
        "to_currency": "EUR",
        "date": "2024-01-01",
    }


def test_first_non_null_value_wins_on_collision():
    registry = RenameRegistry.default()
    row = {"id": "p1", "bin_no": None, "stock_category": "Rotables"}
    assert registry.apply_to_row("inventory_products", row)["category"] == "Rotables"

    row = {"id": "p1", "bin_no": "B-12", "stock_category": "Rotables"}
    assert registry.apply_to_row("inventory_products", row)["category"] == "B-12"


def test_rename_does_not_touch_similar_names():
    registry = RenameRegistry([ColumnRenameRule("user_roles", {"role": "role_name"})])
    row = {"role": "admin", "role_id": 3, "user_role": "x"}
    assert registry.apply_to_row("user_roles", row) == {"role_name": "admin", "role_id": 3, "user_role": "x"}


def test_tables_without_rules_are_copied_unchanged():
    registry = RenameRegistry.default()
    row = {"id": "c1", "name": "Acme"}
    result = registry.apply_to_row("customers", row)
    assert result == row
    assert result is not row


def test_apply_to_columns():
    registry = RenameRegistry.default()
    columns = [ColumnDefinition("id", "uuid"), ColumnDefinition("location", "text"), ColumnDefinition("qty", "integer")]
    renamed = registry.apply_to_columns("inventory_batches", columns)
    assert [c.name for c in renamed] == ["id", "qty"]


def test_from_file_merges_with_defaults(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text(json.dumps({
        "customers": {"custname": "name", "legacy_flag": "drop"},
        "profiles": {"nickname": None},
    }))

    registry = RenameRegistry.from_file(str(path))

    assert registry.get("customers").target_name("custname") == "name"
    assert registry.get("customers").target_name("legacy_flag") is DROP
    profiles = registry.get("profiles")
    assert profiles.target_name("nickname") is DROP
    assert profiles.target_name("role") == "position"


def test_from_file_without_defaults(tmp_path):
    path = tmp_path / "rules.json"
    path.write_text(json.dumps([{"table": "tools", "renames": {"toolname": "name"}}]))

    registry = RenameRegistry.from_file(str(path), include_defaults=False)

    assert registry.tables == ["tools"]
