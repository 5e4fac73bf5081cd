"""Structured column renames applied to rows and column lists."""

import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from ..models.schema import DROP, ColumnDefinition, ColumnRenameRule
from ..models.record import SourceRow

logger = logging.getLogger(__name__)


# Column drift between the Supabase schema and the MySQL shadow schema.
STATION_2100_RULES = [
    ColumnRenameRule("profiles", {
        "role": "position",
        "staff_code": "badge_id",
    }),
    ColumnRenameRule("inventory_products", {
        "bin_no": "category",
        "stock_category": "category",
        "sale_markup": "sale_price",
        "open_balance": DROP,
        "open_bal_date": DROP,
    }),
    ColumnRenameRule("inventory_batches", {
        "location": DROP,
    }),
    ColumnRenameRule("job_cards", {
        "jobcardid": "id",
        "customerid": "customer_id",
        "custaddress": "description",
        "custphone": "description",
        "custfax": DROP,
    }),
    ColumnRenameRule("user_roles", {
        "role": "role_name",
        "updated_at": DROP,
    }),
    ColumnRenameRule("exchange_rates", {
        "base_currency": "from_currency",
        "target_currency": "to_currency",
        "last_updated": "date",
        "manual_override": DROP,
    }),
]


class RenameRegistry:
    """
    Holds one ColumnRenameRule per table and applies them.

    When several source columns land on the same target column, the first
    non-null value in source column order is kept.
    """

    def __init__(self, rules: Optional[Iterable[ColumnRenameRule]] = None):
        self._rules: Dict[str, ColumnRenameRule] = {}
        for rule in rules or []:
            self.register(rule)

    @classmethod
    def default(cls) -> "RenameRegistry":
        return cls(STATION_2100_RULES)

    @classmethod
    def from_file(cls, path: str, include_defaults: bool = True) -> "RenameRegistry":
        """
        Load rules from a JSON file.

        The file holds either a list of {"table": ..., "renames": {...}}
        objects or a mapping of table -> renames. A rename to null or
        "drop" removes the column.
        """
        with open(Path(path)) as f:
            data = json.load(f)

        if isinstance(data, dict):
            data = [{"table": table, "renames": renames} for table, renames in data.items()]

        registry = cls.default() if include_defaults else cls()
        for item in data:
            registry.register(ColumnRenameRule.from_dict(item))
        logger.info(f"Loaded rename rules for {len(data)} tables from {path}")
        return registry

    def register(self, rule: ColumnRenameRule) -> None:
        """Add a rule, merging with any rule already held for the table."""
        existing = self._rules.get(rule.table)
        if existing:
            existing.renames.update(rule.renames)
        else:
            self._rules[rule.table] = ColumnRenameRule(rule.table, dict(rule.renames))

    def get(self, table: str) -> Optional[ColumnRenameRule]:
        return self._rules.get(table)

    @property
    def tables(self) -> List[str]:
        return list(self._rules.keys())

    def apply_to_row(self, table: str, row: SourceRow) -> SourceRow:
        """Return a copy of the row with the table's renames applied."""
        rule = self._rules.get(table)
        if rule is None:
            return dict(row)

        renamed: Dict[str, Any] = {}
        for column, value in row.items():
            target = rule.target_name(column)
            if target is DROP:
                continue
            if target in renamed:
                if renamed[target] is None and value is not None:
                    renamed[target] = value
                continue
            renamed[target] = value
        return renamed

    def apply_to_columns(
        self,
        table: str,
        columns: List[ColumnDefinition]
    ) -> List[ColumnDefinition]:
        """Return the column list as it will exist in the target table."""
        rule = self._rules.get(table)
        if rule is None:
            return list(columns)

        renamed: List[ColumnDefinition] = []
        seen = set()
        for column in columns:
            target = rule.target_name(column.name)
            if target is DROP or target in seen:
                continue
            seen.add(target)
            renamed.append(column if target == column.name else replace(column, name=target))
        return renamed
