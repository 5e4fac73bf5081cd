"""Named sync resources (users, profiles) and their per-row upsert rules."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set

from ..loaders.base import BaseLoader
from ..models.migration import MigrationStatus, SyncOptions, TableCopyReport, utcnow
from ..models.record import SourceRow
from .batch_copier import BatchCopier, ROW_ERRORS

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class ResourceDefinition:
    """
    How one logical resource maps onto a target table.

    Only the listed fields are written. On create, a None source value
    falls back to create_defaults; on update, a None source value keeps
    the target's current value. Fields in created_fields are never
    changed by an update, and touch_field is stamped on every write.
    """
    name: str
    source_table: str
    target_table: str
    fields: List[str]
    primary_key: str = "id"
    timestamp_fields: Set[str] = field(default_factory=set)
    create_defaults: Dict[str, Any] = field(default_factory=dict)
    created_fields: Set[str] = field(default_factory=lambda: {"created_at"})
    touch_field: Optional[str] = "updated_at"
    clock: Callable[[], datetime] = _now

    def build_create(self, row: SourceRow) -> SourceRow:
        now = self.clock()
        data: SourceRow = {self.primary_key: row.get(self.primary_key)}
        for name in self.fields:
            value = row.get(name)
            if value is None and name in self.create_defaults:
                value = self.create_defaults[name]
            if value is None and name in self.created_fields:
                value = now
            data[name] = value
        if self.touch_field:
            data[self.touch_field] = now
        return data

    def build_update(self, row: SourceRow, existing: Dict[str, Any]) -> SourceRow:
        data: SourceRow = {}
        for name in self.fields:
            if name in self.created_fields:
                continue
            value = row.get(name)
            data[name] = value if value is not None else existing.get(name)
        if self.touch_field:
            data[self.touch_field] = self.clock()
        return data


USERS = ResourceDefinition(
    name="users",
    source_table="users",
    target_table="users",
    fields=[
        "email",
        "created_at",
        "email_confirmed_at",
        "last_sign_in_at",
        "raw_app_meta_data",
        "raw_user_meta_data",
        "is_super_admin",
        "confirmation_token",
        "recovery_token",
        "email_change_token",
        "email_change",
        "phone",
        "phone_confirmed_at",
        "phone_change",
        "phone_change_token",
        "confirmed_at",
        "email_change_confirm_status",
        "banned_until",
        "re_authentication_token",
        "re_authentication_sent_at",
        "is_sso_user",
        "deleted_at",
        "is_anonymous",
        "encrypted_password",
    ],
    timestamp_fields={
        "created_at",
        "email_confirmed_at",
        "last_sign_in_at",
        "phone_confirmed_at",
        "confirmed_at",
        "banned_until",
        "re_authentication_sent_at",
        "deleted_at",
    },
    create_defaults={
        "email": "",
        "is_super_admin": False,
        "email_change_confirm_status": 0,
        "is_sso_user": False,
        "is_anonymous": False,
    },
)

PROFILES = ResourceDefinition(
    name="profiles",
    source_table="profiles",
    target_table="profiles",
    fields=[
        "user_id",
        "email",
        "full_name",
        "position",
        "department_id",
        "is_staff",
        "staff_active",
        "phone",
        "badge_id",
        "profile_image_url",
        "bio",
        "created_at",
    ],
    timestamp_fields={"created_at"},
    create_defaults={
        "user_id": "",
        "email": "",
        "is_staff": False,
        "staff_active": True,
    },
)

DEFAULT_RESOURCES = [USERS, PROFILES]


class _ResourceRollback(Exception):
    """Raised inside a resource transaction to undo all of its rows."""


class ResourceSyncer:
    """
    Upserts the rows of one resource inside a single transaction.

    Each row runs in its own savepoint, so a failing row is undone and
    counted while the others commit. With all_or_nothing set, any
    failure rolls back the whole resource.
    """

    def __init__(self, loader: BaseLoader, copier: BatchCopier):
        self.loader = loader
        self.copier = copier

    def sync(
        self,
        resource: ResourceDefinition,
        rows: List[SourceRow],
        options: SyncOptions,
        report: Optional[TableCopyReport] = None
    ) -> TableCopyReport:
        """
        Upsert rows for a resource.

        Args:
            resource: Resource definition
            rows: Source rows
            options: Sync options; dry runs only count
            report: Existing report to fill in

        Returns:
            TableCopyReport for the resource
        """
        report = report or TableCopyReport(table=resource.name, started_at=utcnow())
        report.result.total = len(rows)

        if options.dry_run:
            logger.info(f"[dry run] {resource.name}: {len(rows)} rows would be synced")
            report.status = MigrationStatus.COMPLETED
            report.completed_at = utcnow()
            return report

        if not rows:
            report.status = MigrationStatus.SKIPPED
            report.warnings.append(f"No {resource.name} to sync")
            report.completed_at = utcnow()
            logger.warning(f"No {resource.name} found in source")
            return report

        report.status = MigrationStatus.LOADING
        result = report.result
        try:
            with self.loader.transaction():
                for index, row in enumerate(rows, 1):
                    self._sync_row(resource, row, report)
                    if index % self.copier.progress_every == 0:
                        logger.info(f"  {resource.name}: {index}/{len(rows)} rows processed")
                if options.all_or_nothing and result.errors:
                    raise _ResourceRollback()
        except _ResourceRollback:
            logger.warning(
                f"Rolled back all {resource.name} changes after {result.errors} row failures"
            )
            result.inserted = 0
            result.updated = 0

        self.copier.finish(report)
        return report

    def _sync_row(self, resource: ResourceDefinition, row: SourceRow, report: TableCopyReport) -> None:
        try:
            with self.loader.savepoint():
                outcome = self.copier.upsert_row(
                    resource.target_table,
                    row,
                    key=resource.primary_key,
                    on_create=resource.build_create,
                    on_update=resource.build_update,
                    timestamp_columns=resource.timestamp_fields,
                )
        except ROW_ERRORS as e:
            logger.debug(f"Error syncing {resource.name} {row.get(resource.primary_key)}: {e}")
            self.copier.record_failure(report, row, e)
            return

        if outcome == "inserted":
            report.result.inserted += 1
        else:
            report.result.updated += 1
