"""Backup document assembly and structural validation."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any

from shopvault.core.errors import ValidationError
from shopvault.core.settings import settings
from shopvault.schemas.backup import BackupDocument, RestorePreview
from shopvault.services.datastore import TABLES_BY_MODE, DataStore, Record

logger = logging.getLogger(__name__)

BACKUP_VERSION = "1.0"


def utc_timestamp(moment: datetime | None = None) -> str:
    """Return an ISO 8601 UTC timestamp with millisecond precision."""
    value = moment or datetime.now(UTC)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def calculate_metadata(data: Mapping[str, list[Record] | None], tables: tuple[str, ...]) -> dict[str, int]:
    """Return ``total_<table>`` row counts; a missing table counts as zero."""
    return {f"total_{table}": len(data.get(table) or []) for table in tables}


class SnapshotBuilder:
    """Read every table of a data store into a ``BackupDocument``."""

    def __init__(self, store: DataStore, *, app_version: str | None = None) -> None:
        self.store = store
        self.app_version = app_version or settings.app_version

    def read_all(self) -> dict[str, list[Record]]:
        """Read every table for the store's mode, parents first."""
        return {table: self.store.read_table(table) for table in self.store.tables}

    def build(self) -> BackupDocument:
        """Assemble a full backup of the live dataset.

        Building never writes to the store.
        """
        data = self.read_all()
        metadata: dict[str, Any] = calculate_metadata(data, self.store.tables)
        metadata["app_version"] = self.app_version
        document = BackupDocument(
            version=BACKUP_VERSION,
            timestamp=utc_timestamp(),
            mode=self.store.mode,
            metadata=metadata,
            data=data,
        )
        logger.info(
            "Built %s backup with %d rows across %d tables",
            document.mode,
            sum(len(rows) for rows in data.values()),
            len(data),
        )
        return document


def check_structure(backup: Any) -> None:
    """Check the fields every backup must carry.

    Raises:
        ValidationError: If a required field is missing or the version differs
    """
    if not isinstance(backup, Mapping):
        raise ValidationError("Backup data is required")
    for field in ("version", "timestamp", "mode", "data"):
        if not backup.get(field):
            raise ValidationError(f"Invalid backup: missing {field}")
    if backup["version"] != BACKUP_VERSION:
        raise ValidationError(
            f"Incompatible backup version: {str(backup['version'])[:20]} (expected {BACKUP_VERSION})"
        )
    if not isinstance(backup["data"], Mapping):
        raise ValidationError("Invalid backup: data must be an object")


def validate_backup(backup: Any, expected_mode: str) -> BackupDocument:
    """Validate a candidate backup for restoring into ``expected_mode``.

    Every table the mode requires must be present in ``data`` (an empty list
    is fine) and each must hold a list of objects.

    Returns:
        The parsed ``BackupDocument``

    Raises:
        ValidationError: On any structural problem or a mode mismatch
    """
    check_structure(backup)
    mode = backup["mode"]
    if mode not in TABLES_BY_MODE:
        raise ValidationError("Invalid backup: unknown mode")
    if mode != expected_mode:
        raise ValidationError(
            f"Backup mode mismatch: backup is {mode}, current mode is {expected_mode}"
        )

    data = backup["data"]
    for table in TABLES_BY_MODE[mode]:
        if table not in data:
            raise ValidationError(f"Invalid backup: missing table {table}")
        rows = data[table]
        if not isinstance(rows, list) or not all(isinstance(row, Mapping) for row in rows):
            raise ValidationError(f"Invalid backup: table {table} must be a list of records")

    return BackupDocument(
        version=backup["version"],
        timestamp=str(backup["timestamp"]),
        mode=mode,
        metadata=dict(backup.get("metadata") or {}),
        data={table: [dict(row) for row in data[table]] for table in TABLES_BY_MODE[mode]},
    )


def build_preview(backup: Any) -> RestorePreview:
    """Describe what restoring ``backup`` would load, without touching storage."""
    check_structure(backup)
    mode = backup["mode"]
    tables = TABLES_BY_MODE.get(mode)
    if tables is None:
        raise ValidationError("Invalid backup: unknown mode")
    data = backup["data"]
    return RestorePreview(
        mode=mode,
        timestamp=str(backup["timestamp"]),
        version=backup["version"],
        metadata=dict(backup.get("metadata") or {}),
        tables={table: len(data.get(table) or []) for table in tables},
    )
