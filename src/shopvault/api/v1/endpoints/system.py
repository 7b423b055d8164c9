"""System and transparency endpoints for ShopVault API."""

from __future__ import annotations

from fastapi import APIRouter

from shopvault.api.v1.dependencies import DataStoreDep, ReadGate
from shopvault.core.settings import settings
from shopvault.services.rate_limit import RATE_LIMITS
from shopvault.services.snapshot import BACKUP_VERSION, calculate_metadata

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/config")
async def get_public_config() -> dict[str, object]:
    """Return a sanitized snapshot of public runtime configuration.

    Excludes keys, secrets and connection strings.

    Returns:
        Dictionary containing app metadata, backup limits, rate-limit
        policies and whether Google Drive is configured
    """
    return {
        "app": {
            "name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "storage_mode": settings.storage_mode,
        },
        "backup": {
            "version": BACKUP_VERSION,
            "max_backup_bytes": settings.max_backup_bytes,
            "max_encrypted_bytes": settings.max_encrypted_bytes,
            "safety_snapshot_ttl_seconds": settings.safety_snapshot_ttl_seconds,
        },
        "rate_limits": {
            name: {"max_requests": policy.max_requests, "window_seconds": policy.window_seconds}
            for name, policy in RATE_LIMITS.items()
        },
        "google_drive": {
            "enabled": bool(settings.google_client_id and settings.google_redirect_uri),
            "folder_name": settings.drive_folder_name,
        },
    }


@router.get("/stats", dependencies=[ReadGate])
def get_dataset_stats(store: DataStoreDep) -> dict[str, object]:
    """Return per-table row counts of the live dataset.

    Args:
        store: Active data store

    Returns:
        Storage mode and ``total_<table>`` counts, as a backup would record
    """
    data = {table: store.read_table(table) for table in store.tables}
    return {"mode": store.mode, "totals": calculate_metadata(data, store.tables)}
