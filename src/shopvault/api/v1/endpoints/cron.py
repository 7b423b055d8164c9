"""Scheduled jobs triggered by the platform scheduler."""

from __future__ import annotations

import base64
import logging
import secrets
from typing import Annotated, Any

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from shopvault.api.v1.dependencies import BackupCodecDep, DataStoreDep, HttpClientDep, OAuthClientDep
from shopvault.core.errors import AuthorizationError, ConfigurationError
from shopvault.core.settings import settings
from shopvault.services.drive import DriveStorageClient
from shopvault.services.snapshot import SnapshotBuilder, utc_timestamp

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])

# HTTP Bearer scheme carrying the scheduler secret
bearer_scheme = HTTPBearer(auto_error=False)


def verify_cron_secret(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> None:
    """Reject calls that do not present the configured scheduler secret.

    Raises:
        ConfigurationError: If no secret is configured
        AuthorizationError: If the bearer token does not match
    """
    if not settings.cron_secret:
        raise ConfigurationError("Server configuration error", detail="CRON_SECRET is not set")
    if credentials is None or not secrets.compare_digest(
        credentials.credentials.encode("utf-8"),
        settings.cron_secret.encode("utf-8"),
    ):
        raise AuthorizationError("Unauthorized")


@router.get("/daily-backup", dependencies=[Depends(verify_cron_secret)])
async def daily_backup(
    store: DataStoreDep,
    codec: BackupCodecDep,
    oauth: OAuthClientDep,
    http: HttpClientDep,
) -> dict[str, Any]:
    """Snapshot, encrypt and upload the dataset, then prune old backups."""
    email = settings.google_service_account_email
    private_key = settings.google_service_account_private_key
    if not email or not private_key:
        raise ConfigurationError(
            "Server configuration error",
            detail="Google service account credentials are not set",
        )

    document = await run_in_threadpool(SnapshotBuilder(store).build)
    sealed = await run_in_threadpool(codec.seal, document.model_dump())
    payload = await run_in_threadpool(base64.b64decode, sealed.file_content)

    access_token = await oauth.service_account_token(email, private_key)
    drive = DriveStorageClient(access_token, http)
    uploaded = await drive.upload_backup(sealed.file_name, payload)
    deleted = await drive.cleanup_old_backups(settings.backup_retention_days)

    logger.info(
        "Daily backup %s uploaded, %d backups older than %d days removed",
        sealed.file_name,
        deleted,
        settings.backup_retention_days,
    )
    return {
        "success": True,
        "timestamp": utc_timestamp(),
        "backup": {
            "fileName": sealed.file_name,
            "size": uploaded.get("size"),
            "id": uploaded.get("id"),
        },
        "cleanup": {"deletedCount": deleted},
    }
