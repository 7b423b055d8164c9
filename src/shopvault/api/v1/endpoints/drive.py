"""Google Drive authentication and backup file endpoints."""

from __future__ import annotations

import base64
import logging
from typing import Any

from fastapi import APIRouter, Request, Response
from fastapi.concurrency import run_in_threadpool

from shopvault.api.v1.dependencies import (
    AuthGate,
    DataGate,
    DriveClientDep,
    OAuthClientDep,
    OpenReadGate,
    ReadGate,
    TokenCipherDep,
    UploadGate,
    clear_drive_cookie,
    read_drive_tokens,
    set_drive_cookie,
)
from shopvault.core.errors import ValidationError
from shopvault.core.settings import settings
from shopvault.schemas.drive import AuthCallbackRequest, FileIdRequest, UploadRequest
from shopvault.services.drive import (
    decode_base64,
    is_non_empty_string,
    is_valid_auth_code,
    is_valid_backup_file_name,
    is_valid_file_id,
    token_needs_refresh,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/google-drive", tags=["google-drive"])


def _require_file_id(body: FileIdRequest) -> str:
    if body.file_id is None or not is_valid_file_id(body.file_id):
        raise ValidationError("Invalid file ID format")
    return body.file_id


# --- authentication -------------------------------------------------------------


@router.get("/auth-url", dependencies=[OpenReadGate])
def auth_url(oauth: OAuthClientDep) -> dict[str, Any]:
    """Return the Google consent URL for Drive access."""
    return {"success": True, "authUrl": oauth.authorization_url()}


@router.post("/auth-callback", dependencies=[AuthGate])
async def auth_callback(
    body: AuthCallbackRequest,
    response: Response,
    oauth: OAuthClientDep,
    cipher: TokenCipherDep,
) -> dict[str, Any]:
    """Exchange an authorization code and store the tokens in a cookie."""
    if body.code is None or not is_valid_auth_code(body.code):
        raise ValidationError("Invalid authorization code")
    tokens = await oauth.exchange_code(body.code)
    set_drive_cookie(response, cipher, tokens)
    logger.info("Google Drive session established")
    return {"success": True, "message": "Authentication successful"}


@router.get("/auth-status", dependencies=[ReadGate])
def auth_status(request: Request, cipher: TokenCipherDep) -> dict[str, Any]:
    """Report whether the session cookie holds usable tokens.

    A missing, tampered or malformed cookie reads as unauthenticated.
    """
    tokens = read_drive_tokens(request, cipher)
    if tokens is None:
        return {"success": True, "authenticated": False, "needsRefresh": False}
    return {
        "success": True,
        "authenticated": bool(tokens.access_token and tokens.refresh_token),
        "needsRefresh": token_needs_refresh(tokens),
    }


@router.post("/auth-logout", dependencies=[AuthGate])
def auth_logout(response: Response) -> dict[str, Any]:
    clear_drive_cookie(response)
    return {"success": True, "message": "Logged out successfully"}


# --- backup files ---------------------------------------------------------------


@router.post("/list-backups", dependencies=[ReadGate])
async def list_backups(drive: DriveClientDep) -> dict[str, Any]:
    return {"success": True, "files": await drive.list_backups()}


@router.post("/upload-backup", dependencies=[UploadGate])
async def upload_backup(body: UploadRequest, drive: DriveClientDep) -> dict[str, Any]:
    """Upload an encrypted transport file to the backup folder."""
    if body.file_name is None or not is_valid_backup_file_name(body.file_name):
        raise ValidationError("Invalid file name format. Expected: backup-YYYY-MM-DD-*.json.gz")
    if body.file_content is None or not is_non_empty_string(body.file_content):
        raise ValidationError("File content is required")
    if len(body.file_content) > settings.max_encrypted_bytes:
        raise ValidationError("File too large")

    content = await run_in_threadpool(decode_base64, body.file_content)
    if content is None:
        raise ValidationError("File content must be base64 encoded")
    uploaded = await drive.upload_backup(body.file_name, content)
    return {"success": True, "file": uploaded}


@router.post("/download-backup", dependencies=[DataGate])
async def download_backup(body: FileIdRequest, drive: DriveClientDep) -> dict[str, Any]:
    """Download a backup file as base64, with its name for IV recovery."""
    file_id = _require_file_id(body)
    content = await drive.download_backup(file_id)
    file_name = await drive.get_file_name(file_id)
    encoded = await run_in_threadpool(base64.b64encode, content)
    return {"success": True, "fileName": file_name, "fileContent": encoded.decode("ascii")}


@router.post("/delete-backup", dependencies=[DataGate])
async def delete_backup(body: FileIdRequest, drive: DriveClientDep) -> dict[str, Any]:
    await drive.delete_backup(_require_file_id(body))
    return {"success": True}


@router.post("/storage-info", dependencies=[ReadGate])
async def storage_info(drive: DriveClientDep) -> dict[str, Any]:
    return {"success": True, "storageInfo": await drive.storage_info()}
