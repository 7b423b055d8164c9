"""Backup encryption and restore endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter

from shopvault.api.v1.dependencies import (
    BackupCodecDep,
    DataGate,
    DataStoreDep,
    ReadGate,
    RestoreEngineDep,
    SessionIdDep,
    UploadGate,
)
from shopvault.core.errors import ValidationError
from shopvault.schemas.backup import (
    DecryptRequest,
    EncryptRequest,
    RestoreFileRequest,
    RestoreRequest,
)
from shopvault.services.crypto import is_valid_iv, parse_iv_from_filename
from shopvault.services.snapshot import SnapshotBuilder, build_preview, check_structure

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/backup", tags=["backup"])


def _require_backup(backup: dict[str, Any] | None) -> dict[str, Any]:
    if not backup:
        raise ValidationError("Backup data is required")
    return backup


@router.post("/encrypt", dependencies=[UploadGate])
def encrypt_backup(body: EncryptRequest, codec: BackupCodecDep) -> dict[str, Any]:
    """Encrypt a backup document into its transport form.

    Args:
        body: Request carrying the backup document
        codec: Backup codec built from the server key

    Returns:
        File name (embedding the IV), base64 content, IV and metadata
    """
    backup = _require_backup(body.backup)
    check_structure(backup)
    sealed = codec.seal(backup)
    logger.info("Encrypted %s backup into %s", backup.get("mode"), sealed.file_name)
    return {
        "success": True,
        "fileName": sealed.file_name,
        "fileContent": sealed.file_content,
        "iv": sealed.iv,
        "metadata": {
            **(backup.get("metadata") or {}),
            "iv": sealed.iv,
            "encrypted": True,
            "compressed": True,
        },
    }


def _open_backup(codec: BackupCodecDep, file_content: str | None, iv: str | None) -> Any:
    if not file_content:
        raise ValidationError("File content is required")
    if iv is None or not is_valid_iv(iv):
        raise ValidationError("Invalid IV format")
    backup = codec.open(file_content, iv)
    if not isinstance(backup, dict) or not all(backup.get(k) for k in ("version", "timestamp", "data")):
        raise ValidationError("Invalid backup structure")
    return backup


@router.post("/decrypt", dependencies=[DataGate])
def decrypt_backup(body: DecryptRequest, codec: BackupCodecDep) -> dict[str, Any]:
    """Decrypt a transport file back into its backup document."""
    return {"success": True, "backup": _open_backup(codec, body.file_content, body.iv)}


@router.post("/snapshot", dependencies=[DataGate])
def create_snapshot(store: DataStoreDep) -> dict[str, Any]:
    """Read the live dataset into a backup document."""
    document = SnapshotBuilder(store).build()
    return {"success": True, "backup": document.model_dump()}


@router.post("/preview", dependencies=[ReadGate])
def preview_backup(body: RestoreRequest) -> dict[str, Any]:
    preview = build_preview(_require_backup(body.backup))
    return {"success": True, "preview": preview.model_dump()}


@router.post("/restore", dependencies=[DataGate])
def restore_backup(body: RestoreRequest, engine: RestoreEngineDep, session_id: SessionIdDep) -> dict[str, Any]:
    """Replace the live dataset with a backup document.

    A failed restore is rolled back to the state before the request; the
    error response says whether the rollback succeeded.
    """
    outcome = engine.restore(_require_backup(body.backup), session_id)
    return outcome.as_dict()


@router.post("/restore-file", dependencies=[DataGate])
def restore_backup_file(
    body: RestoreFileRequest,
    codec: BackupCodecDep,
    engine: RestoreEngineDep,
    session_id: SessionIdDep,
) -> dict[str, Any]:
    """Decrypt a transport file and restore it.

    The IV is read from the file name; a name without one is rejected before
    any decryption is attempted.
    """
    if not body.file_name:
        raise ValidationError("File name is required")
    iv = parse_iv_from_filename(body.file_name)
    backup = _open_backup(codec, body.file_content, iv)
    outcome = engine.restore(backup, session_id)
    return outcome.as_dict()


@router.post("/rollback", dependencies=[DataGate])
def rollback_restore(engine: RestoreEngineDep, session_id: SessionIdDep) -> dict[str, Any]:
    """Reload the session's safety snapshot after an interrupted restore."""
    outcome = engine.rollback(session_id)
    return outcome.as_dict()


@router.get("/safety-status", dependencies=[ReadGate])
def safety_status(engine: RestoreEngineDep, session_id: SessionIdDep) -> dict[str, Any]:
    return {"success": True, "available": engine.has_safety_snapshot(session_id)}
