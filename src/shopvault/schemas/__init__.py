"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .backup import (
    BackupDocument,
    DecryptRequest,
    EncryptRequest,
    RestoreFileRequest,
    RestorePreview,
    RestoreRequest,
)
from .drive import AuthCallbackRequest, FileIdRequest, TokenCookiePayload, UploadRequest

__all__ = [
    "BackupDocument", "DecryptRequest", "EncryptRequest",
    "RestoreFileRequest", "RestorePreview", "RestoreRequest",
    "AuthCallbackRequest", "FileIdRequest", "TokenCookiePayload", "UploadRequest",
]
