"""Google Drive and OAuth session schemas."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class TokenCookiePayload(BaseModel):
    """OAuth tokens kept in the encrypted session cookie."""

    access_token: str | None = None
    refresh_token: str | None = None
    # Epoch milliseconds, as returned by Google.
    expiry_date: int | None = None


class AuthCallbackRequest(BaseModel):
    code: str | None = None


class FileIdRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_id: str | None = Field(None, alias="fileId")


class UploadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_name: str | None = Field(None, alias="fileName")
    file_content: str | None = Field(None, alias="fileContent")
