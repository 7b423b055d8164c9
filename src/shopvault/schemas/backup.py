"""Backup document and backup endpoint schemas."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class BackupDocument(BaseModel):
    """Versioned, self-describing snapshot of the whole dataset."""

    version: str = Field(..., description="Backup format version")
    timestamp: str = Field(..., description="ISO 8601 creation time")
    mode: Literal["remote", "local"] = Field(..., description="Storage mode the data came from")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Row counts and app version")
    data: dict[str, list[dict[str, Any]]] = Field(..., description="Rows per table")

    def row_counts(self) -> dict[str, int]:
        return {table: len(rows) for table, rows in self.data.items()}


class RestorePreview(BaseModel):
    """Summary of what a restore would load."""

    mode: str
    timestamp: str
    version: str
    metadata: dict[str, Any]
    tables: dict[str, int]


class EncryptRequest(BaseModel):
    """Body of the encrypt endpoint.

    The backup stays a plain mapping so that structural checks can report
    precise messages instead of a generic schema error.
    """

    backup: dict[str, Any] | None = None


class DecryptRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_content: str | None = Field(None, alias="fileContent")
    iv: str | None = None


class RestoreRequest(BaseModel):
    backup: dict[str, Any] | None = None


class RestoreFileRequest(BaseModel):
    """Restore straight from an encrypted transport file."""

    model_config = ConfigDict(populate_by_name=True)

    file_name: str | None = Field(None, alias="fileName")
    file_content: str | None = Field(None, alias="fileContent")
