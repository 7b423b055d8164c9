"""Google Drive storage and OAuth clients.

Encrypted backups are kept as gzip files in a dedicated Drive folder. The
clients speak the Drive v3 and OAuth 2.0 REST APIs over ``httpx`` and map
every failure to ``UpstreamError`` or ``AuthorizationError`` so callers never
see raw transport errors.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
import re
import secrets
import time
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import urlencode

import httpx
from jose import JWTError, jwt

from shopvault.core.errors import AuthorizationError, ConfigurationError, UpstreamError
from shopvault.core.settings import settings
from shopvault.schemas.drive import TokenCookiePayload

logger = logging.getLogger(__name__)

AUTH_ENDPOINT = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
DRIVE_API = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD_API = "https://www.googleapis.com/upload/drive/v3/files"
DRIVE_SCOPES = (
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/drive.appdata",
)
FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
BACKUP_MIME_TYPE = "application/gzip"
FILE_FIELDS = "id, name, size, createdTime"

HTTP_UNAUTHORIZED = 401
HTTP_BAD_REQUEST = 400

# Tokens this close to expiry are refreshed before use.
TOKEN_REFRESH_MARGIN_MS = 5 * 60 * 1000

_FILE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{10,100}$")
_BACKUP_NAME_PATTERN = re.compile(r"^backup-\d{4}-\d{2}-\d{2}.*\.json\.gz$")
_AUTH_CODE_PATTERN = re.compile(r"^[a-zA-Z0-9_\-/+=.]{20,500}$")


# --- input validation -----------------------------------------------------------


def is_non_empty_string(value: object) -> bool:
    return isinstance(value, str) and bool(value.strip())


def is_valid_file_id(file_id: object) -> bool:
    """Drive file ids are URL-safe strings of 10 to 100 characters."""
    return is_non_empty_string(file_id) and bool(_FILE_ID_PATTERN.match(str(file_id)))


def is_valid_backup_file_name(file_name: object) -> bool:
    return is_non_empty_string(file_name) and bool(_BACKUP_NAME_PATTERN.match(str(file_name)))


def is_valid_auth_code(code: object) -> bool:
    return is_non_empty_string(code) and bool(_AUTH_CODE_PATTERN.match(str(code)))


def decode_base64(content: str) -> bytes | None:
    """Strictly decode base64, returning None on malformed input."""
    try:
        return base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError):
        return None


def token_needs_refresh(tokens: TokenCookiePayload, now_ms: int | None = None) -> bool:
    """Return True when the access token expires within the refresh margin."""
    if tokens.expiry_date is None:
        return False
    current = now_ms if now_ms is not None else int(time.time() * 1000)
    return current > tokens.expiry_date - TOKEN_REFRESH_MARGIN_MS


# --- OAuth ----------------------------------------------------------------------


@dataclass(frozen=True)
class OAuthConfig:
    client_id: str
    client_secret: str
    redirect_uri: str


def load_oauth_config() -> OAuthConfig:
    """Build OAuth configuration from settings.

    Raises:
        ConfigurationError: If any credential is missing
    """
    if not (settings.google_client_id and settings.google_client_secret and settings.google_redirect_uri):
        raise ConfigurationError(
            "Server configuration error",
            detail="Missing Google OAuth credentials",
        )
    return OAuthConfig(
        client_id=settings.google_client_id,
        client_secret=settings.google_client_secret,
        redirect_uri=settings.google_redirect_uri,
    )


class GoogleOAuthClient:
    """Token acquisition against Google's OAuth 2.0 endpoints."""

    def __init__(self, http: httpx.AsyncClient, config: OAuthConfig | None = None) -> None:
        self.http = http
        self._config = config

    @property
    def config(self) -> OAuthConfig:
        if self._config is None:
            self._config = load_oauth_config()
        return self._config

    def authorization_url(self, state: str | None = None) -> str:
        """Return the consent URL granting offline Drive access."""
        params = {
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "response_type": "code",
            "access_type": "offline",
            "prompt": "consent",
            "scope": " ".join(DRIVE_SCOPES),
        }
        if state:
            params["state"] = state
        return f"{AUTH_ENDPOINT}?{urlencode(params)}"

    async def _token_request(self, form: dict[str, str]) -> dict[str, Any]:
        try:
            response = await self.http.post(TOKEN_ENDPOINT, data=form)
        except httpx.HTTPError as exc:
            raise UpstreamError("Google authentication service unavailable", detail=str(exc)) from exc
        if response.status_code >= HTTP_BAD_REQUEST:
            logger.warning("Token endpoint responded with %s", response.status_code)
            raise AuthorizationError(
                "Google rejected the authorization request",
                detail=f"token endpoint status {response.status_code}",
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError("Google authentication service returned an invalid response") from exc
        if not isinstance(payload, dict) or "access_token" not in payload:
            raise UpstreamError("Google authentication service returned an invalid response")
        return payload

    @staticmethod
    def _expiry_ms(payload: dict[str, Any]) -> int | None:
        expires_in = payload.get("expires_in")
        if expires_in is None:
            return None
        return int(time.time() * 1000) + int(expires_in) * 1000

    async def exchange_code(self, code: str) -> TokenCookiePayload:
        """Exchange an authorization code for access and refresh tokens."""
        payload = await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
                "redirect_uri": self.config.redirect_uri,
            }
        )
        return TokenCookiePayload(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expiry_date=self._expiry_ms(payload),
        )

    async def refresh(self, refresh_token: str) -> TokenCookiePayload:
        """Obtain a fresh access token, keeping the refresh token."""
        payload = await self._token_request(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
            }
        )
        return TokenCookiePayload(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token") or refresh_token,
            expiry_date=self._expiry_ms(payload),
        )

    async def service_account_token(self, client_email: str, private_key: str) -> str:
        """Obtain an access token for a service account (JWT bearer grant)."""
        now = int(time.time())
        claims = {
            "iss": client_email,
            "scope": DRIVE_SCOPES[0],
            "aud": TOKEN_ENDPOINT,
            "iat": now,
            "exp": now + 3600,
        }
        try:
            assertion = jwt.encode(claims, private_key.replace("\\n", "\n"), algorithm="RS256")
        except JWTError as exc:
            raise ConfigurationError(
                "Server configuration error",
                detail=f"Invalid service account key: {exc}",
            ) from exc
        payload = await self._token_request(
            {
                "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
                "assertion": assertion,
            }
        )
        return str(payload["access_token"])


# --- Drive ----------------------------------------------------------------------


class DriveStorageClient:
    """Backup file operations inside one Drive folder."""

    def __init__(
        self,
        access_token: str,
        http: httpx.AsyncClient,
        *,
        folder_name: str | None = None,
    ) -> None:
        self.http = http
        self.folder_name = folder_name or settings.drive_folder_name
        self._headers = {"Authorization": f"Bearer {access_token}"}
        self._folder_id: str | None = None

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        headers = dict(self._headers)
        headers.update(kwargs.pop("headers", {}) or {})
        try:
            response = await self.http.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("Drive request %s %s failed: %s", method, url, exc)
            raise UpstreamError("Google Drive request failed", detail=str(exc)) from exc

        if response.status_code == HTTP_UNAUTHORIZED:
            raise AuthorizationError("Google Drive session expired. Please reconnect.")
        if response.status_code >= HTTP_BAD_REQUEST:
            logger.warning("Drive responded with %s for %s %s", response.status_code, method, url)
            raise UpstreamError(
                f"Google Drive responded with {response.status_code}",
                status_code=404 if response.status_code == 404 else None,
            )
        return response

    async def get_or_create_folder(self) -> str:
        """Return the backup folder id, creating the folder if needed."""
        if self._folder_id is not None:
            return self._folder_id

        name = self.folder_name.replace("'", "\\'")
        response = await self._request(
            "GET",
            f"{DRIVE_API}/files",
            params={
                "q": f"name='{name}' and mimeType='{FOLDER_MIME_TYPE}' and trashed=false",
                "fields": "files(id, name)",
                "spaces": "drive",
            },
        )
        files = response.json().get("files") or []
        if files:
            self._folder_id = str(files[0]["id"])
            return self._folder_id

        created = await self._request(
            "POST",
            f"{DRIVE_API}/files",
            params={"fields": "id"},
            json={"name": self.folder_name, "mimeType": FOLDER_MIME_TYPE},
        )
        self._folder_id = str(created.json()["id"])
        logger.info("Created Drive backup folder %s", self.folder_name)
        return self._folder_id

    async def list_backups(self) -> list[dict[str, Any]]:
        """List backup files, newest first."""
        folder_id = await self.get_or_create_folder()
        response = await self._request(
            "GET",
            f"{DRIVE_API}/files",
            params={
                "q": f"'{folder_id}' in parents and trashed=false",
                "fields": f"files({FILE_FIELDS})",
                "orderBy": "createdTime desc",
                "pageSize": 100,
            },
        )
        return list(response.json().get("files") or [])

    async def upload_backup(self, file_name: str, content: bytes) -> dict[str, Any]:
        """Upload one backup file into the folder (multipart upload)."""
        folder_id = await self.get_or_create_folder()
        boundary = f"shopvault-{secrets.token_hex(12)}"
        metadata = json.dumps({"name": file_name, "parents": [folder_id]})
        body = (
            f"--{boundary}\r\n"
            "Content-Type: application/json; charset=UTF-8\r\n\r\n"
            f"{metadata}\r\n"
            f"--{boundary}\r\n"
            f"Content-Type: {BACKUP_MIME_TYPE}\r\n\r\n"
        ).encode("utf-8") + content + f"\r\n--{boundary}--".encode("utf-8")

        response = await self._request(
            "POST",
            DRIVE_UPLOAD_API,
            params={"uploadType": "multipart", "fields": FILE_FIELDS},
            content=body,
            headers={"Content-Type": f"multipart/related; boundary={boundary}"},
        )
        uploaded = response.json()
        logger.info("Uploaded backup %s (%s bytes)", file_name, len(content))
        return dict(uploaded)

    async def download_backup(self, file_id: str) -> bytes:
        response = await self._request("GET", f"{DRIVE_API}/files/{file_id}", params={"alt": "media"})
        return response.content

    async def get_file_name(self, file_id: str) -> str:
        response = await self._request("GET", f"{DRIVE_API}/files/{file_id}", params={"fields": "name"})
        return str(response.json().get("name", ""))

    async def delete_backup(self, file_id: str) -> None:
        await self._request("DELETE", f"{DRIVE_API}/files/{file_id}")
        logger.info("Deleted Drive file %s", file_id)

    async def storage_info(self) -> dict[str, int | None]:
        """Return used, total and available bytes; total is None when unlimited."""
        response = await self._request("GET", f"{DRIVE_API}/about", params={"fields": "storageQuota"})
        quota = response.json().get("storageQuota") or {}
        used = int(quota.get("usage", 0))
        limit = quota.get("limit")
        total = int(limit) if limit is not None else None
        return {
            "used": used,
            "total": total,
            "available": total - used if total is not None else None,
        }

    async def cleanup_old_backups(self, retention_days: int, *, now: datetime | None = None) -> int:
        """Delete backups older than ``retention_days``; return how many."""
        cutoff = (now or datetime.now(UTC)) - timedelta(days=retention_days)
        deleted = 0
        for backup in await self.list_backups():
            created = backup.get("createdTime")
            if not created:
                continue
            try:
                created_at = datetime.fromisoformat(str(created).replace("Z", "+00:00"))
            except ValueError:
                continue
            if created_at < cutoff:
                await self.delete_backup(str(backup["id"]))
                deleted += 1
        return deleted


# --- shared HTTP client ---------------------------------------------------------


class _HttpClientHolder:
    """Lazily created ``httpx.AsyncClient`` shared by Drive and OAuth calls."""

    _client: httpx.AsyncClient | None = None
    _lock = asyncio.Lock()

    @classmethod
    async def get(cls) -> httpx.AsyncClient:
        async with cls._lock:
            if cls._client is None:
                cls._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(settings.drive_http_timeout_seconds),
                )
        return cls._client

    @classmethod
    async def close(cls) -> None:
        async with cls._lock:
            if cls._client is not None:
                await cls._client.aclose()
                cls._client = None


async def get_http_client() -> httpx.AsyncClient:
    """Return the shared HTTP client for Google APIs."""
    return await _HttpClientHolder.get()


async def close_http_client() -> None:
    await _HttpClientHolder.close()
