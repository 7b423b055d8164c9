"""Shared API dependencies for request gating, sessions and services."""

from __future__ import annotations

import logging
import re
import secrets
from typing import Annotated

import httpx
from fastapi import Depends, Request, Response

from shopvault.core.errors import AuthorizationError, CryptoError, RateLimitError, ShopVaultError
from shopvault.core.security import OriginGuard, build_origin_guard
from shopvault.core.settings import settings
from shopvault.schemas.drive import TokenCookiePayload
from shopvault.services.crypto import BackupCodec, TokenCipher, get_backup_codec, get_token_cipher
from shopvault.services.datastore import DataStore, get_data_store
from shopvault.services.drive import (
    DriveStorageClient,
    GoogleOAuthClient,
    get_http_client,
    token_needs_refresh,
)
from shopvault.services.rate_limit import (
    RATE_LIMITS,
    RateLimiter,
    RateLimitResult,
    client_identity,
    get_rate_limiter,
)
from shopvault.services.restore import RestoreEngine
from shopvault.services.safety import SafetySnapshotStore, get_safety_store

logger = logging.getLogger(__name__)

_SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{32,128}$")


def get_origin_guard() -> OriginGuard:
    """Get OriginGuard dependency for dependency injection."""
    return build_origin_guard()


def get_rate_limiter_dep() -> RateLimiter:
    """Get RateLimiter dependency for dependency injection."""
    return get_rate_limiter()


OriginGuardDep = Annotated[OriginGuard, Depends(get_origin_guard)]
RateLimiterDep = Annotated[RateLimiter, Depends(get_rate_limiter_dep)]


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    return {
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset_in_seconds),
    }


class RequestGate:
    """Origin check followed by rate limiting, in front of an endpoint.

    A request rejected by the origin check never reaches the limiter, so it
    consumes no budget. The outcome of the limiter is kept on
    ``request.state.rate_limit`` so that error responses carry the same
    headers as successful ones.
    """

    def __init__(self, policy: str, *, csrf: bool = True) -> None:
        if policy not in RATE_LIMITS:
            raise ValueError(f"Unknown rate limit policy: {policy}")
        self.policy = RATE_LIMITS[policy]
        self.csrf = csrf

    def __call__(
        self,
        request: Request,
        response: Response,
        guard: OriginGuardDep,
        limiter: RateLimiterDep,
    ) -> RateLimitResult:
        if self.csrf:
            decision = guard.check(request.method, request.headers)
            if not decision.allowed:
                logger.warning(
                    "Rejected %s %s: %s",
                    request.method,
                    request.url.path,
                    decision.message,
                )
                raise AuthorizationError(decision.message or "Forbidden", status_code=403)

        identity = client_identity(request.headers, request.client.host if request.client else None)
        result = limiter.check(identity, request.url.path, self.policy)
        request.state.rate_limit = result
        response.headers.update(rate_limit_headers(result))

        if result.limited:
            logger.info("Rate limit exceeded for %s on %s", identity, request.url.path)
            raise RateLimitError(
                "Too many requests. Please try again later.",
                retry_after=result.reset_in_seconds,
                remaining=result.remaining,
            )
        return result


AuthGate = Depends(RequestGate("auth"))
DataGate = Depends(RequestGate("data"))
ReadGate = Depends(RequestGate("read"))
UploadGate = Depends(RequestGate("upload"))
OpenReadGate = Depends(RequestGate("read", csrf=False))


# --- operator session -----------------------------------------------------------


def _set_session_cookie(response: Response, session_id: str) -> None:
    response.set_cookie(
        settings.session_cookie_name,
        session_id,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )


def get_session_id(request: Request, response: Response) -> str:
    """Return the operator session id, issuing a new one when absent.

    The session id scopes safety snapshots to the operator who started a
    restore.
    """
    current = request.cookies.get(settings.session_cookie_name)
    if current and _SESSION_ID_PATTERN.match(current):
        return current

    session_id = secrets.token_urlsafe(32)
    request.state.new_session_id = session_id
    _set_session_cookie(response, session_id)
    return session_id


def reissue_session_cookie(request: Request, response: Response) -> None:
    """Copy a freshly issued session cookie onto an error response."""
    session_id = getattr(request.state, "new_session_id", None)
    if session_id:
        _set_session_cookie(response, session_id)


SessionIdDep = Annotated[str, Depends(get_session_id)]


# --- services -----------------------------------------------------------------


def get_data_store_dep() -> DataStore:
    return get_data_store()


def get_safety_store_dep() -> SafetySnapshotStore:
    return get_safety_store()


def get_backup_codec_dep() -> BackupCodec:
    return get_backup_codec()


def get_token_cipher_dep() -> TokenCipher:
    return get_token_cipher()


DataStoreDep = Annotated[DataStore, Depends(get_data_store_dep)]
SafetyStoreDep = Annotated[SafetySnapshotStore, Depends(get_safety_store_dep)]
BackupCodecDep = Annotated[BackupCodec, Depends(get_backup_codec_dep)]
TokenCipherDep = Annotated[TokenCipher, Depends(get_token_cipher_dep)]


def get_restore_engine(store: DataStoreDep, safety_store: SafetyStoreDep) -> RestoreEngine:
    return RestoreEngine(store, safety_store)


RestoreEngineDep = Annotated[RestoreEngine, Depends(get_restore_engine)]


async def get_http_client_dep() -> httpx.AsyncClient:
    return await get_http_client()


HttpClientDep = Annotated[httpx.AsyncClient, Depends(get_http_client_dep)]


def get_oauth_client(http: HttpClientDep) -> GoogleOAuthClient:
    return GoogleOAuthClient(http)


OAuthClientDep = Annotated[GoogleOAuthClient, Depends(get_oauth_client)]


# --- Google Drive session -------------------------------------------------------


def set_drive_cookie(response: Response, cipher: TokenCipher, tokens: TokenCookiePayload) -> None:
    """Store OAuth tokens in the encrypted, httpOnly session cookie."""
    response.set_cookie(
        settings.drive_cookie_name,
        cipher.encrypt_json(tokens.model_dump()),
        max_age=settings.drive_cookie_max_age_seconds,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )


def clear_drive_cookie(response: Response) -> None:
    response.set_cookie(
        settings.drive_cookie_name,
        "",
        max_age=0,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )


def read_drive_tokens(request: Request, cipher: TokenCipher) -> TokenCookiePayload | None:
    """Decrypt the session cookie; None when absent, tampered or malformed."""
    cookie = request.cookies.get(settings.drive_cookie_name)
    if not cookie:
        return None
    try:
        return TokenCookiePayload.model_validate(cipher.decrypt_json(cookie))
    except CryptoError as err:
        logger.info("Ignoring unreadable Drive session cookie: %s", err)
        return None
    except ValueError:
        logger.info("Ignoring Drive session cookie with an unexpected payload")
        return None


async def get_drive_tokens(
    request: Request,
    response: Response,
    cipher: TokenCipherDep,
    oauth: OAuthClientDep,
) -> TokenCookiePayload:
    """Return usable OAuth tokens, refreshing them close to expiry.

    Raises:
        AuthorizationError: If there is no valid session or refresh fails
    """
    tokens = read_drive_tokens(request, cipher)
    if tokens is None or not tokens.access_token:
        raise AuthorizationError("Not authenticated with Google Drive")

    if token_needs_refresh(tokens):
        if not tokens.refresh_token:
            raise AuthorizationError("Google Drive session expired. Please reconnect.")
        try:
            tokens = await oauth.refresh(tokens.refresh_token)
        except ShopVaultError as err:
            logger.warning("Drive token refresh failed: %s", err)
            raise AuthorizationError("Google Drive session expired. Please reconnect.") from err
        set_drive_cookie(response, cipher, tokens)
        logger.info("Refreshed Drive access token")
    return tokens


DriveTokensDep = Annotated[TokenCookiePayload, Depends(get_drive_tokens)]


def get_drive_client(tokens: DriveTokensDep, http: HttpClientDep) -> DriveStorageClient:
    if not tokens.access_token:
        raise AuthorizationError("Not authenticated with Google Drive")
    return DriveStorageClient(tokens.access_token, http)


DriveClientDep = Annotated[DriveStorageClient, Depends(get_drive_client)]
