"""Structured error taxonomy shared by services and endpoints.

Every error carries a machine classification and a pre-approved public
message. Handlers return ``public_message`` to clients verbatim; whatever
caused the error stays in the exception chain and in the server log.
"""

from __future__ import annotations

from enum import Enum

MAX_PUBLIC_MESSAGE_LENGTH = 200


class ErrorKind(Enum):
    """Machine-readable classification of a failure."""

    VALIDATION = "validation"
    AUTHORIZATION = "authorization"
    RATE_LIMIT = "rate_limit"
    CRYPTO = "crypto"
    CONFIGURATION = "configuration"
    RESTORE_INTEGRITY = "restore_integrity"
    UPSTREAM = "upstream"
    NOT_FOUND = "not_found"


class ShopVaultError(Exception):
    """Base exception for all classified ShopVault failures."""

    kind: ErrorKind = ErrorKind.VALIDATION
    status_code: int = 400
    critical: bool = False

    def __init__(
        self,
        public_message: str,
        *,
        status_code: int | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(detail or public_message)
        self.public_message = public_message[:MAX_PUBLIC_MESSAGE_LENGTH]
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ShopVaultError):
    """Malformed input shape, bad IV/key format or oversized payload."""

    kind = ErrorKind.VALIDATION
    status_code = 400


class NotFoundError(ShopVaultError):
    """A referenced resource (e.g. a safety snapshot) does not exist."""

    kind = ErrorKind.NOT_FOUND
    status_code = 404


class AuthorizationError(ShopVaultError):
    """CSRF origin/header failure or a missing/invalid session."""

    kind = ErrorKind.AUTHORIZATION
    status_code = 401


class RateLimitError(ShopVaultError):
    """Too many requests for a client identity and route."""

    kind = ErrorKind.RATE_LIMIT
    status_code = 429

    def __init__(self, public_message: str, *, retry_after: int, remaining: int = 0) -> None:
        super().__init__(public_message)
        self.retry_after = retry_after
        self.remaining = remaining


class CryptoError(ShopVaultError):
    """Decryption or authentication failure.

    The message never distinguishes a wrong key from tampered ciphertext.
    """

    kind = ErrorKind.CRYPTO
    status_code = 400

    def __init__(self, public_message: str = "Decryption failed", *, detail: str | None = None) -> None:
        super().__init__(public_message, detail=detail)


class ConfigurationError(ShopVaultError):
    """Server misconfiguration; not recoverable by the caller."""

    kind = ErrorKind.CONFIGURATION
    status_code = 500


class UpstreamError(ShopVaultError):
    """A collaborator service (Google Drive / OAuth) failed."""

    kind = ErrorKind.UPSTREAM
    status_code = 502


class RestoreIntegrityError(ShopVaultError):
    """Restore could not be completed as requested."""

    kind = ErrorKind.RESTORE_INTEGRITY
    status_code = 500


class RestoreRolledBackError(RestoreIntegrityError):
    """Restore failed and live data was returned to its pre-restore state."""


class RestoreRollbackFailedError(RestoreIntegrityError):
    """Restore failed and the rollback failed too; manual intervention required."""

    critical = True
