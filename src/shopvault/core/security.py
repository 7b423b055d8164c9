"""CSRF origin validation for state-changing requests.

A request passes when it comes from a trusted frontend and carries the custom
marker header. Browsers cannot attach that header to a cross-origin request
without a CORS preflight, which the deployment does not grant, so its
presence alone is accepted when the browser omitted both Origin and Referer.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlsplit

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


class DenyReason(Enum):
    """Why a request was rejected by the origin guard."""

    INVALID_ORIGIN = "Invalid request origin"
    MISSING_MARKER = "Missing required security header"


@dataclass(frozen=True)
class OriginDecision:
    """Outcome of an origin check."""

    allowed: bool
    reason: DenyReason | None = None

    @property
    def message(self) -> str | None:
        return self.reason.value if self.reason else None


ALLOW = OriginDecision(allowed=True)


def _header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


def resolve_request_origin(headers: Mapping[str, str]) -> str | None:
    """Return the request origin from Origin, falling back to Referer.

    Args:
        headers: Request headers (case-insensitive mapping or lower-cased keys)

    Returns:
        ``scheme://host[:port]`` or None when neither header is usable
    """
    origin = _header(headers, "origin")
    if origin:
        # An opaque "null" origin is kept so the allow-list rejects it.
        return origin

    referer = _header(headers, "referer")
    if referer:
        try:
            parts = urlsplit(referer)
        except ValueError:
            return None
        if parts.scheme and parts.netloc:
            return f"{parts.scheme}://{parts.netloc}"
    return None


class OriginGuard:
    """Pure allow/deny decision over request metadata."""

    def __init__(
        self,
        allowed_origins: Iterable[str],
        *,
        marker_header: str = "X-Requested-With",
        marker_value: str = "XMLHttpRequest",
    ) -> None:
        self.allowed_origins = frozenset(allowed_origins)
        self.marker_header = marker_header.lower()
        self.marker_value = marker_value

    def has_marker(self, headers: Mapping[str, str]) -> bool:
        return _header(headers, self.marker_header) == self.marker_value

    def check(self, method: str, headers: Mapping[str, str]) -> OriginDecision:
        """Decide whether a request may proceed.

        Args:
            method: HTTP method
            headers: Request headers

        Returns:
            ``OriginDecision`` with a deny reason when rejected
        """
        if method.upper() in SAFE_METHODS:
            return ALLOW

        origin = resolve_request_origin(headers)
        if origin is None:
            # Same-origin requests from browsers that omit both headers.
            if self.has_marker(headers):
                return ALLOW
            return OriginDecision(allowed=False, reason=DenyReason.INVALID_ORIGIN)

        if origin not in self.allowed_origins:
            return OriginDecision(allowed=False, reason=DenyReason.INVALID_ORIGIN)
        if not self.has_marker(headers):
            return OriginDecision(allowed=False, reason=DenyReason.MISSING_MARKER)
        return ALLOW


def build_origin_guard() -> OriginGuard:
    """Create an origin guard from the active settings."""
    from shopvault.core.settings import settings

    return OriginGuard(
        settings.allowed_origins,
        marker_header=settings.csrf_marker_header,
        marker_value=settings.csrf_marker_value,
    )
