"""Tests for the CSRF origin guard."""

from __future__ import annotations

import pytest

from shopvault.core.security import DenyReason, OriginGuard, resolve_request_origin
from shopvault.core.settings import DEV_ORIGINS, Settings

TRUSTED = "https://shop.example.com"


@pytest.fixture()
def guard() -> OriginGuard:
    return OriginGuard([TRUSTED, *DEV_ORIGINS])


@pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS", "get"])
def test_safe_methods_always_pass(guard: OriginGuard, method: str) -> None:
    """Safe methods pass even from an untrusted origin without the marker."""
    decision = guard.check(method, {"Origin": "https://evil.example"})
    assert decision.allowed


def test_trusted_origin_with_marker_passes(guard: OriginGuard) -> None:
    decision = guard.check("POST", {"Origin": TRUSTED, "X-Requested-With": "XMLHttpRequest"})
    assert decision.allowed
    assert decision.message is None


def test_untrusted_origin_is_rejected_even_with_marker(guard: OriginGuard) -> None:
    decision = guard.check("POST", {"Origin": "https://evil.example", "X-Requested-With": "XMLHttpRequest"})
    assert not decision.allowed
    assert decision.reason is DenyReason.INVALID_ORIGIN
    assert decision.message == "Invalid request origin"


def test_trusted_origin_without_marker_is_rejected(guard: OriginGuard) -> None:
    decision = guard.check("DELETE", {"Origin": TRUSTED})
    assert not decision.allowed
    assert decision.reason is DenyReason.MISSING_MARKER


def test_marker_value_must_match_exactly(guard: OriginGuard) -> None:
    decision = guard.check("POST", {"Origin": TRUSTED, "X-Requested-With": "fetch"})
    assert decision.reason is DenyReason.MISSING_MARKER


def test_referer_is_used_when_origin_is_absent(guard: OriginGuard) -> None:
    headers = {"Referer": f"{TRUSTED}/backup?tab=restore", "X-Requested-With": "XMLHttpRequest"}
    assert guard.check("POST", headers).allowed

    headers["Referer"] = "https://evil.example/page"
    assert guard.check("POST", headers).reason is DenyReason.INVALID_ORIGIN


def test_unknown_origin_requires_marker(guard: OriginGuard) -> None:
    """Without Origin or Referer the marker header alone decides."""
    assert guard.check("POST", {"X-Requested-With": "XMLHttpRequest"}).allowed
    decision = guard.check("POST", {})
    assert not decision.allowed
    assert decision.reason is DenyReason.INVALID_ORIGIN


def test_header_lookup_is_case_insensitive(guard: OriginGuard) -> None:
    assert guard.check("POST", {"origin": TRUSTED, "x-requested-with": "XMLHttpRequest"}).allowed


def test_null_origin_is_rejected(guard: OriginGuard) -> None:
    """Sandboxed frames send Origin: null; the marker alone must not admit them."""
    headers = {
        "Origin": "null",
        "Referer": "http://localhost:5173/settings",
        "X-Requested-With": "XMLHttpRequest",
    }
    assert resolve_request_origin(headers) == "null"
    decision = guard.check("POST", headers)
    assert not decision.allowed
    assert decision.reason is DenyReason.INVALID_ORIGIN


def test_allowed_origins_from_settings() -> None:
    dev = Settings(APP_ENV="development", APP_URL="https://shop.example.com/", PREVIEW_URL="preview.example.app")
    assert dev.allowed_origins[:2] == ["https://shop.example.com", "https://preview.example.app"]
    assert "http://localhost:5173" in dev.allowed_origins

    prod = Settings(APP_ENV="production", APP_URL="https://shop.example.com", PREVIEW_URL=None)
    assert prod.allowed_origins == ["https://shop.example.com"]
