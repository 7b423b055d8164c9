"""Tests for the origin check and rate limiting in front of endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import status
from fastapi.testclient import TestClient

from shopvault.services.rate_limit import RateLimiter
from tests.conftest import XHR_HEADERS

ENCRYPT = "/api/v1/backup/encrypt"


def test_cross_origin_post_is_forbidden(client: TestClient, remote_backup: dict[str, Any]) -> None:
    response = client.post(
        ENCRYPT,
        json={"backup": remote_backup},
        headers={"Origin": "https://evil.example", **XHR_HEADERS},
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json() == {"success": False, "error": "Invalid request origin"}


def test_trusted_origin_without_marker_is_forbidden(client: TestClient, remote_backup: dict[str, Any]) -> None:
    response = client.post(
        ENCRYPT,
        json={"backup": remote_backup},
        headers={"Origin": "https://shop.example.com"},
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert response.json()["error"] == "Missing required security header"


def test_trusted_origin_with_marker_passes(client: TestClient, remote_backup: dict[str, Any]) -> None:
    response = client.post(
        ENCRYPT,
        json={"backup": remote_backup},
        headers={"Origin": "https://shop.example.com", **XHR_HEADERS},
    )
    assert response.status_code == status.HTTP_200_OK


def test_rate_limit_headers_on_allowed_requests(client: TestClient, remote_backup: dict[str, Any]) -> None:
    response = client.post(ENCRYPT, json={"backup": remote_backup}, headers=XHR_HEADERS)
    assert response.headers["X-RateLimit-Remaining"] == "4"
    assert response.headers["X-RateLimit-Reset"] == "60"


def test_upload_policy_limits_after_five_requests(client: TestClient, remote_backup: dict[str, Any]) -> None:
    for _ in range(5):
        assert client.post(ENCRYPT, json={"backup": remote_backup}, headers=XHR_HEADERS).status_code == 200

    response = client.post(ENCRYPT, json={"backup": remote_backup}, headers=XHR_HEADERS)
    assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS
    body = response.json()
    assert body["success"] is False
    assert body["retryAfter"] > 0
    assert response.headers["Retry-After"] == str(body["retryAfter"])
    assert response.headers["X-RateLimit-Remaining"] == "0"


def test_forbidden_requests_do_not_consume_budget(
    client: TestClient,
    limiter: RateLimiter,
    remote_backup: dict[str, Any],
) -> None:
    for _ in range(10):
        response = client.post(ENCRYPT, json={"backup": remote_backup}, headers={"Origin": "https://evil.example"})
        assert response.status_code == status.HTTP_403_FORBIDDEN

    assert len(limiter.store) == 0
    response = client.post(ENCRYPT, json={"backup": remote_backup}, headers=XHR_HEADERS)
    assert response.headers["X-RateLimit-Remaining"] == "4"


def test_rate_limit_headers_on_failed_requests(client: TestClient) -> None:
    response = client.post(ENCRYPT, json={}, headers=XHR_HEADERS)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.headers["X-RateLimit-Remaining"] == "4"


def test_clients_are_limited_independently(client: TestClient, remote_backup: dict[str, Any]) -> None:
    for _ in range(6):
        client.post(ENCRYPT, json={"backup": remote_backup}, headers={**XHR_HEADERS, "X-Forwarded-For": "198.51.100.1"})

    response = client.post(
        ENCRYPT,
        json={"backup": remote_backup},
        headers={**XHR_HEADERS, "X-Forwarded-For": "198.51.100.2"},
    )
    assert response.status_code == status.HTTP_200_OK


def test_get_requests_skip_the_origin_check(client: TestClient) -> None:
    response = client.get("/api/v1/backup/safety-status", headers={"Origin": "https://evil.example"})
    assert response.status_code == status.HTTP_200_OK
    assert "X-RateLimit-Remaining" in response.headers
