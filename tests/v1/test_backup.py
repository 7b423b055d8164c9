"""Tests for the backup endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import status
from fastapi.testclient import TestClient

from shopvault.services.crypto import BackupCodec
from shopvault.services.datastore import RemoteDataStore
from shopvault.services.safety import SafetySnapshotStore
from tests.conftest import XHR_HEADERS


def _encrypt(client: TestClient, backup: dict[str, Any]) -> dict[str, Any]:
    response = client.post("/api/v1/backup/encrypt", json={"backup": backup}, headers=XHR_HEADERS)
    assert response.status_code == status.HTTP_200_OK
    return response.json()


def test_encrypt_returns_transport_file(client: TestClient, remote_backup: dict[str, Any]) -> None:
    """Encrypting yields a file name embedding the IV and annotated metadata."""
    body = _encrypt(client, remote_backup)

    assert body["success"] is True
    assert body["fileName"].startswith("backup-")
    assert body["fileName"].endswith(f"-iv-{body['iv']}.json.gz")
    assert body["metadata"]["encrypted"] is True
    assert body["metadata"]["total_products"] == 2


def test_encrypt_then_decrypt(client: TestClient, remote_backup: dict[str, Any]) -> None:
    encrypted = _encrypt(client, remote_backup)
    response = client.post(
        "/api/v1/backup/decrypt",
        json={"fileContent": encrypted["fileContent"], "iv": encrypted["iv"]},
        headers=XHR_HEADERS,
    )
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"success": True, "backup": remote_backup}


def test_encrypt_requires_backup(client: TestClient) -> None:
    response = client.post("/api/v1/backup/encrypt", json={}, headers=XHR_HEADERS)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"success": False, "error": "Backup data is required"}


def test_decrypt_validates_inputs(client: TestClient) -> None:
    response = client.post("/api/v1/backup/decrypt", json={"iv": "0" * 32}, headers=XHR_HEADERS)
    assert response.json()["error"] == "File content is required"

    response = client.post("/api/v1/backup/decrypt", json={"fileContent": "AAAA", "iv": "nope"}, headers=XHR_HEADERS)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"] == "Invalid IV format"

    response = client.post("/api/v1/backup/decrypt", json={"fileContent": "AAAA"}, headers=XHR_HEADERS)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"] == "Invalid IV format"


def test_decrypt_with_wrong_key_does_not_leak_details(
    client: TestClient,
    remote_backup: dict[str, Any],
) -> None:
    sealed = BackupCodec(b"ffffffffffffffffffffffffffffffff").seal(remote_backup)
    response = client.post(
        "/api/v1/backup/decrypt",
        json={"fileContent": sealed.file_content, "iv": sealed.iv},
        headers=XHR_HEADERS,
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    error = response.json()["error"]
    assert error.startswith("Failed to decrypt backup")
    assert "padding" not in error.lower()


def test_snapshot_reflects_live_data(client: TestClient, seeded_store: RemoteDataStore) -> None:
    response = client.post("/api/v1/backup/snapshot", headers=XHR_HEADERS)
    assert response.status_code == status.HTTP_200_OK
    backup = response.json()["backup"]
    assert backup["mode"] == "remote"
    assert backup["metadata"]["total_products"] == 1
    assert backup["data"]["customers"][0]["name"] == "Walk-in"


def test_preview_counts_rows(client: TestClient, remote_backup: dict[str, Any]) -> None:
    response = client.post("/api/v1/backup/preview", json={"backup": remote_backup}, headers=XHR_HEADERS)
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["preview"]["tables"]["order_items"] == 2


def test_restore_replaces_data_and_sets_session_cookie(
    client: TestClient,
    seeded_store: RemoteDataStore,
    remote_backup: dict[str, Any],
) -> None:
    response = client.post("/api/v1/backup/restore", json={"backup": remote_backup}, headers=XHR_HEADERS)

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["success"] is True
    assert body["results"]["products"] == {"inserted": 2}
    assert body["backupTimestamp"] == remote_backup["timestamp"]
    assert "shopvault_session" in response.cookies
    assert [row["name"] for row in seeded_store.read_table("products")] == ["Flour", "Sugar"]


def test_restore_mode_mismatch_is_rejected(
    client: TestClient,
    seeded_store: RemoteDataStore,
    remote_backup: dict[str, Any],
) -> None:
    remote_backup["mode"] = "local"
    response = client.post("/api/v1/backup/restore", json={"backup": remote_backup}, headers=XHR_HEADERS)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "mode mismatch" in response.json()["error"]
    assert [row["name"] for row in seeded_store.read_table("products")] == ["Salt"]


def test_restore_file_round_trip(
    client: TestClient,
    seeded_store: RemoteDataStore,
    remote_backup: dict[str, Any],
) -> None:
    encrypted = _encrypt(client, remote_backup)
    response = client.post(
        "/api/v1/backup/restore-file",
        json={"fileName": encrypted["fileName"], "fileContent": encrypted["fileContent"]},
        headers=XHR_HEADERS,
    )
    assert response.status_code == status.HTTP_200_OK
    assert len(seeded_store.read_table("order_items")) == 2


def test_restore_file_without_iv_aborts_before_decryption(
    client: TestClient,
    seeded_store: RemoteDataStore,
) -> None:
    response = client.post(
        "/api/v1/backup/restore-file",
        json={"fileName": "backup-2026-03-01T08-00-00.json.gz", "fileContent": "not even base64"},
        headers=XHR_HEADERS,
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {"success": False, "error": "IV not found in backup file name"}
    assert [row["name"] for row in seeded_store.read_table("products")] == ["Salt"]


def test_safety_status_and_rollback(
    client: TestClient,
    seeded_store: RemoteDataStore,
    safety_store: SafetySnapshotStore,
) -> None:
    response = client.get("/api/v1/backup/safety-status")
    assert response.json() == {"success": True, "available": False}
    session_id = response.cookies["shopvault_session"]

    safety_store.save(session_id, "remote", {table: [] for table in seeded_store.tables})
    assert client.get("/api/v1/backup/safety-status").json()["available"] is True

    response = client.post("/api/v1/backup/rollback", headers=XHR_HEADERS)
    assert response.status_code == status.HTTP_200_OK
    assert seeded_store.read_table("products") == []
    assert client.get("/api/v1/backup/safety-status").json()["available"] is False


def test_rollback_without_snapshot_is_not_found(client: TestClient) -> None:
    response = client.post("/api/v1/backup/rollback", headers=XHR_HEADERS)
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json() == {"success": False, "error": "No safety backup found"}
