# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import Callable, Generator, Iterator
from typing import Any

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("STORAGE_MODE", "remote")
os.environ.setdefault("BACKUP_ENCRYPTION_KEY", "0123456789abcdef0123456789abcdef")
os.environ.setdefault("CRON_SECRET", "cron-test-secret")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id.apps.googleusercontent.com")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("GOOGLE_REDIRECT_URI", "http://localhost:5173/oauth/callback")
os.environ.setdefault("APP_URL", "https://shop.example.com/")

from shopvault.api.v1 import dependencies as deps
from shopvault.db.session import Base
from shopvault.main import app as fastapi_app
from shopvault.services.crypto import BackupCodec, TokenCipher
from shopvault.services.datastore import RemoteDataStore
from shopvault.services.rate_limit import RateLimiter
from shopvault.services.safety import SafetySnapshotStore

TEST_DB_URL = "sqlite://"
TEST_KEY = b"0123456789abcdef0123456789abcdef"

# Headers a same-origin browser request from the SPA carries.
XHR_HEADERS = {"X-Requested-With": "XMLHttpRequest"}


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def store(engine: Engine) -> RemoteDataStore:
    return RemoteDataStore(engine)


@pytest.fixture()
def safety_store() -> SafetySnapshotStore:
    return SafetySnapshotStore(ttl_seconds=3600)


@pytest.fixture()
def codec() -> BackupCodec:
    return BackupCodec(TEST_KEY)


@pytest.fixture()
def cipher() -> TokenCipher:
    return TokenCipher(TEST_KEY)


@pytest.fixture()
def limiter() -> RateLimiter:
    return RateLimiter()


@pytest.fixture()
def drive_requests() -> list[httpx.Request]:
    """Requests seen by the fake Google API transport."""
    return []


@pytest.fixture()
def google_api() -> dict[str, Callable[[httpx.Request], httpx.Response]]:
    """Route table of the fake Google API, keyed by ``"METHOD path"``.

    Tests add or replace entries to script responses.
    """
    return {}


@pytest.fixture()
def http_client(
    drive_requests: list[httpx.Request],
    google_api: dict[str, Callable[[httpx.Request], httpx.Response]],
) -> Iterator[httpx.AsyncClient]:
    def handler(request: httpx.Request) -> httpx.Response:
        drive_requests.append(request)
        route = google_api.get(f"{request.method} {request.url.path}")
        if route is None:
            return httpx.Response(404, json={"error": "not found"})
        return route(request)

    yield httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture(scope="session")
def app() -> FastAPI:
    return fastapi_app


@pytest.fixture(autouse=True)
def override_dependencies(
    app: FastAPI,
    store: RemoteDataStore,
    safety_store: SafetySnapshotStore,
    codec: BackupCodec,
    cipher: TokenCipher,
    limiter: RateLimiter,
    http_client: httpx.AsyncClient,
) -> Iterator[None]:
    overrides: dict[Callable[..., Any], Callable[[], Any]] = {
        deps.get_data_store_dep: lambda: store,
        deps.get_safety_store_dep: lambda: safety_store,
        deps.get_backup_codec_dep: lambda: codec,
        deps.get_token_cipher_dep: lambda: cipher,
        deps.get_rate_limiter_dep: lambda: limiter,
        deps.get_http_client_dep: lambda: http_client,
    }
    app.dependency_overrides.update(overrides)
    try:
        yield
    finally:
        for dependency in overrides:
            app.dependency_overrides.pop(dependency, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


def make_remote_backup(**overrides: Any) -> dict[str, Any]:
    """Return a small but complete remote-mode backup document."""
    data: dict[str, list[dict[str, Any]]] = {
        "products": [
            {"id": 1, "name": "Flour", "unit": "kg", "price": 18000, "stock": 40.0},
            {"id": 2, "name": "Sugar", "unit": "kg", "price": 22000, "stock": 15.5},
        ],
        "customers": [{"id": 1, "name": "Corner Bakery", "customer_type": "bakery"}],
        "orders": [{"id": 1, "customer_id": 1, "status": "paid", "total": 58000}],
        "order_items": [
            {"id": 1, "order_id": 1, "product_id": 1, "quantity": 1.0, "unit_price": 18000},
            {"id": 2, "order_id": 1, "product_id": 2, "quantity": 2.0, "unit_price": 20000},
        ],
        "purchases": [],
        "purchase_items": [],
        "invoice_orders": [],
        "invoice_order_items": [],
        "invoice_purchases": [],
        "invoice_purchase_items": [],
        "invoice_inventory": [{"id": 1, "product_name": "Flour", "unit": "kg", "quantity": 40.0}],
    }
    backup: dict[str, Any] = {
        "version": "1.0",
        "timestamp": "2026-03-01T08:00:00.000Z",
        "mode": "remote",
        "metadata": {f"total_{table}": len(rows) for table, rows in data.items()},
        "data": data,
    }
    backup.update(overrides)
    return backup


@pytest.fixture()
def remote_backup() -> dict[str, Any]:
    return make_remote_backup()


@pytest.fixture()
def seeded_store(store: RemoteDataStore) -> RemoteDataStore:
    """Store holding one product and one customer."""
    store.insert_rows("products", [{"id": 10, "name": "Salt", "unit": "kg", "price": 5000, "stock": 3.0}])
    store.insert_rows("customers", [{"id": 10, "name": "Walk-in", "customer_type": "individual"}])
    return store
