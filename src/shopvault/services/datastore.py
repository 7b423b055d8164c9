"""Storage backends holding the store's dataset.

Two modes exist and their backups are not interchangeable:

* ``remote`` - the SQL database. Every statement commits on its own, the
  same guarantee a hosted REST database offers, so a multi-table restore has
  no enclosing transaction to fall back on.
* ``local`` - a JSON key/value file used when no database is configured.
  Order and purchase lines are embedded in their parent records.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from threading import Lock
from typing import Any, Literal, Protocol

from sqlalchemy import MetaData, Table, delete, insert, select
from sqlalchemy.engine import Engine

from shopvault.core.settings import settings
from shopvault.models import REMOTE_TABLES

logger = logging.getLogger(__name__)

Mode = Literal["remote", "local"]
Record = dict[str, Any]

LOCAL_TABLES: tuple[str, ...] = (
    "products",
    "customers",
    "orders",
    "purchases",
    "invoice_orders",
    "invoice_purchases",
    "invoice_inventory",
)

TABLES_BY_MODE: dict[str, tuple[str, ...]] = {
    "remote": REMOTE_TABLES,
    "local": LOCAL_TABLES,
}


class DataStoreError(RuntimeError):
    """Raised when a backend read or write fails."""


class DataStore(Protocol):
    """Dataset backend used by snapshots and restores.

    ``tables`` lists every table parents-first.
    """

    mode: Mode
    tables: tuple[str, ...]

    def read_table(self, name: str) -> list[Record]: ...

    def clear_table(self, name: str) -> None: ...

    def insert_rows(self, name: str, rows: list[Record]) -> int: ...


class RemoteDataStore:
    """SQL database backend with one autonomous commit per statement."""

    mode: Mode = "remote"

    def __init__(
        self,
        engine: Engine,
        *,
        metadata: MetaData | None = None,
        tables: tuple[str, ...] = REMOTE_TABLES,
    ) -> None:
        if metadata is None:
            from shopvault.db.session import Base

            metadata = Base.metadata
        self.engine = engine
        self.metadata = metadata
        self.tables = tables

    def _table(self, name: str) -> Table:
        if name not in self.tables:
            raise DataStoreError(f"Unknown table {name}")
        return self.metadata.tables[name]

    def read_table(self, name: str) -> list[Record]:
        table = self._table(name)
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(select(table).order_by(*table.primary_key.columns)).mappings()
                return [dict(row) for row in rows]
        except Exception as err:
            raise DataStoreError(f"Failed to read {name}: {err}") from err

    def clear_table(self, name: str) -> None:
        table = self._table(name)
        try:
            with self.engine.begin() as conn:
                conn.execute(delete(table))
        except Exception as err:
            raise DataStoreError(f"Failed to clear {name}: {err}") from err

    def insert_rows(self, name: str, rows: list[Record]) -> int:
        """Bulk insert rows and return how many the database acknowledged."""
        if not rows:
            return 0
        table = self._table(name)
        key_columns = list(table.primary_key.columns)
        try:
            with self.engine.begin() as conn:
                result = conn.execute(insert(table).returning(*key_columns), rows)
                return len(result.all())
        except Exception as err:
            raise DataStoreError(f"Failed to restore {name}: {err}") from err


class LocalDataStore:
    """JSON key/value backend, optionally persisted to a file."""

    mode: Mode = "local"

    def __init__(self, path: str | os.PathLike[str] | None = None) -> None:
        self.path = Path(path) if path else None
        self.tables = LOCAL_TABLES
        self._lock = Lock()
        self._data: dict[str, list[Record]] = self._load()

    def _load(self) -> dict[str, list[Record]]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as err:
            raise DataStoreError(f"Failed to load local store: {err}") from err
        if not isinstance(raw, dict):
            raise DataStoreError("Local store file does not contain an object")
        return {key: value for key, value in raw.items() if isinstance(value, list)}

    def _persist(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".shopvault-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(self._data, handle, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except OSError as err:
            Path(tmp_name).unlink(missing_ok=True)
            raise DataStoreError(f"Failed to write local store: {err}") from err

    def _check(self, name: str) -> None:
        if name not in self.tables:
            raise DataStoreError(f"Unknown key {name}")

    def read_table(self, name: str) -> list[Record]:
        self._check(name)
        with self._lock:
            return copy.deepcopy(self._data.get(name, []))

    def clear_table(self, name: str) -> None:
        self._check(name)
        with self._lock:
            self._data.pop(name, None)
            self._persist()

    def insert_rows(self, name: str, rows: list[Record]) -> int:
        self._check(name)
        with self._lock:
            existing = self._data.setdefault(name, [])
            existing.extend(copy.deepcopy(rows))
            self._persist()
        return len(rows)


class _DataStoreSingleton:
    _instance: DataStore | None = None

    @classmethod
    def get_instance(cls) -> DataStore:
        if cls._instance is None:
            if settings.storage_mode == "local":
                cls._instance = LocalDataStore(settings.local_store_path)
            else:
                from shopvault.db.session import get_engine

                cls._instance = RemoteDataStore(get_engine())
            logger.info("Using %s data store", cls._instance.mode)
        return cls._instance


def get_data_store() -> DataStore:
    """Return the data store for the configured storage mode."""
    return _DataStoreSingleton.get_instance()
