"""Short-lived safety snapshots taken before a destructive restore.

A snapshot belongs to one operator session and expires at an absolute time.
Expired snapshots read as absent and are removed when read. When a directory
is configured, snapshots are written to disk so that a rollback can resume
after the process restarts mid-restore.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path
from threading import Lock
from typing import Any

from shopvault.core.settings import settings

logger = logging.getLogger(__name__)


@dataclass
class SafetySnapshot:
    """Unencrypted copy of live data held for rollback."""

    timestamp: str
    mode: str
    data: dict[str, list[dict[str, Any]]]
    created_at: float
    expires_at: float


class SafetySnapshotStore:
    """Session-scoped snapshot storage with absolute expiry.

    Concurrent saves for the same session are last-writer-wins.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float | None = None,
        directory: str | Path | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.safety_snapshot_ttl_seconds
        self.directory = Path(directory) if directory else None
        self._clock = clock
        self._lock = Lock()
        self._memory: dict[str, SafetySnapshot] = {}
        self._last_created = 0.0

    @staticmethod
    def _path(directory: Path, session_id: str) -> Path:
        digest = hashlib.sha256(session_id.encode("utf-8")).hexdigest()
        return directory / f"safety-{digest}.json"

    def save(self, session_id: str, mode: str, data: dict[str, list[dict[str, Any]]]) -> SafetySnapshot:
        """Store a snapshot for ``session_id``, replacing any previous one."""
        with self._lock:
            now = self._clock()
            # Keep timestamps strictly increasing even if the clock stalls.
            created = max(now, self._last_created + 1e-6)
            self._last_created = created
            snapshot = SafetySnapshot(
                timestamp=datetime.fromtimestamp(created, UTC).isoformat(),
                mode=mode,
                data=data,
                created_at=created,
                expires_at=now + self.ttl_seconds,
            )
            if self.directory is not None:
                self.directory.mkdir(parents=True, exist_ok=True)
                path = self._path(self.directory, session_id)
                path.write_text(json.dumps(asdict(snapshot)), encoding="utf-8")
            else:
                self._memory[session_id] = snapshot
        logger.info("Saved %s safety snapshot, expires in %ds", mode, int(self.ttl_seconds))
        return snapshot

    def _read(self, session_id: str) -> SafetySnapshot | None:
        if self.directory is None:
            return self._memory.get(session_id)
        path = self._path(self.directory, session_id)
        if not path.exists():
            return None
        try:
            return SafetySnapshot(**json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError, TypeError) as err:
            logger.warning("Discarding unreadable safety snapshot %s: %s", path.name, err)
            path.unlink(missing_ok=True)
            return None

    def _remove(self, session_id: str) -> None:
        if self.directory is None:
            self._memory.pop(session_id, None)
        else:
            self._path(self.directory, session_id).unlink(missing_ok=True)

    def load(self, session_id: str) -> SafetySnapshot | None:
        """Return the session's snapshot, or None if absent or expired."""
        with self._lock:
            snapshot = self._read(session_id)
            if snapshot is None:
                return None
            if self._clock() > snapshot.expires_at:
                self._remove(session_id)
                logger.info("Safety snapshot expired")
                return None
            return snapshot

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._remove(session_id)

    def exists(self, session_id: str) -> bool:
        return self.load(session_id) is not None


class _SafetyStoreSingleton:
    _instance: SafetySnapshotStore | None = None

    @classmethod
    def get_instance(cls) -> SafetySnapshotStore:
        if cls._instance is None:
            cls._instance = SafetySnapshotStore(directory=settings.safety_snapshot_dir)
        return cls._instance


def get_safety_store() -> SafetySnapshotStore:
    """Return the process-wide safety snapshot store."""
    return _SafetyStoreSingleton.get_instance()
