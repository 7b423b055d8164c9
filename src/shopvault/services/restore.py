"""Transactional restore of a backup over a backend without transactions.

The restore is an explicit state machine::

    IDLE -> VALIDATING -> SAFETY_BACKUP_CREATED -> CLEARING -> RESTORING
         -> VERIFYING -> COMMITTED -> DONE

Any failure while clearing, restoring or verifying moves to ROLLING_BACK,
which replays CLEARING -> RESTORING -> VERIFYING with the safety snapshot as
the source. A verified rollback ends in DONE (live data is back to its
pre-restore state and the restore is reported as rolled back); a failed one
ends in FAILED and is reported as critical.

``transition`` is pure; ``RestoreEngine`` performs the side effects.

Rows are inserted with their own primary keys. A backend that reassigns
identifiers on insert would not reproduce the backup exactly.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from shopvault.core.errors import (
    NotFoundError,
    RestoreIntegrityError,
    RestoreRollbackFailedError,
    RestoreRolledBackError,
    ShopVaultError,
)
from shopvault.services.datastore import DataStore, Record
from shopvault.services.safety import SafetySnapshotStore
from shopvault.services.snapshot import SnapshotBuilder, utc_timestamp, validate_backup

logger = logging.getLogger(__name__)


class RestoreState(Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    SAFETY_BACKUP_CREATED = "safety_backup_created"
    CLEARING = "clearing"
    RESTORING = "restoring"
    VERIFYING = "verifying"
    COMMITTED = "committed"
    ROLLING_BACK = "rolling_back"
    DONE = "done"
    FAILED = "failed"


class RestoreEvent(Enum):
    START = "start"
    ROLLBACK = "rollback"
    SAFETY_SAVED = "safety_saved"
    PROCEED = "proceed"
    CLEARED = "cleared"
    RESTORED = "restored"
    VERIFIED = "verified"
    FINISHED = "finished"
    ERROR = "error"


class Source(Enum):
    """Which document the data phases are loading."""

    BACKUP = "backup"
    SAFETY = "safety"


class InvalidTransitionError(RuntimeError):
    """Raised when the executor requests a transition the machine forbids."""


_DATA_PHASES = (RestoreState.CLEARING, RestoreState.RESTORING, RestoreState.VERIFYING)

_COMMON: dict[tuple[RestoreState, RestoreEvent], RestoreState] = {
    (RestoreState.IDLE, RestoreEvent.START): RestoreState.VALIDATING,
    (RestoreState.IDLE, RestoreEvent.ROLLBACK): RestoreState.ROLLING_BACK,
    (RestoreState.VALIDATING, RestoreEvent.SAFETY_SAVED): RestoreState.SAFETY_BACKUP_CREATED,
    (RestoreState.VALIDATING, RestoreEvent.ERROR): RestoreState.FAILED,
    (RestoreState.SAFETY_BACKUP_CREATED, RestoreEvent.PROCEED): RestoreState.CLEARING,
    (RestoreState.ROLLING_BACK, RestoreEvent.PROCEED): RestoreState.CLEARING,
    (RestoreState.ROLLING_BACK, RestoreEvent.ERROR): RestoreState.FAILED,
    (RestoreState.CLEARING, RestoreEvent.CLEARED): RestoreState.RESTORING,
    (RestoreState.RESTORING, RestoreEvent.RESTORED): RestoreState.VERIFYING,
    (RestoreState.COMMITTED, RestoreEvent.FINISHED): RestoreState.DONE,
}


def transition(state: RestoreState, event: RestoreEvent, source: Source = Source.BACKUP) -> RestoreState:
    """Return the state reached from ``state`` on ``event``.

    Args:
        state: Current state
        event: What just happened
        source: Document the data phases are loading; decides where a
            verification or a data-phase error leads

    Raises:
        InvalidTransitionError: If the event is not allowed in ``state``
    """
    if state is RestoreState.VERIFYING and event is RestoreEvent.VERIFIED:
        return RestoreState.COMMITTED if source is Source.BACKUP else RestoreState.DONE
    if state in _DATA_PHASES and event is RestoreEvent.ERROR:
        return RestoreState.ROLLING_BACK if source is Source.BACKUP else RestoreState.FAILED
    try:
        return _COMMON[(state, event)]
    except KeyError:
        raise InvalidTransitionError(f"No transition from {state.value} on {event.value}") from None


@dataclass
class RestoreRun:
    """Execution record of one restore or rollback."""

    state: RestoreState = RestoreState.IDLE
    source: Source = Source.BACKUP
    history: list[RestoreState] = field(default_factory=lambda: [RestoreState.IDLE])

    def fire(self, event: RestoreEvent) -> RestoreState:
        self.state = transition(self.state, event, self.source)
        self.history.append(self.state)
        logger.debug("Restore state -> %s", self.state.value)
        return self.state


@dataclass(frozen=True)
class RestoreOutcome:
    """Result of a committed restore or a completed manual rollback."""

    results: dict[str, dict[str, int]]
    timestamp: str
    backup_timestamp: str | None
    states: tuple[RestoreState, ...]

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "results": self.results,
            "timestamp": self.timestamp,
            "backupTimestamp": self.backup_timestamp,
        }


class _PhaseFailure(Exception):
    """A data phase failed; carries a client-safe description."""

    def __init__(self, public_reason: str, detail: str) -> None:
        super().__init__(detail)
        self.public_reason = public_reason


class RestoreEngine:
    """Drive the restore state machine against a data store."""

    def __init__(self, store: DataStore, safety_store: SafetySnapshotStore) -> None:
        self.store = store
        self.safety_store = safety_store
        self.last_run: RestoreRun | None = None

    # --- data phases ------------------------------------------------------------

    def _clear(self) -> None:
        for table in reversed(self.store.tables):
            try:
                self.store.clear_table(table)
            except Exception as err:
                raise _PhaseFailure(f"could not clear table {table}", str(err)) from err

    def _load(self, data: Mapping[str, list[Record]]) -> dict[str, dict[str, int]]:
        results: dict[str, dict[str, int]] = {}
        for table in self.store.tables:
            rows = list(data.get(table) or [])
            try:
                inserted = self.store.insert_rows(table, rows)
            except Exception as err:
                raise _PhaseFailure(f"could not restore table {table}", str(err)) from err
            results[table] = {"inserted": inserted}
        return results

    def _verify(self, data: Mapping[str, list[Record]], results: Mapping[str, Mapping[str, int]]) -> None:
        for table in self.store.tables:
            expected = len(data.get(table) or [])
            restored = results.get(table, {}).get("inserted", 0)
            if expected != restored:
                reason = f"verification failed for {table}: expected {expected}, got {restored}"
                raise _PhaseFailure(reason, reason)

    def _apply(self, run: RestoreRun, data: Mapping[str, list[Record]]) -> dict[str, dict[str, int]]:
        """Traverse CLEARING -> RESTORING -> VERIFYING loading ``data``."""
        run.fire(RestoreEvent.PROCEED)
        self._clear()
        run.fire(RestoreEvent.CLEARED)
        results = self._load(data)
        run.fire(RestoreEvent.RESTORED)
        self._verify(data, results)
        run.fire(RestoreEvent.VERIFIED)
        return results

    # --- public operations --------------------------------------------------------

    def restore(self, backup: Any, session_id: str) -> RestoreOutcome:
        """Replace all live data with ``backup``.

        Args:
            backup: Candidate backup document (plain mapping)
            session_id: Operator session owning the safety snapshot

        Returns:
            ``RestoreOutcome`` with per-table inserted counts

        Raises:
            ValidationError: If the backup is malformed or from another mode;
                nothing has been changed
            RestoreIntegrityError: If the safety snapshot could not be taken;
                nothing has been changed
            RestoreRolledBackError: If the restore failed and live data was
                returned to its previous state
            RestoreRollbackFailedError: If the restore and the rollback both
                failed; live data may be inconsistent
        """
        run = RestoreRun()
        self.last_run = run
        run.fire(RestoreEvent.START)

        try:
            document = validate_backup(backup, self.store.mode)
        except ShopVaultError:
            run.fire(RestoreEvent.ERROR)
            raise

        try:
            safety_data = SnapshotBuilder(self.store).read_all()
            safety = self.safety_store.save(session_id, self.store.mode, safety_data)
        except Exception as err:
            run.fire(RestoreEvent.ERROR)
            logger.error("Could not create safety snapshot: %s", err, exc_info=True)
            raise RestoreIntegrityError(
                "Could not create a safety backup; no data was changed",
                detail=str(err),
            ) from err
        run.fire(RestoreEvent.SAFETY_SAVED)

        try:
            results = self._apply(run, document.data)
        except _PhaseFailure as failure:
            logger.warning("Restore failed (%s): %s; rolling back", failure.public_reason, failure)
            raise self._roll_back(run, session_id, safety.data, failure) from failure

        run.fire(RestoreEvent.FINISHED)
        self.safety_store.discard(session_id)
        logger.info("Restore committed: %s", {table: r["inserted"] for table, r in results.items()})
        return RestoreOutcome(
            results=results,
            timestamp=utc_timestamp(),
            backup_timestamp=document.timestamp,
            states=tuple(run.history),
        )

    def _roll_back(
        self,
        run: RestoreRun,
        session_id: str,
        safety_data: Mapping[str, list[Record]],
        failure: _PhaseFailure,
    ) -> RestoreIntegrityError:
        """Reload the safety snapshot and return the error describing the outcome."""
        run.fire(RestoreEvent.ERROR)
        run.source = Source.SAFETY
        try:
            self._apply(run, safety_data)
        except _PhaseFailure as rollback_failure:
            run.fire(RestoreEvent.ERROR)
            logger.critical(
                "Restore AND rollback failed: %s | %s. Safety snapshot kept for manual recovery.",
                failure,
                rollback_failure,
            )
            return RestoreRollbackFailedError(
                f"Restore failed ({failure.public_reason}) and rollback failed "
                f"({rollback_failure.public_reason}). CRITICAL: data may be inconsistent, "
                "manual intervention required.",
                detail=f"{failure} | {rollback_failure}",
            )

        self.safety_store.discard(session_id)
        logger.info("Rolled back to safety snapshot after failed restore")
        return RestoreRolledBackError(
            f"Restore failed: {failure.public_reason}. Rolled back to previous state.",
            detail=str(failure),
        )

    def rollback(self, session_id: str) -> RestoreOutcome:
        """Reload the session's safety snapshot over live data.

        Used to recover after an interrupted restore.

        Raises:
            NotFoundError: If no unexpired safety snapshot exists
            RestoreRollbackFailedError: If the rollback itself fails
        """
        snapshot = self.safety_store.load(session_id)
        if snapshot is None:
            raise NotFoundError("No safety backup found")
        if snapshot.mode != self.store.mode:
            raise RestoreIntegrityError("Safety backup was taken in a different storage mode")

        run = RestoreRun(source=Source.SAFETY)
        self.last_run = run
        run.fire(RestoreEvent.ROLLBACK)
        try:
            results = self._apply(run, snapshot.data)
        except _PhaseFailure as failure:
            run.fire(RestoreEvent.ERROR)
            logger.critical("Manual rollback failed: %s", failure)
            raise RestoreRollbackFailedError(
                f"Rollback failed ({failure.public_reason}). CRITICAL: data may be inconsistent, "
                "manual intervention required.",
                detail=str(failure),
            ) from failure

        self.safety_store.discard(session_id)
        logger.info("Manual rollback completed")
        return RestoreOutcome(
            results=results,
            timestamp=utc_timestamp(),
            backup_timestamp=snapshot.timestamp,
            states=tuple(run.history),
        )

    def has_safety_snapshot(self, session_id: str) -> bool:
        return self.safety_store.exists(session_id)
