"""Fixed-window rate limiting keyed by client identity and route.

Records live in a process-wide store. A record past its reset time is
replaced rather than incremented, so a client can burst up to twice the limit
across a window boundary; that is the expected behaviour of fixed windows.

The in-memory store is only correct for a single-process deployment. Several
instances behind a load balancer each keep their own counters.
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass
from threading import Lock
from typing import Protocol

from shopvault.core.settings import settings


@dataclass(frozen=True)
class RateLimitPolicy:
    """Request budget for one traffic class."""

    name: str
    max_requests: int
    window_seconds: float


@dataclass
class RateLimitRecord:
    """Counter for one (identity, route) key within its current window."""

    count: int
    reset_time: float


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a rate-limit check."""

    limited: bool
    remaining: int
    reset_in_seconds: int


class RateLimitStore(Protocol):
    """Storage backend for rate-limit records."""

    def get(self, key: str) -> RateLimitRecord | None: ...

    def set(self, key: str, record: RateLimitRecord) -> None: ...

    def sweep(self, now: float) -> int: ...

    def locked(self) -> AbstractContextManager[None]: ...


class InMemoryRateLimitStore:
    """Mutex-guarded dictionary of rate-limit records."""

    def __init__(self) -> None:
        self._records: dict[str, RateLimitRecord] = {}
        self._lock = Lock()

    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold exclusive access for a read-check-increment sequence."""
        with self._lock:
            yield

    def get(self, key: str) -> RateLimitRecord | None:
        return self._records.get(key)

    def set(self, key: str, record: RateLimitRecord) -> None:
        self._records[key] = record

    def sweep(self, now: float) -> int:
        """Drop every record whose window has elapsed.

        Callers must hold ``locked()``.
        """
        expired = [key for key, record in self._records.items() if now > record.reset_time]
        for key in expired:
            del self._records[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._records)


class RateLimiter:
    """Fixed-window counter over an injectable store."""

    def __init__(
        self,
        store: RateLimitStore | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval_seconds: float | None = None,
    ) -> None:
        self.store = store if store is not None else InMemoryRateLimitStore()
        self._clock = clock
        self._sweep_interval = (
            sweep_interval_seconds
            if sweep_interval_seconds is not None
            else settings.rate_limit_sweep_interval_seconds
        )
        self._last_sweep = clock()

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep < self._sweep_interval:
            return
        self._last_sweep = now
        self.store.sweep(now)

    def check(self, identity: str, route: str, policy: RateLimitPolicy) -> RateLimitResult:
        """Count one request and report whether it exceeds the policy.

        Args:
            identity: Client identity (see ``client_identity``)
            route: Route path the request targets
            policy: Budget to enforce

        Returns:
            ``RateLimitResult`` with the remaining budget and reset countdown
        """
        key = f"{identity}:{route}"
        with self.store.locked():
            now = self._clock()
            self._maybe_sweep(now)

            record = self.store.get(key)
            if record is None or now > record.reset_time:
                self.store.set(key, RateLimitRecord(count=1, reset_time=now + policy.window_seconds))
                return RateLimitResult(
                    limited=False,
                    remaining=max(0, policy.max_requests - 1),
                    reset_in_seconds=math.ceil(policy.window_seconds),
                )

            record.count += 1
            return RateLimitResult(
                limited=record.count > policy.max_requests,
                remaining=max(0, policy.max_requests - record.count),
                reset_in_seconds=max(0, math.ceil(record.reset_time - now)),
            )


def build_policies() -> dict[str, RateLimitPolicy]:
    """Return the four traffic-class policies from settings."""
    window = settings.rate_limit_window_seconds
    return {
        "auth": RateLimitPolicy("auth", settings.rate_limit_auth, window),
        "data": RateLimitPolicy("data", settings.rate_limit_data, window),
        "read": RateLimitPolicy("read", settings.rate_limit_read, window),
        "upload": RateLimitPolicy("upload", settings.rate_limit_upload, window),
    }


RATE_LIMITS = build_policies()


def client_identity(headers: Mapping[str, str], peer_host: str | None) -> str:
    """Derive the rate-limit identity of a client.

    The first X-Forwarded-For entry is trusted, which is only safe behind a
    reverse proxy that overwrites the header.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return peer_host or "unknown"


class _RateLimiterSingleton:
    """Process-wide limiter shared by every request gate."""

    _instance: RateLimiter | None = None

    @classmethod
    def get_instance(cls) -> RateLimiter:
        if cls._instance is None:
            cls._instance = RateLimiter()
        return cls._instance


def get_rate_limiter() -> RateLimiter:
    """Return the shared rate limiter."""
    return _RateLimiterSingleton.get_instance()