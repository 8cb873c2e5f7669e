"""In-process daily query rate limiter.

A fast advisory gate in front of the database ledger. Entries live in a map
keyed by user id and expire at the next midnight UTC. When a user has no live
entry it is seeded from the ledger's daily count, so drift between the two is
bounded to queries served elsewhere since the entry was created.

Seeding runs outside the lock: a slow ledger read for one user never holds up
checks for anyone else.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from kilo.database.base import utc_now
from kilo.services.utils.usage import next_reset_at

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    count: int
    reset_at: datetime


@dataclass(frozen=True)
class RateLimitStatus:
    allowed: bool
    remaining: int
    limit: int
    reset_at: datetime


class QueryRateLimiter:
    """Per-user daily counter, safe to share across threadpool workers."""

    def __init__(self, limit: int, clock: Callable[[], datetime] = utc_now):
        self.limit = limit
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _current(self, user_id: str, now: datetime) -> _Entry | None:
        # Caller holds the lock
        entry = self._entries.get(user_id)
        if entry is None or now >= entry.reset_at:
            return None
        return entry

    def _entry(self, user_id: str, now: datetime, count: int = 0) -> _Entry:
        # Caller holds the lock
        entry = self._current(user_id, now)
        if entry is None:
            entry = _Entry(count=count, reset_at=next_reset_at(now))
            self._entries[user_id] = entry
        return entry

    def _ensure_seeded(self, user_id: str, seed: Callable[[], int] | None) -> None:
        if seed is None:
            return
        now = self._clock()
        with self._lock:
            if self._current(user_id, now) is not None:
                return

        count = max(0, seed())

        with self._lock:
            # Keeps an entry another thread created while this one was seeding
            self._entry(user_id, now, count)

    def _status(self, entry: _Entry, allowed: bool) -> RateLimitStatus:
        return RateLimitStatus(
            allowed=allowed,
            remaining=max(0, self.limit - entry.count),
            limit=self.limit,
            reset_at=entry.reset_at,
        )

    def check(self, user_id: str, seed: Callable[[], int] | None = None) -> RateLimitStatus:
        """
        Report whether the user has queries left today, without consuming one.

        Args:
            user_id: The user to check
            seed: Called only when the user has no live entry; returns the
                number of queries already used today

        Returns:
            RateLimitStatus for the user's current window
        """
        self._ensure_seeded(user_id, seed)
        with self._lock:
            entry = self._entry(user_id, self._clock())
            return self._status(entry, entry.count < self.limit)

    def reserve(self, user_id: str, seed: Callable[[], int] | None = None) -> RateLimitStatus:
        """
        Atomically check and consume one query.

        Returns:
            RateLimitStatus after the reservation; `allowed` is False (and
            nothing is consumed) when the limit was already reached
        """
        self._ensure_seeded(user_id, seed)
        with self._lock:
            entry = self._entry(user_id, self._clock())
            if entry.count >= self.limit:
                return self._status(entry, False)
            entry.count += 1
            return self._status(entry, True)

    def release(self, user_id: str) -> None:
        """Give back a reservation for a query that was never served."""
        now = self._clock()
        with self._lock:
            entry = self._current(user_id, now)
            if entry is not None and entry.count > 0:
                entry.count -= 1

    def reset_user(self, user_id: str) -> None:
        with self._lock:
            self._entries.pop(user_id, None)

    def sweep(self) -> int:
        """Evict expired entries. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [uid for uid, entry in self._entries.items() if now >= entry.reset_at]
            for uid in expired:
                del self._entries[uid]
        return len(expired)


async def run_sweep_loop(limiter: QueryRateLimiter, interval_seconds: float) -> None:
    """Periodically evict expired limiter entries until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = limiter.sweep()
        except Exception:
            logger.exception("Rate limiter sweep failed")
            continue
        if removed:
            logger.info("Rate limiter sweep evicted %d expired entries", removed)
