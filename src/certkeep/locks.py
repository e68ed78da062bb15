"""Lease-based locks shared between processes through the database.

A lock is a row in the lock table whose ``expires`` column lies in the
future according to the backend clock. Nothing sweeps expired rows: every
query compares ``expires`` with the backend's current time, so a lease
left behind by a crashed holder becomes free on its own and the next
acquirer overwrites it.

There is no holder identity. ``unlock`` releases whatever lease is stored
for the key, and a holder that stalls past its lease can be preempted.
"""

import asyncio
import functools

from certkeep.config import (
    DEFAULT_LOCK_LEASE_SECONDS,
    DEFAULT_LOCK_POLL_INTERVAL_SECONDS,
    DEFAULT_QUERY_TIMEOUT_SECONDS,
)
from certkeep.exceptions import BackendUnavailableError, LockContendedError, LockTimeoutError
from certkeep.observability import Timer, get_logger
from certkeep.protocols.database import Database
from certkeep.sql import execute
from certkeep.utils.validation import validate_identifier, validate_key

logger = get_logger(__name__)


def lease_to_micros(lease: float) -> int:
    """Convert a lease in seconds to whole microseconds (at least 1)."""
    if lease <= 0:
        raise ValueError(f"Lease must be positive, got {lease}")
    return max(1, int(lease * 1_000_000))


class LockManager:
    """Mutual exclusion per key across every process sharing the database."""

    def __init__(
        self,
        db: Database,
        table: str = "certkeep_locks",
        lease: float = DEFAULT_LOCK_LEASE_SECONDS,
        poll_interval: float = DEFAULT_LOCK_POLL_INTERVAL_SECONDS,
        query_timeout: float | None = DEFAULT_QUERY_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the lock manager.

        Args:
            db: Database holding the lock table
            table: Name of the lock table
            lease: Default lease duration in seconds
            poll_interval: Seconds to wait between attempts while contended
            query_timeout: Seconds allowed per statement (None for no limit)
        """
        self.db = db
        self.table = validate_identifier(table, name="lock table")
        lease_to_micros(lease)
        if poll_interval <= 0:
            raise ValueError(f"Poll interval must be positive, got {poll_interval}")
        self.lease = lease
        self.poll_interval = poll_interval
        self.query_timeout = query_timeout
        self._cleanup_tasks: set[asyncio.Task[None]] = set()

        clock = db.dialect.clock_sql
        # Inserts a new lease, or overwrites one that has already expired.
        # A live lease makes the WHERE false, so nothing is returned.
        self._acquire_sql = f"""
            INSERT INTO {self.table} (key, expires)
            VALUES (:key, {clock} + :lease)
            ON CONFLICT (key) DO UPDATE SET expires = excluded.expires
            WHERE {self.table}.expires <= {clock}
            RETURNING key
        """
        self._held_sql = f"SELECT 1 AS held FROM {self.table} WHERE key = :key AND expires > {clock}"

    async def try_lock(self, key: str, lease: float | None = None) -> bool:
        """Make one attempt to acquire the lock for key.

        Returns:
            True if the lock was acquired, False if a live lease exists
        """
        validate_key(key)
        rows = await execute(
            self.db,
            self._acquire_sql,
            {"key": key, "lease": lease_to_micros(lease if lease is not None else self.lease)},
            timeout=self.query_timeout,
        )
        return bool(rows)

    async def lock(
        self,
        key: str,
        lease: float | None = None,
        timeout: float | None = None,
    ) -> None:
        """Acquire the lock for key, waiting while another lease is live.

        Retries every ``poll_interval`` seconds. The timeout is checked
        between attempts, so an attempt already sent to the backend always
        completes and the call may overrun ``timeout`` by up to one
        statement. Cancelling the calling task stops the wait; if an
        attempt in flight at that moment acquires the lease, it is released
        again.

        Args:
            key: Name to lock
            lease: Lease duration in seconds (defaults to the manager's lease)
            timeout: Maximum seconds to wait (None waits indefinitely)

        Raises:
            LockTimeoutError: timeout expired while the lock was held elsewhere
            BackendUnavailableError: a statement failed
        """
        validate_key(key)
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        attempts = 0

        with Timer() as timer:
            while True:
                if not await self.is_locked(key) and await self._attempt(key, lease):
                    break
                delay = self.poll_interval
                if deadline is not None:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        logger.warning(
                            "Gave up waiting for lock",
                            context={"key": key, "timeout": timeout},
                            duration_ms=timer.duration_ms,
                        )
                        raise LockTimeoutError(key, timeout)
                    delay = min(delay, remaining)
                attempts += 1
                if attempts == 1:
                    logger.debug("Lock is held, waiting", context={"key": key})
                await asyncio.sleep(delay)
        logger.debug("Lock acquired", context={"key": key}, duration_ms=timer.duration_ms)

    async def _attempt(self, key: str, lease: float | None) -> bool:
        """Run try_lock to completion even if the caller is cancelled."""
        attempt = asyncio.ensure_future(self.try_lock(key, lease))
        try:
            return await asyncio.shield(attempt)
        except asyncio.CancelledError:
            attempt.add_done_callback(functools.partial(self._release_abandoned, key))
            raise

    def _release_abandoned(self, key: str, attempt: "asyncio.Future[bool]") -> None:
        """Release a lease won by an attempt nobody is waiting for."""
        if attempt.cancelled() or attempt.exception() is not None or not attempt.result():
            return
        task = asyncio.ensure_future(self._unlock_quietly(key))
        self._cleanup_tasks.add(task)
        task.add_done_callback(self._cleanup_tasks.discard)

    async def _unlock_quietly(self, key: str) -> None:
        try:
            await self.unlock(key)
        except BackendUnavailableError as e:
            # The lease still expires on its own
            logger.warning(
                "Could not release abandoned lock",
                context={"key": key},
                error=e,
            )

    async def unlock(self, key: str) -> None:
        """Release the lock for key. No-op if no lease is stored."""
        validate_key(key)
        await execute(
            self.db,
            f"DELETE FROM {self.table} WHERE key = :key",
            {"key": key},
            timeout=self.query_timeout,
        )
        logger.debug("Lock released", context={"key": key})

    async def is_locked(self, key: str) -> bool:
        """Return True if an unexpired lease exists for key."""
        validate_key(key)
        rows = await execute(
            self.db,
            self._held_sql,
            {"key": key},
            timeout=self.query_timeout,
        )
        return bool(rows)

    async def ensure_unlocked(self, key: str) -> None:
        """Check that key is free.

        Raises:
            LockContendedError: An unexpired lease exists for key
        """
        if await self.is_locked(key):
            raise LockContendedError(key)
