"""Per-slot mutual exclusion for capacity-affecting operations."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Dict, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .database import is_postgresql
from .exceptions import SlotBusyError

logger = logging.getLogger(__name__)


class _KeyedLock:
    """An asyncio lock plus the number of tasks currently holding or awaiting it."""

    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class SlotLockManager:
    """
    Serializes critical sections by key within this process.

    Locks are created on demand and discarded once no task holds or awaits
    them, so the table only grows with the number of slots being mutated
    concurrently. Cross-process serialization is layered on top through a
    PostgreSQL transaction advisory lock (see `advisory_lock`).
    """

    def __init__(self, timeout_seconds: Optional[float] = None):
        self._locks: Dict[str, _KeyedLock] = {}
        self._timeout_seconds = timeout_seconds

    @property
    def timeout_seconds(self) -> float:
        if self._timeout_seconds is not None:
            return self._timeout_seconds
        return settings.slot_lock_timeout_seconds

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[None]:
        """
        Hold the lock for `key` for the duration of the block.

        Raises:
            SlotBusyError: If the lock is not obtained within the timeout
        """
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _KeyedLock()
        entry.users += 1

        try:
            # acquire() runs in this task, so a timeout or cancellation cannot leave the lock held
            try:
                async with asyncio.timeout(self.timeout_seconds):
                    await entry.lock.acquire()
            except TimeoutError as e:
                logger.warning(
                    "Timed out waiting for slot lock",
                    extra={"slot_key": key, "timeout_seconds": self.timeout_seconds}
                )
                raise SlotBusyError(key) from e

            try:
                yield
            finally:
                entry.lock.release()
        finally:
            entry.users -= 1
            if entry.users == 0 and self._locks.get(key) is entry:
                del self._locks[key]

    def held_keys(self) -> list[str]:
        """Keys with a holder or waiter, for diagnostics."""
        return list(self._locks)


async def advisory_lock(db: AsyncSession, key: str) -> None:
    """
    Take a PostgreSQL transaction-scoped advisory lock on `key`.

    The lock is released automatically when the transaction ends. Other
    dialects (SQLite in tests) rely on the in-process lock alone.
    """
    if not is_postgresql(db):
        return
    await db.execute(
        text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
        {"key": key}
    )
    logger.debug("Acquired advisory lock", extra={"slot_key": key})


# Global lock manager shared by every request in this process
slot_locks = SlotLockManager()
