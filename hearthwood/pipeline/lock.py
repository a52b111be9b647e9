"""Per-day cycle lock.

A lock record is the only cross-process coordination the day cycle has:

  acquire(day)       running lock ≤30 min old → None (busy)
                     running lock older       → forced to "failed", then retry
                     conditional insert lost  → None (busy), never raises
  release(id, state) running → complete | failed, retried with linear backoff
  mark_processed     idempotent append to the lock's processed set, retried

The processed set belongs to one lock instance. A retry of the same day
under a new lock starts with an empty set.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from hearthwood.errors import DuplicateLockError
from hearthwood.models import CycleLock, LockState, utcnow
from hearthwood.retry import LOCK_WRITE_POLICY, RetryPolicy
from hearthwood.storage import Storage

logger = logging.getLogger(__name__)

STALE_AFTER = timedelta(minutes=30)


class CycleLockManager:
    def __init__(
        self,
        storage: Storage,
        policy: RetryPolicy = LOCK_WRITE_POLICY,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.storage = storage
        self.policy = policy
        self.clock = clock

    async def acquire(self, day: int) -> CycleLock | None:
        """Return a fresh running lock for `day`, or None if another cycle holds it."""
        existing = self.storage.get_running_lock(day)
        if existing is not None:
            age = self.clock() - existing.started_at
            if age <= STALE_AFTER:
                logger.info("Day %d is locked by %s (age %s)", day, existing.id, age)
                return None
            logger.warning("Reclaiming stale lock %s for day %d (age %s)", existing.id, day, age)
            await self.release(existing.id, "failed")

        lock = CycleLock(day=day, started_at=self.clock())
        try:
            self.storage.insert_lock(lock)
        except DuplicateLockError:
            logger.info("Lost the lock race for day %d", day)
            return None
        logger.info("Acquired lock %s for day %d", lock.id, day)
        return lock

    async def release(self, lock_id: str, final_state: LockState) -> CycleLock:
        if final_state == "running":
            raise ValueError("A lock cannot be released into the running state")

        async def _write() -> CycleLock:
            lock = self.storage.get_lock(lock_id)
            if lock.state != "running":
                logger.debug("Lock %s already %s", lock_id, lock.state)
                return lock
            lock.state = final_state
            lock.completed_at = self.clock()
            return self.storage.save_lock(lock)

        lock = await self.policy.run(_write, retry_on=(OSError,))
        logger.info("Released lock %s as %s", lock_id, lock.state)
        return lock

    async def mark_processed(self, lock_id: str, character_id: str) -> CycleLock:
        async def _write() -> CycleLock:
            lock = self.storage.get_lock(lock_id)
            if character_id in lock.processed_ids:
                return lock
            lock.processed_ids.append(character_id)
            return self.storage.save_lock(lock)

        return await self.policy.run(_write, retry_on=(OSError,))

    def is_processed(self, lock_id: str, character_id: str) -> bool:
        return character_id in self.storage.get_lock(lock_id).processed_ids
