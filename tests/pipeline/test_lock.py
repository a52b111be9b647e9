"""Tests for hearthwood.pipeline.lock — CycleLockManager."""

import asyncio
from datetime import timedelta

import pytest

from hearthwood.models import CycleLock, utcnow
from hearthwood.pipeline.lock import STALE_AFTER, CycleLockManager
from hearthwood.retry import RetryPolicy

FAST = RetryPolicy(max_attempts=3, base_delay=0.0, backoff="linear")


class TestAcquire:
    async def test_acquire_creates_running_lock(self, storage, locks) -> None:
        lock = await locks.acquire(3)
        assert lock is not None
        assert lock.state == "running"
        assert storage.get_running_lock(3).id == lock.id

    async def test_fresh_lock_means_busy(self, locks) -> None:
        assert await locks.acquire(1) is not None
        assert await locks.acquire(1) is None

    async def test_other_day_not_blocked(self, locks) -> None:
        assert await locks.acquire(1) is not None
        assert await locks.acquire(2) is not None

    async def test_stale_lock_forced_failed_then_replaced(self, storage) -> None:
        old = storage.insert_lock(CycleLock(day=1, started_at=utcnow() - STALE_AFTER - timedelta(minutes=1)))
        manager = CycleLockManager(storage, policy=FAST)

        lock = await manager.acquire(1)
        assert lock is not None and lock.id != old.id
        reclaimed = storage.get_lock(old.id)
        assert reclaimed.state == "failed"
        assert reclaimed.completed_at is not None
        assert storage.get_running_lock(1).id == lock.id

    async def test_lock_just_under_threshold_is_busy(self, storage) -> None:
        now = utcnow()
        storage.insert_lock(CycleLock(day=1, started_at=now - timedelta(minutes=29)))
        manager = CycleLockManager(storage, policy=FAST, clock=lambda: now)
        assert await manager.acquire(1) is None

    async def test_concurrent_acquire_exactly_one_wins(self, locks) -> None:
        results = await asyncio.gather(locks.acquire(5), locks.acquire(5))
        assert sum(r is not None for r in results) == 1

    async def test_lost_insert_race_returns_none(self, storage, locks, monkeypatch) -> None:
        # Both racers saw no running lock; the second insert hits the uniqueness guard
        storage.insert_lock(CycleLock(day=4))
        monkeypatch.setattr(storage, "get_running_lock", lambda day: None)
        assert await locks.acquire(4) is None
        assert len(storage.get_locks(day=4)) == 1


class TestRelease:
    async def test_release_complete(self, storage, locks) -> None:
        lock = await locks.acquire(1)
        released = await locks.release(lock.id, "complete")
        assert released.state == "complete"
        assert released.completed_at is not None
        assert storage.get_running_lock(1) is None

    async def test_release_is_idempotent(self, locks) -> None:
        lock = await locks.acquire(1)
        await locks.release(lock.id, "failed")
        again = await locks.release(lock.id, "complete")
        assert again.state == "failed"

    async def test_release_retried_on_write_failure(self, storage, locks, monkeypatch) -> None:
        lock = await locks.acquire(1)
        real_save = storage.save_lock
        calls = {"n": 0}

        def flaky_save(l):
            calls["n"] += 1
            if calls["n"] < 3:
                raise OSError("disk hiccup")
            return real_save(l)

        monkeypatch.setattr(storage, "save_lock", flaky_save)
        released = await locks.release(lock.id, "complete")
        assert released.state == "complete"
        assert calls["n"] == 3

    async def test_release_gives_up_after_three_attempts(self, storage, locks, monkeypatch) -> None:
        lock = await locks.acquire(1)

        def broken_save(l):
            raise OSError("disk gone")

        monkeypatch.setattr(storage, "save_lock", broken_save)
        with pytest.raises(OSError):
            await locks.release(lock.id, "complete")

    async def test_cannot_release_into_running(self, locks) -> None:
        lock = await locks.acquire(1)
        with pytest.raises(ValueError):
            await locks.release(lock.id, "running")


class TestProcessed:
    async def test_mark_processed_idempotent(self, storage, locks) -> None:
        lock = await locks.acquire(1)
        await locks.mark_processed(lock.id, "abc")
        await locks.mark_processed(lock.id, "abc")
        assert storage.get_lock(lock.id).processed_ids == ["abc"]
        assert locks.is_processed(lock.id, "abc")
        assert not locks.is_processed(lock.id, "xyz")

    async def test_processed_set_scoped_to_lock(self, locks) -> None:
        first = await locks.acquire(1)
        await locks.mark_processed(first.id, "abc")
        await locks.release(first.id, "failed")
        second = await locks.acquire(1)
        assert not locks.is_processed(second.id, "abc")

    async def test_mark_processed_retried(self, storage, locks, monkeypatch) -> None:
        lock = await locks.acquire(1)
        real_save = storage.save_lock
        calls = {"n": 0}

        def flaky_save(l):
            calls["n"] += 1
            if calls["n"] == 1:
                raise OSError("disk hiccup")
            return real_save(l)

        monkeypatch.setattr(storage, "save_lock", flaky_save)
        await locks.mark_processed(lock.id, "abc")
        assert storage.get_lock(lock.id).processed_ids == ["abc"]
