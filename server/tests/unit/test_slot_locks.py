"""Unit tests for the per-slot lock manager."""

import asyncio

import pytest

from tripslots.core.exceptions import SlotBusyError
from tripslots.core.locks import SlotLockManager


@pytest.mark.asyncio
async def test_lock_timeout_raises_slot_busy():
    """A waiter that outlasts the timeout is refused and leaves no entry behind."""
    locks = SlotLockManager(timeout_seconds=0.05)

    async with locks.acquire("slot-1"):
        with pytest.raises(SlotBusyError) as exc_info:
            async with locks.acquire("slot-1"):
                pass

        assert exc_info.value.problem_details["slot_key"] == "slot-1"
        assert exc_info.value.problem_details["retryable"] is True
        assert locks.held_keys() == ["slot-1"]

    assert locks.held_keys() == []

    # The timed-out waiter did not keep the lock
    async with locks.acquire("slot-1"):
        assert locks.held_keys() == ["slot-1"]


@pytest.mark.asyncio
async def test_cancelled_waiter_leaves_lock_free():
    locks = SlotLockManager(timeout_seconds=5)
    entered = asyncio.Event()

    async def waiter():
        async with locks.acquire("slot-1"):
            entered.set()

    async with locks.acquire("slot-1"):
        task = asyncio.create_task(waiter())
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    assert not entered.is_set()
    assert locks.held_keys() == []

    async with locks.acquire("slot-1"):
        pass


@pytest.mark.asyncio
async def test_keys_are_independent():
    """Holding one slot's lock does not block another slot."""
    locks = SlotLockManager(timeout_seconds=0.05)

    async with locks.acquire("slot-1"):
        async with locks.acquire("slot-2"):
            assert sorted(locks.held_keys()) == ["slot-1", "slot-2"]
