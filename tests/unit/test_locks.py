from __future__ import annotations

import asyncio

import pytest

from common.errors import SwitchConflictError
from common.locks import KeyedLock, hold_exclusive


@pytest.mark.asyncio
async def test_keyed_lock_reuses_lock_per_key():
    locks = KeyedLock()
    assert locks.lock_for("a") is locks.lock_for("a")
    assert locks.lock_for("a") is not locks.lock_for("b")
    assert locks.locked("never-used") is False

    async with locks.hold("a"):
        assert locks.locked("a")
        assert not locks.locked("b")
    assert not locks.locked("a")


@pytest.mark.asyncio
async def test_hold_exclusive_rejects_when_busy():
    lock = asyncio.Lock()
    async with hold_exclusive(lock):
        with pytest.raises(SwitchConflictError):
            async with hold_exclusive(lock):
                pass
    assert not lock.locked()


@pytest.mark.asyncio
async def test_hold_exclusive_waits_when_blocking():
    lock = asyncio.Lock()
    order = []

    async def worker(name: str) -> None:
        async with hold_exclusive(lock, blocking=True):
            order.append(f"{name}-in")
            await asyncio.sleep(0.01)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))

    assert order == ["a-in", "a-out", "b-in", "b-out"]


@pytest.mark.asyncio
async def test_hold_exclusive_releases_on_error():
    lock = asyncio.Lock()
    with pytest.raises(KeyError):
        async with hold_exclusive(lock):
            raise KeyError("boom")
    assert not lock.locked()
