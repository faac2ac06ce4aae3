"""
Tests for the keyed lock table.
"""

from __future__ import annotations

import asyncio

from artifact_chat.locks import KeyedLocks


async def test_same_key_is_serialized():
    locks = KeyedLocks()
    order: list[str] = []

    async def worker(name: str):
        async with locks.hold("doc-1"):
            order.append(f"{name} in")
            await asyncio.sleep(0.01)
            order.append(f"{name} out")

    await asyncio.gather(worker("a"), worker("b"))

    assert order == ["a in", "a out", "b in", "b out"]


async def test_different_keys_do_not_wait_for_each_other():
    locks = KeyedLocks()

    async with locks.hold("doc-1"):
        await asyncio.wait_for(_enter_and_leave(locks, "doc-2"), timeout=1)
        assert len(locks) == 1


async def _enter_and_leave(locks: KeyedLocks, key: str):
    async with locks.hold(key):
        pass


async def test_entry_lives_while_a_waiter_remains():
    locks = KeyedLocks()
    release = asyncio.Event()

    async def holder():
        async with locks.hold("doc-1"):
            await release.wait()

    first = asyncio.create_task(holder())
    second = asyncio.create_task(_enter_and_leave(locks, "doc-1"))
    await asyncio.sleep(0.01)
    assert len(locks) == 1

    release.set()
    await asyncio.gather(first, second)

    assert len(locks) == 0


async def test_many_keys_are_evicted_after_use():
    locks = KeyedLocks()

    for index in range(100):
        await _enter_and_leave(locks, f"doc-{index}")

    assert len(locks) == 0


async def test_cancelled_waiter_leaves_no_entry():
    locks = KeyedLocks()
    release = asyncio.Event()

    async def holder():
        async with locks.hold("doc-1"):
            await release.wait()

    first = asyncio.create_task(holder())
    await asyncio.sleep(0)
    waiter = asyncio.create_task(_enter_and_leave(locks, "doc-1"))
    await asyncio.sleep(0.01)
    waiter.cancel()
    await asyncio.gather(waiter, return_exceptions=True)

    release.set()
    await first

    assert len(locks) == 0
