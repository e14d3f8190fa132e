"""Test per-process locks."""

import asyncio

import pytest

from flowvault.history import ProcessLockManager


@pytest.mark.unit
class TestProcessLockManager:
    """Test ProcessLockManager."""

    @pytest.mark.asyncio
    async def test_same_process_is_serialized(self):
        manager = ProcessLockManager()
        events = []

        async def worker(name):
            async with manager.acquire("p1"):
                events.append(f"{name}-start")
                await asyncio.sleep(0.01)
                events.append(f"{name}-end")

        await asyncio.gather(worker("a"), worker("b"))

        assert events in (
            ["a-start", "a-end", "b-start", "b-end"],
            ["b-start", "b-end", "a-start", "a-end"],
        )

    @pytest.mark.asyncio
    async def test_different_processes_run_concurrently(self):
        manager = ProcessLockManager()
        entered = asyncio.Event()

        async def holder():
            async with manager.acquire("p1"):
                await asyncio.wait_for(entered.wait(), timeout=1)

        async def other():
            async with manager.acquire("p2"):
                entered.set()

        await asyncio.gather(holder(), other())

    @pytest.mark.asyncio
    async def test_is_locked_and_cleanup(self):
        manager = ProcessLockManager()

        async with manager.acquire("p1"):
            assert manager.is_locked("p1")
            assert not manager.is_locked("p2")

        assert not manager.is_locked("p1")
        assert manager._locks == {}

    @pytest.mark.asyncio
    async def test_released_on_error(self):
        manager = ProcessLockManager()

        with pytest.raises(RuntimeError):
            async with manager.acquire("p1"):
                raise RuntimeError("failed")

        assert not manager.is_locked("p1")
