"""
Tests for the periodic key reset scheduler.
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, Mock

import pytest

from mvp_planner_server.key_manager import UsageAccountant
from mvp_planner_server.key_store import utcnow
from mvp_planner_server.scheduler import KeyResetScheduler


class TestKeyResetScheduler:
    """Reset sweeps on a timer"""

    def test_zero_poll_interval_rejected(self, store):
        """Test a zero interval cannot spin the sweep loop"""
        with pytest.raises(ValueError):
            KeyResetScheduler(UsageAccountant(store), ["content-gen"], poll_seconds=0)

    @pytest.mark.asyncio
    async def test_run_once_resets_stale_keys(self, store, add_keys):
        """Test a single sweep resets stale keys and records the run"""
        keys = await add_keys(store, "content-gen", 50, active=False)
        await store.update_key(keys[0].id, last_reset=utcnow() - timedelta(hours=25))
        scheduler = KeyResetScheduler(UsageAccountant(store), ["content-gen"])

        assert await scheduler.run_once() == 1

        key = await store.get_key(keys[0].id)
        assert key.active is True
        assert key.daily_usage == 0
        assert scheduler.last_run is not None
        assert scheduler.total_resets == 1

    @pytest.mark.asyncio
    async def test_start_and_stop(self, store):
        """Test the background task lifecycle"""
        scheduler = KeyResetScheduler(UsageAccountant(store), ["content-gen"], poll_seconds=60)

        scheduler.start()
        await asyncio.sleep(0)
        assert scheduler.is_running is True
        assert scheduler.status()["is_running"] is True

        await scheduler.stop()
        assert scheduler.is_running is False
        assert scheduler.status()["started_at"] is None

    @pytest.mark.asyncio
    async def test_start_twice_is_noop(self, store):
        """Test a second start keeps the first task"""
        scheduler = KeyResetScheduler(UsageAccountant(store), ["content-gen"], poll_seconds=60)

        scheduler.start()
        task = scheduler._task
        scheduler.start()
        assert scheduler._task is task

        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start(self, store):
        """Test stopping an idle scheduler is harmless"""
        scheduler = KeyResetScheduler(UsageAccountant(store), ["content-gen"])
        await scheduler.stop()
        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_loop_survives_sweep_errors(self):
        """Test a failing sweep is logged and the loop keeps going"""
        accountant = Mock()
        accountant.reset_stale_keys = AsyncMock(side_effect=[RuntimeError("db down"), 2, 0, 0, 0, 0])
        scheduler = KeyResetScheduler(accountant, ["content-gen"], poll_seconds=0.01)

        scheduler.start()
        for _ in range(50):
            if accountant.reset_stale_keys.await_count >= 2:
                break
            await asyncio.sleep(0.01)
        await scheduler.stop()

        assert accountant.reset_stale_keys.await_count >= 2
        assert scheduler.total_resets >= 2

    def test_status_before_start(self, store):
        """Test status of a never-started scheduler"""
        scheduler = KeyResetScheduler(UsageAccountant(store), ["content-gen", "image-search"], poll_seconds=900)

        status = scheduler.status()
        assert status == {
            "is_running": False,
            "providers": ["content-gen", "image-search"],
            "poll_seconds": 900,
            "started_at": None,
            "last_run": None,
            "total_resets": 0,
        }
