"""Tests for the background renewal worker."""

import asyncio

import httpx
import pytest

from graph_keeper.config import KeeperSettings
from graph_keeper.errors import PersistenceError
from graph_keeper.renewal import RenewalReport
from graph_keeper.runtime import KeeperRuntime
from graph_keeper.worker import RenewalWorker
from tests.conftest import ProviderStub


class CountingScheduler:
    def __init__(self):
        self.cycles = 0

    async def run_cycle(self):
        self.cycles += 1
        return RenewalReport(started_at=float(self.cycles))


class FailingScheduler(CountingScheduler):
    async def run_cycle(self):
        self.cycles += 1
        raise PersistenceError("Query failed: database is locked")


class TestRenewalWorker:
    @pytest.mark.asyncio
    async def test_runs_cycles_until_stopped(self):
        scheduler = CountingScheduler()
        worker = RenewalWorker(scheduler, interval_seconds=0.01)

        worker.start()
        await asyncio.sleep(0.05)
        assert worker.running is True
        await worker.stop()

        assert scheduler.cycles >= 2
        assert worker.running is False
        assert worker.last_report is not None

    @pytest.mark.asyncio
    async def test_disabled_worker_does_not_start(self):
        scheduler = CountingScheduler()
        worker = RenewalWorker(scheduler, interval_seconds=0.01, enabled=False)

        worker.start()
        await asyncio.sleep(0.02)

        assert worker.running is False
        assert scheduler.cycles == 0

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        worker = RenewalWorker(CountingScheduler(), interval_seconds=1)

        await worker.stop()

        assert worker.running is False

    @pytest.mark.asyncio
    async def test_disabled_worker_run_forever_returns(self):
        scheduler = CountingScheduler()
        worker = RenewalWorker(scheduler, interval_seconds=0.01, enabled=False)

        await asyncio.wait_for(worker.run_forever(), timeout=1)

        assert scheduler.cycles == 0
        assert worker.last_report is None

    @pytest.mark.asyncio
    async def test_runtime_worker_honours_disabled_setting(self, tmp_path):
        settings = KeeperSettings(
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'keeper.db'}",
            renewal_worker_enabled=False,
        )
        async with KeeperRuntime(settings, transport_factory=lambda limits: httpx.MockTransport(ProviderStub())) as runtime:
            runtime.scheduler = CountingScheduler()
            worker = runtime.worker()

            await asyncio.wait_for(worker.run_forever(), timeout=1)

        assert worker.enabled is False
        assert runtime.scheduler.cycles == 0

    @pytest.mark.asyncio
    async def test_failed_cycle_is_logged_and_retried(self, caplog):
        scheduler = FailingScheduler()
        worker = RenewalWorker(scheduler, interval_seconds=0.01)

        worker.start()
        await asyncio.sleep(0.05)
        await worker.stop()

        assert scheduler.cycles >= 2
        assert worker.last_report is None
        assert "Renewal cycle failed" in caplog.text
