"""Interval trigger that runs renewal cycles in the background."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .renewal import RenewalReport, RenewalScheduler

logger = logging.getLogger(__name__)


class RenewalWorker:
    """Runs ``RenewalScheduler.run_cycle`` every ``interval_seconds``.

    Cycles never overlap: the next sleep starts after the current cycle ends.
    """

    def __init__(self, scheduler: RenewalScheduler, interval_seconds: float, enabled: bool = True) -> None:
        self.scheduler = scheduler
        self.interval_seconds = interval_seconds
        self.enabled = enabled
        self.last_report: RenewalReport | None = None
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None or not self.enabled:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run_forever(), name="graph-keeper-renewal-worker")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None

    async def run_forever(self) -> None:
        if not self.enabled:
            logger.info("Renewal worker is disabled; not running")
            return
        while not self._stop_event.is_set():
            try:
                self.last_report = await self.scheduler.run_cycle()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Renewal cycle failed")

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                pass
