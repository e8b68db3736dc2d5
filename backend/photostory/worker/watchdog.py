"""Periodic sweep that fails jobs stuck past their time budget."""

import asyncio
import logging

from photostory.config import get_settings
from photostory.services.job_service import JobService

logger = logging.getLogger(__name__)


class Watchdog:
    def __init__(self, jobs: JobService, interval: float | None = None):
        self.jobs = jobs
        self.interval = interval or get_settings().render_watchdog_interval_seconds
        self._stopped = asyncio.Event()

    async def sweep(self) -> list[str]:
        expired = await self.jobs.expire_stale_jobs()
        if expired:
            logger.warning(f"[WATCHDOG] Expired {len(expired)} stale jobs: {', '.join(expired)}")
        return expired

    async def run(self) -> None:
        logger.info(f"[WATCHDOG] Sweeping every {self.interval:.0f}s")
        while not self._stopped.is_set():
            try:
                await self.sweep()
            except Exception:
                logger.exception("[WATCHDOG] Sweep failed")
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    def stop(self) -> None:
        self._stopped.set()
