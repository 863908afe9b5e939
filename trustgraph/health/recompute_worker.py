"""
Health Recompute Worker
=======================

Background task that drains the health recompute queue on an interval,
so organisation snapshots follow completions, sweeps, resolutions and
action changes without a caller asking for a recompute.

Usage:
    worker = HealthRecomputeWorker(service, interval_seconds=60)
    worker.start()
    ...
    await worker.stop()

Author: TrustGraph Team
Version: 1.0.0
"""

import asyncio
import logging
from typing import Optional

from trustgraph.errors import TrustGraphError


logger = logging.getLogger(__name__)


class HealthRecomputeWorker:
    """Periodic pass over the health recompute queue."""

    ERROR_BACKOFF_SECONDS = 5.0

    def __init__(self, service, interval_seconds: float, batch_size: Optional[int] = None):
        self.service = service
        self.interval_seconds = interval_seconds
        self.batch_size = batch_size
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Health recompute worker started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Health recompute worker stopped")

    async def run_once(self) -> int:
        result = await self.service.process_health_queue(self.batch_size)
        return len(result.recomputed)

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.run_once()
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break
            except TrustGraphError as e:
                logger.warning(f"Health recompute pass failed: {e.code}: {e.reason}")
                await asyncio.sleep(self.ERROR_BACKOFF_SECONDS)
