"""Scan cycle runner — one pass over all targets, optionally forever."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

from certscan.config import Settings
from certscan.core.scheduler import ScanScheduler
from certscan.engine.targets import TargetLoader

logger = logging.getLogger(__name__)


@dataclass
class CycleStats:
    targets: int = 0
    duration: float = 0.0


class ScanRunner:
    """Drives the scheduler over every configured target.

    Shutdown is process-level: cancelling the task running :meth:`run`
    abandons in-flight probes.
    """

    def __init__(
        self,
        settings: Settings,
        scheduler: ScanScheduler,
        loader: TargetLoader | None = None,
    ):
        self.settings = settings
        self.scheduler = scheduler
        self.loader = loader or TargetLoader(settings)

    async def run_cycle(self) -> CycleStats:
        stats = CycleStats()
        start = time.monotonic()
        throttle = max(self.settings.scan.throttle_delay_ms, 0) / 1000.0
        async for target in self.loader.targets():
            logger.debug(
                "Scanning %s (%s) on ports %s (protocol: %s)",
                target.ip, target.hostname, target.sorted_ports(), target.protocol or "auto",
            )
            await self.scheduler.scan_target(target)
            stats.targets += 1
            if throttle:
                await asyncio.sleep(throttle)
        stats.duration = time.monotonic() - start
        return stats

    async def run(self, *, daemon: bool = False) -> None:
        while True:
            stats = await self.run_cycle()
            logger.info(
                "Scan cycle complete: %d targets in %.1fs", stats.targets, stats.duration,
            )
            if not daemon:
                return
            interval = max(self.settings.scan.interval_seconds, 1)
            logger.debug("Sleeping for %d seconds...", interval)
            await asyncio.sleep(interval)
