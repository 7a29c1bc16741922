"""Periodic stats broadcast.

Created: 2026-02-14

Every ``stats_interval_seconds`` the aggregator counts working agents and
queued mission documents and pushes a ``stats:update``. A viewer that
missed individual events (e.g. reconnected) converges within one tick.
"""

import asyncio
import logging
from typing import Any

from missionsync.config import Settings
from missionsync.hub import BroadcastHub
from missionsync.liveness import LivenessProbe
from missionsync.models import EventType, now_iso

logger = logging.getLogger(__name__)


class PeriodicAggregator:
    """Timer-driven stats snapshot publisher."""

    def __init__(self, settings: Settings, hub: BroadcastHub, probe: LivenessProbe):
        self.settings = settings
        self._hub = hub
        self._probe = probe
        self._task: asyncio.Task | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def count_queued(self) -> int:
        """Number of mission documents in the active area."""
        try:
            return sum(1 for p in self.settings.active_path.glob("*.md") if p.is_file())
        except OSError as e:
            logger.error("Error counting missions: %s", e)
            return 0

    def compute(self, now: float | None = None) -> dict[str, Any]:
        working, total = self._probe.count_working(now)
        return {
            "activeAgents": working,
            "totalAgents": total,
            "queuedMissions": self.count_queued(),
            "timestamp": now_iso(),
        }

    async def tick(self) -> dict[str, Any]:
        """Compute and publish one snapshot."""
        stats = self.compute()
        await self._hub.broadcast(EventType.STATS_UPDATE, stats)
        return stats

    async def start(self) -> None:
        if self._task:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Stats aggregator started (every %.0fs)", self.settings.stats_interval_seconds)

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Stats aggregator stopped")

    async def _loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.settings.stats_interval_seconds)
            try:
                await self.tick()
            except Exception as e:
                logger.error("Stats tick failed: %s", e)
