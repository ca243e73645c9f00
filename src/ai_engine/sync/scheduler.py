"""Periodic background sync."""

from __future__ import annotations

import asyncio
import contextlib

from ai_engine.config import SyncConfig
from ai_engine.obs.logging import get_logger
from ai_engine.sync.service import DataSyncService, SyncReport

logger = get_logger("ai_engine.sync.scheduler")


class SyncScheduler:
    """Runs `sync_all` for the configured organizations every interval."""

    def __init__(self, service: DataSyncService, config: SyncConfig) -> None:
        self.service = service
        self.config = config
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="ai-engine-sync")
        logger.info(
            "sync.scheduler_started",
            interval_seconds=self.config.interval_seconds,
            organizations=len(self.config.organizations),
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("sync.scheduler_stopped")

    async def run_once(self) -> dict[str, dict[str, SyncReport]]:
        results: dict[str, dict[str, SyncReport]] = {}
        for organization_id in self.config.organizations:
            results[organization_id] = await self.service.sync_all(organization_id)
        return results

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception:
                # One bad run must not stop later runs.
                logger.exception("sync.scheduled_run_failed")
            await asyncio.sleep(self.config.interval_seconds)
