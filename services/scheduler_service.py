"""
Auto-sync Scheduler

Re-runs the availability sync for one property on a fixed interval. The
scheduler is a scoped resource: entering it starts the timer task and
leaving it cancels the task.

The scheduler does not prevent overlapping runs itself; a run that finds
the property's guard flag set comes back as ALREADY_SYNCING and the loop
carries on.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from .availability_sync_service import AvailabilitySyncService, SyncOutcome, SyncStatus

logger = logging.getLogger(__name__)


class AutoSyncScheduler:
    """
    Fixed-interval auto-sync for a single property.

    Usage:
        async with AutoSyncScheduler(service, oid, property_id, 3600) as scheduler:
            ...
    """

    def __init__(
        self,
        sync_service: AvailabilitySyncService,
        external_id: str,
        property_id: str,
        interval_seconds: float,
        enabled: bool = True,
        user_id: Optional[str] = None,
        max_iterations: Optional[int] = None
    ):
        if interval_seconds <= 0:
            raise ValueError(f"Interval must be positive: {interval_seconds}")

        self.sync_service = sync_service
        self.external_id = external_id
        self.property_id = property_id
        self.interval_seconds = interval_seconds
        self.enabled = enabled
        self.user_id = user_id
        self.max_iterations = max_iterations

        self.last_outcome: Optional[SyncOutcome] = None
        self.last_message: str = "Not synced yet"
        self.last_run_at: Optional[datetime] = None
        self.iterations = 0

        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Start the timer task (no-op when disabled or already running)"""
        if not self.enabled:
            logger.info(f"Auto-sync disabled for property {self.property_id}")
            return
        if self.is_running:
            return

        logger.info(f"Starting auto-sync for property {self.property_id} "
                    f"(interval: {self.interval_seconds}s)")
        self._task = asyncio.create_task(self._loop())

    async def stop(self):
        """Cancel the timer task and wait for it to finish"""
        task, self._task = self._task, None
        if task is None:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

        logger.info(f"Auto-sync stopped for property {self.property_id}")

    async def wait(self):
        """Wait for a bounded scheduler (max_iterations) to finish"""
        if self._task is not None:
            await self._task

    async def __aenter__(self) -> 'AutoSyncScheduler':
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.stop()

    async def run_iteration(self) -> SyncOutcome:
        """Run one sync and record its outcome"""
        outcome = await self.sync_service.run_once(self.external_id, self.property_id, self.user_id)

        self.last_outcome = outcome
        self.last_run_at = datetime.now(timezone.utc)
        stamp = self.last_run_at.strftime('%H:%M:%S')

        if outcome.status == SyncStatus.SUCCESS:
            self.last_message = f"OK ({stamp}). {outcome.message}"
        elif outcome.status == SyncStatus.ALREADY_SYNCING:
            self.last_message = f"Skipped ({stamp}). Sync already in progress"
        else:
            self.last_message = f"Error ({stamp}). {outcome.error}"
            logger.warning(f"Auto-sync for property {self.property_id} failed: {outcome.error}")

        return outcome

    def _remaining(self, started: float) -> float:
        """Seconds left in the current period; runs start on a fixed schedule"""
        elapsed = asyncio.get_running_loop().time() - started
        return max(0.0, self.interval_seconds - elapsed)

    async def _loop(self):
        loop = asyncio.get_running_loop()
        while self.max_iterations is None or self.iterations < self.max_iterations:
            started = loop.time()
            try:
                await self.run_iteration()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in auto-sync loop for property {self.property_id}: {e}")
                self.last_message = f"Error: {e}"

            self.iterations += 1
            if self.max_iterations is not None and self.iterations >= self.max_iterations:
                break

            await asyncio.sleep(self._remaining(started))
