"""Auto-sync scheduler lifecycle."""
import asyncio

import pytest

from services.availability_sync_service import SyncOutcome, SyncStatus
from services.scheduler_service import AutoSyncScheduler
from tests.conftest import FEED_ID, PROPERTY_ID


class FakeSyncService:
    def __init__(self, outcomes=None):
        self.outcomes = list(outcomes or [])
        self.calls = []

    async def run_once(self, external_id, property_id, user_id=None):
        self.calls.append((external_id, property_id, user_id))
        if self.outcomes:
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return SyncOutcome(SyncStatus.SUCCESS, property_id, message="Synced 1 units")


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        AutoSyncScheduler(FakeSyncService(), FEED_ID, PROPERTY_ID, 0)


@pytest.mark.asyncio
async def test_runs_immediately_then_on_interval():
    service = FakeSyncService()
    scheduler = AutoSyncScheduler(service, FEED_ID, PROPERTY_ID, 0.01, max_iterations=3)

    scheduler.start()
    await scheduler.wait()

    assert len(service.calls) == 3
    assert scheduler.iterations == 3
    assert not scheduler.is_running
    assert scheduler.last_message.startswith("OK (")


@pytest.mark.asyncio
async def test_leaving_the_context_cancels_the_timer():
    service = FakeSyncService()

    async with AutoSyncScheduler(service, FEED_ID, PROPERTY_ID, 60) as scheduler:
        while not service.calls:
            await asyncio.sleep(0)
        assert scheduler.is_running

    assert not scheduler.is_running
    assert len(service.calls) == 1

    await scheduler.stop()


@pytest.mark.asyncio
async def test_disabled_scheduler_never_runs():
    service = FakeSyncService()

    async with AutoSyncScheduler(service, FEED_ID, PROPERTY_ID, 0.01, enabled=False) as scheduler:
        await asyncio.sleep(0.05)
        assert not scheduler.is_running

    assert service.calls == []
    assert scheduler.last_message == "Not synced yet"


@pytest.mark.asyncio
async def test_failures_are_recorded_and_loop_continues():
    service = FakeSyncService([
        SyncOutcome(SyncStatus.FAILED, PROPERTY_ID, error="feed unreachable"),
        RuntimeError("store offline"),
        SyncOutcome(SyncStatus.ALREADY_SYNCING, PROPERTY_ID),
    ])
    scheduler = AutoSyncScheduler(service, FEED_ID, PROPERTY_ID, 0.01, max_iterations=3)

    messages = []
    original = scheduler.run_iteration

    async def recording_iteration():
        try:
            return await original()
        finally:
            messages.append(scheduler.last_message)

    scheduler.run_iteration = recording_iteration
    scheduler.start()
    await scheduler.wait()

    assert len(service.calls) == 3
    assert messages[0].startswith("Error (") and "feed unreachable" in messages[0]
    assert scheduler.last_outcome.status == SyncStatus.ALREADY_SYNCING
    assert scheduler.last_message.startswith("Skipped (")


class SlowSyncService(FakeSyncService):
    def __init__(self, duration):
        super().__init__()
        self.duration = duration
        self.started_at = []

    async def run_once(self, external_id, property_id, user_id=None):
        self.started_at.append(asyncio.get_running_loop().time())
        await asyncio.sleep(self.duration)
        return await super().run_once(external_id, property_id, user_id)


@pytest.mark.asyncio
async def test_run_time_does_not_stretch_the_period():
    service = SlowSyncService(duration=0.1)
    scheduler = AutoSyncScheduler(service, FEED_ID, PROPERTY_ID, 0.2, max_iterations=3)

    scheduler.start()
    await scheduler.wait()

    gaps = [b - a for a, b in zip(service.started_at, service.started_at[1:])]
    assert len(gaps) == 2
    assert all(0.18 <= gap < 0.28 for gap in gaps)


@pytest.mark.asyncio
async def test_overrunning_sync_starts_next_run_immediately():
    service = SlowSyncService(duration=0.15)
    scheduler = AutoSyncScheduler(service, FEED_ID, PROPERTY_ID, 0.05, max_iterations=2)

    scheduler.start()
    await scheduler.wait()

    gap = service.started_at[1] - service.started_at[0]
    assert 0.14 <= gap < 0.19
