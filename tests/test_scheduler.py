import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from digestbot.config import SchedulerConfig
from digestbot.core.scheduler import Scheduler
from digestbot.exceptions import ConfigurationError, StoreError
from digestbot.fetchers.groups import SourceGroup, SourceRegistry

from conftest import make_result


class FakePipeline:
    def __init__(self, group_ids, failing=(), cleanup_errors=0):
        self.registry = SourceRegistry([SourceGroup(group_id, group_id.title(), {}) for group_id in group_ids])
        self.failing = set(failing)
        self.cleanup_errors = cleanup_errors
        self.cleanups = []
        self.runs = []

    async def cleanup_old_articles(self, days=None):
        await asyncio.sleep(0)
        self.cleanups.append(days)
        if self.cleanup_errors:
            self.cleanup_errors -= 1
            raise StoreError("database is locked")
        return 3

    async def run_group(self, group_id, limit=None):
        self.runs.append(group_id)
        if group_id in self.failing:
            raise StoreError("database is locked")
        return [make_result(f"https://example.com/{group_id}/{i}", source_group=group_id) for i in range(2)]


class SteppingClock:
    """Every reading is two minutes later than the previous one."""
    def __init__(self):
        self.current = datetime(2024, 5, 10, 5, 0, tzinfo=timezone.utc)

    def __call__(self):
        self.current += timedelta(minutes=2)
        return self.current


@pytest.mark.asyncio
async def test_scheduled_task_cleans_up_then_runs_every_group() -> None:
    pipeline = FakePipeline(["frontend", "backend", "mobile"], failing=["backend"])
    scheduler = Scheduler(SchedulerConfig(retention_days=5), pipeline)

    total = await scheduler.run_scheduled_task()

    assert pipeline.cleanups == [5]
    assert pipeline.runs == ["frontend", "backend", "mobile"]
    assert total == 4


@pytest.mark.asyncio
async def test_disabled_scheduler_does_not_start() -> None:
    scheduler = Scheduler(SchedulerConfig(enabled=False), FakePipeline([]))

    scheduler.start()

    assert not scheduler.is_running


@pytest.mark.asyncio
async def test_invalid_cron_is_rejected() -> None:
    scheduler = Scheduler(SchedulerConfig(cron="every morning"), FakePipeline([]))

    with pytest.raises(ConfigurationError):
        scheduler.start()
    assert not scheduler.is_running


@pytest.mark.asyncio
async def test_start_and_stop() -> None:
    scheduler = Scheduler(SchedulerConfig(cron="0 6 * * *"), FakePipeline(["frontend"]))

    scheduler.start()
    assert scheduler.is_running
    scheduler.stop()
    assert not scheduler.is_running
    await asyncio.sleep(0)


def test_next_fire_time_follows_cron() -> None:
    now = datetime(2024, 5, 10, 7, 30, tzinfo=timezone.utc)
    scheduler = Scheduler(SchedulerConfig(cron="0 6 * * *"), FakePipeline([]), now=lambda: now)

    assert scheduler.next_fire_time() == datetime(2024, 5, 11, 6, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_failed_firing_keeps_schedule_alive() -> None:
    pipeline = FakePipeline(["frontend"], cleanup_errors=1)
    scheduler = Scheduler(SchedulerConfig(cron="* * * * *"), pipeline, now=SteppingClock())

    scheduler.start()
    for _ in range(100):
        await asyncio.sleep(0)
        if pipeline.runs:
            break
    assert scheduler.is_running
    scheduler.stop()
    await asyncio.sleep(0)

    assert len(pipeline.cleanups) >= 2
    assert pipeline.runs and pipeline.runs[0] == "frontend"


class ManualClock:
    def __init__(self, current):
        self.current = current

    def __call__(self):
        return self.current


@pytest.mark.asyncio
async def test_early_timer_wakeup_fires_each_slot_once(monkeypatch: pytest.MonkeyPatch) -> None:
    real_sleep = asyncio.sleep
    clock = ManualClock(datetime(2024, 5, 10, 5, 0, tzinfo=timezone.utc))

    async def early_sleep(delay):
        if delay > 0:
            clock.current += timedelta(seconds=delay) - timedelta(microseconds=500)
        await real_sleep(0)

    monkeypatch.setattr(asyncio, "sleep", early_sleep)

    class RecordingPipeline(FakePipeline):
        def __init__(self, group_ids):
            super().__init__(group_ids)
            self.fired_at = []

        async def cleanup_old_articles(self, days=None):
            self.fired_at.append(clock.current)
            return await super().cleanup_old_articles(days)

    pipeline = RecordingPipeline(["frontend"])
    scheduler = Scheduler(SchedulerConfig(cron="0 6 * * *"), pipeline, now=clock)

    scheduler.start()
    for _ in range(200):
        await real_sleep(0)
        if len(pipeline.fired_at) >= 3:
            break
    scheduler.stop()
    await real_sleep(0)

    days = [fired.date() for fired in pipeline.fired_at[:3]]
    assert days == [datetime(2024, 5, day).date() for day in (10, 11, 12)]
    first_day = [fired for fired in pipeline.fired_at if fired.date() == days[0]]
    assert len(first_day) == 1
