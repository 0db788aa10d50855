"""
Cron-driven scheduling of pipeline runs.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from croniter import croniter

from digestbot.config import SchedulerConfig
from digestbot.core.pipeline import Pipeline
from digestbot.exceptions import ConfigurationError

# Configure logging
logger = logging.getLogger(__name__)


class Scheduler:
    """
    Fires the scheduled task on a 5-field cron expression, evaluated in UTC.

    A failing firing is logged and the schedule stays active.
    """
    def __init__(self, config: SchedulerConfig, pipeline: Pipeline,
                 now: Optional[Callable[[], datetime]] = None):
        self.config = config
        self.pipeline = pipeline
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def next_fire_time(self) -> datetime:
        return croniter(self.config.cron, self._now()).get_next(datetime)

    def start(self) -> None:
        """
        Register the recurring trigger. Must be called from a running event loop.

        Raises:
            ConfigurationError: If the cron expression is invalid
        """
        if not self.config.enabled:
            logger.warning("Scheduler is disabled")
            return
        if self.is_running:
            logger.warning("Scheduler is already running")
            return
        if not croniter.is_valid(self.config.cron):
            raise ConfigurationError(f"Invalid cron expression: {self.config.cron!r}")

        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.info(f"Scheduler started with schedule '{self.config.cron}'")

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.info("Scheduler stopped")

    async def _loop(self) -> None:
        # One iterator for the whole loop so every slot fires exactly once,
        # even when the timer wakes slightly before the slot
        schedule = croniter(self.config.cron, self._now())
        while True:
            next_fire = schedule.get_next(datetime)
            delay = (next_fire - self._now()).total_seconds()
            logger.info(f"Next scheduled run at {next_fire.isoformat()}")
            if delay > 0:
                await asyncio.sleep(delay)

            logger.info("Running scheduled task: fetch articles and cleanup")
            try:
                await self.run_scheduled_task()
            except Exception as e:
                logger.error(f"Error in scheduled task: {e}")

    async def run_scheduled_task(self) -> int:
        """
        Purge old articles, then run every enabled source group.

        A failing group is logged and the remaining groups still run.

        Returns:
            Total number of digests produced across groups
        """
        deleted = await self.pipeline.cleanup_old_articles(self.config.retention_days)
        logger.info(f"Cleaned up {deleted} old articles during scheduled task")

        total = 0
        for group in self.pipeline.registry.enabled_groups():
            logger.info(f"Processing source group: {group.name}")
            try:
                results = await self.pipeline.run_group(group.id)
            except Exception as e:
                logger.error(f"Error processing source group {group.name}: {e}")
                continue
            total += len(results)
            logger.info(f"Completed processing source group {group.name}: {len(results)} articles processed")

        logger.info(f"Scheduled task completed: {total} new articles processed across all source groups")
        return total
