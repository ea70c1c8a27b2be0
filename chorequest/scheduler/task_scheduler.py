"""
In-process scheduler for recurring quest generation and expiration.

An alternative to the cron endpoints for single-node deployments:
both jobs run every ``scheduler_interval_seconds``, each in its own
database transaction.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog

from chorequest.core.config import settings
from chorequest.core.database import get_async_session
from chorequest.models.base import utc_now
from chorequest.services.recurring_quest_generator import RecurringQuestGenerator

logger = structlog.get_logger(__name__)


class ScheduledTask:
    """Represents a scheduled task."""

    def __init__(
        self,
        name: str,
        func: Callable[[], Awaitable[Any]],
        interval_seconds: int,
        enabled: bool = True,
        run_immediately: bool = False
    ):
        self.name = name
        self.func = func
        self.interval_seconds = interval_seconds
        self.enabled = enabled
        self.last_run: Optional[datetime] = None
        self.next_run = utc_now()
        self.run_count = 0
        self.error_count = 0
        self.last_error: Optional[str] = None

        if not run_immediately:
            self.next_run = utc_now() + timedelta(seconds=interval_seconds)

    def should_run(self, now: Optional[datetime] = None) -> bool:
        """Check if task should run now."""
        return self.enabled and (now or utc_now()) >= self.next_run

    def schedule_next_run(self):
        self.next_run = utc_now() + timedelta(seconds=self.interval_seconds)

    async def run(self):
        """Execute the task. Failures are counted and re-raised."""
        try:
            logger.debug(f"Running scheduled task: {self.name}")

            start_time = utc_now()
            await self.func()
            duration = (utc_now() - start_time).total_seconds()

            self.last_run = start_time
            self.run_count += 1
            self.schedule_next_run()

            logger.debug(
                f"Task completed: {self.name}",
                duration=duration,
                run_count=self.run_count
            )

        except Exception as e:
            self.error_count += 1
            self.last_error = str(e)
            self.schedule_next_run()  # Still schedule next run

            logger.error(
                f"Task failed: {self.name}",
                error=str(e),
                error_count=self.error_count
            )
            raise


class QuestScheduler:
    """Runs quest generation and expiration on a fixed interval."""

    def __init__(self, interval_seconds: Optional[int] = None, loop_interval: int = 10):
        self.interval_seconds = interval_seconds or settings.scheduler_interval_seconds
        self.tasks: Dict[str, ScheduledTask] = {}
        self.running = False
        self.loop_interval = loop_interval
        self._loop_task: Optional[asyncio.Task] = None

        self.register_task("generate_quests", generate_recurring_quests, run_immediately=True)
        self.register_task("expire_quests", expire_overdue_quests, run_immediately=True)

    def register_task(
        self,
        name: str,
        func: Callable[[], Awaitable[Any]],
        interval_seconds: Optional[int] = None,
        enabled: bool = True,
        run_immediately: bool = False
    ):
        """Register a new scheduled task."""
        interval = interval_seconds or self.interval_seconds
        self.tasks[name] = ScheduledTask(
            name=name,
            func=func,
            interval_seconds=interval,
            enabled=enabled,
            run_immediately=run_immediately
        )
        logger.info(f"Registered task: {name} (interval: {interval}s)")

    async def start(self):
        """Start the loop in the background."""
        if self._loop_task and not self._loop_task.done():
            return
        logger.info("Starting quest scheduler", interval_seconds=self.interval_seconds)
        self.running = True
        self._loop_task = asyncio.create_task(self._run_loop())

    async def stop(self):
        """Stop the loop and wait for it to exit."""
        logger.info("Stopping quest scheduler")
        self.running = False
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

    async def _run_loop(self):
        while self.running:
            try:
                await self.run_pending_tasks()
                await asyncio.sleep(self.loop_interval)

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Quest scheduler loop error", error=str(e))
                await asyncio.sleep(self.loop_interval)

        logger.info("Quest scheduler stopped")

    async def run_pending_tasks(self):
        """Run due tasks in registration order."""
        for task in list(self.tasks.values()):
            if not task.should_run():
                continue
            try:
                await task.run()
            except Exception:
                # Already logged and counted by the task
                continue

    def health_check(self) -> Dict[str, Any]:
        """Get health status of the scheduler."""
        return {
            "running": self.running,
            "tasks": {
                name: {
                    "enabled": task.enabled,
                    "last_run": task.last_run.isoformat() if task.last_run else None,
                    "next_run": task.next_run.isoformat(),
                    "run_count": task.run_count,
                    "error_count": task.error_count,
                    "last_error": task.last_error
                }
                for name, task in self.tasks.items()
            },
        }


async def generate_recurring_quests() -> Dict[str, Any]:
    async with get_async_session() as session:
        result = await RecurringQuestGenerator(session).generate()
    logger.info("Scheduled generation finished", **result["generated"], errors=len(result["errors"]))
    return result


async def expire_overdue_quests() -> Dict[str, Any]:
    async with get_async_session() as session:
        result = await RecurringQuestGenerator(session).expire()
    logger.info(
        "Scheduled expiration finished",
        **result["expired"],
        streaks_broken=result["streaksBroken"],
        errors=len(result["errors"]),
    )
    return result


# Global scheduler instance
_quest_scheduler: Optional[QuestScheduler] = None


def get_quest_scheduler() -> QuestScheduler:
    """Get or create the global quest scheduler."""
    global _quest_scheduler
    if _quest_scheduler is None:
        _quest_scheduler = QuestScheduler()
    return _quest_scheduler


async def shutdown_quest_scheduler():
    global _quest_scheduler
    if _quest_scheduler:
        await _quest_scheduler.stop()
        _quest_scheduler = None
