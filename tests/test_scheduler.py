"""
Test the in-process scheduler: task bookkeeping and error isolation.
"""

from datetime import timedelta

import pytest

from chorequest.models.base import utc_now
from chorequest.scheduler.task_scheduler import QuestScheduler, ScheduledTask


async def test_task_counts_runs_and_errors():
    calls = []

    async def succeed():
        calls.append("ok")

    async def fail():
        raise RuntimeError("boom")

    task = ScheduledTask("ok", succeed, interval_seconds=60, run_immediately=True)
    assert task.should_run()
    await task.run()
    assert task.run_count == 1
    assert task.last_run is not None
    assert not task.should_run()

    broken = ScheduledTask("broken", fail, interval_seconds=60, run_immediately=True)
    with pytest.raises(RuntimeError):
        await broken.run()
    assert broken.error_count == 1
    assert broken.last_error == "boom"
    assert broken.next_run > utc_now()


def test_task_waits_for_interval_by_default():
    task = ScheduledTask("later", None, interval_seconds=30)
    assert not task.should_run()
    assert task.should_run(utc_now() + timedelta(seconds=31))

    task.enabled = False
    assert not task.should_run(utc_now() + timedelta(seconds=31))


async def test_failing_task_does_not_stop_the_rest():
    scheduler = QuestScheduler(interval_seconds=300)
    order = []

    async def fail():
        order.append("fail")
        raise RuntimeError("database unavailable")

    async def succeed():
        order.append("succeed")

    scheduler.tasks.clear()
    scheduler.register_task("first", fail, run_immediately=True)
    scheduler.register_task("second", succeed, run_immediately=True)

    await scheduler.run_pending_tasks()

    assert order == ["fail", "succeed"]
    health = scheduler.health_check()
    assert health["running"] is False
    assert health["tasks"]["first"]["error_count"] == 1
    assert health["tasks"]["first"]["last_error"] == "database unavailable"
    assert health["tasks"]["second"]["run_count"] == 1


def test_default_jobs_are_registered():
    scheduler = QuestScheduler(interval_seconds=120)
    assert set(scheduler.tasks) == {"generate_quests", "expire_quests"}
    assert all(task.interval_seconds == 120 for task in scheduler.tasks.values())
