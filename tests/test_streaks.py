"""
Test streak bonuses, consecutive-completion rules and streak recording
on approval of recurring quests.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from chorequest.models import QuestStatus, QuestTemplate, QuestType
from chorequest.services.quest_instance_service import QuestInstanceService
from chorequest.services.streak_service import (
    StreakService, calculate_streak_bonus, is_consecutive_completion
)

from conftest import actor_for, make_quest


@pytest.mark.parametrize("count, bonus", [
    (0, "0.00"),
    (4, "0.00"),
    (5, "0.01"),
    (14, "0.02"),
    (25, "0.05"),
    (100, "0.05"),
])
def test_streak_bonus(count, bonus):
    assert calculate_streak_bonus(count) == Decimal(bonus)


def test_daily_consecutive_window():
    last = datetime(2026, 3, 10, 20, 0)
    assert is_consecutive_completion(None, "DAILY", last)
    assert is_consecutive_completion(last, "DAILY", last + timedelta(hours=2))
    assert is_consecutive_completion(last, "DAILY", datetime(2026, 3, 12, 9, 0))
    assert not is_consecutive_completion(last, "DAILY", datetime(2026, 3, 13, 9, 0))


def test_weekly_consecutive_window():
    last = datetime(2026, 3, 1, 12, 0)
    assert is_consecutive_completion(last, "WEEKLY", datetime(2026, 3, 8, 12, 0))
    assert not is_consecutive_completion(last, "WEEKLY", datetime(2026, 3, 9, 12, 0))


def test_custom_is_always_consecutive():
    assert is_consecutive_completion(datetime(2020, 1, 1), "CUSTOM", datetime(2026, 1, 1))


def test_calendar_days_follow_family_timezone():
    # Three calendar days apart in UTC, two in Los Angeles
    first = datetime(2026, 3, 10, 23, 30)
    second = datetime(2026, 3, 13, 4, 30)
    assert not is_consecutive_completion(first, "DAILY", second, "UTC")
    assert is_consecutive_completion(first, "DAILY", second, "America/Los_Angeles")


async def test_record_completion_extends_and_restarts(session, family):
    template = QuestTemplate(
        family_id=family.family.id, title="Brush teeth", recurrence_pattern="DAILY",
        assigned_character_ids=[family.hero_character.id],
    )
    session.add(template)
    await session.commit()

    service = StreakService(session)
    day = datetime(2026, 3, 1, 18, 0)
    for offset in range(3):
        streak = await service.record_completion(
            family.hero_character.id, template.id, "DAILY", day + timedelta(days=offset)
        )
    assert streak.current_streak == 3
    assert streak.longest_streak == 3

    streak = await service.record_completion(
        family.hero_character.id, template.id, "DAILY", day + timedelta(days=10)
    )
    assert streak.current_streak == 1
    assert streak.longest_streak == 3

    assert await service.reset_streak(family.hero_character.id, template.id) is True
    assert await service.reset_streak(family.hero_character.id, "no-such-template") is False


async def test_approval_records_streak_without_changing_rewards(session, family):
    template = QuestTemplate(
        family_id=family.family.id, title="Make bed", recurrence_pattern="DAILY",
        assigned_character_ids=[family.hero_character.id],
    )
    session.add(template)
    await session.commit()

    quest = await make_quest(
        session, family.family.id,
        title="Make bed",
        quest_type=QuestType.INDIVIDUAL.value,
        status=QuestStatus.COMPLETED.value,
        assigned_to_id=family.hero.id,
        template_id=template.id,
        recurrence_pattern="DAILY",
        gold_reward=10,
        completed_at=datetime(2026, 3, 1, 18, 0),
    )

    result = await QuestInstanceService(session).approve_quest(quest.id, actor_for(family.gm))

    assert result.streak["streak_count"] == 1
    assert result.streak["streak_bonus"] == Decimal("0.00")
    assert result.quest.streak_count == 1
    assert result.rewards.gold == 11
