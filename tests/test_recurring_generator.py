"""
Test cycle calculation, recurring quest generation and expiration.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from chorequest.models import (
    CharacterQuestStreak, QuestInstance, QuestStatus, QuestTemplate, QuestType
)
from chorequest.models.quest import EXPIRABLE_STATUSES, TERMINAL_STATUSES
from chorequest.services.recurring_quest_generator import (
    RecurringQuestGenerator, calculate_cycle_dates
)

from conftest import make_quest, reload

# Wednesday
NOW = datetime(2026, 3, 11, 15, 30)


def fixed_clock(now=NOW):
    return lambda: now


async def _template(session, family, **overrides):
    values = dict(
        family_id=family.family.id,
        title="Feed the cat",
        quest_type=QuestType.INDIVIDUAL.value,
        category="DAILY",
        difficulty="EASY",
        xp_reward=10,
        gold_reward=5,
        recurrence_pattern="DAILY",
        is_active=True,
        is_paused=False,
        assigned_character_ids=[family.hero_character.id, family.other_character.id],
        created_by_id=family.gm.id,
    )
    values.update(overrides)
    template = QuestTemplate(**values)
    session.add(template)
    await session.commit()
    return template


def test_daily_cycle_in_utc():
    start, end = calculate_cycle_dates("DAILY", now=NOW)
    assert start == datetime(2026, 3, 11)
    assert end == datetime(2026, 3, 11, 23, 59, 59, 999999)


def test_daily_cycle_in_family_timezone():
    # 15:30 UTC is 11:30 in New York (EDT, UTC-4)
    start, end = calculate_cycle_dates("DAILY", timezone="America/New_York", now=NOW)
    assert start == datetime(2026, 3, 11, 4)
    assert end == datetime(2026, 3, 12, 3, 59, 59, 999999)


def test_weekly_cycle_respects_week_start():
    sunday_start, sunday_end = calculate_cycle_dates("WEEKLY", week_start_day=0, now=NOW)
    assert sunday_start == datetime(2026, 3, 8)
    assert sunday_end == datetime(2026, 3, 14, 23, 59, 59, 999999)

    monday_start, _ = calculate_cycle_dates("WEEKLY", week_start_day=1, now=NOW)
    assert monday_start == datetime(2026, 3, 9)


def test_custom_pattern_uses_daily_cycle():
    assert calculate_cycle_dates("CUSTOM", now=NOW) == calculate_cycle_dates("DAILY", now=NOW)


def test_test_interval_cycles():
    start, end = calculate_cycle_dates("DAILY", now=NOW, test_interval_minutes=20)
    assert start == datetime(2026, 3, 11, 15, 20)
    assert end == datetime(2026, 3, 11, 15, 39, 59, 999999)


def test_expirable_and_terminal_statuses_do_not_overlap():
    assert EXPIRABLE_STATUSES.isdisjoint(TERMINAL_STATUSES)
    # awaiting approval: neither expired nor settled
    assert QuestStatus.COMPLETED.value not in EXPIRABLE_STATUSES
    assert QuestStatus.COMPLETED.value not in TERMINAL_STATUSES
    assert EXPIRABLE_STATUSES | TERMINAL_STATUSES | {QuestStatus.COMPLETED.value} == {s.value for s in QuestStatus}


async def test_generates_individual_and_family_quests(session, family):
    await _template(session, family)
    await _template(
        session, family,
        title="Mow the lawn",
        quest_type=QuestType.FAMILY.value,
        recurrence_pattern="WEEKLY",
        assigned_character_ids=[],
    )

    result = await RecurringQuestGenerator(session, clock=fixed_clock()).generate()

    assert result["success"] is True
    assert result["generated"] == {"individual": 2, "family": 1, "total": 3}
    assert result["errors"] == []

    quests = (await session.execute(select(QuestInstance))).scalars().all()
    individual = [q for q in quests if q.quest_type == QuestType.INDIVIDUAL.value]
    family_quests = [q for q in quests if q.quest_type == QuestType.FAMILY.value]

    assert {q.assigned_to_id for q in individual} == {family.hero.id, family.other_hero.id}
    assert all(q.status == QuestStatus.PENDING.value for q in individual)
    assert all(q.due_date == q.cycle_end_date for q in individual)
    assert family_quests[0].status == QuestStatus.AVAILABLE.value
    assert family_quests[0].assigned_to_id is None
    assert family_quests[0].cycle_start_date == datetime(2026, 3, 8)


async def test_generation_is_idempotent_within_a_cycle(session, family):
    await _template(session, family)
    generator = RecurringQuestGenerator(session, clock=fixed_clock())

    await generator.generate()
    second = await generator.generate()

    assert second["generated"]["total"] == 0
    quests = (await session.execute(select(QuestInstance))).scalars().all()
    assert len(quests) == 2

    next_day = await RecurringQuestGenerator(
        session, clock=fixed_clock(NOW + timedelta(days=1))
    ).generate()
    assert next_day["generated"]["individual"] == 2


async def test_paused_and_inactive_templates_are_skipped(session, family):
    await _template(session, family, is_paused=True)
    await _template(session, family, is_active=False)
    await _template(session, family, recurrence_pattern=None)

    result = await RecurringQuestGenerator(session, clock=fixed_clock()).generate()

    assert result["generated"]["total"] == 0


async def test_individual_template_without_characters_reports_error(session, family):
    template = await _template(session, family, assigned_character_ids=[])

    result = await RecurringQuestGenerator(session, clock=fixed_clock()).generate()

    assert result["success"] is True
    assert result["errors"] == [f"Template {template.id} has no assigned characters"]


async def test_unknown_character_is_reported_and_others_still_generate(session, family):
    await _template(session, family, assigned_character_ids=["ghost", family.hero_character.id])

    result = await RecurringQuestGenerator(session, clock=fixed_clock()).generate()

    assert result["generated"]["individual"] == 1
    assert len(result["errors"]) == 1
    assert "ghost" in result["errors"][0]


async def test_expire_marks_missed_and_expired(session, family):
    template = await _template(session, family)
    yesterday_start = datetime(2026, 3, 10)
    yesterday_end = datetime(2026, 3, 10, 23, 59, 59, 999999)

    missed = await make_quest(
        session, family.family.id,
        quest_type=QuestType.INDIVIDUAL.value,
        status=QuestStatus.PENDING.value,
        assigned_to_id=family.hero.id,
        template_id=template.id,
        recurrence_pattern="DAILY",
        cycle_start_date=yesterday_start,
        cycle_end_date=yesterday_end,
        due_date=yesterday_end,
    )
    overdue = await make_quest(
        session, family.family.id,
        status=QuestStatus.CLAIMED.value,
        assigned_to_id=family.hero.id,
        volunteered_by=family.hero_character.id,
        due_date=NOW - timedelta(hours=1),
    )
    finished = await make_quest(
        session, family.family.id,
        quest_type=QuestType.INDIVIDUAL.value,
        status=QuestStatus.COMPLETED.value,
        assigned_to_id=family.other_hero.id,
        due_date=NOW - timedelta(hours=1),
    )
    current = await make_quest(
        session, family.family.id,
        due_date=NOW + timedelta(hours=1),
    )
    family.hero_character.active_family_quest_id = overdue.id
    session.add(CharacterQuestStreak(
        character_id=family.hero_character.id,
        template_id=template.id,
        current_streak=4,
        longest_streak=6,
    ))
    await session.commit()

    result = await RecurringQuestGenerator(session, clock=fixed_clock()).expire()

    assert result["success"] is True
    assert result["expired"] == {"individual": 1, "family": 1, "total": 2}
    assert result["streaksBroken"] == 1

    assert (await reload(session, QuestInstance, missed.id)).status == QuestStatus.MISSED.value
    assert (await reload(session, QuestInstance, overdue.id)).status == QuestStatus.EXPIRED.value
    assert (await reload(session, QuestInstance, finished.id)).status == QuestStatus.COMPLETED.value
    assert (await reload(session, QuestInstance, current.id)).status == QuestStatus.AVAILABLE.value

    await session.refresh(family.hero_character)
    assert family.hero_character.active_family_quest_id is None

    streak = (await session.execute(select(CharacterQuestStreak))).scalar_one()
    assert streak.current_streak == 0
    assert streak.longest_streak == 6

    rerun = await RecurringQuestGenerator(session, clock=fixed_clock()).expire()
    assert rerun["expired"]["total"] == 0


async def test_paused_template_keeps_streak_on_miss(session, family):
    template = await _template(session, family, is_paused=True)
    await make_quest(
        session, family.family.id,
        quest_type=QuestType.INDIVIDUAL.value,
        status=QuestStatus.PENDING.value,
        assigned_to_id=family.hero.id,
        template_id=template.id,
        cycle_start_date=datetime(2026, 3, 10),
        cycle_end_date=datetime(2026, 3, 10, 23, 59, 59),
    )
    session.add(CharacterQuestStreak(
        character_id=family.hero_character.id,
        template_id=template.id,
        current_streak=3,
        longest_streak=3,
    ))
    await session.commit()

    result = await RecurringQuestGenerator(session, clock=fixed_clock()).expire()

    assert result["expired"]["individual"] == 1
    assert result["streaksBroken"] == 0
    streak = (await session.execute(select(CharacterQuestStreak))).scalar_one()
    await session.refresh(streak)
    assert streak.current_streak == 3
