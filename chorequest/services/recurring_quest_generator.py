"""
Recurring quest generation and expiration.

Both passes are driven by an external caller (cron endpoint or the
in-process scheduler) and are safe to re-run: generation skips cycles
that already have an instance and expiration only touches rows still in
an expirable status. Per-row failures are collected, not raised.
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from sqlalchemy.exc import SQLAlchemyError

import structlog

from chorequest.core.config import settings
from chorequest.models.base import utc_now
from chorequest.models.character import Character
from chorequest.models.family import Family
from chorequest.models.quest import (
    EXPIRABLE_STATUSES, QuestInstance, QuestStatus, QuestTemplate,
    QuestType, RecurrencePattern
)
from chorequest.services.streak_service import StreakService
from chorequest.utils.timezone import local_to_utc_naive, start_of_local_day, to_local

logger = structlog.get_logger(__name__)

ONE_MICROSECOND = timedelta(microseconds=1)


def calculate_cycle_dates(
    recurrence_pattern: Optional[str],
    week_start_day: int = 0,
    timezone: Optional[str] = "UTC",
    now: Optional[datetime] = None,
    test_interval_minutes: Optional[int] = None,
) -> Tuple[datetime, datetime]:
    """
    Current cycle boundaries as naive UTC datetimes.

    DAILY runs from local midnight to the next midnight minus one
    microsecond; WEEKLY starts on ``week_start_day`` (0=Sunday) in the
    family's timezone; CUSTOM uses DAILY. A positive
    ``test_interval_minutes`` replaces the calendar with fixed intervals
    aligned within the hour.
    """
    now = now or utc_now()

    if test_interval_minutes and test_interval_minutes > 0:
        interval = max(test_interval_minutes, 1)
        aligned = (now.minute // interval) * interval
        cycle_start = now.replace(minute=aligned, second=0, microsecond=0)
        return cycle_start, cycle_start + timedelta(minutes=interval) - ONE_MICROSECOND

    local_midnight = start_of_local_day(now, timezone)

    if recurrence_pattern == RecurrencePattern.WEEKLY.value:
        # Python weekday() is Monday=0; families count from Sunday=0
        day_of_week = (to_local(now, timezone).weekday() + 1) % 7
        days_since_week_start = (day_of_week - (week_start_day or 0)) % 7
        local_start = local_midnight - timedelta(days=days_since_week_start)
        local_end = local_start + timedelta(days=7)
    else:
        local_start = local_midnight
        local_end = local_midnight + timedelta(days=1)

    return (
        local_to_utc_naive(local_start, timezone),
        local_to_utc_naive(local_end, timezone) - ONE_MICROSECOND,
    )


class RecurringQuestGenerator:
    """Creates quest instances from recurring templates and expires overdue ones."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.clock = clock
        self.logger = logger.bind(service="recurring_quest_generator")

    # ============================================================================
    # GENERATION
    # ============================================================================

    async def generate(self) -> Dict[str, Any]:
        """Generate instances for every active, unpaused recurring template."""
        result: Dict[str, Any] = {
            "success": True,
            "generated": {"individual": 0, "family": 0, "total": 0},
            "errors": [],
        }

        try:
            templates = (await self.db.execute(
                select(QuestTemplate).where(
                    QuestTemplate.is_active.is_(True),
                    QuestTemplate.is_paused.is_(False),
                    QuestTemplate.recurrence_pattern.is_not(None),
                )
            )).scalars().all()
        except SQLAlchemyError as e:
            self.logger.error("Failed to fetch templates", error=str(e))
            result["success"] = False
            result["errors"].append(f"Failed to fetch templates: {e}")
            return result

        if not templates:
            self.logger.info("No active recurring quest templates found")
            return result

        families = await self._load_families({t.family_id for t in templates})
        now = self.clock()

        for template in templates:
            family = families.get(template.family_id)
            cycle_start, cycle_end = calculate_cycle_dates(
                template.recurrence_pattern,
                family.week_start_day if family else 0,
                family.timezone if family else "UTC",
                now,
                settings.recurring_test_interval_minutes,
            )

            if template.quest_type == QuestType.INDIVIDUAL.value:
                count = await self._generate_individual(template, cycle_start, cycle_end, result["errors"])
                result["generated"]["individual"] += count
            elif template.quest_type == QuestType.FAMILY.value:
                count = await self._generate_family(template, cycle_start, cycle_end, result["errors"])
                result["generated"]["family"] += count

        generated = result["generated"]
        generated["total"] = generated["individual"] + generated["family"]

        self.logger.info(
            "Recurring quest generation finished",
            templates=len(templates),
            individual=generated["individual"],
            family=generated["family"],
            errors=len(result["errors"]),
        )
        return result

    async def _load_families(self, family_ids) -> Dict[str, Family]:
        if not family_ids:
            return {}
        result = await self.db.execute(select(Family).where(Family.id.in_(family_ids)))
        return {family.id: family for family in result.scalars().all()}

    async def _instance_exists(
        self,
        template_id: str,
        cycle_start: datetime,
        cycle_end: datetime,
        assigned_to_id: Optional[str] = None,
    ) -> bool:
        query = select(func.count(QuestInstance.id)).where(
            QuestInstance.template_id == template_id,
            QuestInstance.cycle_start_date >= cycle_start,
            QuestInstance.cycle_start_date <= cycle_end,
        )
        if assigned_to_id:
            query = query.where(QuestInstance.assigned_to_id == assigned_to_id)

        return (await self.db.execute(query)).scalar_one() > 0

    def _build_instance(
        self,
        template: QuestTemplate,
        cycle_start: datetime,
        cycle_end: datetime,
        status: QuestStatus,
        assigned_to_id: Optional[str] = None,
    ) -> QuestInstance:
        return QuestInstance(
            family_id=template.family_id,
            template_id=template.id,
            recurrence_pattern=template.recurrence_pattern,
            title=template.title,
            description=template.description,
            quest_type=template.quest_type,
            category=template.category,
            difficulty=template.difficulty,
            xp_reward=template.xp_reward or 0,
            gold_reward=template.gold_reward or 0,
            created_by_id=template.created_by_id,
            assigned_to_id=assigned_to_id,
            status=status.value,
            cycle_start_date=cycle_start,
            cycle_end_date=cycle_end,
            due_date=cycle_end,
            streak_count=0,
        )

    async def _generate_individual(
        self,
        template: QuestTemplate,
        cycle_start: datetime,
        cycle_end: datetime,
        errors: List[str],
    ) -> int:
        character_ids = template.assigned_character_ids or []
        if not character_ids:
            errors.append(f"Template {template.id} has no assigned characters")
            return 0

        count = 0
        for character_id in character_ids:
            try:
                async with self.db.begin_nested():
                    character = await self.db.get(Character, character_id)
                    if not character or not character.user_id:
                        errors.append(f"Character {character_id} not found for template {template.id}")
                        continue

                    if await self._instance_exists(template.id, cycle_start, cycle_end, character.user_id):
                        self.logger.debug(
                            "Quest already exists for cycle",
                            template_id=template.id,
                            character_id=character_id,
                        )
                        continue

                    self.db.add(self._build_instance(
                        template, cycle_start, cycle_end, QuestStatus.PENDING, character.user_id
                    ))
                count += 1
            except Exception as e:
                self.logger.error(
                    "Failed to create individual quest",
                    template_id=template.id,
                    character_id=character_id,
                    error=str(e),
                )
                errors.append(f"Failed to create quest for character {character_id}: {e}")

        return count

    async def _generate_family(
        self,
        template: QuestTemplate,
        cycle_start: datetime,
        cycle_end: datetime,
        errors: List[str],
    ) -> int:
        try:
            async with self.db.begin_nested():
                if await self._instance_exists(template.id, cycle_start, cycle_end):
                    self.logger.debug("Family quest already exists for cycle", template_id=template.id)
                    return 0

                self.db.add(self._build_instance(
                    template, cycle_start, cycle_end, QuestStatus.AVAILABLE
                ))
            return 1
        except Exception as e:
            self.logger.error("Failed to create family quest", template_id=template.id, error=str(e))
            errors.append(f"Failed to create family quest for template {template.id}: {e}")
            return 0

    # ============================================================================
    # EXPIRATION
    # ============================================================================

    async def expire(self) -> Dict[str, Any]:
        """
        Close overdue quests.

        Recurring instances past their cycle become MISSED; one-off
        instances past their due date become EXPIRED. Missed INDIVIDUAL
        quests break the assignee's streak unless the template is paused.
        """
        result: Dict[str, Any] = {
            "success": True,
            "expired": {"individual": 0, "family": 0, "total": 0},
            "streaksBroken": 0,
            "errors": [],
        }
        now = self.clock()

        try:
            recurring = (await self.db.execute(
                select(QuestInstance).where(
                    QuestInstance.template_id.is_not(None),
                    QuestInstance.cycle_end_date < now,
                    QuestInstance.status.in_(EXPIRABLE_STATUSES),
                )
            )).scalars().all()
            one_off = (await self.db.execute(
                select(QuestInstance).where(
                    QuestInstance.template_id.is_(None),
                    QuestInstance.due_date < now,
                    QuestInstance.status.in_(EXPIRABLE_STATUSES),
                )
            )).scalars().all()
            paused_template_ids = await self._paused_template_ids({q.template_id for q in recurring})
        except SQLAlchemyError as e:
            self.logger.error("Failed to fetch expired quests", error=str(e))
            result["success"] = False
            result["errors"].append(f"Failed to fetch expired quests: {e}")
            return result

        for quest in recurring:
            await self._expire_one(quest, QuestStatus.MISSED, paused_template_ids, result)
        for quest in one_off:
            await self._expire_one(quest, QuestStatus.EXPIRED, paused_template_ids, result)

        expired = result["expired"]
        expired["total"] = expired["individual"] + expired["family"]

        self.logger.info(
            "Quest expiration finished",
            individual=expired["individual"],
            family=expired["family"],
            streaks_broken=result["streaksBroken"],
            errors=len(result["errors"]),
        )
        return result

    async def _paused_template_ids(self, template_ids) -> set:
        if not template_ids:
            return set()
        result = await self.db.execute(
            select(QuestTemplate.id).where(
                QuestTemplate.id.in_(template_ids),
                QuestTemplate.is_paused.is_(True),
            )
        )
        return set(result.scalars().all())

    async def _expire_one(
        self,
        quest: QuestInstance,
        new_status: QuestStatus,
        paused_template_ids: set,
        result: Dict[str, Any],
    ) -> None:
        quest_id = quest.id
        try:
            async with self.db.begin_nested():
                changed = await self.db.execute(
                    update(QuestInstance)
                    .where(
                        QuestInstance.id == quest_id,
                        QuestInstance.status.in_(EXPIRABLE_STATUSES),
                    )
                    .values(status=new_status.value, updated_at=utc_now())
                    .execution_options(synchronize_session=False)
                )
                if changed.rowcount == 0:
                    return

                if quest.quest_type == QuestType.FAMILY.value:
                    await self.db.execute(
                        update(Character)
                        .where(Character.active_family_quest_id == quest_id)
                        .values(active_family_quest_id=None, updated_at=utc_now())
                        .execution_options(synchronize_session=False)
                    )
                    result["expired"]["family"] += 1
                else:
                    result["expired"]["individual"] += 1
                    if await self._break_streak(quest, paused_template_ids):
                        result["streaksBroken"] += 1
        except Exception as e:
            self.logger.error("Failed to expire quest", quest_id=quest_id, error=str(e))
            result["errors"].append(f"Failed to expire quest {quest_id}: {e}")

    async def _break_streak(self, quest: QuestInstance, paused_template_ids: set) -> bool:
        if not quest.template_id or not quest.assigned_to_id:
            return False
        if quest.template_id in paused_template_ids:
            return False

        character_id = (await self.db.execute(
            select(Character.id).where(Character.user_id == quest.assigned_to_id)
        )).scalar_one_or_none()
        if not character_id:
            return False

        return await StreakService(self.db).reset_streak(character_id, quest.template_id)


async def get_recurring_quest_generator(db: AsyncSession) -> RecurringQuestGenerator:
    """Get recurring quest generator instance."""
    return RecurringQuestGenerator(db)
