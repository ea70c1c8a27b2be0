"""
Streak tracking for recurring quests.

A streak counts consecutive approved completions of one recurring
template by one character. Streak bonuses are recorded on the quest
for display; they are not added to the granted rewards.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

import structlog

from chorequest.models.base import utc_now
from chorequest.models.character import CharacterQuestStreak
from chorequest.models.quest import RecurrencePattern
from chorequest.utils.timezone import days_between_in_timezone

logger = structlog.get_logger(__name__)

STREAK_BONUS_INCREMENT = Decimal("0.01")
STREAK_THRESHOLD_DAYS = 5
MAX_STREAK_BONUS = Decimal("0.05")


def calculate_streak_bonus(streak_count: int) -> Decimal:
    """+1% per full 5 streak days, capped at 5%."""
    if streak_count <= 0:
        return Decimal("0.00")
    thresholds = streak_count // STREAK_THRESHOLD_DAYS
    return min(thresholds * STREAK_BONUS_INCREMENT, MAX_STREAK_BONUS)


def is_consecutive_completion(
    last_completed: Optional[datetime],
    recurrence_pattern: Optional[str],
    completed_at: datetime,
    timezone: Optional[str] = "UTC",
) -> bool:
    """
    Whether a completion continues the streak.

    DAILY allows up to two calendar days between completions (same day,
    next day, or a timezone edge), WEEKLY allows anything under eight
    days, CUSTOM is always consecutive.
    """
    if last_completed is None:
        return True

    if recurrence_pattern == RecurrencePattern.DAILY.value:
        return days_between_in_timezone(last_completed, completed_at, timezone) <= 2
    if recurrence_pattern == RecurrencePattern.WEEKLY.value:
        return days_between_in_timezone(last_completed, completed_at, timezone) < 8
    return True


class StreakService:
    """Service for reading and updating character quest streaks."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(service="streak_service")

    async def get_streak(self, character_id: str, template_id: str) -> CharacterQuestStreak:
        """Get the streak row, creating an empty one on first use."""
        result = await self.db.execute(
            select(CharacterQuestStreak).where(
                CharacterQuestStreak.character_id == character_id,
                CharacterQuestStreak.template_id == template_id,
            )
        )
        streak = result.scalar_one_or_none()
        if streak:
            return streak

        streak = CharacterQuestStreak(
            character_id=character_id,
            template_id=template_id,
            current_streak=0,
            longest_streak=0,
        )
        self.db.add(streak)
        await self.db.flush()
        return streak

    async def get_character_streaks(self, character_id: str) -> List[CharacterQuestStreak]:
        result = await self.db.execute(
            select(CharacterQuestStreak)
            .where(CharacterQuestStreak.character_id == character_id)
            .order_by(CharacterQuestStreak.current_streak.desc())
        )
        return list(result.scalars().all())

    async def record_completion(
        self,
        character_id: str,
        template_id: str,
        recurrence_pattern: Optional[str],
        completed_at: Optional[datetime] = None,
        timezone: Optional[str] = "UTC",
    ) -> CharacterQuestStreak:
        """Extend the streak when consecutive, otherwise restart it at 1."""
        completed_at = completed_at or utc_now()
        streak = await self.get_streak(character_id, template_id)

        if is_consecutive_completion(
            streak.last_completed_date, recurrence_pattern, completed_at, timezone
        ):
            streak.current_streak = (streak.current_streak or 0) + 1
        else:
            self.logger.info(
                "Streak gap detected, restarting",
                character_id=character_id,
                template_id=template_id,
                previous_streak=streak.current_streak,
            )
            streak.current_streak = 1

        streak.longest_streak = max(streak.longest_streak or 0, streak.current_streak)
        streak.last_completed_date = completed_at
        await self.db.flush()

        self.logger.debug(
            "Streak updated",
            character_id=character_id,
            template_id=template_id,
            current_streak=streak.current_streak,
        )
        return streak

    async def reset_streak(self, character_id: str, template_id: str) -> bool:
        """Set the current streak to 0, keeping longest_streak. Returns True if a row changed."""
        result = await self.db.execute(
            update(CharacterQuestStreak)
            .where(
                CharacterQuestStreak.character_id == character_id,
                CharacterQuestStreak.template_id == template_id,
            )
            .values(current_streak=0)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0
