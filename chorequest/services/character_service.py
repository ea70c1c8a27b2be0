"""
Character read models: stats with level progress and transaction history,
plus the level backfill used by the admin CLI.
"""

import re
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

import structlog

from chorequest.auth.permissions import AuthenticatedUser, authorize
from chorequest.core.exceptions import CharacterNotFoundError
from chorequest.models.base import utc_now
from chorequest.models.character import Character
from chorequest.models.family import UserProfile
from chorequest.models.transaction import Transaction
from chorequest.services.reward_calculator import calculate_level_from_total_xp, get_level_progress
from chorequest.services.streak_service import StreakService, calculate_streak_bonus

logger = structlog.get_logger(__name__)

LEVEL_UP_PATTERN = re.compile(r"Level up: (\d+) → (\d+)\)")


def parse_level_up(description: Optional[str]) -> Optional[Dict[str, int]]:
    """Extract ``{previousLevel, newLevel}`` from a reward description."""
    if not description:
        return None
    match = LEVEL_UP_PATTERN.search(description)
    if not match:
        return None
    return {"previousLevel": int(match.group(1)), "newLevel": int(match.group(2))}


class CharacterService:
    """Read-only views over a character and its ledger."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(service="character_service")

    async def get_accessible_character(self, character_id: str, actor: AuthenticatedUser) -> Character:
        character = await self.db.get(Character, character_id)
        if not character:
            raise CharacterNotFoundError(character_id=character_id)

        family_id = (await self.db.execute(
            select(UserProfile.family_id).where(UserProfile.id == character.user_id)
        )).scalar_one_or_none()
        authorize(actor, family_id, action="view characters")
        return character

    async def get_stats(self, character_id: str, actor: AuthenticatedUser) -> Dict[str, Any]:
        character = await self.get_accessible_character(character_id, actor)
        streaks = await StreakService(self.db).get_character_streaks(character.id)

        return {
            "character": {
                "id": character.id,
                "name": character.name,
                "class": character.character_class,
                "level": character.level,
                "xp": character.xp,
                "gold": character.gold,
                "gems": character.gems,
                "honorPoints": character.honor_points,
                "activeFamilyQuestId": character.active_family_quest_id,
            },
            "levelProgress": get_level_progress(character.level, character.xp).to_dict(),
            "streaks": [
                {
                    "templateId": streak.template_id,
                    "currentStreak": streak.current_streak,
                    "longestStreak": streak.longest_streak,
                    "bonus": float(calculate_streak_bonus(streak.current_streak)),
                    "lastCompletedDate": (
                        streak.last_completed_date.isoformat() if streak.last_completed_date else None
                    ),
                }
                for streak in streaks
            ],
        }

    async def get_transactions(
        self,
        character_id: str,
        actor: AuthenticatedUser,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """Ledger rows for the character's user, newest first."""
        character = await self.get_accessible_character(character_id, actor)

        result = await self.db.execute(
            select(Transaction)
            .where(Transaction.user_id == character.user_id)
            .order_by(Transaction.created_at.desc())
            .limit(limit)
        )

        history = []
        for transaction in result.scalars().all():
            level_up = parse_level_up(transaction.description)
            history.append({
                "id": transaction.id,
                "type": transaction.type,
                "description": transaction.description,
                "questId": transaction.related_id,
                "goldChange": transaction.gold_change,
                "xpChange": transaction.xp_change,
                "gemsChange": transaction.gems_change,
                "honorPointsChange": transaction.honor_change,
                "metadata": {"levelUp": level_up} if level_up else None,
                "createdAt": transaction.created_at.isoformat() if transaction.created_at else None,
            })
        return history

    async def backfill_levels(self, dry_run: bool = False) -> List[Dict[str, Any]]:
        """
        Raise every character whose stored level lags its total XP.

        Levels are never lowered. Returns one entry per character that
        needed a change; with ``dry_run`` nothing is written.
        """
        result = await self.db.execute(select(Character).order_by(Character.created_at))

        changes = []
        for character in result.scalars().all():
            derived = calculate_level_from_total_xp(character.xp or 0)
            current = character.level or 1
            if derived <= current:
                continue

            changes.append({
                "characterId": character.id,
                "name": character.name,
                "xp": character.xp,
                "previousLevel": current,
                "newLevel": derived,
            })
            if not dry_run:
                await self.db.execute(
                    update(Character)
                    .where(Character.id == character.id, Character.level < derived)
                    .values(level=derived, updated_at=utc_now())
                    .execution_options(synchronize_session=False)
                )

        self.logger.info("Level backfill finished", updated=len(changes), dry_run=dry_run)
        return changes


async def get_character_service(db: AsyncSession) -> CharacterService:
    """Get character service instance."""
    return CharacterService(db)
