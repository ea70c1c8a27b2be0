"""
Boss quest service: creation, joining, reopening and reward distribution.

Distribution walks every participant once, applies the Guild Master's
per-participant decision and is guarded by ``rewards_distributed`` so a
repeated completion call never credits anyone twice.
"""

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

import structlog

from chorequest.auth.permissions import AuthenticatedUser, authorize, require_guild_master
from chorequest.core.config import settings
from chorequest.core.exceptions import (
    BossBattleNotFoundError,
    CrossFamilyError,
    InvalidStateError,
    JoinWindowClosedError,
)
from chorequest.models.base import utc_now
from chorequest.models.boss_battle import (
    BossBattle, BossBattleParticipant, BossBattleStatus, ParticipationStatus
)
from chorequest.models.character import Character
from chorequest.models.transaction import Transaction, TransactionType
from chorequest.services.reward_calculator import (
    calculate_level_from_total_xp, floor_amount, get_class_bonus
)

logger = structlog.get_logger(__name__)

VALID_DECISIONS = frozenset(status.value for status in ParticipationStatus)


@dataclass(frozen=True)
class BossReward:
    """Gold/xp/honor granted to one participant."""
    gold: int = 0
    xp: int = 0
    honor: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"gold": self.gold, "xp": self.xp, "honor": self.honor}


@dataclass(frozen=True)
class ParticipantDecision:
    """Resolved decision for one participant, before class bonuses."""
    status: str
    reward: BossReward


def _decision_value(decision: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if decision.get(key) is not None:
            return decision[key]
    return None


def normalize_decisions(decisions: Optional[Iterable[Dict[str, Any]]]) -> Dict[str, Dict[str, Any]]:
    """
    Index decisions by user id, dropping entries with no user id or an
    unrecognised status. Later entries for the same user win.
    """
    indexed: Dict[str, Dict[str, Any]] = {}
    for decision in decisions or []:
        user_id = _decision_value(decision, "userId", "user_id")
        status = str(decision.get("status") or "").upper()
        if not user_id or status not in VALID_DECISIONS:
            continue
        indexed[user_id] = {**decision, "status": status}
    return indexed


def resolve_participant_decision(
    decision: Optional[Dict[str, Any]],
    base: BossReward,
) -> ParticipantDecision:
    """
    Effective status and reward for one participant.

    No decision means APPROVED at the full base reward. PARTIAL uses the
    supplied amounts (or the base amount when one is missing), floored
    and clamped at zero. DENIED always yields zero.
    """
    if not decision:
        return ParticipantDecision(ParticipationStatus.APPROVED.value, base)

    status = str(decision.get("status") or "").upper()
    if status not in VALID_DECISIONS:
        return ParticipantDecision(ParticipationStatus.APPROVED.value, base)

    if status == ParticipationStatus.DENIED.value:
        return ParticipantDecision(status, BossReward())

    if status == ParticipationStatus.PARTIAL.value:
        gold = _decision_value(decision, "gold")
        xp = _decision_value(decision, "xp")
        honor = _decision_value(decision, "honor")
        return ParticipantDecision(
            status,
            BossReward(
                gold=floor_amount(base.gold if gold is None else gold),
                xp=floor_amount(base.xp if xp is None else xp),
                honor=floor_amount(base.honor if honor is None else honor),
            ),
        )

    return ParticipantDecision(status, base)


def apply_class_bonus_if_approved(
    decision: ParticipantDecision,
    character_class: Optional[str],
) -> BossReward:
    """Class multipliers apply to APPROVED decisions only."""
    if decision.status != ParticipationStatus.APPROVED.value:
        return decision.reward

    bonus = get_class_bonus(character_class)
    return BossReward(
        gold=floor_amount(Decimal(decision.reward.gold) * bonus.gold),
        xp=floor_amount(Decimal(decision.reward.xp) * bonus.xp),
        honor=floor_amount(Decimal(decision.reward.honor) * bonus.honor),
    )


class BossQuestService:
    """Service for family boss battles."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(service="boss_quest_service")

    async def get_boss_battle(self, boss_battle_id: str, for_update: bool = False) -> BossBattle:
        query = (
            select(BossBattle)
            .options(selectinload(BossBattle.participants))
            .where(BossBattle.id == boss_battle_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()

        result = await self.db.execute(query)
        boss_battle = result.scalar_one_or_none()
        if not boss_battle:
            raise BossBattleNotFoundError(boss_battle_id)
        return boss_battle

    async def list_boss_battles(
        self,
        actor: AuthenticatedUser,
        status: Optional[BossBattleStatus] = None,
    ) -> List[BossBattle]:
        if actor.family_id is None:
            raise CrossFamilyError("view boss quests")

        query = (
            select(BossBattle)
            .options(selectinload(BossBattle.participants))
            .where(BossBattle.family_id == actor.family_id)
        )
        if status:
            query = query.where(BossBattle.status == status.value)

        result = await self.db.execute(query.order_by(BossBattle.created_at.desc()))
        return list(result.scalars().all())

    async def create_boss_battle(
        self,
        actor: AuthenticatedUser,
        name: str,
        description: str,
        reward_gold: int = 0,
        reward_xp: int = 0,
        join_window_minutes: Optional[int] = None,
    ) -> BossBattle:
        require_guild_master(actor, actor.family_id, "create boss quests")

        minutes = join_window_minutes or settings.default_boss_join_window_minutes
        now = utc_now()
        boss_battle = BossBattle(
            family_id=actor.family_id,
            name=name.strip(),
            description=description.strip(),
            reward_gold=reward_gold,
            reward_xp=reward_xp,
            honor_reward=settings.default_boss_honor_reward,
            status=BossBattleStatus.ACTIVE.value,
            join_window_minutes=minutes,
            join_window_expires_at=now + timedelta(minutes=minutes),
            start_date=now,
            created_by_id=actor.id,
            participants=[],
        )
        self.db.add(boss_battle)
        await self.db.flush()

        self.logger.info(
            "Boss quest created",
            boss_battle_id=boss_battle.id,
            family_id=actor.family_id,
            join_window_minutes=minutes,
        )
        return boss_battle

    async def join_boss_battle(
        self,
        boss_battle_id: str,
        actor: AuthenticatedUser,
    ) -> BossBattleParticipant:
        """Join while the window is open. Joining twice returns the existing row."""
        boss_battle = await self.get_boss_battle(boss_battle_id)
        authorize(actor, boss_battle.family_id, action="join boss quests")

        existing = await self._get_participant(boss_battle_id, actor.id)
        if existing:
            return existing

        if boss_battle.status != BossBattleStatus.ACTIVE.value:
            raise InvalidStateError(
                "Boss quest is not accepting new participants",
                {"boss_battle_id": boss_battle_id, "status": boss_battle.status}
            )
        if not boss_battle.is_join_open(utc_now()):
            self.logger.warning("Join window closed", boss_battle_id=boss_battle_id, user_id=actor.id)
            raise JoinWindowClosedError(boss_battle_id)

        participant = BossBattleParticipant(
            boss_battle_id=boss_battle_id,
            user_id=actor.id,
            joined_at=utc_now(),
        )
        try:
            async with self.db.begin_nested():
                self.db.add(participant)
        except IntegrityError:
            # Concurrent join from the same user
            self.logger.info("Participant already joined", boss_battle_id=boss_battle_id, user_id=actor.id)
            return await self._get_participant(boss_battle_id, actor.id)

        self.logger.info("Joined boss quest", boss_battle_id=boss_battle_id, user_id=actor.id)
        return participant

    async def _get_participant(self, boss_battle_id: str, user_id: str) -> Optional[BossBattleParticipant]:
        result = await self.db.execute(
            select(BossBattleParticipant).where(
                BossBattleParticipant.boss_battle_id == boss_battle_id,
                BossBattleParticipant.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def reopen_boss_battle(
        self,
        boss_battle_id: str,
        actor: AuthenticatedUser,
        minutes: Optional[int] = None,
    ) -> BossBattle:
        """Extend the join window by ``minutes`` from now and set the battle ACTIVE."""
        boss_battle = await self.get_boss_battle(boss_battle_id)
        require_guild_master(actor, boss_battle.family_id, "reopen boss quests")

        if not minutes or minutes <= 0:
            minutes = settings.reopen_default_minutes

        boss_battle.status = BossBattleStatus.ACTIVE.value
        boss_battle.join_window_expires_at = utc_now() + timedelta(minutes=minutes)
        await self.db.flush()

        self.logger.info(
            "Boss quest join window reopened",
            boss_battle_id=boss_battle_id,
            minutes=minutes,
            expires_at=boss_battle.join_window_expires_at.isoformat(),
        )
        return boss_battle

    async def complete_boss_battle(
        self,
        boss_battle_id: str,
        actor: AuthenticatedUser,
        decisions: Optional[Iterable[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """
        Distribute rewards to every participant and mark the battle DEFEATED.

        Returns a no-op success when rewards were already distributed.
        """
        boss_battle = await self.get_boss_battle(boss_battle_id, for_update=True)
        require_guild_master(actor, boss_battle.family_id, "complete boss quests")

        if boss_battle.rewards_distributed:
            self.logger.info("Boss quest already completed", boss_battle_id=boss_battle_id)
            return {
                "success": True,
                "noop": True,
                "alreadyCompleted": True,
                "message": "Boss quest already completed and rewards distributed",
            }

        decision_map = normalize_decisions(decisions)
        base = BossReward(
            gold=boss_battle.reward_gold or 0,
            xp=boss_battle.reward_xp or 0,
            honor=boss_battle.honor_reward or 0,
        )

        now = utc_now()
        seen = set()
        applied_rewards = []
        for participant in boss_battle.participants:
            if participant.user_id in seen:
                continue
            seen.add(participant.user_id)

            decision = resolve_participant_decision(decision_map.get(participant.user_id), base)
            character = await self._get_character_for_user(participant.user_id)
            reward = apply_class_bonus_if_approved(
                decision,
                character.character_class if character else None,
            )

            participant.participation_status = decision.status
            participant.awarded_gold = reward.gold
            participant.awarded_xp = reward.xp
            participant.honor_awarded = reward.honor
            participant.approved_at = now
            participant.approved_by = actor.id

            if character:
                new_total_xp = (character.xp or 0) + reward.xp
                new_level = max(character.level or 1, calculate_level_from_total_xp(new_total_xp))
                await self.db.execute(
                    update(Character)
                    .where(Character.id == character.id)
                    .values(
                        gold=Character.gold + reward.gold,
                        xp=Character.xp + reward.xp,
                        honor_points=Character.honor_points + reward.honor,
                        level=new_level,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
            else:
                self.logger.warning(
                    "Boss participant has no character, stats not updated",
                    boss_battle_id=boss_battle_id,
                    user_id=participant.user_id,
                )

            self.db.add(Transaction(
                user_id=participant.user_id,
                type=TransactionType.BOSS_VICTORY.value,
                gold_change=reward.gold,
                xp_change=reward.xp,
                gems_change=0,
                honor_change=reward.honor,
                description=f"Boss quest rewards ({decision.status})",
                related_id=boss_battle_id,
            ))

            applied_rewards.append({
                "participantId": participant.user_id,
                "status": decision.status,
                "rewards": reward.to_dict(),
            })

        boss_battle.status = BossBattleStatus.DEFEATED.value
        boss_battle.rewards_distributed = True
        boss_battle.defeated_at = now
        await self.db.flush()

        self.logger.info(
            "Boss quest completed",
            boss_battle_id=boss_battle_id,
            participants=len(applied_rewards),
            completed_by=actor.id,
        )

        return {
            "success": True,
            "participants": len(applied_rewards),
            "rewards": base.to_dict(),
            "appliedRewards": applied_rewards,
        }

    async def _get_character_for_user(self, user_id: str) -> Optional[Character]:
        result = await self.db.execute(
            select(Character)
            .where(Character.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()


async def get_boss_quest_service(db: AsyncSession) -> BossQuestService:
    """Get boss quest service instance."""
    return BossQuestService(db)
