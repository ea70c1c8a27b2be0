"""
Quest instance lifecycle service.

Drives quest instances through claim, release, assign, completion,
approval, denial and cancellation. Status transitions are written as
conditional UPDATEs (compare-and-swap on status) so that concurrent
requests cannot both win the same transition.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete
from sqlalchemy.exc import SQLAlchemyError

import structlog

from chorequest.auth.permissions import AuthenticatedUser, authorize, require_guild_master
from chorequest.core.config import settings
from chorequest.core.exceptions import (
    AntiHoardingError,
    AuthorizationError,
    CharacterNotFoundError,
    CompensationFailedError,
    CrossFamilyError,
    FamilyQuestRequiredError,
    InvalidStateError,
    QuestNotAvailableError,
    QuestNotFoundError,
    ReleaseNotAllowedError,
    UserNotFoundError,
    ValidationError,
)
from chorequest.models.base import utc_now
from chorequest.models.character import Character
from chorequest.models.family import Family, UserProfile
from chorequest.models.quest import (
    QuestCategory, QuestDifficulty, QuestInstance, QuestStatus, QuestType, QuestTemplate,
    TERMINAL_STATUSES,
)
from chorequest.models.transaction import Transaction, TransactionType
from chorequest.services.reward_calculator import (
    BaseRewards, LevelUp, QuestRewards, calculate_level_up, calculate_quest_rewards
)
from chorequest.services.streak_service import StreakService, calculate_streak_bonus

logger = structlog.get_logger(__name__)

COMPLETED_LABEL = "Completed"

# Hero-driven status changes: target status -> statuses it may come from
HERO_TRANSITIONS = {
    QuestStatus.IN_PROGRESS.value: (QuestStatus.PENDING.value, QuestStatus.CLAIMED.value),
    QuestStatus.COMPLETED.value: (
        QuestStatus.PENDING.value,
        QuestStatus.CLAIMED.value,
        QuestStatus.IN_PROGRESS.value,
    ),
}


def build_reward_description(title: str, level_up: Optional[LevelUp] = None) -> str:
    """Ledger description for a quest reward, with level-up info when it happened."""
    description = f"{COMPLETED_LABEL}: {title}"
    if level_up:
        description += f" (Level up: {level_up.previous_level} → {level_up.new_level})"
    return description


@dataclass
class ApprovalResult:
    """Outcome of approving a quest."""
    quest: QuestInstance
    rewards: Optional[QuestRewards] = None
    level_up: Optional[LevelUp] = None
    new_level: Optional[int] = None
    transaction: Optional[Transaction] = None
    noop: bool = False
    streak: Dict[str, Any] = field(default_factory=dict)

    @property
    def leveled_up(self) -> bool:
        return self.level_up is not None


class QuestInstanceService:
    """Service for the quest instance lifecycle."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(service="quest_instance_service")

    # ============================================================================
    # LOOKUPS
    # ============================================================================

    async def get_quest(self, quest_id: str) -> QuestInstance:
        quest = await self.db.get(QuestInstance, quest_id)
        if not quest:
            raise QuestNotFoundError(quest_id)
        return quest

    async def get_character(self, character_id: str) -> Character:
        character = await self.db.get(Character, character_id)
        if not character:
            raise CharacterNotFoundError(character_id=character_id)
        return character

    async def get_character_for_user(self, user_id: str) -> Optional[Character]:
        result = await self.db.execute(
            select(Character).where(Character.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def _get_character_family_id(self, character: Character) -> Optional[str]:
        result = await self.db.execute(
            select(UserProfile.family_id).where(UserProfile.id == character.user_id)
        )
        return result.scalar_one_or_none()

    async def get_quest_for_actor(self, quest_id: str, actor: AuthenticatedUser) -> QuestInstance:
        quest = await self.get_quest(quest_id)
        authorize(actor, quest.family_id, action="view quests")
        return quest

    async def list_quests(
        self,
        actor: AuthenticatedUser,
        status: Optional[QuestStatus] = None,
        assigned_to_id: Optional[str] = None,
        quest_type: Optional[QuestType] = None,
    ) -> List[QuestInstance]:
        """List the actor's family quests, newest first."""
        if actor.family_id is None:
            raise CrossFamilyError("view quests")

        query = select(QuestInstance).where(QuestInstance.family_id == actor.family_id)
        if status:
            query = query.where(QuestInstance.status == status.value)
        if assigned_to_id:
            query = query.where(QuestInstance.assigned_to_id == assigned_to_id)
        if quest_type:
            query = query.where(QuestInstance.quest_type == quest_type.value)

        result = await self.db.execute(query.order_by(QuestInstance.created_at.desc()))
        return list(result.scalars().all())

    # ============================================================================
    # CREATION
    # ============================================================================

    async def create_quest(self, actor: AuthenticatedUser, data: Dict[str, Any]) -> QuestInstance:
        """Create an ad-hoc quest instance (Guild Master only)."""
        require_guild_master(actor, actor.family_id, "create quests")

        quest_type = data.get("quest_type") or QuestType.INDIVIDUAL.value
        assigned_to_id = data.get("assigned_to_id")

        if quest_type == QuestType.FAMILY.value:
            if assigned_to_id:
                raise ValidationError(
                    "FAMILY quests start unassigned; heroes claim them",
                    {"assigned_to_id": assigned_to_id}
                )
            status = QuestStatus.AVAILABLE.value
        else:
            if not assigned_to_id:
                raise ValidationError("INDIVIDUAL quests require an assignee")
            assignee = await self.db.get(UserProfile, assigned_to_id)
            if not assignee:
                raise UserNotFoundError(assigned_to_id)
            if assignee.family_id != actor.family_id:
                raise CrossFamilyError("assign quests")
            status = QuestStatus.PENDING.value

        quest = QuestInstance(
            family_id=actor.family_id,
            title=data["title"],
            description=data.get("description"),
            quest_type=quest_type,
            category=data.get("category") or QuestCategory.DAILY.value,
            difficulty=data.get("difficulty") or QuestDifficulty.EASY.value,
            xp_reward=data.get("xp_reward") or 0,
            gold_reward=data.get("gold_reward") or 0,
            gems_reward=data.get("gems_reward") or 0,
            honor_reward=data.get("honor_reward") or 0,
            due_date=data.get("due_date"),
            assigned_to_id=assigned_to_id if status == QuestStatus.PENDING.value else None,
            status=status,
            created_by_id=actor.id,
        )
        self.db.add(quest)
        await self.db.flush()

        self.logger.info(
            "Quest created",
            quest_id=quest.id,
            quest_type=quest_type,
            family_id=actor.family_id,
            created_by=actor.id,
        )
        return quest

    # ============================================================================
    # CLAIM / ASSIGN / RELEASE
    # ============================================================================

    async def claim_quest(
        self,
        quest_id: str,
        character_id: str,
        actor: AuthenticatedUser,
    ) -> QuestInstance:
        """
        Hero self-claims an AVAILABLE FAMILY quest.

        Records a volunteer bonus multiplier on the quest and points the
        character's active_family_quest_id at it.
        """
        quest = await self.get_quest(quest_id)
        character = await self.get_character(character_id)

        authorize(actor, quest.family_id, action="claim quests")
        if character.user_id != actor.id:
            raise AuthorizationError(
                "You can only claim quests for your own characters",
                {"character_id": character_id}
            )

        return await self._take_quest(
            quest,
            character,
            volunteered_by=character.id,
            volunteer_bonus=Decimal(str(settings.volunteer_bonus)),
            action="claimed",
        )

    async def assign_quest(
        self,
        quest_id: str,
        character_id: str,
        actor: AuthenticatedUser,
    ) -> QuestInstance:
        """Guild Master assigns an AVAILABLE FAMILY quest to a hero (no volunteer bonus)."""
        quest = await self.get_quest(quest_id)
        require_guild_master(actor, quest.family_id, "manually assign quests")

        character = await self.get_character(character_id)
        if await self._get_character_family_id(character) != quest.family_id:
            raise CrossFamilyError(
                "assign quests to characters",
                {"character_id": character_id}
            )

        return await self._take_quest(
            quest,
            character,
            volunteered_by=None,
            volunteer_bonus=None,
            action="assigned",
        )

    async def _take_quest(
        self,
        quest: QuestInstance,
        character: Character,
        volunteered_by: Optional[str],
        volunteer_bonus: Optional[Decimal],
        action: str,
    ) -> QuestInstance:
        """
        Shared claim/assign path.

        Step 1 flips the quest AVAILABLE -> CLAIMED with a conditional
        UPDATE. Step 2 sets the character pointer, conditioned on it
        being empty. If step 2 does not land, step 1 is compensated
        before raising.
        """
        if quest.status != QuestStatus.AVAILABLE.value:
            raise QuestNotAvailableError(quest.id, quest.status)
        if not quest.is_family_quest:
            raise FamilyQuestRequiredError(quest.id, action)
        if character.active_family_quest_id:
            raise AntiHoardingError(character.id, character.active_family_quest_id)

        quest_id = quest.id
        claimed = await self.db.execute(
            update(QuestInstance)
            .where(
                QuestInstance.id == quest_id,
                QuestInstance.status == QuestStatus.AVAILABLE.value,
            )
            .values(
                status=QuestStatus.CLAIMED.value,
                assigned_to_id=character.user_id,
                volunteered_by=volunteered_by,
                volunteer_bonus=volunteer_bonus,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            self.logger.warning("Claim lost race", quest_id=quest_id, character_id=character.id)
            raise QuestNotAvailableError(quest_id)

        pointer_error: Optional[str] = None
        try:
            async with self.db.begin_nested():
                pointer = await self.db.execute(
                    update(Character)
                    .where(
                        Character.id == character.id,
                        Character.active_family_quest_id.is_(None),
                    )
                    .values(active_family_quest_id=quest_id, updated_at=utc_now())
                    .execution_options(synchronize_session=False)
                )
                if pointer.rowcount == 0:
                    pointer_error = "active family quest already set"
        except SQLAlchemyError as e:
            pointer_error = str(e)

        if pointer_error:
            await self._compensate_claim(quest_id, character.id, pointer_error)
            if pointer_error == "active family quest already set":
                raise AntiHoardingError(character.id)
            raise InvalidStateError(
                f"Failed to update character: {pointer_error}",
                {"quest_id": quest_id, "character_id": character.id},
                "CHARACTER_UPDATE_FAILED"
            )

        await self.db.refresh(quest)
        await self.db.refresh(character)

        self.logger.info(
            f"Quest {action}",
            quest_id=quest_id,
            character_id=character.id,
            user_id=character.user_id,
            volunteer_bonus=str(volunteer_bonus) if volunteer_bonus is not None else None,
        )
        return quest

    async def _compensate_claim(self, quest_id: str, character_id: str, reason: str) -> None:
        """Put a half-claimed quest back to AVAILABLE with claim fields cleared."""
        self.logger.warning(
            "Character update failed after claim, compensating",
            quest_id=quest_id,
            character_id=character_id,
            reason=reason,
        )
        try:
            async with self.db.begin_nested():
                await self.db.execute(
                    update(QuestInstance)
                    .where(
                        QuestInstance.id == quest_id,
                        QuestInstance.status == QuestStatus.CLAIMED.value,
                    )
                    .values(
                        status=QuestStatus.AVAILABLE.value,
                        assigned_to_id=None,
                        volunteered_by=None,
                        volunteer_bonus=None,
                        updated_at=utc_now(),
                    )
                    .execution_options(synchronize_session=False)
                )
        except SQLAlchemyError as e:
            self.logger.critical(
                "Orphaned claim: compensation failed",
                quest_id=quest_id,
                character_id=character_id,
                reason=reason,
                compensation_error=str(e),
            )
            raise CompensationFailedError(quest_id, character_id, str(e))

    async def release_quest(
        self,
        quest_id: str,
        character_id: Optional[str],
        actor: AuthenticatedUser,
    ) -> QuestInstance:
        """
        Return a CLAIMED FAMILY quest to AVAILABLE.

        Heroes may release only their own claim. Guild Masters may
        release any claim in their family, with or without naming the
        character.
        """
        quest = await self.get_quest(quest_id)

        if character_id is None:
            require_guild_master(actor, quest.family_id, "release quests")
        else:
            character = await self.get_character(character_id)
            authorize(actor, quest.family_id, action="release quests")
            if not actor.is_guild_master and not self._may_release(quest, character, actor):
                raise ReleaseNotAllowedError(quest_id, character_id)

        if not quest.is_family_quest:
            raise FamilyQuestRequiredError(quest_id, "released")
        if quest.status not in (QuestStatus.CLAIMED.value, QuestStatus.AVAILABLE.value):
            raise InvalidStateError(
                f"Quest cannot be released (status: {quest.status})",
                {"quest_id": quest_id, "status": quest.status}
            )

        released = await self.db.execute(
            update(QuestInstance)
            .where(
                QuestInstance.id == quest_id,
                QuestInstance.status.in_([QuestStatus.CLAIMED.value, QuestStatus.AVAILABLE.value]),
            )
            .values(
                status=QuestStatus.AVAILABLE.value,
                assigned_to_id=None,
                volunteered_by=None,
                volunteer_bonus=None,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        if released.rowcount == 0:
            raise InvalidStateError(
                "Quest cannot be released (status changed concurrently)",
                {"quest_id": quest_id}
            )

        await self._clear_active_pointer(quest_id)
        await self.db.refresh(quest)

        self.logger.info(
            "Quest released",
            quest_id=quest_id,
            character_id=character_id,
            released_by=actor.id,
        )
        return quest

    @staticmethod
    def _may_release(quest: QuestInstance, character: Character, actor: AuthenticatedUser) -> bool:
        if character.user_id != actor.id:
            return False
        if quest.volunteered_by is not None:
            return quest.volunteered_by == character.id
        return quest.assigned_to_id in (None, character.user_id)

    async def _clear_active_pointer(self, quest_id: str) -> None:
        """Clear active_family_quest_id on any character pointing at this quest."""
        await self.db.execute(
            update(Character)
            .where(Character.active_family_quest_id == quest_id)
            .values(active_family_quest_id=None, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )

    # ============================================================================
    # STATUS UPDATES
    # ============================================================================

    async def update_status(
        self,
        quest_id: str,
        new_status: QuestStatus,
        actor: AuthenticatedUser,
    ) -> Any:
        """
        Apply a status change requested through the quest instance endpoint.

        APPROVED is routed through approve_quest so rewards are granted
        exactly on COMPLETED -> APPROVED.
        """
        if new_status == QuestStatus.APPROVED:
            return await self.approve_quest(quest_id, actor)

        quest = await self.get_quest(quest_id)
        authorize(actor, quest.family_id, action="update quests")

        target = new_status.value
        if target not in HERO_TRANSITIONS:
            raise InvalidStateError(
                f"Invalid status transition from {quest.status} to {target}",
                {"quest_id": quest_id, "status": quest.status, "requested": target}
            )
        if not actor.is_guild_master and quest.assigned_to_id != actor.id:
            raise AuthorizationError(
                "You can only update quests assigned to you",
                {"quest_id": quest_id}
            )

        allowed_from = HERO_TRANSITIONS[target]
        if quest.status not in allowed_from:
            raise InvalidStateError(
                f"Invalid status transition from {quest.status} to {target}",
                {"quest_id": quest_id, "status": quest.status, "requested": target}
            )

        values: Dict[str, Any] = {"status": target, "updated_at": utc_now()}
        if target == QuestStatus.COMPLETED.value:
            values["completed_at"] = utc_now()

        result = await self.db.execute(
            update(QuestInstance)
            .where(QuestInstance.id == quest_id, QuestInstance.status.in_(allowed_from))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InvalidStateError(
                "Quest status changed concurrently, reload and retry",
                {"quest_id": quest_id}
            )

        await self.db.refresh(quest)
        self.logger.info("Quest status updated", quest_id=quest_id, status=target, actor_id=actor.id)
        return quest

    # ============================================================================
    # APPROVAL / DENIAL / CANCELLATION
    # ============================================================================

    async def _resolve_assignee_character(self, quest: QuestInstance) -> Character:
        if quest.volunteered_by:
            return await self.get_character(quest.volunteered_by)
        if not quest.assigned_to_id:
            raise InvalidStateError(
                "Quest is not assigned to a hero",
                {"quest_id": quest.id}
            )
        character = await self.get_character_for_user(quest.assigned_to_id)
        if not character:
            raise CharacterNotFoundError(user_id=quest.assigned_to_id)
        return character

    async def approve_quest(
        self,
        quest_id: str,
        actor: AuthenticatedUser,
        approver_id: Optional[str] = None,
    ) -> ApprovalResult:
        """
        Approve a COMPLETED quest and grant its rewards.

        Character increments, the ledger row and the status flip run in
        the caller's transaction; the flip is last and conditional on the
        quest still being COMPLETED, so a concurrent approval rolls back.
        Re-approving an APPROVED quest is a no-op.
        """
        if approver_id is not None and approver_id != actor.id:
            raise AuthorizationError(
                "Approver ID does not match authenticated user",
                {"approver_id": approver_id}
            )

        quest = await self.get_quest(quest_id)
        require_guild_master(actor, quest.family_id, "approve quests")

        if quest.status == QuestStatus.APPROVED.value:
            self.logger.info("Quest already approved", quest_id=quest_id)
            return ApprovalResult(quest=quest, noop=True)

        if quest.status != QuestStatus.COMPLETED.value:
            raise InvalidStateError(
                f"Quest cannot be approved (status: {quest.status}). "
                "Only COMPLETED quests can be approved.",
                {"quest_id": quest_id, "status": quest.status}
            )

        character = await self._resolve_assignee_character(quest)

        rewards = calculate_quest_rewards(
            BaseRewards(
                gold_reward=quest.gold_reward or 0,
                xp_reward=quest.xp_reward or 0,
                gems_reward=quest.gems_reward or 0,
                honor_reward=quest.honor_reward or 0,
            ),
            quest.difficulty,
            character.character_class,
            character.level,
        )
        level_up = calculate_level_up(character.xp or 0, rewards.xp, character.level or 1)
        new_level = max(character.level or 1, level_up.new_level if level_up else 1)
        completed_at = quest.completed_at or utc_now()

        streak_info = await self._record_streak(quest, character, completed_at)

        character_values: Dict[str, Any] = {
            "gold": Character.gold + rewards.gold,
            "xp": Character.xp + rewards.xp,
            "gems": Character.gems + rewards.gems,
            "honor_points": Character.honor_points + rewards.honor_points,
            "level": new_level,
            "updated_at": utc_now(),
        }
        if character.active_family_quest_id == quest.id:
            character_values["active_family_quest_id"] = None

        await self.db.execute(
            update(Character)
            .where(Character.id == character.id)
            .values(**character_values)
            .execution_options(synchronize_session=False)
        )

        transaction = Transaction(
            user_id=character.user_id,
            type=TransactionType.QUEST_REWARD.value,
            gold_change=rewards.gold,
            xp_change=rewards.xp,
            gems_change=rewards.gems,
            honor_change=rewards.honor_points,
            description=build_reward_description(quest.title, level_up),
            related_id=quest.id,
        )
        self.db.add(transaction)
        await self.db.flush()

        approved = await self.db.execute(
            update(QuestInstance)
            .where(
                QuestInstance.id == quest.id,
                QuestInstance.status == QuestStatus.COMPLETED.value,
            )
            .values(
                status=QuestStatus.APPROVED.value,
                approved_at=utc_now(),
                completed_at=completed_at,
                streak_count=streak_info.get("streak_count"),
                streak_bonus=streak_info.get("streak_bonus"),
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        if approved.rowcount == 0:
            # Raising rolls back the increments and ledger row above
            raise InvalidStateError(
                "Quest was approved or changed concurrently",
                {"quest_id": quest.id}
            )

        await self.db.refresh(quest)
        await self.db.refresh(character)

        self.logger.info(
            "Quest approved",
            quest_id=quest.id,
            approver_id=actor.id,
            character_id=character.id,
            gold=rewards.gold,
            xp=rewards.xp,
            level_up=level_up.to_dict() if level_up else None,
        )

        return ApprovalResult(
            quest=quest,
            rewards=rewards,
            level_up=level_up,
            new_level=new_level,
            transaction=transaction,
            streak=streak_info,
        )

    async def _record_streak(
        self,
        quest: QuestInstance,
        character: Character,
        completed_at: datetime,
    ) -> Dict[str, Any]:
        """Update the character's streak for recurring quests; empty dict otherwise."""
        if not quest.template_id:
            return {}

        recurrence_pattern = quest.recurrence_pattern
        if not recurrence_pattern:
            template = await self.db.get(QuestTemplate, quest.template_id)
            recurrence_pattern = template.recurrence_pattern if template else None
        if not recurrence_pattern:
            return {}

        family = await self.db.get(Family, quest.family_id)
        streak = await StreakService(self.db).record_completion(
            character.id,
            quest.template_id,
            recurrence_pattern,
            completed_at,
            family.timezone if family else "UTC",
        )
        return {
            "streak_count": streak.current_streak,
            "streak_bonus": calculate_streak_bonus(streak.current_streak),
        }

    async def deny_quest(self, quest_id: str, actor: AuthenticatedUser) -> QuestInstance:
        """Send a COMPLETED quest back to PENDING without granting rewards."""
        quest = await self.get_quest(quest_id)
        require_guild_master(actor, quest.family_id, "deny quests")

        if quest.status != QuestStatus.COMPLETED.value:
            raise InvalidStateError(
                f"Quest cannot be denied (status: {quest.status}). "
                "Only COMPLETED quests can be denied.",
                {"quest_id": quest_id, "status": quest.status}
            )

        result = await self.db.execute(
            update(QuestInstance)
            .where(
                QuestInstance.id == quest_id,
                QuestInstance.status == QuestStatus.COMPLETED.value,
            )
            .values(status=QuestStatus.PENDING.value, completed_at=None, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InvalidStateError(
                "Quest status changed concurrently, reload and retry",
                {"quest_id": quest_id}
            )

        await self.db.refresh(quest)
        self.logger.info("Quest denied", quest_id=quest_id, denied_by=actor.id)
        return quest

    async def cancel_quest(self, quest_id: str, actor: AuthenticatedUser) -> None:
        """Hard-delete a quest that has not been completed or closed."""
        quest = await self.get_quest(quest_id)
        require_guild_master(actor, quest.family_id, "cancel quests")

        if quest.status in (QuestStatus.COMPLETED.value, QuestStatus.APPROVED.value):
            raise InvalidStateError(
                "Cannot cancel completed or approved quests",
                {"quest_id": quest_id, "status": quest.status}
            )
        if quest.status in TERMINAL_STATUSES:
            raise InvalidStateError(
                f"Quest cannot be cancelled (status: {quest.status})",
                {"quest_id": quest_id, "status": quest.status}
            )

        await self._clear_active_pointer(quest_id)
        await self.db.execute(
            delete(QuestInstance)
            .where(QuestInstance.id == quest_id)
            .execution_options(synchronize_session=False)
        )
        self.db.expunge(quest)

        self.logger.info("Quest cancelled", quest_id=quest_id, cancelled_by=actor.id)


async def get_quest_instance_service(db: AsyncSession) -> QuestInstanceService:
    """Get quest instance service instance."""
    return QuestInstanceService(db)
