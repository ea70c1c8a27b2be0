"""
Family role administration: promoting heroes to Guild Master and back.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

import structlog

from chorequest.auth.permissions import AuthenticatedUser
from chorequest.core.exceptions import (
    AuthorizationError,
    GuildMasterRequiredError,
    InvalidStateError,
    UserNotFoundError,
)
from chorequest.models.family import UserProfile, UserRole

logger = structlog.get_logger(__name__)


class UserService:
    """Service for role changes inside a family."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(service="user_service")

    async def _get_family_member(self, user_id: str, actor: AuthenticatedUser, verb: str) -> UserProfile:
        if not actor.is_guild_master:
            raise GuildMasterRequiredError(f"{verb} users")

        target = await self.db.get(UserProfile, user_id)
        if not target:
            raise UserNotFoundError(user_id)

        if actor.family_id is None or target.family_id != actor.family_id:
            self.logger.warning(
                "Cross-family role change rejected",
                actor_id=actor.id,
                target_id=user_id,
            )
            raise AuthorizationError(f"Can only {verb} users in your family", {"user_id": user_id})
        return target

    async def promote(self, user_id: str, actor: AuthenticatedUser) -> UserProfile:
        """HERO or YOUNG_HERO -> GUILD_MASTER."""
        target = await self._get_family_member(user_id, actor, "promote")

        if target.role == UserRole.GUILD_MASTER.value:
            raise InvalidStateError("User is already a Guild Master", {"user_id": user_id})

        previous_role = target.role
        target.role = UserRole.GUILD_MASTER.value
        await self.db.flush()

        self.logger.info(
            "User promoted",
            user_id=user_id,
            previous_role=previous_role,
            promoted_by=actor.id,
        )
        return target

    async def demote(self, user_id: str, actor: AuthenticatedUser) -> UserProfile:
        """GUILD_MASTER -> HERO, keeping at least one Guild Master in the family."""
        if user_id == actor.id and actor.is_guild_master:
            raise InvalidStateError("Cannot demote yourself", {"user_id": user_id})

        target = await self._get_family_member(user_id, actor, "demote")

        if target.role != UserRole.GUILD_MASTER.value:
            raise InvalidStateError("User is not a Guild Master", {"user_id": user_id})

        gm_count = (await self.db.execute(
            select(func.count(UserProfile.id)).where(
                UserProfile.family_id == target.family_id,
                UserProfile.role == UserRole.GUILD_MASTER.value,
            )
        )).scalar_one()
        if gm_count <= 1:
            raise InvalidStateError(
                "Cannot demote the last Guild Master. Promote another family member first.",
                {"user_id": user_id}
            )

        target.role = UserRole.HERO.value
        await self.db.flush()

        self.logger.info("User demoted", user_id=user_id, demoted_by=actor.id)
        return target


async def get_user_service(db: AsyncSession) -> UserService:
    """Get user service instance."""
    return UserService(db)
