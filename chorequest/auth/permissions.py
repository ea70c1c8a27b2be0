"""
Role and family scoping checks shared by every lifecycle operation.
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from chorequest.core.exceptions import CrossFamilyError, GuildMasterRequiredError
from chorequest.models.family import UserRole

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AuthenticatedUser:
    """The acting user for a request."""
    id: str
    role: str
    family_id: Optional[str]

    @property
    def is_guild_master(self) -> bool:
        return self.role == UserRole.GUILD_MASTER.value

    @classmethod
    def from_profile(cls, profile) -> "AuthenticatedUser":
        return cls(id=profile.id, role=profile.role, family_id=profile.family_id)


def authorize(
    actor: AuthenticatedUser,
    resource_family_id: Optional[str],
    required_role: Optional[UserRole] = None,
    action: str = "perform this action",
) -> None:
    """
    Check that ``actor`` may act on a resource owned by ``resource_family_id``.

    The role check runs first so that non-GMs get the role message
    even for foreign resources. Family scoping applies to every role.

    Raises:
        GuildMasterRequiredError: actor lacks ``required_role``
        CrossFamilyError: actor and resource belong to different families
    """
    if required_role is not None and actor.role != required_role.value:
        logger.warning(
            "Role check failed",
            actor_id=actor.id,
            role=actor.role,
            required_role=required_role.value,
            action=action,
        )
        raise GuildMasterRequiredError(action, {"required_role": required_role.value})

    if actor.family_id is None or actor.family_id != resource_family_id:
        logger.warning(
            "Cross-family access rejected",
            actor_id=actor.id,
            actor_family_id=actor.family_id,
            resource_family_id=resource_family_id,
            action=action,
        )
        raise CrossFamilyError(action)


def require_guild_master(actor: AuthenticatedUser, resource_family_id: Optional[str], action: str) -> None:
    """Shorthand for a GM-only, family-scoped check."""
    authorize(actor, resource_family_id, UserRole.GUILD_MASTER, action)
