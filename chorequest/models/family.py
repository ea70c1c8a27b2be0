"""
Family (guild) and user profile models.
All quest, character and boss data is scoped to a family.
"""

from enum import Enum
from typing import Optional

from sqlalchemy import String, Integer, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class UserRole(str, Enum):
    """Role hierarchy inside a family."""
    GUILD_MASTER = "GUILD_MASTER"
    HERO = "HERO"
    YOUNG_HERO = "YOUNG_HERO"


class Family(BaseModel, TimestampMixin):
    """A household playing together."""

    __tablename__ = "families"

    name: Mapped[str] = mapped_column(
        String(100),
        comment="Family display name"
    )

    timezone: Mapped[str] = mapped_column(
        String(64),
        default="UTC",
        comment="IANA timezone used for recurring quest cycles"
    )

    week_start_day: Mapped[int] = mapped_column(
        Integer,
        default=0,
        comment="First day of the week for WEEKLY cycles (0=Sunday)"
    )

    def __repr__(self) -> str:
        return f"<Family(id={self.id}, name={self.name})>"


class UserProfile(BaseModel, TimestampMixin):
    """A family member. Authentication lives outside this service."""

    __tablename__ = "user_profiles"

    family_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("families.id", ondelete="SET NULL"),
        comment="Owning family"
    )

    name: Mapped[str] = mapped_column(
        String(100),
        comment="Display name"
    )

    email: Mapped[Optional[str]] = mapped_column(
        String(255),
        comment="Contact email"
    )

    role: Mapped[str] = mapped_column(
        String(20),
        default=UserRole.HERO.value,
        comment="GUILD_MASTER, HERO or YOUNG_HERO"
    )

    __table_args__ = (
        Index("idx_user_profile_family", "family_id", "role"),
    )

    @property
    def is_guild_master(self) -> bool:
        return self.role == UserRole.GUILD_MASTER.value

    def __repr__(self) -> str:
        return f"<UserProfile(id={self.id}, role={self.role})>"
