"""
Boss battle models: family-wide timed challenges and their participants.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    String, Integer, Boolean, Text, Index, ForeignKey, DateTime, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel, TimestampMixin, utc_now


class BossBattleStatus(str, Enum):
    ACTIVE = "ACTIVE"
    DEFEATED = "DEFEATED"
    EXPIRED = "EXPIRED"


class ParticipationStatus(str, Enum):
    """Guild Master decision recorded per participant at completion."""
    APPROVED = "APPROVED"
    PARTIAL = "PARTIAL"
    DENIED = "DENIED"


class BossBattle(BaseModel, TimestampMixin):
    """Family-wide challenge with a join window and shared base rewards."""

    __tablename__ = "boss_battles"

    family_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("families.id", ondelete="CASCADE"),
        comment="Owning family"
    )

    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[Optional[str]] = mapped_column(Text)

    status: Mapped[str] = mapped_column(
        String(20),
        default=BossBattleStatus.ACTIVE.value,
        comment="ACTIVE, DEFEATED or EXPIRED"
    )

    # Base rewards
    reward_gold: Mapped[int] = mapped_column(Integer, default=0)
    reward_xp: Mapped[int] = mapped_column(Integer, default=0)
    honor_reward: Mapped[int] = mapped_column(Integer, default=1)

    rewards_distributed: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        comment="Set once every participant has been rewarded"
    )

    join_window_minutes: Mapped[int] = mapped_column(Integer, default=60)
    join_window_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    start_date: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    defeated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_by_id: Mapped[Optional[str]] = mapped_column(String(36))

    participants: Mapped[List["BossBattleParticipant"]] = relationship(
        "BossBattleParticipant",
        back_populates="boss_battle",
        cascade="all, delete-orphan",
        order_by="BossBattleParticipant.joined_at",
    )

    __table_args__ = (
        Index("idx_boss_battle_family_status", "family_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<BossBattle(id={self.id}, status={self.status})>"

    def is_join_open(self, now: datetime) -> bool:
        if self.status != BossBattleStatus.ACTIVE.value:
            return False
        return self.join_window_expires_at is None or now <= self.join_window_expires_at


class BossBattleParticipant(BaseModel):
    """A user's participation in a boss battle and the rewards they received."""

    __tablename__ = "boss_battle_participants"

    boss_battle_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("boss_battles.id", ondelete="CASCADE")
    )

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user_profiles.id", ondelete="CASCADE")
    )

    joined_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    participation_status: Mapped[Optional[str]] = mapped_column(
        String(10),
        comment="APPROVED, PARTIAL or DENIED once the battle is resolved"
    )

    awarded_gold: Mapped[int] = mapped_column(Integer, default=0)
    awarded_xp: Mapped[int] = mapped_column(Integer, default=0)
    honor_awarded: Mapped[int] = mapped_column(Integer, default=0)

    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    approved_by: Mapped[Optional[str]] = mapped_column(String(36))

    boss_battle: Mapped["BossBattle"] = relationship(
        "BossBattle",
        back_populates="participants"
    )

    __table_args__ = (
        UniqueConstraint("boss_battle_id", "user_id", name="uq_boss_battle_participant"),
        Index("idx_boss_participant_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<BossBattleParticipant(boss={self.boss_battle_id}, user={self.user_id})>"
