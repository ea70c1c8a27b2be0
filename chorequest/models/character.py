"""
Character model - a user's game avatar - and per-template streak counters.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import String, Integer, ForeignKey, Index, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class CharacterClass(str, Enum):
    """Playable classes. Each class has its own reward multipliers."""
    KNIGHT = "KNIGHT"
    MAGE = "MAGE"
    RANGER = "RANGER"
    ROGUE = "ROGUE"
    HEALER = "HEALER"


class Character(BaseModel, TimestampMixin):
    """Game avatar, one per user."""

    __tablename__ = "characters"

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        unique=True,
        comment="Owning user (1:1)"
    )

    name: Mapped[str] = mapped_column(
        String(100),
        comment="Character name"
    )

    character_class: Mapped[Optional[str]] = mapped_column(
        "class",
        String(20),
        comment="KNIGHT, MAGE, RANGER, ROGUE or HEALER"
    )

    # Progression (all cumulative)
    level: Mapped[int] = mapped_column(Integer, default=1, comment="Current level (>= 1)")
    xp: Mapped[int] = mapped_column(Integer, default=0, comment="Total experience")
    gold: Mapped[int] = mapped_column(Integer, default=0, comment="Gold balance")
    gems: Mapped[int] = mapped_column(Integer, default=0, comment="Gem balance")
    honor_points: Mapped[int] = mapped_column(Integer, default=0, comment="Honor points")

    # Anti-hoarding pointer; no FK so quest deletion never cascades into characters
    active_family_quest_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        comment="FAMILY quest currently claimed by this character"
    )

    __table_args__ = (
        Index("idx_character_active_family_quest", "active_family_quest_id"),
    )

    def __repr__(self) -> str:
        return f"<Character(id={self.id}, class={self.character_class}, level={self.level})>"


class CharacterQuestStreak(BaseModel, TimestampMixin):
    """Consecutive-completion counter for one character on one recurring template."""

    __tablename__ = "character_quest_streaks"

    character_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("characters.id", ondelete="CASCADE"),
        comment="Character holding the streak"
    )

    template_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("quest_templates.id", ondelete="CASCADE"),
        comment="Recurring template the streak belongs to"
    )

    current_streak: Mapped[int] = mapped_column(Integer, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0)

    last_completed_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        comment="When the streak was last extended"
    )

    __table_args__ = (
        UniqueConstraint("character_id", "template_id", name="uq_character_template_streak"),
    )

    def __repr__(self) -> str:
        return f"<CharacterQuestStreak(character_id={self.character_id}, current={self.current_streak})>"
