"""
Quest models: reusable templates and the concrete instances heroes work on.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Dict, Any

from sqlalchemy import (
    String, Integer, Boolean, Numeric, Text, Index, ForeignKey, DateTime, JSON
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class QuestStatus(str, Enum):
    """Quest instance lifecycle states."""
    AVAILABLE = "AVAILABLE"
    CLAIMED = "CLAIMED"
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    APPROVED = "APPROVED"
    EXPIRED = "EXPIRED"
    MISSED = "MISSED"


class QuestType(str, Enum):
    INDIVIDUAL = "INDIVIDUAL"
    FAMILY = "FAMILY"


class QuestCategory(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    BOSS_BATTLE = "BOSS_BATTLE"


class QuestDifficulty(str, Enum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"


class RecurrencePattern(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    CUSTOM = "CUSTOM"


# States the expirer acts on
EXPIRABLE_STATUSES = frozenset({
    QuestStatus.PENDING.value,
    QuestStatus.IN_PROGRESS.value,
    QuestStatus.AVAILABLE.value,
    QuestStatus.CLAIMED.value,
})

TERMINAL_STATUSES = frozenset({
    QuestStatus.APPROVED.value,
    QuestStatus.EXPIRED.value,
    QuestStatus.MISSED.value,
})


class QuestTemplate(BaseModel, TimestampMixin):
    """Blueprint the recurring generator copies into quest instances."""

    __tablename__ = "quest_templates"

    family_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("families.id", ondelete="CASCADE"),
        comment="Owning family"
    )

    title: Mapped[str] = mapped_column(String(200), comment="Quest title")
    description: Mapped[Optional[str]] = mapped_column(Text, comment="Quest description")

    category: Mapped[str] = mapped_column(
        String(20),
        default=QuestCategory.DAILY.value,
        comment="DAILY, WEEKLY or BOSS_BATTLE"
    )

    difficulty: Mapped[str] = mapped_column(
        String(10),
        default=QuestDifficulty.EASY.value,
        comment="EASY, MEDIUM or HARD"
    )

    quest_type: Mapped[str] = mapped_column(
        String(20),
        default=QuestType.INDIVIDUAL.value,
        comment="INDIVIDUAL or FAMILY"
    )

    xp_reward: Mapped[int] = mapped_column(Integer, default=0)
    gold_reward: Mapped[int] = mapped_column(Integer, default=0)

    recurrence_pattern: Mapped[Optional[str]] = mapped_column(
        String(10),
        comment="DAILY, WEEKLY or CUSTOM; null for one-off templates"
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    is_paused: Mapped[bool] = mapped_column(Boolean, default=False)

    assigned_character_ids: Mapped[List[str]] = mapped_column(
        JSON,
        default=list,
        comment="Characters that receive INDIVIDUAL instances"
    )

    class_bonuses: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON,
        comment="Per-class display overrides"
    )

    created_by_id: Mapped[Optional[str]] = mapped_column(String(36))

    __table_args__ = (
        Index("idx_quest_template_family_active", "family_id", "is_active", "is_paused"),
    )

    def __repr__(self) -> str:
        return f"<QuestTemplate(id={self.id}, title={self.title})>"


class QuestInstance(BaseModel, TimestampMixin):
    """A concrete unit of work, optionally generated from a template."""

    __tablename__ = "quest_instances"

    family_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("families.id", ondelete="CASCADE"),
        comment="Owning family"
    )

    title: Mapped[str] = mapped_column(String(200), comment="Quest title")
    description: Mapped[Optional[str]] = mapped_column(Text, comment="Quest description")

    # Classification
    quest_type: Mapped[str] = mapped_column(
        String(20),
        default=QuestType.INDIVIDUAL.value,
        comment="INDIVIDUAL or FAMILY"
    )
    category: Mapped[str] = mapped_column(String(20), default=QuestCategory.DAILY.value)
    difficulty: Mapped[str] = mapped_column(String(10), default=QuestDifficulty.EASY.value)

    # Rewards
    xp_reward: Mapped[int] = mapped_column(Integer, default=0)
    gold_reward: Mapped[int] = mapped_column(Integer, default=0)
    gems_reward: Mapped[int] = mapped_column(Integer, default=0)
    honor_reward: Mapped[int] = mapped_column(Integer, default=0)

    # Assignment
    status: Mapped[str] = mapped_column(
        String(20),
        default=QuestStatus.PENDING.value,
        comment="Lifecycle state"
    )

    assigned_to_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("user_profiles.id", ondelete="SET NULL"),
        comment="Assignee user"
    )

    volunteered_by: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("characters.id", ondelete="SET NULL"),
        comment="Character that self-claimed this FAMILY quest"
    )

    volunteer_bonus: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(4, 2),
        comment="Volunteer bonus multiplier recorded on self-claim"
    )

    created_by_id: Mapped[Optional[str]] = mapped_column(String(36))

    # Temporal
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    cycle_start_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    cycle_end_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Provenance; not a foreign key, templates stay independent of their instances
    template_id: Mapped[Optional[str]] = mapped_column(String(36))
    recurrence_pattern: Mapped[Optional[str]] = mapped_column(String(10))

    # Streak snapshot recorded at approval
    streak_count: Mapped[Optional[int]] = mapped_column(Integer)
    streak_bonus: Mapped[Optional[Decimal]] = mapped_column(Numeric(4, 2))

    __table_args__ = (
        Index("idx_quest_instance_family_status", "family_id", "status"),
        Index("idx_quest_instance_assignee", "assigned_to_id", "status"),
        Index("idx_quest_instance_template_cycle", "template_id", "cycle_start_date"),
        Index("idx_quest_instance_cycle_end", "cycle_end_date", "status"),
    )

    def __repr__(self) -> str:
        return f"<QuestInstance(id={self.id}, status={self.status}, type={self.quest_type})>"

    @property
    def is_family_quest(self) -> bool:
        return self.quest_type == QuestType.FAMILY.value

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
