"""
Database models for ChoreQuest backend.
"""

from .base import Base, BaseModel, TimestampMixin, utc_now
from .family import Family, UserProfile, UserRole
from .character import Character, CharacterClass, CharacterQuestStreak
from .quest import (
    QuestTemplate, QuestInstance, QuestStatus, QuestType, QuestCategory,
    QuestDifficulty, RecurrencePattern
)
from .boss_battle import (
    BossBattle, BossBattleParticipant, BossBattleStatus, ParticipationStatus
)
from .transaction import Transaction, TransactionType

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "utc_now",
    "Family",
    "UserProfile",
    "UserRole",
    "Character",
    "CharacterClass",
    "CharacterQuestStreak",
    "QuestTemplate",
    "QuestInstance",
    "QuestStatus",
    "QuestType",
    "QuestCategory",
    "QuestDifficulty",
    "RecurrencePattern",
    "BossBattle",
    "BossBattleParticipant",
    "BossBattleStatus",
    "ParticipationStatus",
    "Transaction",
    "TransactionType",
]
