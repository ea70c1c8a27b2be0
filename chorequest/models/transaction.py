"""
Transaction ledger. Rows are append-only: written once per reward event.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import String, Integer, Text, Index, ForeignKey, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, utc_now


class TransactionType(str, Enum):
    QUEST_REWARD = "QUEST_REWARD"
    BOSS_VICTORY = "BOSS_VICTORY"
    STORE_PURCHASE = "STORE_PURCHASE"
    REWARD_REFUND = "REWARD_REFUND"
    BONUS_AWARD = "BONUS_AWARD"
    SOS_HELP = "SOS_HELP"


class Transaction(BaseModel):
    """Immutable reward ledger entry."""

    __tablename__ = "transactions"

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("user_profiles.id", ondelete="CASCADE"),
        comment="User whose balances changed"
    )

    type: Mapped[str] = mapped_column(String(20), comment="Transaction type")

    # Signed deltas
    gold_change: Mapped[int] = mapped_column(Integer, default=0)
    xp_change: Mapped[int] = mapped_column(Integer, default=0)
    gems_change: Mapped[int] = mapped_column(Integer, default=0)
    honor_change: Mapped[int] = mapped_column(Integer, default=0)

    description: Mapped[Optional[str]] = mapped_column(Text)

    related_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        comment="Quest instance or boss battle that produced this entry"
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    __table_args__ = (
        Index("idx_transaction_user_created", "user_id", "created_at"),
        Index("idx_transaction_related", "related_id"),
    )

    def __repr__(self) -> str:
        return f"<Transaction(id={self.id}, type={self.type}, user={self.user_id})>"
