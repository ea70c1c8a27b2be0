"""
Pydantic schemas for boss quest endpoints.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ConfigDict, field_validator


class BossQuestCreateRequest(BaseModel):
    name: str = Field(..., min_length=3, max_length=200)
    description: str = Field(..., min_length=3, max_length=2000)
    reward_gold: int = Field(0, ge=0)
    reward_xp: int = Field(0, ge=0)
    join_window_minutes: Optional[int] = Field(None, ge=1, le=1440)

    @field_validator("name", "description")
    @classmethod
    def strip_and_check(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3:
            raise ValueError("must be at least 3 characters")
        return v


class BossDecision(BaseModel):
    """Guild Master decision for one participant."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId")
    status: str
    gold: Optional[float] = None
    xp: Optional[float] = None
    honor: Optional[float] = None

    def to_service_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "status": self.status,
            "gold": self.gold,
            "xp": self.xp,
            "honor": self.honor,
        }


class BossQuestCompleteRequest(BaseModel):
    decisions: List[BossDecision] = Field(default_factory=list)


class BossQuestReopenRequest(BaseModel):
    minutes: Optional[int] = None


class BossParticipantResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    joined_at: Optional[datetime] = None
    participation_status: Optional[str] = None
    awarded_gold: int = 0
    awarded_xp: int = 0
    honor_awarded: int = 0
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None


class BossQuestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    family_id: str
    name: str
    description: Optional[str] = None
    status: str
    reward_gold: int
    reward_xp: int
    honor_reward: int
    rewards_distributed: bool
    join_window_minutes: Optional[int] = None
    join_window_expires_at: Optional[datetime] = None
    start_date: Optional[datetime] = None
    defeated_at: Optional[datetime] = None
    created_by_id: Optional[str] = None
    participants: List[BossParticipantResponse] = Field(default_factory=list)
