"""
Pydantic schemas for quest instance endpoints.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict

from chorequest.models.quest import QuestCategory, QuestDifficulty, QuestStatus, QuestType


class CharacterActionRequest(BaseModel):
    """Body for claim / release / assign."""
    model_config = ConfigDict(populate_by_name=True)

    character_id: str = Field(..., alias="characterId", min_length=1, description="Acting character")


class OptionalCharacterRequest(BaseModel):
    """Body for Guild Master release, where the character may be omitted."""
    model_config = ConfigDict(populate_by_name=True)

    character_id: Optional[str] = Field(None, alias="characterId")


class QuestStatusUpdateRequest(BaseModel):
    status: QuestStatus = Field(..., description="Target status")


class QuestApproveRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    approver_id: Optional[str] = Field(
        None,
        alias="approverId",
        description="Must match the authenticated Guild Master when given"
    )


class QuestCreateRequest(BaseModel):
    """Ad-hoc quest instance created by a Guild Master."""
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    quest_type: QuestType = Field(QuestType.INDIVIDUAL, alias="questType")
    category: QuestCategory = QuestCategory.DAILY
    difficulty: QuestDifficulty = QuestDifficulty.EASY
    xp_reward: int = Field(0, ge=0, alias="xpReward")
    gold_reward: int = Field(0, ge=0, alias="goldReward")
    gems_reward: int = Field(0, ge=0, alias="gemsReward")
    honor_reward: int = Field(0, ge=0, alias="honorReward")
    due_date: Optional[datetime] = Field(None, alias="dueDate")
    assigned_to_id: Optional[str] = Field(None, alias="assignedToId")

    def to_service_data(self) -> dict:
        data = self.model_dump(by_alias=False)
        data["quest_type"] = self.quest_type.value
        data["category"] = self.category.value
        data["difficulty"] = self.difficulty.value
        if self.due_date and self.due_date.tzinfo is not None:
            data["due_date"] = self.due_date.astimezone(timezone.utc).replace(tzinfo=None)
        return data


class QuestInstanceResponse(BaseModel):
    """Quest instance as returned by the API."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    family_id: str
    title: str
    description: Optional[str] = None
    quest_type: str
    category: Optional[str] = None
    difficulty: Optional[str] = None
    status: str
    xp_reward: int = 0
    gold_reward: int = 0
    gems_reward: int = 0
    honor_reward: int = 0
    assigned_to_id: Optional[str] = None
    volunteered_by: Optional[str] = None
    volunteer_bonus: Optional[float] = None
    due_date: Optional[datetime] = None
    cycle_start_date: Optional[datetime] = None
    cycle_end_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    template_id: Optional[str] = None
    recurrence_pattern: Optional[str] = None
    streak_count: Optional[int] = None
    streak_bonus: Optional[float] = None
    created_at: Optional[datetime] = None
