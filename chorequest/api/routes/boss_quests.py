"""
API routes for family boss quests.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from chorequest.api.dependencies import get_database, get_current_user
from chorequest.api.schemas.boss_quest import (
    BossParticipantResponse, BossQuestCompleteRequest, BossQuestCreateRequest,
    BossQuestReopenRequest, BossQuestResponse
)
from chorequest.auth.permissions import AuthenticatedUser
from chorequest.services.boss_quest_service import get_boss_quest_service

router = APIRouter()


@router.get("")
async def list_boss_quests(
    actor: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_database)
):
    service = await get_boss_quest_service(db)
    battles = await service.list_boss_battles(actor)
    return {
        "success": True,
        "bossQuests": [BossQuestResponse.model_validate(b) for b in battles],
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_boss_quest(
    body: BossQuestCreateRequest,
    actor: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_database)
):
    """Create a boss quest with an open join window (Guild Master only)."""
    service = await get_boss_quest_service(db)
    battle = await service.create_boss_battle(
        actor,
        name=body.name,
        description=body.description,
        reward_gold=body.reward_gold,
        reward_xp=body.reward_xp,
        join_window_minutes=body.join_window_minutes,
    )
    return {"success": True, "bossQuest": BossQuestResponse.model_validate(battle)}


@router.post("/{boss_quest_id}/join")
async def join_boss_quest(
    boss_quest_id: str = Path(..., description="Boss quest ID"),
    actor: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_database)
):
    service = await get_boss_quest_service(db)
    participant = await service.join_boss_battle(boss_quest_id, actor)
    return {"success": True, "participant": BossParticipantResponse.model_validate(participant)}


@router.post("/{boss_quest_id}/complete")
async def complete_boss_quest(
    body: Optional[BossQuestCompleteRequest] = None,
    boss_quest_id: str = Path(..., description="Boss quest ID"),
    actor: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_database)
):
    """Distribute rewards to all participants. Repeat calls are no-ops."""
    service = await get_boss_quest_service(db)
    decisions = [d.to_service_dict() for d in body.decisions] if body else []
    return await service.complete_boss_battle(boss_quest_id, actor, decisions)


@router.post("/{boss_quest_id}/reopen")
async def reopen_boss_quest(
    body: Optional[BossQuestReopenRequest] = None,
    boss_quest_id: str = Path(..., description="Boss quest ID"),
    actor: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_database)
):
    service = await get_boss_quest_service(db)
    battle = await service.reopen_boss_battle(
        boss_quest_id,
        actor,
        minutes=body.minutes if body else None,
    )
    return {"success": True, "join_window_expires_at": battle.join_window_expires_at.isoformat()}
