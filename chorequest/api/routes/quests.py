"""
API routes for hero-facing FAMILY quest claiming.
"""

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from chorequest.api.dependencies import get_database, get_current_user
from chorequest.api.schemas.quest import CharacterActionRequest, QuestInstanceResponse
from chorequest.auth.permissions import AuthenticatedUser
from chorequest.services.quest_instance_service import get_quest_instance_service

router = APIRouter()


@router.post("/{quest_id}/claim")
async def claim_quest(
    body: CharacterActionRequest,
    quest_id: str = Path(..., description="Quest instance ID"),
    actor: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_database)
):
    """Hero self-claims an AVAILABLE FAMILY quest."""
    service = await get_quest_instance_service(db)
    quest = await service.claim_quest(quest_id, body.character_id, actor)
    return {"success": True, "quest": QuestInstanceResponse.model_validate(quest)}


@router.post("/{quest_id}/release")
async def release_quest(
    body: CharacterActionRequest,
    quest_id: str = Path(..., description="Quest instance ID"),
    actor: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_database)
):
    """Return a claimed FAMILY quest to the pool."""
    service = await get_quest_instance_service(db)
    quest = await service.release_quest(quest_id, body.character_id, actor)
    return {
        "success": True,
        "message": "Quest released back to available pool",
        "quest": QuestInstanceResponse.model_validate(quest),
    }


@router.post("/{quest_id}/assign")
async def assign_quest(
    body: CharacterActionRequest,
    quest_id: str = Path(..., description="Quest instance ID"),
    actor: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_database)
):
    """Guild Master assigns an AVAILABLE FAMILY quest to a hero."""
    service = await get_quest_instance_service(db)
    quest = await service.assign_quest(quest_id, body.character_id, actor)
    return {"success": True, "quest": QuestInstanceResponse.model_validate(quest)}
