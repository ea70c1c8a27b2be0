"""
API routes for quest instance management: listing, creation, status
updates, approval, denial, Guild Master release/assign and cancellation.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from chorequest.api.dependencies import get_database, get_current_user
from chorequest.api.schemas.quest import (
    CharacterActionRequest, OptionalCharacterRequest, QuestApproveRequest,
    QuestCreateRequest, QuestInstanceResponse, QuestStatusUpdateRequest
)
from chorequest.auth.permissions import AuthenticatedUser
from chorequest.core.exceptions import GuildMasterRequiredError
from chorequest.models.quest import QuestStatus
from chorequest.services.quest_instance_service import (
    ApprovalResult, get_quest_instance_service
)

router = APIRouter()


def approval_payload(result: ApprovalResult) -> Dict[str, Any]:
    """Response body for an approval, including the idempotent no-op case."""
    quest = QuestInstanceResponse.model_validate(result.quest)
    if result.noop:
        return {"success": True, "noop": True, "message": "Quest already approved", "quest": quest}

    transaction = result.transaction
    return {
        "success": True,
        "quest": quest,
        "rewards": result.rewards.to_dict(),
        "characterUpdates": {
            "newLevel": result.new_level,
            "previousLevel": result.level_up.previous_level if result.level_up else result.new_level,
            "leveledUp": result.leveled_up,
        },
        "transaction": {
            "id": transaction.id,
            "type": transaction.type,
            "description": transaction.description,
            "goldChange": transaction.gold_change,
            "xpChange": transaction.xp_change,
            "gemsChange": transaction.gems_change,
            "honorChange": transaction.honor_change,
        },
        "streak": {
            "count": result.streak.get("streak_count"),
            "bonus": float(result.streak["streak_bonus"]) if result.streak else None,
        },
    }


@router.get("")
async def list_quest_instances(
    status_filter: Optional[QuestStatus] = Query(None, alias="status", description="Filter by status"),
    actor: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_database)
):
    """List the caller's family quests, newest first."""
    service = await get_quest_instance_service(db)
    quests = await service.list_quests(actor, status=status_filter)
    return {
        "success": True,
        "quests": [QuestInstanceResponse.model_validate(q) for q in quests],
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_quest_instance(
    body: QuestCreateRequest,
    actor: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_database)
):
    """Create an ad-hoc quest (Guild Master only)."""
    service = await get_quest_instance_service(db)
    quest = await service.create_quest(actor, body.to_service_data())
    return {"success": True, "quest": QuestInstanceResponse.model_validate(quest)}


@router.get("/{quest_id}")
async def get_quest_instance(
    quest_id: str = Path(..., description="Quest instance ID"),
    actor: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_database)
):
    service = await get_quest_instance_service(db)
    quest = await service.get_quest_for_actor(quest_id, actor)
    return {"success": True, "quest": QuestInstanceResponse.model_validate(quest)}


@router.patch("/{quest_id}")
async def update_quest_status(
    body: QuestStatusUpdateRequest,
    quest_id: str = Path(..., description="Quest instance ID"),
    actor: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_database)
):
    """Hero progress updates; APPROVED is delegated to approval."""
    service = await get_quest_instance_service(db)
    result = await service.update_status(quest_id, body.status, actor)
    if isinstance(result, ApprovalResult):
        return approval_payload(result)
    return {"success": True, "quest": QuestInstanceResponse.model_validate(result)}


@router.post("/{quest_id}/approve")
async def approve_quest(
    body: Optional[QuestApproveRequest] = None,
    quest_id: str = Path(..., description="Quest instance ID"),
    actor: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_database)
):
    """Approve a COMPLETED quest and grant rewards."""
    service = await get_quest_instance_service(db)
    result = await service.approve_quest(
        quest_id,
        actor,
        approver_id=body.approver_id if body else None,
    )
    return approval_payload(result)


@router.post("/{quest_id}/deny")
async def deny_quest(
    quest_id: str = Path(..., description="Quest instance ID"),
    actor: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_database)
):
    """Send a COMPLETED quest back to PENDING."""
    service = await get_quest_instance_service(db)
    quest = await service.deny_quest(quest_id, actor)
    return {"success": True, "quest": QuestInstanceResponse.model_validate(quest)}


@router.post("/{quest_id}/release")
async def release_quest_as_guild_master(
    body: Optional[OptionalCharacterRequest] = None,
    quest_id: str = Path(..., description="Quest instance ID"),
    actor: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_database)
):
    """Guild Master release of a claimed FAMILY quest."""
    if not actor.is_guild_master:
        raise GuildMasterRequiredError("release quests from the admin panel")

    service = await get_quest_instance_service(db)
    quest = await service.release_quest(quest_id, body.character_id if body else None, actor)
    return {
        "success": True,
        "message": "Quest released back to available pool",
        "quest": QuestInstanceResponse.model_validate(quest),
    }


@router.post("/{quest_id}/assign")
async def assign_quest_as_guild_master(
    body: CharacterActionRequest,
    quest_id: str = Path(..., description="Quest instance ID"),
    actor: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_database)
):
    service = await get_quest_instance_service(db)
    quest = await service.assign_quest(quest_id, body.character_id, actor)
    return {"success": True, "quest": QuestInstanceResponse.model_validate(quest)}


@router.delete("/{quest_id}")
@router.post("/{quest_id}/cancel")
async def cancel_quest(
    quest_id: str = Path(..., description="Quest instance ID"),
    actor: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_database)
):
    """Remove a quest that has not been completed."""
    service = await get_quest_instance_service(db)
    await service.cancel_quest(quest_id, actor)
    return {"success": True, "message": "Quest cancelled"}
