"""
API routes for family role administration.
"""

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from chorequest.api.dependencies import get_database, get_current_user
from chorequest.auth.permissions import AuthenticatedUser
from chorequest.services.user_service import get_user_service

router = APIRouter()


def _profile_payload(profile) -> dict:
    return {
        "id": profile.id,
        "name": profile.name,
        "role": profile.role,
        "family_id": profile.family_id,
    }


@router.post("/{user_id}/promote")
async def promote_user(
    user_id: str = Path(..., description="User profile ID"),
    actor: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_database)
):
    service = await get_user_service(db)
    profile = await service.promote(user_id, actor)
    return {
        "success": True,
        "message": "User promoted to Guild Master",
        "user": _profile_payload(profile),
    }


@router.post("/{user_id}/demote")
async def demote_user(
    user_id: str = Path(..., description="User profile ID"),
    actor: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_database)
):
    service = await get_user_service(db)
    profile = await service.demote(user_id, actor)
    return {
        "success": True,
        "message": "User demoted to Hero",
        "user": _profile_payload(profile),
    }
