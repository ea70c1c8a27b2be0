"""
API routes for character stats and transaction history.
"""

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from chorequest.api.dependencies import get_database, get_current_user
from chorequest.auth.permissions import AuthenticatedUser
from chorequest.services.character_service import get_character_service

router = APIRouter()


@router.get("/{character_id}/stats")
async def get_character_stats(
    character_id: str = Path(..., description="Character ID"),
    actor: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_database)
):
    service = await get_character_service(db)
    return await service.get_stats(character_id, actor)


@router.get("/{character_id}/transactions")
async def get_character_transactions(
    character_id: str = Path(..., description="Character ID"),
    limit: int = Query(100, ge=1, le=500, description="Maximum rows to return"),
    actor: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_database)
):
    """Ledger entries for the character's user, newest first."""
    service = await get_character_service(db)
    return await service.get_transactions(character_id, actor, limit=limit)
