"""
API routes for the scatter bonus.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_database, get_required_wallet_auth
from app.api.schemas.common import SuccessResponse
from app.api.schemas.players import ScatterPickRequest
from app.services.admin_service import load_game_settings
from app.services.scatter_service import get_scatter_service

router = APIRouter()


@router.get("/pending", response_model=SuccessResponse)
async def check_pending_scatter(
    wallet: str = Depends(get_required_wallet_auth),
    db: AsyncSession = Depends(get_database)
):
    return SuccessResponse(data=await get_scatter_service(db).check_pending_scatter(wallet))


@router.post("/play", response_model=SuccessResponse)
async def play_scatter(
    request: ScatterPickRequest,
    wallet: str = Depends(get_required_wallet_auth),
    db: AsyncSession = Depends(get_database)
):
    """Pick three of the fifteen boxes."""
    game_settings = await load_game_settings(db)
    scatter = await get_scatter_service(db).play_scatter(
        wallet, request.picks, game_settings.scatter_consecutive_wins
    )
    return SuccessResponse(message="Scatter bonus won", data=scatter.to_dict())


@router.get("/history", response_model=SuccessResponse)
async def get_scatter_history(
    wallet: str = Depends(get_required_wallet_auth),
    db: AsyncSession = Depends(get_database)
):
    wins = await get_scatter_service(db).list_for_wallet(wallet)
    return SuccessResponse(data=[w.to_dict() for w in wins])
