"""
API routes for playing Deal or No Deal.
"""

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import PlayerIdentity, get_database, get_player_identity, get_required_wallet_auth
from app.api.schemas.common import SuccessResponse
from app.api.schemas.games import CreateGameRequest, OpenCaseRequest, FinalDecisionRequest
from app.services.game_service import get_game_service, serialize_game
from app.utils.validation import normalize_tx_hash

router = APIRouter()


def _with_game(result: dict) -> dict:
    data = dict(result)
    data["game"] = serialize_game(data["game"])
    return data


@router.post("", response_model=SuccessResponse, status_code=201)
async def create_game(
    request: CreateGameRequest,
    player: PlayerIdentity = Depends(get_player_identity),
    db: AsyncSession = Depends(get_database)
):
    """Start a game paid by a confirmed entry-fee transaction."""
    game = await get_game_service(db).create_verified_game(
        wallet=player.wallet,
        case_number=request.case_number,
        game_fee=request.game_fee,
        tx_hash=normalize_tx_hash(request.tx_hash),
        is_admin=player.is_admin
    )
    return SuccessResponse(message="Game created", data=serialize_game(game))


@router.get("", response_model=SuccessResponse)
async def list_games(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    wallet: str = Depends(get_required_wallet_auth),
    db: AsyncSession = Depends(get_database)
):
    games = await get_game_service(db).list_games(wallet, limit=limit, offset=offset)
    return SuccessResponse(data=[serialize_game(game) for game in games])


@router.get("/active", response_model=SuccessResponse)
async def get_active_game(
    wallet: str = Depends(get_required_wallet_auth),
    db: AsyncSession = Depends(get_database)
):
    game = await get_game_service(db).get_active_game(wallet)
    return SuccessResponse(data=serialize_game(game) if game else None)


@router.post("/continue-after-level9", response_model=SuccessResponse)
async def continue_after_level9(
    wallet: str = Depends(get_required_wallet_auth),
    db: AsyncSession = Depends(get_database)
):
    """Keep playing for the 1 BTC reward instead of selling trophies."""
    result = await get_game_service(db).continue_after_level9(wallet)
    return SuccessResponse(data=result)


@router.get("/{game_id}", response_model=SuccessResponse)
async def get_game(
    game_id: int = Path(..., ge=1),
    wallet: str = Depends(get_required_wallet_auth),
    db: AsyncSession = Depends(get_database)
):
    game = await get_game_service(db).get_game(game_id, wallet)
    return SuccessResponse(data=serialize_game(game))


@router.post("/{game_id}/open", response_model=SuccessResponse)
async def open_case(
    request: OpenCaseRequest,
    game_id: int = Path(..., ge=1),
    wallet: str = Depends(get_required_wallet_auth),
    db: AsyncSession = Depends(get_database)
):
    result = await get_game_service(db).open_case(game_id, wallet, request.case_number)
    return SuccessResponse(data=_with_game(result))


@router.post("/{game_id}/refuse", response_model=SuccessResponse)
async def refuse_offer(
    game_id: int = Path(..., ge=1),
    wallet: str = Depends(get_required_wallet_auth),
    db: AsyncSession = Depends(get_database)
):
    """No Deal."""
    game = await get_game_service(db).refuse_offer(game_id, wallet)
    return SuccessResponse(message="No Deal", data=serialize_game(game))


@router.post("/{game_id}/deal", response_model=SuccessResponse)
async def accept_deal(
    game_id: int = Path(..., ge=1),
    wallet: str = Depends(get_required_wallet_auth),
    db: AsyncSession = Depends(get_database)
):
    """Deal."""
    result = await get_game_service(db).accept_deal(game_id, wallet)
    return SuccessResponse(message="Deal", data=_with_game(result))


@router.post("/{game_id}/final", response_model=SuccessResponse)
async def final_decision(
    request: FinalDecisionRequest,
    game_id: int = Path(..., ge=1),
    wallet: str = Depends(get_required_wallet_auth),
    db: AsyncSession = Depends(get_database)
):
    result = await get_game_service(db).final_decision(game_id, wallet, request.keep_original)
    return SuccessResponse(data=_with_game(result))
