"""
Admin API routes.
Payout bookkeeping, trophies, game settings, player tools and resets.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_database, get_cache, get_ticker, validate_admin_access
from app.api.schemas.admin import (
    MarkPaidRequest, ManualPayoutRequest, TrophyRequest, AwardTrophyRequest,
    GameSettingsRequest, SetPlayerLevelRequest
)
from app.api.schemas.common import SuccessResponse
from app.cache.cache_service import CacheService
from app.scheduler.leaderboard_scheduler import get_leaderboard_scheduler
from app.scheduler.payment_monitor import get_payment_monitor
from app.services.admin_service import get_admin_service
from app.services.market_ticker import MarketTicker
from app.services.notification_service import get_notification_service
from app.services.progression_service import get_progression_service
from app.utils.validation import normalize_wallet

router = APIRouter(dependencies=[Depends(validate_admin_access)])


# ============================================================================
# DASHBOARD
# ============================================================================

@router.get("/stats", response_model=SuccessResponse)
async def get_dashboard_stats(db: AsyncSession = Depends(get_database)):
    return SuccessResponse(data=await get_admin_service(db).get_dashboard_stats())


@router.get("/system", response_model=SuccessResponse)
async def get_system_status(ticker: MarketTicker = Depends(get_ticker)):
    """Background workers and market data status."""
    return SuccessResponse(data={
        "payment_monitor": get_payment_monitor().get_status(),
        "leaderboard_scheduler": get_leaderboard_scheduler().get_status(),
        "market_ticker": ticker.get_status(),
    })


@router.get("/notifications", response_model=SuccessResponse)
async def list_admin_notifications(
    unread_only: bool = Query(False),
    db: AsyncSession = Depends(get_database)
):
    notifications = await get_notification_service(db).list_admin(unread_only=unread_only)
    return SuccessResponse(data=[n.to_dict() for n in notifications])


@router.post("/notifications/{notification_id}/read", response_model=SuccessResponse)
async def mark_admin_notification_read(
    notification_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_database)
):
    notification = await get_notification_service(db).mark_read(notification_id)
    return SuccessResponse(data=notification.to_dict())


# ============================================================================
# GAME SETTINGS
# ============================================================================

@router.get("/settings", response_model=SuccessResponse)
async def get_game_settings(db: AsyncSession = Depends(get_database)):
    game_settings = await get_admin_service(db).get_game_settings()
    return SuccessResponse(data=game_settings.to_dict())


@router.put("/settings", response_model=SuccessResponse)
async def update_game_settings(
    request: GameSettingsRequest,
    db: AsyncSession = Depends(get_database)
):
    game_settings = await get_admin_service(db).update_game_settings(**request.model_dump(exclude_none=True))
    return SuccessResponse(message="Settings updated", data=game_settings.to_dict())


# ============================================================================
# SCATTER WINS
# ============================================================================

@router.get("/scatter-wins", response_model=SuccessResponse)
async def list_scatter_wins(
    status: Optional[str] = Query(None, pattern="^(pending|paid|cancelled)$"),
    db: AsyncSession = Depends(get_database)
):
    wins = await get_admin_service(db).list_scatter_wins(status)
    return SuccessResponse(data=[w.to_dict() for w in wins])


@router.post("/scatter-wins/{scatter_id}/paid", response_model=SuccessResponse)
async def mark_scatter_paid(
    request: MarkPaidRequest,
    scatter_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_database)
):
    win = await get_admin_service(db).mark_scatter_paid(scatter_id, request.payout_tx_hash)
    return SuccessResponse(message="Scatter win marked as paid", data=win.to_dict())


@router.delete("/scatter-wins/{scatter_id}", response_model=SuccessResponse)
async def delete_scatter_win(
    scatter_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_database)
):
    await get_admin_service(db).delete_scatter_win(scatter_id)
    return SuccessResponse(message="Scatter win deleted")


# ============================================================================
# NFT SALES
# ============================================================================

@router.get("/nft-sales", response_model=SuccessResponse)
async def list_nft_sales(
    status: Optional[str] = Query(None, pattern="^(pending|paid|cancelled)$"),
    db: AsyncSession = Depends(get_database)
):
    sales = await get_admin_service(db).list_nft_sales(status)
    return SuccessResponse(data=[s.to_dict() for s in sales])


@router.post("/nft-sales/{sale_id}/paid", response_model=SuccessResponse)
async def mark_nft_sale_paid(
    request: MarkPaidRequest,
    sale_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_database)
):
    sale = await get_admin_service(db).mark_nft_sale_paid(sale_id, request.payout_tx_hash)
    return SuccessResponse(message="NFT sale marked as paid", data=sale.to_dict())


@router.post("/nft-sales/{sale_id}/cancel", response_model=SuccessResponse)
async def cancel_nft_sale(
    sale_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_database)
):
    sale = await get_admin_service(db).cancel_nft_sale(sale_id)
    return SuccessResponse(message="NFT sale cancelled", data=sale.to_dict())


@router.delete("/nft-sales/{sale_id}", response_model=SuccessResponse)
async def delete_nft_sale(
    sale_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_database)
):
    await get_admin_service(db).delete_nft_sale(sale_id)
    return SuccessResponse(message="NFT sale deleted")


# ============================================================================
# MANUAL PAYOUTS
# ============================================================================

@router.get("/payouts", response_model=SuccessResponse)
async def list_manual_payouts(db: AsyncSession = Depends(get_database)):
    payouts = await get_admin_service(db).list_manual_payouts()
    return SuccessResponse(data=[p.to_dict() for p in payouts])


@router.post("/payouts", response_model=SuccessResponse, status_code=201)
async def create_manual_payout(
    request: ManualPayoutRequest,
    db: AsyncSession = Depends(get_database)
):
    payout = await get_admin_service(db).create_manual_payout(
        wallet=request.wallet_address,
        amount=request.amount,
        currency=request.currency,
        reason=request.reason,
        tx_hash=request.tx_hash,
        player_name=request.player_name
    )
    return SuccessResponse(message="Payout recorded", data=payout.to_dict())


@router.delete("/payouts/{payout_id}", response_model=SuccessResponse)
async def delete_manual_payout(
    payout_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_database)
):
    await get_admin_service(db).delete_manual_payout(payout_id)
    return SuccessResponse(message="Payout deleted")


# ============================================================================
# TROPHIES
# ============================================================================

@router.get("/trophies", response_model=SuccessResponse)
async def list_trophies(db: AsyncSession = Depends(get_database)):
    trophies = await get_admin_service(db).list_trophies()
    return SuccessResponse(data=[t.to_dict() for t in trophies])


@router.put("/trophies/{level}", response_model=SuccessResponse)
async def upsert_trophy(
    request: TrophyRequest,
    level: int = Path(..., ge=0, le=13),
    db: AsyncSession = Depends(get_database)
):
    trophy = await get_admin_service(db).upsert_trophy(level, **request.model_dump())
    return SuccessResponse(message="Trophy saved", data=trophy.to_dict())


@router.delete("/trophies/{level}", response_model=SuccessResponse)
async def delete_trophy(
    level: int = Path(..., ge=0, le=13),
    db: AsyncSession = Depends(get_database)
):
    await get_admin_service(db).delete_trophy(level)
    return SuccessResponse(message="Trophy deleted")


@router.get("/player-trophies", response_model=SuccessResponse)
async def list_player_trophies(
    wallet: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_database)
):
    trophies = await get_admin_service(db).list_player_trophies(normalize_wallet(wallet) if wallet else None)
    return SuccessResponse(data=[t.to_dict() for t in trophies])


@router.post("/player-trophies", response_model=SuccessResponse, status_code=201)
async def award_player_trophy(
    request: AwardTrophyRequest,
    db: AsyncSession = Depends(get_database)
):
    trophy = await get_admin_service(db).award_player_trophy(request.wallet_address, request.level)
    return SuccessResponse(message="Trophy awarded", data=trophy.to_dict())


@router.delete("/player-trophies/{trophy_id}", response_model=SuccessResponse)
async def delete_player_trophy(
    trophy_id: int = Path(..., ge=1),
    db: AsyncSession = Depends(get_database)
):
    await get_admin_service(db).delete_player_trophy(trophy_id)
    return SuccessResponse(message="Player trophy deleted")


# ============================================================================
# PLAYER TOOLS
# ============================================================================

@router.post("/players/set-level", response_model=SuccessResponse)
async def set_player_level(
    request: SetPlayerLevelRequest,
    db: AsyncSession = Depends(get_database),
    cache: CacheService = Depends(get_cache)
):
    result = await get_progression_service(db).set_player_level(
        normalize_wallet(request.wallet_address), request.target_level, request.exact_xp
    )
    await cache.invalidate_rankings()
    return SuccessResponse(message=result["message"], data=result)


@router.post("/players/merge-duplicates", response_model=SuccessResponse)
async def merge_duplicate_profiles(
    db: AsyncSession = Depends(get_database),
    cache: CacheService = Depends(get_cache)
):
    result = await get_progression_service(db).merge_duplicate_profiles()
    await cache.invalidate_rankings()
    return SuccessResponse(message=result["message"], data=result)


# ============================================================================
# RESETS
# ============================================================================

@router.post("/reset", response_model=SuccessResponse)
async def reset_all_game_data(
    db: AsyncSession = Depends(get_database),
    cache: CacheService = Depends(get_cache)
):
    deleted = await get_admin_service(db).reset_all_game_data()
    await cache.invalidate_rankings()
    return SuccessResponse(message="All game data reset", data=deleted)


@router.post("/reset/{wallet}", response_model=SuccessResponse)
async def reset_wallet(
    wallet: str = Path(...),
    db: AsyncSession = Depends(get_database),
    cache: CacheService = Depends(get_cache)
):
    deleted = await get_admin_service(db).reset_wallet(normalize_wallet(wallet))
    await cache.invalidate_rankings()
    return SuccessResponse(message="Wallet reset", data=deleted)
