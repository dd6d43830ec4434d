"""
API routes for the monthly XP leaderboard.
"""

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_database, get_cache, validate_admin_access
from app.api.schemas.common import SuccessResponse
from app.api.schemas.leaderboard import MarkPeriodPaidRequest
from app.cache.cache_service import CacheService
from app.services.leaderboard_service import get_leaderboard_service, time_remaining

router = APIRouter()


def _period_data(period) -> dict:
    if period is None:
        return None
    data = period.to_dict()
    data["time_remaining"] = time_remaining(period)
    return data


@router.get("", response_model=SuccessResponse)
async def get_leaderboard(
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_database),
    cache: CacheService = Depends(get_cache)
):
    """Active period with its countdown and the current rankings."""
    service = get_leaderboard_service(db, cache)
    period = await service.get_active_period()
    rankings = await service.get_rankings(limit)
    return SuccessResponse(data={"period": _period_data(period), "rankings": rankings})


@router.post("/check", response_model=SuccessResponse)
async def check_leaderboard_period(db: AsyncSession = Depends(get_database)):
    """Close the active period when it has expired."""
    result = await get_leaderboard_service(db).check_leaderboard_period()
    return SuccessResponse(data=result)


@router.get("/periods", response_model=SuccessResponse)
async def list_periods(db: AsyncSession = Depends(get_database)):
    periods = await get_leaderboard_service(db).list_periods()
    return SuccessResponse(data=[_period_data(p) for p in periods])


@router.post("/periods", response_model=SuccessResponse, status_code=201)
async def start_new_period(
    admin: str = Depends(validate_admin_access),
    db: AsyncSession = Depends(get_database)
):
    period = await get_leaderboard_service(db).start_new_period()
    return SuccessResponse(message=f"Period {period.period_number} started", data=_period_data(period))


@router.post("/periods/{period_id}/toggle-pause", response_model=SuccessResponse)
async def toggle_pause(
    period_id: int = Path(..., ge=1),
    admin: str = Depends(validate_admin_access),
    db: AsyncSession = Depends(get_database)
):
    period = await get_leaderboard_service(db).toggle_pause(period_id)
    return SuccessResponse(
        message="Period paused" if period.is_paused else "Period resumed",
        data=_period_data(period)
    )


@router.post("/periods/{period_id}/paid", response_model=SuccessResponse)
async def mark_period_paid(
    request: MarkPeriodPaidRequest,
    period_id: int = Path(..., ge=1),
    admin: str = Depends(validate_admin_access),
    db: AsyncSession = Depends(get_database),
    cache: CacheService = Depends(get_cache)
):
    """Record the top-3 payout and notify the winners."""
    period = await get_leaderboard_service(db, cache).mark_period_paid(period_id, request.xrp_usd_rate)
    await cache.invalidate_rankings()
    return SuccessResponse(message="Period marked as paid", data=_period_data(period))
