"""
API routes for player profiles, levels and trophies.
"""

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_database, get_required_wallet_auth, get_ticker
from app.api.schemas.common import SuccessResponse
from app.api.schemas.players import UpdateProfileRequest, SellTrophiesRequest
from app.game.levels import XP_LEVELS, BTC_REWARD_TIER
from app.services.admin_service import get_admin_service
from app.services.market_ticker import MarketTicker
from app.services.progression_service import get_progression_service, DEFAULT_TROPHY_BTC_PRICES
from app.utils.validation import normalize_wallet

router = APIRouter()


@router.get("/levels", response_model=SuccessResponse)
async def get_levels():
    """The level table and the 1 BTC ceiling."""
    return SuccessResponse(data={
        "levels": [tier.to_dict() for tier in XP_LEVELS],
        "btc_reward": BTC_REWARD_TIER.to_dict(),
    })


@router.get("/trophy-prices", response_model=SuccessResponse)
async def get_trophy_prices(
    db: AsyncSession = Depends(get_database),
    ticker: MarketTicker = Depends(get_ticker)
):
    """Sale price of each trophy in BTC and, when the ticker is live, USDT."""
    catalogue = {t.level: t for t in await get_admin_service(db).list_trophies()}
    prices = []
    for level, default_price in DEFAULT_TROPHY_BTC_PRICES.items():
        trophy = catalogue.get(level)
        btc_price = trophy.btc_sale_price if trophy and trophy.btc_sale_price else default_price
        prices.append({
            "level": level,
            "god_name": trophy.god_name if trophy else None,
            "btc_price": btc_price,
            "usdt_value": ticker.trophy_usdt_value(btc_price),
        })
    return SuccessResponse(data={"btc_usd": ticker.get_btc_price(), "prices": prices})


@router.get("/me", response_model=SuccessResponse)
async def get_my_profile(
    wallet: str = Depends(get_required_wallet_auth),
    db: AsyncSession = Depends(get_database)
):
    service = get_progression_service(db)
    await service.get_or_create_profile(wallet)
    return SuccessResponse(data=await service.get_profile_summary(wallet))


@router.put("/me", response_model=SuccessResponse)
async def update_my_profile(
    request: UpdateProfileRequest,
    wallet: str = Depends(get_required_wallet_auth),
    db: AsyncSession = Depends(get_database)
):
    service = get_progression_service(db)
    if request.player_name:
        await service.rename_player(wallet, request.player_name)
    else:
        await service.get_or_create_profile(wallet)
    return SuccessResponse(message="Profile updated", data=await service.get_profile_summary(wallet))


@router.get("/me/trophies", response_model=SuccessResponse)
async def get_my_trophies(
    wallet: str = Depends(get_required_wallet_auth),
    db: AsyncSession = Depends(get_database)
):
    trophies = await get_progression_service(db).get_player_trophies(wallet)
    return SuccessResponse(data=[t.to_dict() for t in trophies])


@router.post("/me/sell-trophies", response_model=SuccessResponse)
async def sell_trophies(
    request: SellTrophiesRequest,
    wallet: str = Depends(get_required_wallet_auth),
    db: AsyncSession = Depends(get_database),
    ticker: MarketTicker = Depends(get_ticker)
):
    """Sell trophies 0-9 after completing level 9 and restart from level 0."""
    rate = request.btc_usd_rate or ticker.get_btc_price()
    sale = await get_progression_service(db).sell_trophies(wallet, rate)
    return SuccessResponse(message="Trophies sold. Admin will process payment.", data=sale.to_dict())


@router.get("/{wallet}", response_model=SuccessResponse)
async def get_player(
    wallet: str = Path(..., description="Player wallet address"),
    db: AsyncSession = Depends(get_database)
):
    summary = await get_progression_service(db).get_profile_summary(normalize_wallet(wallet))
    return SuccessResponse(data=summary)
