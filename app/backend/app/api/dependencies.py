"""
FastAPI dependencies.

Players authenticate with ``Authorization: Bearer <0x wallet>``; the wallet
is lower-cased before it reaches any service. Admin rights come from the
ADMIN_WALLETS setting.
"""

from typing import AsyncGenerator, NamedTuple, Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from app.cache.cache_service import CacheService, get_cache_service
from app.core.config import settings
from app.core.database import get_async_session
from app.core.exceptions import AuthenticationError, AuthorizationError, ValidationError
from app.services.market_ticker import MarketTicker, get_market_ticker
from app.utils.validation import normalize_wallet


logger = structlog.get_logger(__name__)

wallet_auth_scheme = HTTPBearer(auto_error=False, description="0x wallet address")


class PlayerIdentity(NamedTuple):
    wallet: str
    is_admin: bool


async def get_database() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; committed after the handler returns."""
    async with get_async_session() as session:
        yield session


async def get_cache() -> CacheService:
    return await get_cache_service()


def get_ticker() -> MarketTicker:
    return get_market_ticker()


def is_admin_wallet(wallet: Optional[str]) -> bool:
    return bool(wallet) and wallet.lower() in settings.admin_wallet_list


async def get_optional_wallet_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(wallet_auth_scheme)
) -> Optional[str]:
    if credentials is None:
        return None
    try:
        return normalize_wallet(credentials.credentials)
    except ValidationError:
        logger.warning("Rejected malformed wallet token", token=credentials.credentials[:10])
        return None


async def get_required_wallet_auth(
    wallet: Optional[str] = Depends(get_optional_wallet_auth)
) -> str:
    if wallet is None:
        raise AuthenticationError("Wallet authentication required")
    return wallet


async def get_player_identity(
    wallet: str = Depends(get_required_wallet_auth)
) -> PlayerIdentity:
    """Wallet plus admin flag; admins may bypass purchase locks."""
    return PlayerIdentity(wallet=wallet, is_admin=is_admin_wallet(wallet))


async def validate_admin_access(
    player: PlayerIdentity = Depends(get_player_identity)
) -> str:
    if not player.is_admin:
        logger.warning("Admin access denied", wallet=player.wallet)
        raise AuthorizationError("Admin access required", {"wallet": player.wallet})
    return player.wallet
