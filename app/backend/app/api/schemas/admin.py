"""
Pydantic schemas for admin endpoints.
"""

from typing import Optional

from pydantic import BaseModel, Field


class MarkPaidRequest(BaseModel):
    payout_tx_hash: Optional[str] = Field(None, max_length=66, description="Payout transaction hash")


class ManualPayoutRequest(BaseModel):
    wallet_address: str = Field(..., pattern=r"^0x[0-9a-fA-F]{40}$")
    amount: float = Field(..., gt=0)
    currency: str = Field("USDT", max_length=10)
    reason: Optional[str] = Field(None, max_length=500)
    tx_hash: Optional[str] = Field(None, max_length=66)
    player_name: Optional[str] = Field(None, max_length=64)


class TrophyRequest(BaseModel):
    god_name: Optional[str] = Field(None, max_length=32)
    nft_image_url: Optional[str] = Field(None, max_length=500)
    btc_sale_price: Optional[float] = Field(None, ge=0)


class AwardTrophyRequest(BaseModel):
    wallet_address: str = Field(..., pattern=r"^0x[0-9a-fA-F]{40}$")
    level: int = Field(..., ge=0, le=13)


class GameSettingsRequest(BaseModel):
    entry_fee: Optional[float] = Field(None, gt=0)
    game_wallet_address: Optional[str] = Field(None, pattern=r"^0x[0-9a-fA-F]{40}$")
    purchases_locked: Optional[bool] = None
    allow_admin_during_lock: Optional[bool] = None
    scatter_consecutive_wins: Optional[int] = Field(None, ge=1)


class SetPlayerLevelRequest(BaseModel):
    wallet_address: str = Field(..., pattern=r"^0x[0-9a-fA-F]{40}$")
    target_level: int = Field(..., ge=0, le=13)
    exact_xp: Optional[int] = Field(None, ge=0)
