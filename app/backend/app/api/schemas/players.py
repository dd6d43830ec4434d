"""
Pydantic schemas for player endpoints.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class UpdateProfileRequest(BaseModel):
    player_name: Optional[str] = Field(None, min_length=1, max_length=64, description="Display name")


class SellTrophiesRequest(BaseModel):
    btc_usd_rate: Optional[float] = Field(
        None,
        gt=0,
        description="BTC/USD rate; the live ticker price is used when omitted"
    )


class ScatterPickRequest(BaseModel):
    picks: List[int] = Field(..., min_length=3, max_length=3, description="Three distinct box indices (0-14)")
