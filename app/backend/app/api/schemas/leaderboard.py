"""
Pydantic schemas for leaderboard endpoints.
"""

from pydantic import BaseModel, Field


class MarkPeriodPaidRequest(BaseModel):
    xrp_usd_rate: float = Field(..., gt=0, description="XRP/USD rate at payout time")
