"""
Pydantic schemas for game endpoints.
"""

from pydantic import BaseModel, Field

from .common import CaseNumberField, TxHashField


class CreateGameRequest(BaseModel):
    """Start a game paid by a confirmed transaction."""
    case_number: int = CaseNumberField
    tx_hash: str = TxHashField
    game_fee: float = Field(..., gt=0, description="Entry fee paid in USDT")


class OpenCaseRequest(BaseModel):
    case_number: int = CaseNumberField


class FinalDecisionRequest(BaseModel):
    keep_original: bool = Field(..., description="Keep the player's case (true) or swap (false)")
