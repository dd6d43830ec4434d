"""
Pydantic schemas for payment endpoints.
"""

from pydantic import BaseModel, Field

from .common import CaseNumberField, TxHashField


class CreateIntentRequest(BaseModel):
    case_number: int = CaseNumberField


class SubmitTransactionRequest(BaseModel):
    """
    Attach a broadcast transaction to an order.

    Clients should wait about 15 s, then poll the status endpoint up to 12
    times at 3 s intervals.
    """
    order_id: str = Field(..., pattern=r"^CASE-\d+-\d+$", description="Order id returned by the intent")
    tx_hash: str = TxHashField
