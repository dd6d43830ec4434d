"""
Response envelope and field types shared by every router.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from app.game.engine import TOTAL_CASES
from app.models.base import utcnow


class APIResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class SuccessResponse(APIResponse):
    data: Optional[Any] = None


class ErrorResponse(APIResponse):
    """Body of every 4xx/5xx raised from a domain exception."""
    success: bool = False
    error_code: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class HealthCheckResponse(BaseModel):
    status: str = "healthy"
    timestamp: datetime = Field(default_factory=utcnow)
    version: str
    services: Dict[str, str] = Field(default_factory=dict)


TxHashField = Field(
    pattern=r"^0x[0-9a-fA-F]{64}$",
    description="BNB Smart Chain transaction hash"
)

CaseNumberField = Field(
    ge=1,
    le=TOTAL_CASES,
    description=f"Case number (1-{TOTAL_CASES})"
)


def create_error_response(
    message: str,
    error_code: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None
) -> ErrorResponse:
    return ErrorResponse(message=message, error_code=error_code, details=details)
