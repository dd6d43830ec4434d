"""
Admin-editable game settings.
"""

from typing import Optional

from sqlalchemy import String, Integer, Boolean, Float
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin

GAME_TYPE = "dealornodeal"


class GameSettings(BaseModel, TimestampMixin):
    """Settings row per game type."""

    __tablename__ = "game_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    game_type: Mapped[str] = mapped_column(String(32), unique=True, default=GAME_TYPE)
    entry_fee: Mapped[float] = mapped_column(Float, default=0.01, comment="Entry fee in USDT")
    game_wallet_address: Mapped[Optional[str]] = mapped_column(String(42))
    purchases_locked: Mapped[bool] = mapped_column(Boolean, default=False)
    allow_admin_during_lock: Mapped[bool] = mapped_column(Boolean, default=False)
    scatter_consecutive_wins: Mapped[int] = mapped_column(Integer, default=3)
