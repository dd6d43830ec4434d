"""
In-app notifications for players and admins.
"""

from typing import Optional

from sqlalchemy import String, Integer, Boolean, Float, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class Notification(BaseModel, TimestampMixin):
    """A notification shown in the player's or the admin's inbox."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    wallet_address: Mapped[Optional[str]] = mapped_column(
        String(42),
        comment="Recipient wallet; empty for admin notifications"
    )

    type: Mapped[str] = mapped_column(String(32), default="trade_completed")
    title: Mapped[str] = mapped_column(String(128))
    message: Mapped[str] = mapped_column(Text)
    amount: Mapped[Optional[float]] = mapped_column(Float)
    read: Mapped[bool] = mapped_column(Boolean, default=False)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)

    __table_args__ = (
        Index("idx_notification_wallet_read", "wallet_address", "read"),
        Index("idx_notification_admin", "is_admin"),
    )
