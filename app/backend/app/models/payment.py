"""
Entry-fee payment models: payment intents, legacy pending payments and the
block scanner's cursor.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import String, Integer, BigInteger, Float, Index, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin, utcnow


class IntentStatus(str, Enum):
    """Payment intent lifecycle (upper-case values are stored)."""
    PENDING = "PENDING"
    CONFIRMING = "CONFIRMING"
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


class PaymentIntent(BaseModel, TimestampMixin):
    """Expected entry-fee transfer; the backend's source of payment truth."""

    __tablename__ = "payment_intents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    order_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        comment="CASE-<case number>-<unix ms>"
    )

    expected_from_address: Mapped[str] = mapped_column(String(42), comment="Payer wallet")
    expected_to_address: Mapped[str] = mapped_column(String(42), comment="Game wallet")
    expected_amount: Mapped[float] = mapped_column(Float, comment="USDT amount")

    tx_hash: Mapped[Optional[str]] = mapped_column(
        String(66),
        unique=True,
        comment="Matched transaction hash"
    )

    status: Mapped[str] = mapped_column(String(20), default=IntentStatus.PENDING.value)
    confirmations: Mapped[int] = mapped_column(Integer, default=0)
    target_confirmations: Mapped[int] = mapped_column(Integer, default=6)

    __table_args__ = (
        Index("idx_payment_intent_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<PaymentIntent(order={self.order_id}, status={self.status}, tx={self.tx_hash})>"


class PendingGamePayment(BaseModel, TimestampMixin):
    """Submitted transaction waiting to become a game; carries the case number."""

    __tablename__ = "pending_game_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    wallet_address: Mapped[str] = mapped_column(String(42))
    tx_hash: Mapped[str] = mapped_column(String(66), unique=True)
    case_number: Mapped[int] = mapped_column(Integer)
    amount: Mapped[float] = mapped_column(Float, default=0.0)
    status: Mapped[str] = mapped_column(String(20), default="pending")


class MonitoringState(BaseModel):
    """Cursor of a background scanner."""

    __tablename__ = "monitoring_state"

    service_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    last_processed_block: Mapped[int] = mapped_column(BigInteger, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
