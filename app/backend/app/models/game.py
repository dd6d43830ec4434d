"""
Deal or No Deal game model.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import String, Integer, Boolean, Float, Index, JSON, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class GameStatus(str, Enum):
    """Lifecycle of a game."""
    ACTIVE = "active"
    DEAL_ACCEPTED = "deal_accepted"
    COMPLETED = "completed"


class OfferStatus(str, Enum):
    """Lifecycle of a single banker offer."""
    PENDING = "pending"
    REFUSED = "refused"
    ACCEPTED = "accepted"


FINISHED_STATUSES = (GameStatus.DEAL_ACCEPTED.value, GameStatus.COMPLETED.value)


class Game(BaseModel, TimestampMixin):
    """One paid round of Deal or No Deal."""

    __tablename__ = "deal_or_no_deal_games"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    wallet_address: Mapped[str] = mapped_column(
        String(42),
        comment="Owner wallet (lower-cased)"
    )

    game_status: Mapped[str] = mapped_column(
        String(20),
        default=GameStatus.ACTIVE.value,
        comment="active, deal_accepted or completed"
    )

    player_case_number: Mapped[int] = mapped_column(
        Integer,
        comment="Case chosen by the player (1-26)"
    )

    # Board state; lists are replaced, never mutated in place
    case_amounts: Mapped[List[float]] = mapped_column(
        JSON,
        comment="Prize amount per case, index = case number - 1"
    )

    opened_cases: Mapped[List[int]] = mapped_column(
        JSON,
        default=list,
        comment="Opened case numbers in opening order"
    )

    banker_offers: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSON,
        default=list,
        comment="Banker offers with round, cases_opened, amount and status"
    )

    current_round: Mapped[int] = mapped_column(
        Integer,
        default=1,
        comment="Current elimination round"
    )

    # Outcome
    final_winnings: Mapped[float] = mapped_column(
        Float,
        default=0.0,
        comment="Winnings in USD once the game is finished"
    )

    xp_earned: Mapped[int] = mapped_column(
        Integer,
        default=0,
        comment="XP awarded for this game"
    )

    deal_accepted_at_round: Mapped[Optional[int]] = mapped_column(
        Integer,
        comment="Round in which the banker's offer was accepted"
    )

    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        comment="When the game finished"
    )

    # Payment
    game_fee: Mapped[float] = mapped_column(
        Float,
        default=0.0,
        comment="Entry fee paid in USDT"
    )

    tx_hash: Mapped[Optional[str]] = mapped_column(
        String(66),
        unique=True,
        comment="Entry-fee transaction hash"
    )

    continuing_after_level9: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        comment="Reduced refusal XP applies to this game"
    )

    __table_args__ = (
        Index("idx_game_wallet_status", "wallet_address", "game_status"),
        Index("idx_game_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Game(id={self.id}, wallet={self.wallet_address}, status={self.game_status})>"

    @property
    def is_active(self) -> bool:
        return self.game_status == GameStatus.ACTIVE.value

    @property
    def pending_offer(self) -> Optional[Dict[str, Any]]:
        """The banker offer awaiting Deal / No Deal, if any."""
        for offer in reversed(self.banker_offers or []):
            if offer.get("status") == OfferStatus.PENDING.value:
                return offer
        return None

    @property
    def offers_refused(self) -> int:
        return sum(
            1 for offer in (self.banker_offers or [])
            if offer.get("status") == OfferStatus.REFUSED.value
        )
