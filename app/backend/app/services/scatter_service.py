"""
Scatter bonus service: trigger detection after $1M wins and the bonus pick round.
"""

from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, desc
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from app.game.scatter import (
    DEFAULT_CONSECUTIVE_WINS,
    SCATTER_TRIGGER_WINNINGS,
    already_triggered,
    is_trigger_streak,
    scatter_total,
    shuffle_boxes,
    validate_picks,
)
from app.models.game import Game, FINISHED_STATUSES
from app.models.payout import ScatterWin, PayoutStatus
from app.core.exceptions import GameStateError
from .progression_service import ProgressionService
from .notification_service import NotificationService

logger = structlog.get_logger(__name__)

PENDING_MESSAGE = "You have a pending Scatter Bonus!"


class ScatterService:
    """Service for the scatter bonus round."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(service="scatter_service")
        self.progression = ProgressionService(db)
        self.notifications = NotificationService(db)

    async def check_trigger(self, game: Game, required_wins: Optional[int] = None) -> bool:
        """
        Flag a pending scatter when the wallet's last N finished games all
        won $1,000,000 and no scatter was paid for that exact set of games.
        """
        if game.final_winnings != SCATTER_TRIGGER_WINNINGS:
            return False

        required = required_wins or DEFAULT_CONSECUTIVE_WINS
        result = await self.db.execute(
            select(Game)
            .where(
                Game.wallet_address == game.wallet_address,
                Game.game_status.in_(FINISHED_STATUSES)
            )
            .order_by(desc(Game.created_at), desc(Game.id))
            .limit(required)
        )
        recent = list(result.scalars().all())

        if not is_trigger_streak([g.final_winnings for g in recent], required):
            return False

        game_ids = [g.id for g in recent]
        previous = await self.db.execute(
            select(ScatterWin.triggering_games).where(ScatterWin.wallet_address == game.wallet_address)
        )
        if already_triggered(game_ids, previous.scalars().all()):
            self.logger.debug("Scatter already paid for these games", wallet=game.wallet_address, games=game_ids)
            return False

        profile = await self.progression.get_or_create_profile(game.wallet_address)
        if profile.scatter_pending and already_triggered(game_ids, [profile.scatter_trigger_games or []]):
            return False

        profile.scatter_pending = True
        profile.scatter_trigger_games = sorted(game_ids)
        await self.db.flush()

        self.logger.info("Scatter bonus triggered", wallet=game.wallet_address, games=game_ids)
        return True

    async def check_pending_scatter(self, wallet: str) -> Dict[str, Any]:
        profile = await self.progression.get_profile(wallet)
        pending = bool(profile and profile.scatter_pending)
        return {
            "has_pending_scatter": pending,
            "message": PENDING_MESSAGE if pending else None,
        }

    async def play_scatter(self, wallet: str, picks: Sequence[int], required_wins: Optional[int] = None) -> ScatterWin:
        """Resolve the pending bonus with the player's three picks."""
        picks = validate_picks(picks)

        profile = await self.progression.get_profile(wallet)
        if not profile or not profile.scatter_pending:
            raise GameStateError("No pending Scatter Bonus")

        boxes = shuffle_boxes()
        total = scatter_total(boxes, picks)

        scatter = ScatterWin(
            wallet_address=profile.wallet_address,
            player_name=profile.player_name or "Anonymous",
            boxes_picked=picks,
            box_amounts=boxes,
            total_winnings=total,
            triggering_games=list(profile.scatter_trigger_games or []),
            status=PayoutStatus.PENDING.value,
        )
        self.db.add(scatter)

        profile.scatter_pending = False
        profile.scatter_trigger_games = None
        await self.db.flush()

        streak = required_wins or DEFAULT_CONSECUTIVE_WINS
        await self.notifications.notify_player(
            profile.wallet_address,
            title="SCATTER BONUS WON!",
            message=(
                f"Congratulations! You triggered the Scatter Bonus by winning $1,000,000 "
                f"{streak} times in a row! You won ${total:.2f} from Scatter! Admin will process payment."
            ),
            amount=total
        )
        await self.notifications.notify_admin(
            title="Scatter Bonus - Payment Pending",
            message=(
                f"Player {scatter.player_name} won Scatter Bonus: ${total:.2f}. "
                f"Check Scatter Sales panel to process payment."
            ),
            amount=total,
            wallet=profile.wallet_address
        )

        self.logger.info("Scatter bonus played", wallet=profile.wallet_address, picks=picks, total=total)
        return scatter

    async def list_for_wallet(self, wallet: str) -> List[ScatterWin]:
        result = await self.db.execute(
            select(ScatterWin)
            .where(ScatterWin.wallet_address == wallet.lower())
            .order_by(desc(ScatterWin.created_at), desc(ScatterWin.id))
        )
        return list(result.scalars().all())


def get_scatter_service(db: AsyncSession) -> ScatterService:
    """Get scatter service instance."""
    return ScatterService(db)
