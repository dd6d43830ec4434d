"""
Game service - server-side authority over Deal or No Deal rounds.
Creates paid games, opens cases, records banker offers and settles the result
into XP, trophies and the scatter bonus.
"""

from typing import Any, Dict, List, Optional

from sqlalchemy import select, desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from app.game import engine
from app.game.levels import MARKETPLACE_LEVEL, get_completed_level_numbers
from app.game.rewards import calculate_xp
from app.models.base import utcnow
from app.models.game import Game, GameStatus
from app.models.payment import PaymentIntent, PendingGamePayment, IntentStatus
from app.core.exceptions import (
    ConflictError,
    GameNotFoundError,
    GameOwnershipError,
    GameStateError,
    PaymentError,
    PaymentNotConfirmedError,
    TransactionReplayError,
)
from .admin_service import load_game_settings
from .notification_service import NotificationService
from .progression_service import ProgressionService
from .scatter_service import ScatterService

logger = structlog.get_logger(__name__)


class GameService:
    """Service for playing Deal or No Deal."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(service="game_service")
        self.progression = ProgressionService(db)
        self.scatter = ScatterService(db)
        self.notifications = NotificationService(db)

    # ============================================================================
    # GAME CREATION
    # ============================================================================

    async def create_verified_game(
        self,
        wallet: str,
        case_number: int,
        game_fee: float,
        tx_hash: str,
        is_admin: bool = False
    ) -> Game:
        """
        Create a game paid by ``tx_hash``.

        The payment intent for the hash must already be CONFIRMED.
        """
        engine.validate_case_number(case_number)

        # Serializes concurrent creation attempts for the same payment
        intent = await self._get_intent(tx_hash, for_update=True)
        if not intent:
            raise PaymentError("Payment intent not found", {"tx_hash": tx_hash})

        if intent.status != IntentStatus.CONFIRMED.value:
            raise PaymentNotConfirmedError(tx_hash, intent.status)

        if intent.expected_from_address.lower() != wallet.lower():
            raise PaymentError(
                "Payment was sent from a different wallet",
                {"tx_hash": tx_hash, "wallet": wallet}
            )

        if float(intent.expected_amount) != float(game_fee):
            # The confirmed intent is authoritative; a mismatching request is only logged
            self.logger.warning(
                "Amount mismatch",
                tx_hash=tx_hash,
                intent_amount=intent.expected_amount,
                requested_amount=game_fee
            )

        existing = await self.db.execute(select(Game.id).where(Game.tx_hash == tx_hash))
        if existing.scalar_one_or_none() is not None:
            raise TransactionReplayError(tx_hash)

        game_settings = await load_game_settings(self.db)
        if game_settings.purchases_locked and not (game_settings.allow_admin_during_lock and is_admin):
            raise GameStateError("New games are currently locked. Please try again later.")

        wallet = wallet.lower()
        profile = await self.progression.get_or_create_profile(wallet)
        await self.db.flush()
        # One creator per wallet at a time, so the active-game check holds
        await self.db.refresh(profile, with_for_update=True)

        active = await self.get_active_game(wallet)
        if active:
            raise ConflictError(
                "Finish your active game before starting a new one",
                {"game_id": active.id}
            )

        game = Game(
            wallet_address=wallet,
            game_status=GameStatus.ACTIVE.value,
            player_case_number=case_number,
            case_amounts=engine.shuffle_case_amounts(),
            opened_cases=[],
            banker_offers=[],
            current_round=1,
            final_winnings=0.0,
            xp_earned=0,
            game_fee=float(intent.expected_amount),
            tx_hash=tx_hash,
            continuing_after_level9=bool(profile.chose_continue_after_level9),
        )
        try:
            async with self.db.begin_nested():
                self.db.add(game)
                await self.db.flush()
        except IntegrityError:
            self.logger.warning("Game for transaction created concurrently", tx_hash=tx_hash, wallet=wallet)
            raise TransactionReplayError(tx_hash)

        pending = await self.db.execute(
            select(PendingGamePayment).where(PendingGamePayment.tx_hash == tx_hash)
        )
        pending_payment = pending.scalar_one_or_none()
        if pending_payment:
            pending_payment.status = "confirmed"

        await self.db.flush()

        self.logger.info(
            "Game created",
            game_id=game.id,
            wallet=wallet,
            case_number=case_number,
            tx_hash=tx_hash
        )
        return game

    async def _get_intent(self, tx_hash: str, for_update: bool = False) -> Optional[PaymentIntent]:
        query = select(PaymentIntent).where(PaymentIntent.tx_hash == tx_hash)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    # ============================================================================
    # PLAY
    # ============================================================================

    async def open_case(self, game_id: int, wallet: str, case_number: int) -> Dict[str, Any]:
        """Open a case; records a pending banker offer at the end of a round."""
        game = await self._get_owned_game(game_id, wallet, for_update=True)
        outcome = engine.open_case(self._state(game), case_number)

        game.opened_cases = outcome.opened_cases
        game.banker_offers = outcome.banker_offers
        game.current_round = outcome.current_round
        await self.db.flush()

        self.logger.info(
            "Case opened",
            game_id=game.id,
            case_number=case_number,
            opened=len(outcome.opened_cases),
            banker_offer=outcome.banker_offer
        )

        return {
            "opened_amount": outcome.opened_amount,
            "should_show_offer": outcome.should_show_offer,
            "banker_offer": outcome.banker_offer,
            "round": outcome.round,
            "cases_left_in_round": engine.cases_left_in_round(len(outcome.opened_cases)),
            "is_final_decision": engine.is_final_decision(len(outcome.opened_cases)),
            "game": game,
        }

    async def refuse_offer(self, game_id: int, wallet: str) -> Game:
        """No Deal."""
        game = await self._get_owned_game(game_id, wallet, for_update=True)
        game.banker_offers = engine.refuse_offer(self._state(game))
        await self.db.flush()
        self.logger.info("Banker offer refused", game_id=game.id, refused=game.offers_refused)
        return game

    async def accept_deal(self, game_id: int, wallet: str) -> Dict[str, Any]:
        """Deal: the pending banker offer becomes the final winnings."""
        game = await self._get_owned_game(game_id, wallet, for_update=True)
        deal = engine.accept_offer(self._state(game))

        game.banker_offers = deal["banker_offers"]
        game.deal_accepted_at_round = deal["round"]
        return await self._finish_game(game, deal["winnings"], GameStatus.DEAL_ACCEPTED)

    async def final_decision(self, game_id: int, wallet: str, keep_original: bool) -> Dict[str, Any]:
        """Keep the original case or swap for the last unopened one."""
        game = await self._get_owned_game(game_id, wallet, for_update=True)
        decision = engine.final_winnings(self._state(game), keep_original)

        game.banker_offers = decision["banker_offers"]
        result = await self._finish_game(game, decision["winnings"], GameStatus.COMPLETED)
        result["won_case_number"] = decision["case_number"]
        result["kept_original"] = keep_original
        return result

    async def _finish_game(self, game: Game, winnings: float, status: GameStatus) -> Dict[str, Any]:
        game.final_winnings = float(winnings)
        game.xp_earned = calculate_xp(game.final_winnings, game.offers_refused, game.continuing_after_level9)
        game.game_status = status.value
        game.completed_at = utcnow()
        await self.db.flush()

        progression = await self.progression.apply_game_result(
            game.wallet_address, game.xp_earned, game.final_winnings
        )

        game_settings = await load_game_settings(self.db)
        scatter_triggered = await self.scatter.check_trigger(game, game_settings.scatter_consecutive_wins)

        await self._notify_finished(game, status)

        self.logger.info(
            "Game finished",
            game_id=game.id,
            status=game.game_status,
            winnings=game.final_winnings,
            xp_earned=game.xp_earned,
            offers_refused=game.offers_refused,
            scatter_triggered=scatter_triggered
        )

        return {
            "game": game,
            "final_winnings": game.final_winnings,
            "xp_earned": game.xp_earned,
            "deal_accepted": status == GameStatus.DEAL_ACCEPTED,
            "new_levels": progression["new_levels"],
            "marketplace_unlocked": progression["marketplace_unlocked"],
            "scatter_triggered": scatter_triggered,
        }

    async def _notify_finished(self, game: Game, status: GameStatus) -> None:
        amount = f"${game.final_winnings:,.2f}"
        if status == GameStatus.DEAL_ACCEPTED:
            await self.notifications.notify_player(
                game.wallet_address,
                title="Deal Accepted!",
                message=f"You accepted the Banker's offer of {amount} and earned {game.xp_earned} XP!",
                amount=game.final_winnings
            )
            await self.notifications.notify_admin(
                title="Deal Accepted by Player",
                message=f"Player accepted the Banker's offer of {amount}.",
                amount=game.final_winnings,
                wallet=game.wallet_address
            )
        else:
            await self.notifications.notify_player(
                game.wallet_address,
                title="Deal or No Deal Game Completed",
                message=f"Your game has ended! You won {amount} and earned {game.xp_earned} XP.",
                amount=game.final_winnings
            )
            await self.notifications.notify_admin(
                title="Game Completed",
                message=f"Game completed with winnings: {amount}.",
                amount=game.final_winnings,
                wallet=game.wallet_address
            )

    # ============================================================================
    # LEVEL 9 BRANCH
    # ============================================================================

    async def continue_after_level9(self, wallet: str) -> Dict[str, Any]:
        """Keep playing for 1 BTC; refusal XP drops to 25 per offer."""
        profile = await self.progression.get_profile(wallet)
        completed = get_completed_level_numbers(profile.total_xp) if profile else []
        if not completed or completed[-1] < MARKETPLACE_LEVEL:
            raise GameStateError("Continuing is only possible after completing level 9")

        profile.chose_continue_after_level9 = True
        active = await self.get_active_game(profile.wallet_address)
        if active:
            active.continuing_after_level9 = True
        await self.db.flush()

        self.logger.info("Player continues after level 9", wallet=profile.wallet_address)
        return {
            "chose_continue_after_level9": True,
            "active_game_id": active.id if active else None,
        }

    # ============================================================================
    # QUERY METHODS
    # ============================================================================

    async def get_game(self, game_id: int, wallet: str) -> Game:
        return await self._get_owned_game(game_id, wallet)

    async def get_active_game(self, wallet: str) -> Optional[Game]:
        result = await self.db.execute(
            select(Game)
            .where(
                Game.wallet_address == wallet.lower(),
                Game.game_status == GameStatus.ACTIVE.value
            )
            .order_by(desc(Game.created_at))
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_games(self, wallet: str, limit: int = 20, offset: int = 0) -> List[Game]:
        result = await self.db.execute(
            select(Game)
            .where(Game.wallet_address == wallet.lower())
            .order_by(desc(Game.created_at), desc(Game.id))
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def _get_owned_game(self, game_id: int, wallet: str, for_update: bool = False) -> Game:
        query = select(Game).where(Game.id == game_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        game = result.scalar_one_or_none()
        if not game:
            raise GameNotFoundError(game_id)
        if game.wallet_address != wallet.lower():
            raise GameOwnershipError(wallet, game_id)
        return game

    @staticmethod
    def _state(game: Game) -> engine.GameState:
        return engine.GameState(
            case_amounts=list(game.case_amounts),
            player_case=game.player_case_number,
            opened_cases=list(game.opened_cases or []),
            status=game.game_status,
            banker_offers=list(game.banker_offers or []),
        )


def serialize_game(game: Game) -> Dict[str, Any]:
    """
    Public view of a game.

    Unopened case values stay hidden while the game is active; the board of
    remaining prize amounts is exposed without the case mapping.
    """
    opened = list(game.opened_cases or [])
    finished = not game.is_active
    revealed = {
        str(case_number): game.case_amounts[case_number - 1]
        for case_number in range(1, engine.TOTAL_CASES + 1)
        if finished or case_number in opened
    }
    remaining = sorted(engine.remaining_amounts(game.case_amounts, opened, game.player_case_number))
    pending = game.pending_offer

    return {
        "id": game.id,
        "wallet_address": game.wallet_address,
        "game_status": game.game_status,
        "player_case_number": game.player_case_number,
        "opened_cases": opened,
        "revealed_amounts": revealed,
        "remaining_amounts": remaining,
        "banker_offers": list(game.banker_offers or []),
        "pending_offer": pending["amount"] if pending else None,
        "current_round": game.current_round,
        "cases_left_in_round": engine.cases_left_in_round(len(opened)),
        "is_final_decision": game.is_active and engine.is_final_decision(len(opened)),
        "final_winnings": game.final_winnings,
        "xp_earned": game.xp_earned,
        "deal_accepted_at_round": game.deal_accepted_at_round,
        "game_fee": game.game_fee,
        "tx_hash": game.tx_hash,
        "continuing_after_level9": game.continuing_after_level9,
        "created_at": game.created_at,
        "completed_at": game.completed_at,
    }


def get_game_service(db: AsyncSession) -> GameService:
    """Get game service instance."""
    return GameService(db)
