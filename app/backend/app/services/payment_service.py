"""
Entry-fee payment service.

Payment intents are the backend's record of an expected USDT transfer. The
client polls check_game_payment_status() until the intent is CONFIRMED (by the
background monitor or by the on-chain check in the poll itself) and the game
is created. Suggested client cadence: wait 15 s, then poll every 3 s up to 12
times.
"""

import time
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from app.core.config import settings
from app.core.exceptions import (
    AuthorizationError,
    ConflictError,
    DealOrNoDealException,
    GameStateError,
    NotFoundError,
    TransactionReplayError,
)
from app.game import engine
from app.models.game import Game
from app.models.payment import PaymentIntent, PendingGamePayment, IntentStatus
from app.utils.validation import parse_case_from_order_id
from .admin_service import load_game_settings
from .bsc_client import BscClient, TransferLog, to_raw_amount
from .game_service import GameService

logger = structlog.get_logger(__name__)

OPEN_STATUSES = (IntentStatus.PENDING.value, IntentStatus.CONFIRMING.value)


def make_order_id(case_number: int, now_ms: Optional[int] = None) -> str:
    """``CASE-<case number>-<unix ms>``"""
    return f"CASE-{case_number}-{now_ms if now_ms is not None else int(time.time() * 1000)}"


def find_matching_transfer(
    intent: PaymentIntent,
    transfers: Iterable[TransferLog],
    block_times: Dict[int, datetime],
    max_age_skew: int = 600
) -> Optional[TransferLog]:
    """
    First transfer paying ``intent``: same sender and recipient
    (case-insensitive) and exactly the expected raw amount. Transfers mined
    more than ``max_age_skew`` seconds before the intent was created are
    ignored.
    """
    sender = intent.expected_from_address.lower()
    receiver = intent.expected_to_address.lower()
    expected_raw = to_raw_amount(intent.expected_amount)
    oldest = intent.created_at - timedelta(seconds=max_age_skew) if intent.created_at else None

    for transfer in transfers:
        if transfer.to_address != receiver or transfer.from_address != sender:
            continue
        if transfer.value != expected_raw:
            continue
        mined_at = block_times.get(transfer.block_number)
        if oldest and mined_at and mined_at < oldest:
            continue
        return transfer
    return None


class PaymentService:
    """Service for entry-fee payments."""

    def __init__(self, db: AsyncSession, chain_client: Optional[BscClient] = None):
        self.db = db
        self.chain = chain_client
        self.logger = logger.bind(service="payment_service")

    # ============================================================================
    # INTENTS
    # ============================================================================

    async def create_payment_intent(self, wallet: str, case_number: int, is_admin: bool = False) -> PaymentIntent:
        """Record the transfer the player is about to make."""
        engine.validate_case_number(case_number)

        game_settings = await load_game_settings(self.db)
        if game_settings.purchases_locked and not (game_settings.allow_admin_during_lock and is_admin):
            raise GameStateError("New games are currently locked. Please try again later.")

        intent = PaymentIntent(
            order_id=make_order_id(case_number),
            expected_from_address=wallet.lower(),
            expected_to_address=(game_settings.game_wallet_address or settings.default_game_wallet).lower(),
            expected_amount=float(game_settings.entry_fee or settings.default_entry_fee),
            status=IntentStatus.PENDING.value,
            confirmations=0,
            target_confirmations=settings.payment_confirmations,
        )
        self.db.add(intent)
        await self.db.flush()

        self.logger.info(
            "Payment intent created",
            order_id=intent.order_id,
            wallet=intent.expected_from_address,
            amount=intent.expected_amount
        )
        return intent

    async def get_intent_by_order(self, order_id: str) -> Optional[PaymentIntent]:
        result = await self.db.execute(select(PaymentIntent).where(PaymentIntent.order_id == order_id))
        return result.scalar_one_or_none()

    async def get_intent_by_hash(self, tx_hash: str) -> Optional[PaymentIntent]:
        result = await self.db.execute(select(PaymentIntent).where(PaymentIntent.tx_hash == tx_hash))
        return result.scalar_one_or_none()

    async def submit_transaction(self, order_id: str, wallet: str, tx_hash: str) -> PaymentIntent:
        """Attach the broadcast transaction hash to an intent."""
        intent = await self.get_intent_by_order(order_id)
        if not intent:
            raise NotFoundError(f"Payment intent not found: {order_id}", {"order_id": order_id})

        if intent.expected_from_address != wallet.lower():
            raise AuthorizationError("Payment intent belongs to another wallet", {"order_id": order_id})

        if intent.tx_hash and intent.tx_hash != tx_hash:
            raise ConflictError(
                "A different transaction is already attached to this order",
                {"order_id": order_id, "tx_hash": intent.tx_hash}
            )

        other = await self.get_intent_by_hash(tx_hash)
        if other and other.id != intent.id:
            raise TransactionReplayError(tx_hash)

        used = await self.db.execute(select(Game.id).where(Game.tx_hash == tx_hash))
        if used.scalar_one_or_none() is not None:
            raise TransactionReplayError(tx_hash)

        intent.tx_hash = tx_hash
        if intent.status in OPEN_STATUSES:
            intent.status = IntentStatus.CONFIRMING.value

        pending = await self.db.execute(select(PendingGamePayment).where(PendingGamePayment.tx_hash == tx_hash))
        if pending.scalar_one_or_none() is None:
            self.db.add(PendingGamePayment(
                wallet_address=intent.expected_from_address,
                tx_hash=tx_hash,
                case_number=parse_case_from_order_id(order_id),
                amount=intent.expected_amount,
                status="pending",
            ))

        await self.db.flush()
        self.logger.info("Transaction submitted", order_id=order_id, tx_hash=tx_hash)
        return intent

    # ============================================================================
    # STATUS POLLING
    # ============================================================================

    async def check_game_payment_status(self, tx_hash: str) -> Dict[str, Any]:
        """
        Poll the payment behind ``tx_hash``; creates the game once confirmed.

        Returns a dict with ``status`` in ``completed`` (with ``game_id``),
        ``confirming`` (with ``confirmations`` / ``required``) or ``failed``
        (with ``error``). The admin lock bypass follows the wallet that paid,
        not the wallet that polls.
        """
        existing = await self.db.execute(select(Game.id).where(Game.tx_hash == tx_hash))
        game_id = existing.scalar_one_or_none()
        if game_id is not None:
            return {"status": "completed", "game_id": game_id}

        required = settings.payment_confirmations
        intent = await self.get_intent_by_hash(tx_hash)

        if not intent:
            pending = await self._get_pending(tx_hash)
            if not pending:
                return {"status": "failed", "error": "Payment record not found"}
            return {"status": "confirming", "confirmations": 0, "required": required}

        if intent.status == IntentStatus.CONFIRMED.value:
            return await self._process_confirmed(tx_hash, intent)

        if intent.status == IntentStatus.FAILED.value:
            return {"status": "failed", "error": "Payment verification failed on blockchain"}

        check = {"verified": False, "failed": False, "confirmations": 0}
        if self.chain is not None:
            try:
                check = await self.chain.verify_transaction(
                    tx_hash,
                    expected_to=intent.expected_to_address,
                    expected_amount=intent.expected_amount,
                    expected_from=intent.expected_from_address
                )
            except DealOrNoDealException as e:
                self.logger.warning("On-chain verification unavailable", tx_hash=tx_hash, error=e.message)

        target = intent.target_confirmations or required
        if check.get("verified") and check.get("confirmations", 0) >= target:
            self.mark_confirmed(intent, tx_hash, check["confirmations"])
            await self.db.flush()
            return await self._process_confirmed(tx_hash, intent)

        if check.get("failed") and check.get("confirmations", 0) >= target:
            intent.status = IntentStatus.FAILED.value
            await self.db.flush()
            self.logger.warning("Payment failed verification", tx_hash=tx_hash, order_id=intent.order_id)
            return {"status": "failed", "error": "Payment verification failed on blockchain"}

        confirmations = check.get("confirmations") or intent.confirmations or 0
        return {"status": "confirming", "confirmations": confirmations, "required": target}

    async def _get_pending(self, tx_hash: str) -> Optional[PendingGamePayment]:
        result = await self.db.execute(select(PendingGamePayment).where(PendingGamePayment.tx_hash == tx_hash))
        return result.scalar_one_or_none()

    async def _process_confirmed(self, tx_hash: str, intent: PaymentIntent) -> Dict[str, Any]:
        pending = await self._get_pending(tx_hash)
        case_number = pending.case_number if pending and pending.case_number else parse_case_from_order_id(intent.order_id)
        if not case_number:
            self.logger.error("Case number not found for confirmed payment", tx_hash=tx_hash)
            return {"status": "failed", "error": "Case number not found for confirmed payment"}

        try:
            game = await GameService(self.db).create_verified_game(
                wallet=intent.expected_from_address,
                case_number=case_number,
                game_fee=intent.expected_amount,
                tx_hash=tx_hash,
                is_admin=intent.expected_from_address.lower() in settings.admin_wallet_list
            )
        except TransactionReplayError as e:
            # Another poll or /games request created the game first
            existing = await self.db.execute(select(Game.id).where(Game.tx_hash == tx_hash))
            game_id = existing.scalar_one_or_none()
            if game_id is None:
                self.logger.error("Game creation failed", tx_hash=tx_hash, error=e.message)
                return {"status": "failed", "error": e.message}
            return {"status": "completed", "game_id": game_id}
        except DealOrNoDealException as e:
            self.logger.error("Game creation failed", tx_hash=tx_hash, error=e.message)
            return {"status": "failed", "error": e.message}

        return {"status": "completed", "game_id": game.id}

    # ============================================================================
    # STATE TRANSITIONS
    # ============================================================================

    def mark_confirmed(self, intent: PaymentIntent, tx_hash: str, confirmations: int) -> None:
        intent.status = IntentStatus.CONFIRMED.value
        intent.confirmations = confirmations
        if not intent.tx_hash:
            intent.tx_hash = tx_hash
        self.logger.info(
            "Payment confirmed",
            order_id=intent.order_id,
            tx_hash=tx_hash,
            confirmations=confirmations
        )

    def mark_confirming(self, intent: PaymentIntent, tx_hash: str, confirmations: int) -> None:
        intent.status = IntentStatus.CONFIRMING.value
        intent.confirmations = confirmations
        if not intent.tx_hash:
            intent.tx_hash = tx_hash

    async def list_open_intents(self) -> list:
        result = await self.db.execute(
            select(PaymentIntent)
            .where(PaymentIntent.status.in_(OPEN_STATUSES))
            .order_by(PaymentIntent.created_at)
        )
        return list(result.scalars().all())


def get_payment_service(db: AsyncSession, chain_client: Optional[BscClient] = None) -> PaymentService:
    """Get payment service instance."""
    return PaymentService(db, chain_client)
