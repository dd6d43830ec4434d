"""
Payment monitor for entry-fee transfers.
Scans USDT Transfer logs block range by block range and moves payment intents
to CONFIRMING / CONFIRMED without waiting for the client to poll.
"""

import asyncio
from collections import defaultdict
from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from app.core.config import settings
from app.core.database import get_async_session
from app.core.exceptions import SchedulerError
from app.models.base import utcnow
from app.models.payment import MonitoringState, PaymentIntent, IntentStatus
from app.services.bsc_client import BscClient, TransferLog, get_bsc_client
from app.services.payment_service import PaymentService, find_matching_transfer


logger = structlog.get_logger(__name__)

SERVICE_ID = "bnb_scanner"


class PaymentMonitorStatus(Enum):
    """Status of the payment monitor."""
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class PaymentMonitorStats:
    """Statistics for payment monitor cycles."""
    cycles: int = 0
    failed_cycles: int = 0
    blocks_scanned: int = 0
    transfers_seen: int = 0
    intents_confirming: int = 0
    intents_confirmed: int = 0
    duplicates_skipped: int = 0
    last_block: Optional[int] = None
    start_time: Optional[datetime] = None
    last_run: Optional[datetime] = None


class PaymentMonitor:
    """
    Background scanner matching on-chain USDT transfers to payment intents.

    Each cycle loads PENDING / CONFIRMING intents, scans Transfer logs to each
    expected recipient from the last processed block (or the last
    ``payment_scan_window`` blocks on first run) in bounded chunks and records
    the cursor after every chunk.
    """

    def __init__(self, chain_client: Optional[BscClient] = None):
        self.logger = logger.bind(service="payment_monitor")
        self.status = PaymentMonitorStatus.STOPPED
        self.stats = PaymentMonitorStats()
        self.chain = chain_client or get_bsc_client()

        self._should_stop = False
        self._task: Optional[asyncio.Task] = None

        self.interval = settings.payment_monitor_interval
        self.scan_window = settings.payment_scan_window
        self.max_age_skew = settings.payment_max_age_skew
        self.max_block_range = max(settings.payment_max_block_range, 1)

    async def start(self) -> None:
        """Start the monitor loop."""
        if self.status == PaymentMonitorStatus.RUNNING:
            self.logger.warning("Payment monitor already running")
            return

        if not settings.payment_monitor_enabled:
            self.logger.info("Payment monitor disabled in configuration")
            return

        try:
            self.status = PaymentMonitorStatus.STARTING
            self._should_stop = False
            self.stats.start_time = utcnow()
            self._task = asyncio.create_task(self._loop())
            self.status = PaymentMonitorStatus.RUNNING
            self.logger.info("Payment monitor started", interval=self.interval)
        except Exception as e:
            self.status = PaymentMonitorStatus.ERROR
            self.logger.error("Failed to start payment monitor", error=str(e))
            raise SchedulerError(f"Failed to start payment monitor: {e}")

    async def stop(self) -> None:
        """Stop the monitor loop."""
        if self.status == PaymentMonitorStatus.STOPPED:
            return

        self.status = PaymentMonitorStatus.STOPPING
        self._should_stop = True

        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        self.status = PaymentMonitorStatus.STOPPED
        self.logger.info("Payment monitor stopped")

    async def _loop(self) -> None:
        while not self._should_stop:
            try:
                async with get_async_session() as db:
                    await self.run_cycle(db)
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.stats.failed_cycles += 1
                self.logger.error("Error in payment monitor cycle", error=str(e))

            await asyncio.sleep(self.interval)

    # ============================================================================
    # SCAN CYCLE
    # ============================================================================

    async def run_cycle(self, db: AsyncSession) -> Dict[str, Any]:
        """
        One scan over the blocks mined since the previous cycle.

        The range is walked in chunks of at most ``payment_max_block_range``
        blocks and the cursor is saved after each chunk, so a node that rejects
        wide eth_getLogs spans never pins the monitor. Idle cycles move the
        cursor to the chain head.
        """
        self.stats.cycles += 1
        self.stats.last_run = utcnow()

        current_block = await self.chain.get_block_number()
        payments = PaymentService(db, self.chain)
        intents = await payments.list_open_intents()
        if not intents:
            await self._set_last_processed_block(db, current_block)
            self.stats.last_block = current_block
            return {"scanned": False, "reason": "no_open_intents"}

        last_block = await self._get_last_processed_block(db)
        from_block = last_block + 1 if last_block > 0 else max(current_block - self.scan_window, 0)
        to_block = current_block

        if from_block > to_block:
            return {"scanned": False, "reason": "no_new_blocks"}

        by_recipient: Dict[str, List[PaymentIntent]] = defaultdict(list)
        for intent in intents:
            by_recipient[intent.expected_to_address.lower()].append(intent)

        matched: Set[int] = set()
        chunks = 0
        for chunk_start in range(from_block, to_block + 1, self.max_block_range):
            chunk_end = min(chunk_start + self.max_block_range - 1, to_block)
            self.logger.debug("Scanning block range", from_block=chunk_start, to_block=chunk_end)

            for recipient, recipient_intents in by_recipient.items():
                pending = [i for i in recipient_intents if i.id not in matched]
                if not pending:
                    continue
                transfers = await self.chain.get_transfer_logs(recipient, chunk_start, chunk_end)
                self.stats.transfers_seen += len(transfers)
                if transfers:
                    matched |= await self._match_intents(db, payments, pending, transfers, current_block)

            await self._set_last_processed_block(db, chunk_end)
            # Progress survives a later chunk failing
            await db.commit()
            self.stats.blocks_scanned += chunk_end - chunk_start + 1
            self.stats.last_block = chunk_end
            chunks += 1

        # Transfers matched in earlier ranges are only re-checked by receipt
        waiting = [
            i for i in intents
            if i.id not in matched and i.tx_hash and i.status == IntentStatus.CONFIRMING.value
        ]
        refreshed = await self._refresh_confirming(payments, waiting)
        updated = len(matched) + refreshed

        return {
            "scanned": True,
            "from_block": from_block,
            "to_block": to_block,
            "chunks": chunks,
            "updated": updated,
        }

    async def _match_intents(
        self,
        db: AsyncSession,
        payments: PaymentService,
        intents: List[PaymentIntent],
        transfers: List[TransferLog],
        current_block: int
    ) -> Set[int]:
        block_times = {}
        for block_number in {t.block_number for t in transfers}:
            timestamp = await self.chain.get_block_timestamp(block_number)
            if timestamp:
                block_times[block_number] = timestamp

        updated: Set[int] = set()
        for intent in intents:
            candidates = transfers
            if intent.tx_hash:
                candidates = [t for t in transfers if t.tx_hash == intent.tx_hash]

            match = find_matching_transfer(intent, candidates, block_times, self.max_age_skew)
            if not match:
                continue

            if await self._hash_used_elsewhere(db, match.tx_hash, intent.id):
                self.stats.duplicates_skipped += 1
                self.logger.info("Transaction already used by another intent", tx_hash=match.tx_hash)
                continue

            confirmations = current_block - match.block_number
            target = intent.target_confirmations or settings.payment_confirmations

            if confirmations >= target:
                payments.mark_confirmed(intent, match.tx_hash, confirmations)
                self.stats.intents_confirmed += 1
            else:
                payments.mark_confirming(intent, match.tx_hash, confirmations)
                self.stats.intents_confirming += 1
            updated.add(intent.id)

            self.logger.info(
                "Payment matched",
                order_id=intent.order_id,
                tx_hash=match.tx_hash,
                confirmations=confirmations,
                target=target
            )

        await db.flush()
        return updated

    async def _refresh_confirming(self, payments: PaymentService, intents: List[PaymentIntent]) -> int:
        refreshed = 0
        for intent in intents:
            check = await self.chain.verify_transaction(
                intent.tx_hash,
                expected_to=intent.expected_to_address,
                expected_amount=intent.expected_amount,
                expected_from=intent.expected_from_address
            )
            confirmations = check.get("confirmations") or 0
            if not check.get("verified") or confirmations <= (intent.confirmations or 0):
                continue

            target = intent.target_confirmations or settings.payment_confirmations
            if confirmations >= target:
                payments.mark_confirmed(intent, intent.tx_hash, confirmations)
                self.stats.intents_confirmed += 1
            else:
                intent.confirmations = confirmations
            refreshed += 1

        if refreshed:
            await payments.db.flush()
        return refreshed

    async def _hash_used_elsewhere(self, db: AsyncSession, tx_hash: str, intent_id: int) -> bool:
        result = await db.execute(
            select(PaymentIntent.id).where(
                PaymentIntent.tx_hash == tx_hash,
                PaymentIntent.id != intent_id
            )
        )
        return result.first() is not None

    async def _get_last_processed_block(self, db: AsyncSession) -> int:
        state = await db.get(MonitoringState, SERVICE_ID)
        return int(state.last_processed_block) if state and state.last_processed_block else 0

    async def _set_last_processed_block(self, db: AsyncSession, block_number: int) -> None:
        state = await db.get(MonitoringState, SERVICE_ID)
        if state is None:
            db.add(MonitoringState(service_id=SERVICE_ID, last_processed_block=block_number, updated_at=utcnow()))
        else:
            state.last_processed_block = block_number
            state.updated_at = utcnow()
        await db.flush()

    def get_status(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "stats": asdict(self.stats),
            "config": {
                "interval": self.interval,
                "scan_window": self.scan_window,
                "max_block_range": self.max_block_range,
                "confirmations": settings.payment_confirmations,
            },
        }


# Global monitor instance
_payment_monitor: Optional[PaymentMonitor] = None


def get_payment_monitor() -> PaymentMonitor:
    """Get or create the global payment monitor."""
    global _payment_monitor
    if _payment_monitor is None:
        _payment_monitor = PaymentMonitor()
    return _payment_monitor


async def shutdown_payment_monitor() -> None:
    global _payment_monitor
    if _payment_monitor:
        await _payment_monitor.stop()
        _payment_monitor = None
