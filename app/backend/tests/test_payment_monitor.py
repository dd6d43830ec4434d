"""
Tests for the payment monitor scan cycle.
"""

import pytest
from sqlalchemy import select

from app.core.exceptions import BlockchainError
from app.models.payment import MonitoringState, PaymentIntent, IntentStatus
from app.scheduler.payment_monitor import PaymentMonitor, PaymentMonitorStatus, SERVICE_ID
from app.services.payment_service import PaymentService

from .conftest import PLAYER, OTHER_PLAYER, FakeChainClient, tx_hash


async def new_intent(db, wallet=PLAYER, case_number=3):
    return await PaymentService(db).create_payment_intent(wallet, case_number)


@pytest.mark.asyncio
async def test_cycle_without_intents(db):
    monitor = PaymentMonitor(chain_client=FakeChainClient())
    result = await monitor.run_cycle(db)
    assert result == {"scanned": False, "reason": "no_open_intents"}


@pytest.mark.asyncio
async def test_idle_cycle_moves_cursor_to_head(db):
    chain = FakeChainClient(block_number=1000)
    monitor = PaymentMonitor(chain_client=chain)

    await monitor.run_cycle(db)
    state = await db.get(MonitoringState, SERVICE_ID)
    assert state.last_processed_block == 1000

    chain.block_number = 1003
    await new_intent(db)
    result = await monitor.run_cycle(db)
    assert result["from_block"] == 1001
    assert result["to_block"] == 1003


@pytest.mark.asyncio
async def test_first_cycle_scans_recent_window(db):
    chain = FakeChainClient(block_number=1000)
    monitor = PaymentMonitor(chain_client=chain)
    await new_intent(db)

    result = await monitor.run_cycle(db)

    assert result["from_block"] == 1000 - monitor.scan_window
    assert result["to_block"] == 1000
    state = await db.get(MonitoringState, SERVICE_ID)
    assert state.last_processed_block == 1000

    chain.block_number = 1005
    result = await monitor.run_cycle(db)
    assert result["from_block"] == 1001


@pytest.mark.asyncio
async def test_matching_transfer_moves_intent_to_confirming(db):
    chain = FakeChainClient(block_number=1000)
    monitor = PaymentMonitor(chain_client=chain)
    intent = await new_intent(db)
    chain.add_transfer(tx_hash(1), PLAYER, intent.expected_to_address, intent.expected_amount, block_number=998)

    result = await monitor.run_cycle(db)

    assert result["updated"] == 1
    assert intent.status == IntentStatus.CONFIRMING.value
    assert intent.tx_hash == tx_hash(1)
    assert intent.confirmations == 2
    assert monitor.stats.intents_confirming == 1


@pytest.mark.asyncio
async def test_deep_transfer_is_confirmed(db):
    chain = FakeChainClient(block_number=1000)
    monitor = PaymentMonitor(chain_client=chain)
    intent = await new_intent(db)
    chain.add_transfer(tx_hash(1), PLAYER, intent.expected_to_address, intent.expected_amount, block_number=990)

    await monitor.run_cycle(db)

    assert intent.status == IntentStatus.CONFIRMED.value
    assert intent.confirmations == 10


@pytest.mark.asyncio
async def test_confirming_intent_is_refreshed_by_receipt(db):
    chain = FakeChainClient(block_number=1000)
    monitor = PaymentMonitor(chain_client=chain)
    intent = await new_intent(db)
    chain.add_transfer(tx_hash(1), PLAYER, intent.expected_to_address, intent.expected_amount, block_number=998)
    await monitor.run_cycle(db)
    assert intent.status == IntentStatus.CONFIRMING.value

    chain.block_number = 1010
    chain.receipts[tx_hash(1)] = {"verified": True, "failed": False, "confirmations": 12, "block_number": 998}
    result = await monitor.run_cycle(db)

    assert result["updated"] == 1
    assert intent.status == IntentStatus.CONFIRMED.value
    assert intent.confirmations == 12


@pytest.mark.asyncio
async def test_mismatched_transfers_are_ignored(db):
    chain = FakeChainClient(block_number=1000)
    monitor = PaymentMonitor(chain_client=chain)
    intent = await new_intent(db)
    chain.add_transfer(tx_hash(1), OTHER_PLAYER, intent.expected_to_address, intent.expected_amount, block_number=990)
    chain.add_transfer(tx_hash(2), PLAYER, intent.expected_to_address, 0.02, block_number=990)

    result = await monitor.run_cycle(db)

    assert result["updated"] == 0
    assert intent.status == IntentStatus.PENDING.value


@pytest.mark.asyncio
async def test_transaction_claimed_by_another_intent_is_skipped(db):
    chain = FakeChainClient(block_number=1000)
    monitor = PaymentMonitor(chain_client=chain)
    first = await new_intent(db)
    db.add(PaymentIntent(
        order_id="CASE-8-1",
        expected_from_address=PLAYER,
        expected_to_address=first.expected_to_address,
        expected_amount=first.expected_amount,
        status=IntentStatus.PENDING.value,
        target_confirmations=6,
    ))
    await db.flush()
    chain.add_transfer(tx_hash(1), PLAYER, first.expected_to_address, first.expected_amount, block_number=990)

    await monitor.run_cycle(db)

    result = await db.execute(select(PaymentIntent).where(PaymentIntent.tx_hash == tx_hash(1)))
    assert len(result.scalars().all()) == 1
    assert monitor.stats.duplicates_skipped == 1


@pytest.mark.asyncio
async def test_disabled_monitor_does_not_start():
    monitor = PaymentMonitor(chain_client=FakeChainClient())
    await monitor.start()
    assert monitor.status == PaymentMonitorStatus.STOPPED
    assert monitor.get_status()["status"] == "stopped"


class RangeLimitedChain(FakeChainClient):
    """Rejects eth_getLogs spans wider than ``max_span`` like public BSC nodes do."""

    def __init__(self, block_number: int, max_span: int = 5000, fail_from: int = None):
        super().__init__(block_number=block_number)
        self.max_span = max_span
        self.fail_from = fail_from
        self.ranges = []

    async def get_transfer_logs(self, to_address, from_block, to_block, from_address=None):
        if to_block - from_block + 1 > self.max_span:
            raise BlockchainError("RPC call failed: block range too wide", {"method": "eth_getLogs"})
        if self.fail_from is not None and from_block >= self.fail_from:
            raise BlockchainError("RPC call failed: upstream timeout", {"method": "eth_getLogs"})
        self.ranges.append((from_block, to_block))
        return await super().get_transfer_logs(to_address, from_block, to_block, from_address)


async def set_cursor(db, block_number):
    db.add(MonitoringState(service_id=SERVICE_ID, last_processed_block=block_number))
    await db.flush()


@pytest.mark.asyncio
async def test_lagging_cursor_is_scanned_in_chunks(db):
    chain = RangeLimitedChain(block_number=1_000_000)
    monitor = PaymentMonitor(chain_client=chain)
    monitor.max_block_range = 5000
    await set_cursor(db, 971_200)
    intent = await new_intent(db)
    chain.add_transfer(tx_hash(1), PLAYER, intent.expected_to_address, intent.expected_amount, block_number=999_990)

    result = await monitor.run_cycle(db)

    assert result["chunks"] == 6
    assert chain.ranges[0] == (971_201, 976_200)
    assert chain.ranges[-1] == (996_201, 1_000_000)
    assert all(end - start + 1 <= 5000 for start, end in chain.ranges)
    state = await db.get(MonitoringState, SERVICE_ID)
    assert state.last_processed_block == 1_000_000
    assert intent.status == IntentStatus.CONFIRMED.value


@pytest.mark.asyncio
async def test_failed_chunk_keeps_earlier_progress(db):
    chain = RangeLimitedChain(block_number=1_000_000, fail_from=981_201)
    monitor = PaymentMonitor(chain_client=chain)
    monitor.max_block_range = 5000
    await set_cursor(db, 971_200)
    await new_intent(db)

    with pytest.raises(BlockchainError):
        await monitor.run_cycle(db)
    await db.rollback()

    state = await db.get(MonitoringState, SERVICE_ID)
    assert state.last_processed_block == 981_200

    chain.fail_from = None
    result = await monitor.run_cycle(db)
    assert result["from_block"] == 981_201
    state = await db.get(MonitoringState, SERVICE_ID)
    assert state.last_processed_block == 1_000_000
