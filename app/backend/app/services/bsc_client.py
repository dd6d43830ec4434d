"""
BNB Smart Chain client.

Reads blocks, receipts and BEP-20 USDT Transfer logs through web3's async
HTTP provider. Transfer events are decoded against a minimal token ABI.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Awaitable, Dict, List, Optional

import aiohttp
import structlog
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import (
    BlockNotFound,
    LogTopicError,
    MismatchedABI,
    TransactionNotFound,
    Web3Exception,
)
from web3.logs import DISCARD

from app.core.config import ChainConfig
from app.core.exceptions import BlockchainError

logger = structlog.get_logger(__name__)

TRANSFER_EVENT_ABI = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "from", "type": "address"},
            {"indexed": True, "name": "to", "type": "address"},
            {"indexed": False, "name": "value", "type": "uint256"},
        ],
        "name": "Transfer",
        "type": "event",
    }
]

# web3 raised ValueError for JSON-RPC errors before Web3RPCError existed
RPC_ERRORS = (Web3Exception, ValueError, aiohttp.ClientError, asyncio.TimeoutError)


@dataclass
class TransferLog:
    """Decoded ERC-20 Transfer event."""
    tx_hash: str
    block_number: int
    log_index: int
    from_address: str
    to_address: str
    value: int


def to_raw_amount(amount: float, decimals: int = ChainConfig.USDT_DECIMALS) -> int:
    """Token amount in base units, parsed from its decimal string."""
    return int(Decimal(str(amount)) * (Decimal(10) ** decimals))


def from_raw_amount(raw: int, decimals: int = ChainConfig.USDT_DECIMALS) -> float:
    return float(Decimal(raw) / (Decimal(10) ** decimals))


def address_topic(address: str) -> str:
    """Address left-padded to a 32-byte log topic."""
    return "0x" + address.lower()[2:].rjust(64, "0")


class BscClient:
    """Async web3 client for BNB Smart Chain."""

    def __init__(
        self,
        endpoint: Optional[str] = None,
        timeout: Optional[int] = None,
        token_address: str = ChainConfig.USDT_CONTRACT
    ):
        config = ChainConfig.get_rpc_config()
        self.endpoint = endpoint or config["endpoint"]
        self.timeout = timeout or config["timeout"]
        self.token_address = Web3.to_checksum_address(token_address)
        self.logger = logger.bind(service="bsc_client")
        self.w3 = AsyncWeb3(AsyncHTTPProvider(self.endpoint))
        self.token = self.w3.eth.contract(address=self.token_address, abi=TRANSFER_EVENT_ABI)
        self._session: Optional[aiohttp.ClientSession] = None
        self._block_times: Dict[int, datetime] = {}

    async def _get_session(self) -> aiohttp.ClientSession:
        """Own the provider's HTTP session so timeouts apply and close() releases it."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
            await self.w3.provider.cache_async_session(self._session)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _call(self, method: str, request: Awaitable[Any]) -> Any:
        """Await one RPC request; not-found results become None, failures BlockchainError."""
        await self._get_session()
        try:
            return await request
        except (TransactionNotFound, BlockNotFound):
            return None
        except RPC_ERRORS as e:
            raise BlockchainError(f"RPC call failed: {e}", {"method": method})

    # ============================================================================
    # READS
    # ============================================================================

    async def get_block_number(self) -> int:
        return await self._call("eth_blockNumber", self.w3.eth.block_number)

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await self._call("eth_getTransactionReceipt", self.w3.eth.get_transaction_receipt(tx_hash))

    async def get_block_timestamp(self, block_number: int) -> Optional[datetime]:
        """Naive UTC block time, cached per block."""
        if block_number in self._block_times:
            return self._block_times[block_number]

        block = await self._call("eth_getBlockByNumber", self.w3.eth.get_block(block_number))
        if not block:
            return None

        timestamp = datetime.fromtimestamp(block["timestamp"], tz=timezone.utc).replace(tzinfo=None)
        self._block_times[block_number] = timestamp
        if len(self._block_times) > 1000:
            self._block_times.pop(next(iter(self._block_times)))
        return timestamp

    async def get_transfer_logs(
        self,
        to_address: str,
        from_block: int,
        to_block: int,
        from_address: Optional[str] = None
    ) -> List[TransferLog]:
        """USDT Transfer events to ``to_address`` within a block range."""
        topics = [
            ChainConfig.TRANSFER_TOPIC,
            address_topic(from_address) if from_address else None,
            address_topic(to_address),
        ]
        logs = await self._call("eth_getLogs", self.w3.eth.get_logs({
            "fromBlock": from_block,
            "toBlock": to_block,
            "address": self.token_address,
            "topics": topics,
        }))

        transfers = []
        for entry in logs or []:
            if not self._from_token(entry):
                continue
            try:
                event = self.token.events.Transfer().process_log(entry)
            except (MismatchedABI, LogTopicError):
                self.logger.debug("Skipping non-Transfer log", block_number=entry.get("blockNumber"))
                continue
            transfers.append(self.to_transfer(event))
        return transfers

    def _from_token(self, entry: Dict[str, Any]) -> bool:
        return (entry.get("address") or "").lower() == self.token_address.lower()

    @staticmethod
    def to_transfer(event: Dict[str, Any]) -> TransferLog:
        """TransferLog from a decoded web3 event."""
        args = event["args"]
        return TransferLog(
            tx_hash=Web3.to_hex(event["transactionHash"]).lower(),
            block_number=event["blockNumber"],
            log_index=event.get("logIndex") or 0,
            from_address=args["from"].lower(),
            to_address=args["to"].lower(),
            value=args["value"],
        )

    # ============================================================================
    # VERIFICATION
    # ============================================================================

    async def verify_transaction(
        self,
        tx_hash: str,
        expected_to: str,
        expected_amount: float,
        expected_from: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Check a payment transaction on chain.

        Returns:
            Dict with ``verified``, ``failed``, ``confirmations`` and
            ``block_number``. ``verified`` means the receipt succeeded and
            carries a USDT Transfer of exactly ``expected_amount`` to
            ``expected_to``; confirmations are reported separately.
        """
        receipt = await self.get_transaction_receipt(tx_hash)
        if not receipt or receipt.get("blockNumber") is None:
            return {"verified": False, "failed": False, "confirmations": 0, "block_number": None}

        block_number = receipt["blockNumber"]
        current_block = await self.get_block_number()
        confirmations = max(current_block - block_number, 0)

        if receipt.get("status") != 1:
            self.logger.warning("Transaction reverted on chain", tx_hash=tx_hash)
            return {"verified": False, "failed": True, "confirmations": confirmations, "block_number": block_number}

        expected_raw = to_raw_amount(expected_amount)
        matched = False
        for event in self.token.events.Transfer().process_receipt(receipt, errors=DISCARD):
            if not self._from_token(event):
                continue
            transfer = self.to_transfer(event)
            if transfer.to_address != expected_to.lower() or transfer.value != expected_raw:
                continue
            if expected_from and transfer.from_address != expected_from.lower():
                continue
            matched = True
            break

        if not matched:
            self.logger.warning(
                "Transaction has no matching USDT transfer",
                tx_hash=tx_hash,
                expected_to=expected_to,
                expected_amount=expected_amount
            )

        return {
            "verified": matched,
            "failed": not matched,
            "confirmations": confirmations,
            "block_number": block_number,
        }


_bsc_client: Optional[BscClient] = None


def get_bsc_client() -> BscClient:
    """Shared client instance."""
    global _bsc_client
    if _bsc_client is None:
        _bsc_client = BscClient()
    return _bsc_client


async def close_bsc_client() -> None:
    global _bsc_client
    if _bsc_client is not None:
        await _bsc_client.close()
        _bsc_client = None
