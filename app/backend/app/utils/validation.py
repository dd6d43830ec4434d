"""
Blockchain data validation utilities.
Provides validation functions for BNB Smart Chain addresses, transaction hashes
and game-specific data.
"""

import re
from typing import Optional

import structlog
from web3 import Web3

from app.core.exceptions import ValidationError


logger = structlog.get_logger(__name__)

_TX_HASH_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")
_ORDER_ID_RE = re.compile(r"^CASE-(\d+)-(\d+)$")


class EvmValidator:
    """Validator for EVM chain data."""

    @staticmethod
    def is_valid_address(address: str) -> bool:
        """
        Validate a 0x-prefixed 20-byte hex address.

        Checksums are not enforced; addresses are compared lower-cased.
        """
        if not address or not isinstance(address, str) or not address.startswith("0x"):
            return False
        return Web3.is_address(address.lower())

    @staticmethod
    def is_valid_tx_hash(tx_hash: str) -> bool:
        """Validate a 0x-prefixed 32-byte transaction hash."""
        return bool(tx_hash) and isinstance(tx_hash, str) and bool(_TX_HASH_RE.match(tx_hash))


def normalize_wallet(wallet: str) -> str:
    """Validate and lower-case a wallet address."""
    if not EvmValidator.is_valid_address(wallet):
        raise ValidationError("Invalid wallet address", {"wallet": wallet})
    return wallet.lower()


def normalize_tx_hash(tx_hash: str) -> str:
    if not EvmValidator.is_valid_tx_hash(tx_hash):
        raise ValidationError("Invalid transaction hash", {"tx_hash": tx_hash})
    return tx_hash.lower()


def parse_case_from_order_id(order_id: Optional[str]) -> Optional[int]:
    """Case number encoded in a ``CASE-<case>-<unix ms>`` order id."""
    if not order_id:
        return None
    match = _ORDER_ID_RE.match(order_id)
    if not match:
        return None
    return int(match.group(1))
