"""
Domain exceptions.

Services raise these; the API layer maps each family to an HTTP status and
renders ``code``, ``message`` and ``details`` into the error envelope.
"""

from typing import Any, Optional, Dict


class DealOrNoDealException(Exception):
    """Base exception class for the Deal or No Deal backend."""

    code = "UNKNOWN_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ValidationError(DealOrNoDealException):
    code = "VALIDATION_ERROR"


class NotFoundError(DealOrNoDealException):
    code = "NOT_FOUND"


class AuthenticationError(DealOrNoDealException):
    code = "AUTHENTICATION_ERROR"


class AuthorizationError(DealOrNoDealException):
    code = "AUTHORIZATION_ERROR"


class ConflictError(DealOrNoDealException):
    """The request collides with existing state (second active game, reused hash)."""
    code = "CONFLICT"


class RateLimitError(DealOrNoDealException):
    code = "RATE_LIMIT_ERROR"


class SchedulerError(DealOrNoDealException):
    """A background worker could not start."""
    code = "SCHEDULER_ERROR"


class BlockchainError(DealOrNoDealException):
    """The BNB Smart Chain RPC failed or returned garbage."""
    code = "BLOCKCHAIN_ERROR"


class ExternalServiceError(DealOrNoDealException):
    code = "EXTERNAL_SERVICE_ERROR"


# Game

class GameStateError(DealOrNoDealException):
    """The action is not legal in the game's current state."""
    code = "GAME_STATE_ERROR"


class InvalidCaseError(GameStateError):
    def __init__(self, case_number: int, reason: str):
        super().__init__(
            f"Case {case_number} cannot be opened: {reason}",
            {"case_number": case_number, "reason": reason}
        )


class GameNotFoundError(NotFoundError):
    def __init__(self, game_id: int):
        super().__init__(f"Game not found: {game_id}", {"game_id": game_id})


class PlayerNotFoundError(NotFoundError):
    def __init__(self, wallet: str):
        super().__init__(f"Player not found: {wallet}", {"wallet": wallet})


class GameOwnershipError(AuthorizationError):
    def __init__(self, wallet: str, game_id: int):
        super().__init__(
            f"Wallet {wallet} does not own game {game_id}",
            {"wallet": wallet, "game_id": game_id}
        )


# Payment

class PaymentError(DealOrNoDealException):
    """An entry-fee payment cannot be used to start a game."""
    code = "PAYMENT_ERROR"


class PaymentNotConfirmedError(PaymentError):
    def __init__(self, tx_hash: str, status: str):
        super().__init__(
            f"Payment not confirmed yet. Status: {status}",
            {"tx_hash": tx_hash, "status": status}
        )


class TransactionReplayError(ConflictError):
    def __init__(self, tx_hash: str):
        super().__init__("This transaction hash has already been used!", {"tx_hash": tx_hash})
