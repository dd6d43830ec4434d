"""
Round engine for one Deal or No Deal game.

Pure functions over a GameState snapshot. The caller persists whatever the
functions return; nothing here mutates its inputs.
"""

import math
import random
from dataclasses import dataclass, field
from itertools import accumulate
from typing import Any, Dict, List, Optional, Sequence

from app.core.exceptions import GameStateError, InvalidCaseError, ValidationError

PRIZE_AMOUNTS = (
    0.01, 1, 5, 10, 25, 50, 75, 100, 200, 300, 400, 500, 750, 1000,
    5000, 10000, 25000, 50000, 75000, 100000, 200000, 300000, 400000,
    500000, 750000, 1000000,
)

TOTAL_CASES = 26

# Cases to open in each round
ROUND_SCHEDULE = (6, 5, 4, 3, 2, 2, 2, 2, 2)
ROUND_ENDS = tuple(accumulate(ROUND_SCHEDULE))

# Opened-case counts at which the banker calls; 25 is never reached
OFFER_AFTER_OPENED = (6, 11, 15, 18, 20, 22, 24, 25)

BANKER_RATIO = 0.9

# Only the player's case and one other remain
FINAL_DECISION_AT = TOTAL_CASES - 2

STATUS_ACTIVE = "active"
STATUS_DEAL_ACCEPTED = "deal_accepted"
STATUS_COMPLETED = "completed"

OFFER_PENDING = "pending"
OFFER_REFUSED = "refused"
OFFER_ACCEPTED = "accepted"

_system_random = random.SystemRandom()


@dataclass
class GameState:
    """Board snapshot of one game."""
    case_amounts: List[float]
    player_case: int
    opened_cases: List[int] = field(default_factory=list)
    status: str = STATUS_ACTIVE
    banker_offers: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class OpenCaseOutcome:
    """Result of opening one case."""
    opened_amount: float
    should_show_offer: bool
    banker_offer: Optional[int]
    round: int
    opened_cases: List[int]
    banker_offers: List[Dict[str, Any]]
    current_round: int


def shuffle_case_amounts(rng: Optional[random.Random] = None) -> List[float]:
    """Random permutation of PRIZE_AMOUNTS, index = case number - 1."""
    amounts = list(PRIZE_AMOUNTS)
    (rng or _system_random).shuffle(amounts)
    return amounts


def validate_case_number(case_number: int) -> None:
    if not isinstance(case_number, int) or not 1 <= case_number <= TOTAL_CASES:
        raise ValidationError(
            f"Case number must be between 1 and {TOTAL_CASES}",
            {"case_number": case_number}
        )


def remaining_amounts(
    case_amounts: Sequence[float],
    opened_cases: Sequence[int],
    player_case: int
) -> List[float]:
    """Values of every unopened case, the player's own included."""
    opened = set(opened_cases)
    return [
        amount for index, amount in enumerate(case_amounts)
        if (index + 1) not in opened or (index + 1) == player_case
    ]


def compute_banker_offer(
    case_amounts: Sequence[float],
    opened_cases: Sequence[int],
    player_case: int
) -> int:
    """Banker offer: 90% of the mean remaining value, floored."""
    remaining = remaining_amounts(case_amounts, opened_cases, player_case)
    if not remaining:
        return 0
    return math.floor(sum(remaining) / len(remaining) * BANKER_RATIO)


def current_round(opened_count: int) -> int:
    """1-based round the next opened case belongs to."""
    for index, end in enumerate(ROUND_ENDS):
        if opened_count < end:
            return index + 1
    return len(ROUND_SCHEDULE)


def cases_left_in_round(opened_count: int) -> int:
    round_number = current_round(opened_count)
    return max(ROUND_ENDS[round_number - 1] - opened_count, 0)


def should_offer(opened_count: int) -> bool:
    return opened_count in OFFER_AFTER_OPENED


def is_final_decision(opened_count: int) -> bool:
    return opened_count >= FINAL_DECISION_AT


def last_unopened_case(opened_cases: Sequence[int], player_case: int) -> Optional[int]:
    """The one other case left at the final decision."""
    opened = set(opened_cases)
    for case_number in range(1, TOTAL_CASES + 1):
        if case_number != player_case and case_number not in opened:
            return case_number
    return None


def get_pending_offer(offers: Sequence[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    for offer in reversed(offers):
        if offer.get("status") == OFFER_PENDING:
            return offer
    return None


def resolve_pending_offers(offers: Sequence[Dict[str, Any]], status: str) -> List[Dict[str, Any]]:
    """Copy of the offers with every pending one moved to ``status``."""
    return [
        {**offer, "status": status} if offer.get("status") == OFFER_PENDING else dict(offer)
        for offer in offers
    ]


def count_refused(offers: Sequence[Dict[str, Any]]) -> int:
    return sum(1 for offer in offers if offer.get("status") == OFFER_REFUSED)


def open_case(state: GameState, case_number: int) -> OpenCaseOutcome:
    """
    Open one case.

    A pending banker offer is refused implicitly. When the new opened count
    hits an offer point, a pending offer for the finished round is appended.
    """
    if state.status != STATUS_ACTIVE:
        raise GameStateError("Game is not active", {"status": state.status})

    opened_count = len(state.opened_cases)
    if is_final_decision(opened_count):
        raise GameStateError(
            "No cases left to open, make the final decision",
            {"opened": opened_count}
        )

    if not isinstance(case_number, int) or not 1 <= case_number <= TOTAL_CASES:
        raise InvalidCaseError(case_number, "unknown case")
    if case_number == state.player_case:
        raise InvalidCaseError(case_number, "it is the player's case")
    if case_number in state.opened_cases:
        raise InvalidCaseError(case_number, "already opened")

    round_number = current_round(opened_count)
    opened_cases = list(state.opened_cases) + [case_number]
    offers = resolve_pending_offers(state.banker_offers, OFFER_REFUSED)

    show_offer = should_offer(len(opened_cases))
    banker_offer = None
    if show_offer:
        banker_offer = compute_banker_offer(state.case_amounts, opened_cases, state.player_case)
        offers.append({
            "round": round_number,
            "cases_opened": len(opened_cases),
            "amount": banker_offer,
            "status": OFFER_PENDING,
        })

    return OpenCaseOutcome(
        opened_amount=state.case_amounts[case_number - 1],
        should_show_offer=show_offer,
        banker_offer=banker_offer,
        round=round_number,
        opened_cases=opened_cases,
        banker_offers=offers,
        current_round=current_round(len(opened_cases)),
    )


def accept_offer(state: GameState) -> Dict[str, Any]:
    """
    Accept the pending banker offer.

    Returns ``{"winnings", "round", "banker_offers"}``.
    """
    if state.status != STATUS_ACTIVE:
        raise GameStateError("Game is not active", {"status": state.status})

    offer = get_pending_offer(state.banker_offers)
    if offer is None:
        raise GameStateError("There is no banker offer to accept")

    return {
        "winnings": offer["amount"],
        "round": offer["round"],
        "banker_offers": resolve_pending_offers(state.banker_offers, OFFER_ACCEPTED),
    }


def refuse_offer(state: GameState) -> List[Dict[str, Any]]:
    """Refuse the pending banker offer ("No Deal")."""
    if state.status != STATUS_ACTIVE:
        raise GameStateError("Game is not active", {"status": state.status})
    if get_pending_offer(state.banker_offers) is None:
        raise GameStateError("There is no banker offer to refuse")
    return resolve_pending_offers(state.banker_offers, OFFER_REFUSED)


def final_winnings(state: GameState, keep_original: bool) -> Dict[str, Any]:
    """
    Resolve the final keep/swap decision.

    Returns ``{"winnings", "case_number", "banker_offers"}`` where
    ``case_number`` is the case whose value is won.
    """
    if state.status != STATUS_ACTIVE:
        raise GameStateError("Game is not active", {"status": state.status})
    if not is_final_decision(len(state.opened_cases)):
        raise GameStateError(
            "Final decision is only possible with two cases left",
            {"opened": len(state.opened_cases)}
        )

    if keep_original:
        case_number = state.player_case
    else:
        case_number = last_unopened_case(state.opened_cases, state.player_case)

    return {
        "winnings": state.case_amounts[case_number - 1],
        "case_number": case_number,
        "banker_offers": resolve_pending_offers(state.banker_offers, OFFER_REFUSED),
    }
