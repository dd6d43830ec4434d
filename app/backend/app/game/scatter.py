"""
Scatter bonus rules.

A wallet that wins $1,000,000 in N consecutive finished games unlocks a bonus
round: 15 boxes with small amounts, the player picks 3 and wins their sum.
"""

import random
from typing import Iterable, List, Optional, Sequence

from app.core.exceptions import ValidationError

SCATTER_AMOUNTS = (0.5, 1, 3, 4, 5, 6, 7, 8, 9, 10, 15, 20, 25, 30, 50)
SCATTER_PICKS = 3
SCATTER_TRIGGER_WINNINGS = 1000000
DEFAULT_CONSECUTIVE_WINS = 3

_system_random = random.SystemRandom()


def shuffle_boxes(rng: Optional[random.Random] = None) -> List[float]:
    amounts = list(SCATTER_AMOUNTS)
    (rng or _system_random).shuffle(amounts)
    return amounts


def validate_picks(picks: Sequence[int]) -> List[int]:
    """Exactly three distinct 0-based box indices."""
    picks = list(picks or [])
    if len(picks) != SCATTER_PICKS:
        raise ValidationError(
            f"Pick exactly {SCATTER_PICKS} boxes",
            {"picks": picks}
        )
    if len(set(picks)) != len(picks):
        raise ValidationError("Picked boxes must be distinct", {"picks": picks})
    for pick in picks:
        if not isinstance(pick, int) or not 0 <= pick < len(SCATTER_AMOUNTS):
            raise ValidationError(
                f"Box index must be between 0 and {len(SCATTER_AMOUNTS) - 1}",
                {"pick": pick}
            )
    return picks


def scatter_total(box_amounts: Sequence[float], picks: Sequence[int]) -> float:
    return round(sum(box_amounts[pick] for pick in picks), 2)


def is_trigger_streak(recent_winnings: Sequence[float], required: int) -> bool:
    """
    True when the newest ``required`` finished games all won the top prize.

    ``recent_winnings`` is ordered newest first and must hold exactly
    ``required`` entries.
    """
    if required <= 0 or len(recent_winnings) != required:
        return False
    return all(winnings == SCATTER_TRIGGER_WINNINGS for winnings in recent_winnings)


def already_triggered(game_ids: Iterable[int], previous_triggers: Iterable[Iterable[int]]) -> bool:
    """Whether a previous scatter was paid for exactly this set of games."""
    key = sorted(game_ids)
    return any(sorted(previous or []) == key for previous in previous_triggers)
