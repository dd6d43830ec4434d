"""
Pure Deal or No Deal rules: level table, reward XP, round engine and the
scatter bonus. Nothing in this package touches the database.
"""

from .levels import (
    XP_LEVELS,
    LevelTier,
    get_level_from_xp,
    get_completed_level_from_xp,
    get_completed_level_numbers,
    get_next_level,
    get_xp_progress,
)
from .rewards import calculate_xp
from .engine import GameState, OpenCaseOutcome, PRIZE_AMOUNTS, TOTAL_CASES
from .scatter import SCATTER_AMOUNTS, SCATTER_PICKS

__all__ = [
    "XP_LEVELS",
    "LevelTier",
    "get_level_from_xp",
    "get_completed_level_from_xp",
    "get_completed_level_numbers",
    "get_next_level",
    "get_xp_progress",
    "calculate_xp",
    "GameState",
    "OpenCaseOutcome",
    "PRIZE_AMOUNTS",
    "TOTAL_CASES",
    "SCATTER_AMOUNTS",
    "SCATTER_PICKS",
]
