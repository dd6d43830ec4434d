"""
XP earned for a finished game.
"""

# (low, high, xp); bounds are inclusive and the gaps between brackets earn nothing
WINNINGS_XP_BRACKETS = (
    (0.01, 50000, 100),
    (50001, 100000, 300),
    (100001, 300000, 500),
    (301000, 500000, 1000),
    (501000, 750000, 2000),
)
TOP_BRACKET_MIN = 750001
TOP_BRACKET_XP = 5000

XP_PER_REFUSAL = 100
XP_PER_REFUSAL_AFTER_LEVEL9 = 25


def winnings_xp(winnings: float) -> int:
    """Base XP for the final winnings."""
    if winnings >= TOP_BRACKET_MIN:
        return TOP_BRACKET_XP
    for low, high, xp in WINNINGS_XP_BRACKETS:
        if low <= winnings <= high:
            return xp
    return 0


def calculate_xp(winnings: float, bankers_refused: int, continuing_after_level9: bool = False) -> int:
    """
    Reward XP for one game.

    Every refused banker offer adds 100 XP, or 25 XP once the player chose
    to keep playing after level 9. The refusal bonus is not capped.
    """
    per_refusal = XP_PER_REFUSAL_AFTER_LEVEL9 if continuing_after_level9 else XP_PER_REFUSAL
    return winnings_xp(winnings or 0) + max(bankers_refused or 0, 0) * per_refusal
