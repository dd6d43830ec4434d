"""
XP level table.

Two notions are exposed and never collapsed:

* the *current* level is the highest tier whose threshold the player has
  reached;
* the *completed* level is the tier the player holds a trophy for. Tier N is
  completed once the threshold of tier N+1 is reached, and the top tier is
  completed at its own threshold.
"""

from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class LevelTier:
    """One row of the level table."""
    level: int
    name: str
    xp_required: int

    def to_dict(self) -> dict:
        return {"level": self.level, "name": self.name, "xp_required": self.xp_required}


XP_LEVELS = (
    LevelTier(0, "New God Born", 0),
    LevelTier(1, "Aphrodite", 10001),
    LevelTier(2, "Dionysus", 20001),
    LevelTier(3, "Artemis", 30001),
    LevelTier(4, "Hermes", 50001),
    LevelTier(5, "Demetra", 70001),
    LevelTier(6, "Apollon", 101001),
    LevelTier(7, "Ares", 151001),
    LevelTier(8, "Hephaestus", 201001),
    LevelTier(9, "Poseidon", 301001),
    LevelTier(10, "Athena", 501001),
    LevelTier(11, "Hera", 751001),
    LevelTier(12, "Zeus", 1000001),
    LevelTier(13, "Zeus Complete", 2000001),
)

MAX_LEVEL = XP_LEVELS[-1].level

# Marketplace unlock (sell trophies or continue for the BTC reward)
MARKETPLACE_LEVEL = 9

# Target shown once the top tier is reached
BTC_REWARD_TIER = LevelTier(13, "1 BTC Reward", 5000001)


def _clamp(xp: Optional[float]) -> float:
    if not xp or xp < 0:
        return 0
    return xp


def get_level_from_xp(xp: Optional[float]) -> LevelTier:
    """Highest tier whose threshold is <= xp."""
    xp = _clamp(xp)
    for tier in reversed(XP_LEVELS):
        if xp >= tier.xp_required:
            return tier
    return XP_LEVELS[0]


def get_completed_level_from_xp(xp: Optional[float]) -> LevelTier:
    """
    Highest completed tier.

    Below 10,001 XP this returns tier 0 although nothing is completed yet;
    use get_completed_level_numbers() to tell the two apart.
    """
    xp = _clamp(xp)
    if xp >= XP_LEVELS[-1].xp_required:
        return XP_LEVELS[-1]
    for index in range(len(XP_LEVELS) - 2, -1, -1):
        if xp >= XP_LEVELS[index + 1].xp_required:
            return XP_LEVELS[index]
    return XP_LEVELS[0]


def get_completed_level_numbers(xp: Optional[float]) -> List[int]:
    """Ordered tier indices the player holds trophies for."""
    xp = _clamp(xp)
    completed = [
        index for index in range(len(XP_LEVELS) - 1)
        if xp >= XP_LEVELS[index + 1].xp_required
    ]
    if xp >= XP_LEVELS[-1].xp_required:
        completed.append(MAX_LEVEL)
    return completed


def get_next_level(tier: Optional[LevelTier]) -> Optional[LevelTier]:
    if tier is None or tier.level >= MAX_LEVEL:
        return None
    return XP_LEVELS[tier.level + 1]


def get_tier(level: int) -> LevelTier:
    """Tier by level number, clamped to the table."""
    return XP_LEVELS[max(0, min(level, MAX_LEVEL))]


def get_xp_progress(xp: Optional[float]) -> dict:
    """
    Progress towards the next tier.

    Returns a dict with ``current``, ``next`` (LevelTier), ``progress``
    (0..100) and ``xp_to_next``.
    """
    xp = _clamp(xp)
    current = get_level_from_xp(xp)
    next_tier = get_next_level(current)

    if next_tier is None:
        return {
            "current": current,
            "next": BTC_REWARD_TIER,
            "progress": min(xp / BTC_REWARD_TIER.xp_required * 100, 100),
            "xp_to_next": max(BTC_REWARD_TIER.xp_required - xp, 0),
        }

    span = next_tier.xp_required - current.xp_required
    progress = (xp - current.xp_required) / span * 100

    return {
        "current": current,
        "next": next_tier,
        "progress": min(progress, 100),
        "xp_to_next": next_tier.xp_required - xp,
    }
