"""
Enums for type-safe string constants in Wine List Scanner.
"""

from enum import Enum


class MatchTier(str, Enum):
    """Matching stage that produced a result, in ascending cost order."""
    EXACT = "exact"
    FUZZY_LOCAL = "fuzzy_local"
    FUZZY_REMOTE = "fuzzy_remote"
    NONE = "none"

    @property
    def rank(self) -> int:
        """Lower is cheaper and more certain."""
        return _TIER_RANK[self]


_TIER_RANK = {
    MatchTier.EXACT: 0,
    MatchTier.FUZZY_LOCAL: 1,
    MatchTier.FUZZY_REMOTE: 2,
    MatchTier.NONE: 3,
}


class WineColor(str, Enum):
    """Wine style as reported by the wine catalog."""
    RED = "red"
    WHITE = "white"
    ROSE = "rose"
    SPARKLING = "sparkling"
    DESSERT = "dessert"
    FORTIFIED = "fortified"


class ScanState(str, Enum):
    """Lifecycle of a scanning session."""
    IDLE = "idle"
    SCANNING = "scanning"
    PAUSED = "paused"
    STOPPED = "stopped"


class DrinkWindowStatus(str, Enum):
    """Where a wine sits relative to its recommended drinking window."""
    TOO_YOUNG = "too_young"
    READY = "ready"
    PEAKING = "peaking"
    PAST_PRIME = "past_prime"
    UNKNOWN = "unknown"


class ScoreCategory(str, Enum):
    """Critic score bands on the 100-point scale."""
    OUTSTANDING = "outstanding"
    EXCELLENT = "excellent"
    VERY_GOOD = "very_good"
    GOOD = "good"
    ACCEPTABLE = "acceptable"
    BELOW_AVERAGE = "below_average"
