from .enums import (
    DrinkWindowStatus,
    MatchTier,
    ScanState,
    ScoreCategory,
    WineColor,
)
from .filters import FilterSet, WineFilter
from .scan import (
    BoundingBox,
    OCRFragment,
    RecognizedWine,
    ScanSession,
)
from .wine import (
    GrapeVariety,
    Reviewer,
    WineRecord,
)

__all__ = [
    "DrinkWindowStatus",
    "MatchTier",
    "ScanState",
    "ScoreCategory",
    "WineColor",
    "FilterSet",
    "WineFilter",
    "BoundingBox",
    "OCRFragment",
    "RecognizedWine",
    "ScanSession",
    "GrapeVariety",
    "Reviewer",
    "WineRecord",
]
