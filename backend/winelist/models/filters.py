"""
List filters applied to recognized wines (score bands, readiness, color).
"""

from enum import Enum
from typing import Iterable, Optional

from .enums import WineColor
from .scan import RecognizedWine


class WineFilter(str, Enum):
    SCORE_95_PLUS = "score_95_plus"
    SCORE_90_PLUS = "score_90_plus"
    SCORE_85_PLUS = "score_85_plus"
    DRINK_NOW = "drink_now"
    RED_ONLY = "red_only"
    WHITE_ONLY = "white_only"
    SPARKLING_ONLY = "sparkling_only"


SCORE_FILTERS = {
    WineFilter.SCORE_95_PLUS: 95,
    WineFilter.SCORE_90_PLUS: 90,
    WineFilter.SCORE_85_PLUS: 85,
}

COLOR_FILTERS = {
    WineFilter.RED_ONLY: WineColor.RED,
    WineFilter.WHITE_ONLY: WineColor.WHITE,
    WineFilter.SPARKLING_ONLY: WineColor.SPARKLING,
}


def matches_filter(wine: RecognizedWine, wine_filter: WineFilter, year: Optional[int] = None) -> bool:
    """Unmatched entries never pass a filter."""
    record = wine.matched_wine
    if record is None:
        return False
    if wine_filter in SCORE_FILTERS:
        return record.score is not None and record.score >= SCORE_FILTERS[wine_filter]
    if wine_filter in COLOR_FILTERS:
        return record.color == COLOR_FILTERS[wine_filter]
    if wine_filter == WineFilter.DRINK_NOW:
        return record.is_ready_to_drink(year)
    return True


class FilterSet:
    """
    Active filters. At most one score band and one color are active at a
    time; selecting another in the same group replaces it.
    """

    def __init__(self, filters: Iterable[WineFilter] = ()):
        self._active: list[WineFilter] = []
        for f in filters:
            self.toggle(f)

    @property
    def active(self) -> list[WineFilter]:
        return list(self._active)

    def toggle(self, wine_filter: WineFilter) -> None:
        if wine_filter in self._active:
            self._active.remove(wine_filter)
            return
        for group in (SCORE_FILTERS, COLOR_FILTERS):
            if wine_filter in group:
                self._active = [f for f in self._active if f not in group]
        self._active.append(wine_filter)

    def apply(self, wines: Iterable[RecognizedWine], year: Optional[int] = None) -> list[RecognizedWine]:
        if not self._active:
            return list(wines)
        return [
            wine for wine in wines
            if all(matches_filter(wine, f, year) for f in self._active)
        ]
