"""
Candidate segmentation: grouping recognized fragments into wine-list entries.

Fragments are grouped top to bottom by vertical gap, then filtered
through a boilerplate stoplist and a "looks like a wine entry" check.
"""

import re
from dataclasses import dataclass
from typing import Optional

from ..config import Config
from ..models.scan import BoundingBox, OCRFragment
from .text_normalizer import fold


# Positive signals
_YEAR_PATTERN = re.compile(r'\b(19|20)\d{2}\b')
_SHORT_YEAR_PATTERN = re.compile(r"['’]\d{2}\b")
_PRICE_PATTERN = re.compile(r'[\$€£]\s*\d+|\b\d+\.\d{2}\b')

# Page markers: "page 3", "3 of 12", "3/12"
_PAGE_PATTERN = re.compile(r'\bpage\s*\d+\b|^\s*\d+\s*(of|/)\s*\d+\s*$')

# Headers and menu furniture that are never wine entries
_BOILERPLATE = (
    'wine list', 'by the glass', 'by the bottle', 'half bottles',
    'sparkling wines', 'white wines', 'red wines', 'rose wines',
    'dessert wines', 'fortified wines', 'sommelier selection',
    'continued', 'see server', 'ask your', 'reserve list',
    'corkage', 'prices subject',
)

# Known wine name indicators (varietals, regions, producer words)
_WINE_INDICATORS = {
    # Varietals
    'cabernet', 'sauvignon', 'merlot', 'pinot', 'noir', 'grigio', 'chardonnay',
    'riesling', 'syrah', 'shiraz', 'tempranillo', 'malbec', 'zinfandel',
    'sangiovese', 'nebbiolo', 'grenache', 'mourvedre', 'viognier', 'gamay',
    'albarino', 'garnacha', 'chenin', 'semillon', 'barbera', 'gewurztraminer',
    # Regions and appellations
    'bordeaux', 'burgundy', 'bourgogne', 'champagne', 'napa', 'sonoma',
    'rioja', 'barolo', 'barbaresco', 'chianti', 'brunello', 'sancerre',
    'chablis', 'margaux', 'pauillac', 'rhone', 'willamette', 'mosel',
    'priorat', 'ribera', 'tuscany', 'toscana', 'piedmont', 'beaujolais',
    # Producer and quality words
    'chateau', 'domaine', 'bodega', 'tenuta', 'estate', 'vineyard', 'winery',
    'cellars', 'reserve', 'reserva', 'riserva', 'cuvee', 'grand cru',
    'premier cru', '1er cru', 'brut', 'vintage',
}


@dataclass
class WineCandidate:
    """Spatially-grouped fragments hypothesized to be one entry."""
    text: str
    bbox: BoundingBox
    confidence: float
    line_count: int


def is_boilerplate(text: str) -> bool:
    """Check the text against the header/page-marker stoplist."""
    text_lower = fold(text)
    if any(phrase in text_lower for phrase in _BOILERPLATE):
        return True
    return bool(_PAGE_PATTERN.search(text_lower))


def is_likely_wine_entry(text: str) -> bool:
    """
    Check if candidate text looks like a wine-list entry.

    Boilerplate is rejected first. A vintage, price or wine keyword is a
    positive signal; otherwise the text must be long enough to plausibly
    be a producer and wine name.
    """
    if is_boilerplate(text):
        return False

    text_lower = fold(text)

    if _YEAR_PATTERN.search(text_lower) or _SHORT_YEAR_PATTERN.search(text_lower):
        return True
    if _PRICE_PATTERN.search(text_lower):
        return True
    if any(ind in text_lower for ind in _WINE_INDICATORS):
        return True

    word_count = len(text_lower.split())
    return word_count >= Config.FALLBACK_MIN_WORDS and len(text) >= Config.FALLBACK_MIN_LENGTH


class CandidateSegmenter:
    """Groups OCR fragments into wine-list entry candidates."""

    def __init__(
        self,
        line_gap_threshold: Optional[float] = None,
        min_candidate_length: Optional[int] = None,
    ):
        self.line_gap_threshold = (
            line_gap_threshold if line_gap_threshold is not None else Config.LINE_GAP_THRESHOLD
        )
        self.min_candidate_length = (
            min_candidate_length if min_candidate_length is not None else Config.MIN_CANDIDATE_LENGTH
        )

    def group_into_wine_entries(self, fragments: list[OCRFragment]) -> list[WineCandidate]:
        """
        Group fragments into entries and keep the ones that look like wines.

        Args:
            fragments: Recognizer output, already filtered by confidence

        Returns:
            Candidates in top-to-bottom order
        """
        candidates = self.segment(fragments)
        return [c for c in candidates if is_likely_wine_entry(c.text)]

    def segment(self, fragments: list[OCRFragment]) -> list[WineCandidate]:
        """Group fragments by vertical gap without content filtering."""
        fragments = [f for f in fragments if f.text.strip()]
        if not fragments:
            return []

        ordered = sorted(fragments, key=lambda f: (f.bbox.y, f.bbox.x))

        candidates = []
        group: list[OCRFragment] = []
        group_bottom = 0.0

        for fragment in ordered:
            # Gap measured from the lowest edge in the current group so
            # side-by-side columns (name, price) stay together
            if group and fragment.bbox.y - group_bottom >= self.line_gap_threshold:
                candidate = self._build_candidate(group)
                if candidate:
                    candidates.append(candidate)
                group = []

            if not group:
                group_bottom = fragment.bbox.max_y
            else:
                group_bottom = max(group_bottom, fragment.bbox.max_y)
            group.append(fragment)

        candidate = self._build_candidate(group)
        if candidate:
            candidates.append(candidate)

        return candidates

    def _build_candidate(self, group: list[OCRFragment]) -> Optional[WineCandidate]:
        text = " ".join(f.text.strip() for f in group)
        if len(text) < self.min_candidate_length:
            return None

        bbox = group[0].bbox
        for fragment in group[1:]:
            bbox = bbox.union(fragment.bbox)

        return WineCandidate(
            text=text,
            bbox=bbox,
            confidence=sum(f.confidence for f in group) / len(group),
            line_count=len(group),
        )
