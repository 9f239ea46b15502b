"""
Shared test helpers: fixture loading, fragment builders and fakes.
"""

import json
from pathlib import Path
from typing import Optional

from winelist.models.scan import BoundingBox, OCRFragment
from winelist.models.wine import WineRecord

FIXTURES_DIR = Path(__file__).parent / "fixtures"
WINES_FIXTURE = FIXTURES_DIR / "wines.json"


def load_wine_records() -> list[WineRecord]:
    """Load the catalog fixture as WineRecords."""
    with open(WINES_FIXTURE) as f:
        data = json.load(f)
    return [WineRecord.from_dict(item) for item in data["wines"]]


def make_fragment(text: str, x: float, y: float, width: float = 0.4,
                  height: float = 0.03, confidence: float = 0.9) -> OCRFragment:
    return OCRFragment(text=text, bbox=BoundingBox(x, y, width, height), confidence=confidence)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StaticRecognizer:
    """Recognizer returning a configurable fragment list."""

    def __init__(self, fragments: Optional[list[OCRFragment]] = None, error: Optional[Exception] = None):
        self.fragments = fragments or []
        self.error = error
        self.calls = 0

    async def recognize(self, image: bytes) -> list[OCRFragment]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.fragments)
