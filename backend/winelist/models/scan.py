"""
Scan-time data: recognized text geometry, per-detection results and sessions.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from .enums import MatchTier
from .wine import WineRecord


@dataclass(frozen=True)
class BoundingBox:
    """
    Normalized bounding box (0-1 range), top-left origin, y grows downward.
    """
    x: float
    y: float
    width: float
    height: float

    @property
    def max_x(self) -> float:
        return self.x + self.width

    @property
    def max_y(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return max(self.width, 0.0) * max(self.height, 0.0)

    def union(self, other: "BoundingBox") -> "BoundingBox":
        min_x = min(self.x, other.x)
        min_y = min(self.y, other.y)
        return BoundingBox(
            x=min_x,
            y=min_y,
            width=max(self.max_x, other.max_x) - min_x,
            height=max(self.max_y, other.max_y) - min_y,
        )

    def intersection_area(self, other: "BoundingBox") -> float:
        x_left = max(self.x, other.x)
        y_top = max(self.y, other.y)
        x_right = min(self.max_x, other.max_x)
        y_bottom = min(self.max_y, other.max_y)
        if x_right <= x_left or y_bottom <= y_top:
            return 0.0
        return (x_right - x_left) * (y_bottom - y_top)

    def overlap_fraction(self, other: "BoundingBox") -> float:
        """Intersection area as a fraction of the smaller box's area."""
        smaller = min(self.area, other.area)
        if smaller <= 0:
            return 0.0
        return self.intersection_area(other) / smaller

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass(frozen=True)
class OCRFragment:
    """Text fragment reported by the recognizer."""
    text: str
    bbox: BoundingBox
    confidence: float


@dataclass(frozen=True)
class RecognizedWine:
    """One wine-list entry detected in a frame, with its best match so far."""
    original_text: str
    bbox: BoundingBox
    ocr_confidence: float
    matched_wine: Optional[WineRecord] = None
    match_confidence: float = 0.0
    matched_vintage: Optional[int] = None
    match_tier: MatchTier = MatchTier.NONE
    list_price: Optional[Decimal] = None
    list_price_currency: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def wine_id(self) -> Optional[str]:
        return self.matched_wine.id if self.matched_wine else None

    @property
    def is_matched(self) -> bool:
        return self.matched_wine is not None

    def is_partial_match(self, acceptance_threshold: float) -> bool:
        """Matched, but only at the reduced batch-tier threshold."""
        return self.is_matched and self.match_confidence < acceptance_threshold

    def is_better_than(self, other: "RecognizedWine") -> bool:
        """Higher confidence wins; on a tie the cheaper tier wins."""
        if self.match_confidence != other.match_confidence:
            return self.match_confidence > other.match_confidence
        return self.match_tier.rank < other.match_tier.rank

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "original_text": self.original_text,
            "bbox": self.bbox.to_dict(),
            "ocr_confidence": self.ocr_confidence,
            "matched_wine": self.matched_wine.to_dict() if self.matched_wine else None,
            "match_confidence": self.match_confidence,
            "matched_vintage": self.matched_vintage,
            "match_tier": self.match_tier.value,
            "list_price": str(self.list_price) if self.list_price is not None else None,
            "list_price_currency": self.list_price_currency,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RecognizedWine":
        matched = data.get("matched_wine")
        price = data.get("list_price")
        return cls(
            id=data["id"],
            original_text=data["original_text"],
            bbox=BoundingBox(**data["bbox"]),
            ocr_confidence=data["ocr_confidence"],
            matched_wine=WineRecord.from_dict(matched) if matched else None,
            match_confidence=data.get("match_confidence", 0.0),
            matched_vintage=data.get("matched_vintage"),
            match_tier=MatchTier(data.get("match_tier", MatchTier.NONE.value)),
            list_price=Decimal(price) if price is not None else None,
            list_price_currency=data.get("list_price_currency"),
        )


@dataclass
class ScanSession:
    """Distinct wines recognized since the scan was started or resumed."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    wines: list[RecognizedWine] = field(default_factory=list)
    location: Optional[str] = None
    end_time: Optional[datetime] = None

    @property
    def matched_count(self) -> int:
        return sum(1 for wine in self.wines if wine.is_matched)

    @property
    def top_score(self) -> Optional[int]:
        scores = [
            wine.matched_wine.score
            for wine in self.wines
            if wine.matched_wine and wine.matched_wine.score is not None
        ]
        return max(scores) if scores else None

    def index_of(self, wine_id: str) -> Optional[int]:
        for i, wine in enumerate(self.wines):
            if wine.wine_id == wine_id:
                return i
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "start_time": self.start_time.isoformat(),
            "wines": [wine.to_dict() for wine in self.wines],
            "location": self.location,
            "end_time": self.end_time.isoformat() if self.end_time else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScanSession":
        end_time = data.get("end_time")
        return cls(
            id=data["id"],
            start_time=datetime.fromisoformat(data["start_time"]),
            wines=[RecognizedWine.from_dict(w) for w in data.get("wines", [])],
            location=data.get("location"),
            end_time=datetime.fromisoformat(end_time) if end_time else None,
        )
