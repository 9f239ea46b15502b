"""
Pydantic models for the Wine List Scanner HTTP API.

Domain objects (dataclasses in models.scan / models.wine) are converted
here at the edge; services never see these models.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .enums import DrinkWindowStatus, MatchTier, ScanState, ScoreCategory, WineColor
from .scan import BoundingBox as DomainBoundingBox
from .scan import OCRFragment, RecognizedWine, ScanSession
from .wine import WineRecord


def _clamp(value: float) -> float:
    return min(max(value, 0.0), 1.0)


class BoundingBox(BaseModel):
    """Normalized bounding box (0-1 range)."""
    x: float = Field(..., ge=0, le=1, description="Left edge (normalized)")
    y: float = Field(..., ge=0, le=1, description="Top edge (normalized)")
    width: float = Field(..., ge=0, le=1, description="Width (normalized)")
    height: float = Field(..., ge=0, le=1, description="Height (normalized)")

    @classmethod
    def from_domain(cls, bbox: DomainBoundingBox) -> "BoundingBox":
        return cls(x=_clamp(bbox.x), y=_clamp(bbox.y), width=_clamp(bbox.width), height=_clamp(bbox.height))

    def to_domain(self) -> DomainBoundingBox:
        return DomainBoundingBox(x=self.x, y=self.y, width=self.width, height=self.height)


class Fragment(BaseModel):
    """A recognized text fragment supplied by an on-device recognizer."""
    text: str = Field(..., min_length=1)
    bbox: BoundingBox
    confidence: float = Field(..., ge=0, le=1)

    def to_domain(self) -> OCRFragment:
        return OCRFragment(text=self.text, bbox=self.bbox.to_domain(), confidence=self.confidence)


class FragmentsRequest(BaseModel):
    fragments: list[Fragment] = Field(default_factory=list)


class LocationRequest(BaseModel):
    location: Optional[str] = Field(None, max_length=200, description="Restaurant or venue name")

    @field_validator('location')
    @classmethod
    def strip_location(cls, v: Optional[str]) -> Optional[str]:
        """Blank locations clear the field."""
        if v is None:
            return None
        v = v.strip()
        return v or None


class WineSummary(BaseModel):
    """Catalog record as shown in scan results."""
    id: str
    producer: str
    name: str
    display_name: str
    vintage: Optional[int] = None
    region: Optional[str] = None
    country: Optional[str] = None
    color: WineColor
    grape_varieties: list[str] = Field(default_factory=list)
    score: Optional[int] = Field(None, description="Critic score (100-point scale)")
    score_category: Optional[ScoreCategory] = None
    tasting_note: Optional[str] = None
    reviewer: Optional[str] = Field(None, description="Reviewer initials")
    drink_window_start: Optional[int] = None
    drink_window_end: Optional[int] = None
    drink_window_status: DrinkWindowStatus
    release_price: Optional[float] = None
    release_price_currency: Optional[str] = None

    @classmethod
    def from_domain(cls, record: WineRecord) -> "WineSummary":
        return cls(
            id=record.id,
            producer=record.producer,
            name=record.name,
            display_name=record.display_name,
            vintage=record.vintage,
            region=record.region,
            country=record.country,
            color=record.color,
            grape_varieties=[g.name for g in record.grape_varieties],
            score=record.score,
            score_category=record.score_category,
            tasting_note=record.tasting_note,
            reviewer=record.reviewer.initials if record.reviewer else None,
            drink_window_start=record.drink_window_start,
            drink_window_end=record.drink_window_end,
            drink_window_status=record.drink_window_status(),
            release_price=float(record.release_price) if record.release_price is not None else None,
            release_price_currency=record.release_price_currency,
        )


class RecognizedWineResponse(BaseModel):
    """One wine-list entry and its match."""
    id: str
    original_text: str
    bbox: BoundingBox
    ocr_confidence: float = Field(..., ge=0, le=1)
    wine: Optional[WineSummary] = None
    match_confidence: float = Field(..., ge=0, le=1)
    match_tier: MatchTier
    matched_vintage: Optional[int] = None
    list_price: Optional[float] = None
    list_price_currency: Optional[str] = None
    is_partial_match: bool = Field(False, description="Matched below the acceptance threshold")

    @classmethod
    def from_domain(cls, wine: RecognizedWine, acceptance_threshold: float) -> "RecognizedWineResponse":
        return cls(
            id=wine.id,
            original_text=wine.original_text,
            bbox=BoundingBox.from_domain(wine.bbox),
            ocr_confidence=_clamp(wine.ocr_confidence),
            wine=WineSummary.from_domain(wine.matched_wine) if wine.matched_wine else None,
            match_confidence=_clamp(wine.match_confidence),
            match_tier=wine.match_tier,
            matched_vintage=wine.matched_vintage,
            list_price=float(wine.list_price) if wine.list_price is not None else None,
            list_price_currency=wine.list_price_currency,
            is_partial_match=wine.is_partial_match(acceptance_threshold),
        )


class ScanResultResponse(BaseModel):
    """Response from photo and fragment scans."""
    wines: list[RecognizedWineResponse]


class FrameResponse(BaseModel):
    accepted: bool = Field(..., description="False when paused or within the processing interval")
    state: ScanState


class ScanStateResponse(BaseModel):
    state: ScanState
    session_id: str


class SessionResponse(BaseModel):
    id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    location: Optional[str] = None
    matched_count: int
    top_score: Optional[int] = None
    wines: list[RecognizedWineResponse]

    @classmethod
    def from_domain(
        cls,
        session: ScanSession,
        acceptance_threshold: float,
        wines: Optional[list[RecognizedWine]] = None,
    ) -> "SessionResponse":
        """Build a response; `wines` overrides the session list (e.g. filtered)."""
        shown = session.wines if wines is None else wines
        return cls(
            id=session.id,
            start_time=session.start_time,
            end_time=session.end_time,
            location=session.location,
            matched_count=session.matched_count,
            top_score=session.top_score,
            wines=[RecognizedWineResponse.from_domain(w, acceptance_threshold) for w in shown],
        )


class SessionHistoryResponse(BaseModel):
    sessions: list[SessionResponse]
