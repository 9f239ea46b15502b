"""
Canonical wine record as served by the wine catalog.

Records are immutable once fetched and are cached by `id` in the
local match index. Serialization uses the catalog API's snake_case keys.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from .enums import DrinkWindowStatus, ScoreCategory, WineColor

# Years before the end of the drinking window counted as "peaking"
PEAK_WINDOW_YEARS = 2


@dataclass(frozen=True)
class GrapeVariety:
    name: str
    percentage: Optional[int] = None


@dataclass(frozen=True)
class Reviewer:
    initials: str
    name: Optional[str] = None


@dataclass(frozen=True)
class WineRecord:
    """A wine from the catalog, optionally pinned to a vintage."""
    id: str
    producer: str
    name: str
    vintage: Optional[int] = None
    region: Optional[str] = None
    sub_region: Optional[str] = None
    appellation: Optional[str] = None
    country: Optional[str] = None
    color: WineColor = WineColor.RED
    grape_varieties: tuple[GrapeVariety, ...] = field(default_factory=tuple)
    alcohol: Optional[float] = None
    score: Optional[int] = None
    tasting_note: Optional[str] = None
    reviewer: Optional[Reviewer] = None
    review_date: Optional[str] = None
    drink_window_start: Optional[int] = None
    drink_window_end: Optional[int] = None
    release_price: Optional[Decimal] = None
    release_price_currency: Optional[str] = None

    @property
    def display_name(self) -> str:
        """Name shown to users; avoids repeating the producer."""
        if self.name.strip().lower() == self.producer.strip().lower():
            return self.name
        return f"{self.producer} {self.name}".strip()

    @property
    def full_name(self) -> str:
        if self.vintage is not None:
            return f"{self.display_name} {self.vintage}"
        return self.display_name

    @property
    def index_text(self) -> str:
        """Text the local index tokenizes: producer, name and region."""
        return " ".join(part for part in (self.producer, self.name, self.region) if part)

    @property
    def score_category(self) -> Optional[ScoreCategory]:
        if self.score is None:
            return None
        if self.score >= 95:
            return ScoreCategory.OUTSTANDING
        if self.score >= 90:
            return ScoreCategory.EXCELLENT
        if self.score >= 85:
            return ScoreCategory.VERY_GOOD
        if self.score >= 80:
            return ScoreCategory.GOOD
        if self.score >= 75:
            return ScoreCategory.ACCEPTABLE
        return ScoreCategory.BELOW_AVERAGE

    def drink_window_status(self, year: Optional[int] = None) -> DrinkWindowStatus:
        """
        Classify the wine against its drinking window.

        Args:
            year: Reference year. Defaults to the current year.
        """
        if self.drink_window_start is None or self.drink_window_end is None:
            return DrinkWindowStatus.UNKNOWN
        if year is None:
            year = date.today().year

        if year < self.drink_window_start:
            return DrinkWindowStatus.TOO_YOUNG
        if year > self.drink_window_end:
            return DrinkWindowStatus.PAST_PRIME
        if year >= self.drink_window_end - PEAK_WINDOW_YEARS:
            return DrinkWindowStatus.PEAKING
        return DrinkWindowStatus.READY

    def is_ready_to_drink(self, year: Optional[int] = None) -> bool:
        return self.drink_window_status(year) in (DrinkWindowStatus.READY, DrinkWindowStatus.PEAKING)

    def is_past_prime(self, year: Optional[int] = None) -> bool:
        return self.drink_window_status(year) == DrinkWindowStatus.PAST_PRIME

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "producer": self.producer,
            "name": self.name,
            "vintage": self.vintage,
            "region": self.region,
            "sub_region": self.sub_region,
            "appellation": self.appellation,
            "country": self.country,
            "color": self.color.value,
            "grape_varieties": [
                {"name": g.name, "percentage": g.percentage} for g in self.grape_varieties
            ],
            "alcohol": self.alcohol,
            "score": self.score,
            "tasting_note": self.tasting_note,
            "reviewer": (
                {"initials": self.reviewer.initials, "name": self.reviewer.name}
                if self.reviewer else None
            ),
            "review_date": self.review_date,
            "drink_window_start": self.drink_window_start,
            "drink_window_end": self.drink_window_end,
            "release_price": str(self.release_price) if self.release_price is not None else None,
            "release_price_currency": self.release_price_currency,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WineRecord":
        """
        Build a record from catalog JSON.

        Accepts a nested `reviewer` object or flat `reviewer_initials` /
        `reviewer_name` fields. Raises KeyError/ValueError/TypeError on
        malformed input.
        """
        reviewer = None
        raw_reviewer = data.get("reviewer")
        if isinstance(raw_reviewer, dict) and raw_reviewer.get("initials"):
            reviewer = Reviewer(raw_reviewer["initials"], raw_reviewer.get("name"))
        elif data.get("reviewer_initials"):
            reviewer = Reviewer(data["reviewer_initials"], data.get("reviewer_name"))

        grapes = tuple(
            GrapeVariety(name=g["name"], percentage=g.get("percentage"))
            for g in data.get("grape_varieties") or []
        )

        return cls(
            id=str(data["id"]),
            producer=data["producer"],
            name=data["name"],
            vintage=_optional_int(data.get("vintage")),
            region=data.get("region"),
            sub_region=data.get("sub_region"),
            appellation=data.get("appellation"),
            country=data.get("country"),
            color=_parse_color(data.get("color")),
            grape_varieties=grapes,
            alcohol=data.get("alcohol"),
            score=_optional_int(data.get("score")),
            tasting_note=data.get("tasting_note"),
            reviewer=reviewer,
            review_date=data.get("review_date"),
            drink_window_start=_optional_int(data.get("drink_window_start")),
            drink_window_end=_optional_int(data.get("drink_window_end")),
            release_price=_optional_decimal(data.get("release_price")),
            release_price_currency=data.get("release_price_currency"),
        )


def _parse_color(value: Optional[str]) -> WineColor:
    if not value:
        return WineColor.RED
    value = value.strip().lower().replace("é", "e")
    try:
        return WineColor(value)
    except ValueError:
        return WineColor.RED


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def _optional_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Invalid price: {value!r}") from e
