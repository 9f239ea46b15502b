"""
Tests for domain models: wine records, detections, sessions and filters.
"""

from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from winelist.models.enums import DrinkWindowStatus, MatchTier, ScoreCategory, WineColor
from winelist.models.filters import FilterSet, WineFilter, matches_filter
from winelist.models.scan import BoundingBox, RecognizedWine, ScanSession
from winelist.models.wine import Reviewer, WineRecord


def _detection(record=None, confidence=0.0, tier=MatchTier.NONE, y=0.1) -> RecognizedWine:
    return RecognizedWine(
        original_text=record.display_name if record else "Unknown",
        bbox=BoundingBox(0.1, y, 0.5, 0.03),
        ocr_confidence=0.9,
        matched_wine=record,
        match_confidence=confidence,
        match_tier=tier,
    )


class TestWineRecord:

    def test_display_name_avoids_repeating_producer(self, records_by_id):
        assert records_by_id["w-margaux-2015"].display_name == "Château Margaux"
        assert records_by_id["w-caymus-cs-2021"].display_name == "Caymus Cabernet Sauvignon"

    def test_full_name(self, records_by_id):
        assert records_by_id["w-opus-one-2019"].full_name == "Opus One 2019"
        assert records_by_id["w-veuve-brut-nv"].full_name == "Veuve Clicquot Brut Yellow Label"

    @pytest.mark.parametrize("score,category", [
        (98, ScoreCategory.OUTSTANDING),
        (95, ScoreCategory.OUTSTANDING),
        (92, ScoreCategory.EXCELLENT),
        (87, ScoreCategory.VERY_GOOD),
        (80, ScoreCategory.GOOD),
        (75, ScoreCategory.ACCEPTABLE),
        (70, ScoreCategory.BELOW_AVERAGE),
        (None, None),
    ])
    def test_score_category(self, records_by_id, score, category):
        record = replace(records_by_id["w-opus-one-2019"], score=score)
        assert record.score_category == category

    def test_drink_window_status(self, records_by_id):
        caymus = records_by_id["w-caymus-cs-2021"]  # 2023-2035
        assert caymus.drink_window_status(2022) == DrinkWindowStatus.TOO_YOUNG
        assert caymus.drink_window_status(2023) == DrinkWindowStatus.READY
        assert caymus.drink_window_status(2033) == DrinkWindowStatus.PEAKING
        assert caymus.drink_window_status(2035) == DrinkWindowStatus.PEAKING
        assert caymus.drink_window_status(2036) == DrinkWindowStatus.PAST_PRIME
        assert caymus.is_ready_to_drink(2030)
        assert caymus.is_past_prime(2040)

    def test_drink_window_unknown(self, records_by_id):
        veuve = records_by_id["w-veuve-brut-nv"]
        assert veuve.drink_window_status(2026) == DrinkWindowStatus.UNKNOWN
        assert not veuve.is_ready_to_drink(2026)

    def test_from_dict_nested_and_flat_reviewer(self, records_by_id):
        assert records_by_id["w-margaux-2015"].reviewer == Reviewer("JM", "James Molesworth")
        assert records_by_id["w-opus-one-2019"].reviewer == Reviewer("JL", None)

    def test_from_dict_types(self, records_by_id):
        margaux = records_by_id["w-margaux-2015"]
        assert margaux.release_price == Decimal("650.00")
        assert margaux.grape_varieties[0].name == "Cabernet Sauvignon"
        assert margaux.grape_varieties[0].percentage == 87
        assert records_by_id["w-whispering-angel-2023"].color == WineColor.ROSE

    def test_unknown_color_defaults_to_red(self):
        record = WineRecord.from_dict({"id": 1, "producer": "X", "name": "Y", "color": "orange"})
        assert record.color == WineColor.RED
        assert record.id == "1"

    def test_missing_required_field(self):
        with pytest.raises(KeyError):
            WineRecord.from_dict({"id": "x", "name": "Y"})

    def test_invalid_price(self):
        with pytest.raises(ValueError):
            WineRecord.from_dict({"id": "x", "producer": "X", "name": "Y", "release_price": "cheap"})

    def test_dict_round_trip(self, wine_records):
        for record in wine_records:
            assert WineRecord.from_dict(record.to_dict()) == record


class TestBoundingBox:

    def test_overlap_fraction_uses_smaller_box(self):
        big = BoundingBox(0.0, 0.0, 0.4, 0.4)
        small = BoundingBox(0.1, 0.1, 0.1, 0.1)
        assert big.overlap_fraction(small) == pytest.approx(1.0)
        assert small.overlap_fraction(big) == pytest.approx(1.0)

    def test_partial_and_no_overlap(self):
        a = BoundingBox(0.0, 0.0, 0.2, 0.2)
        b = BoundingBox(0.1, 0.0, 0.2, 0.2)
        c = BoundingBox(0.5, 0.5, 0.1, 0.1)
        assert a.overlap_fraction(b) == pytest.approx(0.5)
        assert a.overlap_fraction(c) == 0.0

    def test_degenerate_box(self):
        assert BoundingBox(0.1, 0.1, 0.0, 0.1).overlap_fraction(BoundingBox(0, 0, 1, 1)) == 0.0

    def test_union(self):
        union = BoundingBox(0.1, 0.2, 0.1, 0.1).union(BoundingBox(0.5, 0.1, 0.1, 0.1))
        assert union.x == pytest.approx(0.1)
        assert union.y == pytest.approx(0.1)
        assert union.max_x == pytest.approx(0.6)
        assert union.max_y == pytest.approx(0.3)


class TestRecognizedWine:

    def test_fresh_ids(self, records_by_id):
        record = records_by_id["w-opus-one-2019"]
        assert _detection(record).id != _detection(record).id

    def test_wine_id_and_matched(self, records_by_id):
        assert _detection(records_by_id["w-opus-one-2019"], 0.9).wine_id == "w-opus-one-2019"
        assert _detection().wine_id is None
        assert not _detection().is_matched

    def test_partial_match(self, records_by_id):
        record = records_by_id["w-opus-one-2019"]
        assert _detection(record, 0.65).is_partial_match(0.7)
        assert not _detection(record, 0.75).is_partial_match(0.7)
        assert not _detection(None, 0.0).is_partial_match(0.7)

    def test_better_than(self, records_by_id):
        record = records_by_id["w-opus-one-2019"]
        exact = _detection(record, 0.98, MatchTier.EXACT)
        remote = _detection(record, 0.98, MatchTier.FUZZY_REMOTE)
        weaker = _detection(record, 0.80, MatchTier.FUZZY_LOCAL)

        assert exact.is_better_than(weaker)
        assert not weaker.is_better_than(exact)
        assert exact.is_better_than(remote)
        assert not remote.is_better_than(exact)

    def test_dict_round_trip(self, records_by_id):
        wine = replace(
            _detection(records_by_id["w-margaux-2015"], 0.98, MatchTier.EXACT),
            list_price=Decimal("185.00"),
            list_price_currency="USD",
            matched_vintage=2015,
        )
        assert RecognizedWine.from_dict(wine.to_dict()) == wine


class TestScanSession:

    def test_counts_and_top_score(self, records_by_id):
        session = ScanSession(wines=[
            _detection(records_by_id["w-opus-one-2019"], 0.98),
            _detection(records_by_id["w-margaux-2015"], 0.9),
            _detection(),
        ])
        assert session.matched_count == 2
        assert session.top_score == 98
        assert session.index_of("w-margaux-2015") == 1
        assert session.index_of("missing") is None

    def test_empty_session(self):
        session = ScanSession()
        assert session.matched_count == 0
        assert session.top_score is None
        assert session.start_time.tzinfo is not None

    def test_dict_round_trip(self, records_by_id):
        session = ScanSession(
            wines=[_detection(records_by_id["w-opus-one-2019"], 0.98, MatchTier.EXACT)],
            location="Le Bernardin",
            end_time=datetime(2026, 10, 1, 21, 30, tzinfo=timezone.utc),
        )
        restored = ScanSession.from_dict(session.to_dict())
        assert restored == session


class TestFilters:

    @pytest.fixture
    def wines(self, records_by_id):
        return [
            _detection(records_by_id["w-margaux-2015"], 0.98, y=0.1),        # 98, red, 2025-2060
            _detection(records_by_id["w-caymus-cs-2021"], 0.98, y=0.2),      # 92, red, 2023-2035
            _detection(records_by_id["w-cloudy-bay-sb-2022"], 0.98, y=0.3),  # 90, white, 2022-2025
            _detection(records_by_id["w-veuve-brut-nv"], 0.98, y=0.4),       # 91, sparkling
            _detection(None, 0.0, y=0.5),
        ]

    def test_no_filters_keeps_everything(self, wines):
        assert FilterSet().apply(wines) == wines

    def test_score_filter(self, wines):
        kept = FilterSet([WineFilter.SCORE_95_PLUS]).apply(wines)
        assert [w.wine_id for w in kept] == ["w-margaux-2015"]

    def test_color_filters(self, wines):
        assert [w.wine_id for w in FilterSet([WineFilter.WHITE_ONLY]).apply(wines)] == ["w-cloudy-bay-sb-2022"]
        assert [w.wine_id for w in FilterSet([WineFilter.SPARKLING_ONLY]).apply(wines)] == ["w-veuve-brut-nv"]

    def test_drink_now(self, wines):
        kept = FilterSet([WineFilter.DRINK_NOW]).apply(wines, year=2030)
        assert [w.wine_id for w in kept] == ["w-margaux-2015", "w-caymus-cs-2021"]

    def test_filters_combine(self, wines):
        kept = FilterSet([WineFilter.SCORE_90_PLUS, WineFilter.RED_ONLY]).apply(wines)
        assert [w.wine_id for w in kept] == ["w-margaux-2015", "w-caymus-cs-2021"]

    def test_one_filter_per_group(self):
        filters = FilterSet([WineFilter.SCORE_95_PLUS, WineFilter.RED_ONLY, WineFilter.DRINK_NOW])
        filters.toggle(WineFilter.SCORE_90_PLUS)
        filters.toggle(WineFilter.WHITE_ONLY)
        assert filters.active == [WineFilter.DRINK_NOW, WineFilter.SCORE_90_PLUS, WineFilter.WHITE_ONLY]

    def test_toggle_off(self):
        filters = FilterSet([WineFilter.DRINK_NOW])
        filters.toggle(WineFilter.DRINK_NOW)
        assert filters.active == []

    def test_unmatched_never_passes(self):
        assert not matches_filter(_detection(), WineFilter.DRINK_NOW)
