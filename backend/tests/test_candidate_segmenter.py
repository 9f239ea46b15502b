"""
Tests for grouping recognized fragments into wine-list entries.
"""

import pytest

from winelist.services.candidate_segmenter import (
    CandidateSegmenter,
    is_boilerplate,
    is_likely_wine_entry,
)
from winelist.services.recognizer import MockRecognizer

from helpers import make_fragment


class TestSegment:
    """Tests for spatial grouping without content filtering."""

    @pytest.fixture
    def segmenter(self):
        return CandidateSegmenter(line_gap_threshold=0.025, min_candidate_length=5)

    def test_empty_input(self, segmenter):
        assert segmenter.segment([]) == []
        assert segmenter.group_into_wine_entries([]) == []

    def test_small_gaps_form_one_candidate(self, segmenter):
        fragments = [
            make_fragment("Chateau Margaux", 0.1, 0.40, height=0.03),
            make_fragment("Margaux, Bordeaux", 0.1, 0.44, height=0.03),
            make_fragment("2015", 0.1, 0.48, height=0.03),
        ]
        candidates = segmenter.segment(fragments)

        assert len(candidates) == 1
        assert candidates[0].text == "Chateau Margaux Margaux, Bordeaux 2015"
        assert candidates[0].line_count == 3

    def test_large_gaps_split_every_fragment(self, segmenter):
        fragments = [
            make_fragment("Opus One 2019", 0.1, 0.10),
            make_fragment("Caymus Cabernet 2021", 0.1, 0.30),
            make_fragment("Ridge Monte Bello 2018", 0.1, 0.50),
        ]
        assert len(segmenter.segment(fragments)) == len(fragments)

    def test_two_entries_separated_by_gap(self, segmenter):
        fragments = [
            make_fragment("Opus One", 0.1, 0.40, height=0.03),
            make_fragment("Napa Valley 2019", 0.1, 0.45, height=0.03),
            make_fragment("Ridge Monte Bello", 0.1, 0.60, height=0.03),
            make_fragment("Santa Cruz 2018", 0.1, 0.65, height=0.03),
        ]
        candidates = segmenter.segment(fragments)

        assert len(candidates) == 2
        assert candidates[0].text == "Opus One Napa Valley 2019"
        assert candidates[1].text == "Ridge Monte Bello Santa Cruz 2018"

    def test_orders_fragments_top_to_bottom(self, segmenter):
        fragments = [
            make_fragment("Ridge Monte Bello 2018", 0.1, 0.60),
            make_fragment("Opus One 2019", 0.1, 0.10),
        ]
        candidates = segmenter.segment(fragments)
        assert [c.text for c in candidates] == ["Opus One 2019", "Ridge Monte Bello 2018"]

    def test_name_and_price_columns_stay_together(self, segmenter):
        fragments = [
            make_fragment("$185", 0.80, 0.20, width=0.08),
            make_fragment("Ch. Margaux 2015", 0.10, 0.20, width=0.5),
        ]
        candidates = segmenter.segment(fragments)

        assert len(candidates) == 1
        assert candidates[0].text == "Ch. Margaux 2015 $185"

    def test_candidate_geometry_and_confidence(self, segmenter):
        fragments = [
            make_fragment("Opus One", 0.10, 0.40, width=0.3, height=0.03, confidence=0.8),
            make_fragment("2019 $450", 0.20, 0.44, width=0.5, height=0.03, confidence=1.0),
        ]
        candidate = segmenter.segment(fragments)[0]

        assert candidate.bbox.x == pytest.approx(0.10)
        assert candidate.bbox.y == pytest.approx(0.40)
        assert candidate.bbox.max_x == pytest.approx(0.70)
        assert candidate.bbox.max_y == pytest.approx(0.47)
        assert candidate.confidence == pytest.approx(0.9)

    def test_short_candidates_dropped(self, segmenter):
        fragments = [make_fragment("12", 0.1, 0.1), make_fragment("Opus One 2019", 0.1, 0.5)]
        assert [c.text for c in segmenter.segment(fragments)] == ["Opus One 2019"]

    def test_blank_fragments_ignored(self, segmenter):
        fragments = [make_fragment("   ", 0.1, 0.1), make_fragment("Opus One 2019", 0.1, 0.5)]
        assert len(segmenter.segment(fragments)) == 1


class TestGroupIntoWineEntries:

    def test_filters_boilerplate(self):
        segmenter = CandidateSegmenter()
        fragments = [
            make_fragment("RED WINES", 0.3, 0.05),
            make_fragment("Opus One 2019 $450", 0.1, 0.30),
            make_fragment("page 3 of 12", 0.4, 0.92),
        ]
        candidates = segmenter.group_into_wine_entries(fragments)
        assert [c.text for c in candidates] == ["Opus One 2019 $450"]

    @pytest.mark.asyncio
    async def test_mock_wine_list_page(self):
        fragments = await MockRecognizer().recognize(b"frame")
        candidates = CandidateSegmenter().group_into_wine_entries(fragments)

        assert [c.text for c in candidates] == [
            "Ch. Margaux 2015 $185",
            "Opus One 2019 $450",
            "Caymus Cab Sauv 2021 $140",
        ]


class TestEntryHeuristics:

    @pytest.mark.parametrize("text", [
        "Wine List",
        "BY THE GLASS",
        "Red Wines",
        "Rosé Wines",
        "page 3",
        "Page 3 of 12",
        "3 of 12",
        "4/12",
        "Corkage fee applies",
    ])
    def test_boilerplate(self, text):
        assert is_boilerplate(text)
        assert not is_likely_wine_entry(text)

    def test_page_winery_is_not_boilerplate(self):
        assert not is_boilerplate("Page Springs Cellars")
        assert is_likely_wine_entry("Page Springs Cellars")

    @pytest.mark.parametrize("text", [
        "Opus One 2019",
        "Opus One '19",
        "Opus One $450",
        "Domaine Leflaive",
        "Cloudy Bay Sauvignon Blanc",
        "Scarecrow Wine Company Napa",
    ])
    def test_wine_entries(self, text):
        assert is_likely_wine_entry(text)

    @pytest.mark.parametrize("text", [
        "Opus One",
        "Ask",
        "Thank you",
    ])
    def test_non_entries(self, text):
        assert not is_likely_wine_entry(text)
