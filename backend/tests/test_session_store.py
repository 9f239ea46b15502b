"""
Tests for session checkpointing and bounded history.
"""

from datetime import datetime, timedelta, timezone

import pytest

from winelist.models.enums import MatchTier
from winelist.models.scan import BoundingBox, RecognizedWine, ScanSession
from winelist.services.session_store import CURRENT_SESSION_KEY, SESSION_HISTORY_KEY, SessionStore


def _session(minutes_ago: int = 0, wines=None) -> ScanSession:
    start = datetime(2026, 10, 1, 20, 0, tzinfo=timezone.utc) - timedelta(minutes=minutes_ago)
    return ScanSession(start_time=start, wines=wines or [])


@pytest.fixture
def store(snapshot_store):
    return SessionStore(snapshot_store, history_limit=3, schema_version=1)


class TestCurrentSession:

    def test_save_and_load(self, store, records_by_id):
        wine = RecognizedWine(
            original_text="Opus One 2019",
            bbox=BoundingBox(0.1, 0.3, 0.4, 0.03),
            ocr_confidence=0.94,
            matched_wine=records_by_id["w-opus-one-2019"],
            match_confidence=0.98,
            match_tier=MatchTier.EXACT,
        )
        session = _session(wines=[wine])
        session.location = "Le Bernardin"

        assert store.save_current(session) is True
        assert store.load_current() == session

    def test_missing(self, store):
        assert store.load_current() is None

    def test_clear(self, store):
        store.save_current(_session())
        store.clear_current()
        assert store.load_current() is None

    def test_unreadable_checkpoint_discarded(self, store, snapshot_store):
        snapshot_store.save(CURRENT_SESSION_KEY, 1, {"wines": []})
        assert store.load_current() is None
        assert CURRENT_SESSION_KEY not in snapshot_store.keys()

    def test_schema_mismatch_discarded(self, snapshot_store):
        SessionStore(snapshot_store, schema_version=1).save_current(_session())
        assert SessionStore(snapshot_store, schema_version=2).load_current() is None


class TestHistory:

    def test_most_recent_first(self, store):
        older, newer = _session(minutes_ago=60), _session(minutes_ago=5)
        store.append_history(newer)
        store.append_history(older)

        assert [s.id for s in store.load_history()] == [newer.id, older.id]

    def test_evicts_oldest_beyond_limit(self, store):
        sessions = [_session(minutes_ago=m) for m in (40, 30, 20, 10)]
        for session in sessions:
            store.append_history(session)

        history = store.load_history()
        assert len(history) == 3
        assert sessions[0].id not in {s.id for s in history}

    def test_append_same_session_replaces(self, store):
        session = _session()
        store.append_history(session)
        session.location = "Per Se"
        store.append_history(session)

        history = store.load_history()
        assert len(history) == 1
        assert history[0].location == "Per Se"

    def test_delete(self, store):
        keep, drop = _session(minutes_ago=10), _session(minutes_ago=5)
        store.append_history(keep)
        store.append_history(drop)

        assert store.delete_history(drop.id) is True
        assert store.delete_history(drop.id) is False
        assert [s.id for s in store.load_history()] == [keep.id]

    def test_unreadable_history_discarded(self, store, snapshot_store):
        snapshot_store.save(SESSION_HISTORY_KEY, 1, {"sessions": [{"id": "x"}]})
        assert store.load_history() == []
        assert SESSION_HISTORY_KEY not in snapshot_store.keys()
