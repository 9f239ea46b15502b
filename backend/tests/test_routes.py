"""
Tests for the HTTP API (mock recognizer and mock remote search).
"""

import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from main import create_app
from winelist.config import Config
from winelist.services.session_store import SessionStore

from helpers import WINES_FIXTURE


def _png_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (64, 64), "white").save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def client(tmp_path, monkeypatch):
    """App wired from the environment in mock mode, with an isolated state db."""
    monkeypatch.setenv("USE_MOCKS", "true")
    monkeypatch.setenv("STATE_DB_PATH", str(tmp_path / "state.db"))
    monkeypatch.setenv("SEED_WINES_PATH", str(WINES_FIXTURE))
    monkeypatch.setenv("OCR_PROCESSING_INTERVAL", "60")

    with TestClient(create_app()) as test_client:
        yield test_client


def _scan_photo(client):
    return client.post("/scan/photo", files={"image": ("list.png", _png_bytes(), "image/png")})


class TestMeta:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["name"] == "Wine List Scanner API"

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}


class TestPhotoScan:

    def test_scan_photo(self, client):
        response = _scan_photo(client)
        assert response.status_code == 200

        wines = response.json()["wines"]
        assert [w["wine"]["id"] for w in wines] == [
            "w-margaux-2015", "w-opus-one-2019", "w-caymus-cs-2021",
        ]
        margaux = wines[0]
        assert margaux["match_tier"] == "exact"
        assert margaux["match_confidence"] == 0.98
        assert margaux["list_price"] == 185.0
        assert margaux["list_price_currency"] == "USD"
        assert margaux["matched_vintage"] == 2015
        assert margaux["is_partial_match"] is False
        assert margaux["wine"]["display_name"] == "Château Margaux"
        assert margaux["wine"]["score_category"] == "outstanding"
        assert 0 <= margaux["bbox"]["y"] <= 1

    def test_invalid_content_type(self, client):
        response = client.post("/scan/photo", files={"image": ("notes.txt", b"hello", "text/plain")})
        assert response.status_code == 400

    def test_image_too_large(self, client, monkeypatch):
        monkeypatch.setattr(Config, "MAX_IMAGE_SIZE_BYTES", 10)
        response = _scan_photo(client)
        assert response.status_code == 400
        assert "too large" in response.json()["detail"]

    def test_invalid_heic(self, client):
        response = client.post("/scan/photo", files={"image": ("list.heic", b"garbage", "image/heic")})
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid image format"

    def test_scan_fragments(self, client):
        response = client.post("/scan/fragments", json={"fragments": [
            {"text": "Ridge Monte Bello 2018", "confidence": 0.95,
             "bbox": {"x": 0.1, "y": 0.3, "width": 0.5, "height": 0.03}},
            {"text": "WINE LIST", "confidence": 0.99,
             "bbox": {"x": 0.3, "y": 0.05, "width": 0.4, "height": 0.04}},
        ]})
        assert response.status_code == 200

        wines = response.json()["wines"]
        assert len(wines) == 1
        assert wines[0]["wine"]["id"] == "w-ridge-monte-bello-2018"

    def test_scan_fragments_validation(self, client):
        response = client.post("/scan/fragments", json={"fragments": [
            {"text": "Opus One", "confidence": 0.9, "bbox": {"x": 1.5, "y": 0, "width": 0.1, "height": 0.1}},
        ]})
        assert response.status_code == 422

    def test_overlay_after_photo(self, client):
        _scan_photo(client)
        overlay = client.get("/scan/overlay").json()["wines"]
        assert len(overlay) == 3


class TestLiveScan:

    def test_state_transitions_and_debounce(self, client):
        assert client.post("/scan/start").json()["state"] == "scanning"

        frame = {"image": ("frame.png", _png_bytes(), "image/png")}
        first = client.post("/scan/frame", files=frame).json()
        second = client.post("/scan/frame", files=frame).json()
        assert first == {"accepted": True, "state": "scanning"}
        assert second["accepted"] is False

        assert client.post("/scan/pause").json()["state"] == "paused"
        assert client.post("/scan/stop").json()["state"] == "stopped"

    def test_frame_rejected_when_idle(self, client):
        frame = {"image": ("frame.png", _png_bytes(), "image/png")}
        assert client.post("/scan/frame", files=frame).json()["accepted"] is False


class TestSession:

    def test_session_accumulates(self, client):
        _scan_photo(client)
        session = client.get("/session").json()

        assert session["matched_count"] == 3
        assert session["top_score"] == 98
        assert len(session["wines"]) == 3

    def test_session_filters(self, client):
        _scan_photo(client)
        response = client.get("/session", params={"filters": ["score_95_plus", "red_only"]})

        ids = [w["wine"]["id"] for w in response.json()["wines"]]
        assert ids == ["w-margaux-2015", "w-opus-one-2019"]

    def test_invalid_filter(self, client):
        assert client.get("/session", params={"filters": "cheapest"}).status_code == 422

    def test_update_location(self, client):
        response = client.put("/session/location", json={"location": "  Le Bernardin "})
        assert response.json()["location"] == "Le Bernardin"

        response = client.put("/session/location", json={"location": "   "})
        assert response.json()["location"] is None

    def test_clear_session(self, client):
        _scan_photo(client)
        before = client.get("/session").json()["id"]

        cleared = client.delete("/session").json()

        assert cleared["id"] != before
        assert cleared["wines"] == []

    def test_save_empty_session(self, client):
        assert client.post("/session/save").status_code == 400

    def test_save_failure_keeps_session(self, client, monkeypatch):
        monkeypatch.setattr(SessionStore, "append_history", lambda self, session: False)
        _scan_photo(client)
        before = client.get("/session").json()

        response = client.post("/session/save")

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to save session"
        after = client.get("/session").json()
        assert after["id"] == before["id"]
        assert len(after["wines"]) == 3
        assert after["end_time"] is None

    def test_history_lifecycle(self, client):
        _scan_photo(client)
        saved = client.post("/session/save").json()
        assert saved["end_time"] is not None

        history = client.get("/session/history").json()["sessions"]
        assert [s["id"] for s in history] == [saved["id"]]
        assert client.get("/session").json()["wines"] == []

        assert client.delete(f"/session/history/{saved['id']}").status_code == 204
        assert client.delete(f"/session/history/{saved['id']}").status_code == 404
        assert client.get("/session/history").json()["sessions"] == []
