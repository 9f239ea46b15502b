"""
Text recognizers: turn an image into positioned text fragments.

GoogleVisionRecognizer wraps Google Cloud Vision TEXT_DETECTION.
MockRecognizer and ReplayRecognizer return canned fragments for tests
and local development.
"""
from __future__ import annotations

import asyncio
import io
import json
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional, Protocol

from PIL import Image, UnidentifiedImageError

from ..config import Config
from ..models.scan import BoundingBox, OCRFragment

logger = logging.getLogger(__name__)

# Vision API doesn't provide per-word confidence for TEXT_DETECTION
DEFAULT_TEXT_CONFIDENCE = 0.9


class RecognitionError(Exception):
    """Recognizer could not process the input image."""


class RecognizerProtocol(Protocol):
    """Protocol for text recognizers (allows mocking)."""
    async def recognize(self, image: bytes) -> list[OCRFragment]: ...


class GoogleVisionRecognizer:
    """Google Cloud Vision text detection, run off the event loop."""

    def __init__(
        self,
        confidence_floor: Optional[float] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self._client = None
        self._confidence_floor = (
            confidence_floor if confidence_floor is not None else Config.RECOGNIZER_CONFIDENCE_FLOOR
        )
        self._executor = executor

    def _get_client(self):
        """Lazy load Vision client."""
        if self._client is None:
            from google.cloud import vision
            self._client = vision.ImageAnnotatorClient()
        return self._client

    async def recognize(self, image: bytes) -> list[OCRFragment]:
        """
        Recognize text in an image.

        Args:
            image: Raw image bytes (JPEG or PNG)

        Returns:
            Fragments with normalized bounding boxes, above the confidence floor

        Raises:
            RecognitionError: if the image is empty or the API call fails
        """
        if not image:
            raise RecognitionError("Empty image")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self._recognize_sync, image)

    def _recognize_sync(self, image_bytes: bytes) -> list[OCRFragment]:
        from google.api_core import exceptions as google_exceptions
        from google.cloud import vision

        client = self._get_client()
        try:
            response = client.annotate_image({
                'image': vision.Image(content=image_bytes),
                'features': [vision.Feature(type_=vision.Feature.Type.TEXT_DETECTION)],
            })
        except google_exceptions.GoogleAPIError as e:
            raise RecognitionError(f"Vision API call failed: {e}") from e

        if response.error and response.error.message:
            raise RecognitionError(f"Vision API error: {response.error.message}")

        image_width, image_height = self._extract_image_dimensions(
            response.text_annotations, image_bytes
        )
        return self._parse_text(response.text_annotations, image_width, image_height)

    def _extract_image_dimensions(self, text_annotations, image_bytes: bytes) -> tuple[int, int]:
        """
        Image size in pixels.

        Decoded from the image header; falls back to the extent of the
        first text annotation, which spans all detected text.
        """
        try:
            img = Image.open(io.BytesIO(image_bytes))
            return img.size
        except (UnidentifiedImageError, OSError):
            pass

        if text_annotations:
            vertices = getattr(text_annotations[0].bounding_poly, 'vertices', None) or []
            x_coords = [v.x for v in vertices if v.x > 0]
            y_coords = [v.y for v in vertices if v.y > 0]
            if x_coords and y_coords:
                return (max(x_coords), max(y_coords))

        return (Config.DEFAULT_IMAGE_WIDTH, Config.DEFAULT_IMAGE_HEIGHT)

    def _parse_text(self, annotations, image_width: int, image_height: int) -> list[OCRFragment]:
        """Parse text detection results with normalized coordinates."""
        fragments = []

        if image_width <= 0:
            image_width = Config.DEFAULT_IMAGE_WIDTH
        if image_height <= 0:
            image_height = Config.DEFAULT_IMAGE_HEIGHT

        # Skip first annotation (it's the full text)
        for ann in annotations[1:] if annotations else []:
            if getattr(ann, 'bounding_poly', None) is None:
                continue
            vertices = getattr(ann.bounding_poly, 'vertices', None)
            if vertices is None or len(vertices) < 4:
                continue

            confidence = getattr(ann, 'confidence', 0.0) or DEFAULT_TEXT_CONFIDENCE
            if confidence < self._confidence_floor:
                continue

            x_coords = [v.x for v in vertices]
            y_coords = [v.y for v in vertices]
            fragments.append(OCRFragment(
                text=ann.description,
                bbox=BoundingBox(
                    x=min(x_coords) / image_width,
                    y=min(y_coords) / image_height,
                    width=(max(x_coords) - min(x_coords)) / image_width,
                    height=(max(y_coords) - min(y_coords)) / image_height,
                ),
                confidence=confidence,
            ))

        return fragments


class MockRecognizer:
    """Recognizer returning fixed fragments, regardless of input."""

    def __init__(self, fragments: Optional[list[OCRFragment]] = None, scenario: str = "wine_list"):
        self.scenario = scenario
        self._fragments = fragments
        self.calls = 0

    async def recognize(self, image: bytes) -> list[OCRFragment]:
        self.calls += 1
        if self._fragments is not None:
            return list(self._fragments)
        if self.scenario == "wine_list":
            return self._wine_list_fragments()
        return []

    def _wine_list_fragments(self) -> list[OCRFragment]:
        """A short red-wine page with a header and a page marker."""
        return [
            OCRFragment("RED WINES", BoundingBox(0.30, 0.05, 0.40, 0.04), 0.95),
            OCRFragment("Ch. Margaux 2015", BoundingBox(0.10, 0.20, 0.50, 0.03), 0.93),
            OCRFragment("$185", BoundingBox(0.80, 0.20, 0.08, 0.03), 0.92),
            OCRFragment("Opus One 2019", BoundingBox(0.10, 0.30, 0.45, 0.03), 0.94),
            OCRFragment("$450", BoundingBox(0.80, 0.30, 0.08, 0.03), 0.92),
            OCRFragment("Caymus Cab Sauv 2021", BoundingBox(0.10, 0.40, 0.55, 0.03), 0.91),
            OCRFragment("$140", BoundingBox(0.80, 0.40, 0.08, 0.03), 0.90),
            OCRFragment("page 3 of 12", BoundingBox(0.40, 0.92, 0.20, 0.03), 0.88),
        ]


class ReplayRecognizer:
    """
    Replay captured recognizer output for deterministic testing.

    Fixture format: {"fragments": [{"text", "confidence", "bbox": {x, y, width, height}}]}
    """

    def __init__(self, fixture_path: str | Path):
        self._fixture_path = Path(fixture_path)
        self._data: Optional[dict] = None

    def _load_fixture(self) -> dict:
        """Lazy load fixture data."""
        if self._data is None:
            with open(self._fixture_path) as f:
                self._data = json.load(f)
        return self._data

    async def recognize(self, image: bytes) -> list[OCRFragment]:
        data = self._load_fixture()
        return [
            OCRFragment(
                text=item["text"],
                bbox=BoundingBox(**item["bbox"]),
                confidence=item.get("confidence", DEFAULT_TEXT_CONFIDENCE),
            )
            for item in data.get("fragments", [])
            if item.get("confidence", DEFAULT_TEXT_CONFIDENCE) >= Config.RECOGNIZER_CONFIDENCE_FLOOR
        ]
