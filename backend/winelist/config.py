"""
Centralized configuration for the Wine List Scanner backend.

All constants are defined here to avoid scattered magic numbers
and enable easy configuration management.
"""

import os
from pathlib import Path
from typing import List, Optional


class Config:
    """Application configuration constants."""

    # === Confidence Thresholds ===
    MATCH_CONFIDENCE_THRESHOLD = 0.70   # Accept fuzzy match (local or remote single)
    PARTIAL_MATCH_THRESHOLD = 0.60      # Accept batch remote match
    EXACT_MATCH_CONFIDENCE = 0.98       # Confidence reported for exact local hits
    FUZZY_INDEX_MIN_SCORE = 0.50        # Index returns nothing below this

    # === Similarity Weights ===
    # token-set overlap + normalized edit distance + phonetic agreement
    WEIGHT_TOKEN_SET = 0.35
    WEIGHT_EDIT = 0.50
    WEIGHT_PHONETIC = 0.15
    PHONETIC_PREFIX_LENGTH = 3

    # === Segmentation ===
    LINE_GAP_THRESHOLD = 0.025      # Fraction of frame height
    MIN_CANDIDATE_LENGTH = 5
    FALLBACK_MIN_WORDS = 3
    FALLBACK_MIN_LENGTH = 15
    RECOGNIZER_CONFIDENCE_FLOOR = 0.5
    DEFAULT_IMAGE_WIDTH = 1000
    DEFAULT_IMAGE_HEIGHT = 1000

    # === Local Index ===
    INDEX_TOKEN_MIN_LENGTH = 3
    CACHE_SCHEMA_VERSION = 2
    INDEX_SNAPSHOT_EVERY = 10       # Write-through upserts between snapshots
    INDEX_EXECUTOR_WORKERS = 4

    # === Frame Merge & Session ===
    OVERLAP_THRESHOLD = 0.5
    OVERLAY_STALE_SECONDS = 3.0
    MIN_PROCESSING_INTERVAL = 0.5   # Seconds between processed frames
    MAX_REMOTE_TASKS = 8
    SESSION_SCHEMA_VERSION = 1
    SESSION_HISTORY_LIMIT = 50

    # === Remote Search ===
    MAX_BATCH_QUERIES = 100
    DEFAULT_SEARCH_LIMIT = 10

    # === Image Upload ===
    MAX_IMAGE_SIZE_MB = 10
    MAX_IMAGE_SIZE_BYTES = MAX_IMAGE_SIZE_MB * 1024 * 1024
    ALLOWED_CONTENT_TYPES: List[str] = [
        "image/jpeg",
        "image/png",
        "image/heic",
        "image/heif",
    ]

    # === Environment ===
    @staticmethod
    def use_mocks() -> bool:
        """Check if mock mode is enabled."""
        return os.getenv("USE_MOCKS", "false").lower() == "true"

    @staticmethod
    def log_level() -> str:
        """Log level (DEBUG, INFO, WARNING, ERROR)."""
        return os.getenv("LOG_LEVEL", "INFO").upper()

    @staticmethod
    def recognizer() -> str:
        """Text recognizer backend (google, mock). Default: google."""
        return os.getenv("RECOGNIZER", "google").lower()

    @staticmethod
    def remote_base_url() -> Optional[str]:
        """Base URL of the remote wine search service (None disables remote tiers)."""
        url = os.getenv("WINE_API_BASE_URL")
        return url.rstrip("/") if url else None

    @staticmethod
    def remote_api_key() -> Optional[str]:
        """API key sent as X-API-Key to the remote wine search service."""
        return os.getenv("WINE_API_KEY")

    @staticmethod
    def remote_timeout_seconds() -> float:
        """Timeout for a single remote search call."""
        try:
            return float(os.getenv("REMOTE_TIMEOUT_SECONDS", "10"))
        except ValueError:
            return 10.0

    @staticmethod
    def processing_interval_seconds() -> float:
        """Minimum time between processed frames (never below 0.5s)."""
        try:
            interval = float(os.getenv("OCR_PROCESSING_INTERVAL", str(Config.MIN_PROCESSING_INTERVAL)))
        except ValueError:
            interval = Config.MIN_PROCESSING_INTERVAL
        return max(interval, Config.MIN_PROCESSING_INTERVAL)

    @staticmethod
    def match_confidence_threshold() -> float:
        """Acceptance threshold for fuzzy tiers (tunable per deployment)."""
        try:
            return float(os.getenv("MATCH_CONFIDENCE_THRESHOLD", str(Config.MATCH_CONFIDENCE_THRESHOLD)))
        except ValueError:
            return Config.MATCH_CONFIDENCE_THRESHOLD

    @staticmethod
    def overlap_threshold() -> float:
        """Bounding-box overlap fraction treated as the same physical entry."""
        try:
            return float(os.getenv("OVERLAP_THRESHOLD", str(Config.OVERLAP_THRESHOLD)))
        except ValueError:
            return Config.OVERLAP_THRESHOLD

    # === Persistence ===
    @staticmethod
    def state_db_path() -> Path:
        """Path to the SQLite file holding index and session snapshots.

        Defaults to winelist/data/state.db. Override with STATE_DB_PATH.
        """
        env_path = os.getenv("STATE_DB_PATH")
        if env_path:
            return Path(env_path)
        return Path(__file__).parent / "data" / "state.db"

    @staticmethod
    def seed_wines_path() -> Optional[Path]:
        """Optional JSON file of wine records loaded into an empty index at startup."""
        env_path = os.getenv("SEED_WINES_PATH")
        return Path(env_path) if env_path else None
