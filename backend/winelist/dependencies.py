"""
Service wiring.

build_services() constructs every collaborator once per application;
the FastAPI lifespan stores the result on app.state and routes receive
it through the get_* dependencies.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fastapi import Request

from .config import Config
from .feature_flags import FeatureFlags, get_feature_flags
from .services.candidate_segmenter import CandidateSegmenter
from .services.local_index import LocalMatchIndex
from .services.matching import MatchingOrchestrator
from .services.recognizer import GoogleVisionRecognizer, MockRecognizer, RecognizerProtocol
from .services.scan_session import ScanSessionTracker
from .services.session_store import SessionStore
from .services.snapshot_store import SnapshotStore
from .services.wine_search_client import MockWineSearch, WineSearchClient, WineSearchProtocol

logger = logging.getLogger(__name__)


@dataclass
class ScanServices:
    """Everything the HTTP layer needs, owned by one application."""
    index: LocalMatchIndex
    orchestrator: MatchingOrchestrator
    session_store: SessionStore
    tracker: ScanSessionTracker
    remote: Optional[WineSearchProtocol] = None

    async def aclose(self) -> None:
        await self.tracker.close()
        if isinstance(self.remote, WineSearchClient):
            await self.remote.aclose()
        self.index.flush()
        self.orchestrator.shutdown()


def _build_recognizer() -> RecognizerProtocol:
    if Config.use_mocks() or Config.recognizer() == "mock":
        return MockRecognizer()
    return GoogleVisionRecognizer()


def _build_remote(flags: FeatureFlags, index: LocalMatchIndex) -> Optional[WineSearchProtocol]:
    if not flags.feature_remote_search:
        return None
    if Config.use_mocks():
        return MockWineSearch(index.records())
    base_url = Config.remote_base_url()
    if not base_url:
        logger.info("WINE_API_BASE_URL not set; remote match tiers disabled")
        return None
    return WineSearchClient(base_url, api_key=Config.remote_api_key())


def build_services(
    db_path: Optional[Path] = None,
    flags: Optional[FeatureFlags] = None,
    recognizer: Optional[RecognizerProtocol] = None,
    remote: Optional[WineSearchProtocol] = None,
) -> ScanServices:
    """
    Construct and connect all services.

    Args:
        db_path: Snapshot database. Defaults to Config.state_db_path()
        flags: Feature flags. Defaults to environment flags
        recognizer: Override the configured recognizer
        remote: Override the configured remote search
    """
    flags = flags or get_feature_flags()
    snapshots = SnapshotStore(db_path)

    index = LocalMatchIndex(store=snapshots)
    loaded = index.load()
    seed_path = Config.seed_wines_path()
    if loaded == 0 and seed_path is not None and seed_path.exists():
        index.seed_from_json(seed_path)

    if remote is None:
        remote = _build_remote(flags, index)

    orchestrator = MatchingOrchestrator(
        index,
        remote=remote,
        batch_enabled=flags.feature_batch_match,
        write_through=flags.feature_write_through_cache,
    )
    session_store = SessionStore(snapshots)
    tracker = ScanSessionTracker(
        recognizer=recognizer or _build_recognizer(),
        orchestrator=orchestrator,
        segmenter=CandidateSegmenter(),
        session_store=session_store,
    )
    logger.info(
        f"Services ready: {index.count()} wines indexed, "
        f"remote tiers {'on' if remote is not None else 'off'}"
    )
    return ScanServices(
        index=index,
        orchestrator=orchestrator,
        session_store=session_store,
        tracker=tracker,
        remote=remote,
    )


# === FastAPI dependencies ===


def get_services(request: Request) -> ScanServices:
    return request.app.state.services


def get_tracker(request: Request) -> ScanSessionTracker:
    return get_services(request).tracker


def get_session_store(request: Request) -> SessionStore:
    return get_services(request).session_store
