from .candidate_segmenter import CandidateSegmenter
from .local_index import LocalMatchIndex
from .matching import MatchingOrchestrator, MatchResult
from .scan_session import ScanSessionTracker
from .session_store import SessionStore
from .snapshot_store import SnapshotStore
from .wine_search_client import WineSearchClient

__all__ = [
    "CandidateSegmenter",
    "LocalMatchIndex",
    "MatchingOrchestrator",
    "MatchResult",
    "ScanSessionTracker",
    "SessionStore",
    "SnapshotStore",
    "WineSearchClient",
]
