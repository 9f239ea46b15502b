"""
Local match index: in-memory wine records with exact and fuzzy lookup.

Records are keyed by identity. Two secondary structures are kept in sync
on every upsert:
- exact keys: normalized "producer name" (and display name) -> record ids
- token index: normalized tokens of producer, name and region -> record ids

The index is persisted as one versioned snapshot. A schema version
mismatch or any undecodable record wipes the whole index.
"""

import json
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Union

from ..config import Config
from ..models.wine import WineRecord
from .snapshot_store import SnapshotStore
from .text_normalizer import normalize, similarity, tokenize

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "wine_index"


@dataclass
class FuzzyMatch:
    """Best fuzzy candidate from the index."""
    record: WineRecord
    score: float


def match_keys(record: WineRecord) -> tuple[str, ...]:
    """Normalized exact-match keys for a record."""
    keys = [normalize(f"{record.producer} {record.name}")]
    display_key = normalize(record.display_name)
    if display_key not in keys:
        keys.append(display_key)
    return tuple(k for k in keys if k)


def index_tokens(record: WineRecord) -> set[str]:
    """Tokens long enough to be useful for fuzzy candidate lookup."""
    return {
        token for token in tokenize(normalize(record.index_text))
        if len(token) >= Config.INDEX_TOKEN_MIN_LENGTH
    }


class LocalMatchIndex:
    """
    Thread-safe local index of wine records.

    Writers hold the lock for the whole mutation. Readers hold it only
    while collecting candidates, then score outside it, so concurrent
    reads overlap but never observe a partial write.
    """

    def __init__(
        self,
        store: Optional[SnapshotStore] = None,
        schema_version: Optional[int] = None,
        min_fuzzy_score: Optional[float] = None,
        snapshot_every: Optional[int] = None,
    ):
        """
        Initialize an empty index.

        Args:
            store: Snapshot store for persistence (None keeps the index in memory only)
            schema_version: Snapshot schema version. Defaults to Config.CACHE_SCHEMA_VERSION
            min_fuzzy_score: Lowest score find_fuzzy returns
            snapshot_every: Single-record upserts between automatic snapshots
        """
        self._store = store
        self.schema_version = schema_version if schema_version is not None else Config.CACHE_SCHEMA_VERSION
        self.min_fuzzy_score = min_fuzzy_score if min_fuzzy_score is not None else Config.FUZZY_INDEX_MIN_SCORE
        self.snapshot_every = snapshot_every if snapshot_every is not None else Config.INDEX_SNAPSHOT_EVERY

        self._records: dict[str, WineRecord] = {}
        self._keys: dict[str, tuple[str, ...]] = {}
        self._exact: dict[str, list[str]] = {}
        self._tokens: dict[str, set[str]] = {}
        self._pending_writes = 0
        self._lock = threading.Lock()

    # === Mutation ===

    def upsert(self, records: Union[WineRecord, Iterable[WineRecord]]) -> None:
        """
        Insert or overwrite records by identity.

        A list upsert is snapshotted immediately. Single-record upserts
        (write-through from remote matches) are snapshotted in batches;
        call flush() to force a write.
        """
        if isinstance(records, WineRecord):
            with self._lock:
                self._upsert_locked(records)
                self._pending_writes += 1
                should_save = self._pending_writes >= self.snapshot_every
            if should_save:
                self.save()
            return

        batch = list(records)
        if not batch:
            return
        with self._lock:
            for record in batch:
                self._upsert_locked(record)
            self._pending_writes += len(batch)
        logger.debug(f"Indexed {len(batch)} wine records")
        self.save()

    def _upsert_locked(self, record: WineRecord) -> None:
        if record.id in self._records:
            self._remove_locked(record.id)

        keys = match_keys(record)
        self._records[record.id] = record
        self._keys[record.id] = keys
        for key in keys:
            self._exact.setdefault(key, []).append(record.id)
        for token in index_tokens(record):
            self._tokens.setdefault(token, set()).add(record.id)

    def _remove_locked(self, record_id: str) -> None:
        old = self._records.pop(record_id)
        for key in self._keys.pop(record_id, ()):
            ids = self._exact.get(key)
            if ids and record_id in ids:
                ids.remove(record_id)
                if not ids:
                    del self._exact[key]
        for token in index_tokens(old):
            bucket = self._tokens.get(token)
            if bucket is not None:
                bucket.discard(record_id)
                if not bucket:
                    del self._tokens[token]

    def clear(self) -> None:
        """Empty the index and evict the persisted snapshot."""
        with self._lock:
            self._clear_locked()
        if self._store is not None:
            self._store.delete(SNAPSHOT_KEY)
        logger.info("Local wine index cleared")

    def _clear_locked(self) -> None:
        self._records.clear()
        self._keys.clear()
        self._exact.clear()
        self._tokens.clear()
        self._pending_writes = 0

    # === Lookup ===

    def get(self, record_id: str) -> Optional[WineRecord]:
        with self._lock:
            return self._records.get(record_id)

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def records(self) -> list[WineRecord]:
        with self._lock:
            return list(self._records.values())

    def find_exact(self, text: str, vintage: Optional[int] = None) -> Optional[WineRecord]:
        """
        Find a record whose normalized "producer name" equals the text.

        Args:
            text: Query text (normalized here)
            vintage: When given, the record's vintage must match too

        Returns:
            The first matching record in insertion order, or None
        """
        key = normalize(text)
        if not key:
            return None

        with self._lock:
            candidates = [self._records[i] for i in self._exact.get(key, ())]

        for record in candidates:
            if vintage is None or record.vintage == vintage:
                return record
        return None

    def find_fuzzy(self, text: str) -> Optional[FuzzyMatch]:
        """
        Find the most similar record by token lookup and similarity scoring.

        Candidates come from index buckets whose term equals a query token,
        or contains / is contained in a query token of useful length.

        Returns:
            Best FuzzyMatch with score >= min_fuzzy_score, or None
        """
        query = normalize(text)
        if not query:
            return None
        terms = tokenize(query)
        long_terms = [t for t in terms if len(t) >= Config.INDEX_TOKEN_MIN_LENGTH]

        with self._lock:
            ids: set[str] = set()
            for term in terms:
                ids.update(self._tokens.get(term, ()))
            if long_terms:
                for index_term, bucket in self._tokens.items():
                    if any(t in index_term or index_term in t for t in long_terms):
                        ids.update(bucket)
            candidates = [(self._records[i], self._keys[i]) for i in sorted(ids)]

        best: Optional[FuzzyMatch] = None
        for record, keys in candidates:
            score = max((similarity(query, key) for key in keys), default=0.0)
            if best is None or score > best.score:
                best = FuzzyMatch(record=record, score=score)

        if best is None or best.score < self.min_fuzzy_score:
            logger.debug(f"Fuzzy index MISS: '{query}' ({len(candidates)} candidates)")
            return None
        logger.debug(f"Fuzzy index HIT: '{query}' -> {best.record.id} ({best.score:.3f})")
        return best

    # === Persistence ===

    def load(self) -> int:
        """
        Replace the in-memory index with the persisted snapshot.

        Returns:
            Number of records loaded (0 if missing, stale or corrupt)
        """
        if self._store is None:
            return 0

        payload = self._store.load(SNAPSHOT_KEY, self.schema_version)
        if payload is None:
            with self._lock:
                self._clear_locked()
            return 0

        try:
            records = [WineRecord.from_dict(item) for item in payload["records"]]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Local wine index snapshot undecodable ({e}); wiping")
            self.clear()
            return 0

        with self._lock:
            self._clear_locked()
            for record in records:
                self._upsert_locked(record)
            self._pending_writes = 0
        logger.info(f"Loaded {len(records)} wine records from snapshot")
        return len(records)

    def save(self) -> bool:
        """Write the full index snapshot. No-op without a store."""
        if self._store is None:
            return False
        with self._lock:
            payload = {"records": [record.to_dict() for record in self._records.values()]}
            self._pending_writes = 0
        return self._store.save(SNAPSHOT_KEY, self.schema_version, payload)

    def flush(self) -> bool:
        """Save if any upserts are not yet persisted."""
        with self._lock:
            pending = self._pending_writes
        if pending:
            return self.save()
        return False

    def seed_from_json(self, path: Path) -> int:
        """
        Upsert records from a JSON file (a list, or {"wines": [...]}).

        Returns:
            Number of records loaded
        """
        with open(path) as f:
            data = json.load(f)
        items = data.get("wines", []) if isinstance(data, dict) else data
        records = [WineRecord.from_dict(item) for item in items]
        self.upsert(records)
        logger.info(f"Seeded local wine index with {len(records)} records from {path}")
        return len(records)
