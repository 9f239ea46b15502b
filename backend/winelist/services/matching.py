"""
Tiered wine matching.

Each candidate text runs through tiers of ascending cost; the first
acceptable result wins:

1. Parse       - vintage and list price extracted, stripped from the match text
2. Exact local - normalized "producer name" lookup in the local index
3. Fuzzy local - token lookup + similarity scoring in the local index
4. Fuzzy remote (single) - top hit from the remote search service
5. Fuzzy remote (batch)  - one call for everything the local tiers missed,
                           accepted at a reduced threshold

Accepted remote records are written through to the local index.

No tier raises past itself: remote failures degrade to "no match" and are
logged at warning level, except explicit cancellation, which is silent.
Cancellation of the calling task always propagates.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

from ..config import Config
from ..models.enums import MatchTier
from ..models.wine import WineRecord
from .local_index import LocalMatchIndex
from .wine_search_client import (
    RemoteSearchCancelled,
    RemoteSearchError,
    SearchFilters,
    WineSearchProtocol,
)
from .wine_text_parser import ParsedWineText, parse_wine_text

logger = logging.getLogger(__name__)


@dataclass
class MatchResult:
    """Outcome of resolving one candidate."""
    record: Optional[WineRecord]
    confidence: float
    tier: MatchTier
    matched_vintage: Optional[int] = None


class MatchingOrchestrator:
    """Resolves wine-list text to catalog records, cheapest tier first."""

    def __init__(
        self,
        index: LocalMatchIndex,
        remote: Optional[WineSearchProtocol] = None,
        acceptance_threshold: Optional[float] = None,
        partial_threshold: Optional[float] = None,
        batch_enabled: bool = True,
        write_through: bool = True,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            index: Local match index (tiers 2-3, write-through target)
            remote: Remote search service (tiers 4-5); None disables remote tiers
            acceptance_threshold: Minimum fuzzy score. Defaults to Config.match_confidence_threshold()
            partial_threshold: Minimum batch-tier confidence. Defaults to Config.PARTIAL_MATCH_THRESHOLD
            batch_enabled: Use the batch endpoint for tier 5
            write_through: Cache accepted remote records in the local index
            executor: Thread pool for local index lookups
        """
        self.index = index
        self.remote = remote
        self.acceptance_threshold = (
            acceptance_threshold if acceptance_threshold is not None
            else Config.match_confidence_threshold()
        )
        self.partial_threshold = (
            partial_threshold if partial_threshold is not None else Config.PARTIAL_MATCH_THRESHOLD
        )
        self.batch_enabled = batch_enabled
        self.write_through = write_through
        self._executor = executor or ThreadPoolExecutor(max_workers=Config.INDEX_EXECUTOR_WORKERS)

    @property
    def has_remote(self) -> bool:
        return self.remote is not None

    def parse(self, text: str) -> ParsedWineText:
        return parse_wine_text(text)

    async def match_wine(self, text: str) -> Optional[MatchResult]:
        """
        Resolve one wine-list entry through every tier.

        Returns:
            MatchResult from the first tier that accepts, or None
        """
        parsed = self.parse(text)
        result = await self.match_local(parsed)
        if result is not None:
            return result
        return await self.match_remote(parsed)

    async def batch_match(self, texts: list[str]) -> dict[str, Optional[MatchResult]]:
        """
        Resolve many entries: local tiers per text, then one batched remote call.

        Returns:
            text -> MatchResult or None, for every input text
        """
        results: dict[str, Optional[MatchResult]] = {}
        unresolved: list[ParsedWineText] = []

        for text in dict.fromkeys(texts):
            parsed = self.parse(text)
            result = await self.match_local(parsed)
            results[text] = result
            if result is None:
                unresolved.append(parsed)

        if unresolved:
            results.update(await self.match_remote_batch(unresolved))

        return results

    # === Local tiers ===

    async def match_local(self, parsed: ParsedWineText) -> Optional[MatchResult]:
        """Exact then fuzzy lookup in the local index."""
        if not parsed.normalized_text:
            return None

        loop = asyncio.get_running_loop()
        try:
            record = await loop.run_in_executor(
                self._executor, self.index.find_exact, parsed.normalized_text, parsed.vintage
            )
            if record is not None:
                logger.debug(f"Exact match: '{parsed.normalized_text}' -> {record.id}")
                return MatchResult(
                    record=record,
                    confidence=Config.EXACT_MATCH_CONFIDENCE,
                    tier=MatchTier.EXACT,
                    matched_vintage=parsed.vintage,
                )

            fuzzy = await loop.run_in_executor(
                self._executor, self.index.find_fuzzy, parsed.normalized_text
            )
        except Exception as e:
            logger.error(f"Local match failed for '{parsed.original_text}': {e}", exc_info=True)
            return None

        if fuzzy is not None and fuzzy.score >= self.acceptance_threshold:
            logger.debug(
                f"Fuzzy local match: '{parsed.normalized_text}' -> {fuzzy.record.id} ({fuzzy.score:.3f})"
            )
            return MatchResult(
                record=fuzzy.record,
                confidence=fuzzy.score,
                tier=MatchTier.FUZZY_LOCAL,
                matched_vintage=parsed.vintage,
            )
        return None

    # === Remote tiers ===

    async def match_remote(self, parsed: ParsedWineText) -> Optional[MatchResult]:
        """Single remote search; accept the top hit above the acceptance threshold."""
        if self.remote is None or not parsed.normalized_text:
            return None

        try:
            hits = await self.remote.search(
                parsed.normalized_text, filters=SearchFilters(vintage=parsed.vintage), limit=1
            )
        except RemoteSearchCancelled:
            logger.debug(f"Remote search cancelled: '{parsed.normalized_text}'")
            return None
        except RemoteSearchError as e:
            logger.warning(f"Remote search failed for '{parsed.normalized_text}': {e}")
            return None
        except Exception as e:
            logger.error(f"Unexpected remote search error for '{parsed.normalized_text}': {e}", exc_info=True)
            return None

        if not hits or hits[0].confidence < self.acceptance_threshold:
            return None

        top = hits[0]
        self._cache(top.record)
        logger.debug(f"Remote match: '{parsed.normalized_text}' -> {top.record.id} ({top.confidence:.3f})")
        return MatchResult(
            record=top.record,
            confidence=top.confidence,
            tier=MatchTier.FUZZY_REMOTE,
            matched_vintage=parsed.vintage if parsed.vintage is not None else top.record.vintage,
        )

    async def match_remote_batch(
        self, parsed_texts: list[ParsedWineText]
    ) -> dict[str, Optional[MatchResult]]:
        """
        Batched remote match at the reduced threshold.

        Falls back to single searches when batching is disabled.

        Returns:
            original text -> MatchResult or None, for every input
        """
        results: dict[str, Optional[MatchResult]] = {p.original_text: None for p in parsed_texts}
        if self.remote is None:
            return results

        if not self.batch_enabled:
            for parsed in parsed_texts:
                results[parsed.original_text] = await self.match_remote(parsed)
            return results

        queries = list(dict.fromkeys(p.normalized_text for p in parsed_texts if p.normalized_text))
        if not queries:
            return results

        try:
            hits = await self.remote.batch_search(queries, confidence_threshold=self.partial_threshold)
        except RemoteSearchCancelled:
            logger.debug(f"Remote batch match cancelled ({len(queries)} queries)")
            return results
        except RemoteSearchError as e:
            logger.warning(f"Remote batch match failed for {len(queries)} queries: {e}")
            return results
        except Exception as e:
            logger.error(f"Unexpected remote batch match error: {e}", exc_info=True)
            return results

        for parsed in parsed_texts:
            hit = hits.get(parsed.normalized_text)
            if hit is None or hit.confidence < self.partial_threshold:
                continue
            self._cache(hit.record)
            results[parsed.original_text] = MatchResult(
                record=hit.record,
                confidence=hit.confidence,
                tier=MatchTier.FUZZY_REMOTE,
                matched_vintage=parsed.vintage if parsed.vintage is not None else hit.record.vintage,
            )

        matched = sum(1 for r in results.values() if r is not None)
        logger.info(f"Remote batch match: {matched}/{len(parsed_texts)} matched")
        return results

    def cancel_remote(self) -> int:
        """Cancel in-flight remote requests; their callers see a silent miss."""
        if self.remote is None:
            return 0
        return self.remote.cancel_inflight()

    def _cache(self, record: WineRecord) -> None:
        if self.write_through:
            self.index.upsert(record)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)
