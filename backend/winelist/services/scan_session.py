"""
Frame merge and session tracking for live wine-list scanning.

Frames arrive at camera rate; at most one is processed per processing
interval. Each accepted frame replaces (cancels) the previous frame's
work and runs recognition, segmentation and the local match tiers.
Candidates the local index cannot resolve are handed to independently
owned background tasks that run the remote tiers to completion, so a
new frame never discards a remote lookup already paid for.

All results reach the merge layer through one queue drained by a single
merge worker, so overlay and session state are only ever mutated on the
event loop:

- overlay: transient, deduplicated by bounding-box overlap, best
  confidence wins; entries not seen recently are evicted
- session: cumulative, deduplicated by matched wine identity,
  checkpointed after every change
"""

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from ..config import Config
from ..models.enums import MatchTier, ScanState
from ..models.scan import OCRFragment, RecognizedWine, ScanSession
from .candidate_segmenter import CandidateSegmenter, WineCandidate
from .matching import MatchingOrchestrator, MatchResult
from .recognizer import RecognitionError, RecognizerProtocol
from .session_store import SessionSaveError, SessionStore
from .wine_text_parser import ParsedWineText

logger = logging.getLogger(__name__)

NewMatchListener = Callable[[RecognizedWine], None]
_Unresolved = list[tuple[WineCandidate, ParsedWineText]]


def build_recognized_wine(
    candidate: WineCandidate, parsed: ParsedWineText, match: Optional[MatchResult]
) -> RecognizedWine:
    """Combine a candidate, its parsed hints and its match into one detection."""
    return RecognizedWine(
        original_text=candidate.text,
        bbox=candidate.bbox,
        ocr_confidence=candidate.confidence,
        matched_wine=match.record if match else None,
        match_confidence=match.confidence if match else 0.0,
        matched_vintage=match.matched_vintage if match else parsed.vintage,
        match_tier=match.tier if match else MatchTier.NONE,
        list_price=parsed.price.amount if parsed.price else None,
        list_price_currency=parsed.price.currency if parsed.price else None,
    )


class ScanSessionTracker:
    """Owns scan state, the transient overlay and the cumulative session."""

    def __init__(
        self,
        recognizer: RecognizerProtocol,
        orchestrator: MatchingOrchestrator,
        segmenter: Optional[CandidateSegmenter] = None,
        session_store: Optional[SessionStore] = None,
        processing_interval: Optional[float] = None,
        overlap_threshold: Optional[float] = None,
        stale_after: Optional[float] = None,
        max_remote_tasks: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
        on_new_match: Optional[NewMatchListener] = None,
    ):
        """
        Initialize the tracker, resuming a checkpointed session if present.

        Args:
            recognizer: Text recognizer for frames and photos
            orchestrator: Tiered matcher
            segmenter: Candidate segmenter. Defaults to CandidateSegmenter()
            session_store: Session checkpoint and history storage (None: in memory only)
            processing_interval: Seconds between processed frames, never below the minimum
            overlap_threshold: Overlap fraction treated as the same entry
            stale_after: Seconds before an unseen overlay entry is evicted
            max_remote_tasks: Bound on concurrent background remote lookups
            clock: Monotonic clock (injectable for tests)
            on_new_match: Called once per wine newly added to the session
        """
        self._recognizer = recognizer
        self._orchestrator = orchestrator
        self._segmenter = segmenter or CandidateSegmenter()
        self._store = session_store
        self.processing_interval = max(
            processing_interval if processing_interval is not None else Config.processing_interval_seconds(),
            Config.MIN_PROCESSING_INTERVAL,
        )
        self.overlap_threshold = (
            overlap_threshold if overlap_threshold is not None else Config.overlap_threshold()
        )
        self.stale_after = stale_after if stale_after is not None else Config.OVERLAY_STALE_SECONDS
        self.max_remote_tasks = max_remote_tasks if max_remote_tasks is not None else Config.MAX_REMOTE_TASKS
        self._clock = clock
        self._listeners: list[NewMatchListener] = [on_new_match] if on_new_match else []

        self._state = ScanState.IDLE
        self._overlay: list[RecognizedWine] = []
        self._last_seen: dict[str, float] = {}
        self._last_frame_at: Optional[float] = None
        self._generation = 0

        self._frame_task: Optional[asyncio.Task] = None
        self._remote_tasks: set[asyncio.Task] = set()
        self._merge_worker: Optional[asyncio.Task] = None
        self._results: asyncio.Queue = asyncio.Queue()

        resumed = self._store.load_current() if self._store else None
        if resumed is not None:
            logger.info(f"Resuming session {resumed.id} with {len(resumed.wines)} wines")
        self.session = resumed or ScanSession()

    # === State ===

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def acceptance_threshold(self) -> float:
        return self._orchestrator.acceptance_threshold

    @property
    def overlay(self) -> list[RecognizedWine]:
        self._evict_stale(self._clock())
        return list(self._overlay)

    def start(self) -> None:
        """Start or resume scanning. Must be called on the event loop."""
        self._ensure_merge_worker()
        self._state = ScanState.SCANNING
        logger.info(f"Scanning started (session {self.session.id})")

    def pause(self) -> None:
        if self._state == ScanState.SCANNING:
            self._state = ScanState.PAUSED

    def stop(self) -> None:
        """Stop scanning. In-flight remote lookups still complete and merge."""
        self._state = ScanState.STOPPED
        self._cancel_frame_task()

    # === Frames ===

    def submit_frame(self, image: bytes) -> bool:
        """
        Offer a camera frame.

        Returns:
            True if the frame was accepted for processing; False if not
            scanning or within the processing interval
        """
        if self._state != ScanState.SCANNING:
            return False

        now = self._clock()
        if self._last_frame_at is not None and now - self._last_frame_at < self.processing_interval:
            return False
        self._last_frame_at = now

        self._cancel_frame_task()
        self._ensure_merge_worker()
        self._frame_task = asyncio.create_task(self._process_frame(image, self._generation))
        return True

    async def _process_frame(self, image: bytes, generation: int) -> None:
        try:
            fragments = await self._recognizer.recognize(image)
        except RecognitionError as e:
            logger.warning(f"Skipping frame: {e}")
            return
        except Exception as e:
            logger.error(f"Recognizer failed, skipping frame: {e}", exc_info=True)
            return

        candidates = self._segmenter.group_into_wine_entries(fragments)
        if not candidates:
            return

        local_results, unresolved = await self._match_locally(candidates)
        if local_results:
            self._results.put_nowait((generation, local_results))
        if unresolved:
            self._dispatch_remote(unresolved, generation)

    async def _match_locally(
        self, candidates: list[WineCandidate]
    ) -> tuple[list[RecognizedWine], _Unresolved]:
        resolved = []
        unresolved: _Unresolved = []
        for candidate in candidates:
            parsed = self._orchestrator.parse(candidate.text)
            match = await self._orchestrator.match_local(parsed)
            if match is not None:
                resolved.append(build_recognized_wine(candidate, parsed, match))
            else:
                unresolved.append((candidate, parsed))
        return resolved, unresolved

    def _dispatch_remote(self, unresolved: _Unresolved, generation: int) -> None:
        if not self._orchestrator.has_remote:
            self._results.put_nowait((generation, self._unmatched(unresolved)))
            return
        if len(self._remote_tasks) >= self.max_remote_tasks:
            logger.debug(f"Remote lookups saturated; {len(unresolved)} candidates left unmatched")
            self._results.put_nowait((generation, self._unmatched(unresolved)))
            return

        task = asyncio.create_task(self._resolve_remote_task(unresolved, generation))
        self._remote_tasks.add(task)
        task.add_done_callback(self._remote_tasks.discard)

    async def _resolve_remote_task(self, unresolved: _Unresolved, generation: int) -> None:
        results = await self._resolve_remote(unresolved)
        self._results.put_nowait((generation, results))

    async def _resolve_remote(self, unresolved: _Unresolved) -> list[RecognizedWine]:
        parsed_texts = [parsed for _, parsed in unresolved]
        if len(parsed_texts) == 1:
            matches = {parsed_texts[0].original_text: await self._orchestrator.match_remote(parsed_texts[0])}
        else:
            matches = await self._orchestrator.match_remote_batch(parsed_texts)
        return [
            build_recognized_wine(candidate, parsed, matches.get(parsed.original_text))
            for candidate, parsed in unresolved
        ]

    @staticmethod
    def _unmatched(unresolved: _Unresolved) -> list[RecognizedWine]:
        return [build_recognized_wine(c, p, None) for c, p in unresolved]

    # === Photo mode ===

    async def scan_photo(self, image: bytes) -> list[RecognizedWine]:
        """
        Recognize and fully resolve a single photo (no debounce).

        Raises:
            RecognitionError: if the recognizer rejects the image
        """
        generation = self._generation
        fragments = await self._recognizer.recognize(image)
        return await self._resolve_fragments(fragments, generation)

    async def scan_fragments(self, fragments: list[OCRFragment]) -> list[RecognizedWine]:
        """
        Resolve pre-recognized fragments through every tier and merge them.

        Returns:
            Detections in top-to-bottom order. They are not merged if the
            session was cleared or saved while they were being resolved.
        """
        return await self._resolve_fragments(fragments, self._generation)

    async def _resolve_fragments(self, fragments: list[OCRFragment], generation: int) -> list[RecognizedWine]:
        candidates = self._segmenter.group_into_wine_entries(fragments)
        if not candidates:
            return []

        results, unresolved = await self._match_locally(candidates)
        if unresolved:
            if self._orchestrator.has_remote:
                results.extend(await self._resolve_remote(unresolved))
            else:
                results.extend(self._unmatched(unresolved))

        results.sort(key=lambda w: (w.bbox.y, w.bbox.x))
        if generation != self._generation:
            logger.debug(f"Session changed during photo scan; dropping {len(results)} results")
            return results
        self.merge_results(results)
        return results

    # === Merge ===

    def merge_results(self, results: list[RecognizedWine]) -> None:
        """Merge one batch into the overlay and the session."""
        if not results:
            return
        now = self._clock()
        for result in results:
            self._merge_into_overlay(result, now)
        self._evict_stale(now)
        for result in results:
            if result.is_matched:
                self._accumulate(result)

    def _merge_into_overlay(self, result: RecognizedWine, now: float) -> None:
        best_index = None
        best_overlap = self.overlap_threshold
        for i, existing in enumerate(self._overlay):
            overlap = existing.bbox.overlap_fraction(result.bbox)
            if overlap > best_overlap:
                best_index, best_overlap = i, overlap

        if best_index is None:
            self._overlay.append(result)
            self._last_seen[result.id] = now
            return

        existing = self._overlay[best_index]
        if result.is_better_than(existing):
            self._overlay[best_index] = result
            self._last_seen.pop(existing.id, None)
            self._last_seen[result.id] = now
        else:
            self._last_seen[existing.id] = now

    def _evict_stale(self, now: float) -> None:
        kept = []
        for wine in self._overlay:
            if now - self._last_seen.get(wine.id, now) <= self.stale_after:
                kept.append(wine)
            else:
                self._last_seen.pop(wine.id, None)
        self._overlay = kept

    def _accumulate(self, result: RecognizedWine) -> None:
        index = self.session.index_of(result.wine_id)
        if index is None:
            self.session.wines.append(result)
            self._checkpoint()
            logger.info(f"New wine in session: {result.matched_wine.full_name} ({result.match_confidence:.2f})")
            self._emit_new_match(result)
        elif result.match_confidence > self.session.wines[index].match_confidence:
            self.session.wines[index] = result
            self._checkpoint()

    def _emit_new_match(self, wine: RecognizedWine) -> None:
        for listener in self._listeners:
            try:
                listener(wine)
            except Exception as e:
                logger.warning(f"New-match listener failed: {e}")

    def _checkpoint(self) -> None:
        if self._store is not None:
            self._store.save_current(self.session)

    def _ensure_merge_worker(self) -> None:
        if self._merge_worker is None or self._merge_worker.done():
            self._merge_worker = asyncio.create_task(self._merge_loop())

    async def _merge_loop(self) -> None:
        while True:
            generation, results = await self._results.get()
            try:
                if generation == self._generation:
                    self.merge_results(results)
                else:
                    logger.debug(f"Dropping {len(results)} results from a cleared session")
            except Exception as e:
                logger.error(f"Merging results failed: {e}", exc_info=True)
            finally:
                self._results.task_done()

    # === Session lifecycle ===

    def clear_session(self) -> None:
        """Discard all session state and start fresh."""
        self._generation += 1
        self._cancel_frame_task()
        self._orchestrator.cancel_remote()
        self._overlay.clear()
        self._last_seen.clear()
        self._last_frame_at = None
        self.session = ScanSession()
        if self._store is not None:
            self._store.clear_current()
        logger.info("Session cleared")

    def save_session_to_history(self) -> Optional[ScanSession]:
        """
        Finalize the current session into history and start a new one.

        Returns:
            The finished session, or None if it had no wines

        Raises:
            SessionSaveError: if history could not be written; the current
                session and its checkpoint are left untouched
        """
        if not self.session.wines:
            return None

        finished = self.session
        finished.end_time = datetime.now(timezone.utc)
        if self._store is not None:
            if not self._store.append_history(finished):
                finished.end_time = None
                logger.warning(f"Could not save session {finished.id} to history; keeping it open")
                raise SessionSaveError(f"Failed to save session {finished.id}")
            self._store.clear_current()

        self._generation += 1
        self._overlay.clear()
        self._last_seen.clear()
        self.session = ScanSession()
        logger.info(f"Saved session {finished.id} with {len(finished.wines)} wines to history")
        return finished

    def update_location(self, location: Optional[str]) -> None:
        self.session.location = location
        self._checkpoint()

    # === Shutdown ===

    def _cancel_frame_task(self) -> None:
        if self._frame_task is not None and not self._frame_task.done():
            self._frame_task.cancel()

    async def wait_idle(self) -> None:
        """Wait until the current frame, remote lookups and pending merges finish."""
        if self._frame_task is not None:
            await asyncio.gather(self._frame_task, return_exceptions=True)
        while self._remote_tasks:
            await asyncio.gather(*list(self._remote_tasks), return_exceptions=True)
        if self._merge_worker is not None and not self._merge_worker.done():
            await self._results.join()

    async def close(self) -> None:
        """Cancel all background work."""
        self._state = ScanState.STOPPED
        tasks = [t for t in (self._frame_task, self._merge_worker) if t is not None]
        tasks.extend(self._remote_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._merge_worker = None
