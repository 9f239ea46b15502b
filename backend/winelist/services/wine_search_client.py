"""
Remote wine search client.

Talks to the wine catalog service:
- GET  /wines/search?q=&fuzzy=true&limit=&vintage=&color=&min_score=
- POST /wines/batch-match   {"queries": [...], "options": {"confidence_threshold": t}}
- GET  /wines/{id}

Responses are wrapped as {"success": bool, "data": {...}, "error": str}.

Every failure surfaces as a RemoteSearchError subclass. A request
cancelled through cancel_inflight() raises RemoteSearchCancelled, which
callers treat as a silent miss. Cancellation of the calling task itself
still propagates as asyncio.CancelledError.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import httpx

from ..config import Config
from ..models.enums import WineColor
from ..models.wine import WineRecord
from .text_normalizer import similarity

logger = logging.getLogger(__name__)


class RemoteSearchError(Exception):
    """Remote search failed (network, protocol or decoding)."""


class RemoteSearchTimeout(RemoteSearchError):
    """Remote search exceeded its timeout."""


class RemoteSearchHTTPError(RemoteSearchError):
    """Remote search returned a non-2xx status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code


class RemoteSearchCancelled(RemoteSearchError):
    """Request was cancelled because its result is no longer wanted."""


@dataclass
class SearchFilters:
    vintage: Optional[int] = None
    color: Optional[WineColor] = None
    min_score: Optional[int] = None

    def to_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {}
        if self.vintage is not None:
            params["vintage"] = self.vintage
        if self.color is not None:
            params["color"] = self.color.value
        if self.min_score is not None:
            params["min_score"] = self.min_score
        return params


@dataclass
class SearchHit:
    """One search result with the service's confidence."""
    record: WineRecord
    confidence: float
    match_type: Optional[str] = None


class WineSearchProtocol(Protocol):
    """Protocol for remote wine search (allows mocking)."""

    async def search(
        self, query: str, filters: Optional[SearchFilters] = None, limit: int = Config.DEFAULT_SEARCH_LIMIT
    ) -> list[SearchHit]: ...

    async def batch_search(
        self, queries: list[str], confidence_threshold: Optional[float] = None
    ) -> dict[str, SearchHit]: ...

    def cancel_inflight(self) -> int: ...


class WineSearchClient:
    """httpx-based client for the wine catalog search API."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: Service root, e.g. https://api.example.com/v1
            api_key: Sent as the X-API-Key header when set
            timeout: Per-request timeout in seconds. Defaults to Config.remote_timeout_seconds()
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        headers = {"Accept": "application/json"}
        if api_key:
            headers["X-API-Key"] = api_key
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout if timeout is not None else Config.remote_timeout_seconds(),
            transport=transport,
        )
        self._inflight: set[asyncio.Task] = set()

    async def search(
        self, query: str, filters: Optional[SearchFilters] = None, limit: int = Config.DEFAULT_SEARCH_LIMIT
    ) -> list[SearchHit]:
        """
        Fuzzy search the catalog.

        Returns:
            Hits in the service's ranking order (best first)
        """
        params: dict[str, Any] = {"q": query, "fuzzy": "true", "limit": limit}
        if filters is not None:
            params.update(filters.to_params())

        data = await self._request("GET", "/wines/search", params=params)
        try:
            return [self._parse_hit(item) for item in data["results"]]
        except (KeyError, TypeError, ValueError) as e:
            raise RemoteSearchError(f"Malformed search response: {e}") from e

    async def batch_search(
        self, queries: list[str], confidence_threshold: Optional[float] = None
    ) -> dict[str, SearchHit]:
        """
        Match many queries, one request per group of MAX_BATCH_QUERIES.

        Returns:
            query -> best hit; unmatched queries are absent
        """
        threshold = confidence_threshold if confidence_threshold is not None else Config.PARTIAL_MATCH_THRESHOLD
        results: dict[str, SearchHit] = {}

        for start in range(0, len(queries), Config.MAX_BATCH_QUERIES):
            chunk = queries[start:start + Config.MAX_BATCH_QUERIES]
            data = await self._request(
                "POST",
                "/wines/batch-match",
                json={"queries": chunk, "options": {"confidence_threshold": threshold}},
            )
            try:
                for item in data["matches"]:
                    if item.get("matched") and item.get("wine"):
                        results[item["query"]] = SearchHit(
                            record=WineRecord.from_dict(item["wine"]),
                            confidence=float(item.get("confidence", 0.0)),
                            match_type=item.get("match_type"),
                        )
            except (KeyError, TypeError, ValueError) as e:
                raise RemoteSearchError(f"Malformed batch-match response: {e}") from e

        return results

    async def get_wine(self, wine_id: str) -> WineRecord:
        data = await self._request("GET", f"/wines/{wine_id}")
        try:
            return WineRecord.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise RemoteSearchError(f"Malformed wine response: {e}") from e

    def cancel_inflight(self) -> int:
        """
        Cancel all requests currently in flight.

        Their callers receive RemoteSearchCancelled.

        Returns:
            Number of requests cancelled
        """
        pending = [task for task in self._inflight if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            logger.debug(f"Cancelled {len(pending)} in-flight remote searches")
        return len(pending)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        request = asyncio.create_task(self._client.request(method, path, **kwargs))
        self._inflight.add(request)
        try:
            response = await request
            response.raise_for_status()
            payload = response.json()
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            raise RemoteSearchCancelled(f"{method} {path} cancelled") from None
        except httpx.TimeoutException as e:
            raise RemoteSearchTimeout(f"{method} {path} timed out") from e
        except httpx.HTTPStatusError as e:
            raise RemoteSearchHTTPError(
                e.response.status_code, f"{method} {path} returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise RemoteSearchError(f"{method} {path} failed: {e}") from e
        except ValueError as e:
            raise RemoteSearchError(f"{method} {path} returned invalid JSON") from e
        finally:
            self._inflight.discard(request)

        if not isinstance(payload, dict) or not payload.get("success", False):
            error = payload.get("error") if isinstance(payload, dict) else None
            raise RemoteSearchError(f"{method} {path} unsuccessful: {error or 'unknown error'}")
        return payload.get("data") or {}

    @staticmethod
    def _parse_hit(item: dict[str, Any]) -> SearchHit:
        return SearchHit(
            record=WineRecord.from_dict(item["wine"]),
            confidence=float(item.get("match_confidence", 0.0)),
            match_type=item.get("match_type"),
        )


class MockWineSearch:
    """
    In-memory search over a fixed catalog for tests and mock mode.

    Confidence is the local similarity between the query and each
    record's display name.
    """

    def __init__(self, records: Optional[list[WineRecord]] = None, error: Optional[Exception] = None):
        self.records = list(records or [])
        self.error = error
        self.search_calls: list[str] = []
        self.batch_calls: list[list[str]] = []

    async def search(
        self, query: str, filters: Optional[SearchFilters] = None, limit: int = Config.DEFAULT_SEARCH_LIMIT
    ) -> list[SearchHit]:
        self.search_calls.append(query)
        if self.error is not None:
            raise self.error
        hits = [
            hit for hit in await self._rank(query)
            if filters is None or filters.vintage is None or hit.record.vintage in (None, filters.vintage)
        ]
        return hits[:limit]

    async def batch_search(
        self, queries: list[str], confidence_threshold: Optional[float] = None
    ) -> dict[str, SearchHit]:
        self.batch_calls.append(list(queries))
        if self.error is not None:
            raise self.error
        threshold = confidence_threshold if confidence_threshold is not None else Config.PARTIAL_MATCH_THRESHOLD
        results = {}
        for query in queries:
            hits = await self._rank(query)
            if hits and hits[0].confidence >= threshold:
                results[query] = hits[0]
        return results

    async def _rank(self, query: str) -> list[SearchHit]:
        hits = [
            SearchHit(record=r, confidence=similarity(query, r.display_name), match_type="fuzzy")
            for r in self.records
        ]
        return sorted(hits, key=lambda h: h.confidence, reverse=True)

    def cancel_inflight(self) -> int:
        return 0
