"""
/session endpoints: the cumulative wine list, its location and history.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..dependencies import get_session_store, get_tracker
from ..models.filters import FilterSet, WineFilter
from ..models.response import LocationRequest, SessionHistoryResponse, SessionResponse
from ..services.scan_session import ScanSessionTracker
from ..services.session_store import SessionSaveError, SessionStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/session")


@router.get("", response_model=SessionResponse)
async def get_session(
    filters: Optional[list[WineFilter]] = Query(None, description="Filters to apply to the wine list"),
    tracker: ScanSessionTracker = Depends(get_tracker),
) -> SessionResponse:
    """Current session, optionally filtered by score band, readiness or color."""
    session = tracker.session
    wines = FilterSet(filters or []).apply(session.wines)
    return SessionResponse.from_domain(session, tracker.acceptance_threshold, wines=wines)


@router.put("/location", response_model=SessionResponse)
async def update_location(
    request: LocationRequest,
    tracker: ScanSessionTracker = Depends(get_tracker),
) -> SessionResponse:
    tracker.update_location(request.location)
    return SessionResponse.from_domain(tracker.session, tracker.acceptance_threshold)


@router.delete("", response_model=SessionResponse)
async def clear_session(tracker: ScanSessionTracker = Depends(get_tracker)) -> SessionResponse:
    """Discard the current session and start a fresh one."""
    tracker.clear_session()
    return SessionResponse.from_domain(tracker.session, tracker.acceptance_threshold)


@router.post("/save", response_model=SessionResponse)
async def save_session(tracker: ScanSessionTracker = Depends(get_tracker)) -> SessionResponse:
    """Finalize the current session into history."""
    try:
        finished = tracker.save_session_to_history()
    except SessionSaveError as e:
        logger.error(f"Saving session failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to save session")
    if finished is None:
        raise HTTPException(status_code=400, detail="Session has no wines to save")
    return SessionResponse.from_domain(finished, tracker.acceptance_threshold)


@router.get("/history", response_model=SessionHistoryResponse)
async def get_history(
    tracker: ScanSessionTracker = Depends(get_tracker),
    store: SessionStore = Depends(get_session_store),
) -> SessionHistoryResponse:
    """Past sessions, most recent first."""
    return SessionHistoryResponse(sessions=[
        SessionResponse.from_domain(s, tracker.acceptance_threshold) for s in store.load_history()
    ])


@router.delete("/history/{session_id}", status_code=204)
async def delete_history_entry(
    session_id: str,
    store: SessionStore = Depends(get_session_store),
) -> None:
    if not store.delete_history(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    logger.info(f"Deleted session {session_id} from history")
