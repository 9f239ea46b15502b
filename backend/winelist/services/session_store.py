"""
Persistence for the in-progress scan session and the session history.

Both live in the snapshot store. History is bounded: appending beyond
the limit evicts the oldest sessions. Storage failures are logged by the
snapshot store and never interrupt scanning.
"""

import logging
from typing import Optional

from ..config import Config
from ..models.scan import ScanSession
from .snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)

CURRENT_SESSION_KEY = "current_session"
SESSION_HISTORY_KEY = "session_history"


class SessionSaveError(Exception):
    """A finished session could not be written to history."""


class SessionStore:
    """Checkpoints the current session and keeps a bounded history."""

    def __init__(
        self,
        store: SnapshotStore,
        history_limit: Optional[int] = None,
        schema_version: Optional[int] = None,
    ):
        self._store = store
        self.history_limit = history_limit if history_limit is not None else Config.SESSION_HISTORY_LIMIT
        self.schema_version = schema_version if schema_version is not None else Config.SESSION_SCHEMA_VERSION

    # === Current session ===

    def save_current(self, session: ScanSession) -> bool:
        return self._store.save(CURRENT_SESSION_KEY, self.schema_version, session.to_dict())

    def load_current(self) -> Optional[ScanSession]:
        """Checkpointed session, or None if there is none or it is unreadable."""
        payload = self._store.load(CURRENT_SESSION_KEY, self.schema_version)
        if payload is None:
            return None
        try:
            return ScanSession.from_dict(payload)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding unreadable session checkpoint: {e}")
            self._store.delete(CURRENT_SESSION_KEY)
            return None

    def clear_current(self) -> None:
        self._store.delete(CURRENT_SESSION_KEY)

    # === History ===

    def load_history(self) -> list[ScanSession]:
        """Past sessions, most recent first."""
        sessions = self._load_history_raw()
        return sorted(sessions, key=lambda s: s.start_time, reverse=True)

    def append_history(self, session: ScanSession) -> bool:
        """Add a finished session, evicting the oldest beyond the limit."""
        sessions = [s for s in self._load_history_raw() if s.id != session.id]
        sessions.append(session)
        sessions.sort(key=lambda s: s.start_time)
        if len(sessions) > self.history_limit:
            evicted = len(sessions) - self.history_limit
            sessions = sessions[evicted:]
            logger.debug(f"Session history full; evicted {evicted} oldest")
        return self._save_history(sessions)

    def delete_history(self, session_id: str) -> bool:
        """
        Remove one session from history.

        Returns:
            True if the session existed
        """
        sessions = self._load_history_raw()
        remaining = [s for s in sessions if s.id != session_id]
        if len(remaining) == len(sessions):
            return False
        self._save_history(remaining)
        return True

    def _load_history_raw(self) -> list[ScanSession]:
        payload = self._store.load(SESSION_HISTORY_KEY, self.schema_version)
        if payload is None:
            return []
        try:
            return [ScanSession.from_dict(item) for item in payload["sessions"]]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding unreadable session history: {e}")
            self._store.delete(SESSION_HISTORY_KEY)
            return []

    def _save_history(self, sessions: list[ScanSession]) -> bool:
        return self._store.save(
            SESSION_HISTORY_KEY,
            self.schema_version,
            {"sessions": [s.to_dict() for s in sessions]},
        )
