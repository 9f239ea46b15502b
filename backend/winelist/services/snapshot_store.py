"""
Versioned snapshot storage.

Persists whole-object snapshots (the local wine index, the in-progress
session, session history) as gzip-compressed JSON in SQLite, keyed by
name and tagged with a schema version. A snapshot whose version does not
match, or that cannot be decoded, is deleted rather than migrated.
"""

import gzip
import json
import logging
import sqlite3
import threading
import zlib
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from ..config import Config

logger = logging.getLogger(__name__)


class SnapshotStore:
    """
    SQLite-backed snapshot store.

    Writes are last-writer-wins. Storage errors are logged and reported
    through return values; they never propagate to callers.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """
        Initialize the snapshot store.

        Args:
            db_path: Path to SQLite database. Defaults to Config.state_db_path()
        """
        if db_path is None:
            db_path = Config.state_db_path()
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._ensure_table()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_table(self) -> None:
        conn = self._get_connection()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS snapshots (
                    key TEXT PRIMARY KEY,
                    schema_version INTEGER NOT NULL,
                    payload BLOB NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.commit()
        finally:
            conn.close()

    def _serialize(self, payload: Any) -> bytes:
        json_bytes = json.dumps(payload).encode("utf-8")
        return gzip.compress(json_bytes)

    def _deserialize(self, compressed: bytes) -> Any:
        return json.loads(gzip.decompress(compressed).decode("utf-8"))

    def load(self, key: str, schema_version: int) -> Optional[Any]:
        """
        Load a snapshot.

        Args:
            key: Snapshot name
            schema_version: Version the caller understands

        Returns:
            Decoded payload, or None if missing, stale or corrupt (stale and
            corrupt snapshots are deleted)
        """
        with self._lock:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    "SELECT schema_version, payload FROM snapshots WHERE key = ?",
                    (key,)
                ).fetchone()

                if row is None:
                    logger.debug(f"Snapshot MISS: {key}")
                    return None

                if row["schema_version"] != schema_version:
                    logger.info(
                        f"Snapshot {key} has schema v{row['schema_version']}, "
                        f"expected v{schema_version}; discarding"
                    )
                    self._delete(conn, key)
                    return None

                try:
                    payload = self._deserialize(row["payload"])
                except (OSError, EOFError, zlib.error, UnicodeDecodeError, ValueError) as e:
                    logger.warning(f"Snapshot {key} is corrupt ({e}); discarding")
                    self._delete(conn, key)
                    return None

                logger.debug(f"Snapshot HIT: {key}")
                return payload

            except sqlite3.Error as e:
                logger.warning(f"Snapshot load error for {key}: {e}")
                return None
            finally:
                conn.close()

    def save(self, key: str, schema_version: int, payload: Any) -> bool:
        """
        Replace a snapshot.

        Returns:
            True if written, False on storage or encoding failure
        """
        try:
            data = self._serialize(payload)
        except (TypeError, ValueError) as e:
            logger.warning(f"Snapshot {key} could not be encoded: {e}")
            return False

        with self._lock:
            conn = self._get_connection()
            try:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO snapshots (key, schema_version, payload, updated_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (key, schema_version, data, datetime.now().isoformat())
                )
                conn.commit()
                logger.debug(f"Snapshot SET: {key} ({len(data)} bytes)")
                return True
            except sqlite3.Error as e:
                logger.warning(f"Snapshot save error for {key}: {e}")
                return False
            finally:
                conn.close()

    def delete(self, key: str) -> None:
        with self._lock:
            conn = self._get_connection()
            try:
                self._delete(conn, key)
            except sqlite3.Error as e:
                logger.warning(f"Snapshot delete error for {key}: {e}")
            finally:
                conn.close()

    def _delete(self, conn: sqlite3.Connection, key: str) -> None:
        conn.execute("DELETE FROM snapshots WHERE key = ?", (key,))
        conn.commit()

    def clear(self) -> int:
        """
        Delete all snapshots.

        Returns:
            Number of snapshots deleted
        """
        with self._lock:
            conn = self._get_connection()
            try:
                cursor = conn.execute("DELETE FROM snapshots")
                conn.commit()
                count = cursor.rowcount
                logger.info(f"Cleared {count} snapshots")
                return count
            except sqlite3.Error as e:
                logger.warning(f"Snapshot clear error: {e}")
                return 0
            finally:
                conn.close()

    def keys(self) -> list[str]:
        with self._lock:
            conn = self._get_connection()
            try:
                return [row["key"] for row in conn.execute("SELECT key FROM snapshots ORDER BY key")]
            except sqlite3.Error as e:
                logger.warning(f"Snapshot listing error: {e}")
                return []
            finally:
                conn.close()
