"""
Client-resident key/value storage using SQLite.

Plays the role a browser's localStorage plays for a web client: string
values under string keys, surviving restarts, private to this machine.
Collections are stored JSON-serialized under their data kind name.
"""

import json
import sqlite3
import threading
from pathlib import Path
from typing import Any, Optional

from .errors import LocalStorageError


class LocalStorage:
    """
    SQLite-backed string key/value store.

    Pass ``":memory:"`` as the path for a throwaway store.
    """

    def __init__(self, path: Path | str, busy_timeout_ms: int = 5000):
        """
        Args:
            path: Path to SQLite database file, or ":memory:"
            busy_timeout_ms: How long to wait on another process's lock
        """
        self._path = path
        self._busy_timeout_ms = busy_timeout_ms
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        try:
            if str(self._path) != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self._path), check_same_thread=False)
            self._conn.execute(f"PRAGMA busy_timeout={int(self._busy_timeout_ms)}")
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS local_storage (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
            self._conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise LocalStorageError(f"Cannot open local storage at {self._path}: {e}") from e

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise LocalStorageError("Local storage is closed")
        return self._conn

    # -------------------------------------------------------------------------
    # String API
    # -------------------------------------------------------------------------

    def get_item(self, key: str) -> Optional[str]:
        """Return the stored string, or None if the key is absent."""
        with self._lock:
            try:
                row = self._connection().execute(
                    "SELECT value FROM local_storage WHERE key = ?", (key,)
                ).fetchone()
            except sqlite3.Error as e:
                raise LocalStorageError(f"Reading '{key}' failed: {e}") from e
        return row[0] if row else None

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            conn = self._connection()
            try:
                conn.execute(
                    "INSERT OR REPLACE INTO local_storage (key, value) VALUES (?, ?)",
                    (key, value),
                )
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise LocalStorageError(f"Writing '{key}' failed: {e}") from e

    def remove_item(self, key: str) -> bool:
        """Delete a key. Returns True if it existed."""
        with self._lock:
            conn = self._connection()
            try:
                cursor = conn.execute("DELETE FROM local_storage WHERE key = ?", (key,))
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise LocalStorageError(f"Removing '{key}' failed: {e}") from e
        return cursor.rowcount > 0

    def keys(self) -> list[str]:
        with self._lock:
            try:
                rows = self._connection().execute(
                    "SELECT key FROM local_storage ORDER BY key"
                ).fetchall()
            except sqlite3.Error as e:
                raise LocalStorageError(f"Listing keys failed: {e}") from e
        return [row[0] for row in rows]

    def clear(self) -> int:
        """Delete every key. Returns the number removed."""
        with self._lock:
            conn = self._connection()
            try:
                cursor = conn.execute("DELETE FROM local_storage")
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise LocalStorageError(f"Clearing local storage failed: {e}") from e
        return cursor.rowcount

    # -------------------------------------------------------------------------
    # JSON helpers
    # -------------------------------------------------------------------------

    def get_json(self, key: str, default: Any = None) -> Any:
        """
        Decode a JSON value.

        Returns:
            The decoded value, or ``default`` if the key is absent

        Raises:
            LocalStorageError: If the stored value is not valid JSON
        """
        raw = self.get_item(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise LocalStorageError(f"Corrupt local storage entry '{key}': {e}") from e

    def set_json(self, key: str, value: Any) -> None:
        self.set_item(key, json.dumps(value, ensure_ascii=False))

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
