"""
Per-user account storage using SQLite.

Implements the RemoteStore contract without a server: the replace endpoint
clears and rewrites a user's collection, the migrate endpoint appends, and
settings are one row per user. Used as the default "remote" so accounts work
offline, and as a realistic backend in tests.
"""

import json
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .errors import CollectionSchemaError, RemoteStoreError
from .types import LOCAL_PROVIDER, UserAISettings, dump_collection, parse_collection
from .remote import _check_kind

logger = logging.getLogger(__name__)

# Field used to order each collection, newest first (as the server does)
_SORT_FIELDS = {
    "tasks": "createdAt",
    "notes": "updatedAt",
    "blogs": "updatedAt",
}


class AccountStore:
    """
    SQLite-backed store for account collections and AI settings.

    Pass ``":memory:"`` as the path for a throwaway store.
    """

    def __init__(self, store_path: Path | str, busy_timeout_ms: int = 5000):
        """
        Args:
            store_path: Path to SQLite database file, or ":memory:"
            busy_timeout_ms: How long to wait on another process's lock
        """
        self._db_path = store_path
        self._busy_timeout_ms = busy_timeout_ms
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        try:
            self._init_db()
        except (sqlite3.Error, OSError) as e:
            raise RemoteStoreError(f"Cannot open account store at {store_path}: {e}") from e

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        if str(self._db_path) != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute(f"PRAGMA busy_timeout={int(self._busy_timeout_ms)}")

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS collection_items (
                user_id TEXT NOT NULL,
                kind TEXT NOT NULL,
                item_id TEXT NOT NULL,
                payload_json TEXT NOT NULL,
                sort_key INTEGER NOT NULL,
                PRIMARY KEY (user_id, kind, item_id)
            )
        """)

        # Index for per-user collection reads
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_items_user_kind
            ON collection_items(user_id, kind, sort_key)
        """)

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS user_settings (
                user_id TEXT PRIMARY KEY,
                preferred_ai TEXT NOT NULL DEFAULT 'ollama',
                openai_key TEXT,
                claude_key TEXT,
                gemini_key TEXT,
                updated_at TEXT NOT NULL
            )
        """)
        self._conn.commit()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RemoteStoreError("Account store is closed")
        return self._conn

    @staticmethod
    def _normalize(kind: str, items: list[dict]) -> list[dict]:
        """Validate incoming items and fill defaults, as the server would."""
        try:
            return dump_collection(parse_collection(kind, items))
        except CollectionSchemaError as e:
            raise RemoteStoreError(f"Rejected {kind} payload: {e}") from e

    def _insert(self, conn: sqlite3.Connection, user_id: str, kind: str, items: list[dict]) -> None:
        sort_field = _SORT_FIELDS[kind]
        conn.executemany("""
            INSERT INTO collection_items (user_id, kind, item_id, payload_json, sort_key)
            VALUES (?, ?, ?, ?, ?)
        """, [
            (user_id, kind, item["id"], json.dumps(item, ensure_ascii=False), item[sort_field])
            for item in items
        ])

    # -------------------------------------------------------------------------
    # Collections
    # -------------------------------------------------------------------------

    def fetch_collection(self, user_id: str, kind: str) -> list[dict]:
        """Return the user's collection, newest first."""
        _check_kind(kind)
        with self._lock:
            try:
                rows = self._connection().execute("""
                    SELECT payload_json FROM collection_items
                    WHERE user_id = ? AND kind = ?
                    ORDER BY sort_key DESC, rowid ASC
                """, (user_id, kind)).fetchall()
            except sqlite3.Error as e:
                raise RemoteStoreError(f"Failed to load {kind}: {e}") from e
        try:
            return [json.loads(row["payload_json"]) for row in rows]
        except json.JSONDecodeError as e:
            raise RemoteStoreError(f"Corrupt {kind} row for {user_id}: {e}") from e

    def replace_collection(self, user_id: str, kind: str, items: list[dict]) -> None:
        """Delete the user's collection and insert ``items``, in one transaction."""
        _check_kind(kind)
        normalized = self._normalize(kind, items)
        with self._lock:
            conn = self._connection()
            try:
                with conn:
                    conn.execute(
                        "DELETE FROM collection_items WHERE user_id = ? AND kind = ?",
                        (user_id, kind),
                    )
                    self._insert(conn, user_id, kind, normalized)
            except sqlite3.Error as e:
                raise RemoteStoreError(f"Failed to save {kind}: {e}") from e
        logger.debug("Replaced %s for %s (%d items)", kind, user_id, len(normalized))

    def migrate_collection(self, user_id: str, kind: str, items: list[dict]) -> None:
        """
        Append ``items`` to the user's collection.

        All-or-nothing: if any id already exists the whole batch is rolled
        back and RemoteStoreError is raised.
        """
        _check_kind(kind)
        normalized = self._normalize(kind, items)
        if not normalized:
            return
        with self._lock:
            conn = self._connection()
            try:
                with conn:
                    self._insert(conn, user_id, kind, normalized)
            except sqlite3.IntegrityError as e:
                raise RemoteStoreError(
                    f"Failed to migrate {kind}: an item id already exists ({e})"
                ) from e
            except sqlite3.Error as e:
                raise RemoteStoreError(f"Failed to migrate {kind}: {e}") from e
        logger.info("Migrated %d %s for %s", len(normalized), kind, user_id)

    def count(self, user_id: str, kind: str) -> int:
        _check_kind(kind)
        with self._lock:
            try:
                row = self._connection().execute(
                    "SELECT COUNT(*) FROM collection_items WHERE user_id = ? AND kind = ?",
                    (user_id, kind),
                ).fetchone()
            except sqlite3.Error as e:
                raise RemoteStoreError(f"Failed to count {kind}: {e}") from e
        return row[0]

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    def fetch_settings(self, user_id: str) -> UserAISettings:
        """Stored settings; users without a row get the local provider."""
        with self._lock:
            try:
                row = self._connection().execute(
                    "SELECT * FROM user_settings WHERE user_id = ?", (user_id,)
                ).fetchone()
            except sqlite3.Error as e:
                raise RemoteStoreError(f"Failed to load settings: {e}") from e
        if row is None:
            return UserAISettings(preferred_ai=LOCAL_PROVIDER)
        return UserAISettings(
            preferred_ai=row["preferred_ai"] or LOCAL_PROVIDER,
            openai_key=row["openai_key"],
            claude_key=row["claude_key"],
            gemini_key=row["gemini_key"],
        )

    def save_settings(self, user_id: str, settings: UserAISettings) -> UserAISettings:
        """Upsert settings; empty keys are stored as NULL."""
        now = datetime.now(timezone.utc).isoformat()
        values = (
            user_id,
            settings.preferred_ai or LOCAL_PROVIDER,
            settings.openai_key or None,
            settings.claude_key or None,
            settings.gemini_key or None,
            now,
        )
        with self._lock:
            conn = self._connection()
            try:
                with conn:
                    conn.execute("""
                        INSERT OR REPLACE INTO user_settings
                        (user_id, preferred_ai, openai_key, claude_key, gemini_key, updated_at)
                        VALUES (?, ?, ?, ?, ?, ?)
                    """, values)
            except sqlite3.Error as e:
                raise RemoteStoreError(f"Failed to save settings: {e}") from e
        return self.fetch_settings(user_id)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
