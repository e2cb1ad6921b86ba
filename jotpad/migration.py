"""
Move anonymous local data into the signed-in user's account.

Runs once per authenticated session. Each collection is appended to the
account through the migrate endpoint; its local copy is removed only after
the append is acknowledged, so a failed run can be retried by the next
session without losing anything.
"""

import logging
import threading
from typing import Optional

from .errors import PersistenceError
from .local_storage import LocalStorage
from .remote import RemoteStore
from .session import Session
from .types import DATA_KINDS, dump_collection, parse_collection

logger = logging.getLogger(__name__)

# UI-state keys that belong to a collection and go away with it
AUXILIARY_KEYS = {
    "tasks": ("selected-task-id", "task-filter"),
    "notes": ("selected-note-id", "notes-closed", "notes-sidebar-open"),
    "blogs": ("selected-blog-id", "blogs-sidebar-open"),
}


class MigrationCoordinator:
    """
    One-shot transfer of local collections to the account store.

    Register ``on_auth_changed`` with the session (Workspace does this) so
    that signing in triggers ``run()``.
    """

    def __init__(self, local: LocalStorage, remote: RemoteStore, session: Session):
        self._local = local
        self._remote = remote
        self._session = session
        self._lock = threading.Lock()
        self._in_flight = False
        self._migrated_for: Optional[str] = None
        self.last_results: dict[str, bool] = {}

    @property
    def is_migrating(self) -> bool:
        return self._in_flight

    def on_auth_changed(self, previous_user_id: Optional[str], user_id: Optional[str]) -> None:
        """Session listener: migrate at the start of each authenticated session."""
        if user_id is None:
            with self._lock:
                self._migrated_for = None
            return
        if previous_user_id == user_id:
            return
        with self._lock:
            if self._migrated_for == user_id:
                return
            self._migrated_for = user_id
        self.run()

    def run(self) -> dict[str, bool]:
        """
        Migrate every kind that has local data.

        Returns:
            Kind -> success, for the kinds that had something to migrate.
            Empty if nobody is signed in or a run is already in progress.
        """
        user_id = self._session.current_user_id()
        if user_id is None:
            return {}

        with self._lock:
            if self._in_flight:
                logger.debug("Migration already in progress, skipping")
                return {}
            self._in_flight = True

        try:
            results: dict[str, bool] = {}
            for kind in DATA_KINDS:
                outcome = self._migrate_kind(user_id, kind)
                if outcome is not None:
                    results[kind] = outcome
            self.last_results = results
            if results:
                logger.info("Migration for %s: %s", user_id, results)
            return results
        finally:
            with self._lock:
                self._in_flight = False

    def _migrate_kind(self, user_id: str, kind: str) -> Optional[bool]:
        """Migrate one kind. None if there was nothing to migrate."""
        try:
            if self._local.get_item(kind) is None:
                return None
            decoded = self._local.get_json(kind)
            if not decoded:
                return None
            items = parse_collection(kind, decoded)
        except PersistenceError as e:
            logger.error("Cannot migrate unreadable local %s: %s", kind, e)
            return False

        try:
            self._remote.migrate_collection(user_id, kind, dump_collection(items))
        except PersistenceError as e:
            logger.error("Failed to migrate %s for %s: %s", kind, user_id, e)
            return False

        try:
            self._local.remove_item(kind)
            for key in AUXILIARY_KEYS[kind]:
                self._local.remove_item(key)
        except PersistenceError as e:
            # Already appended; the local copy stays behind
            logger.error("Migrated %s for %s but could not clear local copy: %s", kind, user_id, e)
            return False
        logger.info("Migrated %d %s to account %s", len(items), kind, user_id)
        return True
