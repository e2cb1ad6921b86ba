"""
Hybrid persistence: one collection, stored locally or in the user's account.

While nobody is signed in a HybridStore reads and writes local storage. Once
the session is authenticated it serves an in-memory view that is hydrated
from the remote collection once per session, and every write replaces the
whole remote collection. Callers see the same read/write API either way.
"""

import logging
import threading
from typing import Callable, Optional

from .errors import PersistenceError
from .local_storage import LocalStorage
from .remote import RemoteStore, _check_kind
from .session import Session
from .types import dump_collection, parse_collection

logger = logging.getLogger(__name__)


class HybridStore:
    """
    Collection store that follows the session's authentication state.

    Args:
        kind: Data kind (tasks, notes, blogs); also the storage key
        default: Value served when nothing usable is stored
        local: Client-resident storage
        remote: Account endpoints
        session: Current user and auth-change notifications
    """

    def __init__(
        self,
        kind: str,
        default: Optional[list] = None,
        *,
        local: LocalStorage,
        remote: RemoteStore,
        session: Session,
    ):
        _check_kind(kind)
        self.kind = kind
        self._default = list(default or [])
        self._local = local
        self._remote = remote
        self._session = session

        self._lock = threading.Lock()
        self._view: list = list(self._default)
        self._hydrated_for: Optional[str] = None
        self._hydrating_for: Optional[str] = None
        # Bumped by every authenticated write and every user change; a
        # hydration read only lands if the generation it started in is current.
        self._generation = 0

        self._unsubscribe = session.subscribe(self._on_auth_changed)

    @property
    def is_loading(self) -> bool:
        """True while a hydration read for the current user is in flight."""
        user_id = self._session.current_user_id()
        return user_id is not None and self._hydrating_for == user_id

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def read(self) -> list:
        """Current collection for whoever is signed in (or the local one)."""
        user_id = self._session.current_user_id()
        if user_id is None:
            return self._read_local()
        return self._read_remote(user_id)

    def write(self, items: list) -> None:
        """Replace the collection with ``items``."""
        user_id = self._session.current_user_id()
        if user_id is None:
            self._write_local(items)
            return

        with self._lock:
            # Any hydration still in flight is now stale
            self._hydrated_for = user_id
            self._generation += 1
            self._view = list(items)

        try:
            self._remote.replace_collection(user_id, self.kind, dump_collection(items))
        except PersistenceError as e:
            # In-memory view keeps the new value until the next successful write
            logger.error("Failed to save %s for %s: %s", self.kind, user_id, e)

    def update(self, func: Callable[[list], list]) -> list:
        """Apply ``func`` to the current collection and write the result."""
        items = func(self.read())
        self.write(items)
        return items

    def close(self) -> None:
        """Stop following session changes."""
        self._unsubscribe()

    # -------------------------------------------------------------------------
    # Local backing
    # -------------------------------------------------------------------------

    def _read_local(self) -> list:
        try:
            raw = self._local.get_json(self.kind)
            if raw is None:
                return list(self._default)
            return parse_collection(self.kind, raw)
        except PersistenceError as e:
            logger.warning("Ignoring unreadable local %s: %s", self.kind, e)
            return list(self._default)

    def _write_local(self, items: list) -> None:
        try:
            self._local.set_json(self.kind, dump_collection(items))
        except PersistenceError as e:
            logger.error("Failed to save local %s: %s", self.kind, e)

    def _cached_local(self) -> list:
        """Non-empty local value to show while hydrating, else empty."""
        try:
            raw = self._local.get_json(self.kind)
            if not raw:
                return []
            return parse_collection(self.kind, raw)
        except PersistenceError:
            return []

    # -------------------------------------------------------------------------
    # Remote backing
    # -------------------------------------------------------------------------

    def _read_remote(self, user_id: str) -> list:
        with self._lock:
            if self._hydrated_for == user_id or self._hydrating_for == user_id:
                return list(self._view)
            self._hydrating_for = user_id
            generation = self._generation
            cached = self._cached_local()
            if cached:
                self._view = cached

        logger.debug("Hydrating %s for %s", self.kind, user_id)
        fetched = None
        try:
            try:
                fetched = parse_collection(
                    self.kind, self._remote.fetch_collection(user_id, self.kind)
                )
            except PersistenceError as e:
                logger.warning("Failed to load %s for %s: %s", self.kind, user_id, e)
                fetched = list(self._default)
        finally:
            # Clear the in-flight marker even when the fetch blew up
            with self._lock:
                if self._hydrating_for == user_id:
                    self._hydrating_for = None
                if fetched is not None:
                    if self._generation == generation:
                        self._view = fetched
                        self._hydrated_for = user_id
                    else:
                        logger.debug("Discarding stale %s hydration for %s", self.kind, user_id)
                view = list(self._view)
        return view

    def _on_auth_changed(self, previous_user_id: Optional[str], user_id: Optional[str]) -> None:
        if previous_user_id == user_id:
            return
        with self._lock:
            self._generation += 1
            self._hydrated_for = None
            self._hydrating_for = None
            self._view = list(self._default)
