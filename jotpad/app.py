"""
Workspace: one explicitly owned instance of every component.

Wires local storage, the account store, the session, the AI manager, the
three hybrid collections and the migration coordinator together, and
reacts to sign-in/sign-out the way the application does: migrate first,
then load the user's AI settings; on sign-out go back to the local model.
"""

import logging
from typing import Callable, Optional

from .config import AppConfig, load_or_create_config
from .errors import PersistenceError
from .hybrid_store import HybridStore
from .items import TASK_FILTERS
from .local_storage import LocalStorage
from .manager import AIManager
from .migration import MigrationCoordinator
from .remote import RemoteStore, create_remote
from .session import Session
from .types import UserAISettings

logger = logging.getLogger(__name__)

# Local storage key remembering who is signed in between runs
SESSION_USER_KEY = "jotpad:session-user"
TASK_FILTER_KEY = "task-filter"


class Workspace:
    """
    Everything a client needs, owned by one object.

    Example:
        ws = Workspace.open()
        ws.tasks.update(lambda tasks: add_task(tasks, "Buy milk"))
        ws.sign_in("alice@example.com")   # migrates local tasks to the account
        ws.close()

    Args:
        config: Loaded configuration. Without one (and without injected
            stores) the workspace is in-memory only.
        local: Injected local storage
        remote: Injected account store
        session: Injected session
        settings_source: Fetches a user's AI settings; defaults to the
            remote store's ``fetch_settings``
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        *,
        local: Optional[LocalStorage] = None,
        remote: Optional[RemoteStore] = None,
        session: Optional[Session] = None,
        settings_source: Optional[Callable[[str], UserAISettings]] = None,
    ):
        self.config = config
        self._ops_log_handler = None
        if config is not None:
            from .logging_config import configure_ops_log
            self._ops_log_handler = configure_ops_log(config.path)

        # --- Storage (injected or created from config) ---
        if local is None:
            local = LocalStorage(config.local_storage_path if config else ":memory:")
        if remote is None:
            if config is not None:
                remote = create_remote(config)
            else:
                from .account_store import AccountStore
                remote = AccountStore(":memory:")
        self.local = local
        self.remote = remote
        self.session = session or Session()

        # --- AI ---
        self.ai = AIManager(
            provider_params=config.provider_params() if config else None,
            settings_source=settings_source or self.remote.fetch_settings,
        )

        # --- Collections ---
        stores = {"local": self.local, "remote": self.remote, "session": self.session}
        self.tasks = HybridStore("tasks", [], **stores)
        self.notes = HybridStore("notes", [], **stores)
        self.blogs = HybridStore("blogs", [], **stores)

        self.migration = MigrationCoordinator(self.local, self.remote, self.session)
        self._unsubscribe = self.session.subscribe(self._on_auth_changed)

    @classmethod
    def open(cls, config: Optional[AppConfig] = None) -> "Workspace":
        """Open the workspace on disk and restore the saved session."""
        workspace = cls(config or load_or_create_config())
        user_id = workspace.local.get_item(SESSION_USER_KEY)
        if user_id:
            workspace.session.sign_in(user_id)
        else:
            workspace.session.sign_out()
        return workspace

    def collection(self, kind: str) -> HybridStore:
        stores = {"tasks": self.tasks, "notes": self.notes, "blogs": self.blogs}
        if kind not in stores:
            raise ValueError(f"Unknown data kind: {kind!r}")
        return stores[kind]

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    @property
    def user_id(self) -> Optional[str]:
        return self.session.current_user_id()

    def sign_in(self, user_id: str) -> None:
        self.local.set_item(SESSION_USER_KEY, user_id)
        self.session.sign_in(user_id)

    def sign_out(self) -> None:
        self.local.remove_item(SESSION_USER_KEY)
        self.session.sign_out()

    def _on_auth_changed(self, previous_user_id: Optional[str], user_id: Optional[str]) -> None:
        self.migration.on_auth_changed(previous_user_id, user_id)
        if user_id:
            self.ai.load_user_settings(user_id)
        else:
            self.ai.use_local()

    # -------------------------------------------------------------------------
    # Preferences
    # -------------------------------------------------------------------------

    def save_ai_settings(self, settings: UserAISettings) -> UserAISettings:
        """
        Store settings in the user's account and activate them.

        Raises:
            ValueError: If nobody is signed in
            RemoteStoreError: If the account store rejects the settings
        """
        user_id = self.user_id
        if user_id is None:
            raise ValueError("Sign in to save AI settings")
        stored = self.remote.save_settings(user_id, settings)
        self.ai.update_user_settings(stored)
        return stored

    def get_task_filter(self) -> str:
        try:
            value = self.local.get_json(TASK_FILTER_KEY, "all")
        except PersistenceError:
            return "all"
        return value if value in TASK_FILTERS else "all"

    def set_task_filter(self, mode: str) -> None:
        if mode not in TASK_FILTERS:
            raise ValueError(f"Unknown task filter: {mode!r}. Expected one of {TASK_FILTERS}")
        self.local.set_json(TASK_FILTER_KEY, mode)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close resources (stores, session listeners, ops log)."""
        self._unsubscribe()
        for store in (self.tasks, self.notes, self.blogs):
            store.close()
        self.remote.close()
        self.local.close()

        # Remove ops log handler to avoid handler accumulation
        if self._ops_log_handler is not None:
            logging.getLogger("jotpad").removeHandler(self._ops_log_handler)
            self._ops_log_handler.close()
            self._ops_log_handler = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
