"""
Session state: who is signed in, and notifications when that changes.

This is the authentication-state collaborator for the hybrid stores and the
migration coordinator. It performs no authentication itself; callers declare
the user id that their identity layer resolved.
"""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"
UNAUTHENTICATED = "unauthenticated"
AUTHENTICATED = "authenticated"

AuthListener = Callable[[Optional[str], Optional[str]], None]


class Session:
    """
    Current user and auth-change notifications.

    Status starts as "unknown" until the first sign_in/sign_out. Listeners
    are called synchronously as ``listener(previous_user_id, user_id)``
    whenever the status or the user changes.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._status = UNKNOWN
        self._user_id: Optional[str] = None
        self._listeners: list[AuthListener] = []

    @property
    def status(self) -> str:
        return self._status

    @property
    def is_authenticated(self) -> bool:
        return self._status == AUTHENTICATED

    def current_user_id(self) -> Optional[str]:
        """The signed-in user's id, or None for anonymous sessions."""
        return self._user_id

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def sign_in(self, user_id: str) -> None:
        if not user_id:
            raise ValueError("user_id is required to sign in")
        self._transition(AUTHENTICATED, user_id)

    def sign_out(self) -> None:
        self._transition(UNAUTHENTICATED, None)

    def _transition(self, status: str, user_id: Optional[str]) -> None:
        with self._lock:
            previous_status, previous_user = self._status, self._user_id
            if previous_status == status and previous_user == user_id:
                return
            self._status, self._user_id = status, user_id
            listeners = list(self._listeners)

        logger.info("Session %s -> %s (user=%s)", previous_status, status, user_id)
        for listener in listeners:
            try:
                listener(previous_user, user_id)
            except Exception as e:
                logger.error("Auth listener %r failed: %s", listener, e, exc_info=True)
