"""
AI manager: the active provider, user settings, and the fallback policy.

Callers never see a provider failure as an exception or an empty result.
Content operations fall back to the text they were given and task
extraction falls back to an empty list. Failures are reported out of band
through ``last_failure`` and failure listeners.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from .providers import AIProvider, create_provider, get_registry
from .types import (
    LOCAL_PROVIDER,
    ProviderResult,
    TaskListResult,
    TaskResult,
    UserAISettings,
    normalize_provider_id,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AIFailure:
    """A provider operation that fell back."""
    operation: str
    provider: str
    error: str


FailureListener = Callable[[AIFailure], None]
SettingsSource = Callable[[str], UserAISettings]


class AIManager:
    """
    Holds exactly one active provider and applies the fallback policy.

    Provider switches are atomic: each operation captures the provider that
    is active when it is issued and runs against it to completion, even if
    the settings change in the meantime.

    Args:
        provider_params: Provider id -> constructor kwargs from configuration
        settings_source: Fetches a user's settings (usually the remote
            store's ``fetch_settings``); None means settings can't be loaded
    """

    def __init__(
        self,
        provider_params: Optional[dict[str, dict]] = None,
        settings_source: Optional[SettingsSource] = None,
    ):
        self._lock = threading.Lock()
        self._params = dict(provider_params or {})
        self._settings_source = settings_source
        self._settings: Optional[UserAISettings] = None
        self._provider: AIProvider = create_provider(LOCAL_PROVIDER, params=self._params)
        self._listeners: list[FailureListener] = []
        self.last_failure: Optional[AIFailure] = None

    # -------------------------------------------------------------------------
    # Provider selection
    # -------------------------------------------------------------------------

    @property
    def provider(self) -> AIProvider:
        with self._lock:
            return self._provider

    @property
    def active_provider_name(self) -> str:
        provider = self.provider
        name = get_registry().name_of(provider)
        return name or type(provider).__name__

    @property
    def settings(self) -> Optional[UserAISettings]:
        """Last applied settings, if any."""
        return self._settings

    def update_user_settings(self, settings: UserAISettings) -> None:
        """
        Apply settings, switching provider if they name one.

        The credential comes from the same settings object. A vendor without
        a credential is still activated; its operations then fail fast and
        fall back.
        """
        provider = None
        if settings.preferred_ai:
            name = normalize_provider_id(settings.preferred_ai)
            provider = create_provider(
                name, settings.credential_for(name), params=self._params
            )
        with self._lock:
            self._settings = settings
            if provider is not None:
                self._provider = provider
        if provider is not None:
            logger.info("Active AI provider: %s", self.active_provider_name)

    def load_user_settings(self, user_id: str) -> None:
        """Fetch and apply a user's settings; use the local provider if that fails."""
        if self._settings_source is None:
            logger.debug("No settings source, using local provider")
            self.use_local()
            return
        try:
            settings = self._settings_source(user_id)
        except Exception as e:
            logger.warning("Failed to load AI settings for %s: %s", user_id, e)
            self.use_local()
            return
        self.update_user_settings(settings)

    def use_local(self) -> None:
        """Switch to the local provider (anonymous sessions)."""
        self.update_user_settings(UserAISettings(preferred_ai=LOCAL_PROVIDER))

    def is_available(self) -> bool:
        return self.provider.is_available()

    # -------------------------------------------------------------------------
    # Failure reporting
    # -------------------------------------------------------------------------

    def add_failure_listener(self, listener: FailureListener) -> Callable[[], None]:
        """Register a callback for fallbacks; returns a function that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    def _report(self, operation: str, provider: AIProvider, error: Optional[str]) -> None:
        failure = AIFailure(
            operation=operation,
            provider=get_registry().name_of(provider) or type(provider).__name__,
            error=error or "unknown error",
        )
        self.last_failure = failure
        logger.warning("AI %s via %s failed, using fallback: %s",
                       operation, failure.provider, failure.error)
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(failure)
            except Exception as e:
                logger.error("Failure listener %r failed: %s", listener, e, exc_info=True)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def _invoke(self, operation: str, provider: AIProvider, text: str):
        """Run one provider operation. Returns (result, None) or (None, error)."""
        try:
            return getattr(provider, operation)(text), None
        except Exception as e:
            # Providers shouldn't raise; treat it like any other failure
            logger.debug("Provider %r raised in %s", provider, operation, exc_info=True)
            return None, f"{type(e).__name__}: {e}"

    def _content_with_fallback(self, operation: str, text: str) -> str:
        provider = self.provider
        result, error = self._invoke(operation, provider, text)
        if isinstance(result, ProviderResult) and result.success and result.content is not None:
            return result.content
        self._report(operation, provider, error or getattr(result, "error", None))
        return text

    def summarize_with_fallback(self, text: str) -> str:
        return self._content_with_fallback("summarize", text)

    def rewrite_and_format_with_fallback(self, text: str) -> str:
        return self._content_with_fallback("rewrite_and_format", text)

    def format_as_blog_post_with_fallback(self, text: str) -> str:
        return self._content_with_fallback("format_as_blog_post", text)

    def extract_tasks_with_fallback(self, text: str) -> list[str]:
        provider = self.provider
        result, error = self._invoke("extract_tasks", provider, text)
        if isinstance(result, TaskListResult) and result.success:
            return list(result.tasks)
        self._report("extract_tasks", provider, error or getattr(result, "error", None))
        return []

    def speech_to_task_with_fallback(self, text: str) -> str:
        provider = self.provider
        result, error = self._invoke("speech_to_task", provider, text)
        if isinstance(result, TaskResult) and result.success and result.task:
            return result.task
        self._report("speech_to_task", provider, error or getattr(result, "error", None))
        return text
