"""
Remote collection and settings endpoints.

The RemoteStore protocol is what the hybrid stores, the migration
coordinator and the AI manager consume. Two implementations exist:

- RemoteClient: HTTP client for a jotpad account server
  (``/api/user/{kind}``, ``/api/user/{kind}/migrate``, ``/api/user/settings``)
- AccountStore (account_store.py): the same contract on a local SQLite file,
  for offline use and tests

Collection payloads are lists of plain dicts in wire format; schema
validation happens in the callers, which know the item types.
"""

from __future__ import annotations

import logging
import time
from typing import Optional, Protocol, runtime_checkable

import httpx

from .errors import RemoteStoreError
from .types import DATA_KINDS, UserAISettings

logger = logging.getLogger(__name__)

# Retry config for idempotent requests
MAX_RETRIES = 3
RETRY_BACKOFF_BASE = 0.5  # seconds

DEFAULT_TIMEOUT = 15.0


@runtime_checkable
class RemoteStore(Protocol):
    """Per-user remote persistence for collections and AI settings."""

    def fetch_collection(self, user_id: str, kind: str) -> list[dict]:
        """Return the user's full collection for a data kind."""
        ...

    def replace_collection(self, user_id: str, kind: str, items: list[dict]) -> None:
        """Clear the user's collection and store ``items`` in its place."""
        ...

    def migrate_collection(self, user_id: str, kind: str, items: list[dict]) -> None:
        """Append ``items`` to whatever the user already has. Not idempotent."""
        ...

    def fetch_settings(self, user_id: str) -> UserAISettings:
        ...

    def save_settings(self, user_id: str, settings: UserAISettings) -> UserAISettings:
        """Persist settings and return the stored result."""
        ...

    def close(self) -> None:
        ...


def _check_kind(kind: str) -> None:
    if kind not in DATA_KINDS:
        raise ValueError(f"Unknown data kind: {kind!r}. Expected one of {DATA_KINDS}")


class RemoteClient:
    """HTTP client for the jotpad account API."""

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str] = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self._api_url = api_url.rstrip("/")

        # Refuse non-HTTPS for remote APIs (bearer token would be sent in cleartext)
        if not self._api_url.startswith("https://"):
            from urllib.parse import urlparse
            host = urlparse(self._api_url).hostname or ""
            if host not in ("localhost", "127.0.0.1", "::1"):
                raise ValueError(
                    f"Account API URL must use HTTPS (got {self._api_url}). "
                    "Use HTTPS to protect credentials, or use localhost for local development."
                )

        headers: dict[str, str] = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self._client = httpx.Client(
            base_url=self._api_url,
            headers=headers,
            timeout=timeout,
        )

    def _get(self, path: str, user_id: str) -> dict:
        """GET with retries on transient errors (5xx, timeouts, connection errors)."""
        last_error: Exception | None = None
        for attempt in range(MAX_RETRIES):
            try:
                resp = self._client.get(path, headers={"X-User-Id": user_id})
                resp.raise_for_status()
                return self._decode(resp, path)
            except httpx.HTTPStatusError as e:
                if e.response.status_code < 500:
                    raise RemoteStoreError(
                        f"GET {path} rejected: {e.response.status_code} {e.response.text[:200]}"
                    ) from e
                last_error = e
            except httpx.TransportError as e:
                last_error = e
            except httpx.HTTPError as e:
                raise RemoteStoreError(f"GET {path} failed: {e}") from e

            if attempt < MAX_RETRIES - 1:
                delay = RETRY_BACKOFF_BASE * (2 ** attempt)
                logger.info(
                    "GET %s attempt %d failed, retrying in %.1fs: %s",
                    path, attempt + 1, delay, last_error,
                )
                time.sleep(delay)

        raise RemoteStoreError(
            f"GET {path} failed after {MAX_RETRIES} attempts: {last_error}"
        ) from last_error

    def _post(self, path: str, user_id: str, payload: dict) -> dict:
        """POST once. Writes are not retried; a replay could duplicate an append."""
        try:
            resp = self._client.post(path, json=payload, headers={"X-User-Id": user_id})
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise RemoteStoreError(
                f"POST {path} rejected: {e.response.status_code} {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise RemoteStoreError(f"POST {path} failed: {e}") from e
        return self._decode(resp, path)

    @staticmethod
    def _decode(resp, path: str) -> dict:
        try:
            data = resp.json()
        except ValueError as e:
            raise RemoteStoreError(f"Malformed response from {path}: {e}") from e
        if not isinstance(data, dict):
            raise RemoteStoreError(f"Malformed response from {path}: expected an object")
        return data

    # -- Collections --

    def fetch_collection(self, user_id: str, kind: str) -> list[dict]:
        """GET /api/user/{kind} -> {"data": [...]}"""
        _check_kind(kind)
        data = self._get(f"/api/user/{kind}", user_id).get("data")
        if not isinstance(data, list):
            raise RemoteStoreError(f"Malformed {kind} response: 'data' is not a list")
        return data

    def replace_collection(self, user_id: str, kind: str, items: list[dict]) -> None:
        """POST /api/user/{kind}: server clears and replaces the collection."""
        _check_kind(kind)
        self._post(f"/api/user/{kind}", user_id, {"data": items})

    def migrate_collection(self, user_id: str, kind: str, items: list[dict]) -> None:
        """POST /api/user/{kind}/migrate: server appends the items."""
        _check_kind(kind)
        result = self._post(f"/api/user/{kind}/migrate", user_id, {"data": items})
        if result.get("success") is False:
            raise RemoteStoreError(f"Migration of {kind} not acknowledged: {result.get('error')}")

    # -- Settings --

    def fetch_settings(self, user_id: str) -> UserAISettings:
        """GET /api/user/settings"""
        return UserAISettings.from_dict(self._get("/api/user/settings", user_id))

    def save_settings(self, user_id: str, settings: UserAISettings) -> UserAISettings:
        """POST /api/user/settings -> stored settings"""
        stored = self._post("/api/user/settings", user_id, settings.to_dict())
        return UserAISettings.from_dict(stored)

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()


def create_remote(config) -> RemoteStore:
    """
    Create the remote store named by configuration.

    ``backend = "local"`` (default) uses a SQLite account file in the app
    directory; ``backend = "http"`` talks to an account server.
    """
    remote = config.remote
    if remote.backend == "http":
        if not remote.api_url:
            raise ValueError("remote.backend = 'http' requires remote.api_url")
        return RemoteClient(remote.api_url, remote.api_key)
    if remote.backend == "local":
        from .account_store import AccountStore
        return AccountStore(config.path / "accounts.db")
    raise ValueError(f"Unknown remote backend: {remote.backend!r}. Expected 'local' or 'http'")
