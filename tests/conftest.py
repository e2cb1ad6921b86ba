"""
Shared pytest fixtures for jotpad tests.

Provides an in-memory account store and a scripted AI provider so tests run
without a network, an Ollama server, or vendor credentials.
"""

import copy
import threading
from typing import Optional

import httpx
import pytest

from jotpad.errors import RemoteStoreError
from jotpad.local_storage import LocalStorage
from jotpad.remote import RemoteClient
from jotpad.session import Session
from jotpad.types import (
    ProviderResult,
    TaskListResult,
    TaskResult,
    UserAISettings,
)


class FakeRemote:
    """
    In-memory RemoteStore with call recording and failure switches.

    Set ``fail_fetch`` / ``fail_replace`` / ``fail_migrate`` / ``fail_settings``
    to make the matching calls raise RemoteStoreError. Set ``fetch_gate`` to
    an Event to hold fetches until it is set; ``fetch_started`` is set as
    soon as a fetch begins.
    """

    def __init__(self):
        self.collections: dict[tuple[str, str], list[dict]] = {}
        self.settings: dict[str, UserAISettings] = {}
        self.fetch_calls: list[tuple[str, str]] = []
        self.replace_calls: list[tuple[str, str, list[dict]]] = []
        self.migrate_calls: list[tuple[str, str, list[dict]]] = []
        self.settings_calls: list[str] = []
        self.fail_fetch = False
        self.fail_replace = False
        self.fail_migrate = False
        self.fail_settings = False
        self.fetch_gate: Optional[threading.Event] = None
        self.fetch_started = threading.Event()
        self.closed = False

    def fetch_count(self, kind: str) -> int:
        return sum(1 for _, k in self.fetch_calls if k == kind)

    def fetch_collection(self, user_id: str, kind: str) -> list[dict]:
        self.fetch_calls.append((user_id, kind))
        self.fetch_started.set()
        if self.fetch_gate is not None:
            self.fetch_gate.wait(timeout=5)
        if self.fail_fetch:
            raise RemoteStoreError("fetch failed")
        return copy.deepcopy(self.collections.get((user_id, kind), []))

    def replace_collection(self, user_id: str, kind: str, items: list[dict]) -> None:
        self.replace_calls.append((user_id, kind, copy.deepcopy(items)))
        if self.fail_replace:
            raise RemoteStoreError("replace failed")
        self.collections[(user_id, kind)] = copy.deepcopy(items)

    def migrate_collection(self, user_id: str, kind: str, items: list[dict]) -> None:
        self.migrate_calls.append((user_id, kind, copy.deepcopy(items)))
        if self.fail_migrate:
            raise RemoteStoreError("migrate failed")
        self.collections.setdefault((user_id, kind), []).extend(copy.deepcopy(items))

    def fetch_settings(self, user_id: str) -> UserAISettings:
        self.settings_calls.append(user_id)
        if self.fail_settings:
            raise RemoteStoreError("settings unavailable")
        return self.settings.get(user_id, UserAISettings(preferred_ai="ollama"))

    def save_settings(self, user_id: str, settings: UserAISettings) -> UserAISettings:
        if self.fail_settings:
            raise RemoteStoreError("settings unavailable")
        self.settings[user_id] = settings
        return settings

    def close(self) -> None:
        self.closed = True


class FakeProvider:
    """
    Scripted AI provider.

    Returns ``content`` / ``tasks`` / ``task`` on success, or failure results
    carrying ``error`` when ``fail`` is set. ``raises`` makes every
    operation raise instead.
    """

    def __init__(self, content="AI output", tasks=None, task="Call mom",
                 fail=False, error="backend down", raises=None, available=True):
        self.content = content
        self.tasks = tasks if tasks is not None else ["First task", "Second task"]
        self.task = task
        self.fail = fail
        self.error = error
        self.raises = raises
        self.available = available
        self.calls: list[tuple[str, str]] = []

    def _record(self, operation: str, text: str) -> None:
        self.calls.append((operation, text))
        if self.raises is not None:
            raise self.raises

    def _content(self, operation: str, text: str) -> ProviderResult:
        self._record(operation, text)
        if self.fail:
            return ProviderResult.fail(self.error)
        return ProviderResult.ok(self.content)

    def summarize(self, text):
        return self._content("summarize", text)

    def rewrite_and_format(self, text):
        return self._content("rewrite_and_format", text)

    def format_as_blog_post(self, text):
        return self._content("format_as_blog_post", text)

    def extract_tasks(self, text):
        self._record("extract_tasks", text)
        if self.fail:
            return TaskListResult(success=False, error=self.error)
        return TaskListResult(success=True, tasks=list(self.tasks))

    def speech_to_task(self, text):
        self._record("speech_to_task", text)
        if self.fail:
            return TaskResult(success=False, error=self.error)
        return TaskResult(success=True, task=self.task)

    def is_available(self):
        return self.available


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep tests away from the real app directory and any local services."""
    monkeypatch.setenv("JOTPAD_HOME", str(tmp_path / "home"))
    for name in ("OLLAMA_HOST", "JOTPAD_API_URL", "JOTPAD_API_KEY", "JOTPAD_VERBOSE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def local():
    storage = LocalStorage(":memory:")
    yield storage
    storage.close()


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def session():
    return Session()


@pytest.fixture
def fake_provider():
    return FakeProvider()


def task_dict(id, title="Task", completed=False, created_at=1000):
    """Wire-format task, as stored locally and remotely."""
    return {"id": id, "title": title, "completed": completed, "createdAt": created_at}


def note_dict(id, title="Note", content_html="<p>body</p>", updated_at=1000):
    return {"id": id, "title": title, "contentHtml": content_html, "updatedAt": updated_at}



def undecodable_remote():
    """
    RemoteClient whose server answers 200 with a body claiming gzip
    encoding that doesn't decompress, so every call hits httpx.DecodingError.
    """
    def handler(request):
        return httpx.Response(200, headers={"Content-Encoding": "gzip"}, content=b"not gzip")

    client = RemoteClient("http://localhost:8000")
    client._client.close()
    client._client = httpx.Client(
        base_url="http://localhost:8000",
        transport=httpx.MockTransport(handler),
    )
    return client
