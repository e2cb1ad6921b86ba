"""
Data types for jotpad.

Items (tasks, notes, blog posts) are pydantic models whose aliases match the
JSON written to local storage and exchanged with the remote endpoints
(camelCase keys, epoch-millisecond timestamps). The same schemas validate
both boundaries, so a malformed local entry and a malformed server response
surface the same way: as a CollectionSchemaError.
"""

import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .errors import CollectionSchemaError


# Storage keys, one per data kind. Used verbatim as local storage keys and
# as the path segment of the remote collection endpoints.
DATA_KINDS = ("tasks", "notes", "blogs")

# Provider identifiers. "local" is accepted as an alias for the local backend.
LOCAL_PROVIDER = "ollama"
VENDOR_PROVIDERS = ("openai", "claude", "gemini")
PROVIDER_IDS = (LOCAL_PROVIDER,) + VENDOR_PROVIDERS


def now_millis() -> int:
    """Current time as integer epoch milliseconds."""
    return int(time.time() * 1000)


def _to_millis(value: Any) -> Any:
    """Coerce ISO-8601 timestamps (as returned by the database) to epoch millis."""
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return int(text)
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return value  # let pydantic report it
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return int(dt.timestamp() * 1000)
    return value


class _ItemModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    id: str = Field(min_length=1)


class TaskItem(_ItemModel):
    """A to-do entry."""
    title: str
    completed: bool = False
    created_at: int = Field(default_factory=now_millis)

    @field_validator("created_at", mode="before")
    @classmethod
    def coerce_timestamp(cls, value: Any) -> Any:
        return _to_millis(value)


class NoteItem(_ItemModel):
    """A rich-text note. Content is HTML markup."""
    title: str = "Untitled"
    content_html: str = ""
    updated_at: int = Field(default_factory=now_millis)

    @field_validator("updated_at", mode="before")
    @classmethod
    def coerce_timestamp(cls, value: Any) -> Any:
        return _to_millis(value)


class BlogItem(NoteItem):
    """A blog post draft. Same shape as a note, kept in its own collection."""


Item = Union[TaskItem, NoteItem, BlogItem]

ITEM_MODELS: dict[str, type[_ItemModel]] = {
    "tasks": TaskItem,
    "notes": NoteItem,
    "blogs": BlogItem,
}

_ADAPTERS = {kind: TypeAdapter(list[model]) for kind, model in ITEM_MODELS.items()}


def parse_collection(kind: str, raw: Any) -> list:
    """
    Validate a decoded JSON value against the item schema for ``kind``.

    Raises:
        CollectionSchemaError: If the value is not a list of valid items
            or two items share an id
        KeyError: If ``kind`` is not a known data kind
    """
    adapter = _ADAPTERS[kind]
    try:
        items = adapter.validate_python(raw)
    except ValidationError as e:
        raise CollectionSchemaError(
            f"Invalid {kind} collection: {e.error_count()} validation error(s); "
            f"first: {e.errors()[0].get('msg', '')}"
        ) from e

    seen: set[str] = set()
    for item in items:
        if item.id in seen:
            raise CollectionSchemaError(f"Invalid {kind} collection: duplicate id {item.id!r}")
        seen.add(item.id)
    return items


def dump_collection(items: list) -> list[dict]:
    """Serialize items to plain dicts with wire (camelCase) keys."""
    return [item.model_dump(by_alias=True) for item in items]


# -----------------------------------------------------------------------------
# AI settings
# -----------------------------------------------------------------------------

def normalize_provider_id(name: Optional[str]) -> str:
    """Canonical provider id; empty, unknown and "local" all map to the local backend."""
    key = (name or "").strip().lower()
    if key in VENDOR_PROVIDERS:
        return key
    return LOCAL_PROVIDER


_KEY_FIELDS = {
    "openai": "openai_key",
    "claude": "claude_key",
    "gemini": "gemini_key",
}


@dataclass
class UserAISettings:
    """
    Per-account AI preferences.

    Attributes:
        preferred_ai: Provider id to activate, or None to leave the active
            provider unchanged
        openai_key / claude_key / gemini_key: User-supplied vendor credentials
    """
    preferred_ai: Optional[str] = None
    openai_key: Optional[str] = None
    claude_key: Optional[str] = None
    gemini_key: Optional[str] = None

    def credential_for(self, provider: str) -> Optional[str]:
        """Return the credential matching a provider id (None for the local backend)."""
        attr = _KEY_FIELDS.get(normalize_provider_id(provider))
        return getattr(self, attr) if attr else None

    @classmethod
    def from_dict(cls, data: dict) -> "UserAISettings":
        """Build from the settings endpoint payload (camelCase keys)."""
        return cls(
            preferred_ai=data.get("preferredAI") or data.get("preferred_ai"),
            openai_key=data.get("openaiKey") or data.get("openai_key") or None,
            claude_key=data.get("claudeKey") or data.get("claude_key") or None,
            gemini_key=data.get("geminiKey") or data.get("gemini_key") or None,
        )

    def to_dict(self) -> dict:
        return {
            "preferredAI": self.preferred_ai,
            "openaiKey": self.openai_key,
            "claudeKey": self.claude_key,
            "geminiKey": self.gemini_key,
        }

    def masked(self) -> "UserAISettings":
        """Copy with credentials reduced to their last four characters, for display."""
        def mask(key: Optional[str]) -> Optional[str]:
            if not key:
                return key
            return "****" + key[-4:] if len(key) > 4 else "****"

        return replace(
            self,
            openai_key=mask(self.openai_key),
            claude_key=mask(self.claude_key),
            gemini_key=mask(self.gemini_key),
        )


# -----------------------------------------------------------------------------
# Provider results
# -----------------------------------------------------------------------------

@dataclass
class ProviderResult:
    """Outcome of a content-producing provider operation."""
    success: bool
    content: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, content: str) -> "ProviderResult":
        return cls(success=True, content=content)

    @classmethod
    def fail(cls, error: str) -> "ProviderResult":
        return cls(success=False, error=error)


@dataclass
class TaskListResult:
    """Outcome of task extraction."""
    success: bool
    tasks: list[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class TaskResult:
    """Outcome of speech-to-task normalization."""
    success: bool
    task: str = ""
    error: Optional[str] = None
