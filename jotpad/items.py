"""
Operations on item collections.

Pure functions: each takes a collection and returns a new one, leaving the
input untouched. Mutating helpers given an unknown id return the collection
unchanged; ``find_item`` raises KeyError.
"""

import html
import re
import uuid
from typing import Iterable, Optional, TypeVar

from .types import NoteItem, TaskItem, now_millis

T = TypeVar("T")

TASK_FILTERS = ("all", "active", "completed")

_TAG_RE = re.compile(r"<[^>]+>")


def new_id() -> str:
    return str(uuid.uuid4())


# -----------------------------------------------------------------------------
# Tasks
# -----------------------------------------------------------------------------

def new_task(title: str) -> TaskItem:
    return TaskItem(id=new_id(), title=title.strip(), completed=False, created_at=now_millis())


def add_task(tasks: list[TaskItem], title: str) -> list[TaskItem]:
    """Prepend a task. Blank titles are ignored."""
    if not title or not title.strip():
        return list(tasks)
    return [new_task(title)] + list(tasks)


def add_tasks(tasks: list[TaskItem], titles: Iterable[str]) -> list[TaskItem]:
    """Prepend several tasks, keeping their order (e.g. extracted tasks)."""
    created = [new_task(t) for t in titles if t and t.strip()]
    return created + list(tasks)


def toggle_task(tasks: list[TaskItem], task_id: str) -> list[TaskItem]:
    return [
        t.model_copy(update={"completed": not t.completed}) if t.id == task_id else t
        for t in tasks
    ]


def edit_task(tasks: list[TaskItem], task_id: str, title: str) -> list[TaskItem]:
    """Rename a task. Blank titles are ignored."""
    if not title or not title.strip():
        return list(tasks)
    return [
        t.model_copy(update={"title": title.strip()}) if t.id == task_id else t
        for t in tasks
    ]


def filter_tasks(tasks: list[TaskItem], mode: str = "all") -> list[TaskItem]:
    if mode == "active":
        return [t for t in tasks if not t.completed]
    if mode == "completed":
        return [t for t in tasks if t.completed]
    if mode == "all":
        return list(tasks)
    raise ValueError(f"Unknown task filter: {mode!r}. Expected one of {TASK_FILTERS}")


def count_active(tasks: list[TaskItem]) -> int:
    return sum(1 for t in tasks if not t.completed)


# -----------------------------------------------------------------------------
# Notes and blog posts
# -----------------------------------------------------------------------------

def new_document(model: type[NoteItem], title: str = "", content_html: str = "") -> NoteItem:
    """Create a note or blog post (``model`` is NoteItem or BlogItem)."""
    return model(
        id=new_id(),
        title=title.strip() or "Untitled",
        content_html=content_html,
        updated_at=now_millis(),
    )


def update_document(
    items: list[NoteItem],
    item_id: str,
    title: Optional[str] = None,
    content_html: Optional[str] = None,
) -> list[NoteItem]:
    """Change a document's title and/or content, bumping ``updated_at``."""
    changes: dict = {}
    if title is not None:
        changes["title"] = title
    if content_html is not None:
        changes["content_html"] = content_html
    if not changes:
        return list(items)
    changes["updated_at"] = now_millis()
    return [i.model_copy(update=changes) if i.id == item_id else i for i in items]


def plain_text(content_html: str) -> str:
    """Strip markup from document content."""
    return html.unescape(_TAG_RE.sub(" ", content_html)).strip()


def word_count(content_html: str) -> int:
    return len(plain_text(content_html).split())


# -----------------------------------------------------------------------------
# Any kind
# -----------------------------------------------------------------------------

def delete_item(items: list[T], item_id: str) -> list[T]:
    return [i for i in items if i.id != item_id]


def find_item(items: list[T], item_id: str) -> T:
    """
    Look up an item by id, or by a unique id prefix.

    Raises:
        KeyError: If no item (or more than one, for a prefix) matches
    """
    for item in items:
        if item.id == item_id:
            return item
    matches = [i for i in items if item_id and i.id.startswith(item_id)]
    if len(matches) == 1:
        return matches[0]
    if matches:
        raise KeyError(f"Ambiguous id prefix: {item_id}")
    raise KeyError(f"No item with id: {item_id}")
