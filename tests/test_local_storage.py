"""Tests for jotpad.local_storage."""

import sqlite3

import pytest

from jotpad.errors import LocalStorageError
from jotpad.local_storage import LocalStorage


def test_missing_key(local):
    assert local.get_item("tasks") is None
    assert local.get_json("tasks", []) == []


def test_set_get_remove(local):
    local.set_item("selected-task-id", "abc")
    assert local.get_item("selected-task-id") == "abc"
    assert local.remove_item("selected-task-id") is True
    assert local.remove_item("selected-task-id") is False
    assert local.get_item("selected-task-id") is None


def test_overwrite(local):
    local.set_item("k", "1")
    local.set_item("k", "2")
    assert local.get_item("k") == "2"


def test_json_roundtrip_keeps_unicode(local):
    local.set_json("notes", [{"title": "Café"}])
    assert "Café" in local.get_item("notes")
    assert local.get_json("notes") == [{"title": "Café"}]


def test_corrupt_json_raises(local):
    local.set_item("tasks", "[oops")
    with pytest.raises(LocalStorageError, match="Corrupt"):
        local.get_json("tasks")


def test_keys_and_clear(local):
    local.set_item("b", "1")
    local.set_item("a", "2")
    assert local.keys() == ["a", "b"]
    assert local.clear() == 2
    assert local.keys() == []


def test_persists_on_disk(tmp_path):
    path = tmp_path / "nested" / "local.db"
    with LocalStorage(path) as storage:
        storage.set_item("tasks", "[]")
    with LocalStorage(path) as storage:
        assert storage.get_item("tasks") == "[]"


def test_closed_storage_raises():
    storage = LocalStorage(":memory:")
    storage.close()
    with pytest.raises(LocalStorageError):
        storage.get_item("tasks")


@pytest.fixture
def locked_storage(tmp_path):
    """On-disk storage while another connection holds an exclusive lock."""
    path = tmp_path / "local.db"
    storage = LocalStorage(path, busy_timeout_ms=0)
    storage.set_item("tasks", "[]")
    blocker = sqlite3.connect(str(path), isolation_level=None)
    blocker.execute("BEGIN EXCLUSIVE")
    yield storage
    blocker.execute("ROLLBACK")
    blocker.close()
    storage.close()


def test_locked_read_raises_storage_error(locked_storage):
    with pytest.raises(LocalStorageError, match="Reading 'tasks' failed"):
        locked_storage.get_item("tasks")
    with pytest.raises(LocalStorageError):
        locked_storage.get_json("tasks")
    with pytest.raises(LocalStorageError):
        locked_storage.keys()


def test_locked_write_raises_storage_error(locked_storage):
    with pytest.raises(LocalStorageError, match="Writing 'tasks' failed"):
        locked_storage.set_item("tasks", "[1]")
    with pytest.raises(LocalStorageError, match="Removing"):
        locked_storage.remove_item("tasks")
    with pytest.raises(LocalStorageError):
        locked_storage.clear()


def test_unopenable_path_raises_storage_error(tmp_path):
    (tmp_path / "taken").write_text("a file, not a directory")
    with pytest.raises(LocalStorageError, match="Cannot open"):
        LocalStorage(tmp_path / "taken" / "local.db")
