"""Tests for prtask-store backends."""

from __future__ import annotations

import json
import os

import pytest

from prtask_store.base import CACHE, TASKS, StorageIOError
from prtask_store.jsonfile import JsonFileStore
from prtask_store.memory import MemoryStore
from prtask_store.sqlite import SQLiteStore


def _make_doc(n=1):
    return {"tasks": [{"id": f"t{i}", "description": f"Task {i}"} for i in range(n)]}


@pytest.fixture(params=["memory", "json", "sqlite"])
def backend(request, tmp_path):
    if request.param == "memory":
        store = MemoryStore()
    elif request.param == "json":
        store = JsonFileStore(root=str(tmp_path / ".pr-review"))
    else:
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
    yield store
    store.close()


# ---------------------------------------------------------------------------
# Behaviour shared by every backend
# ---------------------------------------------------------------------------


class TestBackendContract:
    def test_get_missing_returns_none(self, backend):
        assert backend.get("42", TASKS) is None

    def test_put_then_get(self, backend):
        backend.put("42", TASKS, _make_doc(2))
        assert backend.get("42", TASKS) == _make_doc(2)

    def test_put_replaces_previous_value(self, backend):
        backend.put("42", TASKS, _make_doc(1))
        backend.put("42", TASKS, _make_doc(3))
        assert len(backend.get("42", TASKS)["tasks"]) == 3

    def test_documents_are_isolated_by_name(self, backend):
        backend.put("42", TASKS, {"a": 1})
        backend.put("42", CACHE, {"b": 2})
        assert backend.get("42", TASKS) == {"a": 1}
        assert backend.get("42", CACHE) == {"b": 2}

    def test_targets_are_isolated(self, backend):
        backend.put("1", TASKS, {"a": 1})
        assert backend.get("2", TASKS) is None

    def test_delete_removes_document(self, backend):
        backend.put("42", TASKS, {"a": 1})
        backend.delete("42", TASKS)
        assert backend.get("42", TASKS) is None

    def test_delete_missing_is_not_an_error(self, backend):
        backend.delete("42", TASKS)

    def test_list_targets_sorted(self, backend):
        backend.put("7", TASKS, {})
        backend.put("12", TASKS, {})
        assert backend.list_targets() == ["12", "7"]

    def test_list_targets_empty(self, backend):
        assert backend.list_targets() == []

    def test_unicode_round_trips(self, backend):
        backend.put("42", TASKS, {"description": "Usar “comillas” ✓"})
        assert backend.get("42", TASKS)["description"] == "Usar “comillas” ✓"


# ---------------------------------------------------------------------------
# MemoryStore
# ---------------------------------------------------------------------------


class TestMemoryStore:
    def test_returned_value_is_a_copy(self):
        store = MemoryStore()
        store.put("42", TASKS, {"tasks": []})
        store.get("42", TASKS)["tasks"].append("mutated")
        assert store.get("42", TASKS) == {"tasks": []}

    def test_stored_value_is_a_copy(self):
        store = MemoryStore()
        doc = {"tasks": []}
        store.put("42", TASKS, doc)
        doc["tasks"].append("mutated")
        assert store.get("42", TASKS) == {"tasks": []}

    def test_counts_puts(self):
        store = MemoryStore()
        store.put("42", TASKS, {})
        store.put("42", CACHE, {})
        assert store.puts == 2

    def test_target_disappears_when_last_document_deleted(self):
        store = MemoryStore()
        store.put("42", TASKS, {})
        store.delete("42", TASKS)
        assert store.list_targets() == []


# ---------------------------------------------------------------------------
# JsonFileStore
# ---------------------------------------------------------------------------


class TestJsonFileStore:
    def test_layout_is_pr_directory_per_target(self, tmp_path):
        store = JsonFileStore(root=str(tmp_path))
        store.put("42", TASKS, {"tasks": []})
        path = tmp_path / "PR-42" / "tasks.json"
        assert path.exists()
        assert json.loads(path.read_text(encoding="utf-8")) == {"tasks": []}

    def test_no_temp_files_left_after_write(self, tmp_path):
        store = JsonFileStore(root=str(tmp_path))
        store.put("42", TASKS, {"tasks": []})
        assert sorted(os.listdir(tmp_path / "PR-42")) == ["tasks.json"]

    def test_unserialisable_value_keeps_previous_document(self, tmp_path):
        store = JsonFileStore(root=str(tmp_path))
        store.put("42", TASKS, {"ok": True})
        with pytest.raises(StorageIOError):
            store.put("42", TASKS, {"bad": object()})
        assert store.get("42", TASKS) == {"ok": True}
        assert sorted(os.listdir(tmp_path / "PR-42")) == ["tasks.json"]

    def test_corrupt_file_raises_storage_error(self, tmp_path):
        (tmp_path / "PR-42").mkdir()
        (tmp_path / "PR-42" / "tasks.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageIOError):
            JsonFileStore(root=str(tmp_path)).get("42", TASKS)

    def test_list_targets_ignores_unrelated_directories(self, tmp_path):
        (tmp_path / "notes").mkdir()
        (tmp_path / "PR-9").mkdir()  # empty, no documents
        store = JsonFileStore(root=str(tmp_path))
        store.put("3", TASKS, {})
        assert store.list_targets() == ["3"]

    def test_missing_root_lists_nothing(self, tmp_path):
        assert JsonFileStore(root=str(tmp_path / "nope")).list_targets() == []


# ---------------------------------------------------------------------------
# SQLiteStore
# ---------------------------------------------------------------------------


class TestSQLiteStore:
    def test_persists_across_connections(self, tmp_path):
        db = str(tmp_path / "test.db")
        store = SQLiteStore(db_path=db)
        store.put("42", TASKS, _make_doc(2))
        store.close()

        reopened = SQLiteStore(db_path=db)
        assert reopened.get("42", TASKS) == _make_doc(2)
        reopened.close()

    def test_unserialisable_value_raises_storage_error(self, tmp_path):
        store = SQLiteStore(db_path=str(tmp_path / "test.db"))
        store.put("42", TASKS, {"ok": True})
        with pytest.raises(StorageIOError):
            store.put("42", TASKS, {"bad": object()})
        assert store.get("42", TASKS) == {"ok": True}
        store.close()

    def test_unopenable_path_raises_storage_error(self, tmp_path):
        with pytest.raises(StorageIOError):
            SQLiteStore(db_path=str(tmp_path / "missing-dir" / "test.db"))
