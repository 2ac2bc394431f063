"""Unit tests for the local snapshot store and device storage backends."""
from datetime import datetime, timezone

import pytest

from progress_sync.errors import LocalStorageUnavailable
from progress_sync.schemas.progress_schemas import AnsweredQuestion, ProgressSnapshot
from progress_sync.stores.device_storage import FileDeviceStorage, MemoryDeviceStorage
from progress_sync.stores.local_store import LocalSnapshotStore


@pytest.mark.unit
class TestLocalSnapshotStore:
    def test_save_then_load(self, local_store):
        snapshot = ProgressSnapshot(
            current_module=2,
            current_question=3,
            score=120,
            unlocked_modules=frozenset({0, 1, 2}),
            answered_questions={"2-0": AnsweredQuestion(selected_answer=1, was_correct=True)},
            shuffled_question_order={2: [3, 1, 0, 2]},
        )
        assert local_store.save("user-1", snapshot)
        loaded = local_store.load("user-1")
        assert loaded == snapshot

    def test_keys_are_namespaced(self, local_store, memory_storage):
        local_store.save("user-1", ProgressSnapshot(score=1))
        local_store.set_last_location("user-1", 1, 2)
        assert set(memory_storage.keys()) == {"ifrs17-progress-user-1", "ifrs17-last-location-user-1"}
        assert local_store.load("user-2") is None

    def test_namespace_used_when_no_id_given(self, local_store):
        local_store.use_namespace("guest_1")
        local_store.save(None, ProgressSnapshot(score=7))
        assert local_store.load("guest_1").score == 7

    def test_last_location_round_trip(self, local_store):
        ts = datetime(2025, 5, 1, 9, 30, tzinfo=timezone.utc)
        local_store.set_last_location("user-1", 4, 6, ts)
        loc = local_store.get_last_location("user-1")
        assert (loc.module_id, loc.question_index, loc.ts, loc.source) == (4, 6, ts, "local")

    def test_last_location_ignores_non_datetime_stamp(self, local_store):
        assert local_store.set_last_location("user-1", 2, 3, "yesterday")
        loc = local_store.get_last_location("user-1")
        assert (loc.module_id, loc.question_index) == (2, 3)
        assert loc.ts is not None and loc.ts.tzinfo is not None

    def test_clear_removes_only_that_identity(self, local_store):
        local_store.save("a", ProgressSnapshot(score=1))
        local_store.save("b", ProgressSnapshot(score=2))
        local_store.set_last_location("a", 1, 1)
        assert local_store.clear("a")
        assert local_store.clear_last_location("a")
        assert local_store.load("a") is None
        assert local_store.get_last_location("a") is None
        assert local_store.load("b").score == 2

    def test_invalid_stored_snapshot_reads_as_absent(self, memory_storage, local_store):
        memory_storage.set_item("ifrs17-progress-x", '{"score": "lots"}')
        memory_storage.set_item("ifrs17-last-location-x", "not json")
        assert local_store.load("x") is None
        assert local_store.get_last_location("x") is None

    def test_unavailable_storage_reports_failure(self, broken_storage):
        store = LocalSnapshotStore(broken_storage)
        assert store.save("u", ProgressSnapshot()) is False
        assert store.available is False
        assert store.load("u") is None
        assert store.set_last_location("u", 1, 1) is False
        assert store.get_last_location("u") is None
        assert store.clear("u") is False

    def test_unserializable_value_does_not_mark_storage_unavailable(self, local_store):
        assert local_store.set_json("k", {"bad": object()}) is False
        assert local_store.available is True


@pytest.mark.unit
class TestFileDeviceStorage:
    def test_persists_across_instances(self, tmp_path):
        path = tmp_path / "storage.json"
        FileDeviceStorage(path).set_item("a", "1")
        assert FileDeviceStorage(path).get_item("a") == "1"

    def test_remove_item(self, tmp_path):
        storage = FileDeviceStorage(tmp_path / "storage.json")
        storage.set_item("a", "1")
        storage.remove_item("a")
        storage.remove_item("missing")
        assert storage.keys() == []

    def test_corrupt_document_starts_empty(self, tmp_path):
        path = tmp_path / "storage.json"
        path.write_text("{not json", encoding="utf-8")
        assert FileDeviceStorage(path).get_item("a") is None

    def test_invalid_utf8_document_starts_empty(self, tmp_path):
        path = tmp_path / "storage.json"
        path.write_bytes(b'{"k": "\xff\xfe"}')
        storage = FileDeviceStorage(path)
        assert storage.get_item("k") is None

        store = LocalSnapshotStore(storage)
        assert store.load("someone") is None
        assert store.available

    def test_unreadable_path_raises_unavailable(self, tmp_path):
        # A directory where the file should be cannot be read as text.
        path = tmp_path / "storage.json"
        path.mkdir()
        with pytest.raises(LocalStorageUnavailable):
            FileDeviceStorage(path).get_item("a")


@pytest.mark.unit
def test_memory_storage_initial_items():
    storage = MemoryDeviceStorage({"a": "1"})
    assert storage.get_item("a") == "1"
    assert storage.keys() == ["a"]
