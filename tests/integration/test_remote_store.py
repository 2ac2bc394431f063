"""
Remote snapshot store against the record service (ASGI transport, in-memory DB).
"""
from datetime import datetime, timezone

import pytest

from progress_sync.errors import RemoteStoreError
from progress_sync.schemas.progress_schemas import AnsweredQuestion, ProgressSnapshot

SAVED_AT = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def _snapshot(**overrides) -> ProgressSnapshot:
    fields = dict(
        current_module=3,
        current_question=2,
        score=310,
        level=4,
        completed_modules=frozenset({0, 1, 2}),
        unlocked_modules=frozenset({0, 1, 2, 3}),
        answered_questions={"3-0": AnsweredQuestion(selected_answer=2, was_correct=False)},
        achievements=frozenset({"perfect-start"}),
        shuffled_question_order={3: [9, 8, 7, 6, 5, 4, 3, 2, 1, 0]},
        last_updated=SAVED_AT,
    )
    fields.update(overrides)
    return ProgressSnapshot(**fields)


@pytest.mark.integration
class TestRemoteSnapshotStore:
    @pytest.mark.asyncio
    async def test_load_missing_returns_none(self, remote_store):
        assert await remote_store.load("nobody") is None
        assert await remote_store.get_last_location("nobody") is None

    @pytest.mark.asyncio
    async def test_save_then_load(self, remote_store):
        snapshot = _snapshot()
        result = await remote_store.save("user-1", snapshot)
        assert result.success
        assert await remote_store.load("user-1") == snapshot

    @pytest.mark.asyncio
    async def test_last_location_is_partial_update(self, remote_store):
        await remote_store.save("user-1", _snapshot())
        assert (await remote_store.set_last_location("user-1", 3, 5)).success

        loc = await remote_store.get_last_location("user-1")
        assert (loc.module_id, loc.question_index, loc.source) == (3, 5, "remote")
        assert loc.ts is not None and loc.ts.tzinfo is not None
        assert (await remote_store.load("user-1")).score == 310

    @pytest.mark.asyncio
    async def test_clear_removes_snapshot_and_pointer(self, remote_store):
        await remote_store.save("user-1", _snapshot())
        await remote_store.set_last_location("user-1", 1, 1)
        assert (await remote_store.clear("user-1")).success
        assert await remote_store.load("user-1") is None
        assert await remote_store.get_last_location("user-1") is None

    @pytest.mark.asyncio
    async def test_record_event(self, remote_store):
        result = await remote_store.record_event("user-1", "LOGIN_RESUME", module_id=2, payload={"source": "test"})
        assert result.success

        events = await remote_store.list_events("user-1")
        assert [(e.event_type, e.module_id, e.payload) for e in events] == [
            ("LOGIN_RESUME", 2, {"source": "test"})
        ]
        assert await remote_store.list_events("user-2") == []


@pytest.mark.integration
class TestRemoteStoreOffline:
    @pytest.mark.asyncio
    async def test_writes_report_failure(self, offline_remote_store):
        result = await offline_remote_store.save("user-1", _snapshot())
        assert not result.success
        assert result.error
        assert not (await offline_remote_store.set_last_location("user-1", 1, 1)).success

    @pytest.mark.asyncio
    async def test_reads_raise_transient_error(self, offline_remote_store):
        with pytest.raises(RemoteStoreError):
            await offline_remote_store.load("user-1")
        with pytest.raises(RemoteStoreError):
            await offline_remote_store.get_last_location("user-1")


@pytest.mark.integration
class TestRemoteStoreMalformedRecord:
    @pytest.mark.asyncio
    async def test_non_numeric_shuffle_key_is_a_remote_error(self, fixed_response_remote_store):
        store = fixed_response_remote_store({"total_score": 10, "shuffled_questions": {"x": [0]}})
        with pytest.raises(RemoteStoreError):
            await store.load("user-1")
