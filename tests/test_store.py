"""
Tests for Transport Layer
=========================
In-memory document store: merge writes, preconditions, subscriptions.
"""

import asyncio
from datetime import datetime, timezone

import pytest

from pair_setup.errors import PreconditionFailed, StoreUnavailable, WriteFailed
from pair_setup.transport import (
    DELETE_FIELD,
    SERVER_TIMESTAMP,
    InMemoryDocumentStore,
    SnapshotStream,
    apply_merge,
)


KEY = "pairSpaces/p/setup/current"
NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def fixed_clock():
    return NOW


class TestApplyMerge:
    """Dotted-path merge semantics."""

    def test_nested_path_keeps_siblings(self):
        merged = apply_merge({"answers": {"A": {"x": 1}}}, {"answers.B": {"x": 2}}, NOW)
        assert merged == {"answers": {"A": {"x": 1}, "B": {"x": 2}}}

    def test_value_replaced_wholesale(self):
        merged = apply_merge({"answers": {"A": {"x": 1, "y": 2}}}, {"answers.A": {"x": 3}}, NOW)
        assert merged["answers"]["A"] == {"x": 3}

    def test_sentinels(self):
        merged = apply_merge(
            {"completedAt": NOW, "phase": "complete"},
            {"completedAt": DELETE_FIELD, "updatedAt": SERVER_TIMESTAMP, "history.s": {"at": SERVER_TIMESTAMP}},
            NOW,
        )
        assert "completedAt" not in merged
        assert merged["updatedAt"] == NOW
        assert merged["history"] == {"s": {"at": NOW}}

    def test_does_not_mutate_input(self):
        original = {"answers": {}}
        apply_merge(original, {"answers.A": {"x": 1}}, NOW)
        assert original == {"answers": {}}


class TestDocumentStore:
    """get / create / merge_write."""

    @pytest.mark.asyncio
    async def test_create_is_idempotent(self):
        store = InMemoryDocumentStore(clock=fixed_clock)
        assert await store.create(KEY, {"phase": "awaitingASubmission"}) is True
        assert await store.create(KEY, {"phase": "complete"}) is False
        assert (await store.get(KEY))["phase"] == "awaitingASubmission"
        assert (await store.get(KEY))["updatedAt"] == NOW

    @pytest.mark.asyncio
    async def test_get_missing(self):
        assert await InMemoryDocumentStore().get(KEY) is None

    @pytest.mark.asyncio
    async def test_get_returns_copy(self):
        store = InMemoryDocumentStore()
        await store.create(KEY, {"answers": {}})
        snapshot = await store.get(KEY)
        snapshot["answers"]["A"] = {"x": 1}
        assert (await store.get(KEY))["answers"] == {}

    @pytest.mark.asyncio
    async def test_precondition_mismatch_writes_nothing(self):
        store = InMemoryDocumentStore()
        await store.create(KEY, {"phase": "awaitingBApproval"})
        with pytest.raises(PreconditionFailed):
            await store.merge_write(
                KEY,
                {"phase": "complete"},
                precondition={"phase": "awaitingAApproval"},
            )
        assert store.peek(KEY)["phase"] == "awaitingBApproval"

    @pytest.mark.asyncio
    async def test_precondition_match(self):
        store = InMemoryDocumentStore()
        await store.create(KEY, {"phase": "awaitingAApproval"})
        document = await store.merge_write(KEY, {"phase": "complete"}, precondition={"phase": "awaitingAApproval"})
        assert document["phase"] == "complete"

    @pytest.mark.asyncio
    async def test_merge_into_missing_document(self):
        with pytest.raises(WriteFailed):
            await InMemoryDocumentStore().merge_write(KEY, {"phase": "complete"})

    @pytest.mark.asyncio
    async def test_fail_next(self):
        store = InMemoryDocumentStore()
        await store.create(KEY, {"phase": "awaitingASubmission"})
        store.fail_next(1)
        with pytest.raises(WriteFailed):
            await store.merge_write(KEY, {"phase": "awaitingBApproval"})
        assert store.peek(KEY)["phase"] == "awaitingASubmission"
        await store.merge_write(KEY, {"phase": "awaitingBApproval"})
        assert store.peek(KEY)["phase"] == "awaitingBApproval"

    @pytest.mark.asyncio
    async def test_unavailable(self):
        store = InMemoryDocumentStore()
        store.available = False
        with pytest.raises(StoreUnavailable):
            await store.get(KEY)
        with pytest.raises(StoreUnavailable):
            await store.create(KEY, {})

    @pytest.mark.asyncio
    async def test_store_errors_are_recoverable(self):
        store = InMemoryDocumentStore()
        store.available = False
        with pytest.raises(StoreUnavailable) as excinfo:
            await store.get(KEY)
        assert excinfo.value.recoverable is True


class TestSubscriptions:
    """Full-document snapshots, immediately and after each write."""

    @pytest.mark.asyncio
    async def test_immediate_and_after_write(self):
        store = InMemoryDocumentStore()
        await store.create(KEY, {"phase": "awaitingASubmission"})
        seen = []
        store.subscribe(KEY, seen.append)
        await store.merge_write(KEY, {"phase": "awaitingBApproval"})

        assert [s["phase"] for s in seen] == ["awaitingASubmission", "awaitingBApproval"]

    @pytest.mark.asyncio
    async def test_missing_document_delivers_none(self):
        store = InMemoryDocumentStore()
        seen = []
        store.subscribe(KEY, seen.append)
        assert seen == [None]

    @pytest.mark.asyncio
    async def test_unsubscribe_twice_is_safe(self):
        store = InMemoryDocumentStore()
        await store.create(KEY, {})
        seen = []
        handle = store.subscribe(KEY, seen.append)
        store.unsubscribe(handle)
        store.unsubscribe(handle)
        store.unsubscribe(None)
        await store.merge_write(KEY, {"phase": "complete"})
        assert len(seen) == 1
        assert store.subscriber_count(KEY) == 0

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_break_write(self):
        store = InMemoryDocumentStore()
        await store.create(KEY, {})
        seen = []

        def broken(snapshot):
            raise RuntimeError("boom")

        store.subscribe(KEY, broken)
        store.subscribe(KEY, seen.append)
        await store.merge_write(KEY, {"phase": "complete"})
        assert seen[-1]["phase"] == "complete"


class TestSnapshotStream:
    """Async iteration over snapshots."""

    @pytest.mark.asyncio
    async def test_yields_latest_snapshot(self):
        store = InMemoryDocumentStore()
        await store.create(KEY, {"phase": "awaitingASubmission"})

        async with SnapshotStream(store, KEY) as stream:
            first = await stream.__anext__()
            assert first["phase"] == "awaitingASubmission"

            await store.merge_write(KEY, {"phase": "awaitingBApproval"})
            await store.merge_write(KEY, {"phase": "awaitingBSubmission"})
            latest = await stream.__anext__()
            # intermediate phase skipped
            assert latest["phase"] == "awaitingBSubmission"

        assert store.subscriber_count(KEY) == 0

    @pytest.mark.asyncio
    async def test_close_ends_iteration(self):
        store = InMemoryDocumentStore()
        await store.create(KEY, {"phase": "complete"})
        stream = SnapshotStream(store, KEY).open()
        assert stream.is_open

        async def consume():
            return [snapshot async for snapshot in stream]

        task = asyncio.ensure_future(consume())
        for _ in range(3):
            await asyncio.sleep(0)
        stream.close()
        snapshots = await asyncio.wait_for(task, timeout=1)
        assert [s["phase"] for s in snapshots] == ["complete"]
        assert not stream.is_open


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
