"""Tests for the in-memory document store and its transactions."""

import pytest

from billbook.services.storage import (
    InMemoryDocumentStore,
    NotFoundError,
    StorageError,
    TransactionConflictError,
)


class TestPointOperations:
    """Tests for direct get/set/update/delete/query."""

    async def test_set_get_returns_copies(self, store):
        await store.set("things", "t1", {"name": "cup", "tags": ["a"]})
        doc = await store.get("things", "t1")
        doc.data["tags"].append("b")
        assert (await store.get("things", "t1")).data == {"name": "cup", "tags": ["a"]}

    async def test_update_merges_and_requires_document(self, store):
        await store.set("things", "t1", {"name": "cup", "qty": 1})
        await store.update("things", "t1", {"qty": 2})
        assert (await store.get("things", "t1")).data == {"name": "cup", "qty": 2}

        with pytest.raises(NotFoundError):
            await store.update("things", "missing", {"qty": 2})

    async def test_delete(self, store):
        await store.set("things", "t1", {})
        assert await store.delete("things", "t1") is True
        assert await store.delete("things", "t1") is False

    async def test_query_nested_field(self, store):
        await store.set("invoices", "i1", {"owner_id": "o", "client": {"id": "c1"}})
        await store.set("invoices", "i2", {"owner_id": "o", "client": {"id": "c2"}})
        found = await store.query("invoices", {"owner_id": "o", "client.id": "c2"})
        assert [doc.id for doc in found] == ["i2"]


class TestTransactions:
    """Tests for optimistic transactions."""

    async def test_writes_are_atomic(self, store):
        async def _fn(tx):
            tx.set("things", "a", {"n": 1})
            tx.set("things", "b", {"n": 2})
            raise RuntimeError("abort")

        with pytest.raises(RuntimeError):
            await store.run_transaction(_fn)
        assert await store.get("things", "a") is None
        assert store.commit_count == 0

    async def test_reads_must_precede_writes(self, store):
        async def _fn(tx):
            tx.set("things", "a", {"n": 1})
            await tx.get("things", "b")

        with pytest.raises(StorageError, match="reads to be executed before all writes"):
            await store.run_transaction(_fn)

    async def test_conflicting_write_reruns_function(self, store):
        """A concurrent change to a read document forces a retry on fresh data."""
        await store.set("counters", "c", {"value": 1})
        attempts = []

        async def _increment(tx):
            doc = await tx.get("counters", "c")
            attempts.append(doc.data["value"])
            if len(attempts) == 1:
                # Another writer commits between our read and our commit
                await store.set("counters", "c", {"value": 10})
            tx.set("counters", "c", {"value": doc.data["value"] + 1})
            return doc.data["value"] + 1

        result = await store.run_transaction(_increment)

        assert attempts == [1, 10]
        assert result == 11
        assert (await store.get("counters", "c")).data == {"value": 11}
        assert store.conflict_count == 1

    async def test_query_result_change_conflicts(self, store):
        """A document appearing in a queried set is a conflict too."""
        attempts = []

        async def _count(tx):
            found = await tx.query("things", {"kind": "x"})
            attempts.append(len(found))
            if len(attempts) == 1:
                await store.set("things", "new", {"kind": "x"})
            tx.set("summary", "s", {"count": len(found)})

        await store.run_transaction(_count)

        assert attempts == [0, 1]
        assert (await store.get("summary", "s")).data == {"count": 1}

    async def test_gives_up_after_max_attempts(self):
        store = InMemoryDocumentStore(max_attempts=3)
        await store.set("counters", "c", {"value": 0})

        async def _always_conflicts(tx):
            doc = await tx.get("counters", "c")
            await store.set("counters", "c", {"value": doc.data["value"] + 1})
            tx.set("counters", "c", {"value": -1})

        with pytest.raises(TransactionConflictError):
            await store.run_transaction(_always_conflicts)
        assert store.conflict_count == 3
        assert (await store.get("counters", "c")).data == {"value": 3}

    async def test_transactional_update_of_missing_document(self, store):
        async def _fn(tx):
            tx.update("things", "missing", {"n": 1})

        with pytest.raises(NotFoundError):
            await store.run_transaction(_fn)

    async def test_deleted_read_document_conflicts(self, store):
        await store.set("things", "a", {"n": 1})
        attempts = []

        async def _fn(tx):
            doc = await tx.get("things", "a")
            attempts.append(doc is not None)
            if len(attempts) == 1:
                await store.delete("things", "a")
            return doc

        assert await store.run_transaction(_fn) is None
        assert attempts == [True, False]
