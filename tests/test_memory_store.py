"""Tests for progress_engine.store — MemoryStore semantics."""

import asyncio

import pytest

from progress_engine.store import (
    DELETE_FIELD,
    Increment,
    MemoryStore,
    StoreError,
    TransactionConflict,
)


# ── Reads and batches ────────────────────────────────────


class TestBatch:
    async def test_missing_document(self, store: MemoryStore) -> None:
        snap = await store.get("docs", "a")
        assert not snap.exists
        assert snap.version == 0
        assert snap.to_dict() == {}

    async def test_set_then_get(self, store: MemoryStore) -> None:
        batch = store.batch()
        batch.set("docs", "a", {"x": 1})
        await batch.commit()
        snap = await store.get("docs", "a")
        assert snap.data == {"x": 1}
        assert snap.version == 1

    async def test_update_creates_document(self, store: MemoryStore) -> None:
        batch = store.batch()
        batch.update("docs", "a", {"pets.fox.progress.house": 2})
        await batch.commit()
        assert (await store.get("docs", "a")).data == {"pets": {"fox": {"progress": {"house": 2}}}}

    async def test_increment_missing_and_existing(self, store: MemoryStore) -> None:
        batch = store.batch()
        batch.update("docs", "a", {"n": Increment(3), "m": 1})
        batch.update("docs", "a", {"n": Increment(4), "m": Increment(1)})
        await batch.commit()
        assert (await store.get("docs", "a")).data == {"n": 7, "m": 2}

    async def test_increment_none_starts_at_zero(self, store: MemoryStore) -> None:
        batch = store.batch()
        batch.set("docs", "a", {"n": None})
        batch.update("docs", "a", {"n": Increment(2)})
        await batch.commit()
        assert (await store.get("docs", "a")).data == {"n": 2}

    async def test_increment_non_numeric_fails_whole_batch(self, store: MemoryStore) -> None:
        batch = store.batch()
        batch.set("docs", "a", {"n": "text"})
        await batch.commit()

        batch = store.batch()
        batch.set("docs", "b", {"x": 1})
        batch.update("docs", "a", {"n": Increment(1)})
        with pytest.raises(StoreError):
            await batch.commit()
        assert not (await store.get("docs", "b")).exists

    async def test_delete_field(self, store: MemoryStore) -> None:
        batch = store.batch()
        batch.set("docs", "a", {"p": {"house": 5, "friend": 0}})
        batch.update("docs", "a", {"p.house": DELETE_FIELD, "gone": DELETE_FIELD})
        await batch.commit()
        assert (await store.get("docs", "a")).data == {"p": {"friend": 0}}

    async def test_snapshot_is_a_copy(self, store: MemoryStore) -> None:
        batch = store.batch()
        batch.set("docs", "a", {"p": {"x": 1}})
        await batch.commit()
        snap = await store.get("docs", "a")
        snap.data["p"]["x"] = 99
        assert (await store.get("docs", "a")).data == {"p": {"x": 1}}

    async def test_concurrent_increments_all_land(self, store: MemoryStore) -> None:
        async def bump(n: int) -> None:
            batch = store.batch()
            batch.update("docs", "a", {"n": Increment(n)})
            await batch.commit()

        await asyncio.gather(*(bump(i) for i in range(1, 21)))
        assert (await store.get("docs", "a")).data == {"n": 210}


# ── Transactions ────────────────────────────────────


class TestTransactions:
    async def test_returns_function_result(self, store: MemoryStore) -> None:
        async def fn(txn):
            snap = await txn.get("docs", "a")
            txn.set("docs", "a", {"seen": snap.exists})
            return "done"

        assert await store.run_transaction(fn) == "done"
        assert (await store.get("docs", "a")).data == {"seen": False}

    async def test_read_after_write_rejected(self, store: MemoryStore) -> None:
        async def fn(txn):
            txn.set("docs", "a", {})
            await txn.get("docs", "b")

        with pytest.raises(StoreError):
            await store.run_transaction(fn)

    async def test_conflict_reruns_function(self, store: MemoryStore) -> None:
        calls = 0

        async def fn(txn):
            nonlocal calls
            calls += 1
            snap = await txn.get("docs", "a")
            if calls == 1:
                # Another writer sneaks in between read and commit
                batch = store.batch()
                batch.set("docs", "a", {"n": 100})
                await batch.commit()
            txn.set("docs", "a", {"n": snap.to_dict().get("n", 0) + 1})

        await store.run_transaction(fn)
        assert calls == 2
        assert (await store.get("docs", "a")).data == {"n": 101}

    async def test_gives_up_after_max_attempts(self) -> None:
        store = MemoryStore(max_attempts=3)
        calls = 0

        async def fn(txn):
            nonlocal calls
            calls += 1
            await txn.get("docs", "a")
            batch = store.batch()
            batch.update("docs", "a", {"n": Increment(1)})
            await batch.commit()
            txn.update("docs", "a", {"m": 1})

        with pytest.raises(TransactionConflict):
            await store.run_transaction(fn)
        assert calls == 3
        assert "m" not in (await store.get("docs", "a")).data

    async def test_concurrent_read_modify_write_is_serialised(self, store: MemoryStore) -> None:
        async def add_one(txn):
            snap = await txn.get("docs", "a")
            txn.set("docs", "a", {"n": snap.to_dict().get("n", 0) + 1})

        await asyncio.gather(*(store.run_transaction(add_one) for _ in range(4)))
        assert (await store.get("docs", "a")).data == {"n": 4}

    def test_max_attempts_must_be_positive(self) -> None:
        with pytest.raises(ValueError):
            MemoryStore(max_attempts=0)


# ── Subscriptions ────────────────────────────────────


class TestSubscriptions:
    async def test_receives_full_document_with_version(self, store: MemoryStore) -> None:
        seen = []
        store.subscribe("docs", "a", seen.append)
        batch = store.batch()
        batch.update("docs", "a", {"n": Increment(1)})
        await batch.commit()
        batch = store.batch()
        batch.update("docs", "a", {"m": 2})
        await batch.commit()
        assert [(s.version, s.data) for s in seen] == [(1, {"n": 1}), (2, {"n": 1, "m": 2})]

    async def test_other_documents_not_delivered(self, store: MemoryStore) -> None:
        seen = []
        store.subscribe("docs", "a", seen.append)
        batch = store.batch()
        batch.set("docs", "b", {})
        await batch.commit()
        assert seen == []

    async def test_unsubscribe(self, store: MemoryStore) -> None:
        seen = []
        unsubscribe = store.subscribe("docs", "a", seen.append)
        unsubscribe()
        unsubscribe()
        batch = store.batch()
        batch.set("docs", "a", {})
        await batch.commit()
        assert seen == []

    async def test_failing_subscriber_does_not_break_commit(self, store: MemoryStore) -> None:
        seen = []

        def boom(_snap):
            raise RuntimeError("subscriber bug")

        store.subscribe("docs", "a", boom)
        store.subscribe("docs", "a", seen.append)
        batch = store.batch()
        batch.set("docs", "a", {"x": 1})
        await batch.commit()
        assert len(seen) == 1
        assert (await store.get("docs", "a")).data == {"x": 1}
