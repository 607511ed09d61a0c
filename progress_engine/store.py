"""Document store — the persistence contract the engine relies on.

Every engine component receives a store matching the DocumentStore protocol.
The store holds schemaless documents addressed by (collection, doc_id) and
offers four primitives:

    get(collection, doc_id)   point read → Snapshot
    batch()                   blind atomic writes (no read): set / update,
                              with Increment and DELETE_FIELD sentinels
    run_transaction(fn)       optimistic read-compute-write over any number
                              of documents; fn is re-run on conflict
    subscribe(...)            full-document snapshot on every committed change

Field updates use dotted paths ("pets.fox.progress.house"). Updating a
missing document creates it; incrementing a missing field starts from 0.

Two implementations are provided:

    MemoryStore    — in-process dict of documents. Reads yield to the event
                     loop so concurrent tasks genuinely interleave and
                     transactions really conflict.
    JsonFileStore  — MemoryStore semantics, with each committed document
                     written to {base}/{collection}/{doc_id}.json and loaded
                     lazily on first access.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Literal, Protocol, TypeVar

from pydantic_core import to_jsonable_python

logger = logging.getLogger(__name__)

T = TypeVar("T")
DocKey = tuple[str, str]


# ---------------------------------------------------------------------------
# Sentinels and snapshots
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Increment:
    """Add `amount` to a numeric field at commit time, without a prior read."""

    amount: int


class _DeleteField:
    def __repr__(self) -> str:
        return "DELETE_FIELD"

    def __copy__(self) -> _DeleteField:
        return self

    def __deepcopy__(self, memo: dict) -> _DeleteField:
        return self


DELETE_FIELD = _DeleteField()


@dataclass
class Snapshot:
    """A point-in-time copy of one document.

    `version` starts at 0 for a document that has never been written and
    increases by one on every committed change.
    """

    collection: str
    doc_id: str
    data: dict[str, Any] | None
    version: int = 0

    @property
    def exists(self) -> bool:
        return self.data is not None

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self.data) if self.data is not None else {}


SnapshotCallback = Callable[[Snapshot], None]


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

class Writer(Protocol):
    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None: ...

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None: ...


class WriteBatch(Writer, Protocol):
    async def commit(self) -> None: ...


class Transaction(Writer, Protocol):
    async def get(self, collection: str, doc_id: str) -> Snapshot: ...


class DocumentStore(Protocol):
    async def get(self, collection: str, doc_id: str) -> Snapshot: ...

    def batch(self) -> WriteBatch: ...

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T: ...

    def subscribe(
        self, collection: str, doc_id: str, callback: SnapshotCallback
    ) -> Callable[[], None]: ...


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class StoreError(RuntimeError):
    """Raised when a read or write cannot be completed."""


class TransactionConflict(StoreError):
    """Raised when a transaction keeps conflicting after every retry."""


class _Conflict(Exception):
    pass


# ---------------------------------------------------------------------------
# Write buffering shared by batches and transactions
# ---------------------------------------------------------------------------

@dataclass
class _Write:
    kind: Literal["set", "update"]
    collection: str
    doc_id: str
    payload: dict[str, Any]


@dataclass
class _WriteBuffer:
    writes: list[_Write] = field(default_factory=list)

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Replace the whole document."""
        self.writes.append(_Write("set", collection, doc_id, copy.deepcopy(data)))

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Merge dotted field paths into the document, creating it if needed."""
        if not fields:
            return
        self.writes.append(_Write("update", collection, doc_id, copy.deepcopy(fields)))


class _Batch(_WriteBuffer):
    def __init__(self, store: MemoryStore) -> None:
        super().__init__()
        self._store = store

    async def commit(self) -> None:
        await asyncio.sleep(0)
        self._store._commit(self.writes, {})


class _Transaction(_WriteBuffer):
    def __init__(self, store: MemoryStore) -> None:
        super().__init__()
        self._store = store
        self.read_versions: dict[DocKey, int] = {}

    async def get(self, collection: str, doc_id: str) -> Snapshot:
        if self.writes:
            raise StoreError("Transaction reads must happen before any write")
        snap = await self._store.get(collection, doc_id)
        self.read_versions.setdefault((collection, doc_id), snap.version)
        return snap


# ---------------------------------------------------------------------------
# MemoryStore
# ---------------------------------------------------------------------------

class MemoryStore:
    """In-process document store with optimistic transactions.

    Args:
        max_attempts: How many times run_transaction() runs its function
                      before giving up with TransactionConflict. Defaults to 5.
    """

    def __init__(self, max_attempts: int = 5) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self._docs: dict[DocKey, dict[str, Any]] = {}
        self._versions: dict[DocKey, int] = {}
        self._subscribers: dict[DocKey, list[SnapshotCallback]] = {}

    # -- reads ------------------------------------------------------------

    async def get(self, collection: str, doc_id: str) -> Snapshot:
        await asyncio.sleep(0)
        return self._snapshot((collection, doc_id))

    def _snapshot(self, key: DocKey) -> Snapshot:
        data = self._current(key)
        return Snapshot(
            collection=key[0], doc_id=key[1],
            data=copy.deepcopy(data) if data is not None else None,
            version=self._version(key),
        )

    def _current(self, key: DocKey) -> dict[str, Any] | None:
        self._ensure_loaded(key)
        return self._docs.get(key)

    def _version(self, key: DocKey) -> int:
        self._ensure_loaded(key)
        return self._versions.get(key, 0)

    def _ensure_loaded(self, key: DocKey) -> None:
        """Hook for backends that load documents lazily."""

    def _persist(self, key: DocKey, doc: dict[str, Any]) -> None:
        """Hook for backends that write committed documents somewhere."""

    # -- writes -----------------------------------------------------------

    def batch(self) -> _Batch:
        return _Batch(self)

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        for attempt in range(1, self.max_attempts + 1):
            txn = _Transaction(self)
            result = await fn(txn)
            try:
                self._commit(txn.writes, txn.read_versions)
            except _Conflict as e:
                logger.debug(
                    "transaction conflict on %s (attempt %d/%d)",
                    e, attempt, self.max_attempts,
                )
                await asyncio.sleep(0)
                continue
            return result
        raise TransactionConflict(
            f"Transaction gave up after {self.max_attempts} conflicting attempts"
        )

    def _commit(self, writes: list[_Write], read_versions: dict[DocKey, int]) -> None:
        """Apply all writes or none. Runs without awaiting, so it is atomic
        with respect to every other task on the event loop."""
        for key, version in read_versions.items():
            if self._version(key) != version:
                raise _Conflict(f"{key[0]}/{key[1]}")

        staged: dict[DocKey, dict[str, Any]] = {}
        for w in writes:
            key = (w.collection, w.doc_id)
            if w.kind == "set":
                staged[key] = copy.deepcopy(w.payload)
                continue
            if key not in staged:
                current = self._current(key)
                staged[key] = copy.deepcopy(current) if current is not None else {}
            _apply_update(staged[key], w.payload)

        for key, doc in staged.items():
            self._persist(key, doc)
        for key, doc in staged.items():
            self._docs[key] = doc
            self._versions[key] = self._version(key) + 1

        for key in staged:
            self._notify(key)

    # -- subscriptions ----------------------------------------------------

    def subscribe(
        self, collection: str, doc_id: str, callback: SnapshotCallback
    ) -> Callable[[], None]:
        key = (collection, doc_id)
        self._subscribers.setdefault(key, []).append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(key, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def _notify(self, key: DocKey) -> None:
        callbacks = list(self._subscribers.get(key, []))
        if not callbacks:
            return
        for callback in callbacks:
            try:
                callback(self._snapshot(key))
            except Exception:
                logger.exception("Subscriber for %s/%s failed", key[0], key[1])


def _apply_update(doc: dict[str, Any], fields: dict[str, Any]) -> None:
    for path, value in fields.items():
        parts = path.split(".")
        node = doc
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        leaf = parts[-1]
        if value is DELETE_FIELD:
            node.pop(leaf, None)
        elif isinstance(value, Increment):
            current = node.get(leaf, 0)
            if current is None:
                current = 0
            if isinstance(current, bool) or not isinstance(current, (int, float)):
                raise StoreError(f"Cannot increment non-numeric field {path!r}")
            node[leaf] = current + value.amount
        else:
            node[leaf] = value


# ---------------------------------------------------------------------------
# JsonFileStore
# ---------------------------------------------------------------------------

class JsonFileStore(MemoryStore):
    """MemoryStore that mirrors every committed document to a JSON file.

    Directory layout:

        {base}/
          userStates/{user_id}.json
          dailyQuests/{user_id}.json
          users/{user_id}.json

    Timestamps are written as ISO-8601 strings; the typed document models
    parse them back on read.
    """

    def __init__(self, base_path: Path, max_attempts: int = 5) -> None:
        super().__init__(max_attempts=max_attempts)
        self._base = base_path
        self._base.mkdir(parents=True, exist_ok=True)
        self._loaded: set[DocKey] = set()

    def _doc_file(self, key: DocKey) -> Path:
        return self._base / key[0] / f"{key[1]}.json"

    def _ensure_loaded(self, key: DocKey) -> None:
        """A file that cannot be parsed stays unloaded and keeps raising, so it
        is never mistaken for an absent document and overwritten."""
        if key in self._loaded:
            return
        path = self._doc_file(key)
        if path.is_file():
            try:
                doc = json.loads(path.read_text())
            except (OSError, json.JSONDecodeError) as e:
                raise StoreError(f"Corrupt document file {path}") from e
            if not isinstance(doc, dict):
                raise StoreError(f"Corrupt document file {path}: not an object")
            self._docs[key] = doc
            self._versions[key] = 1
        self._loaded.add(key)

    def _persist(self, key: DocKey, doc: dict[str, Any]) -> None:
        path = self._doc_file(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            path.write_text(json.dumps(to_jsonable_python(doc), indent=2))
        except OSError as e:
            raise StoreError(f"Cannot write {path}: {e}") from e
        self._loaded.add(key)
