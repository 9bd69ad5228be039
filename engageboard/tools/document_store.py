"""Document store contract + in-process implementation.

The board treats its store as a remote, multi-writer key-document service:

    get(path)                        → point read
    set(path, data, merge=...)       → full or merge write
    update(path, fields)             → field overwrite, fails if doc is absent
    new_id / add(collection, data)   → store-assigned document ids
    watch_document / watch_collection → push the full current state on change

Paths alternate collection/document segments, Firestore style:
``artifacts/{app}/users/{uid}/profile/data`` is a document,
``artifacts/{app}/public/data/links`` is a collection.

``SERVER_TIMESTAMP`` may appear anywhere in written data (top level, inside
lists or maps); the store replaces it with its own instant at write time.

Implementations raise ``StoreError`` and nothing else.
"""

from __future__ import annotations

import copy
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Protocol, runtime_checkable

import structlog

from engageboard.utils.clock import Clock, now_utc

logger = structlog.get_logger().bind(component="document_store")


class StoreError(Exception):
    """A read, write or subscription was rejected at the store boundary."""


class _ServerTimestamp:
    """Write-time macro resolved by the store."""

    _instance: "_ServerTimestamp | None" = None

    def __new__(cls) -> "_ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class DocumentSnapshot:
    """State of one document at read/push time. ``data`` is None when absent."""

    path: str
    data: dict[str, Any] | None = None

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def exists(self) -> bool:
        return self.data is not None


SnapshotCallback = Callable[[DocumentSnapshot], None]
CollectionCallback = Callable[[list[DocumentSnapshot]], None]
ErrorCallback = Callable[[Exception], None]


@dataclass
class Subscription:
    """Handle returned by the watch methods. ``unsubscribe()`` is idempotent."""

    path: str
    _cancel: Callable[[], None] = field(repr=False)
    active: bool = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._cancel()


@runtime_checkable
class DocumentStore(Protocol):
    """The four store capabilities the board relies on."""

    async def get(self, path: str) -> DocumentSnapshot: ...

    async def set(self, path: str, data: dict[str, Any], *, merge: bool = False) -> None: ...

    async def update(self, path: str, fields: dict[str, Any]) -> None: ...

    def new_id(self, collection_path: str) -> str: ...

    async def add(self, collection_path: str, data: dict[str, Any]) -> str: ...

    async def list(self, collection_path: str) -> list[DocumentSnapshot]: ...

    def watch_document(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription: ...

    def watch_collection(
        self,
        collection_path: str,
        on_snapshot: CollectionCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription: ...

    async def close(self) -> None: ...


# ── Shared helpers ───────────────────────────────────────────────────────────


def parent_collection(path: str) -> str:
    """``a/b/c/d`` → ``a/b/c``."""
    if "/" not in path:
        raise StoreError(f"Not a document path: {path!r}")
    return path.rsplit("/", 1)[0]


def generate_id() -> str:
    """20-char opaque id (same length as Firestore auto ids)."""
    return uuid.uuid4().hex[:20]


def resolve_server_timestamps(value: Any, instant: datetime) -> Any:
    """Replace every SERVER_TIMESTAMP in *value* with *instant* (returns a copy)."""
    if value is SERVER_TIMESTAMP:
        return instant
    if isinstance(value, dict):
        return {k: resolve_server_timestamps(v, instant) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [resolve_server_timestamps(v, instant) for v in value]
    return value


class MonotonicStamp:
    """Hands out strictly increasing instants from a clock."""

    def __init__(self, clock: Clock = now_utc) -> None:
        self._clock = clock
        self._last: datetime | None = None

    def next(self, candidate: datetime | None = None) -> datetime:
        instant = candidate or self._clock()
        if self._last is not None and instant <= self._last:
            instant = self._last + timedelta(microseconds=1)
        self._last = instant
        return instant


# ── In-process store ─────────────────────────────────────────────────────────


class MemoryDocumentStore:
    """In-process DocumentStore.

    Pushes are delivered synchronously from inside the write call, so after
    ``await store.set(...)`` every listener already holds the new state.
    Used by tests, demos and ``store_backend=memory``.

    Args:
        clock: Source of server timestamps (inject a fixed clock in tests).
    """

    def __init__(self, clock: Clock = now_utc) -> None:
        self._docs: dict[str, dict[str, Any]] = {}
        self._stamp = MonotonicStamp(clock)
        self._doc_listeners: dict[int, tuple[str, SnapshotCallback]] = {}
        self._col_listeners: dict[int, tuple[str, CollectionCallback]] = {}
        self._next_listener = 0
        self.closed = False

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get(self, path: str) -> DocumentSnapshot:
        self._check_open()
        return self._snapshot(path)

    async def list(self, collection_path: str) -> list[DocumentSnapshot]:
        self._check_open()
        return self._collection(collection_path)

    # ── Writes ────────────────────────────────────────────────────────────

    async def set(self, path: str, data: dict[str, Any], *, merge: bool = False) -> None:
        self._check_open()
        resolved = resolve_server_timestamps(data, self._stamp.next())
        if merge and path in self._docs:
            self._docs[path] = {**self._docs[path], **resolved}
        else:
            self._docs[path] = dict(resolved)
        self._notify(path)

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        self._check_open()
        if path not in self._docs:
            raise StoreError(f"No document to update: {path}")
        resolved = resolve_server_timestamps(fields, self._stamp.next())
        self._docs[path] = {**self._docs[path], **resolved}
        self._notify(path)

    def new_id(self, collection_path: str) -> str:
        return generate_id()

    async def add(self, collection_path: str, data: dict[str, Any]) -> str:
        doc_id = self.new_id(collection_path)
        await self.set(f"{collection_path}/{doc_id}", data)
        return doc_id

    # ── Subscriptions ─────────────────────────────────────────────────────

    def watch_document(
        self,
        path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        self._check_open()
        key = self._register(self._doc_listeners, path, on_snapshot)
        on_snapshot(self._snapshot(path))
        return Subscription(path, lambda: self._doc_listeners.pop(key, None))

    def watch_collection(
        self,
        collection_path: str,
        on_snapshot: CollectionCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        self._check_open()
        key = self._register(self._col_listeners, collection_path, on_snapshot)
        on_snapshot(self._collection(collection_path))
        return Subscription(collection_path, lambda: self._col_listeners.pop(key, None))

    @property
    def listener_count(self) -> int:
        return len(self._doc_listeners) + len(self._col_listeners)

    async def close(self) -> None:
        self._doc_listeners.clear()
        self._col_listeners.clear()
        self.closed = True

    # ── Internals ─────────────────────────────────────────────────────────

    def _check_open(self) -> None:
        if self.closed:
            raise StoreError("Store is closed")

    def _register(self, table: dict, path: str, callback: Callable) -> int:
        key = self._next_listener
        self._next_listener += 1
        table[key] = (path, callback)
        return key

    def _snapshot(self, path: str) -> DocumentSnapshot:
        data = self._docs.get(path)
        return DocumentSnapshot(path, copy.deepcopy(data) if data is not None else None)

    def _collection(self, collection_path: str) -> list[DocumentSnapshot]:
        prefix = collection_path + "/"
        return [
            DocumentSnapshot(path, copy.deepcopy(data))
            for path, data in self._docs.items()
            if path.startswith(prefix) and "/" not in path[len(prefix):]
        ]

    def _notify(self, path: str) -> None:
        collection = parent_collection(path)
        for watched, callback in list(self._doc_listeners.values()):
            if watched == path:
                callback(self._snapshot(path))
        for watched, callback in list(self._col_listeners.values()):
            if watched == collection:
                callback(self._collection(collection))
