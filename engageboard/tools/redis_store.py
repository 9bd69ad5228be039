"""RedisDocumentStore — the remote document store backed by Redis.

Key scheme (``ns`` = settings.redis_namespace):
    {ns}:doc:{path}           HASH  — one JSON-encoded value per document field
    {ns}:index:{collection}   SET   — ids of the documents in a collection
    {ns}:changes:{path}       pub/sub channel, published after every write to
                              the document *and* to its parent collection

Each write is a single MULTI/EXEC pipeline, so every individual field update
is atomic. Reads that informed a write are not protected (no WATCH) — the
board accepts blind overwrites.

Server timestamps come from the Redis ``TIME`` command.

Subscriptions read on a second connection that has no socket timeout, so a
quiet channel stays open. Each one is an asyncio task: subscribe to the
channel, push the full current state once, then re-read and push on every
notification. A failing channel reports through ``on_error`` once and the
task ends; there is no automatic resubscription.

Every client exception is re-raised as ``StoreError``.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

import structlog

from engageboard.tools.document_store import (
    CollectionCallback,
    DocumentSnapshot,
    ErrorCallback,
    MonotonicStamp,
    SnapshotCallback,
    StoreError,
    Subscription,
    generate_id,
    parent_collection,
    resolve_server_timestamps,
)

logger = structlog.get_logger().bind(component="redis_store")

# Marker field so an otherwise empty document still exists as a HASH
_EXISTS_FIELD = "__doc__"

# JSON tag for datetimes
_TS_TAG = "$ts"


# ── Field codec ──────────────────────────────────────────────────────────────


def _encode_default(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return {_TS_TAG: value.isoformat()}
    raise TypeError(f"Unsupported document value: {type(value).__name__}")


def _decode_hook(obj: dict[str, Any]) -> Any:
    if len(obj) == 1 and _TS_TAG in obj:
        return datetime.fromisoformat(obj[_TS_TAG])
    return obj


def encode_fields(data: dict[str, Any]) -> dict[str, str]:
    """Document dict → HASH mapping (field → JSON)."""
    encoded = {k: json.dumps(v, default=_encode_default, ensure_ascii=False) for k, v in data.items()}
    encoded[_EXISTS_FIELD] = "1"
    return encoded


def decode_fields(raw: dict[str, str]) -> dict[str, Any]:
    """HASH mapping → document dict."""
    return {
        k: json.loads(v, object_hook=_decode_hook)
        for k, v in raw.items()
        if k != _EXISTS_FIELD
    }


class RedisDocumentStore:
    """DocumentStore over redis.asyncio.

    Args:
        redis_url:  Redis connection string (defaults to settings).
        namespace:  Key prefix (defaults to settings).
        timeout:    Socket timeout in seconds (defaults to settings).
        _redis:     Pre-built ``redis.asyncio.Redis`` (inject for tests).
        _subscriber: Pre-built client for pub/sub reads (defaults to ``_redis``
                    when that is injected).
    """

    def __init__(
        self,
        redis_url: str | None = None,
        namespace: str | None = None,
        *,
        timeout: float | None = None,
        _redis=None,
        _subscriber=None,
    ) -> None:
        from engageboard.config import settings

        self._redis_url = redis_url or settings.redis_url
        self._namespace = namespace or settings.redis_namespace
        self._timeout = timeout if timeout is not None else settings.redis_timeout_seconds
        self._redis_client = _redis      # injected or None → lazy
        self._subscriber_client = _subscriber if _subscriber is not None else _redis
        self._stamp = MonotonicStamp()
        self._tasks: set[asyncio.Task] = set()

    # ── Connection ────────────────────────────────────────────────────────

    async def _redis(self):
        """Return a live redis.asyncio.Redis connection (cached)."""
        if self._redis_client is None:
            try:
                import redis.asyncio as aioredis  # type: ignore
                self._redis_client = aioredis.from_url(
                    self._redis_url,
                    decode_responses=True,
                    socket_timeout=self._timeout,
                )
                logger.info("redis_store_connected", url=self._redis_url)
            except Exception as exc:
                logger.warning("redis_store_connect_failed", error=str(exc))
                raise StoreError(f"Cannot connect to {self._redis_url}: {exc}") from exc
        return self._redis_client

    async def _subscriber(self):
        """Return the pub/sub connection (cached).

        Idle channels are normal, so reads here block without a socket timeout;
        only connecting is bounded by ``timeout``.
        """
        if self._subscriber_client is None:
            try:
                import redis.asyncio as aioredis  # type: ignore
                self._subscriber_client = aioredis.from_url(
                    self._redis_url,
                    decode_responses=True,
                    socket_timeout=None,
                    socket_connect_timeout=self._timeout,
                )
            except Exception as exc:
                logger.warning("redis_store_subscriber_connect_failed", error=str(exc))
                raise StoreError(f"Cannot connect to {self._redis_url}: {exc}") from exc
        return self._subscriber_client

    # ── Keys ──────────────────────────────────────────────────────────────

    def _doc_key(self, path: str) -> str:
        return f"{self._namespace}:doc:{path}"

    def _index_key(self, collection_path: str) -> str:
        return f"{self._namespace}:index:{collection_path}"

    def _channel(self, path: str) -> str:
        return f"{self._namespace}:changes:{path}"

    async def _server_time(self, r) -> datetime:
        seconds, micros = await r.time()
        instant = datetime.fromtimestamp(int(seconds) + int(micros) / 1_000_000, tz=timezone.utc)
        return self._stamp.next(instant)

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get(self, path: str) -> DocumentSnapshot:
        r = await self._redis()
        try:
            raw = await r.hgetall(self._doc_key(path))
        except Exception as exc:
            logger.warning("redis_store_get_failed", path=path, error=str(exc))
            raise StoreError(f"Read failed for {path}: {exc}") from exc
        return DocumentSnapshot(path, decode_fields(raw) if raw else None)

    async def list(self, collection_path: str) -> list[DocumentSnapshot]:
        r = await self._redis()
        try:
            ids = sorted(await r.smembers(self._index_key(collection_path)))
            if not ids:
                return []
            async with r.pipeline(transaction=False) as pipe:
                for doc_id in ids:
                    pipe.hgetall(self._doc_key(f"{collection_path}/{doc_id}"))
                rows = await pipe.execute()
        except Exception as exc:
            logger.warning("redis_store_list_failed", collection=collection_path, error=str(exc))
            raise StoreError(f"Listing failed for {collection_path}: {exc}") from exc
        return [
            DocumentSnapshot(f"{collection_path}/{doc_id}", decode_fields(raw))
            for doc_id, raw in zip(ids, rows)
            if raw
        ]

    # ── Writes ────────────────────────────────────────────────────────────

    async def set(self, path: str, data: dict[str, Any], *, merge: bool = False) -> None:
        collection = parent_collection(path)
        r = await self._redis()
        try:
            resolved = resolve_server_timestamps(data, await self._server_time(r))
            key = self._doc_key(path)
            async with r.pipeline(transaction=True) as pipe:
                if not merge:
                    pipe.delete(key)
                pipe.hset(key, mapping=encode_fields(resolved))
                pipe.sadd(self._index_key(collection), path.rsplit("/", 1)[-1])
                pipe.publish(self._channel(path), path)
                pipe.publish(self._channel(collection), path)
                await pipe.execute()
        except Exception as exc:
            logger.warning("redis_store_set_failed", path=path, error=str(exc))
            raise StoreError(f"Write failed for {path}: {exc}") from exc
        logger.debug("redis_store_set", path=path, merge=merge, fields=sorted(data))

    async def update(self, path: str, fields: dict[str, Any]) -> None:
        collection = parent_collection(path)
        r = await self._redis()
        key = self._doc_key(path)
        try:
            exists = await r.exists(key)
        except Exception as exc:
            logger.warning("redis_store_update_failed", path=path, error=str(exc))
            raise StoreError(f"Update failed for {path}: {exc}") from exc
        if not exists:
            raise StoreError(f"No document to update: {path}")
        try:
            resolved = resolve_server_timestamps(fields, await self._server_time(r))
            async with r.pipeline(transaction=True) as pipe:
                pipe.hset(key, mapping=encode_fields(resolved))
                pipe.publish(self._channel(path), path)
                pipe.publish(self._channel(collection), path)
                await pipe.execute()
        except Exception as exc:
            logger.warning("redis_store_update_failed", path=path, error=str(exc))
            raise StoreError(f"Update failed for {path}: {exc}") from exc
        logger.debug("redis_store_update", path=path, fields=sorted(fields))

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
        return self._watch(path, lambda: self.get(path), on_snapshot, on_error)

    def watch_collection(
        self,
        collection_path: str,
        on_snapshot: CollectionCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        return self._watch(
            collection_path, lambda: self.list(collection_path), on_snapshot, on_error
        )

    def _watch(
        self,
        path: str,
        fetch: Callable[[], Awaitable[Any]],
        deliver: Callable[[Any], None],
        on_error: ErrorCallback | None,
    ) -> Subscription:
        task = asyncio.get_running_loop().create_task(
            self._listen(self._channel(path), fetch, deliver, on_error)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return Subscription(path, task.cancel)

    async def _listen(
        self,
        channel: str,
        fetch: Callable[[], Awaitable[Any]],
        deliver: Callable[[Any], None],
        on_error: ErrorCallback | None,
    ) -> None:
        """Push loop for one subscription. Ends on cancel or first channel error."""
        try:
            subscriber = await self._subscriber()
            pubsub = subscriber.pubsub()
            await pubsub.subscribe(channel)
            try:
                deliver(await fetch())
                async for message in pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    deliver(await fetch())
            finally:
                await pubsub.unsubscribe(channel)
                await pubsub.aclose()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("redis_store_watch_failed", channel=channel, error=str(exc))
            if on_error is not None:
                on_error(exc if isinstance(exc, StoreError) else StoreError(str(exc)))

    @property
    def listener_count(self) -> int:
        return len(self._tasks)

    async def close(self) -> None:
        """Cancel all listener tasks and close both Redis connections."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        clients = [self._redis_client, self._subscriber_client]
        self._redis_client = self._subscriber_client = None
        for client in {id(c): c for c in clients if c is not None}.values():
            try:
                await client.aclose()
            except Exception as exc:
                logger.debug("redis_store_close_failed", error=str(exc))
