"""Integration-test conftest — skip guards and real-infra fixtures.

Integration tests require:
    ENGAGEBOARD_TEST_INTEGRATION=1   (set in shell before running)
    Redis reachable at settings.redis_url (default localhost:6379/0)

Run with:
    ENGAGEBOARD_TEST_INTEGRATION=1 pytest tests/integration/ -v
"""

from __future__ import annotations

import os
import uuid

import pytest
import pytest_asyncio

from engageboard.tools.redis_store import RedisDocumentStore

pytestmark = pytest.mark.skipif(
    not os.getenv("ENGAGEBOARD_TEST_INTEGRATION"),
    reason="Set ENGAGEBOARD_TEST_INTEGRATION=1 to run integration tests",
)


@pytest.fixture
def namespace():
    """A throwaway key prefix per test."""
    return f"engageboard-test-{uuid.uuid4().hex[:8]}"


@pytest_asyncio.fixture
async def redis_stores(namespace):
    """Factory for RedisDocumentStores sharing one namespace; all closed and wiped after."""
    import redis.asyncio as aioredis

    from engageboard.config import settings

    opened: list[RedisDocumentStore] = []

    def factory() -> RedisDocumentStore:
        store = RedisDocumentStore(namespace=namespace)
        opened.append(store)
        return store

    yield factory

    for store in opened:
        await store.close()
    client = aioredis.from_url(settings.redis_url, decode_responses=True)
    keys = [key async for key in client.scan_iter(f"{namespace}:*")]
    if keys:
        await client.delete(*keys)
    await client.aclose()
