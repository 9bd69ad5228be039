"""Unit tests for BoardSync — replace-on-push, ordering, teardown, channel errors."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from engageboard.board.paths import BoardPaths
from engageboard.board.state import BoardState
from engageboard.board.sync import LINKS_ERROR, PROFILE_ERROR, BoardSync, sort_links
from engageboard.models.link import Link
from engageboard.tools.document_store import StoreError, Subscription

PATHS = BoardPaths("test-app")
BASE = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _at(seconds: int) -> datetime:
    return BASE + timedelta(seconds=seconds)


# ─────────────────────────────────────────────────────────────────────────────
# 1. sort_links
# ─────────────────────────────────────────────────────────────────────────────

def test_sort_links_newest_first_missing_last():
    links = [
        Link(id="ten", url="u", created_at=_at(10)),
        Link(id="none", url="u", created_at=None),
        Link(id="thirty", url="u", created_at=_at(30)),
        Link(id="twenty", url="u", created_at=_at(20)),
    ]
    assert [l.id for l in sort_links(links)] == ["thirty", "twenty", "ten", "none"]


# ─────────────────────────────────────────────────────────────────────────────
# 2. Pushes replace state
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_link_pushes_are_resorted_wholesale(store):
    state = BoardState()
    state.set_user("u1")
    sync = BoardSync(store, state, PATHS)
    sync.start("u1")
    assert await sync.wait_ready(timeout=1)
    assert state.links == []

    for doc_id, seconds in (("a", 10), ("b", 30), ("c", 20)):
        await store.set(PATHS.link(doc_id), {"url": f"http://x/{doc_id}", "created_at": _at(seconds)})
    assert [l.id for l in state.links] == ["b", "c", "a"]

    await store.set(PATHS.link("d"), {"url": "http://x/d"})
    assert [l.id for l in state.links] == ["b", "c", "a", "d"]


@pytest.mark.asyncio
async def test_profile_push_sets_and_clears_onboarding(store):
    state = BoardState()
    state.set_user("u1")
    sync = BoardSync(store, state, PATHS)
    sync.start("u1")
    assert state.profile is None and not state.onboarded

    await store.set(PATHS.profile("u1"), {"name": "Ann", "handle": "@ann", "user_id": "u1"})
    assert state.onboarded
    assert state.profile.name == "Ann"

    await store.update(PATHS.profile("u1"), {"name": "Annie"})
    assert state.profile.name == "Annie"
    assert state.profile.handle == "@ann"


@pytest.mark.asyncio
async def test_other_users_profiles_are_ignored(store):
    state = BoardState()
    state.set_user("u1")
    BoardSync(store, state, PATHS).start("u1")
    await store.set(PATHS.profile("u2"), {"name": "Bob", "handle": "@bob"})
    assert state.profile is None


# ─────────────────────────────────────────────────────────────────────────────
# 3. Lifecycle
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_stop_unsubscribes_and_ignores_later_writes(store):
    state = BoardState()
    state.set_user("u1")
    sync = BoardSync(store, state, PATHS)
    sync.start("u1")
    assert store.listener_count == 2

    sync.stop()
    assert store.listener_count == 0
    assert not sync.active

    await store.set(PATHS.link("late"), {"url": "http://late"})
    assert state.links == []


@pytest.mark.asyncio
async def test_start_is_idempotent_and_switches_users(store):
    state = BoardState()
    sync = BoardSync(store, state, PATHS)
    state.set_user("u1")
    sync.start("u1")
    sync.start("u1")
    assert store.listener_count == 2

    await store.set(PATHS.profile("u2"), {"name": "Bob", "handle": "@bob"})
    state.set_user("u2")
    sync.start("u2")
    assert store.listener_count == 2
    assert sync.user_id == "u2"
    assert state.profile.name == "Bob"


@pytest.mark.asyncio
async def test_wait_ready_times_out_without_subscriptions(store):
    sync = BoardSync(store, BoardState(), PATHS)
    assert await sync.wait_ready(timeout=0.01) is False


# ─────────────────────────────────────────────────────────────────────────────
# 4. Channel errors
# ─────────────────────────────────────────────────────────────────────────────

class _BrokenChannelStore:
    """Delivers one snapshot, then reports a channel error on every watch."""

    def __init__(self, inner) -> None:
        self.inner = inner

    def watch_document(self, path, on_snapshot, on_error=None):
        on_snapshot(self.inner._snapshot(path))
        on_error(StoreError("profile channel down"))
        return Subscription(path, lambda: None)

    def watch_collection(self, path, on_snapshot, on_error=None):
        on_snapshot(self.inner._collection(path))
        on_error(StoreError("links channel down"))
        return Subscription(path, lambda: None)


@pytest.mark.asyncio
async def test_channel_error_posts_notice_and_keeps_cache(store):
    await store.set(PATHS.link("keep"), {"url": "http://keep", "created_at": _at(1)})
    state = BoardState()
    state.set_user("u1")
    sync = BoardSync(_BrokenChannelStore(store), state, PATHS)
    sync.start("u1")

    assert [l.id for l in state.links] == ["keep"]
    assert state.notices.current is not None
    assert state.notices.current.message in (PROFILE_ERROR, LINKS_ERROR)
    assert not state.notices.current.ok
    assert await sync.wait_ready(timeout=0.1)


# ─────────────────────────────────────────────────────────────────────────────
# 5. Malformed documents
# ─────────────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_malformed_link_is_skipped_and_feed_keeps_running(store):
    state = BoardState()
    state.set_user("u1")
    BoardSync(store, state, PATHS).start("u1")
    await store.set(PATHS.link("good"), {"url": "http://good", "created_at": _at(1)})

    # The writer's own call must not fail because a reader cannot parse it
    await store.set(PATHS.link("bad"), {"url": 123, "created_at": _at(2)})
    await store.set(PATHS.link("odd"), {"url": "http://odd", "engagements": [{"user_id": ["x"]}]})
    assert [l.id for l in state.links] == ["good"]

    await store.set(PATHS.link("later"), {"url": "http://later", "created_at": _at(3)})
    assert [l.id for l in state.links] == ["later", "good"]


@pytest.mark.asyncio
async def test_malformed_profile_keeps_cached_profile(store):
    state = BoardState()
    state.set_user("u1")
    sync = BoardSync(store, state, PATHS)
    sync.start("u1")
    await store.set(PATHS.profile("u1"), {"name": "Ann", "handle": "@ann"})

    await store.update(PATHS.profile("u1"), {"name": {"first": "Ann"}})
    assert state.profile.name == "Ann"
    assert await sync.wait_ready(timeout=0.1)
