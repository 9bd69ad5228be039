"""Unit-test conftest — FakeClock, FakeIdentity, FlakyStore and board helpers.

All fixtures here are available to every test under tests/unit/ without import.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from engageboard.board.service import LinkBoard
from engageboard.tools.document_store import DocumentSnapshot, MemoryDocumentStore, StoreError

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


# ─────────────────────────────────────────────────────────────────────────────
# FakeClock — settable 'now'
# ─────────────────────────────────────────────────────────────────────────────

class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# ─────────────────────────────────────────────────────────────────────────────
# FakeIdentity — hands out a fixed user id on sign-in
# ─────────────────────────────────────────────────────────────────────────────

class FakeIdentity:
    """IdentityProvider that signs in as ``user_id``.

    Args:
        user_id:        Id assigned by either sign-in method.
        signed_in:      Start already signed in.
        token_user_id:  Id assigned by token sign-in (defaults to user_id).
    """

    def __init__(self, user_id: str, *, signed_in: bool = False, token_user_id: str | None = None) -> None:
        self._user_id = user_id
        self._token_user_id = token_user_id or user_id
        self._current: str | None = user_id if signed_in else None
        self._listeners: list = []
        self.anonymous_calls = 0
        self.token_calls: list[str] = []

    @property
    def current_user_id(self) -> str | None:
        return self._current

    def on_user_changed(self, callback):
        self._listeners.append(callback)
        return lambda: self._listeners.remove(callback) if callback in self._listeners else None

    async def sign_in_anonymously(self) -> None:
        self.anonymous_calls += 1
        await self.switch(self._user_id)

    async def sign_in_with_token(self, token: str) -> None:
        self.token_calls.append(token)
        await self.switch(self._token_user_id)

    async def sign_out(self) -> None:
        await self.switch(None)

    async def switch(self, user_id: str | None) -> None:
        self._current = user_id
        for callback in list(self._listeners):
            await callback(user_id)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


# ─────────────────────────────────────────────────────────────────────────────
# FlakyStore — MemoryDocumentStore that fails chosen calls
# ─────────────────────────────────────────────────────────────────────────────

class FlakyStore:
    """Wraps a MemoryDocumentStore; ``fail(op, path_part, times)`` arms failures.

    ``times=None`` fails forever. Every attempted call is recorded in ``calls``.
    """

    def __init__(self, inner: MemoryDocumentStore) -> None:
        self.inner = inner
        self._failures: list[list[Any]] = []
        self.calls: list[tuple[str, str]] = []

    def fail(self, op: str, path_part: str = "", times: int | None = None) -> None:
        self._failures.append([op, path_part, times])

    def _maybe_fail(self, op: str, path: str) -> None:
        self.calls.append((op, path))
        for failure in self._failures:
            f_op, part, times = failure
            if f_op == op and part in path and (times is None or times > 0):
                if times is not None:
                    failure[2] = times - 1
                raise StoreError(f"injected {op} failure on {path}")

    async def get(self, path: str) -> DocumentSnapshot:
        self._maybe_fail("get", path)
        return await self.inner.get(path)

    async def set(self, path: str, data: dict, *, merge: bool = False) -> None:
        self._maybe_fail("set", path)
        await self.inner.set(path, data, merge=merge)

    async def update(self, path: str, fields: dict) -> None:
        self._maybe_fail("update", path)
        await self.inner.update(path, fields)

    async def list(self, collection_path: str) -> list[DocumentSnapshot]:
        self._maybe_fail("list", collection_path)
        return await self.inner.list(collection_path)

    def count(self, op: str, path_part: str = "") -> int:
        return sum(1 for o, p in self.calls if o == op and path_part in p)

    def __getattr__(self, name: str):
        return getattr(self.inner, name)


# ─────────────────────────────────────────────────────────────────────────────
# Fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def clock():
    """A FakeClock pinned at T0."""
    return FakeClock()


@pytest.fixture
def store(clock):
    """A fresh in-process store whose server timestamps follow the fake clock."""
    return MemoryDocumentStore(clock=clock)


@pytest.fixture
def flaky(store):
    """The same store wrapped for failure injection."""
    return FlakyStore(store)


@pytest.fixture
def identity_cls():
    return FakeIdentity


@pytest.fixture
def boards(store, clock):
    """Factory for connected LinkBoards sharing one store.

    ``await boards("ann")`` → connected + onboarded as Ann (@ann).
    Options: onboard=False, name=, handle=, store=, identity=, plus any
    LinkBoard keyword. Opened URLs are recorded on ``board.opened``.
    """

    async def factory(
        user_id: str,
        *,
        onboard: bool = True,
        name: str = "",
        handle: str = "",
        store=store,
        identity=None,
        **kwargs,
    ) -> LinkBoard:
        opened: list[str] = []
        kwargs.setdefault("opener", opened.append)
        kwargs.setdefault("retry_delay", 0.0)
        kwargs.setdefault("clock", clock)
        board = LinkBoard(store, identity or FakeIdentity(user_id), **kwargs)
        board.opened = opened  # type: ignore[attr-defined]
        assert await board.connect()
        if onboard:
            notice = await board.save_profile(name or user_id.title(), handle or f"@{user_id}")
            assert notice.ok, notice.message
        return board

    return factory
