"""Identity provider — supplies the stable opaque ``user_id`` the board consumes.

Contract:
    on_user_changed(callback)  → register; returns an unsubscribe callable
    current_user_id            → the signed-in id or None
    sign_in_anonymously()      → notify listeners with a (persisted) anonymous id
    sign_in_with_token(token)  → notify listeners with the id bound to the token
    sign_out()                 → notify listeners with None

Listeners are coroutines and are awaited in registration order.

LocalIdentityProvider persists the anonymous id to ``settings.identity_file``
so the same user comes back across CLI invocations. A pre-issued token maps
deterministically to an id, so every holder of the token is the same user.
"""

from __future__ import annotations

import hashlib
import uuid
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Protocol, runtime_checkable

import structlog

logger = structlog.get_logger().bind(component="identity")

UserChangedCallback = Callable[[str | None], Awaitable[None]]


@runtime_checkable
class IdentityProvider(Protocol):
    @property
    def current_user_id(self) -> str | None: ...

    def on_user_changed(self, callback: UserChangedCallback) -> Callable[[], None]: ...

    async def sign_in_anonymously(self) -> None: ...

    async def sign_in_with_token(self, token: str) -> None: ...

    async def sign_out(self) -> None: ...


def user_id_for_token(token: str) -> str:
    """Stable id derived from a pre-issued token (never the token itself)."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:28]


class LocalIdentityProvider:
    """File-backed identity provider.

    Args:
        identity_file: Where the anonymous id is kept. None → in-memory only.
    """

    def __init__(self, identity_file: Path | None = None) -> None:
        self._identity_file = identity_file
        self._user_id: str | None = None
        self._listeners: list[UserChangedCallback] = []

    @property
    def current_user_id(self) -> str | None:
        return self._user_id

    def on_user_changed(self, callback: UserChangedCallback) -> Callable[[], None]:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    async def sign_in_anonymously(self) -> None:
        user_id = self._load_anonymous_id()
        if user_id is None:
            user_id = uuid.uuid4().hex[:28]
            self._save_anonymous_id(user_id)
        logger.info("signed_in_anonymously", user_id=user_id)
        await self._set_user(user_id)

    async def sign_in_with_token(self, token: str) -> None:
        if not token:
            raise ValueError("Empty sign-in token")
        user_id = user_id_for_token(token)
        logger.info("signed_in_with_token", user_id=user_id)
        await self._set_user(user_id)

    async def sign_out(self) -> None:
        logger.info("signed_out", user_id=self._user_id)
        await self._set_user(None)

    # ── Internals ─────────────────────────────────────────────────────────

    async def _set_user(self, user_id: str | None) -> None:
        if user_id == self._user_id:
            return
        self._user_id = user_id
        for callback in list(self._listeners):
            await callback(user_id)

    def _load_anonymous_id(self) -> str | None:
        if self._identity_file is None or not self._identity_file.exists():
            return None
        value = self._identity_file.read_text(encoding="utf-8").strip()
        return value or None

    def _save_anonymous_id(self, user_id: str) -> None:
        if self._identity_file is None:
            return
        self._identity_file.parent.mkdir(parents=True, exist_ok=True)
        self._identity_file.write_text(user_id + "\n", encoding="utf-8")
