"""BoardState — the explicit application-state handle.

Holds the ephemeral local replica (current user, their Profile, every Link),
the compose surface and the notice board. The sync layer replaces the replica
wholesale on each push; mutations read from it. Presentation code registers
listeners to re-render after every change.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog

from engageboard.models.link import Link
from engageboard.models.notice import Notice, NoticeKind
from engageboard.models.profile import Profile
from engageboard.utils.clock import Clock, now_utc

logger = structlog.get_logger().bind(component="board.state")

StateListener = Callable[["BoardState"], None]


class NoticeBoard:
    """Single current notice, replaced by each new one, gone after ``ttl_seconds``."""

    def __init__(self, clock: Clock = now_utc, ttl_seconds: float = 3.0) -> None:
        self._clock = clock
        self._ttl = ttl_seconds
        self._current: Notice | None = None

    def post(self, message: str, kind: NoticeKind) -> Notice:
        notice = Notice(
            message=message,
            kind=kind,
            posted_at=self._clock(),
            ttl_seconds=self._ttl,
        )
        self._current = notice
        return notice

    def success(self, message: str) -> Notice:
        return self.post(message, NoticeKind.SUCCESS)

    def error(self, message: str) -> Notice:
        return self.post(message, NoticeKind.ERROR)

    @property
    def current(self) -> Notice | None:
        if self._current is not None and self._current.expired(self._clock()):
            self._current = None
        return self._current

    def clear(self) -> None:
        self._current = None


class BoardState:
    """Local replica + UI-facing flags for one signed-in user."""

    def __init__(self, notices: NoticeBoard | None = None) -> None:
        self.user_id: str | None = None
        self.profile: Profile | None = None
        self.links: list[Link] = []
        self.draft_url: str = ""
        self.composing: bool = False
        self.notices = notices or NoticeBoard()
        self._listeners: list[StateListener] = []

    # ── Derived ───────────────────────────────────────────────────────────

    @property
    def onboarded(self) -> bool:
        return self.profile is not None

    def find_link(self, link_id: str) -> Link | None:
        return next((link for link in self.links if link.id == link_id), None)

    # ── Replacement ───────────────────────────────────────────────────────

    def set_user(self, user_id: str | None) -> None:
        """Switch identity — drops everything cached for the previous user."""
        if user_id != self.user_id:
            self.profile = None
            self.links = []
        self.user_id = user_id
        self._changed()

    def replace_profile(self, profile: Profile | None) -> None:
        self.profile = profile
        self._changed()

    def replace_links(self, links: list[Link]) -> None:
        self.links = links
        self._changed()

    # ── Compose surface ───────────────────────────────────────────────────

    def open_compose(self) -> None:
        self.composing = True
        self._changed()

    def close_compose(self, *, clear_draft: bool = False) -> None:
        self.composing = False
        if clear_draft:
            self.draft_url = ""
        self._changed()

    # ── Listeners ─────────────────────────────────────────────────────────

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _changed(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as exc:
                # Listener errors never reach the sync layer
                logger.warning("state_listener_failed", error=str(exc))
