"""Realtime Sync Layer — keeps BoardState consistent with store pushes.

Two subscriptions per signed-in user:
    profile document  → replace ``state.profile`` (None when the doc is absent)
    link collection   → replace ``state.links`` and re-sort, newest first

Latest snapshot wins: every push replaces the cached value wholesale and the
link list is fully re-sorted (missing ``created_at`` sorts last).

A document that does not parse is logged and left out of the replica.
A channel error posts a transient notice and keeps whatever was cached.
Nothing is resubscribed here; ``start`` must be called again.
"""

from __future__ import annotations

import asyncio

import structlog

from engageboard.board.paths import BoardPaths
from engageboard.board.state import BoardState
from engageboard.models.link import Link
from engageboard.models.profile import Profile
from engageboard.tools.document_store import DocumentSnapshot, DocumentStore, Subscription

logger = structlog.get_logger().bind(component="board.sync")

PROFILE_ERROR = "Failed to load user profile."
LINKS_ERROR = "Failed to load links."


def sort_links(links: list[Link]) -> list[Link]:
    """Newest first. Links without a timestamp sort as the zero instant."""
    return sorted(links, key=lambda link: link.sort_key, reverse=True)


class BoardSync:
    """Owns the two subscriptions of the current user.

    Args:
        store: Remote document store.
        state: Local replica to keep up to date.
        paths: Path scheme for the app.
    """

    def __init__(self, store: DocumentStore, state: BoardState, paths: BoardPaths) -> None:
        self._store = store
        self._state = state
        self._paths = paths
        self._user_id: str | None = None
        self._subscriptions: list[Subscription] = []
        self._profile_ready = asyncio.Event()
        self._links_ready = asyncio.Event()

    @property
    def active(self) -> bool:
        return bool(self._subscriptions)

    @property
    def user_id(self) -> str | None:
        return self._user_id

    def start(self, user_id: str) -> None:
        """Subscribe for *user_id*. Re-subscribes if a different user was active."""
        if self.active and user_id == self._user_id:
            return
        self.stop()
        self._user_id = user_id
        self._profile_ready.clear()
        self._links_ready.clear()
        profile_path = self._paths.profile(user_id)
        self._subscriptions = [
            self._store.watch_document(profile_path, self._on_profile, self._on_profile_error),
            self._store.watch_collection(self._paths.links, self._on_links, self._on_links_error),
        ]
        logger.info("sync_started", user_id=user_id)

    def stop(self) -> None:
        """Tear down both subscriptions (identity lost, user switched, shutdown)."""
        if not self._subscriptions:
            return
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
        logger.info("sync_stopped", user_id=self._user_id)
        self._user_id = None

    async def wait_ready(self, timeout: float | None = None) -> bool:
        """Wait until the first profile and link snapshots have arrived."""
        try:
            await asyncio.wait_for(
                asyncio.gather(self._profile_ready.wait(), self._links_ready.wait()),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("sync_not_ready", timeout=timeout)
            return False
        return True

    # ── Push handlers ─────────────────────────────────────────────────────

    def _on_profile(self, snapshot: DocumentSnapshot) -> None:
        if self._user_id is None or snapshot.path != self._paths.profile(self._user_id):
            return
        if not snapshot.exists:
            self._state.replace_profile(None)
        else:
            try:
                self._state.replace_profile(Profile.from_document(self._user_id, snapshot.data))
            except (TypeError, ValueError) as exc:
                # Keep the cached profile
                logger.warning("sync_profile_invalid", path=snapshot.path, error=str(exc))
        self._profile_ready.set()
        logger.debug("sync_profile_pushed", exists=snapshot.exists)

    def _on_links(self, snapshots: list[DocumentSnapshot]) -> None:
        if self._user_id is None:
            return
        links: list[Link] = []
        for snapshot in snapshots:
            if not snapshot.exists:
                continue
            try:
                links.append(Link.from_document(snapshot.id, snapshot.data))
            except (TypeError, ValueError) as exc:
                logger.warning("sync_link_invalid", link_id=snapshot.id, error=str(exc))
        self._state.replace_links(sort_links(links))
        self._links_ready.set()
        logger.debug("sync_links_pushed", count=len(links))

    def _on_profile_error(self, exc: Exception) -> None:
        logger.error("sync_profile_error", error=str(exc))
        self._state.notices.error(PROFILE_ERROR)
        self._profile_ready.set()

    def _on_links_error(self, exc: Exception) -> None:
        logger.error("sync_links_error", error=str(exc))
        self._state.notices.error(LINKS_ERROR)
        self._links_ready.set()
