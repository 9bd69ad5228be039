"""LinkBoard — the narrow service a presentation layer talks to.

Wires identity → sync → mutations around one explicit BoardState:

    connect()                   identity bootstrap + subscriptions
    save_profile / engage / react / submit   → Notice
    can_submit() / submission_block_reason() → gate query on the local cache
    close()                     tear everything down

Every operation goes through ``_perform``: board errors and unexpected
exceptions become an error notice, nothing escapes to the caller.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import timedelta

import structlog

from engageboard.board.errors import BoardError
from engageboard.board.gate import (
    COOLDOWN,
    FRESHNESS,
    GateRefusal,
    can_submit,
    refusal_message,
    submission_block_reason,
)
from engageboard.board.mutations import LinkOpener, MutationProtocol, open_in_browser
from engageboard.board.paths import BoardPaths
from engageboard.board.state import BoardState, NoticeBoard
from engageboard.board.sync import BoardSync
from engageboard.models.notice import Notice
from engageboard.models.profile import Profile
from engageboard.tools.document_store import DocumentStore
from engageboard.tools.identity import IdentityProvider
from engageboard.utils.clock import Clock, now_utc

logger = structlog.get_logger().bind(component="board.service")

INIT_FAILED = "Failed to initialize the app. Please try again later."
UNEXPECTED = "Something went wrong. Please try again."


class LinkBoard:
    """One signed-in user's view of the board.

    Args:
        store:    Remote document store.
        identity: Identity provider.
        app_id:   Namespace of every document path.
        auth_token: Pre-issued sign-in token; anonymous sign-in when empty.
        clock:    Client clock (gate checks, engagement stamps, notice expiry).
        opener:   Opens engaged links.
        notice_seconds / retries / retry_delay / cooldown / freshness: tuning.
    """

    def __init__(
        self,
        store: DocumentStore,
        identity: IdentityProvider,
        *,
        app_id: str = "default-app-id",
        auth_token: str = "",
        clock: Clock = now_utc,
        opener: LinkOpener = open_in_browser,
        notice_seconds: float = 3.0,
        retries: int = 2,
        retry_delay: float = 0.2,
        cooldown: timedelta = COOLDOWN,
        freshness: timedelta = FRESHNESS,
    ) -> None:
        self._store = store
        self._identity = identity
        self._auth_token = auth_token
        self._clock = clock
        self._cooldown = cooldown
        self._freshness = freshness
        self.paths = BoardPaths(app_id)
        self.state = BoardState(NoticeBoard(clock, notice_seconds))
        self.sync = BoardSync(store, self.state, self.paths)
        self.mutations = MutationProtocol(
            store,
            self.state,
            self.paths,
            clock=clock,
            opener=opener,
            retries=retries,
            retry_delay=retry_delay,
            cooldown=cooldown,
            freshness=freshness,
        )
        self._unsubscribe_identity: Callable[[], None] | None = None

    @classmethod
    def from_settings(cls, store: DocumentStore, identity: IdentityProvider, **overrides) -> "LinkBoard":
        """Build with every tunable taken from ``engageboard.config.settings``."""
        from engageboard.config import settings

        kwargs = dict(
            app_id=settings.app_id,
            auth_token=settings.initial_auth_token,
            notice_seconds=settings.notice_seconds,
            retries=settings.write_retries,
            retry_delay=settings.retry_delay_seconds,
            cooldown=timedelta(hours=settings.cooldown_hours),
            freshness=timedelta(hours=settings.freshness_hours),
        )
        kwargs.update(overrides)
        return cls(store, identity, **kwargs)

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def connect(self) -> bool:
        """Listen for identity changes and bootstrap the current user.

        Returns False (with an error notice posted) if bootstrap fails.
        """
        try:
            if self._unsubscribe_identity is None:
                self._unsubscribe_identity = self._identity.on_user_changed(self._on_user_changed)
            await self._on_user_changed(self._identity.current_user_id)
            return True
        except Exception as exc:
            logger.error("board_init_failed", error=str(exc), exc_info=True)
            self.state.notices.error(INIT_FAILED)
            return False

    async def wait_ready(self, timeout: float | None = 10.0) -> bool:
        return await self.sync.wait_ready(timeout)

    async def close(self) -> None:
        if self._unsubscribe_identity is not None:
            self._unsubscribe_identity()
            self._unsubscribe_identity = None
        self.sync.stop()
        await self._store.close()

    async def _on_user_changed(self, user_id: str | None) -> None:
        if user_id is None:
            self.sync.stop()
            self.state.set_user(None)
            if self._auth_token:
                logger.info("requesting_token_sign_in")
                await self._identity.sign_in_with_token(self._auth_token)
            else:
                logger.info("requesting_anonymous_sign_in")
                await self._identity.sign_in_anonymously()
            return

        if user_id == self.state.user_id and self.sync.active:
            return
        self.sync.stop()
        self.state.set_user(user_id)

        snapshot = await self._store.get(self.paths.profile(user_id))
        if snapshot.exists:
            self.state.replace_profile(Profile.from_document(user_id, snapshot.data))
            logger.info("profile_found", user_id=user_id)
        else:
            logger.info("profile_missing", user_id=user_id)
        self.sync.start(user_id)

    # ── Queries ───────────────────────────────────────────────────────────

    @property
    def user_id(self) -> str | None:
        return self.state.user_id

    @property
    def onboarded(self) -> bool:
        return self.state.onboarded

    @property
    def notice(self) -> Notice | None:
        return self.state.notices.current

    def submission_block_reason(self) -> GateRefusal | None:
        return submission_block_reason(
            self.state.profile,
            len(self.state.links),
            self._clock(),
            cooldown=self._cooldown,
            freshness=self._freshness,
        )

    def can_submit(self) -> bool:
        return can_submit(
            self.state.profile,
            len(self.state.links),
            self._clock(),
            cooldown=self._cooldown,
            freshness=self._freshness,
        )

    def explain_block(self) -> str | None:
        reason = self.submission_block_reason()
        if reason is None:
            return None
        return refusal_message(reason, cooldown=self._cooldown, freshness=self._freshness)

    # ── Intents ───────────────────────────────────────────────────────────

    async def save_profile(self, name: str, handle: str) -> Notice:
        return await self._perform("save_profile", lambda: self.mutations.save_profile(name, handle))

    async def engage(self, link_id: str, url: str | None = None, *, open_link: bool = True) -> Notice:
        return await self._perform(
            "engage", lambda: self.mutations.engage(link_id, url, open_link=open_link)
        )

    async def react(self, link_id: str, reaction: str) -> Notice:
        return await self._perform("react", lambda: self.mutations.react(link_id, reaction))

    async def submit(self, url: str | None = None) -> Notice:
        """Submit *url*, or the compose draft when *url* is None."""
        target = self.state.draft_url if url is None else url
        return await self._perform("submit", lambda: self.mutations.submit(target))

    def open_compose(self, draft_url: str = "") -> None:
        self.state.draft_url = draft_url
        self.state.open_compose()

    def close_compose(self) -> None:
        self.state.close_compose()

    async def _perform(self, operation: str, run: Callable[[], Awaitable[str]]) -> Notice:
        try:
            message = await run()
        except BoardError as exc:
            logger.info("intent_refused", operation=operation, error_type=type(exc).__name__, reason=exc.message)
            return self.state.notices.error(exc.message)
        except Exception as exc:
            logger.error("intent_failed", operation=operation, error=str(exc), exc_info=True)
            return self.state.notices.error(UNEXPECTED)
        return self.state.notices.success(message)
