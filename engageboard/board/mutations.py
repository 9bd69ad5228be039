"""Mutation Protocol — save profile, engage, react, submit.

Each operation is a short read-then-conditionally-write sequence against the
store, validated against the *local* replica. There is no cross-operation
transaction and no optimistic concurrency check:

    engage   (a) open link → (b) overwrite link.engagements → (c) stamp profile
    submit   (a) create link → (b) stamp profile.last_submission_timestamp

Both two-phase operations retry each phase up to ``retries`` times. Every
retried write is idempotent: the new link id is reserved before the first
attempt and the engagement list is computed once. A later phase failing after
an earlier one succeeded is logged as partial completion and left as-is.

Operations raise ``BoardError`` subclasses and return the success message;
LinkBoard turns both into notices.
"""

from __future__ import annotations

import asyncio
import webbrowser
from collections.abc import Awaitable, Callable
from datetime import timedelta

import structlog

from engageboard.board.errors import GateError, PrecursorError, RemoteFailure, ValidationError
from engageboard.board.gate import (
    COOLDOWN,
    FRESHNESS,
    GateRefusal,
    refusal_message,
    submission_block_reason,
)
from engageboard.board.paths import BoardPaths
from engageboard.board.state import BoardState
from engageboard.models.link import Engagement
from engageboard.models.profile import Profile
from engageboard.tools.document_store import SERVER_TIMESTAMP, DocumentStore, StoreError
from engageboard.utils.clock import Clock, now_utc

logger = structlog.get_logger().bind(component="board.mutations")

LinkOpener = Callable[[str], object]

NOT_READY = "App not ready. Please wait."
PROFILE_REQUIRED = "Please sign in or complete your profile first."


def open_in_browser(url: str) -> bool:
    """Default viewing context: a new browser tab."""
    return webbrowser.open_new_tab(url)


class MutationProtocol:
    """The four state-changing board operations.

    Args:
        store:      Remote document store.
        state:      Local replica (read for validation, profile set optimistically).
        paths:      Path scheme for the app.
        clock:      Client clock — engagement entries and gate checks.
        opener:     Opens an engaged link for the user.
        retries:    Attempts per write phase (>= 1).
        retry_delay: Seconds between attempts.
        cooldown / freshness: Gate windows.
    """

    def __init__(
        self,
        store: DocumentStore,
        state: BoardState,
        paths: BoardPaths,
        *,
        clock: Clock = now_utc,
        opener: LinkOpener = open_in_browser,
        retries: int = 2,
        retry_delay: float = 0.2,
        cooldown: timedelta = COOLDOWN,
        freshness: timedelta = FRESHNESS,
    ) -> None:
        self._store = store
        self._state = state
        self._paths = paths
        self._clock = clock
        self._opener = opener
        self._retries = max(1, retries)
        self._retry_delay = retry_delay
        self._cooldown = cooldown
        self._freshness = freshness

    # ── save profile ──────────────────────────────────────────────────────

    async def save_profile(self, name: str, handle: str) -> str:
        """Onboard (or re-onboard) the current user.

        The first save also initialises both gate timestamps to null; later
        saves only touch ``name`` / ``handle`` / ``user_id``.
        """
        name, handle = (name or "").strip(), (handle or "").strip()
        if not name or not handle:
            raise ValidationError("Please enter both your name and handle.")
        user_id = self._require_user()
        path = self._paths.profile(user_id)

        try:
            existing = await self._store.get(path)
            fields: dict = {"name": name, "handle": handle, "user_id": user_id}
            if not existing.exists:
                fields["last_submission_timestamp"] = None
                fields["last_engagement_timestamp"] = None
            await self._store.set(path, fields, merge=True)
        except StoreError as exc:
            logger.warning("save_profile_failed", user_id=user_id, error=str(exc))
            raise RemoteFailure("Failed to save your information. Please try again.") from exc

        # Optimistic, ahead of the profile push
        previous = existing.data or {}
        self._state.replace_profile(Profile.from_document(user_id, {**previous, **fields}))
        logger.info("profile_saved", user_id=user_id, first_save=not existing.exists)
        return "Profile saved successfully!"

    # ── engage ────────────────────────────────────────────────────────────

    async def engage(self, link_id: str, url: str | None = None, *, open_link: bool = True) -> str:
        """Record an engagement with *link_id* on the link and the profile.

        The link is opened first unless *open_link* is False.
        """
        user_id = self._require_profile()
        link = self._state.find_link(link_id)
        target = url or (link.url if link else "")
        link_path = self._paths.link(link_id)
        profile_path = self._paths.profile(user_id)

        opened = bool(open_link and target)
        if opened:
            self._opener(target)

        # Local read → remote overwrite; concurrent engagers can lose an append
        engagements = [e.to_document() for e in (link.engagements if link else [])]
        engagements.append(Engagement(user_id=user_id, timestamp=self._clock()).to_document())

        try:
            await self._write("engage.link", lambda: self._store.update(
                link_path, {"engagements": engagements}
            ))
        except StoreError as exc:
            raise RemoteFailure("Failed to record engagement. Please try again.") from exc

        try:
            await self._write("engage.profile", lambda: self._store.update(
                profile_path, {"last_engagement_timestamp": SERVER_TIMESTAMP}
            ))
        except StoreError as exc:
            logger.warning(
                "engage_partial",
                link_id=link_id,
                user_id=user_id,
                completed="engage.link",
                failed="engage.profile",
                error=str(exc),
            )
            raise RemoteFailure("Failed to record engagement. Please try again.") from exc

        logger.info("link_engaged", link_id=link_id, user_id=user_id)
        if opened:
            return "Engagement recorded! The link opened in a new tab."
        return "Engagement recorded!"

    # ── react ─────────────────────────────────────────────────────────────

    async def react(self, link_id: str, reaction: str) -> str:
        """Set the current user's reaction on *link_id* (last write wins)."""
        user_id = self._require_profile()
        link = self._state.find_link(link_id)
        if link is None or not link.has_engaged(user_id):
            raise PrecursorError("You must engage with the link before reacting to it.")

        reactions = {**link.reactions, user_id: reaction}
        try:
            await self._store.update(self._paths.link(link_id), {"reactions": reactions})
        except StoreError as exc:
            logger.warning("react_failed", link_id=link_id, error=str(exc))
            raise RemoteFailure("Failed to record reaction. Please try again.") from exc

        logger.info("link_reacted", link_id=link_id, user_id=user_id, reaction=reaction)
        return f"You reacted with {reaction}!"

    # ── submit ────────────────────────────────────────────────────────────

    async def submit(self, url: str) -> str:
        """Create a link for the current user if the gate allows it right now."""
        url = (url or "").strip()
        if not url:
            raise ValidationError("Please enter a link URL.")
        if self._state.user_id is None or self._state.profile is None:
            raise GateError(NOT_READY, GateRefusal.ONBOARDING_REQUIRED.value)

        profile = self._state.profile
        reason = submission_block_reason(
            profile,
            len(self._state.links),
            self._clock(),
            cooldown=self._cooldown,
            freshness=self._freshness,
        )
        if reason is not None:
            self._state.close_compose()
            raise GateError(
                refusal_message(reason, cooldown=self._cooldown, freshness=self._freshness),
                reason.value,
            )

        user_id = self._state.user_id
        link_id = self._store.new_id(self._paths.links)
        link_doc = {
            "url": url,
            "submitter_id": user_id,
            "submitter_name": profile.name,
            "submitter_handle": profile.handle,
            "created_at": SERVER_TIMESTAMP,
            "reactions": {},
            "engagements": [],
        }

        try:
            await self._write("submit.link", lambda: self._store.set(
                self._paths.link(link_id), link_doc
            ))
        except StoreError as exc:
            raise RemoteFailure("Failed to submit link. Please try again.") from exc

        try:
            await self._write("submit.profile", lambda: self._store.update(
                self._paths.profile(user_id), {"last_submission_timestamp": SERVER_TIMESTAMP}
            ))
        except StoreError as exc:
            logger.warning(
                "submit_partial",
                link_id=link_id,
                user_id=user_id,
                completed="submit.link",
                failed="submit.profile",
                error=str(exc),
            )
            raise RemoteFailure("Failed to submit link. Please try again.") from exc

        self._state.close_compose(clear_draft=True)
        logger.info("link_submitted", link_id=link_id, user_id=user_id, url=url)
        return "Link submitted successfully!"

    # ── Helpers ───────────────────────────────────────────────────────────

    def _require_user(self) -> str:
        if self._state.user_id is None:
            raise RemoteFailure(NOT_READY)
        return self._state.user_id

    def _require_profile(self) -> str:
        if self._state.user_id is None or self._state.profile is None:
            raise GateError(PROFILE_REQUIRED, GateRefusal.ONBOARDING_REQUIRED.value)
        return self._state.user_id

    async def _write(self, step: str, write: Callable[[], Awaitable[None]]) -> None:
        """Run one idempotent write phase with bounded retries."""
        for attempt in range(1, self._retries + 1):
            try:
                await write()
                return
            except StoreError as exc:
                logger.warning("write_attempt_failed", step=step, attempt=attempt, error=str(exc))
                if attempt == self._retries:
                    raise
                if self._retry_delay > 0:
                    await asyncio.sleep(self._retry_delay)
