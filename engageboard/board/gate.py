"""Gate Engine — may this user submit a new link right now?

Pure functions of (profile, number of links on the board, now). Rules, in order:

    1. no profile                                   → ONBOARDING_REQUIRED
    2. now - last_submission < cooldown             → COOLDOWN_ACTIVE
    3. board not empty:
         a. never engaged                           → ENGAGEMENT_REQUIRED
         b. now - last_engagement >= freshness      → ENGAGEMENT_STALE
    4. allowed

An empty board skips rule 3: the very first submitter needs no engagement.
The two windows are independent; only elapsed durations are compared.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum

from engageboard.models.profile import Profile
from engageboard.utils.clock import as_utc

COOLDOWN = timedelta(hours=24)
FRESHNESS = timedelta(hours=24)


class GateRefusal(str, Enum):
    ONBOARDING_REQUIRED = "onboarding_required"
    COOLDOWN_ACTIVE = "cooldown_active"
    ENGAGEMENT_REQUIRED = "engagement_required"
    ENGAGEMENT_STALE = "engagement_stale"


REFUSAL_MESSAGES: dict[GateRefusal, str] = {
    GateRefusal.ONBOARDING_REQUIRED: "Please complete your profile first.",
    GateRefusal.COOLDOWN_ACTIVE: "You can only submit one link every {cooldown} hours.",
    GateRefusal.ENGAGEMENT_REQUIRED: (
        "You must engage with another link before submitting your first one."
    ),
    GateRefusal.ENGAGEMENT_STALE: (
        "You must engage with another link within the last {freshness} hours "
        "before submitting a new one."
    ),
}


def submission_block_reason(
    profile: Profile | None,
    link_count: int,
    now: datetime,
    *,
    cooldown: timedelta = COOLDOWN,
    freshness: timedelta = FRESHNESS,
) -> GateRefusal | None:
    """Return why a submission is refused, or None when it is allowed."""
    if profile is None:
        return GateRefusal.ONBOARDING_REQUIRED

    now = as_utc(now)
    if profile.last_submission_timestamp is not None:
        if now - as_utc(profile.last_submission_timestamp) < cooldown:
            return GateRefusal.COOLDOWN_ACTIVE

    if link_count > 0:
        if profile.last_engagement_timestamp is None:
            return GateRefusal.ENGAGEMENT_REQUIRED
        if now - as_utc(profile.last_engagement_timestamp) >= freshness:
            return GateRefusal.ENGAGEMENT_STALE

    return None


def can_submit(
    profile: Profile | None,
    link_count: int,
    now: datetime,
    *,
    cooldown: timedelta = COOLDOWN,
    freshness: timedelta = FRESHNESS,
) -> bool:
    return submission_block_reason(
        profile, link_count, now, cooldown=cooldown, freshness=freshness
    ) is None


def refusal_message(
    reason: GateRefusal,
    *,
    cooldown: timedelta = COOLDOWN,
    freshness: timedelta = FRESHNESS,
) -> str:
    """User-facing explanation, with the configured window lengths filled in."""
    return REFUSAL_MESSAGES[reason].format(
        cooldown=_hours(cooldown), freshness=_hours(freshness)
    )


def _hours(window: timedelta) -> str:
    return f"{window.total_seconds() / 3600:g}"
