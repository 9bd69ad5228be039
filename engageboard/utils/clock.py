"""Wall-clock helpers — single source of truth for 'now'.

The board only ever compares elapsed durations, so every instant is a
timezone-aware UTC datetime. Services take a ``clock`` callable defaulting to
``now_utc`` so tests can pin time without patching.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]

# Sort key for documents that have no timestamp yet
EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


def now_utc() -> datetime:
    """Return the current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def format_timestamp(value: datetime | None) -> str:
    """Local, human-readable rendering: '2026-02-23 14:05:09'. 'N/A' when missing."""
    if value is None:
        return "N/A"
    return as_utc(value).astimezone().strftime("%Y-%m-%d %H:%M:%S")
