"""Profile — one per user, holds the submission/engagement cooldown stamps.

Stored at ``artifacts/{app_id}/users/{user_id}/profile/data``.
A missing document means the user still needs onboarding.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel


class Profile(BaseModel):
    """Display identity plus gate timestamps."""

    user_id: str
    name: str = ""
    handle: str = ""
    last_submission_timestamp: datetime | None = None
    """Set only by a successful submission."""

    last_engagement_timestamp: datetime | None = None
    """Set only by a successful engagement."""

    @classmethod
    def from_document(cls, user_id: str, data: dict[str, Any]) -> "Profile":
        """Construct from a raw store document (fields may be missing)."""
        return cls(
            user_id=data.get("user_id") or user_id,
            name=data.get("name") or "",
            handle=data.get("handle") or "",
            last_submission_timestamp=data.get("last_submission_timestamp"),
            last_engagement_timestamp=data.get("last_engagement_timestamp"),
        )
