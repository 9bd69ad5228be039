"""Link and Engagement — one Link document per submitted URL.

Stored in the ``artifacts/{app_id}/public/data/links`` collection.

The submitter fields are a copy of the submitter's Profile taken at submission
time; they are not kept in sync with later profile edits. ``engagements`` may
hold several entries for the same user.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from engageboard.utils.clock import EPOCH, as_utc


class Engagement(BaseModel):
    """A recorded instance of a user opening a link."""

    user_id: str
    timestamp: datetime | None = None

    def to_document(self) -> dict[str, Any]:
        return {"user_id": self.user_id, "timestamp": self.timestamp}


class Link(BaseModel):
    """A submitted link with its engagement log and reaction map."""

    id: str
    url: str
    submitter_id: str = ""
    submitter_name: str = ""
    submitter_handle: str = ""
    created_at: datetime | None = None
    engagements: list[Engagement] = Field(default_factory=list)
    reactions: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_document(cls, link_id: str, data: dict[str, Any]) -> "Link":
        """Construct from a raw store document (fields may be missing)."""
        return cls(
            id=link_id,
            url=data.get("url") or "",
            submitter_id=data.get("submitter_id") or "",
            submitter_name=data.get("submitter_name") or "",
            submitter_handle=data.get("submitter_handle") or "",
            created_at=data.get("created_at"),
            engagements=[
                Engagement(user_id=e.get("user_id", ""), timestamp=e.get("timestamp"))
                for e in data.get("engagements") or []
                if isinstance(e, dict)
            ],
            reactions=dict(data.get("reactions") or {}),
        )

    # ── Convenience ─────────────────────────────────────────────────────

    @property
    def sort_key(self) -> datetime:
        """``created_at`` with missing timestamps treated as the zero instant."""
        return as_utc(self.created_at) if self.created_at else EPOCH

    def has_engaged(self, user_id: str) -> bool:
        return any(e.user_id == user_id for e in self.engagements)

    def reaction_of(self, user_id: str) -> str | None:
        return self.reactions.get(user_id)

    def reaction_count(self, kind: str) -> int:
        return sum(1 for r in self.reactions.values() if r == kind)
