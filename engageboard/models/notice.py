"""Notice — the short-lived, human-readable message shown after every intent."""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel


class NoticeKind(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class Notice(BaseModel):
    """A message with a success/error flavour and a fixed expiry."""

    message: str
    kind: NoticeKind
    posted_at: datetime
    ttl_seconds: float = 3.0

    @property
    def ok(self) -> bool:
        return self.kind is NoticeKind.SUCCESS

    @property
    def expires_at(self) -> datetime:
        return self.posted_at + timedelta(seconds=self.ttl_seconds)

    def expired(self, now: datetime) -> bool:
        return now >= self.expires_at
