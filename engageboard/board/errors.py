"""Board errors — raised inside the mutation layer, turned into notices by LinkBoard.

    ValidationError  empty required field           (before any store call)
    GateError        onboarding / cooldown / freshness precondition not met
    PrecursorError   react without a prior engage   (checked on the local replica)
    RemoteFailure    a store call was rejected or timed out

``message`` is the human-readable text shown to the user.
"""

from __future__ import annotations


class BoardError(Exception):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(BoardError):
    pass


class GateError(BoardError):
    def __init__(self, message: str, reason: str = "") -> None:
        super().__init__(message)
        self.reason = reason


class PrecursorError(BoardError):
    pass


class RemoteFailure(BoardError):
    pass
