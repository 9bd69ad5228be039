"""engageboard core — engagement-gated submission and realtime board sync.

Architecture:
    gate       — pure submission rules (cooldown, engagement freshness)
    state      — BoardState: explicit local replica + notices + compose flags
    sync       — BoardSync: profile/link subscriptions, replace-on-push
    mutations  — MutationProtocol: save profile, engage, react, submit
    service    — LinkBoard: identity bootstrap + the operations as notices
"""

from .errors import BoardError, GateError, PrecursorError, RemoteFailure, ValidationError
from .gate import GateRefusal, can_submit, submission_block_reason
from .service import LinkBoard
from .state import BoardState, NoticeBoard
from .sync import BoardSync, sort_links

__all__ = [
    "BoardError",
    "BoardState",
    "BoardSync",
    "GateError",
    "GateRefusal",
    "LinkBoard",
    "NoticeBoard",
    "PrecursorError",
    "RemoteFailure",
    "ValidationError",
    "can_submit",
    "sort_links",
    "submission_block_reason",
]
