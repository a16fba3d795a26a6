"""Server event names and leaderboard payload normalization."""

from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ServerEvent(str, Enum):
    """Socket.IO event names consumed from the backend."""

    # Connection lifecycle
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    CONNECT_ERROR = "connect_error"
    RECONNECT_ATTEMPT = "reconnect_attempt"
    RECONNECT = "reconnect"
    RECONNECT_FAILED = "reconnect_failed"

    # Leaderboard pushes, one per difficulty
    LEADERBOARD_UPDATE_BEGINNER = "leaderboard_update_beginner"
    LEADERBOARD_UPDATE_INTERMEDIATE = "leaderboard_update_intermediate"

    # Other pushes
    USER_RANK_CHANGE = "user_rank_change"
    NEW_SOLVE = "new_solve"


class LeaderboardUpdate(BaseModel):
    """Canonical leaderboard update delivered to listeners."""

    difficulty: str | None = None
    data: list[Any] = Field(default_factory=list)
    timestamp: Any | None = None
    updated_user: Any | None = None


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def normalize_leaderboard_payload(payload: Any) -> LeaderboardUpdate:
    """
    Map a raw leaderboard push onto a LeaderboardUpdate.

    The backend has shipped several shapes over time: a mapping with a
    ``leaderboard`` list, a mapping with a ``data`` list, or a bare list of
    entries. The first list among ``leaderboard``, ``data`` and the payload
    itself becomes ``data``, even when empty; values that are not lists are
    skipped and anything else yields an empty list.

    Args:
        payload: Decoded event payload, of any shape (including None)

    Returns:
        The normalized update
    """
    fields: Mapping[str, Any] = payload if isinstance(payload, Mapping) else {}

    candidates = [fields.get("leaderboard"), fields.get("data")]
    if _is_sequence(payload):
        candidates.append(payload)

    data: list[Any] = []
    for candidate in candidates:
        if _is_sequence(candidate):
            data = list(candidate)
            break

    difficulty = fields.get("difficulty")

    return LeaderboardUpdate(
        difficulty=str(difficulty) if difficulty else None,
        data=data,
        timestamp=fields.get("timestamp"),
        updated_user=fields.get("updated_user"),
    )
