"""
Event Router

Binds the backend's data events on a Socket.IO client to the listener
registries. Both per-difficulty leaderboard events share one normalized
delivery path; rank changes and solves are forwarded as received.
"""

from __future__ import annotations

from typing import Any, Callable

import socketio
import structlog

from ctfboard.realtime.events import (
    LeaderboardUpdate,
    ServerEvent,
    normalize_leaderboard_payload,
)
from ctfboard.realtime.listeners import ListenerRegistry

logger = structlog.get_logger(__name__)

DEFAULT_NAMESPACE = "/"


class EventRouter:
    """Routes named server pushes to the matching listener registry."""

    def __init__(
        self,
        leaderboard: ListenerRegistry[LeaderboardUpdate],
        user_rank: ListenerRegistry[Any],
        new_solve: ListenerRegistry[Any],
    ) -> None:
        self._leaderboard = leaderboard
        self._user_rank = user_rank
        self._new_solve = new_solve

        # Built once so bind() and unbind() see the same handler objects
        self._routes: dict[ServerEvent, Callable[..., None]] = {
            ServerEvent.LEADERBOARD_UPDATE_BEGINNER: self._on_leaderboard_beginner,
            ServerEvent.LEADERBOARD_UPDATE_INTERMEDIATE: self._on_leaderboard_intermediate,
            ServerEvent.USER_RANK_CHANGE: self._on_user_rank_change,
            ServerEvent.NEW_SOLVE: self._on_new_solve,
        }

    @property
    def events(self) -> list[ServerEvent]:
        """Events this router handles."""
        return list(self._routes)

    def bind(self, client: socketio.AsyncClient, namespace: str = DEFAULT_NAMESPACE) -> None:
        """
        Register the data event handlers on a client.

        Args:
            client: The Socket.IO client to bind to
            namespace: Namespace the events arrive on
        """
        for event, handler in self._routes.items():
            client.on(event.value, handler, namespace=namespace)

    def unbind(self, client: socketio.AsyncClient, namespace: str = DEFAULT_NAMESPACE) -> None:
        """
        Remove the handlers registered by bind().

        Handlers registered by anyone else for the same event names are left
        in place.
        """
        # AsyncClient has no off(); handlers live in client.handlers[namespace]
        handlers = client.handlers.get(namespace, {})
        for event, handler in self._routes.items():
            if handlers.get(event.value) == handler:
                del handlers[event.value]

    def dispatch_leaderboard(self, payload: Any) -> None:
        """Normalize a leaderboard push and notify leaderboard listeners."""
        update = normalize_leaderboard_payload(payload)
        logger.debug(
            "Normalized leaderboard payload",
            difficulty=update.difficulty,
            entries=len(update.data),
            timestamp=update.timestamp,
            listeners=len(self._leaderboard),
        )
        self._leaderboard.notify(update)

    def _on_leaderboard_beginner(self, payload: Any = None) -> None:
        logger.debug("Received event", name=ServerEvent.LEADERBOARD_UPDATE_BEGINNER.value)
        self.dispatch_leaderboard(payload)

    def _on_leaderboard_intermediate(self, payload: Any = None) -> None:
        logger.debug("Received event", name=ServerEvent.LEADERBOARD_UPDATE_INTERMEDIATE.value)
        self.dispatch_leaderboard(payload)

    def _on_user_rank_change(self, payload: Any = None) -> None:
        logger.debug("Received event", name=ServerEvent.USER_RANK_CHANGE.value)
        self._user_rank.notify(payload)

    def _on_new_solve(self, payload: Any = None) -> None:
        logger.debug("Received event", name=ServerEvent.NEW_SOLVE.value)
        self._new_solve.notify(payload)
