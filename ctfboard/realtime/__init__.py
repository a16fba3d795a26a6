"""Leaderboard socket connection, event routing and listener registries."""

from ctfboard.realtime.events import (
    LeaderboardUpdate,
    ServerEvent,
    normalize_leaderboard_payload,
)
from ctfboard.realtime.listeners import ListenerRegistry
from ctfboard.realtime.manager import (
    ConnectionState,
    LeaderboardSocketManager,
    SocketHandle,
    connect_leaderboard_socket,
    disconnect_leaderboard_socket,
    get_socket_manager,
    on_leaderboard_update,
    on_new_solve,
    on_user_rank_change,
    reset_socket_manager,
)
from ctfboard.realtime.router import EventRouter
from ctfboard.realtime.storage import TokenStore

__all__ = [
    "LeaderboardUpdate",
    "ServerEvent",
    "normalize_leaderboard_payload",
    "ListenerRegistry",
    "ConnectionState",
    "LeaderboardSocketManager",
    "SocketHandle",
    "connect_leaderboard_socket",
    "disconnect_leaderboard_socket",
    "get_socket_manager",
    "on_leaderboard_update",
    "on_new_solve",
    "on_user_rank_change",
    "reset_socket_manager",
    "EventRouter",
    "TokenStore",
]
