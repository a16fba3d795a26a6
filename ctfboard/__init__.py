"""
ctfboard

Real-time CTF leaderboard client. Keeps one Socket.IO connection to the
backend and fans out leaderboard, rank change and solve events to
registered listeners.
"""

__version__ = "0.1.0"

from ctfboard.config import SocketSettings
from ctfboard.realtime import (
    ConnectionState,
    LeaderboardSocketManager,
    LeaderboardUpdate,
    ListenerRegistry,
    ServerEvent,
    SocketHandle,
    TokenStore,
    connect_leaderboard_socket,
    disconnect_leaderboard_socket,
    normalize_leaderboard_payload,
    on_leaderboard_update,
    on_new_solve,
    on_user_rank_change,
)

__all__ = [
    "__version__",
    "SocketSettings",
    "ConnectionState",
    "LeaderboardSocketManager",
    "LeaderboardUpdate",
    "ListenerRegistry",
    "ServerEvent",
    "SocketHandle",
    "TokenStore",
    "connect_leaderboard_socket",
    "disconnect_leaderboard_socket",
    "normalize_leaderboard_payload",
    "on_leaderboard_update",
    "on_new_solve",
    "on_user_rank_change",
]
