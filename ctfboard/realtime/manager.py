"""
Leaderboard Socket Manager

Owns the single Socket.IO connection to the CTF backend. connect() reuses
the live connection or creates a new one; disconnect() tears it down and
forgets every registered listener.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Callable

import socketio
from socketio import exceptions as sio_exceptions
import structlog

from ctfboard.config import SocketSettings, settings as default_settings
from ctfboard.realtime.events import LeaderboardUpdate, ServerEvent
from ctfboard.realtime.listeners import Listener, ListenerRegistry, Unsubscribe
from ctfboard.realtime.router import DEFAULT_NAMESPACE, EventRouter
from ctfboard.realtime.storage import TokenStore

logger = structlog.get_logger(__name__)
# Handed to socketio.AsyncClient so its retry and give-up messages are logged
transport_logger = structlog.get_logger("ctfboard.transport")

# Fired by python-socketio once a session is over and no retry will follow
DISCONNECT_FINAL = "__disconnect_final"

# Disconnect reasons after which the client does not reconnect
FINAL_DISCONNECT_REASONS = frozenset(
    {
        socketio.AsyncClient.reason.CLIENT_DISCONNECT,
        socketio.AsyncClient.reason.SERVER_DISCONNECT,
    }
)

# Options consumed by socketio.AsyncClient(); everything else goes to connect()
CLIENT_OPTIONS = frozenset(
    {
        "reconnection",
        "reconnection_attempts",
        "reconnection_delay",
        "reconnection_delay_max",
        "randomization_factor",
        "logger",
        "serializer",
        "json",
        "handle_sigint",
        "engineio_logger",
        "request_timeout",
        "http_session",
        "ssl_verify",
        "ssl_context",
        "websocket_extra_options",
        "timestamp_requests",
    }
)

OnConnect = Callable[["SocketHandle"], Any]
ClientFactory = Callable[..., socketio.AsyncClient]


class ConnectionState(str, Enum):
    """Lifecycle of the leaderboard connection."""

    ABSENT = "absent"  # No handle
    CONNECTING = "connecting"  # Handshake or reconnection in progress
    CONNECTED = "connected"  # Acknowledged by the server
    DISCONNECTED = "disconnected"  # Dropped or given up


def _resolve_token(options: dict[str, Any], token_store: TokenStore, token_key: str) -> str | None:
    """Explicit auth option first, then persisted storage."""
    auth = options.get("auth")
    if isinstance(auth, dict) and auth.get("token"):
        return auth["token"]
    return token_store.get(token_key) or None


def build_connection_options(
    settings: SocketSettings,
    token: str | None,
    options: dict[str, Any],
) -> tuple[dict[str, Any], dict[str, Any]]:
    """
    Merge the connection defaults with caller options.

    Caller options override every default, including ``auth``. ``timeout``
    maps to the client's ``wait_timeout``.

    Returns:
        Keyword arguments for socketio.AsyncClient() and for its connect()
    """
    options = dict(options)
    if "timeout" in options:
        options["wait_timeout"] = options.pop("timeout")

    merged: dict[str, Any] = {
        "socketio_path": settings.socketio_path,
        "transports": list(settings.transports),
        "reconnection": True,
        "reconnection_attempts": settings.reconnection_attempts,
        "reconnection_delay": settings.reconnection_delay,
        "wait_timeout": settings.connect_timeout,
        "retry": True,
        "logger": transport_logger,
        "auth": {"token": token},
    }
    merged.update(options)

    client_kwargs = {k: v for k, v in merged.items() if k in CLIENT_OPTIONS}
    connect_kwargs = {k: v for k, v in merged.items() if k not in CLIENT_OPTIONS}
    return client_kwargs, connect_kwargs


class SocketHandle:
    """
    A live or attempting Socket.IO session.

    Wraps one socketio.AsyncClient together with its lifecycle handlers.
    The handshake runs as a background task started by open().
    """

    def __init__(
        self,
        client: socketio.AsyncClient,
        url: str,
        connect_kwargs: dict[str, Any],
        on_connect: OnConnect | None = None,
    ) -> None:
        self.client = client
        self.url = url
        self.state = ConnectionState.CONNECTING
        self._connect_kwargs = connect_kwargs
        self._on_connect = on_connect
        self._connect_task: asyncio.Task[None] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._closed = False
        # Set while the client retries after an unexpected drop
        self._reconnecting = False

        self._lifecycle: dict[str, Callable[..., None]] = {
            ServerEvent.CONNECT.value: self._handle_connect,
            ServerEvent.DISCONNECT.value: self._handle_disconnect,
            ServerEvent.CONNECT_ERROR.value: self._handle_connect_error,
            ServerEvent.RECONNECT_ATTEMPT.value: self._handle_reconnect_attempt,
            ServerEvent.RECONNECT.value: self._handle_reconnect,
            ServerEvent.RECONNECT_FAILED.value: self._handle_reconnect_failed,
            DISCONNECT_FINAL: self._handle_disconnect_final,
        }
        for event, handler in self._lifecycle.items():
            client.on(event, handler, namespace=DEFAULT_NAMESPACE)

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    @property
    def sid(self) -> str | None:
        return getattr(self.client, "sid", None)

    @property
    def closed(self) -> bool:
        return self._closed

    def open(self) -> None:
        """Start the handshake on the running event loop."""
        self._loop = asyncio.get_running_loop()
        self._connect_task = self._loop.create_task(self._run_connect())

    async def _run_connect(self) -> None:
        try:
            await self.client.connect(self.url, **self._connect_kwargs)
        except sio_exceptions.ConnectionError as e:
            # Raised once the client's own retry loop gives up
            self.state = ConnectionState.DISCONNECTED
            logger.error("Leaderboard socket failed to connect", url=self.url, error=str(e))

    def close(self) -> asyncio.Task[None] | None:
        """
        Stop the session regardless of its current state.

        Returns:
            The scheduled client disconnect, or None if there is no loop to
            run it on
        """
        if self._closed:
            return None
        self._closed = True
        self.state = ConnectionState.DISCONNECTED

        if self._connect_task is not None and not self._connect_task.done():
            self._connect_task.cancel()

        if self._loop is None or self._loop.is_closed():
            logger.debug("No event loop to disconnect on", url=self.url)
            return None
        return self._loop.create_task(self._run_disconnect())

    async def _run_disconnect(self) -> None:
        try:
            await self.client.disconnect()
        except Exception as e:
            logger.error("Leaderboard socket disconnect failed", error=str(e))

    def notify_connect(self, on_connect: OnConnect | None) -> None:
        """Call an on_connect callback with this handle, logging its failure."""
        if on_connect is None:
            return
        try:
            on_connect(self)
        except Exception as e:
            logger.error("on_connect callback failed", error=str(e))

    # Lifecycle handlers

    def _handle_connect(self) -> None:
        if self._closed:
            return
        self.state = ConnectionState.CONNECTED
        self.notify_connect(self._on_connect)
        if self._reconnecting:
            self._reconnecting = False
            logger.info("Leaderboard socket reconnected", sid=self.sid)
        else:
            logger.info("Connected to leaderboard socket", sid=self.sid)

    def _handle_disconnect(self, reason: Any = None) -> None:
        will_retry = (
            bool(getattr(self.client, "reconnection", False))
            and reason not in FINAL_DISCONNECT_REASONS
        )
        if not self._closed:
            self._reconnecting = will_retry
            self.state = ConnectionState.CONNECTING if will_retry else ConnectionState.DISCONNECTED
        logger.info("Leaderboard socket disconnected", reason=reason, reconnecting=will_retry)

    def _handle_connect_error(self, error: Any = None) -> None:
        message = error.get("message", error) if isinstance(error, dict) else error
        logger.warning("Leaderboard socket connect_error", error=message)

    def _handle_reconnect_attempt(self, attempt: Any = None) -> None:
        if not self._closed:
            self.state = ConnectionState.CONNECTING
        logger.info("Leaderboard socket reconnect attempt", attempt=attempt)

    def _handle_reconnect(self, attempt: Any = None) -> None:
        logger.info("Leaderboard socket reconnected", attempts=attempt)

    def _handle_reconnect_failed(self) -> None:
        if not self._closed:
            self.state = ConnectionState.DISCONNECTED
        self._reconnecting = False
        logger.error("Leaderboard socket failed to reconnect")

    def _handle_disconnect_final(self) -> None:
        if self._closed:
            return
        if self._reconnecting:
            self._handle_reconnect_failed()
            return
        self.state = ConnectionState.DISCONNECTED
        logger.debug("Leaderboard socket session ended", url=self.url)


class LeaderboardSocketManager:
    """
    Manages the leaderboard connection and its listener registries.

    Usage:
        manager = LeaderboardSocketManager()
        unsubscribe = manager.on_leaderboard_update(render)
        manager.connect(on_connect=lambda handle: print(handle.sid))
        ...
        manager.disconnect()
    """

    def __init__(
        self,
        settings: SocketSettings | None = None,
        token_store: TokenStore | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        """
        Initialize the manager.

        Args:
            settings: Connection settings (defaults to the environment)
            token_store: Persisted storage holding the auth token
            client_factory: Builds the Socket.IO client from constructor kwargs
        """
        self.settings = settings or default_settings
        self.token_store = token_store or TokenStore(self.settings.token_store_path)
        self._client_factory = client_factory or socketio.AsyncClient

        self.leaderboard_listeners: ListenerRegistry[LeaderboardUpdate] = ListenerRegistry("leaderboard")
        self.user_rank_listeners: ListenerRegistry[Any] = ListenerRegistry("user_rank")
        self.new_solve_listeners: ListenerRegistry[Any] = ListenerRegistry("new_solve")

        self._router = EventRouter(
            self.leaderboard_listeners,
            self.user_rank_listeners,
            self.new_solve_listeners,
        )
        self._handle: SocketHandle | None = None

    @property
    def handle(self) -> SocketHandle | None:
        return self._handle

    @property
    def state(self) -> ConnectionState:
        if self._handle is None:
            return ConnectionState.ABSENT
        return self._handle.state

    def connect(self, on_connect: OnConnect | None = None, **options: Any) -> SocketHandle:
        """
        Return the live connection, creating one if needed.

        When already connected, on_connect is called immediately with the
        existing handle. Otherwise a new client is created and on_connect is
        called on every connect acknowledgment from the server.

        Args:
            on_connect: Called with the handle once connected
            **options: Overrides for the connection defaults; unknown keys
                are passed through to the Socket.IO client

        Returns:
            The connection handle, not necessarily connected yet
        """
        if self._handle is not None and self._handle.connected:
            logger.info("Reusing existing leaderboard socket", sid=self._handle.sid)
            self._handle.notify_connect(on_connect)
            return self._handle

        if self._handle is not None:
            logger.debug("Replacing stale leaderboard socket", state=self._handle.state.value)
            self._router.unbind(self._handle.client)
            self._handle.close()
            self._handle = None

        url = self.settings.backend_url
        logger.info("Creating leaderboard socket", url=url)

        token = _resolve_token(options, self.token_store, self.settings.token_key)
        client_kwargs, connect_kwargs = build_connection_options(self.settings, token, options)

        client = self._client_factory(**client_kwargs)
        handle = SocketHandle(client, url, connect_kwargs, on_connect=on_connect)
        # Raises without a running loop; nothing is kept in that case
        handle.open()
        self._router.bind(client)
        self._handle = handle
        return handle

    def disconnect(self) -> asyncio.Task[None] | None:
        """
        Tear down the connection and clear every listener registry.

        Listeners registered before this call never fire again; subscribe
        again after reconnecting.

        Returns:
            The scheduled client disconnect, which may be awaited
        """
        if self._handle is None:
            return None

        handle = self._handle
        self._router.unbind(handle.client)
        task = handle.close()
        self._handle = None

        self.leaderboard_listeners.clear()
        self.user_rank_listeners.clear()
        self.new_solve_listeners.clear()

        logger.info("Leaderboard socket closed", url=handle.url)
        return task

    def on_leaderboard_update(self, callback: Listener[LeaderboardUpdate]) -> Unsubscribe:
        """Subscribe to normalized leaderboard updates of every difficulty."""
        return self.leaderboard_listeners.subscribe(callback)

    def on_user_rank_change(self, callback: Listener[Any]) -> Unsubscribe:
        """Subscribe to raw user rank change payloads."""
        return self.user_rank_listeners.subscribe(callback)

    def on_new_solve(self, callback: Listener[Any]) -> Unsubscribe:
        """Subscribe to raw new solve payloads."""
        return self.new_solve_listeners.subscribe(callback)


# Global manager instance
_manager: LeaderboardSocketManager | None = None


def get_socket_manager() -> LeaderboardSocketManager:
    """Get the global socket manager instance."""
    global _manager
    if _manager is None:
        _manager = LeaderboardSocketManager()
    return _manager


def reset_socket_manager() -> None:
    """Disconnect and drop the global socket manager (for testing)."""
    global _manager
    if _manager is not None:
        _manager.disconnect()
    _manager = None


def connect_leaderboard_socket(on_connect: OnConnect | None = None, **options: Any) -> SocketHandle:
    """Connect the global manager. See LeaderboardSocketManager.connect()."""
    return get_socket_manager().connect(on_connect, **options)


def on_leaderboard_update(callback: Listener[LeaderboardUpdate]) -> Unsubscribe:
    return get_socket_manager().on_leaderboard_update(callback)


def on_user_rank_change(callback: Listener[Any]) -> Unsubscribe:
    return get_socket_manager().on_user_rank_change(callback)


def on_new_solve(callback: Listener[Any]) -> Unsubscribe:
    return get_socket_manager().on_new_solve(callback)


def disconnect_leaderboard_socket() -> asyncio.Task[None] | None:
    """Disconnect the global manager. See LeaderboardSocketManager.disconnect()."""
    return get_socket_manager().disconnect()
