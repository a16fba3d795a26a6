"""
Pytest configuration and shared fixtures.
"""

from pathlib import Path
from typing import Any, Callable

import pytest

from ctfboard.config import SocketSettings
from ctfboard.realtime.manager import LeaderboardSocketManager
from ctfboard.realtime.storage import TokenStore


class FakeSocketClient:
    """Stand-in for socketio.AsyncClient that records calls and replays events."""

    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.reconnection = kwargs.get("reconnection", False)
        self.handlers: dict[str, dict[str, Callable[..., Any]]] = {}
        self.connected = False
        self.sid: str | None = None
        self.connect_calls: list[tuple[str, dict[str, Any]]] = []
        self.disconnect_calls = 0

    def on(self, event: str, handler: Callable[..., Any] | None = None, namespace: str | None = None) -> None:
        self.handlers.setdefault(namespace or "/", {})[event] = handler

    async def connect(self, url: str, **kwargs: Any) -> None:
        self.connect_calls.append((url, kwargs))

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self.connected = False
        self.sid = None

    def trigger(self, event: str, *args: Any) -> bool:
        """Invoke the handler bound for an event. Returns False if none is bound."""
        handler = self.handlers.get("/", {}).get(event)
        if handler is None:
            return False
        handler(*args)
        return True

    def accept(self, sid: str = "sid-1") -> None:
        """Simulate the server acknowledging the connection."""
        self.connected = True
        self.sid = sid
        self.trigger("connect")


@pytest.fixture
def settings(tmp_path: Path) -> SocketSettings:
    """Settings pointing at a test backend and a temporary token store."""
    return SocketSettings(
        backend_url="http://ctf.test:5000",
        token_store_path=tmp_path / "storage.json",
    )


@pytest.fixture
def token_store(settings: SocketSettings) -> TokenStore:
    """Empty token store for each test."""
    return TokenStore(settings.token_store_path)


@pytest.fixture
def clients() -> list[FakeSocketClient]:
    """Every fake client created by the manager fixture, in creation order."""
    return []


@pytest.fixture
def manager(
    settings: SocketSettings,
    token_store: TokenStore,
    clients: list[FakeSocketClient],
) -> LeaderboardSocketManager:
    """Socket manager wired to fake clients."""

    def factory(**kwargs: Any) -> FakeSocketClient:
        client = FakeSocketClient(**kwargs)
        clients.append(client)
        return client

    return LeaderboardSocketManager(
        settings=settings,
        token_store=token_store,
        client_factory=factory,
    )
