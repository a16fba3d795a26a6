"""
Listener Registry

Holds the callbacks interested in one category of server push and
delivers each push to all of them, isolating failures per callback.
"""

from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable, Generic, TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Listeners may be plain functions or coroutine functions
Listener = Callable[[T], Any]
Unsubscribe = Callable[[], bool]


def _listener_name(callback: Callable[..., Any]) -> str:
    return getattr(callback, "__qualname__", None) or repr(callback)


class ListenerRegistry(Generic[T]):
    """
    Set of listener memberships for one event category.

    Each call to subscribe() creates an independent membership, so the same
    callable subscribed twice is delivered to twice and needs two
    unsubscribes. Delivery order is not guaranteed.
    """

    def __init__(self, name: str) -> None:
        """
        Initialize an empty registry.

        Args:
            name: Category name used in log output
        """
        self.name = name
        # Membership token -> callback
        self._listeners: dict[object, Listener[T]] = {}
        # Running coroutine listeners, kept referenced until done
        self._pending: set[asyncio.Future[Any]] = set()

    def subscribe(self, callback: Listener[T]) -> Unsubscribe:
        """
        Add a membership for a callback.

        Args:
            callback: Called with each payload delivered to this registry

        Returns:
            A function removing exactly this membership. It returns True
            when it removed something and False on repeated calls.
        """
        token = object()
        self._listeners[token] = callback
        logger.debug("Listener subscribed", registry=self.name, count=len(self._listeners))

        def unsubscribe() -> bool:
            removed = self._listeners.pop(token, None) is not None
            if removed:
                logger.debug("Listener unsubscribed", registry=self.name, count=len(self._listeners))
            return removed

        return unsubscribe

    def notify(self, payload: T) -> None:
        """
        Deliver a payload to every current listener.

        Iterates over a snapshot so listeners may subscribe or unsubscribe
        while being notified. Members removed earlier in the same pass are
        skipped; members added during the pass receive the next payload.

        Args:
            payload: The value passed to each listener
        """
        for token, callback in list(self._listeners.items()):
            if token not in self._listeners:
                continue
            try:
                result = callback(payload)
                if inspect.isawaitable(result):
                    self._track(result, callback)
            except Exception as e:
                logger.error(
                    "Listener failed",
                    registry=self.name,
                    listener=_listener_name(callback),
                    error=str(e),
                )

    def _track(self, awaitable: Any, callback: Listener[T]) -> None:
        """Schedule a coroutine listener and log its failure when it completes."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Never scheduled, so close it instead of leaving it unawaited
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise

        future = asyncio.ensure_future(awaitable, loop=loop)
        self._pending.add(future)

        def _done(fut: asyncio.Future[Any]) -> None:
            self._pending.discard(fut)
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                logger.error(
                    "Listener failed",
                    registry=self.name,
                    listener=_listener_name(callback),
                    error=str(exc),
                )

        future.add_done_callback(_done)

    def clear(self) -> None:
        """Drop every membership. Outstanding unsubscribe functions become no-ops."""
        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._listeners)

    def __repr__(self) -> str:
        return f"ListenerRegistry(name={self.name!r}, listeners={len(self._listeners)})"
