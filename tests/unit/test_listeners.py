"""
Tests for the ListenerRegistry.
"""

import asyncio

import pytest

from ctfboard.realtime.listeners import ListenerRegistry


@pytest.fixture
def registry() -> ListenerRegistry[int]:
    """Fresh registry for each test."""
    return ListenerRegistry("test")


class TestListenerRegistry:
    """Tests for ListenerRegistry."""

    def test_empty_registry(self, registry: ListenerRegistry[int]) -> None:
        """Test a new registry has no listeners."""
        assert len(registry) == 0
        registry.notify(1)  # no listeners, no error

    def test_notify_calls_listener(self, registry: ListenerRegistry[int]) -> None:
        """Test notify delivers the payload."""
        received: list[int] = []
        registry.subscribe(received.append)
        registry.notify(7)
        assert received == [7]

    def test_unsubscribe(self, registry: ListenerRegistry[int]) -> None:
        """Test unsubscribe stops delivery."""
        received: list[int] = []
        unsubscribe = registry.subscribe(received.append)
        assert unsubscribe() is True
        registry.notify(1)
        assert received == []
        assert len(registry) == 0

    def test_unsubscribe_twice(self, registry: ListenerRegistry[int]) -> None:
        """Test a repeated unsubscribe is a no-op."""
        unsubscribe = registry.subscribe(lambda payload: None)
        assert unsubscribe() is True
        assert unsubscribe() is False

    def test_same_callback_twice(self, registry: ListenerRegistry[int]) -> None:
        """Test the same callable holds two independent memberships."""
        received: list[int] = []
        first = registry.subscribe(received.append)
        registry.subscribe(received.append)
        assert len(registry) == 2

        registry.notify(1)
        assert received == [1, 1]

        first()
        registry.notify(2)
        assert received == [1, 1, 2]
        assert len(registry) == 1

    def test_failing_listener_is_isolated(self, registry: ListenerRegistry[int]) -> None:
        """Test a raising listener does not stop later listeners."""
        received: list[int] = []

        def broken(payload: int) -> None:
            raise RuntimeError("boom")

        registry.subscribe(broken)
        registry.subscribe(received.append)

        registry.notify(3)
        assert received == [3]

    def test_unsubscribe_during_notify(self, registry: ListenerRegistry[int]) -> None:
        """Test a listener removed mid-pass is not called in that pass."""
        received: list[str] = []
        unsubscribers = {}

        def first(payload: int) -> None:
            received.append("first")
            unsubscribers["second"]()

        def second(payload: int) -> None:
            received.append("second")

        registry.subscribe(first)
        unsubscribers["second"] = registry.subscribe(second)

        registry.notify(1)
        assert received == ["first"]

    def test_subscribe_during_notify(self, registry: ListenerRegistry[int]) -> None:
        """Test a listener added mid-pass receives only later payloads."""
        late: list[int] = []

        def adder(payload: int) -> None:
            if payload == 1:
                registry.subscribe(late.append)

        registry.subscribe(adder)
        registry.notify(1)
        assert late == []

        registry.notify(2)
        assert late == [2]

    def test_coroutine_listener_without_loop(self, registry: ListenerRegistry[int]) -> None:
        """Test a coroutine listener called outside a loop is closed, not leaked."""
        created = []
        received: list[int] = []

        async def handler(payload: int) -> None:
            received.append(payload)

        def listener(payload: int):
            coro = handler(payload)
            created.append(coro)
            return coro

        registry.subscribe(listener)
        registry.subscribe(received.append)
        registry.notify(3)

        assert created[0].cr_frame is None
        assert received == [3]

    def test_clear(self, registry: ListenerRegistry[int]) -> None:
        """Test clear drops every membership."""
        received: list[int] = []
        unsubscribe = registry.subscribe(received.append)
        registry.subscribe(received.append)

        registry.clear()
        registry.notify(1)

        assert received == []
        assert len(registry) == 0
        assert unsubscribe() is False

    @pytest.mark.asyncio
    async def test_coroutine_listener(self, registry: ListenerRegistry[int]) -> None:
        """Test coroutine listeners are scheduled on the running loop."""
        received: list[int] = []

        async def listener(payload: int) -> None:
            received.append(payload)

        registry.subscribe(listener)
        registry.notify(5)
        await asyncio.sleep(0)
        assert received == [5]

    @pytest.mark.asyncio
    async def test_failing_coroutine_listener(self, registry: ListenerRegistry[int]) -> None:
        """Test a failing coroutine listener does not affect others."""
        received: list[int] = []

        async def broken(payload: int) -> None:
            raise RuntimeError("boom")

        registry.subscribe(broken)
        registry.subscribe(received.append)

        registry.notify(4)
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert received == [4]
