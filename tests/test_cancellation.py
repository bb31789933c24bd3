"""Tests for the cooperative cancellation token."""

import asyncio

import pytest

from replicate_mcp.cancellation import CancellationToken


class TestCancellationToken:
    """Test CancellationToken state and listeners."""

    def test_starts_active(self) -> None:
        """A fresh token is not canceled."""
        token = CancellationToken()
        assert token.is_canceled is False
        assert token.reason is None

    def test_cancel_sets_flag_and_reason(self) -> None:
        """cancel() flips the flag and records the reason."""
        token = CancellationToken()
        token.cancel("client gave up")
        assert token.is_canceled is True
        assert token.reason == "client gave up"

    def test_cancel_is_idempotent(self) -> None:
        """Listeners run once; a second cancel keeps the first reason."""
        token = CancellationToken()
        calls: list[str] = []
        token.on_cancel(lambda: calls.append("fired"))

        token.cancel("first")
        token.cancel("second")

        assert calls == ["fired"]
        assert token.reason == "first"

    def test_listener_registered_after_cancel_runs_immediately(self) -> None:
        """Registering on a canceled token invokes the listener at once."""
        token = CancellationToken()
        token.cancel()
        calls: list[int] = []
        token.on_cancel(lambda: calls.append(1))
        assert calls == [1]

    def test_unsubscribe_prevents_call(self) -> None:
        """An unsubscribed listener is not invoked."""
        token = CancellationToken()
        calls: list[int] = []
        unsubscribe = token.on_cancel(lambda: calls.append(1))
        unsubscribe()
        token.cancel()
        assert calls == []

    def test_failing_listener_does_not_block_others(self) -> None:
        """A listener that raises is logged and the rest still run."""
        token = CancellationToken()
        calls: list[str] = []

        def broken() -> None:
            raise RuntimeError("boom")

        token.on_cancel(broken)
        token.on_cancel(lambda: calls.append("second"))
        token.cancel()

        assert calls == ["second"]
        assert token.is_canceled is True


class TestCancellationTokenAsync:
    """Test the awaitable side of the token."""

    @pytest.mark.asyncio
    async def test_wait_resolves_on_cancel(self) -> None:
        """wait() completes once the token is canceled."""
        token = CancellationToken()
        waiter = asyncio.create_task(token.wait())
        await asyncio.sleep(0)
        assert not waiter.done()

        token.cancel()
        await asyncio.wait_for(waiter, timeout=1)

    @pytest.mark.asyncio
    async def test_sleep_returns_false_when_not_canceled(self) -> None:
        """sleep() returns False after the full delay."""
        token = CancellationToken()
        assert await token.sleep(0.01) is False

    @pytest.mark.asyncio
    async def test_sleep_wakes_early_on_cancel(self) -> None:
        """sleep() returns True as soon as the token fires."""
        token = CancellationToken()
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, token.cancel)

        started = loop.time()
        assert await token.sleep(10) is True
        assert loop.time() - started < 5

    @pytest.mark.asyncio
    async def test_sleep_on_canceled_token_returns_immediately(self) -> None:
        """sleep() on an already canceled token does not wait."""
        token = CancellationToken()
        token.cancel()
        assert await token.sleep(10) is True
