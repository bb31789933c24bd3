"""Cooperative cancellation.

A CancellationToken is a one-way flag (active -> canceled) with listeners
and an awaitable done-signal. Long-running tool work checks the token
between suspension points; nothing is interrupted preemptively.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)

CancelListener = Callable[[], None]


class CancellationToken:
    """Flag signalling that the caller asked for work to stop."""

    def __init__(self) -> None:
        self._canceled = False
        self._reason: str | None = None
        self._listeners: list[CancelListener] = []
        self._event = asyncio.Event()

    @property
    def is_canceled(self) -> bool:
        """Whether cancel() has been called."""
        return self._canceled

    @property
    def reason(self) -> str | None:
        """Reason passed to cancel(), if any."""
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Cancel the token and notify listeners.

        Calling this more than once has no further effect.

        Args:
            reason: Optional human-readable reason from the client.
        """
        if self._canceled:
            return
        self._canceled = True
        self._reason = reason
        self._event.set()

        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            self._invoke(listener)

    def on_cancel(self, listener: CancelListener) -> Callable[[], None]:
        """Register a callback run when the token is canceled.

        If the token is already canceled the callback runs immediately.

        Args:
            listener: Zero-argument callable.

        Returns:
            A callable that removes the listener again.
        """
        if self._canceled:
            self._invoke(listener)
            return lambda: None

        self._listeners.append(listener)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    async def wait(self) -> None:
        """Wait until the token is canceled."""
        await self._event.wait()

    async def sleep(self, seconds: float) -> bool:
        """Sleep for up to ``seconds``, waking early on cancellation.

        Returns:
            True if the token was canceled, False if the full delay elapsed.
        """
        if self._canceled:
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    @staticmethod
    def _invoke(listener: CancelListener) -> None:
        try:
            listener()
        except Exception:
            logger.exception("Cancellation listener failed")

    def __repr__(self) -> str:
        state = "canceled" if self._canceled else "active"
        return f"<CancellationToken {state}>"


__all__ = ["CancelListener", "CancellationToken"]
