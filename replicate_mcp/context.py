"""Per-request context bookkeeping.

The ContextStore maps in-flight JSON-RPC requests to their metadata:
cancellation token, owning session, upstream credential and creation time.
Contexts are created when dispatch begins and deleted when it finishes; a
periodic sweep removes anything abandoned for longer than ``max_age``.

Contexts are keyed by ``(session_id, request_id)``. Request ids are chosen
by clients, so two sessions may legitimately use the same id at the same
time. Stateless calls use ``session_id=None``.

All access happens on the event loop thread. No method awaits while
mutating the mapping.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from replicate_mcp.cancellation import CancellationToken
from replicate_mcp.types import RequestId

logger = logging.getLogger(__name__)

# Abandoned contexts are dropped after this many seconds
DEFAULT_MAX_AGE = 10 * 60

# Period of the background sweep (seconds)
DEFAULT_SWEEP_INTERVAL = 60

ContextKey = tuple[str | None, RequestId]


@dataclass
class RequestContext:
    """Metadata for one in-flight request."""

    request_id: RequestId
    session_id: str | None
    created_at: float
    cancellation_token: CancellationToken = field(default_factory=CancellationToken)
    credential: str | None = field(default=None, repr=False)
    progress_token: str | int | None = None


class ContextStore:
    """Mapping from (session id, request id) to RequestContext."""

    def __init__(
        self,
        max_age: float = DEFAULT_MAX_AGE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the store.

        Args:
            max_age: Age in seconds after which sweep_expired() drops a context.
            clock: Monotonic time source, replaceable in tests.
        """
        self.max_age = max_age
        self._clock = clock
        self._contexts: dict[ContextKey, RequestContext] = {}
        self._sweeper: asyncio.Task[None] | None = None

    def create(
        self,
        request_id: RequestId,
        session_id: str | None = None,
        credential: str | None = None,
        progress_token: str | int | None = None,
    ) -> RequestContext:
        """Register a fresh context, replacing any existing one for the key."""
        key = (session_id, request_id)
        if key in self._contexts:
            logger.warning(
                "Replacing context for request %r in session %s", request_id, session_id
            )
        context = RequestContext(
            request_id=request_id,
            session_id=session_id,
            created_at=self._clock(),
            credential=credential,
            progress_token=progress_token,
        )
        self._contexts[key] = context
        return context

    def get(
        self, request_id: RequestId, session_id: str | None = None
    ) -> RequestContext | None:
        """Return the context for a request, or None."""
        return self._contexts.get((session_id, request_id))

    def cancel(
        self,
        request_id: RequestId,
        session_id: str | None = None,
        reason: str | None = None,
    ) -> bool:
        """Signal cancellation for a request.

        Returns:
            False if no context exists for the request, True otherwise.
        """
        context = self.get(request_id, session_id)
        if context is None:
            return False
        logger.info("Cancelling request %r in session %s", request_id, session_id)
        context.cancellation_token.cancel(reason)
        return True

    def cancel_session(self, session_id: str) -> int:
        """Cancel every in-flight request of a session.

        Returns:
            Number of contexts signalled.
        """
        contexts = [c for c in self._contexts.values() if c.session_id == session_id]
        for context in contexts:
            context.cancellation_token.cancel("session closed")
        return len(contexts)

    def delete(self, request_id: RequestId, session_id: str | None = None) -> None:
        """Forget a request. Missing keys are ignored."""
        self._contexts.pop((session_id, request_id), None)

    def sweep_expired(self) -> int:
        """Drop contexts older than max_age.

        Only the bookkeeping is removed; any work still running for a swept
        request keeps running.

        Returns:
            Number of contexts removed.
        """
        now = self._clock()
        expired = [
            key
            for key, context in self._contexts.items()
            if now - context.created_at > self.max_age
        ]
        for key in expired:
            del self._contexts[key]
        if expired:
            logger.debug("Swept %d expired request contexts", len(expired))
        return len(expired)

    def start_sweeper(self, interval: float = DEFAULT_SWEEP_INTERVAL) -> None:
        """Run sweep_expired() every ``interval`` seconds in the background.

        Must be called from a running event loop. A second call while the
        sweeper is running does nothing.
        """
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.get_running_loop().create_task(
            self._sweep_forever(interval), name="context-sweeper"
        )
        logger.debug("Context sweeper started (interval=%ss)", interval)

    async def stop_sweeper(self) -> None:
        """Stop the background sweep, if running."""
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None
        logger.debug("Context sweeper stopped")

    @property
    def sweeper_running(self) -> bool:
        """Whether the background sweep task is active."""
        return self._sweeper is not None and not self._sweeper.done()

    async def _sweep_forever(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.sweep_expired()

    def __len__(self) -> int:
        return len(self._contexts)

    def __contains__(self, key: object) -> bool:
        return key in self._contexts


__all__ = [
    "DEFAULT_MAX_AGE",
    "DEFAULT_SWEEP_INTERVAL",
    "ContextKey",
    "ContextStore",
    "RequestContext",
]
