"""Per-session transport for the streamable HTTP endpoint.

Each MCP session gets one SessionTransport. The transport is connected to
the dispatcher exactly once, feeds it inbound messages and buffers
server-to-client messages (progress notifications) for the session's
optional SSE stream.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from mcp_server.dispatcher import CallContext, Dispatcher, SessionState
from replicate_mcp.context import ContextStore

logger = logging.getLogger(__name__)

# Seconds between SSE keep-alive comments
KEEPALIVE_INTERVAL = 15.0


def sse_frame(message: dict[str, Any]) -> str:
    """Encode one JSON-RPC message as an SSE ``message`` event."""
    return f"event: message\ndata: {json.dumps(message, separators=(',', ':'))}\n\n"


class SessionTransport:
    """Bridges one HTTP session and the dispatcher."""

    def __init__(
        self,
        session_id: str | None,
        contexts: ContextStore | None = None,
        keepalive_interval: float = KEEPALIVE_INTERVAL,
    ) -> None:
        self.session_id = session_id
        self.state = SessionState(session_id) if session_id is not None else None
        self.keepalive_interval = keepalive_interval
        self._contexts = contexts
        self._dispatcher: Dispatcher | None = None
        self._queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        self._stream_open = False
        self._closed = False

    @property
    def connected(self) -> bool:
        return self._dispatcher is not None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def stream_open(self) -> bool:
        """Whether an SSE stream is currently attached."""
        return self._stream_open

    def ensure_connected(self, dispatcher: Dispatcher) -> None:
        """Connect to the dispatcher unless already connected."""
        if self._dispatcher is None:
            self._connect(dispatcher)

    def _connect(self, dispatcher: Dispatcher) -> None:
        self._dispatcher = dispatcher
        logger.debug("Transport connected for session %s", self.session_id)

    async def handle_message(
        self, message: dict[str, Any], credential: str | None = None
    ) -> dict[str, Any] | None:
        """Process one validated JSON-RPC message.

        Messages without an id (or with ``id: null``) are notifications.

        Returns:
            The JSON-RPC response for a request, None for a notification.

        Raises:
            RuntimeError: If the transport is not connected or already closed.
        """
        if self._dispatcher is None:
            raise RuntimeError("Transport is not connected")
        if self._closed:
            raise RuntimeError(f"Transport for session {self.session_id} is closed")

        call = CallContext(
            session_id=self.session_id,
            credential=credential,
            session=self.state,
            notifier=self.send,
        )
        method = message["method"]
        params = message.get("params")
        request_id = message.get("id")

        if request_id is None:
            self._dispatcher.notify(method, params, call)
            return None

        result = await self._dispatcher.dispatch(method, params, call, request_id)
        return result.to_response(request_id)

    def send(self, message: dict[str, Any]) -> None:
        """Queue a server-to-client message for the SSE stream."""
        if self._closed or not self._stream_open:
            logger.debug(
                "No open stream for session %s; dropping %s",
                self.session_id,
                message.get("method"),
            )
            return
        self._queue.put_nowait(message)

    def stream(self) -> AsyncIterator[str]:
        """Return the session's SSE frames.

        The stream slot is held from the first iteration until the
        generator finishes, so a stream that never starts never blocks a
        later GET. Frames end when the transport is closed.

        Raises:
            RuntimeError: If a stream is already open for this session.
        """
        if self._stream_open:
            raise RuntimeError(f"Stream already open for session {self.session_id}")
        return self._frames()

    async def _frames(self) -> AsyncIterator[str]:
        if self._stream_open:
            raise RuntimeError(f"Stream already open for session {self.session_id}")
        self._stream_open = True
        logger.info("SSE stream opened for session %s", self.session_id)
        try:
            while not self._closed:
                try:
                    message = await asyncio.wait_for(
                        self._queue.get(), timeout=self.keepalive_interval
                    )
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                if message is None:
                    break
                yield sse_frame(message)
        finally:
            self._stream_open = False
            logger.info("SSE stream closed for session %s", self.session_id)

    def close(self) -> None:
        """Tear down the session. Calling twice is harmless."""
        if self._closed:
            return
        self._closed = True
        if self._contexts is not None and self.session_id is not None:
            cancelled = self._contexts.cancel_session(self.session_id)
            if cancelled:
                logger.info(
                    "Cancelled %d in-flight request(s) for session %s",
                    cancelled,
                    self.session_id,
                )
        self._queue.put_nowait(None)
        logger.debug("Transport closed for session %s", self.session_id)


class TransportRegistry:
    """Live session transports, keyed by session id."""

    def __init__(self, contexts: ContextStore | None = None) -> None:
        self._contexts = contexts
        self._transports: dict[str, SessionTransport] = {}

    def get(self, session_id: str) -> SessionTransport | None:
        return self._transports.get(session_id)

    def create(self, session_id: str) -> SessionTransport:
        """Return the transport for ``session_id``, creating it if needed."""
        transport = self._transports.get(session_id)
        if transport is None:
            transport = SessionTransport(session_id, contexts=self._contexts)
            self._transports[session_id] = transport
            logger.info("Session created: %s", session_id)
        return transport

    def remove(self, session_id: str) -> bool:
        """Close and forget a session.

        Returns:
            False if the session did not exist.
        """
        transport = self._transports.pop(session_id, None)
        if transport is None:
            return False
        transport.close()
        logger.info("Session closed: %s", session_id)
        return True

    def close_all(self) -> int:
        """Close every session (server shutdown)."""
        session_ids = list(self._transports)
        for session_id in session_ids:
            self.remove(session_id)
        return len(session_ids)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._transports

    def __len__(self) -> int:
        return len(self._transports)


__all__ = [
    "KEEPALIVE_INTERVAL",
    "SessionState",
    "SessionTransport",
    "TransportRegistry",
    "sse_frame",
]
