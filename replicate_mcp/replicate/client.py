"""Replicate HTTP API client.

This module handles:
- Model search, enriched with each model's input schema
- Model lookup
- Prediction creation and polling until a terminal status
- Upstream cancellation when the caller's token fires

The API token is supplied per client; the server keeps it in its own
configuration and never receives it from MCP callers.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import replace
from typing import Any

import httpx

from replicate_mcp import __version__
from replicate_mcp.cancellation import CancellationToken
from replicate_mcp.config import REPLICATE_API_BASE
from replicate_mcp.replicate.models import (
    ModelInputSchema,
    ModelSearchResult,
    PredictionResult,
)
from replicate_mcp.types import PredictionStatus

logger = logging.getLogger(__name__)

# Timeout for a single API call (seconds)
DEFAULT_TIMEOUT = 60.0

# Delay between prediction status polls (seconds)
DEFAULT_POLL_INTERVAL = 1.0

# Number of search results enriched with schemas
DEFAULT_SEARCH_LIMIT = 5

PollCallback = Callable[[PredictionResult], Awaitable[None]]


class ReplicateAPIError(Exception):
    """Raised when a Replicate API call fails."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str = "replicate_error",
    ) -> None:
        """Initialize ReplicateAPIError.

        Args:
            message: Error description, including the HTTP status when known.
            status_code: HTTP status code returned by Replicate.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.status_code = status_code
        self.code = code

    @property
    def is_rate_limit(self) -> bool:
        return self.status_code == 429


def split_model_id(model: str) -> tuple[str, str, str | None]:
    """Split ``owner/name`` or ``owner/name:version``.

    Raises:
        ValueError: If the identifier is not of that form.
    """
    ref, _, version = model.partition(":")
    owner, sep, name = ref.partition("/")
    if not owner or not sep or not name or "/" in name:
        raise ValueError(f"Model must be in format 'owner/name', got {model!r}")
    return owner, name, version or None


class ReplicateClient:
    """Async client for the subset of the Replicate API used by the tools."""

    def __init__(
        self,
        api_token: str,
        base_url: str = REPLICATE_API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_token: Replicate API token.
            base_url: API base URL.
            timeout: Per-call timeout in seconds.
            poll_interval: Delay between prediction polls in seconds.
            transport: Optional httpx transport (used in tests).

        Raises:
            ValueError: If no token is given.
        """
        if not api_token:
            raise ValueError(
                "Replicate API token is required. Set REPLICATE_API_TOKEN on the server."
            )
        self.poll_interval = poll_interval
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {api_token}",
                "User-Agent": f"replicate-mcp/{__version__}",
            },
        )

    async def __aenter__(self) -> ReplicateClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        """Issue a request and decode the JSON body.

        Raises:
            ReplicateAPIError: On a failed call or a body that is not JSON.
        """
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            detail = _error_detail(e.response)
            message = f"{status} {e.response.reason_phrase}"
            if detail:
                message = f"{message}: {detail}"
            raise ReplicateAPIError(
                f"Replicate API error on {method} {path}: {message}",
                status_code=status,
                code="rate_limited" if status == 429 else "http_error",
            ) from e
        except httpx.TimeoutException as e:
            raise ReplicateAPIError(
                f"Timeout calling Replicate API {method} {path}", code="timeout"
            ) from e
        except httpx.RequestError as e:
            raise ReplicateAPIError(
                f"Network error calling Replicate API {method} {path}: {e}",
                code="network_error",
            ) from e
        try:
            return response.json()
        except ValueError as e:
            raise ReplicateAPIError(
                f"Invalid JSON from Replicate API {method} {path}",
                status_code=response.status_code,
                code="invalid_response",
            ) from e

    async def search_models(
        self, query: str, limit: int = DEFAULT_SEARCH_LIMIT
    ) -> list[ModelSearchResult]:
        """Search public models and attach their input schemas.

        Schema lookups run concurrently. A model whose details cannot be
        fetched is still returned, without a schema.

        Args:
            query: Free-text query.
            limit: Maximum number of models to return.

        Returns:
            Up to ``limit`` results in relevance order.
        """
        logger.debug("Searching models: %s", query)
        data = await self._request(
            "QUERY",
            "/models",
            content=query.encode("utf-8"),
            headers={"Content-Type": "text/plain"},
        )
        found = data.get("results") if isinstance(data, dict) else None
        top = [model for model in found or [] if isinstance(model, dict)][:limit]
        results = await asyncio.gather(*(self._enrich(model) for model in top))
        logger.debug("Search complete: %d models", len(results))
        return list(results)

    async def _enrich(self, model: dict[str, Any]) -> ModelSearchResult:
        try:
            details = await self.get_model(model["owner"], model["name"])
        except ReplicateAPIError as e:
            logger.debug(
                "Failed to get schema for %s/%s: %s", model["owner"], model["name"], e
            )
            return ModelSearchResult.from_api(model)
        return ModelSearchResult.from_api(
            model, input_schema=ModelInputSchema.from_openapi(details)
        )

    async def get_model(self, owner: str, name: str) -> dict[str, Any]:
        """Fetch a model, including its latest version's OpenAPI schema."""
        logger.debug("Getting model %s/%s", owner, name)
        data: dict[str, Any] = await self._request("GET", f"/models/{owner}/{name}")
        return data

    async def create_prediction(
        self, model: str, model_input: dict[str, Any]
    ) -> dict[str, Any]:
        """Start a prediction for ``owner/name`` or ``owner/name:version``."""
        owner, name, version = split_model_id(model)
        if version:
            path = "/predictions"
            payload: dict[str, Any] = {"version": version, "input": model_input}
        else:
            path = f"/models/{owner}/{name}/predictions"
            payload = {"input": model_input}
        data: dict[str, Any] = await self._request("POST", path, json=payload)
        return data

    async def get_prediction(self, prediction_id: str) -> dict[str, Any]:
        data: dict[str, Any] = await self._request(
            "GET", f"/predictions/{prediction_id}"
        )
        return data

    async def cancel_prediction(self, prediction_id: str) -> dict[str, Any]:
        data: dict[str, Any] = await self._request(
            "POST", f"/predictions/{prediction_id}/cancel"
        )
        return data

    async def run_prediction(
        self,
        model: str,
        model_input: dict[str, Any],
        cancellation_token: CancellationToken | None = None,
        on_poll: PollCallback | None = None,
    ) -> PredictionResult:
        """Create a prediction and wait for it to finish.

        Args:
            model: Model identifier.
            model_input: Model input object.
            cancellation_token: Checked between polls; when it fires the
                prediction is canceled upstream.
            on_poll: Awaited with each non-terminal state.

        Returns:
            The terminal PredictionResult.

        Raises:
            ReplicateAPIError: If creating or polling the prediction fails.
            ValueError: If the model identifier is malformed.
        """
        logger.debug("Running prediction on %s", model)
        result = PredictionResult.from_api(
            await self.create_prediction(model, model_input)
        )

        while not result.status.is_terminal:
            if on_poll is not None:
                await on_poll(result)
            if await self._wait(cancellation_token):
                return await self._cancel(result)
            result = PredictionResult.from_api(await self.get_prediction(result.id))

        logger.debug("Prediction %s finished: %s", result.id, result.status.value)
        return result

    async def _wait(self, token: CancellationToken | None) -> bool:
        if token is None:
            await asyncio.sleep(self.poll_interval)
            return False
        return await token.sleep(self.poll_interval)

    async def _cancel(self, result: PredictionResult) -> PredictionResult:
        logger.info("Canceling prediction %s", result.id)
        try:
            result = PredictionResult.from_api(await self.cancel_prediction(result.id))
        except ReplicateAPIError as e:
            logger.warning("Failed to cancel prediction %s: %s", result.id, e)
        return replace(result, status=PredictionStatus.CANCELED)


def _error_detail(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return response.text or None
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("title")
        return str(detail) if detail else None
    return None


__all__ = [
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_SEARCH_LIMIT",
    "DEFAULT_TIMEOUT",
    "PollCallback",
    "ReplicateAPIError",
    "ReplicateClient",
    "split_model_id",
]
