"""Data models for Replicate API responses.

Upstream payloads are loosely typed JSON; these dataclasses hold the
normalized subset the MCP tools rely on.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from replicate_mcp.types import PredictionStatus

# Location of the Input schema in a model payload
INPUT_SCHEMA_PATH = (
    "latest_version",
    "openapi_schema",
    "components",
    "schemas",
    "Input",
)


@dataclass
class ModelInputSchema:
    """Input parameters accepted by a model version."""

    required: list[str] = field(default_factory=list)
    properties: dict[str, dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_openapi(cls, model_data: dict[str, Any]) -> ModelInputSchema | None:
        """Extract the Input schema from a model's latest version.

        Args:
            model_data: Model payload from ``GET /models/{owner}/{name}``.

        Returns:
            The input schema, or None if the model exposes none.
        """
        schema: Any = model_data
        for key in INPUT_SCHEMA_PATH:
            if not isinstance(schema, dict):
                return None
            schema = schema.get(key)
        if not schema or not isinstance(schema, dict):
            return None
        required = schema.get("required")
        if not isinstance(required, list):
            required = []
        properties = schema.get("properties")
        if not isinstance(properties, dict):
            properties = {}
        return cls(
            required=[name for name in required if isinstance(name, str)],
            properties={
                name: spec for name, spec in properties.items() if isinstance(spec, dict)
            },
        )


@dataclass
class ModelSearchResult:
    """A model returned by search, optionally enriched with its input schema."""

    owner: str
    name: str
    description: str | None = None
    run_count: int = 0
    input_schema: ModelInputSchema | None = None

    @property
    def model_id(self) -> str:
        """Identifier in ``owner/name`` form."""
        return f"{self.owner}/{self.name}"

    @classmethod
    def from_api(
        cls, data: dict[str, Any], input_schema: ModelInputSchema | None = None
    ) -> ModelSearchResult:
        return cls(
            owner=data["owner"],
            name=data["name"],
            description=data.get("description"),
            run_count=data.get("run_count") or 0,
            input_schema=input_schema,
        )


@dataclass
class PredictionResult:
    """Final (or latest polled) state of a prediction."""

    id: str
    status: PredictionStatus
    output: list[str] | None = None
    error: str | None = None
    predict_time: float | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> PredictionResult:
        """Normalize a prediction payload.

        - ``aborted`` becomes ``canceled``
        - error objects are JSON-encoded
        - a single output value is wrapped in a list
        """
        raw_error = data.get("error")
        if raw_error is None or isinstance(raw_error, str):
            error = raw_error
        else:
            error = json.dumps(raw_error)

        raw_output = data.get("output")
        if raw_output is None:
            output = None
        elif isinstance(raw_output, list):
            output = [str(item) for item in raw_output]
        else:
            output = [str(raw_output)]

        metrics = data.get("metrics") or {}
        return cls(
            id=data["id"],
            status=PredictionStatus.parse(data.get("status", "starting")),
            output=output,
            error=error or None,
            predict_time=metrics.get("predict_time"),
        )


__all__ = ["ModelInputSchema", "ModelSearchResult", "PredictionResult"]
