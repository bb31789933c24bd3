"""Pydantic schemas for MCP tool inputs and results.

Input models double as the tools' published ``inputSchema`` and as the
validator applied before a handler runs. Results use the MCP SDK's
``CallToolResult`` so the wire shape follows the protocol types.
"""

import re
from typing import Annotated, Any

from mcp.types import CallToolResult, TextContent
from pydantic import BaseModel, ConfigDict, Field, field_validator

MODEL_ID_PATTERN = r"^[^/]+/[^/]+$"

_MODEL_ID_RE = re.compile(MODEL_ID_PATTERN)

GENERATE_INPUT_DESCRIPTION = """Model input as JSON object. Key fields by task:

TEXT-TO-IMAGE:
  { "prompt": "user's exact prompt text", "aspect_ratio": "16:9" }

IMAGE EDITING:
  { "prompt": "edit instruction", "image": "https://source-image-url" }

MULTI-REFERENCE:
  { "prompt": "description", "image_input": ["https://url1", "https://url2"] }

Use search_models to find exact schema if unsure - parameters vary by model."""


class SearchModelsInput(BaseModel):
    """Arguments of the search_models tool."""

    model_config = ConfigDict(extra="forbid")

    query: Annotated[
        str,
        Field(
            description=(
                "Search query - model name, task type, or keywords "
                '(e.g., "flux", "image generation", "upscale")'
            ),
            json_schema_extra={"minLength": 1},
        ),
    ]

    @field_validator("query")
    @classmethod
    def _query_not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Query cannot be empty")
        return value


class GenerateImageInput(BaseModel):
    """Arguments of the generate_image tool."""

    model_config = ConfigDict(extra="forbid")

    model: Annotated[
        str,
        Field(
            description=(
                'Full model identifier in format "owner/name" '
                '(e.g., "black-forest-labs/flux-schnell"). Use search_models if unsure.'
            ),
            json_schema_extra={"minLength": 1, "pattern": MODEL_ID_PATTERN},
        ),
    ]
    input: Annotated[
        dict[str, Any],
        Field(description=GENERATE_INPUT_DESCRIPTION),
    ]

    @field_validator("model")
    @classmethod
    def _model_format(cls, value: str) -> str:
        if not value:
            raise ValueError("Model cannot be empty")
        if not _MODEL_ID_RE.match(value):
            raise ValueError(
                'Model must be in format "owner/name" '
                '(e.g., "black-forest-labs/flux-schnell")'
            )
        return value


def text_result(text: str, is_error: bool = False) -> CallToolResult:
    """Build a tool result with a single text block."""
    return CallToolResult(
        content=[TextContent(type="text", text=text)],
        isError=is_error,
    )


def error_result(title: str, body: str) -> CallToolResult:
    """Build an ``isError`` result with a markdown heading."""
    return text_result(f"## {title}\n\n{body}", is_error=True)


def dump_tool_result(result: CallToolResult) -> dict[str, Any]:
    """Serialize a tool result for the JSON-RPC response.

    ``isError`` is only present on failures.
    """
    payload = result.model_dump(mode="json", by_alias=True, exclude_none=True)
    if not result.isError:
        payload.pop("isError", None)
    return payload


__all__ = [
    "MODEL_ID_PATTERN",
    "GenerateImageInput",
    "SearchModelsInput",
    "dump_tool_result",
    "error_result",
    "text_result",
]
