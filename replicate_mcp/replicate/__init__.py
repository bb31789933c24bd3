"""Replicate API access.

This module handles:
- Searching models and reading their input schemas
- Running predictions and polling them to completion
- Canceling predictions when the MCP caller cancels
"""

from replicate_mcp.replicate.client import (
    ReplicateAPIError,
    ReplicateClient,
    split_model_id,
)
from replicate_mcp.replicate.models import (
    ModelInputSchema,
    ModelSearchResult,
    PredictionResult,
)

__all__ = [
    # Client
    "ReplicateAPIError",
    "ReplicateClient",
    "split_model_id",
    # Models
    "ModelInputSchema",
    "ModelSearchResult",
    "PredictionResult",
]
