"""Shared type definitions for replicate_mcp.

This module contains enums and type aliases shared across subpackages
to avoid circular imports.
"""

from enum import Enum
from typing import TypeAlias

# JSON-RPC request identifiers are caller-supplied strings or numbers
RequestId: TypeAlias = str | int


class PredictionStatus(str, Enum):
    """Status of a Replicate prediction."""

    STARTING = "starting"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        """Whether the prediction will not change status again."""
        return self in (
            PredictionStatus.SUCCEEDED,
            PredictionStatus.FAILED,
            PredictionStatus.CANCELED,
        )

    @classmethod
    def parse(cls, value: str) -> "PredictionStatus":
        """Normalize an upstream status string.

        ``aborted`` is reported for predictions stopped before they started
        and is folded into ``canceled``.
        """
        if value == "aborted":
            return cls.CANCELED
        return cls(value)


__all__ = [
    "PredictionStatus",
    "RequestId",
]
