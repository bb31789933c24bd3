"""Tests for shared types module."""

import pytest

from replicate_mcp.types import PredictionStatus


class TestPredictionStatus:
    """Test PredictionStatus parsing and terminal states."""

    def test_values(self) -> None:
        assert PredictionStatus.STARTING.value == "starting"
        assert PredictionStatus.PROCESSING.value == "processing"
        assert PredictionStatus.SUCCEEDED.value == "succeeded"
        assert PredictionStatus.FAILED.value == "failed"
        assert PredictionStatus.CANCELED.value == "canceled"

    def test_terminal_states(self) -> None:
        """Only succeeded, failed and canceled are terminal."""
        terminal = {s for s in PredictionStatus if s.is_terminal}
        assert terminal == {
            PredictionStatus.SUCCEEDED,
            PredictionStatus.FAILED,
            PredictionStatus.CANCELED,
        }

    def test_aborted_maps_to_canceled(self) -> None:
        assert PredictionStatus.parse("aborted") is PredictionStatus.CANCELED

    def test_unknown_status_rejected(self) -> None:
        with pytest.raises(ValueError):
            PredictionStatus.parse("exploded")
