"""
Unit tests for the FusionStage and ConfidenceScorer.
"""

import pytest

from transit_eta.core.confidence import ConfidenceScorer
from transit_eta.core.fusion import FusionStage, round_half_up
from transit_eta.oracle.route_oracle import MockRouteOracle

START = (40.7128, -74.0060)
END = (40.7282, -73.9942)


class TestRounding:
    """Tests for half-up rounding."""

    @pytest.mark.parametrize("value, expected", [
        (0.4, 0),
        (0.5, 1),
        (2.5, 3),
        (4.75, 5),
        (12.49, 12),
    ])
    def test_round_half_up(self, value: float, expected: int) -> None:
        """Test halves round up rather than to even."""
        assert round_half_up(value) == expected


class TestFusionStage:
    """Tests for blending and fallback."""

    def test_blend_with_oracle(self) -> None:
        """Test internal=10, oracle=20 fuses to 13."""
        oracle = MockRouteOracle(minutes=20.0)
        result = FusionStage(oracle).fuse(10.0, START, END)

        assert result.eta_minutes == 13
        assert result.used_oracle
        assert result.oracle_minutes == 20.0
        assert result.confidence_factor == 1.0
        assert oracle.calls == [(START, END)]

    def test_fallback_on_oracle_failure(self) -> None:
        """Test the internal estimate stands alone with a confidence penalty."""
        result = FusionStage(MockRouteOracle(fail=True)).fuse(9.4, START, END)

        assert result.eta_minutes == 9
        assert not result.used_oracle
        assert result.confidence_factor == pytest.approx(0.8)
        assert "unavailable" in result.oracle_error

    @pytest.mark.parametrize("fail", [True, False])
    def test_minimum_one_minute(self, fail: bool) -> None:
        """Test a vehicle at the stop still gets a one-minute ETA."""
        result = FusionStage(MockRouteOracle(minutes=0.0, fail=fail)).fuse(0.0, START, START)
        assert result.eta_minutes == 1

    def test_custom_weights(self) -> None:
        """Test weights are injectable."""
        stage = FusionStage(MockRouteOracle(minutes=30.0), internal_weight=0.5, oracle_weight=0.5)
        assert stage.fuse(10.0, START, END).eta_minutes == 20

    def test_to_dict(self) -> None:
        """Test the result serializes for logging."""
        result = FusionStage(MockRouteOracle(fail=True)).fuse(3.0, START, END)
        data = result.to_dict()

        assert data["eta_minutes"] == 3
        assert data["used_oracle"] is False
        assert data["oracle_minutes"] is None


class TestConfidenceScorer:
    """Tests for confidence scoring."""

    @pytest.fixture
    def scorer(self) -> ConfidenceScorer:
        return ConfidenceScorer(distance_scale_km=10.0, floor=0.1, ceiling=1.0)

    @pytest.mark.parametrize("distance, speed, expected", [
        (0.0, 30.0, 1.0),     # 1.0 * 1.1 capped
        (2.0, 30.0, 0.88),    # 0.8 * 1.1
        (20.0, 30.0, 0.33),   # floor 0.3 * 1.1
        (20.0, 0.0, 0.21),    # 0.3 * 0.7
        (5.0, 80.0, 0.5),
        (5.0, 60.0, 0.5),     # upper bound of stable range is exclusive
        (5.0, 5.0, 0.5),      # lower bound of stable range is exclusive
        (5.0, 2.0, 0.5),
        (5.0, 1.9, 0.35),
    ])
    def test_score(self, scorer: ConfidenceScorer, distance: float, speed: float, expected: float) -> None:
        """Test distance and speed regimes."""
        assert scorer.score(distance, speed) == pytest.approx(expected)

    def test_always_bounded(self, scorer: ConfidenceScorer) -> None:
        """Test scores stay in [0.1, 1.0] across distances and speeds."""
        for distance in [0.0, 0.5, 3.0, 9.99, 10.0, 50.0, 500.0]:
            for speed in [0.0, 1.0, 2.0, 5.0, 5.1, 30.0, 59.9, 60.0, 120.0]:
                score = scorer.score(distance, speed)
                assert 0.1 <= score <= 1.0
                assert 0.1 <= scorer.penalize(score, 0.8) <= 1.0

    def test_penalize(self, scorer: ConfidenceScorer) -> None:
        """Test the fallback penalty scales the score."""
        assert scorer.penalize(0.88, 0.8) == pytest.approx(0.704)

    def test_penalty_respects_floor(self, scorer: ConfidenceScorer) -> None:
        """Test a penalized score is clamped to the floor."""
        assert scorer.penalize(0.11, 0.5) == pytest.approx(0.1)
