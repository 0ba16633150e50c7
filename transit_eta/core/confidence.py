"""
Confidence scoring for ETA predictions.

Closer stops and vehicles moving at ordinary operating speeds get
higher scores. Scores are always clamped to the configured bounds.
"""

from typing import Optional

import numpy as np

from transit_eta.config import settings


class ConfidenceScorer:
    """
    Scores an estimate from distance to the stop and the vehicle's speed.

    Example:
        scorer = ConfidenceScorer()
        scorer.score(distance_km=2.0, speed_kmh=30.0)  # 0.8 * 1.1 = 0.88
    """

    MIN_DISTANCE_SCORE = 0.3
    STABLE_SPEED_RANGE = (5.0, 60.0)
    STABLE_SPEED_FACTOR = 1.1
    STOPPED_SPEED_KMH = 2.0
    STOPPED_FACTOR = 0.7

    def __init__(
        self,
        distance_scale_km: Optional[float] = None,
        floor: Optional[float] = None,
        ceiling: Optional[float] = None,
    ) -> None:
        self._distance_scale_km = (
            settings.CONFIDENCE_DISTANCE_KM if distance_scale_km is None else distance_scale_km
        )
        self._floor = settings.CONFIDENCE_FLOOR if floor is None else floor
        self._ceiling = settings.CONFIDENCE_CEILING if ceiling is None else ceiling

    def clamp(self, value: float) -> float:
        return float(np.clip(value, self._floor, self._ceiling))

    def score(self, distance_km: float, speed_kmh: float) -> float:
        """
        Confidence in [floor, ceiling] for one prediction.

        Args:
            distance_km: Straight-line distance to the stop.
            speed_kmh: Current vehicle speed.

        Returns:
            Clamped confidence score.
        """
        confidence = max(self.MIN_DISTANCE_SCORE, 1 - distance_km / self._distance_scale_km)

        low, high = self.STABLE_SPEED_RANGE
        if low < speed_kmh < high:
            confidence *= self.STABLE_SPEED_FACTOR
        elif speed_kmh < self.STOPPED_SPEED_KMH:
            confidence *= self.STOPPED_FACTOR

        return self.clamp(confidence)

    def penalize(self, confidence: float, factor: float) -> float:
        """Scale an existing score down and clamp it again."""
        return self.clamp(confidence * factor)
