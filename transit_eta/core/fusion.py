"""
Fusion of the internal estimate with the external route oracle.

When the oracle answers, both estimates are blended with fixed weights.
When it fails for any reason the internal estimate stands alone and the
confidence penalty is recorded on the result.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

from transit_eta.config import settings
from transit_eta.core.geo import LatLon
from transit_eta.oracle.route_oracle import RouteOracleError, RouteOracleInterface


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


@dataclass
class FusionResult:
    """
    Outcome of fusing one estimate.

    Attributes:
        eta_minutes: Final whole-minute ETA, at least 1.
        internal_minutes: Calibrated internal estimate.
        oracle_minutes: Oracle estimate, or None when it failed.
        confidence_factor: Multiplier to apply to the confidence score.
        oracle_error: Message of the oracle failure, if any.
    """

    eta_minutes: int
    internal_minutes: float
    oracle_minutes: Optional[float]
    confidence_factor: float
    oracle_error: Optional[str] = None

    @property
    def used_oracle(self) -> bool:
        return self.oracle_minutes is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "eta_minutes": self.eta_minutes,
            "internal_minutes": self.internal_minutes,
            "oracle_minutes": self.oracle_minutes,
            "confidence_factor": self.confidence_factor,
            "used_oracle": self.used_oracle,
            "oracle_error": self.oracle_error,
        }


class FusionStage:
    """
    Blends internal and oracle ETAs, degrading to internal-only.

    Example:
        stage = FusionStage(OpenRouteServiceClient())
        result = stage.fuse(10.0, start=(40.71, -74.00), end=(40.73, -73.99))
    """

    def __init__(
        self,
        oracle: RouteOracleInterface,
        internal_weight: Optional[float] = None,
        oracle_weight: Optional[float] = None,
        fallback_penalty: Optional[float] = None,
    ) -> None:
        self._oracle = oracle
        self._internal_weight = settings.INTERNAL_WEIGHT if internal_weight is None else internal_weight
        self._oracle_weight = settings.ORACLE_WEIGHT if oracle_weight is None else oracle_weight
        self._fallback_penalty = (
            settings.FALLBACK_CONFIDENCE_PENALTY if fallback_penalty is None else fallback_penalty
        )

    @property
    def oracle(self) -> RouteOracleInterface:
        return self._oracle

    def blend(self, internal_minutes: float, oracle_minutes: float) -> int:
        weighted = internal_minutes * self._internal_weight + oracle_minutes * self._oracle_weight
        return max(round_half_up(weighted), 1)

    def fallback(self, internal_minutes: float) -> int:
        return max(round_half_up(internal_minutes), 1)

    def fuse(self, internal_minutes: float, start: LatLon, end: LatLon) -> FusionResult:
        """
        Produce the final ETA for one (vehicle, stop) pair.

        Args:
            internal_minutes: Calibrated internal estimate.
            start: Vehicle (lat, lon).
            end: Stop (lat, lon).

        Returns:
            FusionResult; oracle failures never propagate.
        """
        try:
            oracle_minutes = self._oracle.estimate_minutes(start, end)
        except RouteOracleError as e:
            return FusionResult(
                eta_minutes=self.fallback(internal_minutes),
                internal_minutes=internal_minutes,
                oracle_minutes=None,
                confidence_factor=self._fallback_penalty,
                oracle_error=str(e),
            )

        return FusionResult(
            eta_minutes=self.blend(internal_minutes, oracle_minutes),
            internal_minutes=internal_minutes,
            oracle_minutes=oracle_minutes,
            confidence_factor=1.0,
        )
