"""
Per-(vehicle, stop) ETA pipeline.

distance -> baseline -> calibration (or heuristics) -> fusion -> confidence

The pipeline holds no mutable state, so one instance is shared by all
workers of a batch.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from transit_eta.config import settings
from transit_eta.core.calibration import HistoricalCalibrator
from transit_eta.core.confidence import ConfidenceScorer
from transit_eta.core.fusion import FusionResult, FusionStage
from transit_eta.core.geo import baseline_minutes, haversine_km
from transit_eta.models.prediction import PredictionRecord
from transit_eta.models.transit import Stop, VehiclePosition
from transit_eta.oracle.route_oracle import RouteOracleInterface


@dataclass
class StopPrediction:
    """
    Everything the pipeline computed for one (vehicle, stop) pair.

    Attributes:
        record: The PredictionRecord to persist.
        distance_km: Straight-line distance to the stop.
        baseline_minutes: Naive ETA before calibration.
        internal_minutes: Calibrated or heuristic ETA.
        fusion: Fusion outcome, including any oracle error.
    """

    record: PredictionRecord
    distance_km: float
    baseline_minutes: float
    internal_minutes: float
    fusion: FusionResult

    @property
    def used_oracle(self) -> bool:
        return self.fusion.used_oracle

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "vehicle_id": self.record.vehicle_id,
            "stop_id": self.record.stop_id,
            "distance_km": self.distance_km,
            "baseline_minutes": self.baseline_minutes,
            "internal_minutes": self.internal_minutes,
            "predicted_eta_minutes": self.record.predicted_eta_minutes,
            "confidence_score": self.record.confidence_score,
            **{f"fusion_{k}": v for k, v in self.fusion.to_dict().items()},
        }


class EtaPipeline:
    """
    Runs the full estimate for a single vehicle and stop.

    Example:
        pipeline = EtaPipeline(
            calibrator=HistoricalCalibrator(store),
            fusion=FusionStage(OpenRouteServiceClient()),
        )
        prediction = pipeline.predict(position, stop)
    """

    def __init__(
        self,
        calibrator: HistoricalCalibrator,
        fusion: FusionStage,
        scorer: Optional[ConfidenceScorer] = None,
        model_version: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._calibrator = calibrator
        self._fusion = fusion
        self._scorer = scorer or ConfidenceScorer()
        self._model_version = model_version or settings.MODEL_VERSION
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def oracle(self) -> RouteOracleInterface:
        return self._fusion.oracle

    def predict(self, position: VehiclePosition, stop: Stop) -> StopPrediction:
        """
        Estimate the ETA of `position`'s vehicle at `stop`.

        Oracle failures are absorbed by the fusion stage; store failures
        while reading history are absorbed by the calibrator.

        Returns:
            StopPrediction with a bounded PredictionRecord.
        """
        distance_km = haversine_km(position.coordinates, stop.coordinates)
        baseline = baseline_minutes(distance_km, position.speed_kmh)
        internal = self._calibrator.calibrate(baseline, position, stop.stop_id)
        fusion = self._fusion.fuse(internal, position.coordinates, stop.coordinates)

        confidence = self._scorer.score(distance_km, position.speed_kmh)
        if fusion.confidence_factor != 1.0:
            confidence = self._scorer.penalize(confidence, fusion.confidence_factor)

        record = PredictionRecord(
            vehicle_id=position.vehicle_id,
            stop_id=stop.stop_id,
            predicted_eta_minutes=fusion.eta_minutes,
            confidence_score=confidence,
            model_version=self._model_version,
            prediction_timestamp=self._clock(),
            stop_sequence=stop.sequence,
        )
        return StopPrediction(
            record=record,
            distance_km=distance_km,
            baseline_minutes=baseline,
            internal_minutes=internal,
            fusion=fusion,
        )
