"""
Historical calibration of baseline ETAs.

Past predictions for the same (vehicle, stop) pair with a known arrival
give an average error that is added to the new baseline. Pairs without
history fall through to the heuristic adjuster.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence

import numpy as np

from transit_eta.config import settings
from transit_eta.core.heuristics import HeuristicAdjuster
from transit_eta.logging_config import get_logger
from transit_eta.models.prediction import HistoricalSample
from transit_eta.models.transit import VehiclePosition
from transit_eta.stores.base import HistoricalStore, StoreError

logger = get_logger(__name__)


def _aware_now() -> datetime:
    return datetime.now().astimezone()


def sample_error_minutes(sample: HistoricalSample, now: datetime) -> float:
    """
    Signed error of one historical prediction, in minutes.

    The predicted arrival is projected from `now` (the calibration time),
    not from the sample's own prediction timestamp.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    predicted_arrival = now + timedelta(minutes=sample.predicted_eta_minutes)
    return (sample.actual_arrival - predicted_arrival).total_seconds() / 60.0


class HistoricalCalibrator:
    """
    Corrects a baseline ETA using recorded prediction error.

    The history store is injected, as is the clock, so tests can pin
    both the samples and the calibration time.
    """

    def __init__(
        self,
        history: HistoricalStore,
        adjuster: Optional[HeuristicAdjuster] = None,
        history_limit: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._history = history
        self._adjuster = adjuster or HeuristicAdjuster()
        self._history_limit = settings.HISTORY_LIMIT if history_limit is None else history_limit
        self._clock = clock or _aware_now

    def load_samples(self, vehicle_id: str, stop_id: str) -> List[HistoricalSample]:
        """Most recent samples for the pair; a failed read yields none."""
        try:
            samples = self._history.fetch_history(vehicle_id, stop_id, self._history_limit)
        except StoreError as e:
            logger.warning(
                "History unavailable, using heuristics",
                extra={"vehicle_id": vehicle_id, "stop_id": stop_id, "error": str(e)},
            )
            return []
        return list(samples)[: self._history_limit]

    def average_error(self, samples: Sequence[HistoricalSample], now: datetime) -> float:
        errors = [sample_error_minutes(sample, now) for sample in samples]
        return float(np.mean(errors))

    def calibrate(
        self,
        baseline_minutes: float,
        position: VehiclePosition,
        stop_id: str,
    ) -> float:
        """
        Calibrated ETA in minutes for `position`'s vehicle at `stop_id`.

        With history the result is floored at one minute. Without it the
        heuristic adjuster's output is returned unchanged.
        """
        now = self._clock()
        samples = self.load_samples(position.vehicle_id, stop_id)

        if not samples:
            return self._adjuster.adjust(
                baseline_minutes,
                hour=now.hour,
                crowd_level=position.crowd_level,
                speed_kmh=position.speed_kmh,
            )

        avg_error = self.average_error(samples, now)
        logger.debug(
            "Applied historical correction",
            extra={
                "vehicle_id": position.vehicle_id,
                "stop_id": stop_id,
                "n_samples": len(samples),
                "avg_error_min": avg_error,
            },
        )
        return max(baseline_minutes + avg_error, 1.0)
