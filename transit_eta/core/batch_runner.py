"""
Batch Runner - Produces ETA predictions for every active vehicle.

One invocation of the runner is one scheduled batch:
1. Load active vehicles (failure aborts the run)
2. For each vehicle, load its route's stops (failure skips the vehicle)
3. Predict the first stops of each route through the EtaPipeline
4. Persist all predictions in one batch write
5. Update each vehicle's live next-stop ETA

Vehicles are processed by a bounded worker pool. Every per-item problem
is isolated and reported through the BatchSummary and the logs.
"""

import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import pandas as pd

from transit_eta.config import LIVE_ETA_POLICIES, settings
from transit_eta.core.calibration import HistoricalCalibrator
from transit_eta.core.fusion import FusionStage
from transit_eta.core.pipeline import EtaPipeline
from transit_eta.logging_config import LoggerAdapter, event_logger, get_logger
from transit_eta.models.prediction import PredictionRecord
from transit_eta.models.transit import VehiclePosition
from transit_eta.oracle.route_oracle import RouteOracleInterface
from transit_eta.stores.base import (
    LiveStateStore,
    PositionSource,
    PredictionWriter,
    RouteTopology,
    StoreError,
)

logger = get_logger(__name__)


class BatchAbortedError(RuntimeError):
    """The run could not start or could not load its vehicles."""


class RunState(str, Enum):
    """Stages of a batch run."""

    INIT = "INIT"
    FETCH_STOPS = "FETCH_STOPS"
    PREDICT = "PREDICT"
    PERSIST = "PERSIST"
    UPDATE_LIVE = "UPDATE_LIVE"
    COMPLETE = "COMPLETE"


class ItemOutcome(str, Enum):
    """What happened to one vehicle or (vehicle, stop) item."""

    SUCCESS = "SUCCESS"      # fused with the oracle
    FALLBACK = "FALLBACK"    # internal estimate only
    SKIPPED = "SKIPPED"      # vehicle had no usable route
    FAILED = "FAILED"        # unexpected error for this stop


@dataclass
class ItemResult:
    """Result of one pipeline item."""

    vehicle_id: str
    outcome: ItemOutcome
    stop_id: Optional[str] = None
    record: Optional[PredictionRecord] = None
    reason: Optional[str] = None

    @property
    def has_prediction(self) -> bool:
        return self.record is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "vehicle_id": self.vehicle_id,
            "stop_id": self.stop_id,
            "outcome": self.outcome.value,
            "predicted_eta_minutes": self.record.predicted_eta_minutes if self.record else None,
            "confidence_score": self.record.confidence_score if self.record else None,
            "reason": self.reason,
        }


@dataclass
class BatchSummary:
    """
    Aggregate result of a batch run.

    This is the operator-facing output; per-item detail beyond the
    counters lives in the logs.
    """

    run_id: str
    items: List[ItemResult] = field(default_factory=list)
    state: RunState = RunState.INIT
    persisted: bool = False
    live_updates: int = 0
    live_update_failures: int = 0
    cancelled: bool = False
    duration_ms: float = 0.0

    @property
    def records(self) -> List[PredictionRecord]:
        return [item.record for item in self.items if item.record is not None]

    @property
    def predictions_generated(self) -> int:
        return len(self.records)

    def count(self, outcome: ItemOutcome) -> int:
        return sum(1 for item in self.items if item.outcome == outcome)

    @property
    def fallback_count(self) -> int:
        return self.count(ItemOutcome.FALLBACK)

    @property
    def skipped_vehicles(self) -> int:
        return self.count(ItemOutcome.SKIPPED)

    @property
    def failed_items(self) -> int:
        return self.count(ItemOutcome.FAILED)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "run_id": self.run_id,
            "state": self.state.value,
            "predictions": self.predictions_generated,
            "fallbacks": self.fallback_count,
            "skipped_vehicles": self.skipped_vehicles,
            "failed_items": self.failed_items,
            "persisted": self.persisted,
            "live_updates": self.live_updates,
            "live_update_failures": self.live_update_failures,
            "cancelled": self.cancelled,
            "duration_ms": self.duration_ms,
        }

    def to_response(self) -> Dict[str, Any]:
        """Body returned to the scheduler or webhook that triggered the run."""
        return {
            "message": f"Generated {self.predictions_generated} ETA predictions",
            "predictions": self.predictions_generated,
        }

    def to_dataframe(self) -> pd.DataFrame:
        """One row per item, for inspecting a run."""
        return pd.DataFrame(
            [item.to_dict() for item in self.items],
            columns=[
                "vehicle_id", "stop_id", "outcome",
                "predicted_eta_minutes", "confidence_score", "reason",
            ],
        )


class BatchRunner:
    """
    Orchestrates one ETA batch over all active vehicles.

    Uses dependency injection for every collaborator, so the same runner
    works against the REST store in production and the in-memory store
    in tests.

    Example:
        runner = BatchRunner.from_store(store, OpenRouteServiceClient())
        summary = runner.run()
        print(summary.to_response()["message"])
    """

    def __init__(
        self,
        positions: PositionSource,
        topology: RouteTopology,
        writer: PredictionWriter,
        live_state: LiveStateStore,
        pipeline: EtaPipeline,
        stops_per_vehicle: Optional[int] = None,
        max_workers: Optional[int] = None,
        live_eta_policy: Optional[str] = None,
    ) -> None:
        """
        Initialize the BatchRunner.

        Args:
            positions: Source of active vehicle positions.
            topology: Source of route stop sequences.
            writer: Sink for the batch of new predictions.
            live_state: Store holding each vehicle's next-stop ETA.
            pipeline: Per-(vehicle, stop) estimator.
            stops_per_vehicle: Stops predicted per route. Defaults to config.
            max_workers: Worker pool size. Defaults to config.
            live_eta_policy: last_processed or min_sequence. Defaults to config.

        Raises:
            ValueError: If live_eta_policy is not a known policy.
        """
        self._positions = positions
        self._topology = topology
        self._writer = writer
        self._live_state = live_state
        self._pipeline = pipeline
        self._stops_per_vehicle = settings.STOPS_PER_VEHICLE if stops_per_vehicle is None else stops_per_vehicle
        self._max_workers = settings.MAX_WORKERS if max_workers is None else max_workers
        self._live_eta_policy = (live_eta_policy or settings.LIVE_ETA_POLICY).lower()
        if self._live_eta_policy not in LIVE_ETA_POLICIES:
            raise ValueError(f"live_eta_policy must be one of {LIVE_ETA_POLICIES}")
        self.state = RunState.INIT

    @classmethod
    def from_store(cls, store: Any, oracle: RouteOracleInterface, **kwargs: Any) -> "BatchRunner":
        """
        Wire a runner whose collaborators are all served by one store.

        Args:
            store: Object implementing every store protocol.
            oracle: Route oracle used by the fusion stage.
            **kwargs: Passed to the constructor.
        """
        clock = kwargs.pop("clock", None)
        pipeline = EtaPipeline(
            calibrator=HistoricalCalibrator(store, clock=clock),
            fusion=FusionStage(oracle),
        )
        return cls(
            positions=store,
            topology=store,
            writer=store,
            live_state=store,
            pipeline=pipeline,
            **kwargs,
        )

    def _transition(self, state: RunState, log: LoggerAdapter) -> None:
        self.state = state
        log.debug("Batch state changed", extra={"state": state.value})

    def run(self, cancel_event: Optional[threading.Event] = None) -> BatchSummary:
        """
        Execute one batch.

        Args:
            cancel_event: When set, no further vehicles or stops are
                started. Predictions already computed are still written.

        Returns:
            BatchSummary in state COMPLETE.

        Raises:
            BatchAbortedError: If oracle credentials are missing or the
                active vehicles cannot be loaded.
        """
        started = time.perf_counter()
        run_id = uuid.uuid4().hex
        log = LoggerAdapter(logger, {"run_id": run_id})
        cancel_event = cancel_event or threading.Event()
        summary = BatchSummary(run_id=run_id)

        self._transition(RunState.INIT, log)
        if not self._pipeline.oracle.is_configured():
            raise BatchAbortedError("Route oracle credentials not configured")

        try:
            vehicles = self._positions.fetch_active_vehicles()
        except StoreError as e:
            log.error("Failed to fetch active vehicles", extra={"error": str(e)})
            raise BatchAbortedError(f"Error fetching vehicle positions: {e}") from e

        event_logger.batch_started(run_id, len(vehicles))

        self._transition(RunState.FETCH_STOPS, log)
        with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            futures = [
                pool.submit(self._process_vehicle, run_id, vehicle, cancel_event)
                for vehicle in vehicles
            ]
            # Collected in submission order so the summary is deterministic.
            for future in futures:
                summary.items.extend(future.result())

        summary.cancelled = cancel_event.is_set()

        self._transition(RunState.PERSIST, log)
        summary.persisted = self._persist(run_id, summary.records)

        self._transition(RunState.UPDATE_LIVE, log)
        self._update_live_state(run_id, summary)

        summary.duration_ms = (time.perf_counter() - started) * 1000
        self._transition(RunState.COMPLETE, log)
        summary.state = RunState.COMPLETE

        event_logger.batch_completed(
            run_id,
            predictions=summary.predictions_generated,
            fallbacks=summary.fallback_count,
            skipped_vehicles=summary.skipped_vehicles,
            duration_ms=summary.duration_ms,
        )
        return summary

    def _skip(self, run_id: str, vehicle: VehiclePosition, reason: str) -> List[ItemResult]:
        event_logger.vehicle_skipped(run_id, vehicle.vehicle_id, reason)
        return [ItemResult(vehicle_id=vehicle.vehicle_id, outcome=ItemOutcome.SKIPPED, reason=reason)]

    def _process_vehicle(
        self,
        run_id: str,
        vehicle: VehiclePosition,
        cancel_event: threading.Event,
    ) -> List[ItemResult]:
        """Predict the upcoming stops of one vehicle; collaborator errors become item results."""
        if cancel_event.is_set():
            return []

        if not vehicle.has_route:
            return self._skip(run_id, vehicle, "no route assigned")

        try:
            route = self._topology.fetch_route_stops(vehicle.route_id)
        except StoreError as e:
            return self._skip(run_id, vehicle, f"stop sequence unavailable: {e}")
        except Exception as e:
            logger.exception(
                "Stop sequence fetch failed",
                extra={"run_id": run_id, "vehicle_id": vehicle.vehicle_id, "route_id": vehicle.route_id},
            )
            return self._skip(run_id, vehicle, f"stop sequence unavailable: {e}")

        if route.is_empty:
            return self._skip(run_id, vehicle, "empty stop sequence")

        results: List[ItemResult] = []
        for stop in route.upcoming(self._stops_per_vehicle):
            if cancel_event.is_set():
                break
            try:
                prediction = self._pipeline.predict(vehicle, stop)
            except Exception as e:
                logger.exception(
                    "Prediction failed",
                    extra={"run_id": run_id, "vehicle_id": vehicle.vehicle_id, "stop_id": stop.stop_id},
                )
                results.append(ItemResult(
                    vehicle_id=vehicle.vehicle_id,
                    stop_id=stop.stop_id,
                    outcome=ItemOutcome.FAILED,
                    reason=str(e),
                ))
                continue

            if prediction.used_oracle:
                outcome = ItemOutcome.SUCCESS
            else:
                outcome = ItemOutcome.FALLBACK
                event_logger.oracle_fallback(
                    run_id, vehicle.vehicle_id, stop.stop_id, prediction.fusion.oracle_error or "",
                )

            logger.debug("Stop predicted", extra={"run_id": run_id, **prediction.to_dict()})
            results.append(ItemResult(
                vehicle_id=vehicle.vehicle_id,
                stop_id=stop.stop_id,
                outcome=outcome,
                record=prediction.record,
            ))
        return results

    def _persist(self, run_id: str, records: List[PredictionRecord]) -> bool:
        if not records:
            return False
        try:
            self._writer.insert_predictions(records)
        except Exception as e:
            event_logger.write_failed(run_id, "insert_predictions", str(e))
            return False
        event_logger.predictions_persisted(run_id, len(records))
        return True

    def select_live_records(self, records: List[PredictionRecord]) -> Dict[str, PredictionRecord]:
        """
        Pick the record that feeds each vehicle's live next-stop ETA.

        last_processed keeps the last record computed for the vehicle
        (its highest predicted stop); min_sequence keeps the record for
        the lowest stop sequence.
        """
        chosen: Dict[str, PredictionRecord] = {}
        for record in records:
            current = chosen.get(record.vehicle_id)
            if current is None or self._live_eta_policy == "last_processed":
                chosen[record.vehicle_id] = record
            elif (record.stop_sequence or 0) < (current.stop_sequence or 0):
                chosen[record.vehicle_id] = record
        return chosen

    def _update_live_state(self, run_id: str, summary: BatchSummary) -> None:
        for vehicle_id, record in self.select_live_records(summary.records).items():
            try:
                self._live_state.update_next_stop_eta(vehicle_id, record.predicted_eta_minutes)
            except Exception as e:
                summary.live_update_failures += 1
                event_logger.write_failed(run_id, "update_next_stop_eta", str(e), vehicle_id=vehicle_id)
                continue
            summary.live_updates += 1
