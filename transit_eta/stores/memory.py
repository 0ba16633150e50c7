"""
In-memory transit store.

Implements every collaborator protocol over plain Python containers.
Used by the test suite and for local runs against CSV snapshots.
"""

import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

import pandas as pd

from transit_eta.logging_config import get_logger
from transit_eta.models.prediction import HistoricalSample, PredictionRecord
from transit_eta.models.transit import RouteStopSequence, Stop, VehiclePosition
from transit_eta.stores.base import StoreError

logger = get_logger(__name__)

VEHICLE_COLUMNS = ["vehicle_id", "route_id", "latitude", "longitude", "speed_kmh", "crowd_level"]
STOP_COLUMNS = ["route_id", "stop_id", "latitude", "longitude", "sequence"]


def _none_if_nan(value):
    return None if pd.isna(value) else value


class InMemoryTransitStore:
    """
    Thread-safe in-memory implementation of all store protocols.

    Example:
        store = InMemoryTransitStore(vehicles=[...], routes={"r1": RouteStopSequence(...)})
        runner = BatchRunner.from_store(store, oracle)
    """

    def __init__(
        self,
        vehicles: Optional[Iterable[VehiclePosition]] = None,
        routes: Optional[Dict[str, RouteStopSequence]] = None,
        predictions: Optional[Iterable[PredictionRecord]] = None,
    ) -> None:
        self._lock = threading.Lock()
        self._vehicles: Dict[str, VehiclePosition] = {v.vehicle_id: v for v in vehicles or []}
        self._routes: Dict[str, RouteStopSequence] = dict(routes or {})
        self._predictions: List[PredictionRecord] = list(predictions or [])
        self.live_eta: Dict[str, int] = {}

    # ------------------------------------------------------------------
    # Collaborator protocols
    # ------------------------------------------------------------------

    def fetch_active_vehicles(self) -> List[VehiclePosition]:
        with self._lock:
            return list(self._vehicles.values())

    def fetch_route_stops(self, route_id: str) -> RouteStopSequence:
        with self._lock:
            route = self._routes.get(route_id)
        if route is None:
            raise StoreError(f"Unknown route: {route_id}")
        return route

    def fetch_history(self, vehicle_id: str, stop_id: str, limit: int) -> List[HistoricalSample]:
        with self._lock:
            matches = [
                p for p in self._predictions
                if p.vehicle_id == vehicle_id and p.stop_id == stop_id and p.has_arrived
            ]
        matches.sort(key=lambda p: p.prediction_timestamp, reverse=True)
        return [HistoricalSample.model_validate(p.model_dump()) for p in matches[:limit]]

    def insert_predictions(self, records: Sequence[PredictionRecord]) -> None:
        with self._lock:
            self._predictions.extend(records)

    def update_next_stop_eta(self, vehicle_id: str, eta_minutes: int) -> None:
        with self._lock:
            if vehicle_id not in self._vehicles:
                raise StoreError(f"Unknown vehicle: {vehicle_id}")
            self.live_eta[vehicle_id] = eta_minutes

    # ------------------------------------------------------------------
    # Downstream queries and arrival detection
    # ------------------------------------------------------------------

    def nearest_predictions(self, route_id: str, stop_id: str, limit: int = 3) -> List[PredictionRecord]:
        """Predictions at `stop_id` for vehicles on `route_id`, soonest first."""
        with self._lock:
            on_route = {v.vehicle_id for v in self._vehicles.values() if v.route_id == route_id}
            matches = [
                p for p in self._predictions
                if p.stop_id == stop_id and p.vehicle_id in on_route
            ]
        matches.sort(key=lambda p: p.predicted_eta_minutes)
        return matches[:limit]

    def record_arrival(self, vehicle_id: str, stop_id: str, arrived_at: datetime) -> int:
        """
        Fill in actual_arrival on open predictions for the pair.

        Returns:
            Number of records updated.
        """
        updated = 0
        with self._lock:
            for i, p in enumerate(self._predictions):
                if p.vehicle_id == vehicle_id and p.stop_id == stop_id and not p.has_arrived:
                    self._predictions[i] = p.model_copy(update={"actual_arrival": arrived_at})
                    updated += 1
        return updated

    @property
    def predictions(self) -> List[PredictionRecord]:
        with self._lock:
            return list(self._predictions)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def from_dataframes(
        cls,
        vehicles: pd.DataFrame,
        stops: pd.DataFrame,
        predictions: Optional[pd.DataFrame] = None,
    ) -> "InMemoryTransitStore":
        """
        Build a store from tabular snapshots.

        Args:
            vehicles: Columns vehicle_id, route_id, latitude, longitude,
                speed_kmh, crowd_level.
            stops: Columns route_id, stop_id, latitude, longitude, sequence.
            predictions: Optional PredictionRecord columns.

        Raises:
            ValueError: If a required column is missing.
            ValidationError: If any row fails model validation.
        """
        for name, df, required in (("vehicles", vehicles, VEHICLE_COLUMNS), ("stops", stops, STOP_COLUMNS)):
            missing = [c for c in required if c not in df.columns]
            if missing:
                raise ValueError(f"{name} snapshot missing columns: {missing}")

        vehicle_models = [
            VehiclePosition(
                vehicle_id=str(row["vehicle_id"]),
                route_id=None if pd.isna(row["route_id"]) else str(row["route_id"]),
                latitude=row["latitude"],
                longitude=row["longitude"],
                speed_kmh=_none_if_nan(row["speed_kmh"]),
                crowd_level=_none_if_nan(row["crowd_level"]),
            )
            for _, row in vehicles.iterrows()
        ]

        routes: Dict[str, RouteStopSequence] = {}
        for route_id, group in stops.groupby("route_id"):
            routes[str(route_id)] = RouteStopSequence(
                route_id=str(route_id),
                stops=[
                    Stop(
                        stop_id=str(row["stop_id"]),
                        latitude=row["latitude"],
                        longitude=row["longitude"],
                        sequence=int(row["sequence"]),
                    )
                    for _, row in group.iterrows()
                ],
            )

        records: List[PredictionRecord] = []
        if predictions is not None and not predictions.empty:
            for row in predictions.to_dict(orient="records"):
                records.append(PredictionRecord(**{k: _none_if_nan(v) for k, v in row.items()}))

        logger.info(
            "Store loaded",
            extra={
                "n_vehicles": len(vehicle_models),
                "n_routes": len(routes),
                "n_predictions": len(records),
            },
        )
        return cls(vehicles=vehicle_models, routes=routes, predictions=records)

    @classmethod
    def from_csv(cls, directory: Union[str, Path]) -> "InMemoryTransitStore":
        """
        Load vehicles.csv, stops.csv and optional predictions.csv.

        Raises:
            FileNotFoundError: If vehicles.csv or stops.csv is missing.
        """
        directory = Path(directory)
        vehicles = pd.read_csv(directory / "vehicles.csv", dtype={"vehicle_id": str, "route_id": str})
        stops = pd.read_csv(directory / "stops.csv", dtype={"route_id": str, "stop_id": str})

        predictions_path = directory / "predictions.csv"
        predictions = None
        if predictions_path.exists():
            predictions = pd.read_csv(
                predictions_path,
                dtype={"vehicle_id": str, "stop_id": str},
                parse_dates=["prediction_timestamp", "actual_arrival"],
            )
        return cls.from_dataframes(vehicles, stops, predictions)

    def to_csv(self, directory: Union[str, Path]) -> None:
        """Write predictions.csv so a later run can calibrate from it."""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        pd.DataFrame(
            [p.model_dump() for p in self.predictions],
            columns=list(PredictionRecord.model_fields),
        ).to_csv(directory / "predictions.csv", index=False)
