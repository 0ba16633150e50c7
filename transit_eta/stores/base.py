"""
Collaborator interfaces for the ETA engine.

Each protocol covers one concern of the data store. A single backend
may implement several of them; the engine only sees the protocols.
"""

from typing import List, Protocol, Sequence

from transit_eta.models.prediction import HistoricalSample, PredictionRecord
from transit_eta.models.transit import RouteStopSequence, VehiclePosition


class StoreError(RuntimeError):
    """A read or write against the data store failed."""


class PositionSource(Protocol):
    """Source of live vehicle positions."""

    def fetch_active_vehicles(self) -> List[VehiclePosition]:
        """
        Current positions of all active vehicles.

        Raises:
            StoreError: If the positions cannot be read.
        """
        ...


class RouteTopology(Protocol):
    """Route reference data."""

    def fetch_route_stops(self, route_id: str) -> RouteStopSequence:
        """
        Stops of a route in sequence order.

        Raises:
            StoreError: If the sequence cannot be read.
        """
        ...


class HistoricalStore(Protocol):
    """Past predictions whose actual arrival is known."""

    def fetch_history(self, vehicle_id: str, stop_id: str, limit: int) -> List[HistoricalSample]:
        """
        Most recent samples for a (vehicle, stop) pair, newest first.

        Raises:
            StoreError: If the history cannot be read.
        """
        ...


class PredictionWriter(Protocol):
    """Sink for new predictions."""

    def insert_predictions(self, records: Sequence[PredictionRecord]) -> None:
        """
        Persist a batch of predictions in one call.

        Raises:
            StoreError: If the insert fails.
        """
        ...


class LiveStateStore(Protocol):
    """Per-vehicle live fields read by the map layer."""

    def update_next_stop_eta(self, vehicle_id: str, eta_minutes: int) -> None:
        """
        Overwrite a vehicle's next-stop ETA.

        Raises:
            StoreError: If the update fails.
        """
        ...
