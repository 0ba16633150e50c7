"""
Pytest fixtures shared across all tests.

Provides a pinned clock, sample vehicles and routes, an in-memory store
and mock route oracles.
"""

from datetime import datetime, timezone
from typing import Callable, Dict, List

import pytest

from transit_eta.core.batch_runner import BatchRunner
from transit_eta.core.calibration import HistoricalCalibrator
from transit_eta.core.fusion import FusionStage
from transit_eta.core.pipeline import EtaPipeline
from transit_eta.models.transit import CrowdLevel, RouteStopSequence, Stop, VehiclePosition
from transit_eta.oracle.route_oracle import MockRouteOracle
from transit_eta.stores.memory import InMemoryTransitStore

# Midday: neither rush hour nor night.
NOON = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

LOWER_MANHATTAN = (40.7128, -74.0060)


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Provide a clock pinned to a non-rush, non-night hour."""
    return lambda: NOON


@pytest.fixture
def vehicle() -> VehiclePosition:
    """Provide a vehicle in lower Manhattan at a neutral speed."""
    return VehiclePosition(
        vehicle_id="bus-1",
        route_id="r1",
        latitude=LOWER_MANHATTAN[0],
        longitude=LOWER_MANHATTAN[1],
        speed_kmh=25.0,
        crowd_level=CrowdLevel.MEDIUM,
    )


@pytest.fixture
def near_stop() -> Stop:
    """Provide a stop roughly 2 km from the vehicle."""
    return Stop(stop_id="s1", latitude=40.7282, longitude=-73.9942, sequence=1)


@pytest.fixture
def route_r1(near_stop: Stop) -> RouteStopSequence:
    """Provide a four-stop route, listed out of sequence order."""
    return RouteStopSequence(
        route_id="r1",
        stops=[
            Stop(stop_id="s3", latitude=40.7484, longitude=-73.9857, sequence=3),
            near_stop,
            Stop(stop_id="s4", latitude=40.7061, longitude=-74.0087, sequence=4),
            Stop(stop_id="s2", latitude=40.7589, longitude=-73.9851, sequence=2),
        ],
    )


@pytest.fixture
def fleet(vehicle: VehiclePosition) -> List[VehiclePosition]:
    """Provide vehicles covering every per-vehicle path of a batch."""
    return [
        vehicle,
        VehiclePosition(
            vehicle_id="bus-2", route_id="r1",
            latitude=40.7306, longitude=-73.9866, speed_kmh=45.0, crowd_level="high",
        ),
        VehiclePosition(
            vehicle_id="bus-3", route_id=None,
            latitude=40.7306, longitude=-73.9866, speed_kmh=10.0,
        ),
        VehiclePosition(
            vehicle_id="bus-4", route_id="r9",
            latitude=40.7306, longitude=-73.9866, speed_kmh=10.0,
        ),
        VehiclePosition(
            vehicle_id="bus-5", route_id="r2",
            latitude=40.7306, longitude=-73.9866, speed_kmh=10.0,
        ),
    ]


@pytest.fixture
def routes(route_r1: RouteStopSequence) -> Dict[str, RouteStopSequence]:
    """Provide r1 with stops and r2 with none; r9 is unknown."""
    return {
        "r1": route_r1,
        "r2": RouteStopSequence(route_id="r2", stops=[]),
    }


@pytest.fixture
def store(fleet: List[VehiclePosition], routes: Dict[str, RouteStopSequence]) -> InMemoryTransitStore:
    """Provide an in-memory store loaded with the sample fleet."""
    return InMemoryTransitStore(vehicles=fleet, routes=routes)


@pytest.fixture
def empty_store() -> InMemoryTransitStore:
    """Provide a store with no active vehicles."""
    return InMemoryTransitStore()


@pytest.fixture
def mock_oracle() -> MockRouteOracle:
    """Provide an oracle that always answers 20 minutes."""
    return MockRouteOracle(minutes=20.0)


@pytest.fixture
def failing_oracle() -> MockRouteOracle:
    """Provide an oracle that fails on every call."""
    return MockRouteOracle(fail=True)


@pytest.fixture
def pipeline_factory(clock: Callable[[], datetime]) -> Callable[..., EtaPipeline]:
    """Provide a factory building pipelines over a store and oracle."""
    def build(store: InMemoryTransitStore, oracle: MockRouteOracle) -> EtaPipeline:
        return EtaPipeline(
            calibrator=HistoricalCalibrator(store, clock=clock),
            fusion=FusionStage(oracle),
            clock=clock,
        )
    return build


@pytest.fixture
def runner(
    store: InMemoryTransitStore,
    mock_oracle: MockRouteOracle,
    clock: Callable[[], datetime],
) -> BatchRunner:
    """Provide a BatchRunner over the sample store with a working oracle."""
    return BatchRunner.from_store(store, mock_oracle, clock=clock, max_workers=4)
