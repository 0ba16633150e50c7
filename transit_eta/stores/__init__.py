"""Collaborator interfaces and store backends."""

from transit_eta.stores.base import (
    HistoricalStore,
    LiveStateStore,
    PositionSource,
    PredictionWriter,
    RouteTopology,
    StoreError,
)
from transit_eta.stores.memory import InMemoryTransitStore
from transit_eta.stores.rest import RestTransitStore

__all__ = [
    "StoreError",
    "PositionSource",
    "RouteTopology",
    "HistoricalStore",
    "PredictionWriter",
    "LiveStateStore",
    "InMemoryTransitStore",
    "RestTransitStore",
]
