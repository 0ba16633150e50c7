"""Data models and schemas."""

from transit_eta.models.transit import CrowdLevel, RouteStopSequence, Stop, VehiclePosition
from transit_eta.models.prediction import HistoricalSample, PredictionRecord

__all__ = [
    "CrowdLevel",
    "VehiclePosition",
    "Stop",
    "RouteStopSequence",
    "PredictionRecord",
    "HistoricalSample",
]
