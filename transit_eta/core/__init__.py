"""Core estimation components."""

from transit_eta.core.batch_runner import BatchAbortedError, BatchRunner, BatchSummary, ItemOutcome
from transit_eta.core.calibration import HistoricalCalibrator
from transit_eta.core.confidence import ConfidenceScorer
from transit_eta.core.fusion import FusionResult, FusionStage
from transit_eta.core.geo import baseline_minutes, haversine_km
from transit_eta.core.heuristics import HeuristicAdjuster
from transit_eta.core.pipeline import EtaPipeline, StopPrediction

__all__ = [
    "haversine_km",
    "baseline_minutes",
    "HeuristicAdjuster",
    "HistoricalCalibrator",
    "ConfidenceScorer",
    "FusionStage",
    "FusionResult",
    "EtaPipeline",
    "StopPrediction",
    "BatchRunner",
    "BatchSummary",
    "BatchAbortedError",
    "ItemOutcome",
]
