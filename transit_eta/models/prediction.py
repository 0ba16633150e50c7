"""
Prediction result models.

A PredictionRecord is written once per run for each (vehicle, stop)
pair. The only later change is the arrival-detection collaborator
filling in actual_arrival, which turns the record into calibration
history.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PredictionRecord(BaseModel):
    """
    ETA prediction for one vehicle at one stop.

    Bounds on ETA and confidence are enforced on construction so that no
    stage can hand an out-of-range value to the writer.
    """

    vehicle_id: str = Field(..., min_length=1)
    stop_id: str = Field(..., min_length=1)
    predicted_eta_minutes: int = Field(
        ...,
        description="Whole minutes until arrival",
        ge=1,
    )
    confidence_score: float = Field(
        ...,
        description="Reliability of the estimate",
        ge=0.1,
        le=1.0,
    )
    model_version: str = Field(default="v1.0")
    prediction_timestamp: datetime = Field(default_factory=_utcnow)
    actual_arrival: Optional[datetime] = Field(
        default=None,
        description="Filled in later by arrival detection",
    )
    stop_sequence: Optional[int] = Field(
        default=None,
        description="Sequence index of the stop on the vehicle's route",
        ge=0,
    )

    @property
    def has_arrived(self) -> bool:
        return self.actual_arrival is not None


class HistoricalSample(PredictionRecord):
    """
    A past prediction whose actual arrival is known.

    Only ever read, as calibration input.
    """

    actual_arrival: datetime = Field(..., description="Observed arrival time")

    @field_validator("actual_arrival")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        """Naive arrival times are taken as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v
