"""
Transit reference and live-position models.

Collaborator responses are decoded into these models at the boundary,
so the pipeline never handles raw rows.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class CrowdLevel(str, Enum):
    """Passenger load reported for a vehicle."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class VehiclePosition(BaseModel):
    """
    Latest known position of an active vehicle.

    Owned by the position source; the engine only reads it.
    """

    vehicle_id: str = Field(..., min_length=1)
    route_id: Optional[str] = Field(
        default=None,
        description="Route the vehicle is assigned to, if any",
    )
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)
    speed_kmh: float = Field(
        default=0.0,
        description="Current speed in km/h",
        ge=0.0,
    )
    crowd_level: CrowdLevel = Field(default=CrowdLevel.MEDIUM)
    timestamp: Optional[datetime] = Field(
        default=None,
        description="When the position was reported",
    )

    @field_validator("speed_kmh", mode="before")
    @classmethod
    def default_missing_speed(cls, v):
        """Treat a missing speed reading as stationary."""
        return 0.0 if v is None else v

    @field_validator("crowd_level", mode="before")
    @classmethod
    def normalize_crowd_level(cls, v):
        """Unknown or missing crowd readings count as medium (neutral)."""
        if isinstance(v, CrowdLevel):
            return v
        try:
            return CrowdLevel(str(v).lower())
        except ValueError:
            return CrowdLevel.MEDIUM

    @property
    def has_route(self) -> bool:
        return bool(self.route_id)

    @property
    def coordinates(self) -> tuple:
        """(latitude, longitude) pair."""
        return (self.latitude, self.longitude)


class Stop(BaseModel):
    """A stop on a route. Immutable reference data."""

    model_config = ConfigDict(frozen=True)

    stop_id: str = Field(..., min_length=1)
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)
    sequence: int = Field(..., description="Position within the route", ge=0)

    @property
    def coordinates(self) -> tuple:
        """(latitude, longitude) pair."""
        return (self.latitude, self.longitude)


class RouteStopSequence(BaseModel):
    """
    Ordered stops of a route.

    Stops are kept sorted by their sequence index, which is the
    authoritative order.
    """

    route_id: str = Field(..., min_length=1)
    stops: List[Stop] = Field(default_factory=list)

    @model_validator(mode="after")
    def sort_by_sequence(self) -> "RouteStopSequence":
        self.stops = sorted(self.stops, key=lambda stop: stop.sequence)
        return self

    @property
    def is_empty(self) -> bool:
        return not self.stops

    def upcoming(self, count: int) -> List[Stop]:
        """
        Stops to predict for a vehicle on this route.

        Takes the head of the static sequence; vehicle progress along the
        route is not known to the engine.
        """
        return self.stops[:count]

    def __len__(self) -> int:
        return len(self.stops)
