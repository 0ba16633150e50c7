"""
Heuristic ETA adjustments used when a (vehicle, stop) pair has no history.

Factors for time of day, crowding and speed regime are multiplied
together on top of the baseline estimate.
"""

from typing import Optional

from transit_eta.config import HeuristicProfile, settings
from transit_eta.models.transit import CrowdLevel

RUSH_HOUR_WINDOWS = ((7, 9), (17, 19))


def is_rush_hour(hour: int) -> bool:
    """True inside the inclusive 07-09 and 17-19 local-time bands."""
    return any(start <= hour <= end for start, end in RUSH_HOUR_WINDOWS)


class HeuristicAdjuster:
    """
    Applies time-of-day, crowd and speed multipliers to a baseline ETA.

    Example:
        adjuster = HeuristicAdjuster()
        eta = adjuster.adjust(12.0, hour=8, crowd_level=CrowdLevel.HIGH, speed_kmh=7.0)
        # 12.0 * 1.3 * 1.2 * 1.4
    """

    def __init__(self, profile: Optional[HeuristicProfile] = None) -> None:
        self._profile = profile or settings.heuristics

    def time_of_day_factor(self, hour: int) -> float:
        p = self._profile
        if is_rush_hour(hour):
            return p.rush_hour_factor
        if hour >= p.night_start_hour or hour <= p.night_end_hour:
            return p.night_factor
        return 1.0

    def crowd_factor(self, crowd_level: CrowdLevel) -> float:
        if crowd_level == CrowdLevel.HIGH:
            return self._profile.crowd_high_factor
        if crowd_level == CrowdLevel.LOW:
            return self._profile.crowd_low_factor
        return 1.0

    def speed_factor(self, speed_kmh: float) -> float:
        p = self._profile
        if speed_kmh < p.slow_speed_kmh:
            return p.slow_speed_factor
        if speed_kmh > p.fast_speed_kmh:
            return p.fast_speed_factor
        return 1.0

    def adjust(
        self,
        baseline_minutes: float,
        hour: int,
        crowd_level: CrowdLevel,
        speed_kmh: float,
    ) -> float:
        """
        Apply every applicable factor to the baseline.

        Args:
            baseline_minutes: Naive ETA from distance and speed.
            hour: Local hour of day (0-23).
            crowd_level: Reported passenger load.
            speed_kmh: Current speed, unfloored.

        Returns:
            Adjusted ETA in minutes.
        """
        return (
            baseline_minutes
            * self.time_of_day_factor(hour)
            * self.crowd_factor(crowd_level)
            * self.speed_factor(speed_kmh)
        )
