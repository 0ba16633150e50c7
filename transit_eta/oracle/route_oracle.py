"""
External Route Oracle Interface and Implementations.

The oracle answers "how long does driving from A to B take?" for a
single pair of points. The engine depends on the interface; the
OpenRouteService client is the production implementation and the mock
serves tests and offline runs.

Coordinates are (lat, lon) inside the engine and are flipped to
[lon, lat] only when the request body is built.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

import requests

from transit_eta.config import settings
from transit_eta.logging_config import get_logger

logger = get_logger(__name__)

LatLon = Tuple[float, float]


class RouteOracleError(RuntimeError):
    """A single oracle call failed; callers fall back to internal estimates."""


class RouteOracleInterface(ABC):
    """
    Abstract interface for point-to-point travel-time providers.
    """

    @abstractmethod
    def estimate_minutes(self, start: LatLon, end: LatLon) -> float:
        """
        Travel time between two points.

        Args:
            start: (lat, lon) of the vehicle.
            end: (lat, lon) of the stop.

        Returns:
            Duration in minutes.

        Raises:
            RouteOracleError: On any failure of this call.
        """
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """
        Check whether the oracle has what it needs to answer requests.

        Returns:
            True if credentials are present, False otherwise.
        """
        pass


class OpenRouteServiceClient(RouteOracleInterface):
    """
    OpenRouteService directions client.

    Sends one POST per estimate with no retries. Every failure mode
    (HTTP status, transport error, timeout, bad payload) is raised as
    RouteOracleError.

    Example:
        client = OpenRouteServiceClient()
        if client.is_configured():
            minutes = client.estimate_minutes((40.7128, -74.0060), (40.7282, -73.9942))
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        profile: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else settings.ORS_API_KEY
        self._base_url = (base_url or settings.ORS_BASE_URL).rstrip("/")
        self._profile = profile or settings.ORS_PROFILE
        self._timeout = settings.ORACLE_TIMEOUT_S if timeout is None else timeout

    @property
    def url(self) -> str:
        return f"{self._base_url}/v2/directions/{self._profile}/json"

    def is_configured(self) -> bool:
        return bool(self._api_key)

    def build_request(self, start: LatLon, end: LatLon) -> Dict[str, Any]:
        """Request body with coordinates as [lon, lat]."""
        return {
            "coordinates": [[start[1], start[0]], [end[1], end[0]]],
            "profile": self._profile,
        }

    def parse_duration_seconds(self, data: Any) -> float:
        """
        Pull routes[0].summary.duration out of a directions response.

        Raises:
            RouteOracleError: If the payload has no usable route.
        """
        try:
            routes: List[Dict[str, Any]] = data["routes"]
        except (KeyError, TypeError) as e:
            raise RouteOracleError("Malformed OpenRouteService response: missing routes") from e

        if not routes:
            raise RouteOracleError("No route found")

        try:
            duration = float(routes[0]["summary"]["duration"])
        except (KeyError, TypeError, ValueError) as e:
            raise RouteOracleError("Malformed OpenRouteService response: missing duration") from e

        if duration < 0:
            raise RouteOracleError(f"Negative route duration: {duration}")
        return duration

    def estimate_minutes(self, start: LatLon, end: LatLon) -> float:
        if not self.is_configured():
            raise RouteOracleError("OpenRouteService API key not configured")

        try:
            response = requests.post(
                self.url,
                json=self.build_request(start, end),
                headers={
                    "Authorization": self._api_key,
                    "Content-Type": "application/json",
                },
                timeout=self._timeout,
            )
        except requests.Timeout as e:
            raise RouteOracleError(f"OpenRouteService timed out after {self._timeout}s") from e
        except requests.RequestException as e:
            raise RouteOracleError(f"OpenRouteService request failed: {e}") from e

        if not response.ok:
            raise RouteOracleError(f"OpenRouteService API error: {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise RouteOracleError("OpenRouteService returned invalid JSON") from e

        minutes = self.parse_duration_seconds(data) / 60.0
        logger.debug(
            "Oracle estimate received",
            extra={"profile": self._profile, "minutes": minutes},
        )
        return minutes


class MockRouteOracle(RouteOracleInterface):
    """
    Mock oracle for testing and offline runs.

    Returns a fixed duration, or raises on every call when `fail` is set.

    Example:
        oracle = MockRouteOracle(minutes=20.0)
        oracle.estimate_minutes((0, 0), (0, 1))  # 20.0
    """

    def __init__(
        self,
        minutes: float = 10.0,
        fail: bool = False,
        configured: bool = True,
    ) -> None:
        self._minutes = minutes
        self._fail = fail
        self._configured = configured
        self.calls: List[Tuple[LatLon, LatLon]] = []

    def estimate_minutes(self, start: LatLon, end: LatLon) -> float:
        self.calls.append((start, end))
        if self._fail:
            raise RouteOracleError("Mock oracle unavailable")
        return self._minutes

    def is_configured(self) -> bool:
        return self._configured
