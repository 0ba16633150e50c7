"""External route oracle clients."""

from transit_eta.oracle.route_oracle import (
    MockRouteOracle,
    OpenRouteServiceClient,
    RouteOracleError,
    RouteOracleInterface,
)

__all__ = [
    "RouteOracleInterface",
    "RouteOracleError",
    "OpenRouteServiceClient",
    "MockRouteOracle",
]
