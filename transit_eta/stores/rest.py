"""
PostgREST-backed transit store.

Talks to the managed data store's REST API with `requests`. Rows come
back with nested join objects (a position with its bus, a route stop
with its stop); they are decoded into typed models here and nowhere
else.

Tables used:
    bus_positions   live position per bus, plus the eta_next_stop field
    buses           bus -> route assignment
    route_stops     route -> stop ordering (stop_sequence)
    bus_stops       stop coordinates
    eta_predictions prediction history
"""

from typing import Any, Dict, List, Optional, Sequence

import requests
from pydantic import ValidationError

from transit_eta.config import settings
from transit_eta.logging_config import get_logger
from transit_eta.models.prediction import HistoricalSample, PredictionRecord
from transit_eta.models.transit import RouteStopSequence, Stop, VehiclePosition
from transit_eta.stores.base import StoreError

logger = get_logger(__name__)

POSITION_SELECT = (
    "bus_id,route_id,current_latitude,current_longitude,speed,crowd_level,last_updated,"
    "buses(id,route_id)"
)
ROUTE_STOP_SELECT = "stop_sequence,bus_stops(id,latitude,longitude)"
PREDICTION_SELECT = (
    "bus_id,stop_id,predicted_eta,confidence_score,model_version,"
    "prediction_timestamp,actual_arrival"
)


def decode_position(row: Dict[str, Any]) -> VehiclePosition:
    """
    Decode a bus_positions row with its embedded bus.

    The bus's route assignment wins over the route stamped on the
    position row.
    """
    bus = row.get("buses") or {}
    route_id = bus.get("route_id") or row.get("route_id")
    return VehiclePosition(
        vehicle_id=str(row["bus_id"]),
        route_id=str(route_id) if route_id else None,
        latitude=row["current_latitude"],
        longitude=row["current_longitude"],
        speed_kmh=row.get("speed"),
        crowd_level=row.get("crowd_level"),
        timestamp=row.get("last_updated"),
    )


def decode_route_stops(route_id: str, rows: List[Dict[str, Any]]) -> RouteStopSequence:
    """Decode route_stops rows; rows without an embedded stop are dropped."""
    stops = []
    for row in rows:
        stop = row.get("bus_stops")
        if not stop:
            continue
        stops.append(
            Stop(
                stop_id=str(stop["id"]),
                latitude=stop["latitude"],
                longitude=stop["longitude"],
                sequence=row["stop_sequence"],
            )
        )
    return RouteStopSequence(route_id=route_id, stops=stops)


def decode_prediction(row: Dict[str, Any]) -> PredictionRecord:
    fields = {
        "vehicle_id": str(row["bus_id"]),
        "stop_id": str(row["stop_id"]),
        "predicted_eta_minutes": row["predicted_eta"],
        "confidence_score": row["confidence_score"],
        "model_version": row.get("model_version") or "unknown",
        "prediction_timestamp": row["prediction_timestamp"],
        "actual_arrival": row.get("actual_arrival"),
    }
    if fields["actual_arrival"] is not None:
        return HistoricalSample(**fields)
    return PredictionRecord(**fields)


def encode_prediction(record: PredictionRecord) -> Dict[str, Any]:
    """Row for an eta_predictions insert."""
    return {
        "bus_id": record.vehicle_id,
        "stop_id": record.stop_id,
        "predicted_eta": record.predicted_eta_minutes,
        "confidence_score": record.confidence_score,
        "model_version": record.model_version,
        "prediction_timestamp": record.prediction_timestamp.isoformat(),
    }


class RestTransitStore:
    """
    Store adapter for the managed data store's REST API.

    Implements PositionSource, RouteTopology, HistoricalStore,
    PredictionWriter and LiveStateStore. Every failure, including rows
    that do not decode, is raised as StoreError.

    Example:
        store = RestTransitStore()  # TETA_STORE_URL / TETA_STORE_SERVICE_KEY
        vehicles = store.fetch_active_vehicles()
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        service_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        base_url = base_url or settings.STORE_URL
        service_key = service_key or settings.STORE_SERVICE_KEY
        if not base_url or not service_key:
            raise ValueError("Data store URL and service key must be configured")

        self._rest_url = f"{base_url.rstrip('/')}/rest/v1"
        self._service_key = service_key
        self._timeout = settings.STORE_TIMEOUT_S if timeout is None else timeout

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "apikey": self._service_key,
            "Authorization": f"Bearer {self._service_key}",
            "Content-Type": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    def _request(
        self,
        method: str,
        table: str,
        params: Optional[Dict[str, str]] = None,
        payload: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        url = f"{self._rest_url}/{table}"
        try:
            response = requests.request(
                method,
                url,
                params=params,
                json=payload,
                headers=self._headers({"Prefer": prefer} if prefer else None),
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise StoreError(f"{method} {table} failed: {e}") from e

        if not response.ok:
            raise StoreError(f"{method} {table} returned {response.status_code}: {response.text[:200]}")

        if method == "GET":
            try:
                return response.json()
            except ValueError as e:
                raise StoreError(f"{method} {table} returned invalid JSON") from e
        return None

    def fetch_active_vehicles(self) -> List[VehiclePosition]:
        rows = self._request("GET", "bus_positions", params={"select": POSITION_SELECT})
        vehicles = []
        for row in rows:
            try:
                vehicles.append(decode_position(row))
            except (KeyError, ValidationError) as e:
                # One bad row costs one vehicle, not the run.
                logger.warning(
                    "Dropping undecodable position row",
                    extra={"bus_id": row.get("bus_id"), "error": str(e)},
                )
        return vehicles

    def fetch_route_stops(self, route_id: str) -> RouteStopSequence:
        rows = self._request(
            "GET",
            "route_stops",
            params={
                "select": ROUTE_STOP_SELECT,
                "route_id": f"eq.{route_id}",
                "order": "stop_sequence.asc",
            },
        )
        try:
            return decode_route_stops(route_id, rows)
        except (KeyError, ValidationError) as e:
            raise StoreError(f"Malformed stop sequence for route {route_id}") from e

    def fetch_history(self, vehicle_id: str, stop_id: str, limit: int) -> List[HistoricalSample]:
        rows = self._request(
            "GET",
            "eta_predictions",
            params={
                "select": PREDICTION_SELECT,
                "bus_id": f"eq.{vehicle_id}",
                "stop_id": f"eq.{stop_id}",
                "actual_arrival": "not.is.null",
                "order": "created_at.desc",
                "limit": str(limit),
            },
        )
        try:
            records = [decode_prediction(row) for row in rows]
        except (KeyError, ValidationError) as e:
            raise StoreError(f"Malformed history for {vehicle_id}/{stop_id}") from e
        return [r for r in records if isinstance(r, HistoricalSample)]

    def insert_predictions(self, records: Sequence[PredictionRecord]) -> None:
        if not records:
            return
        self._request(
            "POST",
            "eta_predictions",
            payload=[encode_prediction(r) for r in records],
            prefer="return=minimal",
        )

    def update_next_stop_eta(self, vehicle_id: str, eta_minutes: int) -> None:
        self._request(
            "PATCH",
            "bus_positions",
            params={"bus_id": f"eq.{vehicle_id}"},
            payload={"eta_next_stop": eta_minutes},
            prefer="return=minimal",
        )

    def nearest_predictions(self, route_id: str, stop_id: str, limit: int = 3) -> List[PredictionRecord]:
        """
        Soonest predictions at a stop for buses on a route.

        Backs the rider notification message ("next arrivals").
        """
        rows = self._request(
            "GET",
            "eta_predictions",
            params={
                "select": f"{PREDICTION_SELECT},buses!inner(route_id)",
                "stop_id": f"eq.{stop_id}",
                "buses.route_id": f"eq.{route_id}",
                "order": "predicted_eta.asc",
                "limit": str(limit),
            },
        )
        try:
            return [decode_prediction(row) for row in rows]
        except (KeyError, ValidationError) as e:
            raise StoreError(f"Malformed predictions for {route_id}/{stop_id}") from e
