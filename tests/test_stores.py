"""
Unit tests for the store backends.

The REST store never performs HTTP; requests.request is patched and
the calls it receives are inspected.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock, patch

import pandas as pd
import pytest
import requests

from transit_eta.models.prediction import HistoricalSample, PredictionRecord
from transit_eta.models.transit import CrowdLevel
from transit_eta.stores.base import StoreError
from transit_eta.stores.memory import InMemoryTransitStore
from transit_eta.stores.rest import RestTransitStore, decode_position, encode_prediction

NOON = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)
REQUEST = "transit_eta.stores.rest.requests.request"


def _record(vehicle_id: str, stop_id: str, eta: int, **kwargs) -> PredictionRecord:
    return PredictionRecord(
        vehicle_id=vehicle_id,
        stop_id=stop_id,
        predicted_eta_minutes=eta,
        confidence_score=0.8,
        **kwargs,
    )


def _mock_response(payload=None, status_code: int = 200) -> Mock:
    resp = Mock()
    resp.status_code = status_code
    resp.ok = status_code < 400
    resp.text = "" if payload is None else str(payload)
    resp.json = Mock(return_value=payload)
    return resp


@pytest.fixture
def rest_store() -> RestTransitStore:
    return RestTransitStore(base_url="https://db.example.org/", service_key="secret", timeout=3.0)


class TestInMemoryStore:
    """Tests for the in-memory backend."""

    def test_unknown_route_raises(self, store: InMemoryTransitStore) -> None:
        with pytest.raises(StoreError, match="r9"):
            store.fetch_route_stops("r9")

    def test_route_stops_sorted(self, store: InMemoryTransitStore) -> None:
        """Test stops come back in sequence order."""
        route = store.fetch_route_stops("r1")
        assert [s.stop_id for s in route.stops] == ["s1", "s2", "s3", "s4"]

    def test_history_newest_first_and_limited(self, store: InMemoryTransitStore) -> None:
        """Test only arrived records are returned, newest first."""
        store.insert_predictions([
            _record("bus-1", "s1", 5, prediction_timestamp=NOON - timedelta(hours=h), actual_arrival=NOON)
            for h in (3, 1, 2)
        ])
        store.insert_predictions([_record("bus-1", "s1", 7)])

        history = store.fetch_history("bus-1", "s1", limit=2)
        assert len(history) == 2
        assert all(isinstance(s, HistoricalSample) for s in history)
        assert [s.prediction_timestamp for s in history] == [NOON - timedelta(hours=1), NOON - timedelta(hours=2)]

    def test_update_unknown_vehicle_raises(self, store: InMemoryTransitStore) -> None:
        with pytest.raises(StoreError):
            store.update_next_stop_eta("ghost", 4)

    def test_record_arrival_turns_predictions_into_history(self, store: InMemoryTransitStore) -> None:
        """Test arrival detection fills open predictions for the pair only."""
        store.insert_predictions([
            _record("bus-1", "s1", 5),
            _record("bus-1", "s2", 8),
            _record("bus-2", "s1", 3),
        ])
        assert store.fetch_history("bus-1", "s1", limit=10) == []

        assert store.record_arrival("bus-1", "s1", NOON) == 1
        history = store.fetch_history("bus-1", "s1", limit=10)
        assert len(history) == 1
        assert history[0].actual_arrival == NOON
        assert store.fetch_history("bus-2", "s1", limit=10) == []

    def test_nearest_predictions(self, store: InMemoryTransitStore) -> None:
        """Test soonest predictions at a stop for vehicles on the route."""
        store.insert_predictions([
            _record("bus-1", "s1", 9),
            _record("bus-2", "s1", 4),
            _record("bus-1", "s1", 6),
            _record("bus-1", "s2", 1),
            _record("bus-3", "s1", 2),  # no route
            _record("bus-1", "s1", 12),
        ])
        nearest = store.nearest_predictions("r1", "s1")
        assert [r.predicted_eta_minutes for r in nearest] == [4, 6, 9]

    def test_missing_snapshot_columns(self) -> None:
        vehicles = pd.DataFrame({"vehicle_id": ["bus-1"]})
        stops = pd.DataFrame(columns=["route_id", "stop_id", "latitude", "longitude", "sequence"])
        with pytest.raises(ValueError, match="vehicles snapshot missing columns"):
            InMemoryTransitStore.from_dataframes(vehicles, stops)


class TestRestDecoding:
    """Tests for row decoding."""

    def test_decode_position(self) -> None:
        """Test the bus's route wins and missing readings get defaults."""
        position = decode_position({
            "bus_id": "b-7",
            "route_id": "stale",
            "current_latitude": 40.71,
            "current_longitude": -74.0,
            "speed": None,
            "crowd_level": "HIGH",
            "last_updated": "2026-01-15T12:00:00Z",
            "buses": {"id": "b-7", "route_id": "r-12"},
        })
        assert position.route_id == "r-12"
        assert position.speed_kmh == 0.0
        assert position.crowd_level == CrowdLevel.HIGH
        assert position.timestamp is not None

    def test_decode_position_without_bus(self) -> None:
        position = decode_position({
            "bus_id": "b-8",
            "route_id": None,
            "current_latitude": 40.71,
            "current_longitude": -74.0,
            "crowd_level": "rammed",
            "buses": None,
        })
        assert not position.has_route
        assert position.crowd_level == CrowdLevel.MEDIUM

    def test_encode_prediction(self) -> None:
        row = encode_prediction(_record("b-1", "s-1", 5, prediction_timestamp=NOON))
        assert row == {
            "bus_id": "b-1",
            "stop_id": "s-1",
            "predicted_eta": 5,
            "confidence_score": 0.8,
            "model_version": "v1.0",
            "prediction_timestamp": NOON.isoformat(),
        }


class TestRestStore:
    """Tests for the REST calls."""

    def test_requires_configuration(self) -> None:
        with pytest.raises(ValueError):
            RestTransitStore(base_url="https://db.example.org", service_key="")

    def test_fetch_active_vehicles_drops_bad_rows(self, rest_store: RestTransitStore) -> None:
        rows = [
            {"bus_id": "b-1", "current_latitude": 40.7, "current_longitude": -74.0, "buses": {"route_id": "r1"}},
            {"bus_id": "b-2", "current_latitude": 140.0, "current_longitude": -74.0},
            {"bus_id": "b-3"},
        ]
        with patch(REQUEST, return_value=_mock_response(rows)) as mreq:
            vehicles = rest_store.fetch_active_vehicles()

        assert [v.vehicle_id for v in vehicles] == ["b-1"]
        args, kwargs = mreq.call_args
        assert args == ("GET", "https://db.example.org/rest/v1/bus_positions")
        assert kwargs["headers"]["apikey"] == "secret"
        assert kwargs["headers"]["Authorization"] == "Bearer secret"
        assert kwargs["timeout"] == 3.0

    def test_fetch_route_stops(self, rest_store: RestTransitStore) -> None:
        """Test the filter, ordering and dropping of rows without a stop."""
        rows = [
            {"stop_sequence": 2, "bus_stops": {"id": "s2", "latitude": 40.75, "longitude": -73.98}},
            {"stop_sequence": 1, "bus_stops": {"id": "s1", "latitude": 40.72, "longitude": -73.99}},
            {"stop_sequence": 3, "bus_stops": None},
        ]
        with patch(REQUEST, return_value=_mock_response(rows)) as mreq:
            route = rest_store.fetch_route_stops("r1")

        assert [s.stop_id for s in route.stops] == ["s1", "s2"]
        params = mreq.call_args.kwargs["params"]
        assert params["route_id"] == "eq.r1"
        assert params["order"] == "stop_sequence.asc"

    def test_fetch_history(self, rest_store: RestTransitStore) -> None:
        rows = [{
            "bus_id": "b-1",
            "stop_id": "s1",
            "predicted_eta": 6,
            "confidence_score": 0.7,
            "model_version": "v1.0",
            "prediction_timestamp": "2026-01-15T11:00:00+00:00",
            "actual_arrival": "2026-01-15T11:08:00+00:00",
        }]
        with patch(REQUEST, return_value=_mock_response(rows)) as mreq:
            history = rest_store.fetch_history("b-1", "s1", limit=10)

        assert len(history) == 1
        assert history[0].predicted_eta_minutes == 6
        params = mreq.call_args.kwargs["params"]
        assert params["bus_id"] == "eq.b-1"
        assert params["actual_arrival"] == "not.is.null"
        assert params["limit"] == "10"

    def test_insert_predictions(self, rest_store: RestTransitStore) -> None:
        """Test one POST carries the whole batch."""
        records = [_record("b-1", "s1", 5), _record("b-1", "s2", 9)]
        with patch(REQUEST, return_value=_mock_response(status_code=201)) as mreq:
            rest_store.insert_predictions(records)

        mreq.assert_called_once()
        args, kwargs = mreq.call_args
        assert args[0] == "POST"
        assert [row["predicted_eta"] for row in kwargs["json"]] == [5, 9]
        assert kwargs["headers"]["Prefer"] == "return=minimal"

    def test_insert_nothing_makes_no_call(self, rest_store: RestTransitStore) -> None:
        with patch(REQUEST) as mreq:
            rest_store.insert_predictions([])
        mreq.assert_not_called()

    def test_update_next_stop_eta(self, rest_store: RestTransitStore) -> None:
        with patch(REQUEST, return_value=_mock_response(status_code=204)) as mreq:
            rest_store.update_next_stop_eta("b-1", 7)

        args, kwargs = mreq.call_args
        assert args == ("PATCH", "https://db.example.org/rest/v1/bus_positions")
        assert kwargs["params"] == {"bus_id": "eq.b-1"}
        assert kwargs["json"] == {"eta_next_stop": 7}

    def test_nearest_predictions(self, rest_store: RestTransitStore) -> None:
        rows = [{
            "bus_id": "b-1",
            "stop_id": "s1",
            "predicted_eta": 3,
            "confidence_score": 0.9,
            "prediction_timestamp": "2026-01-15T11:00:00+00:00",
            "actual_arrival": None,
        }]
        with patch(REQUEST, return_value=_mock_response(rows)) as mreq:
            nearest = rest_store.nearest_predictions("r1", "s1")

        assert nearest[0].predicted_eta_minutes == 3
        params = mreq.call_args.kwargs["params"]
        assert params["buses.route_id"] == "eq.r1"
        assert params["order"] == "predicted_eta.asc"
        assert params["limit"] == "3"

    def test_error_status_raises(self, rest_store: RestTransitStore) -> None:
        with patch(REQUEST, return_value=_mock_response({"message": "denied"}, status_code=401)):
            with pytest.raises(StoreError, match="401"):
                rest_store.fetch_active_vehicles()

    def test_transport_error_raises(self, rest_store: RestTransitStore) -> None:
        with patch(REQUEST, side_effect=requests.ConnectionError("refused")):
            with pytest.raises(StoreError):
                rest_store.update_next_stop_eta("b-1", 3)
