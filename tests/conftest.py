"""
Shared pytest fixtures: a substitute config, GTFS-realtime feed builders and
Open-Meteo style payloads.
"""

from typing import Any, Dict, List, Optional, Sequence

import pytest
from google.transit import gtfs_realtime_pb2

from mta_proxy.app import create_app
from mta_proxy.config import AppConfig, StopPair, WeatherQuery


NOW = 1_700_000_000


class FakeResponse:
    """Just enough of ``requests.Response`` for the fetchers."""

    def __init__(self, status_code: int = 200, content: bytes = b"", payload: Any = None):
        self.status_code = status_code
        self.content = content
        self._payload = payload

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


@pytest.fixture
def now() -> int:
    return NOW


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(
        feed_url="https://feed.test/gtfs-nqrw",
        stops=StopPair(north="T01N", south="T01S"),
        weather=WeatherQuery(base_url="https://weather.test/v1/forecast"),
    )


@pytest.fixture
def make_response():
    return FakeResponse


@pytest.fixture
def make_feed():
    """Build serialized feed bytes.

    Each trip is ``(route_id, [(stop_id, arrival, departure), ...])``; a time
    of ``None`` leaves that StopTimeEvent unset. ``None`` in place of the stop
    list adds an entity with no trip update.
    """

    def _build(trips: Sequence[Any]) -> bytes:
        feed = gtfs_realtime_pb2.FeedMessage()
        feed.header.gtfs_realtime_version = "2.0"
        feed.header.timestamp = NOW
        for index, trip in enumerate(trips):
            entity = feed.entity.add()
            entity.id = str(index)
            if trip is None:
                entity.vehicle.trip.route_id = "X"
                continue
            route_id, stops = trip
            entity.trip_update.trip.trip_id = f"{index:06d}_{route_id}..N"
            entity.trip_update.trip.route_id = route_id
            for stop_id, arrival, departure in stops:
                update = entity.trip_update.stop_time_update.add()
                update.stop_id = stop_id
                if arrival is not None:
                    update.arrival.time = arrival
                if departure is not None:
                    update.departure.time = departure
        return feed.SerializeToString()

    return _build


@pytest.fixture
def make_forecast():
    def _build(
        hours: Optional[List[str]] = None,
        current_time: str = "2024-01-01T13:47",
    ) -> Dict[str, Any]:
        if hours is None:
            hours = [f"2024-01-01T{hour:02d}:00" for hour in range(12, 18)]
        count = len(hours)
        return {
            "current": {
                "time": current_time,
                "temperature_2m": 41.6,
                "precipitation": 0.01,
                "weather_code": 61,
                "rain": 0.01,
                "showers": 0.0,
                "snowfall": 0.0,
                "is_day": 1,
            },
            "hourly": {
                "time": list(hours),
                "temperature_2m": [40.0 + index + 0.5 for index in range(count)],
                "precipitation": [0.01 * index for index in range(count)],
                "visibility": [24140.2 + index for index in range(count)],
                "is_day": [1 if index < 4 else 0 for index in range(count)],
                "weather_code": [3] * count,
            },
        }

    return _build


@pytest.fixture
def client(config):
    app = create_app(config)
    app.config["TESTING"] = True
    return app.test_client()
