"""
Pytest configuration and shared fixtures for the bus availability backend.
"""
import pytest
import os
import sys
from dataclasses import replace
from typing import List

import httpx
from fastapi.testclient import TestClient

# Add backend to path
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from config import Settings
from models import Direction, Location, Route, Stop
from services.container import build_services


class FakeClock:
    """Virtual clock; tests move time forward explicitly."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.current = start

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> float:
        self.current += seconds
        return self.current


def make_stops(coords, direction=Direction.OUTBOUND, prefix="Stop") -> List[Stop]:
    return [
        Stop(
            name=f"{prefix} {i + 1}",
            location=Location(lat=lat, lng=lng),
            direction=direction,
            sequence_index=i,
        )
        for i, (lat, lng) in enumerate(coords)
    ]


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated from the environment, writing under tmp_path."""
    return Settings(
        google_maps_api_key="test-key",
        geocode_country="IN",
        geocode_state="Andhra Pradesh",
        geocode_city="Vijayawada",
        google_daily_limit=5,
        availability_limit_per_hour=3,
        availability_limit_per_contact_per_hour=2,
        login_max_attempts=2,
        login_window_seconds=900,
        route_cache_persist=True,
        route_cache_path=str(tmp_path / "route_cache.json"),
        routes_data_path=str(tmp_path / "routes.json"),
        availability_log_path=str(tmp_path / "availability_log.jsonl"),
    )


@pytest.fixture
def vijayawada_route() -> Route:
    """Route whose outbound path runs through central Vijayawada."""
    return Route(
        id="1",
        number="AP16-101",
        name="Benz Circle Express",
        outbound_stops=make_stops([(16.50, 80.64), (16.52, 80.66), (16.55, 80.70)]),
        inbound_stops=make_stops(
            [(16.55, 80.70), (16.52, 80.66), (16.50, 80.64)], Direction.INBOUND, prefix="Return"
        ),
    )


@pytest.fixture
def single_stop_route() -> Route:
    return Route(
        id="2",
        number="AP16-202",
        name="Campus Shuttle",
        outbound_stops=make_stops([(16.50, 80.65)]),
    )


@pytest.fixture
def far_route() -> Route:
    """Route around Guntur, well outside any Vijayawada search circle."""
    return Route(
        id="3",
        number="AP07-303",
        name="Guntur Loop",
        outbound_stops=make_stops([(16.30, 80.43), (16.31, 80.45)]),
    )


def nominatim_handler(request: httpx.Request) -> httpx.Response:
    """Offline stand-in for the Nominatim search and reverse endpoints."""
    if request.url.path == "/search":
        query = request.url.params.get("q", "").lower()
        if "benz" in query:
            return httpx.Response(200, json=[
                {"lat": "16.505", "lon": "80.645", "display_name": "Benz Circle, Vijayawada"}
            ])
        return httpx.Response(200, json=[])
    if request.url.path == "/reverse":
        return httpx.Response(200, json={"display_name": "Governorpet, Vijayawada"})
    return httpx.Response(404)


@pytest.fixture
def app_services(settings, clock, vijayawada_route, single_stop_route, far_route):
    """Full service graph with Nominatim mocked, no Google key and seeded routes."""
    offline = replace(settings, google_maps_api_key=None)
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(nominatim_handler))
    services = build_services(offline, http_client=http_client, clock=clock)
    services.repository.save_routes([vijayawada_route, single_stop_route, far_route])
    return services


@pytest.fixture
def client(app_services):
    """API client; background loops are not started."""
    from main import create_app

    app = create_app(services=app_services, start_background=False)
    return TestClient(app)
