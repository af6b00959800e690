"""
Routing providers returning road-following paths as decoded polylines.
"""

import logging
from typing import List, Optional, Sequence

from config import Settings
from exceptions import ProviderError
from models import Location
from services.polyline import decode_polyline
from services.providers import HTTPProvider

logger = logging.getLogger(__name__)


def _latlng(point: Location) -> str:
    return f"{point.lat},{point.lng}"


class GoogleDirectionsProvider(HTTPProvider):
    """Google Directions API, driving mode, waypoints kept in the given order."""

    name = "google-directions"
    metered = True

    def __init__(self, http_client, settings: Settings, governor=None):
        super().__init__(http_client, governor)
        self.settings = settings

    async def route(
        self, origin: Location, destination: Location, waypoints: Sequence[Location] = ()
    ) -> Optional[List[Location]]:
        params = {
            "origin": _latlng(origin),
            "destination": _latlng(destination),
            "mode": "driving",
            "key": self.settings.google_maps_api_key,
        }
        if waypoints:
            params["waypoints"] = "|".join(_latlng(w) for w in waypoints)

        data = await self._get_json(self.settings.google_directions_url, params=params)
        status = data.get("status") if isinstance(data, dict) else None
        if status == "ZERO_RESULTS":
            return None
        if status != "OK":
            raise ProviderError(self.name, f"status {status}")
        try:
            encoded = data["routes"][0]["overview_polyline"]["points"]
            return decode_polyline(encoded)
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            raise ProviderError(self.name, f"malformed route: {e}") from e


class OSRMRouteProvider(HTTPProvider):
    """Self-hosted OSRM ``/route`` service (lon,lat ordering in the URL)."""

    name = "osrm"

    def __init__(self, http_client, settings: Settings):
        super().__init__(http_client)
        self.base_url = (settings.osrm_base_url or "").rstrip("/")
        self.profile = settings.osrm_profile

    def format_coordinates(self, coords: Sequence[Location]) -> str:
        return ";".join(f"{p.lng},{p.lat}" for p in coords)

    async def route(
        self, origin: Location, destination: Location, waypoints: Sequence[Location] = ()
    ) -> Optional[List[Location]]:
        coordinates = self.format_coordinates([origin, *waypoints, destination])
        url = f"{self.base_url}/route/v1/{self.profile}/{coordinates}"
        logger.debug(f"[Routing] OSRM request through {len(waypoints) + 2} points")
        data = await self._get_json(url, params={"overview": "full", "geometries": "polyline"})

        if not isinstance(data, dict) or data.get("code") != "Ok":
            message = data.get("message", "Unknown error") if isinstance(data, dict) else "Unknown error"
            raise ProviderError(self.name, f"OSRM error: {message}")
        try:
            return decode_polyline(data["routes"][0]["geometry"])
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            raise ProviderError(self.name, f"malformed route: {e}") from e
