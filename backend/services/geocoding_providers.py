"""
Geocoding providers: Google Geocoding (primary, metered) and Nominatim (free fallback).
"""

import logging
import re
from typing import Any, Dict, List, Optional

from config import Settings
from exceptions import ProviderError
from models import GeocodeResult, Location
from services.providers import HTTPProvider

logger = logging.getLogger(__name__)


def _mentions(query: str, term: str) -> bool:
    return re.search(re.escape(term), query, re.IGNORECASE) is not None


class GoogleGeocodeProvider(HTTPProvider):
    """Google Geocoding API with country/state/city biasing."""

    name = "google-geocode"
    metered = True

    def __init__(self, http_client, settings: Settings, governor=None):
        super().__init__(http_client, governor)
        self.settings = settings

    def augment_query(self, query: str) -> str:
        """Append the configured state, and the city for POI-like queries, when missing."""
        augmented = query.strip()
        state = self.settings.geocode_state
        city = self.settings.geocode_city
        if state and not _mentions(augmented, state):
            augmented += f", {state}"
        if city and not _mentions(augmented, city) and self.looks_like_poi(augmented):
            augmented += f", {city}"
        return augmented

    def looks_like_poi(self, query: str) -> bool:
        pattern = "|".join(re.escape(k) for k in self.settings.poi_keywords)
        return bool(pattern) and re.search(pattern, query, re.IGNORECASE) is not None

    def _components(self) -> Optional[str]:
        components = []
        if self.settings.geocode_country:
            components.append(f"country:{self.settings.geocode_country}")
        if self.settings.geocode_state:
            components.append(f"administrative_area:{self.settings.geocode_state}")
        if self.settings.geocode_city:
            components.append(f"locality:{self.settings.geocode_city}")
        return "|".join(components) or None

    def select_best(self, results: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Pick the candidate whose address components match the configured
        preferences: state and city > state only > city only > first result.
        """
        state = (self.settings.geocode_state or "").lower()
        city = (self.settings.geocode_city or "").lower()
        both_match = state_match = city_match = None
        for result in results:
            components = result.get("address_components")
            names = {
                str(c.get("long_name", "")).lower()
                for c in (components if isinstance(components, list) else [])
                if isinstance(c, dict)
            }
            has_state = bool(state) and state in names
            has_city = bool(city) and city in names
            if has_state and has_city and both_match is None:
                both_match = result
            if has_state and state_match is None:
                state_match = result
            if has_city and city_match is None:
                city_match = result
        return both_match or state_match or city_match or results[0]

    def _results(self, data: Any) -> List[Dict[str, Any]]:
        status = data.get("status") if isinstance(data, dict) else None
        if status == "ZERO_RESULTS":
            return []
        if status != "OK":
            message = data.get("error_message", "") if isinstance(data, dict) else ""
            raise ProviderError(self.name, f"status {status}: {message}".strip())
        results = data.get("results") or []
        if not isinstance(results, list):
            raise ProviderError(self.name, "malformed results")
        candidates = [r for r in results if isinstance(r, dict)]
        if results and not candidates:
            raise ProviderError(self.name, "malformed results")
        return candidates

    async def forward(self, query: str) -> Optional[GeocodeResult]:
        address = self.augment_query(query)
        logger.debug(f"[Geocode] Google query {query!r} -> {address!r}")
        params = {"address": address, "key": self.settings.google_maps_api_key}
        components = self._components()
        if components:
            params["components"] = components
        if self.settings.geocode_region:
            params["region"] = self.settings.geocode_region

        results = self._results(await self._get_json(self.settings.google_geocode_url, params=params))
        if not results:
            return None
        chosen = self.select_best(results)
        try:
            loc = chosen["geometry"]["location"]
            return GeocodeResult(
                location=Location(lat=float(loc["lat"]), lng=float(loc["lng"])),
                formatted_address=chosen.get("formatted_address") or query,
                provider=self.name,
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ProviderError(self.name, f"malformed result: {e}") from e

    async def reverse(self, lat: float, lng: float) -> Optional[str]:
        params = {"latlng": f"{lat},{lng}", "key": self.settings.google_maps_api_key}
        results = self._results(await self._get_json(self.settings.google_geocode_url, params=params))
        if not results:
            return None
        address = results[0].get("formatted_address")
        return address if isinstance(address, str) and address else None


class NominatimGeocodeProvider(HTTPProvider):
    """OpenStreetMap Nominatim; no biasing, single result."""

    name = "nominatim"

    def __init__(self, http_client, settings: Settings):
        super().__init__(http_client)
        self.base_url = settings.nominatim_base_url.rstrip("/")
        self.headers = {"User-Agent": settings.nominatim_user_agent}

    async def forward(self, query: str) -> Optional[GeocodeResult]:
        data = await self._get_json(
            f"{self.base_url}/search",
            params={"q": query.strip(), "format": "json", "limit": 1},
            headers=self.headers,
        )
        if not isinstance(data, list) or not data:
            return None
        first = data[0]
        if not isinstance(first, dict):
            raise ProviderError(self.name, "malformed result")
        try:
            return GeocodeResult(
                location=Location(lat=float(first["lat"]), lng=float(first["lon"])),
                formatted_address=first.get("display_name") or query,
                provider=self.name,
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ProviderError(self.name, f"malformed result: {e}") from e

    async def reverse(self, lat: float, lng: float) -> Optional[str]:
        data = await self._get_json(
            f"{self.base_url}/reverse",
            params={"lat": lat, "lon": lng, "format": "json"},
            headers=self.headers,
        )
        if isinstance(data, dict) and isinstance(data.get("display_name"), str) and data["display_name"]:
            return data["display_name"]
        return None
