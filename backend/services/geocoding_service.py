"""
Geocode resolver: free text or coordinates to canonical locations/addresses.

Results are cached in-process for the lifetime of the resolver; only
successful resolutions are cached.
"""

import logging
import math
from threading import RLock
from typing import Dict, Optional, Sequence

from exceptions import InvalidInputError, ResolutionError
from models import GeocodeResult
from services.providers import ProviderChain

logger = logging.getLogger(__name__)


def normalize_query(text: str) -> str:
    return text.strip().lower()


def coordinate_key(lat: float, lng: float) -> str:
    return f"{lat:.6f},{lng:.6f}"


def validate_coordinates(lat, lng):
    try:
        lat = float(lat)
        lng = float(lng)
    except (TypeError, ValueError) as e:
        raise InvalidInputError("lat and lng must be numbers") from e
    if math.isnan(lat) or math.isnan(lng):
        raise InvalidInputError("lat and lng must be numbers")
    if not -90 <= lat <= 90 or not -180 <= lng <= 180:
        raise InvalidInputError(f"Coordinates out of range: {lat}, {lng}")
    return lat, lng


class GeocodeCache:
    """Unbounded forward/reverse lookup cache."""

    def __init__(self):
        self._forward: Dict[str, GeocodeResult] = {}
        self._reverse: Dict[str, str] = {}
        self._lock = RLock()

    def get_forward(self, key: str) -> Optional[GeocodeResult]:
        with self._lock:
            return self._forward.get(key)

    def set_forward(self, key: str, result: GeocodeResult) -> None:
        with self._lock:
            self._forward[key] = result

    def get_reverse(self, key: str) -> Optional[str]:
        with self._lock:
            return self._reverse.get(key)

    def set_reverse(self, key: str, address: str) -> None:
        with self._lock:
            self._reverse[key] = address

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._forward) + len(self._reverse)


class GeocodeResolver:
    """Primary provider first, free fallback second, cache in front of both."""

    def __init__(self, providers: Sequence, cache: Optional[GeocodeCache] = None):
        self.chain = ProviderChain(providers)
        self.cache = cache if cache is not None else GeocodeCache()

    async def forward(self, text: str) -> GeocodeResult:
        if not isinstance(text, str) or not text.strip():
            raise InvalidInputError("location string required")

        key = normalize_query(text)
        cached = self.cache.get_forward(key)
        if cached is not None:
            logger.debug(f"[Geocode] Cache hit for {key!r}")
            return cached

        result = await self.chain.first(lambda p: p.forward(text), what="geocode")
        if result is None:
            raise ResolutionError(text)

        self.cache.set_forward(key, result)
        logger.info(
            f"[Geocode] {text!r} -> {result.location.lat:.6f},{result.location.lng:.6f} via {result.provider}"
        )
        return result

    async def reverse(self, lat, lng) -> str:
        """
        Formatted address for a coordinate. Falls back to the raw coordinates
        as text when every provider fails; that label is not cached.
        """
        lat, lng = validate_coordinates(lat, lng)
        key = coordinate_key(lat, lng)
        cached = self.cache.get_reverse(key)
        if cached is not None:
            return cached

        address = await self.chain.first(lambda p: p.reverse(lat, lng), what="reverse geocode")
        if not address:
            logger.warning(f"[Geocode] Reverse lookup failed for {key}, using raw coordinates")
            return f"{lat:.6f}, {lng:.6f}"

        self.cache.set_reverse(key, address)
        return address
