"""
Bus availability check: location input -> nearby routes.

Flow: rate-limit gate, input validation, counter increment, location
resolution, proximity matching across all routes, audit log.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from config import Settings
from exceptions import InvalidInputError, RateLimitExceededError
from models import Location, MatchResult, SearchCircle
from services.availability_log import AvailabilityLog
from services.geocoding_service import GeocodeResolver, validate_coordinates
from services.proximity_service import ProximityMatcher
from services.route_repository import RouteRepository
from services.usage_governor import UsageGovernor

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^[0-9+\-\s]{7,20}$")
COORDINATES_RE = re.compile(r"^\s*(-?\d+\.?\d*)\s*,\s*(-?\d+\.?\d*)\s*$")


@dataclass
class AvailabilityResult:
    available: bool
    message: str
    location: Location
    formatted_name: str
    buses: List[MatchResult] = field(default_factory=list)


def validate_contact(contact: Any) -> str:
    """Email or phone number; returns the lowercased counter key."""
    if not contact or not isinstance(contact, str):
        raise InvalidInputError("Contact (email or phone) and location are required")
    if not EMAIL_RE.match(contact) and not PHONE_RE.match(contact):
        raise InvalidInputError("Please provide a valid email address or phone number")
    return contact.lower()


def parse_location_input(location: Any) -> Tuple[Optional[Location], Optional[str]]:
    """
    Split raw input into coordinates or a place name.

    Accepts ``"lat,lng"`` text, a ``{"lat": .., "lng": ..}`` mapping, or free text.
    """
    if isinstance(location, str):
        if not location.strip():
            raise InvalidInputError("Contact (email or phone) and location are required")
        match = COORDINATES_RE.match(location)
        if match:
            lat, lng = validate_coordinates(match.group(1), match.group(2))
            return Location(lat=lat, lng=lng), None
        return None, location.strip()
    if isinstance(location, dict) and location.get("lat") is not None and location.get("lng") is not None:
        lat, lng = validate_coordinates(location["lat"], location["lng"])
        return Location(lat=lat, lng=lng), None
    raise InvalidInputError(
        'Invalid location format. Please provide coordinates as "lat,lng" or a location name.'
    )


def format_label(address: str, location: Location) -> str:
    return f"{address} ({location.lat:.6f}, {location.lng:.6f})"


class AvailabilityService:
    def __init__(
        self,
        settings: Settings,
        resolver: GeocodeResolver,
        matcher: ProximityMatcher,
        repository: RouteRepository,
        governor: UsageGovernor,
        audit_log: Optional[AvailabilityLog] = None,
    ):
        self.settings = settings
        self.resolver = resolver
        self.matcher = matcher
        self.repository = repository
        self.governor = governor
        self.audit_log = audit_log

    async def resolve_location(self, raw_location: Any) -> Tuple[Location, str]:
        location, query = parse_location_input(raw_location)
        if location is not None:
            address = await self.resolver.reverse(location.lat, location.lng)
            return location, format_label(address, location)
        result = await self.resolver.forward(query)
        return result.location, format_label(result.formatted_address, result.location)

    async def check(
        self,
        contact: Any,
        raw_location: Any,
        client_id: str,
        requested: bool = False,
    ) -> AvailabilityResult:
        contact_key = contact.lower() if isinstance(contact, str) and contact else None
        if not self.governor.proximity_check_allowed(client_id, contact_key):
            raise RateLimitExceededError("Rate limit exceeded for availability checks. Try again later.")

        if not raw_location:
            raise InvalidInputError("Contact (email or phone) and location are required")
        contact_key = validate_contact(contact)
        self.governor.record_proximity_check(client_id, contact_key)

        location, label = await self.resolve_location(raw_location)
        circle = SearchCircle(center=location, radius_meters=self.settings.search_radius_m)
        routes = self.repository.list_routes()
        buses = await self.matcher.find_intersecting_routes(circle.center, circle.radius_meters, routes)
        logger.info(
            f"[Availability] {label}: {len(buses)} of {len(routes)} routes within {circle.radius_meters:.0f}m"
        )

        self._audit(contact, label, location, bool(buses), requested)

        radius_km = self.settings.search_radius_km
        if not buses:
            message = (
                f"At your location, within {radius_km:g}km radius, the college bus is not available. "
                "Your search will be notified to admin."
            )
        else:
            message = f"Found {len(buses)} bus(es) within {radius_km:g}km radius"
        return AvailabilityResult(
            available=bool(buses), message=message, location=location, formatted_name=label, buses=buses
        )

    def _audit(self, contact: str, label: str, location: Location, available: bool, requested: bool) -> None:
        if self.audit_log is None:
            return
        try:
            self.audit_log.record(contact, label, location, available, requested)
        except OSError as e:
            logger.error(f"[Availability] Failed to log availability check: {e}")
