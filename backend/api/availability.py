"""
Bus availability API.

Public endpoints for availability checks and geocoding, plus admin/debug
endpoints for the route polyline cache. Admin authentication is handled by
the deployment in front of this service.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, ConfigDict, Field

from exceptions import InvalidInputError
from models import Direction, Location, MatchResult
from services.container import AppServices
from services.geocoding_service import validate_coordinates

router = APIRouter(prefix="/api", tags=["availability"])


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def client_identity(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


class AvailabilityRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    contact: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    location: Any = None
    request_bus: Union[bool, str, None] = Field(default=None, alias="requestBus")

    def resolved_contact(self) -> Optional[str]:
        return self.email or self.contact or self.phone

    def wants_bus(self) -> bool:
        if isinstance(self.request_bus, str):
            return self.request_bus.strip().lower() in ("yes", "true")
        return self.request_bus is True


class AvailabilityResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    available: bool
    message: str
    location: Location
    formatted_name: str = Field(alias="formattedName")
    buses: List[MatchResult] = Field(default_factory=list)


class GeocodeRequest(BaseModel):
    location: Optional[str] = None


class ReverseGeocodeRequest(BaseModel):
    lat: Any = None
    lng: Any = None


class MinDistanceRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    route_id: str = Field(alias="routeId")
    lat: float
    lng: float


@router.post("/check-availability", response_model=AvailabilityResponse, response_model_by_alias=True)
async def check_availability(
    payload: AvailabilityRequest,
    request: Request,
    services: AppServices = Depends(get_services),
) -> AvailabilityResponse:
    result = await services.availability.check(
        payload.resolved_contact(),
        payload.location,
        client_identity(request),
        requested=payload.wants_bus(),
    )
    return AvailabilityResponse(
        available=result.available,
        message=result.message,
        location=result.location,
        formatted_name=result.formatted_name,
        buses=result.buses,
    )


@router.post("/geocode")
async def geocode(payload: GeocodeRequest, services: AppServices = Depends(get_services)) -> dict:
    if not payload.location or not payload.location.strip():
        raise InvalidInputError("location string required")
    result = await services.resolver.forward(payload.location)
    return {
        "success": True,
        "location": {
            "lat": result.location.lat,
            "lng": result.location.lng,
            "formatted_address": result.formatted_address,
        },
    }


@router.post("/reverse-geocode")
async def reverse_geocode(payload: ReverseGeocodeRequest, services: AppServices = Depends(get_services)) -> dict:
    if payload.lat is None or payload.lng is None:
        raise InvalidInputError("lat and lng required")
    lat, lng = validate_coordinates(payload.lat, payload.lng)
    address = await services.resolver.reverse(lat, lng)
    return {"success": True, "address": address}


@router.get("/debug/route-path/{route_id}")
async def debug_route_path(route_id: str, services: AppServices = Depends(get_services)) -> dict:
    route = services.repository.get_route(route_id)
    if route is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Route not found")
    cache: Dict[str, List[Location]] = {}
    for direction in Direction:
        cache[direction.value] = await services.matcher.resolve_path(route, direction)
    return {"success": True, "route": {"id": route.id, "number": route.number}, "cache": cache}


@router.post("/admin/rebuild-routes")
async def rebuild_routes(services: AppServices = Depends(get_services)) -> dict:
    services.scheduler.signal(immediate=True)
    return {"success": True, "message": "Route rebuild scheduled"}


@router.get("/admin/availability-checks")
async def recent_availability_checks(
    limit: int = Query(default=100, ge=1, le=1000),
    services: AppServices = Depends(get_services),
) -> dict:
    """Most recent availability checks, newest first."""
    audit_log = services.availability.audit_log
    checks = audit_log.recent(limit) if audit_log is not None else []
    return {"success": True, "checks": checks}


@router.post("/admin/debug/min-dist")
async def debug_min_distance(payload: MinDistanceRequest, services: AppServices = Depends(get_services)) -> dict:
    route = services.repository.get_route(payload.route_id)
    if route is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Route not found")
    lat, lng = validate_coordinates(payload.lat, payload.lng)
    user_location = Location(lat=lat, lng=lng)
    report = await services.matcher.distance_report(route, user_location)
    return {
        "success": True,
        "report": {
            "route_id": route.id,
            "number": route.number,
            "user_location": user_location,
            **report,
        },
    }


@router.get("/health")
async def health(services: AppServices = Depends(get_services)) -> dict:
    return {
        "status": "OK",
        "message": "Bus API is running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "route_cache_size": services.cache.size,
        "scheduler_state": services.scheduler.state.value,
        "provider_usage": services.governor.get_stats(),
    }
