from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from enum import Enum


class Direction(str, Enum):
    """Direction of travel of a route (morning pickup / evening drop)."""
    OUTBOUND = "OUTBOUND"
    INBOUND = "INBOUND"


class Location(BaseModel):
    """WGS-84 coordinate in decimal degrees."""

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    model_config = {"frozen": True, "json_schema_extra": {"example": {"lat": 16.5062, "lng": 80.6480}}}

    def as_tuple(self):
        return (self.lat, self.lng)


class GeocodeResult(BaseModel):
    location: Location
    formatted_address: str
    provider: Optional[str] = None

    model_config = {"frozen": True}


class Stop(BaseModel):
    name: str
    location: Location
    direction: Direction
    sequence_index: int = Field(..., ge=0)


class Route(BaseModel):
    id: str
    number: Optional[str] = None
    name: Optional[str] = None
    outbound_stops: List[Stop] = Field(default_factory=list)
    inbound_stops: List[Stop] = Field(default_factory=list)

    def stops_for(self, direction: Direction) -> List[Stop]:
        stops = self.outbound_stops if direction == Direction.OUTBOUND else self.inbound_stops
        return sorted(stops, key=lambda s: s.sequence_index)


class RoutePolyline(BaseModel):
    route_id: str
    direction: Direction
    points: List[Location]
    built_at: float  # epoch seconds


class SearchCircle(BaseModel):
    center: Location
    radius_meters: float = Field(..., gt=0)


class RateCounter(BaseModel):
    count: int = 0
    window_start: float


class DirectionMatch(BaseModel):
    direction: Direction
    intersects: bool = False
    stop_count: int = 0
    min_distance_m: Optional[float] = None
    min_index: int = -1
    path: List[Location] = Field(default_factory=list)


class MatchResult(BaseModel):
    route_id: str
    number: Optional[str] = None
    name: Optional[str] = None
    total_nearby_stops: int = 0
    outbound_stops: List[Stop] = Field(default_factory=list)
    inbound_stops: List[Stop] = Field(default_factory=list)
    route_details: Dict[Direction, List[Location]] = Field(default_factory=dict)
    directions: List[DirectionMatch] = Field(default_factory=list)
