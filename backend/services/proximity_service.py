"""
Proximity matcher: which routes pass within a radius of the user.

The default decision is point-wise: the minimum great-circle distance from
the user to any polyline vertex. Sparse polylines can therefore miss a
route whose segment passes close by while both vertices are far away;
``IntersectionMode.SEGMENT`` measures distance to the segments instead.
"""

import asyncio
import logging
from enum import Enum
from typing import Dict, List, Optional, Sequence

from models import Direction, DirectionMatch, Location, MatchResult, Route, Stop
from services.geo import count_within, haversine_m, min_distance_to_points, min_distance_to_segments
from services.route_cache import RoutePolylineCache
from services.route_path_service import RoutePathBuilder

logger = logging.getLogger(__name__)


class IntersectionMode(str, Enum):
    POINT = "point"
    SEGMENT = "segment"


class ProximityMatcher:
    def __init__(
        self,
        cache: RoutePolylineCache,
        builder: RoutePathBuilder,
        mode: IntersectionMode = IntersectionMode.POINT,
    ):
        self.cache = cache
        self.builder = builder
        self.mode = IntersectionMode(mode)

    async def resolve_path(self, route: Route, direction: Direction) -> List[Location]:
        """Cached polyline of a route direction, built and cached on a miss."""
        stops = route.stops_for(direction)
        if not stops:
            return []
        if len(stops) == 1:
            return [stops[0].location]

        cached = self.cache.get(route.id, direction)
        if cached is not None and cached.points:
            return cached.points

        points = await self.builder.build(stops)
        self.cache.put(route.id, direction, points)
        return points

    def min_distance(self, user_location: Location, path: Sequence[Location]):
        if self.mode is IntersectionMode.SEGMENT:
            return min_distance_to_segments(user_location, path)
        return min_distance_to_points(user_location, path)

    def evaluate_direction(
        self,
        direction: Direction,
        user_location: Location,
        radius_meters: float,
        stops: Sequence[Stop],
        path: Sequence[Location],
    ) -> DirectionMatch:
        result = DirectionMatch(direction=direction, path=list(path))
        if not path:
            return result

        if len(path) == 1:
            dist = haversine_m(user_location, path[0])
            result.min_distance_m = dist
            result.min_index = 0
            if dist <= radius_meters:
                result.intersects = True
                result.stop_count = count_within(user_location, (s.location for s in stops), radius_meters)
            return result

        min_dist, min_index = self.min_distance(user_location, path)
        result.min_distance_m = min_dist
        result.min_index = min_index
        logger.debug(
            f"[Proximity] {direction.value}: path_length={len(path)} min_dist={min_dist:.1f} "
            f"min_index={min_index} radius={radius_meters}"
        )
        if min_dist <= radius_meters:
            result.intersects = True
            result.stop_count = count_within(user_location, (s.location for s in stops), radius_meters)
        return result

    async def match_route(self, route: Route, user_location: Location, radius_meters: float) -> Optional[MatchResult]:
        directions = list(Direction)
        paths = await asyncio.gather(*(self.resolve_path(route, d) for d in directions))

        matches = [
            self.evaluate_direction(d, user_location, radius_meters, route.stops_for(d), path)
            for d, path in zip(directions, paths)
        ]
        intersecting = [m for m in matches if m.intersects]
        if not intersecting:
            return None

        route_details: Dict[Direction, List[Location]] = {m.direction: m.path for m in intersecting}
        logger.info(
            f"[Proximity] Route {route.number or route.id} intersects in "
            f"{', '.join(m.direction.value for m in intersecting)}"
        )
        return MatchResult(
            route_id=route.id,
            number=route.number,
            name=route.name,
            total_nearby_stops=sum(m.stop_count for m in intersecting),
            outbound_stops=route.stops_for(Direction.OUTBOUND),
            inbound_stops=route.stops_for(Direction.INBOUND),
            route_details=route_details,
            directions=matches,
        )

    async def find_intersecting_routes(
        self, user_location: Location, radius_meters: float, routes: Sequence[Route]
    ) -> List[MatchResult]:
        results = await asyncio.gather(
            *(self.match_route(route, user_location, radius_meters) for route in routes)
        )
        return [r for r in results if r is not None]

    async def distance_report(self, route: Route, user_location: Location) -> Dict[str, Optional[dict]]:
        """Point-wise and segment-wise minimum distances for every direction."""
        report: Dict[str, Optional[dict]] = {}
        for direction in Direction:
            path = await self.resolve_path(route, direction)
            if not path:
                report[direction.value] = None
                continue
            point_dist, point_index = min_distance_to_points(user_location, path)
            segment_dist, segment_index = min_distance_to_segments(user_location, path)
            report[direction.value] = {
                "min_dist_point": point_dist,
                "min_index_point": point_index,
                "min_dist_segment": segment_dist,
                "min_segment_index": segment_index,
                "path_length": len(path),
            }
        return report
