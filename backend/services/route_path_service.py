"""
Route path builder: ordered stops to a dense road-following polyline.
"""

import logging
from typing import List, Sequence

from models import Location, Stop
from services.providers import ProviderChain

logger = logging.getLogger(__name__)


def straight_line_path(stops: Sequence[Stop]) -> List[Location]:
    """Stops in order, no interpolation."""
    return [stop.location for stop in stops]


class RoutePathBuilder:
    """
    Builds the traversal path of one route direction.

    The first stop is the origin, the last the destination and everything in
    between a waypoint, in the given order. No caching happens here.
    """

    def __init__(self, providers: Sequence):
        self.chain = ProviderChain(providers)

    async def build(self, stops: Sequence[Stop]) -> List[Location]:
        if not stops:
            return []
        if len(stops) == 1:
            return [stops[0].location]

        origin = stops[0].location
        destination = stops[-1].location
        waypoints = [s.location for s in stops[1:-1]]

        path = await self.chain.first(
            lambda p: p.route(origin, destination, waypoints), what="route path"
        )
        if not path:
            logger.warning(f"[Routing] Falling back to straight-line path through {len(stops)} stops")
            return straight_line_path(stops)
        return path
