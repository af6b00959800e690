"""
Great-circle geometry helpers (spherical earth, meters).
"""

import math
from typing import Iterable, Sequence, Tuple

from models import Location

EARTH_RADIUS_M = 6371000.0


def haversine_m(a: Location, b: Location) -> float:
    """Great-circle (Haversine) distance in meters."""
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    dlat = lat2 - lat1
    dlon = math.radians(b.lng - a.lng)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_M * c


def initial_bearing_rad(a: Location, b: Location) -> float:
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    dlon = math.radians(b.lng - a.lng)
    y = math.sin(dlon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)
    return math.atan2(y, x)


def cross_track_distance_m(start: Location, end: Location, point: Location) -> float:
    """Perpendicular distance from ``point`` to the great circle through start -> end."""
    d13 = haversine_m(start, point) / EARTH_RADIUS_M
    theta13 = initial_bearing_rad(start, point)
    theta12 = initial_bearing_rad(start, end)
    xt = math.asin(math.sin(d13) * math.sin(theta13 - theta12))
    return abs(xt * EARTH_RADIUS_M)


def along_track_distance_m(start: Location, end: Location, point: Location) -> float:
    """
    Signed distance from ``start`` to the projection of ``point`` on start -> end.

    Negative when the projection falls behind ``start``.
    """
    d13 = haversine_m(start, point) / EARTH_RADIUS_M
    theta13 = initial_bearing_rad(start, point)
    theta12 = initial_bearing_rad(start, end)
    xt = math.asin(math.sin(d13) * math.sin(theta13 - theta12))
    # clamp for float noise when the point sits on the great circle
    ratio = max(-1.0, min(1.0, math.cos(d13) / math.cos(xt)))
    at = math.acos(ratio)
    if math.cos(theta13 - theta12) < 0:
        at = -at
    return at * EARTH_RADIUS_M


def point_to_segment_distance_m(start: Location, end: Location, point: Location) -> float:
    """Distance from ``point`` to the segment start-end, clamped to its endpoints."""
    seg_len = haversine_m(start, end)
    if seg_len == 0:
        return haversine_m(start, point)
    at = along_track_distance_m(start, end, point)
    if at < 0:
        return haversine_m(start, point)
    if at > seg_len:
        return haversine_m(end, point)
    return cross_track_distance_m(start, end, point)


def min_distance_to_points(center: Location, path: Sequence[Location]) -> Tuple[float, int]:
    """Minimum distance from ``center`` to any vertex of ``path`` and its index."""
    min_dist = math.inf
    min_index = -1
    for index, point in enumerate(path):
        d = haversine_m(center, point)
        if d < min_dist:
            min_dist = d
            min_index = index
    return min_dist, min_index


def min_distance_to_segments(center: Location, path: Sequence[Location]) -> Tuple[float, int]:
    """
    Minimum distance from ``center`` to any segment of ``path``.

    The index is the segment start. A single-point path degrades to the
    point distance with index 0.
    """
    if len(path) == 1:
        return haversine_m(center, path[0]), 0
    min_dist = math.inf
    min_index = -1
    for index in range(len(path) - 1):
        d = point_to_segment_distance_m(path[index], path[index + 1], center)
        if d < min_dist:
            min_dist = d
            min_index = index
    return min_dist, min_index


def count_within(center: Location, points: Iterable[Location], radius_m: float) -> int:
    return sum(1 for p in points if haversine_m(center, p) <= radius_m)
