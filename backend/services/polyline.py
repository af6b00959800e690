"""
Encoded polyline codec (precision 5), as used by Google Directions and OSRM.
"""

from typing import List, Sequence

from models import Location

PRECISION = 1e5


def _decode_value(encoded: str, index: int):
    result = 0
    shift = 0
    while True:
        if index >= len(encoded):
            raise ValueError("Truncated polyline string")
        b = ord(encoded[index]) - 63
        index += 1
        result |= (b & 0x1F) << shift
        shift += 5
        if b < 0x20:
            break
    value = ~(result >> 1) if result & 1 else result >> 1
    return value, index


def decode_polyline(encoded: str) -> List[Location]:
    """Decode an encoded polyline into an ordered list of locations."""
    if not encoded:
        return []
    points: List[Location] = []
    index = 0
    lat = 0
    lng = 0
    while index < len(encoded):
        dlat, index = _decode_value(encoded, index)
        dlng, index = _decode_value(encoded, index)
        lat += dlat
        lng += dlng
        points.append(Location(lat=lat / PRECISION, lng=lng / PRECISION))
    return points


def _encode_value(value: int) -> str:
    value = ~(value << 1) if value < 0 else value << 1
    chunks = []
    while value >= 0x20:
        chunks.append(chr((0x20 | (value & 0x1F)) + 63))
        value >>= 5
    chunks.append(chr(value + 63))
    return "".join(chunks)


def encode_polyline(points: Sequence[Location]) -> str:
    out = []
    prev_lat = 0
    prev_lng = 0
    for point in points:
        lat = int(round(point.lat * PRECISION))
        lng = int(round(point.lng * PRECISION))
        out.append(_encode_value(lat - prev_lat))
        out.append(_encode_value(lng - prev_lng))
        prev_lat = lat
        prev_lng = lng
    return "".join(out)
