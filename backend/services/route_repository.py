"""
Route read access backed by a JSON file.

Route and stop administration lives elsewhere; this registry only reads the
exported route set and lets an import replace it wholesale.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from models import Direction, Location, Route, Stop

logger = logging.getLogger(__name__)


class RouteRepository:
    """Thread-safe JSON-backed registry of routes and their ordered stops."""

    def __init__(self, storage_path) -> None:
        self.storage_path = Path(storage_path)
        self._lock = threading.Lock()
        self._listeners: List[Callable[[], None]] = []

    def add_listener(self, callback: Callable[[], None]) -> None:
        """``callback`` runs after every change to the stored routes."""
        self._listeners.append(callback)

    def _read_data(self) -> Dict[str, Any]:
        try:
            with self.storage_path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {"version": 1, "routes": []}
        except json.JSONDecodeError as e:
            logger.warning(f"[Routes] Invalid routes file {self.storage_path}: {e}")
            return {"version": 1, "routes": []}
        if not isinstance(data, dict) or not isinstance(data.get("routes"), list):
            return {"version": 1, "routes": []}
        return data

    def _write_data(self, data: Dict[str, Any]) -> None:
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)
        with self.storage_path.open("w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)

    @staticmethod
    def _parse_route(raw: Dict[str, Any]) -> Route:
        outbound: List[Stop] = []
        inbound: List[Stop] = []
        for index, s in enumerate(raw.get("stops") or []):
            stop = Stop(
                name=str(s.get("name", "") or ""),
                location=Location(lat=float(s["lat"]), lng=float(s["lng"])),
                direction=Direction(str(s.get("direction", "OUTBOUND")).upper()),
                sequence_index=int(s.get("sequence_index", index)),
            )
            (outbound if stop.direction == Direction.OUTBOUND else inbound).append(stop)
        outbound.sort(key=lambda s: s.sequence_index)
        inbound.sort(key=lambda s: s.sequence_index)
        return Route(
            id=str(raw["id"]),
            number=raw.get("number"),
            name=raw.get("name"),
            outbound_stops=outbound,
            inbound_stops=inbound,
        )

    @staticmethod
    def _dump_route(route: Route) -> Dict[str, Any]:
        stops = [
            {
                "name": s.name,
                "lat": s.location.lat,
                "lng": s.location.lng,
                "direction": s.direction.value,
                "sequence_index": s.sequence_index,
            }
            for s in route.stops_for(Direction.OUTBOUND) + route.stops_for(Direction.INBOUND)
        ]
        return {"id": route.id, "number": route.number, "name": route.name, "stops": stops}

    def list_routes(self) -> List[Route]:
        with self._lock:
            raw_routes = self._read_data()["routes"]
        routes = []
        for raw in raw_routes:
            try:
                routes.append(self._parse_route(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"[Routes] Skipping malformed route {raw.get('id') if isinstance(raw, dict) else raw!r}: {e}")
        return routes

    def get_route(self, route_id: str) -> Optional[Route]:
        for route in self.list_routes():
            if route.id == str(route_id) or (route.number and route.number == str(route_id)):
                return route
        return None

    def save_routes(self, routes: List[Route]) -> None:
        with self._lock:
            self._write_data({"version": 1, "routes": [self._dump_route(r) for r in routes]})
        logger.info(f"[Routes] Stored {len(routes)} routes")
        for callback in self._listeners:
            callback()
