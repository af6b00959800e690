"""
Polyline cache for route directions with TTL and JSON snapshot persistence.

The snapshot on disk is never authoritative: it can be deleted at any time
and is rebuilt from the route stops.
"""

import asyncio
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List, Optional, Sequence, Tuple

from exceptions import CacheBuildError
from models import Direction, Location, RoutePolyline
from services.route_path_service import RoutePathBuilder

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

CacheKey = Tuple[str, Direction]


class JsonSnapshotStore:
    """Whole-cache snapshot in a single JSON file, replaced atomically on save."""

    def __init__(self, path):
        self.path = Path(path)

    def load(self) -> Dict[str, Any]:
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"[RouteCache] Error loading snapshot {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def save(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".route_cache_", suffix=".json", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise


@dataclass
class RebuildReport:
    built: int = 0
    failures: List[CacheBuildError] = field(default_factory=list)
    persisted: bool = False


class RoutePolylineCache:
    """
    Built polylines keyed by (route id, direction).

    ``get`` hides entries whose age reached the TTL; they are physically
    removed only by ``purge_expired``.
    """

    def __init__(self, store: JsonSnapshotStore, clock, ttl_seconds: float):
        self._store = store
        self._clock = clock
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[CacheKey, RoutePolyline] = {}
        self._lock = RLock()

    def _is_fresh(self, entry: RoutePolyline, now: float) -> bool:
        return now - entry.built_at < self.ttl_seconds

    def get(self, route_id, direction: Direction) -> Optional[RoutePolyline]:
        key = (str(route_id), Direction(direction))
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        if not self._is_fresh(entry, self._clock.now()):
            logger.debug(f"[RouteCache] Cache expired for route {key[0]} {key[1].value}")
            return None
        return entry

    def put(self, route_id, direction: Direction, points: Sequence[Location]) -> RoutePolyline:
        entry = RoutePolyline(
            route_id=str(route_id),
            direction=Direction(direction),
            points=list(points),
            built_at=self._clock.now(),
        )
        with self._lock:
            self._entries[(entry.route_id, entry.direction)] = entry
        return entry

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def snapshot(self) -> Dict[str, Any]:
        routes: Dict[str, Dict[str, Any]] = {}
        with self._lock:
            entries = list(self._entries.values())
        for entry in entries:
            routes.setdefault(entry.route_id, {})[entry.direction.value] = {
                "points": [{"lat": p.lat, "lng": p.lng} for p in entry.points],
                "built_at": entry.built_at,
            }
        return {"version": SNAPSHOT_VERSION, "routes": routes}

    def load(self) -> int:
        """Replace the in-memory entries with the persisted snapshot."""
        data = self._store.load()
        loaded: Dict[CacheKey, RoutePolyline] = {}
        routes = data.get("routes")
        for route_id, directions in (routes if isinstance(routes, dict) else {}).items():
            if not isinstance(directions, dict):
                continue
            for direction, payload in directions.items():
                try:
                    entry = RoutePolyline(
                        route_id=str(route_id),
                        direction=Direction(direction),
                        points=[Location(**p) for p in payload.get("points", [])],
                        built_at=float(payload["built_at"]),
                    )
                except (KeyError, TypeError, ValueError, AttributeError) as e:
                    logger.warning(f"[RouteCache] Skipping bad snapshot entry {route_id}/{direction}: {e}")
                    continue
                loaded[(entry.route_id, entry.direction)] = entry
        with self._lock:
            self._entries = loaded
        logger.info(f"[RouteCache] Loaded {len(loaded)} polylines from {self._store.path}")
        return len(loaded)

    async def persist(self) -> None:
        snapshot = self.snapshot()
        await asyncio.to_thread(self._store.save, snapshot)
        logger.info(f"[RouteCache] Saved {self.size} polylines to {self._store.path}")

    def purge_expired(self) -> int:
        now = self._clock.now()
        with self._lock:
            expired = [k for k, e in self._entries.items() if not self._is_fresh(e, now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info(f"[RouteCache] Cleared {len(expired)} expired cache entries")
        return len(expired)

    async def rebuild_all(self, routes, builder: RoutePathBuilder) -> RebuildReport:
        """
        Rebuild every direction of every route, then persist one snapshot.

        A failing route is logged and skipped.
        """
        report = RebuildReport()
        for route in routes:
            for direction in Direction:
                try:
                    points = await builder.build(route.stops_for(direction))
                except Exception as e:
                    error = CacheBuildError(route.id, direction.value, e)
                    logger.exception(f"[RouteCache] {error}")
                    report.failures.append(error)
                    continue
                self.put(route.id, direction, points)
                report.built += 1
        try:
            await self.persist()
            report.persisted = True
        except OSError as e:
            logger.warning(f"[RouteCache] Failed to persist route cache: {e}")
        logger.info(
            f"[RouteCache] Finished building route polylines: {report.built} built, "
            f"{len(report.failures)} failed"
        )
        return report
