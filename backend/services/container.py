"""
Builds the service graph once at startup from ``Settings``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import httpx

from config import Settings
from services.availability_log import AvailabilityLog
from services.availability_service import AvailabilityService
from services.clock import SystemClock
from services.geocoding_providers import GoogleGeocodeProvider, NominatimGeocodeProvider
from services.geocoding_service import GeocodeCache, GeocodeResolver
from services.proximity_service import IntersectionMode, ProximityMatcher
from services.rebuild_scheduler import DebouncedRebuildScheduler, PeriodicSweeper
from services.route_cache import JsonSnapshotStore, RebuildReport, RoutePolylineCache
from services.route_path_service import RoutePathBuilder
from services.route_repository import RouteRepository
from services.routing_providers import GoogleDirectionsProvider, OSRMRouteProvider
from services.usage_governor import UsageGovernor

logger = logging.getLogger(__name__)


@dataclass
class AppServices:
    settings: Settings
    clock: object
    http_client: httpx.AsyncClient
    governor: UsageGovernor
    resolver: GeocodeResolver
    builder: RoutePathBuilder
    cache: RoutePolylineCache
    repository: RouteRepository
    matcher: ProximityMatcher
    availability: AvailabilityService
    scheduler: DebouncedRebuildScheduler
    sweeper: PeriodicSweeper
    _tasks: List[asyncio.Task] = field(default_factory=list)

    async def rebuild_all(self) -> RebuildReport:
        return await self.cache.rebuild_all(self.repository.list_routes(), self.builder)

    async def sweep(self) -> int:
        purged = self.cache.purge_expired()
        self.governor.purge_stale()
        if purged:
            await self.cache.persist()
        return purged

    def start(self) -> None:
        """Load the snapshot, request the startup rebuild and start background loops."""
        self.cache.load()
        self.scheduler.signal(immediate=True)
        self._tasks = [
            asyncio.create_task(self.scheduler.run_forever(), name="route-rebuild-scheduler"),
            asyncio.create_task(self.sweeper.run_forever(), name="route-cache-sweeper"),
        ]
        logger.info(
            f"[RouteCache] Initialized with {self.settings.route_cache_ttl_seconds / 3600:g}h refresh interval"
        )

    async def close(self) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        if not self.http_client.is_closed:
            await self.http_client.aclose()


def build_services(
    settings: Settings,
    http_client: Optional[httpx.AsyncClient] = None,
    clock=None,
) -> AppServices:
    clock = clock or SystemClock()
    http_client = http_client or httpx.AsyncClient(
        timeout=settings.provider_timeout_seconds,
        limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
    )
    governor = UsageGovernor(settings, clock)

    geocoders = []
    routers = []
    if settings.google_enabled:
        geocoders.append(GoogleGeocodeProvider(http_client, settings, governor))
        routers.append(GoogleDirectionsProvider(http_client, settings, governor))
    geocoders.append(NominatimGeocodeProvider(http_client, settings))
    if settings.osrm_base_url:
        routers.append(OSRMRouteProvider(http_client, settings))

    resolver = GeocodeResolver(geocoders, GeocodeCache())
    builder = RoutePathBuilder(routers)
    cache = RoutePolylineCache(
        JsonSnapshotStore(settings.resolved_route_cache_path()), clock, settings.route_cache_ttl_seconds
    )
    repository = RouteRepository(settings.routes_data_path)
    matcher = ProximityMatcher(cache, builder, IntersectionMode(settings.intersection_mode))
    availability = AvailabilityService(
        settings, resolver, matcher, repository, governor, AvailabilityLog(settings.availability_log_path)
    )

    services = AppServices(
        settings=settings,
        clock=clock,
        http_client=http_client,
        governor=governor,
        resolver=resolver,
        builder=builder,
        cache=cache,
        repository=repository,
        matcher=matcher,
        availability=availability,
        scheduler=None,
        sweeper=None,
    )
    services.scheduler = DebouncedRebuildScheduler(
        services.rebuild_all, clock, settings.route_build_cooldown_seconds
    )
    services.sweeper = PeriodicSweeper(services.sweep, settings.route_cache_ttl_seconds)
    repository.add_listener(services.scheduler.signal)
    return services
