"""
Configuration module for the bus availability backend.

All settings are read from environment variables once at startup and kept in
an immutable ``Settings`` instance that is passed to every service.
"""

import os
import tempfile
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple


DEFAULT_POI_KEYWORDS: Tuple[str, ...] = (
    "market",
    "station",
    "bus",
    "stand",
    "center",
    "centre",
    "college",
)

ROUTE_CACHE_TTL_SECONDS = 2 * 60 * 60


def _get_str(env: Mapping[str, str], name: str, default: Optional[str] = None) -> Optional[str]:
    value = env.get(name)
    if value is None:
        return default
    value = value.strip()
    return value or default


def _get_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    value = env.get(name)
    if value is None:
        return default
    return value.strip().lower() == "true"


def _get_int(env: Mapping[str, str], name: str, default: int) -> int:
    value = _get_str(env, name)
    return int(value) if value is not None else default


def _get_float(env: Mapping[str, str], name: str, default: float) -> float:
    value = _get_str(env, name)
    return float(value) if value is not None else default


@dataclass(frozen=True)
class Settings:
    """Application configuration loaded from environment variables."""

    # Geocoding
    google_maps_api_key: Optional[str] = None
    google_geocode_url: str = "https://maps.googleapis.com/maps/api/geocode/json"
    geocode_country: Optional[str] = None
    geocode_region: Optional[str] = None
    geocode_state: Optional[str] = None
    geocode_city: Optional[str] = None
    poi_keywords: Tuple[str, ...] = DEFAULT_POI_KEYWORDS
    nominatim_base_url: str = "https://nominatim.openstreetmap.org"
    nominatim_user_agent: str = "BusTransportApp/1.0"

    # Routing
    google_directions_url: str = "https://maps.googleapis.com/maps/api/directions/json"
    osrm_base_url: Optional[str] = None
    osrm_profile: str = "driving"
    provider_timeout_seconds: float = 5.0

    # Usage limits
    google_daily_limit: int = 1000
    availability_limit_per_hour: int = 200
    availability_limit_per_contact_per_hour: int = 60
    login_max_attempts: int = 6
    login_window_seconds: int = 15 * 60

    # Proximity
    search_radius_km: float = 1.5
    intersection_mode: str = "point"

    # Route polyline cache
    route_cache_ttl_seconds: int = ROUTE_CACHE_TTL_SECONDS
    route_build_cooldown_seconds: int = 5 * 60
    route_cache_persist: bool = False
    route_cache_path: str = "route_cache.json"

    # Data sources / sinks
    routes_data_path: str = os.path.join("data", "routes.json")
    availability_log_path: str = os.path.join("data", "availability_log.jsonl")

    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.intersection_mode not in ("point", "segment"):
            raise ValueError(f"INTERSECTION_MODE must be 'point' or 'segment', got {self.intersection_mode!r}")
        if self.search_radius_km <= 0:
            raise ValueError("SEARCH_RADIUS_KM must be positive")
        if self.route_cache_ttl_seconds <= 0 or self.route_build_cooldown_seconds < 0:
            raise ValueError("Route cache TTL must be positive and cooldown non-negative")
        if self.provider_timeout_seconds <= 0:
            raise ValueError("PROVIDER_TIMEOUT must be positive")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        persist = _get_bool(env, "ROUTE_CACHE_PERSIST") or _get_str(env, "APP_ENV", "") == "production"
        return cls(
            google_maps_api_key=_get_str(env, "GOOGLE_MAPS_API_KEY"),
            geocode_country=_get_str(env, "GEOCODE_COUNTRY"),
            geocode_region=_get_str(env, "GEOCODE_REGION"),
            geocode_state=_get_str(env, "GEOCODE_STATE"),
            geocode_city=_get_str(env, "GEOCODE_CITY"),
            nominatim_base_url=_get_str(env, "NOMINATIM_BASE_URL", cls.nominatim_base_url),
            nominatim_user_agent=_get_str(env, "NOMINATIM_USER_AGENT", cls.nominatim_user_agent),
            osrm_base_url=_get_str(env, "OSRM_BASE_URL"),
            osrm_profile=_get_str(env, "OSRM_PROFILE", cls.osrm_profile),
            provider_timeout_seconds=_get_float(env, "PROVIDER_TIMEOUT", cls.provider_timeout_seconds),
            google_daily_limit=_get_int(env, "GOOGLE_MAPS_DAILY_LIMIT", cls.google_daily_limit),
            availability_limit_per_hour=_get_int(
                env, "AVAILABILITY_RATE_LIMIT_PER_HOUR", cls.availability_limit_per_hour
            ),
            availability_limit_per_contact_per_hour=_get_int(
                env, "AVAILABILITY_LIMIT_PER_CONTACT_PER_HOUR", cls.availability_limit_per_contact_per_hour
            ),
            login_max_attempts=_get_int(env, "LOGIN_MAX_ATTEMPTS", cls.login_max_attempts),
            login_window_seconds=_get_int(env, "LOGIN_WINDOW_SECONDS", cls.login_window_seconds),
            search_radius_km=_get_float(env, "SEARCH_RADIUS_KM", cls.search_radius_km),
            intersection_mode=(_get_str(env, "INTERSECTION_MODE", "point") or "point").lower(),
            route_cache_ttl_seconds=_get_int(env, "ROUTE_CACHE_TTL", ROUTE_CACHE_TTL_SECONDS),
            route_build_cooldown_seconds=_get_int(
                env, "ROUTE_BUILD_COOLDOWN_SECONDS", cls.route_build_cooldown_seconds
            ),
            route_cache_persist=persist,
            route_cache_path=_get_str(env, "ROUTE_CACHE_PATH", cls.route_cache_path),
            routes_data_path=_get_str(env, "ROUTES_DATA_PATH", cls.routes_data_path),
            availability_log_path=_get_str(env, "AVAILABILITY_LOG_PATH", cls.availability_log_path),
            log_level=(_get_str(env, "LOG_LEVEL", "INFO") or "INFO").upper(),
        )

    @property
    def search_radius_m(self) -> float:
        return self.search_radius_km * 1000

    @property
    def google_enabled(self) -> bool:
        return bool(self.google_maps_api_key)

    def resolved_route_cache_path(self) -> str:
        """Durable path when persisting, otherwise a per-process temp file."""
        if self.route_cache_persist:
            return self.route_cache_path
        return os.path.join(tempfile.gettempdir(), f"route_cache_{os.getpid()}.json")

    def get_config_dict(self) -> dict:
        """Return configuration as dictionary (for debugging)."""
        return {
            "GOOGLE_MAPS_API_KEY": "***" if self.google_maps_api_key else None,
            "GEOCODE_COUNTRY": self.geocode_country,
            "GEOCODE_REGION": self.geocode_region,
            "GEOCODE_STATE": self.geocode_state,
            "GEOCODE_CITY": self.geocode_city,
            "OSRM_BASE_URL": self.osrm_base_url,
            "PROVIDER_TIMEOUT": self.provider_timeout_seconds,
            "GOOGLE_MAPS_DAILY_LIMIT": self.google_daily_limit,
            "SEARCH_RADIUS_KM": self.search_radius_km,
            "INTERSECTION_MODE": self.intersection_mode,
            "ROUTE_CACHE_TTL": self.route_cache_ttl_seconds,
            "ROUTE_BUILD_COOLDOWN_SECONDS": self.route_build_cooldown_seconds,
            "ROUTE_CACHE_PATH": self.resolved_route_cache_path(),
        }
