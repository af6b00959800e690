"""
Exception types shared by the geocoding, routing and proximity services.
"""

from typing import Optional


class BusFinderError(Exception):
    """Base class for every error raised by this service."""


class InvalidInputError(BusFinderError):
    """Malformed coordinates, empty query text or an invalid contact."""


class ResolutionError(BusFinderError):
    """No geocode provider could resolve the given location."""

    def __init__(self, query: str):
        self.query = query
        super().__init__(f"Could not find location {query!r}")


class ProviderError(BusFinderError):
    """
    Transient failure of an external provider.

    Raised for network errors, timeouts, non-success HTTP statuses and
    provider-side error payloads. Always recovered by the provider chain.
    """

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"[{provider}] {message}")


class QuotaExceededError(ProviderError):
    """The daily budget for metered provider calls is used up."""

    def __init__(self, provider: str):
        super().__init__(provider, "daily usage limit exceeded")


class RateLimitExceededError(BusFinderError):
    """A client or contact exceeded its hourly proximity-check allowance."""


class CacheBuildError(BusFinderError):
    """Building the polyline of one route direction failed during a rebuild."""

    def __init__(self, route_id: str, direction: str, cause: BaseException):
        self.route_id = route_id
        self.direction = direction
        self.cause = cause
        super().__init__(f"Failed building route {route_id} {direction}: {cause}")
