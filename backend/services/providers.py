"""
Base HTTP provider and the ordered-fallback combinator.

Every external service (geocoding, routing) is wrapped in an ``HTTPProvider``.
Providers raise ``ProviderError`` on any transient failure; ``ProviderChain``
tries them in order and returns the first usable result.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Sequence, TypeVar

import httpx

from exceptions import ProviderError, QuotaExceededError

logger = logging.getLogger(__name__)

T = TypeVar("T")
P = TypeVar("P", bound="HTTPProvider")


class HTTPProvider:
    """
    Thin async HTTP adapter around one external provider.

    Metered providers consult the ``UsageGovernor`` before every request and
    raise ``QuotaExceededError`` when the daily budget is spent.
    """

    name: str = "provider"
    metered: bool = False

    def __init__(self, http_client: httpx.AsyncClient, governor=None):
        self._client = http_client
        self._governor = governor

    def _check_budget(self) -> None:
        if not self.metered or self._governor is None:
            return
        if not self._governor.try_consume_provider_call():
            logger.warning(f"[{self.name}] Daily provider budget exhausted")
            raise QuotaExceededError(self.name)

    async def _get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        self._check_budget()
        try:
            response = await self._client.get(url, params=params, headers=headers)
        except httpx.TimeoutException as e:
            raise ProviderError(self.name, f"timeout: {e}") from e
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"request failed: {e}") from e

        if response.status_code != 200:
            raise ProviderError(self.name, f"HTTP {response.status_code}", status_code=response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(self.name, "invalid JSON response") from e


class ProviderChain(Generic[P]):
    """Try providers in order; the first non-empty answer wins."""

    def __init__(self, providers: Sequence[P]):
        self.providers: List[P] = list(providers)

    def __len__(self) -> int:
        return len(self.providers)

    async def first(self, call: Callable[[P], Awaitable[Optional[T]]], what: str = "request") -> Optional[T]:
        for provider in self.providers:
            try:
                result = await call(provider)
            except ProviderError as e:
                logger.warning(f"[Providers] {what} failed on {provider.name}: {e}")
                continue
            if result:
                return result
            logger.info(f"[Providers] {what}: no result from {provider.name}")
        return None
