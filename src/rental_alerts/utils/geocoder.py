"""Address to coordinates resolution with caching."""

import asyncio

from rental_alerts.logging import get_logger
from rental_alerts.models import GeocodeResult
from rental_alerts.utils.geocode_cache import (
    GeocodeCache,
    InMemoryGeocodeCache,
    normalize_address,
)
from rental_alerts.utils.maps_client import GoogleMapsClient, MapsServiceError

logger = get_logger(__name__)


class GeocodeResolver:
    """Resolve free-text addresses, remembering successful lookups.

    Failed lookups (service error or no result) are never cached, so the next
    call for the same address asks the service again. Concurrent calls for the
    same address share a single in-flight lookup.
    """

    def __init__(self, maps: GoogleMapsClient, *, cache: GeocodeCache | None = None) -> None:
        self.maps = maps
        self.cache: GeocodeCache = cache if cache is not None else InMemoryGeocodeCache()
        self._inflight: dict[str, asyncio.Task[GeocodeResult | None]] = {}

    async def resolve(self, address: str) -> GeocodeResult | None:
        """Resolve an address.

        Returns:
            The first geocoding result, or None if the address could not be resolved.
        """
        key = normalize_address(address)
        if not key:
            return None

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._lookup(key, address))
            self._inflight[key] = task
            task.add_done_callback(lambda _: self._inflight.pop(key, None))
        else:
            logger.debug("geocoding_joined_inflight", address=key)

        # Cancelling one caller must not cancel the lookup others are awaiting
        return await asyncio.shield(task)

    async def _lookup(self, key: str, address: str) -> GeocodeResult | None:
        cached = await self.cache.get(key)
        if cached is not None:
            logger.debug("geocoding_cache_hit", address=key)
            return cached

        try:
            result = await self.maps.geocode(address)
        except MapsServiceError as e:
            logger.warning("geocoding_failed", address=address, status=e.status, error=str(e))
            return None

        if result is None:
            logger.info("geocoding_no_result", address=address)
            return None

        await self.cache.set(key, result)
        return result
