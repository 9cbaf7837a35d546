"""
Nominatim reverse geocoding client.

Best effort: any failure degrades to a region-based description of the
coordinate. Only successful lookups are cached.
"""

import logging
from typing import Optional

import httpx

from ..storage.geocode_cache import GeocodeCache
from ..utils.geo_validator import GhanaRegionValidator

logger = logging.getLogger(__name__)

# Address parts joined in this order when present
ADDRESS_PARTS = ["suburb", "neighbourhood", "village", "town", "city", "state", "country"]


def format_address(data: dict) -> Optional[str]:
    """Readable address from a Nominatim response, or None."""
    if not data or not data.get("display_name"):
        return None

    address = data.get("address") or {}
    parts = []
    if address.get("house_number") and address.get("road"):
        parts.append(f"{address['house_number']} {address['road']}")
    elif address.get("road"):
        parts.append(address["road"])

    parts.extend(address[key] for key in ADDRESS_PARTS if address.get(key))

    return ", ".join(parts) if parts else data["display_name"]


class NominatimGeocoder:
    """Reverse geocoder backed by the public Nominatim API."""

    REVERSE_URL = "https://nominatim.openstreetmap.org/reverse"

    def __init__(
        self,
        cache: GeocodeCache,
        user_agent: str = "MineGuard-Ghana-App/1.0",
        timeout: float = 5.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.cache = cache
        self.user_agent = user_agent
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def _lookup(self, lat: float, lng: float) -> Optional[str]:
        try:
            response = await self._client.get(
                self.REVERSE_URL,
                params={
                    "format": "json",
                    "lat": lat,
                    "lon": lng,
                    "zoom": 18,
                    "addressdetails": 1,
                },
                headers={
                    "User-Agent": self.user_agent,
                    "Accept": "application/json",
                    "Accept-Language": "en",
                },
            )
        except httpx.HTTPError as e:
            logger.warning(f"Reverse geocoding failed for {lat:.4f}, {lng:.4f}: {e}")
            return None

        if response.status_code != 200:
            logger.warning(f"Reverse geocoding returned {response.status_code}")
            return None

        try:
            return format_address(response.json())
        except ValueError:
            return None

    async def reverse_geocode(self, lat: float, lng: float) -> str:
        """Location name for a coordinate. Never raises."""
        key = GeocodeCache.key(lat, lng)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        address = await self._lookup(lat, lng)
        if address is None:
            return GhanaRegionValidator.fallback_address(lat, lng)

        self.cache.set(key, address)
        return address
