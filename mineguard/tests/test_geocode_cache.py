"""
Test the bounded geocode cache and the reverse geocoder.
"""

import asyncio

import httpx
import pytest

from ..clients.nominatim import NominatimGeocoder, format_address
from ..storage.geocode_cache import GeocodeCache


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_lru_eviction():
    """The least recently used entry goes first."""
    print("\n=== Testing LRU Eviction ===")

    cache = GeocodeCache(max_entries=2)
    cache.set("a", "Alpha")
    cache.set("b", "Bravo")
    assert cache.get("a") == "Alpha"  # a is now most recent

    cache.set("c", "Charlie")
    assert "b" not in cache
    assert cache.get("a") == "Alpha"
    assert cache.get("c") == "Charlie"
    assert len(cache) == 2
    assert cache.evictions == 1
    print("✓ Bravo evicted, Alpha and Charlie kept")


def test_ttl_expiry():
    """Entries expire after the TTL."""
    print("\n=== Testing TTL Expiry ===")

    clock = FakeClock()
    cache = GeocodeCache(max_entries=10, ttl_seconds=60, clock=clock)
    cache.set("k", "Tarkwa")

    clock.now = 59
    assert cache.get("k") == "Tarkwa"
    clock.now = 60
    assert cache.get("k") is None
    assert len(cache) == 0
    print("✓ Entry gone at 60 seconds")


def test_keys_and_clear():
    """Keys use six decimals; clear empties the cache."""
    print("\n=== Testing Keys ===")

    assert GeocodeCache.key(5.3, -1.98) == "5.300000,-1.980000"
    cache = GeocodeCache()
    cache.set(GeocodeCache.key(5.3, -1.98), "Tarkwa")
    cache.set(GeocodeCache.key(5.3, -1.98), "Tarkwa Township")
    assert len(cache) == 1
    assert cache.get("5.300000,-1.980000") == "Tarkwa Township"
    cache.clear()
    assert len(cache) == 0
    print("✓ Overwrites are idempotent")

    with pytest.raises(ValueError):
        GeocodeCache(max_entries=0)
    print("✓ Zero capacity rejected")


def test_format_address():
    """Road, locality and country parts are joined."""
    print("\n=== Testing Address Formatting ===")

    data = {
        "display_name": "Somewhere, Ghana",
        "address": {"house_number": "12", "road": "Station Road", "town": "Tarkwa", "country": "Ghana"},
    }
    assert format_address(data) == "12 Station Road, Tarkwa, Ghana"
    assert format_address({"display_name": "Only Display", "address": {}}) == "Only Display"
    assert format_address({}) is None
    print("✓ Address formatting")


def make_geocoder(handler, cache=None):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return NominatimGeocoder(cache or GeocodeCache(), http_client=http_client)


def test_reverse_geocode_caches_success():
    """Successful lookups are cached; the second call makes no request."""
    print("\n=== Testing Reverse Geocode ===")

    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(
            200, json={"display_name": "Tarkwa, Ghana", "address": {"town": "Tarkwa", "country": "Ghana"}}
        )

    geocoder = make_geocoder(handler)

    async def run():
        first = await geocoder.reverse_geocode(5.3, -1.98)
        second = await geocoder.reverse_geocode(5.3, -1.98)
        await geocoder.close()
        return first, second

    first, second = asyncio.run(run())
    assert first == second == "Tarkwa, Ghana"
    assert len(calls) == 1
    assert calls[0].headers["User-Agent"] == "MineGuard-Ghana-App/1.0"
    print("✓ One request for two lookups")


def test_reverse_geocode_fallback():
    """Failures fall back to a region description and are not cached."""
    print("\n=== Testing Geocode Fallback ===")

    cache = GeocodeCache()
    geocoder = make_geocoder(lambda request: httpx.Response(503), cache=cache)

    async def run():
        address = await geocoder.reverse_geocode(5.3, -1.98)
        await geocoder.close()
        return address

    assert asyncio.run(run()) == "Location near Western Region, Ghana (5.3000, -1.9800)"
    assert len(cache) == 0
    print("✓ 503 falls back without caching")

    def broken(request):
        raise httpx.ConnectError("offline", request=request)

    geocoder = make_geocoder(broken)

    async def run_offline():
        address = await geocoder.reverse_geocode(6.2, -1.67)
        await geocoder.close()
        return address

    assert asyncio.run(run_offline()).startswith("Location near")
    print("✓ Network error falls back")


def run_all_tests():
    """Run all geocode tests."""
    print("\n" + "=" * 60)
    print("GEOCODE CACHE TESTS")
    print("=" * 60)

    test_lru_eviction()
    test_ttl_expiry()
    test_keys_and_clear()
    test_format_address()
    test_reverse_geocode_caches_success()
    test_reverse_geocode_fallback()

    print("\n" + "=" * 60)
    print("✅ ALL GEOCODE CACHE TESTS PASSED!")
    print("=" * 60)


if __name__ == "__main__":
    run_all_tests()
