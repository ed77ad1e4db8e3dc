from __future__ import annotations

from typing import List

import httpx
import pytest

from lomu.cache import TTLCache
from lomu.integrations.geocoding import ReverseGeocoder, cache_key, fallback_label


def _geocoder(handler, cache: TTLCache = None) -> ReverseGeocoder:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ReverseGeocoder(
        url="https://geo.test/reverse",
        user_agent="lomu-tests",
        timeout=2.0,
        cache=cache if cache is not None else TTLCache(max_entries=10, default_ttl=60),
        cache_ttl=60,
        min_interval=0.0,
        client=client,
    )


def test_cache_key_rounds_to_three_decimals() -> None:
    assert cache_key(-1.29211, 36.82194) == cache_key(-1.29249, 36.82151)
    assert cache_key(-1.2921, 36.8219) != cache_key(-1.2941, 36.8219)
    assert fallback_label(-1.29211, 36.82194) == "(-1.2921, 36.8219)"


@pytest.mark.asyncio
async def test_lookup_is_cached_by_rounded_coordinates() -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"address": {"town": "Ruiru", "village": "Kimbo"}, "display_name": "long"})

    geocoder = _geocoder(handler)
    assert await geocoder.reverse(-1.14601, 36.96001) == "Ruiru"
    assert await geocoder.reverse(-1.14599, 36.96004) == "Ruiru"
    assert len(requests) == 1
    assert requests[0].headers["User-Agent"] == "lomu-tests"
    assert requests[0].url.params["format"] == "json"
    await geocoder.close()


@pytest.mark.asyncio
async def test_label_prefers_city_then_falls_back_to_display_name() -> None:
    payloads = iter(
        [
            {"address": {"city": "Nairobi", "town": "Other"}},
            {"address": {}, "display_name": "Somewhere, Kenya"},
        ]
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=next(payloads))

    geocoder = _geocoder(handler)
    assert await geocoder.reverse(1.0, 1.0) == "Nairobi"
    assert await geocoder.reverse(2.0, 2.0) == "Somewhere, Kenya"
    await geocoder.close()


@pytest.mark.asyncio
async def test_failures_fall_back_and_are_not_cached() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] == 1:
            return httpx.Response(503)
        return httpx.Response(200, json={"address": {"city": "Mombasa"}})

    cache = TTLCache(max_entries=10, default_ttl=60)
    geocoder = _geocoder(handler, cache)
    assert await geocoder.reverse(-4.0435, 39.6682) == "(-4.0435, 39.6682)"
    assert len(cache) == 0
    assert await geocoder.reverse(-4.0435, 39.6682) == "Mombasa"
    assert len(cache) == 1
    await geocoder.close()


@pytest.mark.asyncio
async def test_transport_error_falls_back() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("slow", request=request)

    geocoder = _geocoder(handler)
    assert await geocoder.reverse(0.5, 0.25) == "(0.5000, 0.2500)"
    await geocoder.close()


@pytest.mark.asyncio
async def test_ttl_cache_expiry_and_size_bound(monkeypatch: pytest.MonkeyPatch) -> None:
    clock = {"now": 1000.0}
    monkeypatch.setattr("lomu.cache.time.time", lambda: clock["now"])
    cache = TTLCache(max_entries=2, default_ttl=10)

    await cache.set("a", 1, ttl_seconds=5)
    await cache.set("b", 2, ttl_seconds=50)
    await cache.set("c", 3, ttl_seconds=30)
    # bound hit: the entry closest to expiry is dropped
    assert len(cache) == 2
    assert await cache.get("a") is None
    assert await cache.get("b") == 2

    clock["now"] += 31
    assert await cache.get("c") is None
    assert await cache.get("b") == 2
