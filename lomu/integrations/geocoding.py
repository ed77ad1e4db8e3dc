"""Reverse geocoding against Nominatim with caching, pacing and a placeholder fallback."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Optional, Union

import httpx

from ..cache import TTLCache
from ..config import get_settings
from ..redis_cache import RedisTTLCache

LOGGER = logging.getLogger("uvicorn.error")

GeocodeCache = Union[TTLCache, RedisTTLCache]


def cache_key(latitude: float, longitude: float) -> str:
    return f"geo:{round(latitude, 3):.3f},{round(longitude, 3):.3f}"


def fallback_label(latitude: float, longitude: float) -> str:
    return f"({latitude:.4f}, {longitude:.4f})"


def _label_from_payload(data: Dict[str, Any]) -> Optional[str]:
    address = data.get("address") or {}
    for key in ("city", "town", "village"):
        value = address.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    display = data.get("display_name")
    if isinstance(display, str) and display.strip():
        return display.strip()
    return None


class ReverseGeocoder:
    """Turns coordinates into a place label.

    Lookups are cached by coordinate rounded to ~100 m, outbound requests are spaced by
    ``min_interval`` seconds, and any failure yields ``"(lat, lon)"`` without being cached.
    """

    def __init__(
        self,
        *,
        url: str,
        user_agent: str,
        timeout: float,
        cache: GeocodeCache,
        cache_ttl: int,
        min_interval: float,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._url = url
        self._user_agent = user_agent
        self._timeout = timeout
        self._cache = cache
        self._cache_ttl = cache_ttl
        self._min_interval = max(0.0, float(min_interval))
        self._client = client
        self._pace_lock = asyncio.Lock()
        self._last_request_at = 0.0

    @property
    def cache(self) -> GeocodeCache:
        return self._cache

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"User-Agent": self._user_agent},
            )
        return self._client

    async def _wait_for_slot(self) -> None:
        async with self._pace_lock:
            wait = self._last_request_at + self._min_interval - time.monotonic()
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_request_at = time.monotonic()

    async def _lookup(self, latitude: float, longitude: float) -> Optional[str]:
        await self._wait_for_slot()
        client = await self._get_client()
        resp = await client.get(
            self._url,
            params={"format": "json", "lat": latitude, "lon": longitude},
            headers={"User-Agent": self._user_agent},
            timeout=self._timeout,
        )
        resp.raise_for_status()
        return _label_from_payload(resp.json() or {})

    async def reverse(self, latitude: float, longitude: float) -> str:
        key = cache_key(latitude, longitude)
        hit = await self._cache.get(key)
        if isinstance(hit, str) and hit:
            return hit
        try:
            label = await asyncio.wait_for(self._lookup(latitude, longitude), timeout=self._timeout)
        except asyncio.TimeoutError:
            LOGGER.warning("Geocoder timed out for %s", key)
            return fallback_label(latitude, longitude)
        except Exception as exc:
            LOGGER.warning("Geocoder failed for %s: %s", key, exc)
            return fallback_label(latitude, longitude)
        if not label:
            return fallback_label(latitude, longitude)
        await self._cache.set(key, label, ttl_seconds=self._cache_ttl)
        return label

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        if isinstance(self._cache, RedisTTLCache):
            await self._cache.close()


_geocoder: Optional[ReverseGeocoder] = None


def get_geocoder() -> ReverseGeocoder:
    global _geocoder
    if _geocoder is None:
        settings = get_settings()
        cache: GeocodeCache
        if settings.redis_url:
            cache = RedisTTLCache(
                settings.redis_url,
                prefix=settings.redis_prefix,
                default_ttl=settings.geocoder_cache_ttl,
            )
        else:
            cache = TTLCache(max_entries=settings.geocoder_cache_max, default_ttl=settings.geocoder_cache_ttl)
        _geocoder = ReverseGeocoder(
            url=settings.geocoder_url,
            user_agent=settings.geocoder_user_agent,
            timeout=settings.geocoder_timeout,
            cache=cache,
            cache_ttl=settings.geocoder_cache_ttl,
            min_interval=settings.geocoder_min_interval,
        )
    return _geocoder


async def close_geocoder() -> None:
    global _geocoder
    if _geocoder is not None:
        await _geocoder.close()
        _geocoder = None


async def reverse_geocode(latitude: float, longitude: float) -> str:
    return await get_geocoder().reverse(latitude, longitude)


__all__ = [
    "ReverseGeocoder",
    "cache_key",
    "close_geocoder",
    "fallback_label",
    "get_geocoder",
    "reverse_geocode",
]
