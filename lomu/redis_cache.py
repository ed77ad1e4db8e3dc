import json
import logging
from typing import Any, Optional

from redis.asyncio import Redis

LOGGER = logging.getLogger("uvicorn.error")
_CACHE_NAMESPACE = "cache:"


class RedisTTLCache:
    """Redis-backed cache with the same interface as ``TTLCache`` for multi-process deployments."""

    def __init__(self, url: str, *, prefix: str = "", default_ttl: int = 86400) -> None:
        self._url = url
        self._prefix = (prefix or "").strip()
        self._default_ttl = int(default_ttl)
        self._client: Optional[Redis] = None

    def _redis_key(self, key: str) -> str:
        ns = _CACHE_NAMESPACE
        if self._prefix:
            ns = f"{self._prefix}:{_CACHE_NAMESPACE}"
        return f"{ns}{key}"

    async def _get_client(self) -> Optional[Redis]:
        if self._client is not None:
            return self._client
        try:
            client = Redis.from_url(self._url, encoding="utf-8", decode_responses=False)
            await client.ping()
            self._client = client
        except Exception as exc:
            LOGGER.error("Redis cache unavailable: %s", exc)
            self._client = None
        return self._client

    async def get(self, key: str) -> Optional[Any]:
        client = await self._get_client()
        if not client:
            return None
        try:
            raw = await client.get(self._redis_key(key))
            if raw is None:
                return None
            if isinstance(raw, (bytes, bytearray)):
                raw = raw.decode("utf-8")
            return json.loads(raw)
        except Exception as exc:
            LOGGER.warning("Redis cache read failed for %s: %s", key, exc)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        client = await self._get_client()
        if not client:
            return
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        try:
            payload = json.dumps(value, separators=(",", ":"))
            await client.set(self._redis_key(key), payload, ex=max(1, int(ttl)))
        except Exception as exc:
            LOGGER.warning("Redis cache write failed for %s: %s", key, exc)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
