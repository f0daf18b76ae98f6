"""Best-effort cache over a remote Redis store.

Keys are namespaced by kind:

    user:session:<userId>
    document:metadata:<docId>
    query:results:<queryKey>
    user:recently_viewed:<userId>   (a list, most recent first, bounded)

Every operation handles its own errors: writes log and return, reads log and
return None. A cache outage therefore degrades to "no caching" and never
fails the request that touched the cache. Until `connect()` has succeeded
every operation is a no-op.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import redis.asyncio as redis

log = logging.getLogger(__name__)

SESSION_PREFIX = "user:session:"
METADATA_PREFIX = "document:metadata:"
QUERY_PREFIX = "query:results:"
RECENTLY_VIEWED_PREFIX = "user:recently_viewed:"

DEFAULT_TTL = 3600
QUERY_TTL = 600
RECENTLY_VIEWED_LIMIT = 20


def session_key(user_id: str) -> str:
    return f"{SESSION_PREFIX}{user_id}"


def metadata_key(doc_id: str) -> str:
    return f"{METADATA_PREFIX}{doc_id}"


def query_key(query: str) -> str:
    return f"{QUERY_PREFIX}{query}"


def recently_viewed_key(user_id: str) -> str:
    return f"{RECENTLY_VIEWED_PREFIX}{user_id}"


class CacheGateway:
    def __init__(self, client: redis.Redis | None = None):
        self._client = client

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def connect(self, url: str | None) -> bool:
        """Open the connection and ping it. On failure the gateway stays inert."""
        if not url:
            log.warning("REDIS_URL not set, caching disabled")
            return False
        options: dict[str, Any] = {"decode_responses": True}
        if url.startswith("rediss://"):
            # Hosted Redis often presents self-signed certificates
            options["ssl_cert_reqs"] = "none"
        client = redis.from_url(url, **options)
        try:
            await client.ping()
        except Exception as e:
            log.warning("Failed to connect to Redis, caching disabled: %s", e)
            await client.aclose()
            return False
        log.info("Connected to Redis")
        self._client = client
        return True

    async def close(self) -> None:
        if self._client is None:
            return
        client, self._client = self._client, None
        try:
            await client.aclose()
        except Exception as e:
            log.warning("Error closing Redis connection: %s", e)

    async def _set_json(self, key: str, value: Any, ttl: int) -> None:
        if self._client is None:
            return
        try:
            await self._client.set(key, json.dumps(value, default=str), ex=ttl)
            log.debug("Cached %s (ttl=%ss)", key, ttl)
        except Exception as e:
            log.warning("Error caching %s: %s", key, e)

    async def cache_user_session(
        self, user_id: str, data: Any, ttl: int = DEFAULT_TTL
    ) -> None:
        await self._set_json(session_key(user_id), data, ttl)

    async def cache_document_metadata(
        self, doc_id: str, data: Any, ttl: int = DEFAULT_TTL
    ) -> None:
        await self._set_json(metadata_key(doc_id), data, ttl)

    async def cache_query_results(
        self, query: str, results: Any, ttl: int = QUERY_TTL
    ) -> None:
        await self._set_json(query_key(query), results, ttl)

    async def cache_recently_viewed(
        self, user_id: str, doc_id: str, ttl: int = DEFAULT_TTL
    ) -> None:
        """Prepend doc_id, keep the newest RECENTLY_VIEWED_LIMIT entries and
        refresh the TTL of the whole list."""
        if self._client is None:
            return
        key = recently_viewed_key(user_id)
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                await (
                    pipe.lpush(key, doc_id)
                    .ltrim(key, 0, RECENTLY_VIEWED_LIMIT - 1)
                    .expire(key, ttl)
                    .execute()
                )
            log.debug("Cached recently viewed %s for user %s", doc_id, user_id)
        except Exception as e:
            log.warning("Error caching recently viewed document for %s: %s", key, e)

    async def recently_viewed(
        self, user_id: str, limit: int = RECENTLY_VIEWED_LIMIT
    ) -> list[str]:
        """Most recent first. Empty when absent or on failure."""
        if self._client is None:
            return []
        key = recently_viewed_key(user_id)
        try:
            return list(await self._client.lrange(key, 0, limit - 1))
        except Exception as e:
            log.warning("Error reading %s: %s", key, e)
            return []

    async def invalidate(self, key: str) -> None:
        """Delete a key. Deleting a missing key is fine."""
        if self._client is None:
            return
        try:
            await self._client.delete(key)
            log.debug("Invalidated %s", key)
        except Exception as e:
            log.warning("Error invalidating %s: %s", key, e)

    async def fetch_from_cache(self, key: str) -> Any | None:
        """Return the decoded value, or None if missing, expired or unreadable."""
        if self._client is None:
            return None
        try:
            data = await self._client.get(key)
            return json.loads(data) if data is not None else None
        except Exception as e:
            log.warning("Error fetching %s from cache: %s", key, e)
            return None
