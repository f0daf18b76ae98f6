import asyncio

import pytest

from docuthinker.cache import (
    RECENTLY_VIEWED_LIMIT,
    CacheGateway,
    metadata_key,
    recently_viewed_key,
    session_key,
)


@pytest.mark.asyncio
async def test_session_round_trip_with_ttl(cache, redis_client):
    await cache.cache_user_session("u1", {"token": "abc"})
    assert await cache.fetch_from_cache(session_key("u1")) == {"token": "abc"}
    assert 0 < await redis_client.ttl("user:session:u1") <= 3600


@pytest.mark.asyncio
async def test_namespaced_keys_and_default_ttls(cache, redis_client):
    await cache.cache_document_metadata("d1", {"title": "Doc"})
    await cache.cache_query_results("u1:search:AI", [{"docId": "d1"}])
    assert await cache.fetch_from_cache("document:metadata:d1") == {"title": "Doc"}
    assert await cache.fetch_from_cache("query:results:u1:search:AI") == [{"docId": "d1"}]
    assert await redis_client.ttl("query:results:u1:search:AI") <= 600


@pytest.mark.asyncio
async def test_recently_viewed_is_most_recent_first(cache):
    await cache.cache_recently_viewed("u1", "d1")
    await cache.cache_recently_viewed("u1", "d2")
    assert await cache.recently_viewed("u1") == ["d2", "d1"]


@pytest.mark.asyncio
async def test_recently_viewed_append_refreshes_whole_list_ttl(cache, redis_client):
    await cache.cache_recently_viewed("u1", "d1", ttl=100)
    await cache.cache_recently_viewed("u1", "d2", ttl=3600)
    assert await redis_client.ttl(recently_viewed_key("u1")) > 100
    assert await redis_client.llen(recently_viewed_key("u1")) == 2


@pytest.mark.asyncio
async def test_recently_viewed_list_stays_bounded(cache, redis_client):
    for i in range(RECENTLY_VIEWED_LIMIT + 30):
        await cache.cache_recently_viewed("u1", f"d{i}")

    assert await redis_client.llen(recently_viewed_key("u1")) == RECENTLY_VIEWED_LIMIT
    newest = await cache.recently_viewed("u1")
    assert newest[0] == f"d{RECENTLY_VIEWED_LIMIT + 29}"
    assert newest[-1] == "d30"


@pytest.mark.asyncio
async def test_missing_key_is_absent(cache):
    assert await cache.fetch_from_cache("document:metadata:nope") is None


@pytest.mark.asyncio
async def test_expired_key_is_absent(cache, redis_client):
    await cache.cache_document_metadata("d1", {"title": "Doc"})
    await redis_client.pexpire(metadata_key("d1"), 1)
    await asyncio.sleep(0.05)
    assert await cache.fetch_from_cache(metadata_key("d1")) is None


@pytest.mark.asyncio
async def test_undecodable_value_is_absent(cache, redis_client):
    await redis_client.set("document:metadata:bad", "{not json")
    assert await cache.fetch_from_cache("document:metadata:bad") is None


@pytest.mark.asyncio
async def test_invalidate_is_idempotent(cache):
    await cache.cache_document_metadata("d1", {"title": "Doc"})
    await cache.invalidate(metadata_key("d1"))
    await cache.invalidate(metadata_key("d1"))
    await cache.invalidate("never:written")
    assert await cache.fetch_from_cache(metadata_key("d1")) is None


@pytest.mark.asyncio
async def test_store_outage_is_swallowed(cache, redis_server):
    redis_server.connected = False
    await cache.cache_user_session("u1", {"token": "abc"})
    await cache.cache_recently_viewed("u1", "d1")
    await cache.invalidate(session_key("u1"))
    assert await cache.fetch_from_cache(session_key("u1")) is None
    assert await cache.recently_viewed("u1") == []


@pytest.mark.asyncio
async def test_operations_before_connect_are_noops():
    gateway = CacheGateway()
    assert not gateway.connected
    await gateway.cache_user_session("u1", {"token": "abc"})
    await gateway.cache_recently_viewed("u1", "d1")
    await gateway.invalidate(session_key("u1"))
    assert await gateway.fetch_from_cache(session_key("u1")) is None
    assert await gateway.recently_viewed("u1") == []


@pytest.mark.asyncio
async def test_connect_without_url_stays_disconnected():
    gateway = CacheGateway()
    assert await gateway.connect(None) is False
    assert not gateway.connected


@pytest.mark.asyncio
async def test_close_disconnects(cache):
    await cache.close()
    assert not cache.connected
    await cache.close()
