"""
SimpleCache测试
"""

import json
import pytest
from unittest.mock import AsyncMock

from app.services.common_cache import SimpleCache


@pytest.mark.asyncio
class TestSimpleCache:
    """SimpleCache测试类"""

    @pytest.fixture
    def redis_client(self):
        client = AsyncMock()
        client.get = AsyncMock(return_value=None)
        client.setex = AsyncMock(return_value=True)
        client.delete = AsyncMock(return_value=1)
        return client

    async def test_not_ready_degrades(self):
        """未连接Redis时读写直接返回"""
        cache = SimpleCache(key_prefix="order:")

        assert not cache.is_ready
        assert await cache.get("detail:1") is None
        assert await cache.set("detail:1", {"a": 1}) is False
        assert await cache.delete("detail:1") is False

    async def test_set_and_get_with_prefix(self, redis_client):
        cache = SimpleCache(redis_client=redis_client, key_prefix="order:")

        assert await cache.set("detail:1", {"total_amount": "30.00"}, ttl=60) is True
        redis_client.setex.assert_called_once_with("order:detail:1", 60, json.dumps({"total_amount": "30.00"}))

        redis_client.get.return_value = '{"total_amount": "30.00"}'
        assert await cache.get("detail:1") == {"total_amount": "30.00"}
        redis_client.get.assert_called_with("order:detail:1")

    async def test_errors_are_logged_not_raised(self, redis_client):
        redis_client.get.side_effect = ConnectionError("down")
        redis_client.setex.side_effect = ConnectionError("down")
        redis_client.delete.side_effect = ConnectionError("down")
        cache = SimpleCache(redis_client=redis_client)

        assert await cache.get("k") is None
        assert await cache.set("k", 1) is False
        assert await cache.delete("k") is False

    async def test_close(self, redis_client):
        cache = SimpleCache(redis_client=redis_client)

        await cache.close_redis()

        redis_client.aclose.assert_called_once()
        assert not cache.is_ready
