"""Redis缓存实现（键值、集合索引与 Pub/Sub）"""
from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Optional

from redis import asyncio as aioredis

from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)


def _json_dumps(value: Any) -> str:
    """将任意对象序列化为JSON字符串"""
    return json.dumps(value, default=str)


def _json_loads(value: Optional[str]) -> Any:
    """将JSON字符串反序列化为对象"""
    if value is None:
        return None
    return json.loads(value)


class RedisCache:
    """基于Redis的简单缓存实现"""

    def __init__(self, client: aioredis.Redis, namespace: str = "") -> None:
        self._client = client
        self._namespace = namespace.strip(":")

    def _format_key(self, key: str) -> str:
        if not self._namespace:
            return key
        return f"{self._namespace}:{key}"

    def _strip_namespace(self, key: str) -> str:
        prefix = f"{self._namespace}:"
        if self._namespace and key.startswith(prefix):
            return key[len(prefix):]
        return key

    async def get(self, key: str) -> Any:
        value = await self._client.get(self._format_key(key))
        if value is None:
            return None
        return _json_loads(value)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        payload = _json_dumps(value)
        expire = settings.redis.default_ttl if ttl is None else ttl
        formatted_key = self._format_key(key)
        if expire and expire > 0:
            await self._client.set(formatted_key, payload, ex=expire)
        else:
            await self._client.set(formatted_key, payload)

    async def delete(self, key: str) -> bool:
        return bool(await self._client.delete(self._format_key(key)))

    async def expire(self, key: str, ttl: int) -> bool:
        return bool(await self._client.expire(self._format_key(key), ttl))

    # 集合：用于按用户索引短期记录
    async def sadd(self, key: str, *members: str) -> int:
        return await self._client.sadd(self._format_key(key), *members)

    async def srem(self, key: str, *members: str) -> int:
        return await self._client.srem(self._format_key(key), *members)

    async def smembers(self, key: str) -> set[str]:
        return set(await self._client.smembers(self._format_key(key)))

    # Pub/Sub
    async def publish(self, channel: str, message: Any) -> int:
        return await self._client.publish(self._format_key(channel), _json_dumps(message))

    async def psubscribe(self, pattern: str) -> AsyncIterator[dict[str, Any]]:
        """按模式订阅，产出 {channel, data}；退出时释放订阅"""
        pubsub = self._client.pubsub()
        formatted = self._format_key(pattern)
        try:
            await pubsub.psubscribe(formatted)
            async for message in pubsub.listen():
                if message.get("type") not in ("message", "pmessage"):
                    continue
                try:
                    data = _json_loads(message.get("data"))
                except ValueError:
                    logger.warning("redis_pubsub_invalid_json", channel=message.get("channel"))
                    continue
                yield {"channel": self._strip_namespace(message.get("channel") or ""), "data": data}
        finally:
            await pubsub.punsubscribe(formatted)
            await pubsub.aclose()


_redis_client: Optional[aioredis.Redis] = None
_cache_instance: Optional[RedisCache] = None
_lock = asyncio.Lock()


async def init_redis_cache(namespace: Optional[str] = None) -> RedisCache:
    """初始化Redis缓存实例"""
    global _redis_client, _cache_instance

    if _cache_instance is not None:
        return _cache_instance

    async with _lock:
        if _cache_instance is not None:
            return _cache_instance

        if not settings.redis.url:
            raise RuntimeError("REDIS__URL 未配置，无法初始化Redis缓存")

        client = aioredis.from_url(
            settings.redis.url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis.max_connections,
        )

        _redis_client = client
        _cache_instance = RedisCache(
            client=client,
            namespace=namespace or settings.redis.namespace,
        )
        logger.info("redis_cache_connected", namespace=_cache_instance._namespace)
        return _cache_instance


async def get_redis_cache() -> RedisCache:
    """获取全局Redis缓存实例"""
    if _cache_instance is None:
        return await init_redis_cache()
    return _cache_instance


async def shutdown_redis_cache() -> None:
    """关闭Redis连接"""
    global _redis_client, _cache_instance

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        _cache_instance = None
