"""Redis Pub/Sub based RealtimeBrokerPort implementation.

Publishes to per-room channels ``rt:room:{room}`` and pattern-subscribes
``rt:room:*`` once per process; every local handler receives every envelope.
"""
from __future__ import annotations

import asyncio
from typing import List, Optional

from application.ports.realtime import Envelope, RealtimeBrokerPort, Handler
from core.logging_config import get_logger
from infrastructure.cache import RedisCache, get_redis_cache


logger = get_logger(__name__)

ROOM_PATTERN = "rt:room:*"


class RedisRealtimeBroker(RealtimeBrokerPort):
    def __init__(self, cache: Optional[RedisCache] = None) -> None:
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()
        self._handlers: List[Handler] = []
        self._client: Optional[RedisCache] = cache

    @staticmethod
    def _room_channel(room: str) -> str:
        return f"rt:room:{room}"

    async def _cache(self) -> RedisCache:
        if self._client is None:
            self._client = await get_redis_cache()
        return self._client

    async def publish(self, room: str, envelope: Envelope) -> None:  # type: ignore[override]
        client = await self._cache()
        channel = self._room_channel(room)
        payload = envelope.model_copy(update={"room": room}).model_dump(mode="json")
        try:
            await client.publish(channel, payload)
        except Exception as exc:  # pragma: no cover
            logger.error("redis_publish_failed", channel=channel, error=str(exc))

    async def _listen(self) -> None:
        client = await self._cache()
        try:
            logger.info("redis_pubsub_subscribed", pattern=ROOM_PATTERN)
            async for message in client.psubscribe(ROOM_PATTERN):
                if self._stopping.is_set():
                    break
                data = message.get("data")
                if not isinstance(data, dict):
                    continue
                try:
                    env = Envelope.model_validate(data)
                except Exception as exc:  # pragma: no cover
                    logger.warning("redis_pubsub_parse_failed", error=str(exc))
                    continue
                for handler in list(self._handlers):
                    try:
                        await handler(env)
                    except Exception as exc:
                        logger.warning("realtime_handler_failed", room=env.room, error=str(exc))
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pragma: no cover
            logger.error("redis_pubsub_listen_failed", error=str(exc))

    async def subscribe(self, handler: Handler) -> None:  # type: ignore[override]
        self._handlers.append(handler)
        if self._task is None or self._task.done():
            await self._cache()
            self._task = asyncio.create_task(self._listen(), name="redis-realtime-listener")

    async def unsubscribe(self, handler: Handler) -> None:  # type: ignore[override]
        if handler in self._handlers:
            self._handlers.remove(handler)

    async def aclose(self) -> None:  # type: ignore[override]
        self._stopping.set()
        self._handlers.clear()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        self._client = None
