"""待完成支付的短期记录（页面刷新后恢复跟踪）"""
from __future__ import annotations

import asyncio
import time
from typing import Optional

from application.dtos.payments import PendingPaymentBreadcrumb
from core.logging_config import get_logger
from core.settings import payment_settings
from infrastructure.cache.redis_cache import RedisCache


logger = get_logger(__name__)


def _payment_key(payment_id: str) -> str:
    return f"pending_payment:{payment_id}"


def _user_key(user_id: str) -> str:
    return f"pending_payments:user:{user_id}"


class RedisPendingPaymentStore:
    """Redis 实现：单条记录带 TTL，另维护按用户的 ID 集合"""

    def __init__(self, cache: RedisCache, ttl: Optional[int] = None) -> None:
        self._cache = cache
        self._ttl = ttl if ttl is not None else payment_settings.tracking.breadcrumb_ttl_s

    async def save(self, crumb: PendingPaymentBreadcrumb) -> None:
        await self._cache.set(_payment_key(crumb.payment_id), crumb.model_dump(mode="json"), ttl=self._ttl)
        await self._cache.sadd(_user_key(crumb.user_id), crumb.payment_id)
        await self._cache.expire(_user_key(crumb.user_id), self._ttl)

    async def get(self, payment_id: str) -> Optional[PendingPaymentBreadcrumb]:
        data = await self._cache.get(_payment_key(payment_id))
        if data is None:
            return None
        return PendingPaymentBreadcrumb.model_validate(data)

    async def list_for_user(self, user_id: str) -> list[PendingPaymentBreadcrumb]:
        crumbs: list[PendingPaymentBreadcrumb] = []
        expired: list[str] = []
        for payment_id in await self._cache.smembers(_user_key(user_id)):
            crumb = await self.get(payment_id)
            if crumb is None:
                expired.append(payment_id)
            else:
                crumbs.append(crumb)
        if expired:
            await self._cache.srem(_user_key(user_id), *expired)
        return sorted(crumbs, key=lambda c: c.created_at, reverse=True)

    async def remove(self, payment_id: str, user_id: Optional[str] = None) -> None:
        if user_id is None:
            crumb = await self.get(payment_id)
            user_id = crumb.user_id if crumb else None
        await self._cache.delete(_payment_key(payment_id))
        if user_id:
            await self._cache.srem(_user_key(user_id), payment_id)


class InMemoryPendingPaymentStore:
    """进程内实现（未配置 Redis 时及测试使用）"""

    def __init__(self, ttl: Optional[int] = None) -> None:
        self._ttl = ttl if ttl is not None else payment_settings.tracking.breadcrumb_ttl_s
        self._items: dict[str, tuple[float, PendingPaymentBreadcrumb]] = {}
        self._lock = asyncio.Lock()

    def _alive(self, expires_at: float) -> bool:
        return self._ttl <= 0 or expires_at > time.monotonic()

    async def save(self, crumb: PendingPaymentBreadcrumb) -> None:
        async with self._lock:
            self._items[crumb.payment_id] = (time.monotonic() + self._ttl, crumb)

    async def get(self, payment_id: str) -> Optional[PendingPaymentBreadcrumb]:
        async with self._lock:
            entry = self._items.get(payment_id)
            if entry is None:
                return None
            if not self._alive(entry[0]):
                self._items.pop(payment_id, None)
                return None
            return entry[1]

    async def list_for_user(self, user_id: str) -> list[PendingPaymentBreadcrumb]:
        async with self._lock:
            for payment_id in [pid for pid, (exp, _) in self._items.items() if not self._alive(exp)]:
                self._items.pop(payment_id, None)
            crumbs = [c for _, c in self._items.values() if c.user_id == user_id]
        return sorted(crumbs, key=lambda c: c.created_at, reverse=True)

    async def remove(self, payment_id: str, user_id: Optional[str] = None) -> None:
        async with self._lock:
            self._items.pop(payment_id, None)
