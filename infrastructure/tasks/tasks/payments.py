"""
Celery tasks for payment reconciliation.

The stale sweep re-checks payments stuck in a non-terminal status through
the same status-check path the API uses, so a webhook that never arrives
still converges.
"""
from __future__ import annotations

import asyncio
from typing import Optional

from celery import shared_task

from ..utils.base_task import BaseTask
from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)


async def _reconcile(limit: Optional[int], older_than_s: Optional[int]) -> int:
    from infrastructure.bootstrap import build_payment_stack
    from infrastructure.database import engine
    from infrastructure.external.push.webpush_sender import WebPushSender
    from infrastructure.realtime.brokers import RedisRealtimeBroker
    from infrastructure.tasks.utils.dispatcher import TaskDispatcher

    broker = RedisRealtimeBroker() if settings.redis.url else None
    push = WebPushSender()
    stack = build_payment_stack(
        broker=broker,
        push_sender=push,
        email_scheduler=TaskDispatcher().send_payment_email if settings.redis.url else None,
    )
    try:
        return await stack.payments.reconcile_stale(limit=limit, older_than_s=older_than_s)
    finally:
        await push.aclose()
        if broker is not None:
            await broker.aclose()
        # 每次 asyncio.run 都是新的事件循环，连接池不能跨循环复用
        await engine.dispose()


@shared_task(
    name="payments.reconcile_stale",
    bind=True,
    base=BaseTask,
    max_retries=3,
    default_retry_delay=30,
)
def reconcile_stale_payments(self, limit: Optional[int] = None, older_than_s: Optional[int] = None) -> dict:
    try:
        changed = asyncio.run(_reconcile(limit, older_than_s))
    except Exception as exc:  # pragma: no cover
        logger.error("payment_reconcile_failed", error=str(exc))
        raise self.retry(exc=exc)
    logger.info("payment_reconcile_done", changed=changed)
    return {"changed": changed}
