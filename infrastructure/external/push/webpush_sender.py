"""
Web Push sender (VAPID, payload-less).

Pushes carry no encrypted payload: the service worker wakes up and pulls the
latest rows from ``GET /api/v1/notifications``. The VAPID token is an ES256
JWT signed with the PEM private key from settings.
"""
from __future__ import annotations

import time
from typing import Optional
from urllib.parse import urlsplit

import httpx
import jwt

from application.dtos.notifications import PushMessage
from application.ports.push import PushDelivery, PushSenderPort
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.notification.entity import PushSubscription


logger = get_logger(__name__)

GONE_STATUS = {404, 410}


class WebPushSender(PushSenderPort):
    def __init__(self, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._cfg = payment_settings.push
        self._client = httpx.AsyncClient(timeout=self._cfg.timeout, transport=transport)

    @property
    def configured(self) -> bool:
        return bool(self._cfg.vapid_public_key and self._cfg.vapid_private_key)

    def _vapid_header(self, endpoint: str) -> Optional[str]:
        if not self.configured:
            return None
        parts = urlsplit(endpoint)
        claims = {
            "aud": f"{parts.scheme}://{parts.netloc}",
            "exp": int(time.time()) + 12 * 3600,
            "sub": self._cfg.vapid_subject,
        }
        token = jwt.encode(claims, self._cfg.vapid_private_key, algorithm="ES256")
        return f"vapid t={token}, k={self._cfg.vapid_public_key}"

    async def send(self, subscription: PushSubscription, message: PushMessage) -> PushDelivery:
        headers = {"TTL": str(self._cfg.ttl_seconds), "Urgency": "normal"}
        if message.tag:
            headers["Topic"] = message.tag[:32]
        auth = self._vapid_header(subscription.endpoint)
        if auth:
            headers["Authorization"] = auth
        try:
            resp = await self._client.post(subscription.endpoint, headers=headers, content=b"")
        except httpx.HTTPError as exc:
            logger.warning("push_endpoint_unreachable", user_id=subscription.user_id, error=str(exc))
            return PushDelivery(endpoint=subscription.endpoint, delivered=False)

        if resp.status_code in GONE_STATUS:
            logger.info("push_endpoint_gone", user_id=subscription.user_id, status_code=resp.status_code)
            return PushDelivery(endpoint=subscription.endpoint, delivered=False, gone=True, status_code=resp.status_code)
        delivered = 200 <= resp.status_code < 300
        if not delivered:
            logger.warning("push_endpoint_rejected", user_id=subscription.user_id, status_code=resp.status_code)
        return PushDelivery(endpoint=subscription.endpoint, delivered=delivered, status_code=resp.status_code)

    async def aclose(self) -> None:
        await self._client.aclose()
