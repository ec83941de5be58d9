"""
Base payment client implementing shared concerns: http, retry, logging,
status mapping and webhook signature checks.

Concrete providers should subclass and implement provider-specific logic.
"""
from __future__ import annotations

from typing import Any, Callable, Optional
from contextlib import asynccontextmanager

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from core.settings import payment_settings
from application.dtos.payments import ChargeRequest, ProviderCharge, WebhookEvent
from application.ports.payment_gateway import PaymentGateway
from domain.payment.entity import PaymentStatus
from domain.payment.status_mapping import map_provider_status
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
)
from infrastructure.external.payments.signatures import verify_hmac_signature


logger = get_logger(__name__)


class BasePaymentClient(PaymentGateway):
    provider: str = "base"
    signature_header: str = "x-signature"

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or payment_settings.timeouts.model_dump()
        self._retry_cfg = retry or {"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    @property
    def has_credentials(self) -> bool:
        return False

    @property
    def webhook_secret(self) -> Optional[str]:
        return None

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeouts, transport=self._transport)
        try:
            yield self._client
        finally:
            # Keep open for reuse; explicit aclose() will close.
            ...

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Any]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError)),
            reraise=True,
        ):
            with attempt:
                return await fn()

    async def _request(self, method: str, url: str, **kwargs) -> dict[str, Any]:
        """HTTP call with transport retries; non-2xx becomes a provider error."""

        async def _do() -> httpx.Response:
            async with self.client() as c:
                return await c.request(method, url, **kwargs)

        try:
            resp = await self._retry(_do)
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            self._log("payment_provider_unreachable", url=url, error=str(exc))
            raise PaymentRecoverableError(
                "Payment provider unreachable", provider=self.provider, details={"error": str(exc)}
            ) from exc

        if resp.status_code >= 400:
            self._log("payment_provider_http_error", url=url, status_code=resp.status_code)
            raise PaymentProviderError(
                f"Payment provider returned HTTP {resp.status_code}",
                provider=self.provider,
                provider_code=str(resp.status_code),
                details={"body": resp.text[:500]},
            )
        try:
            data = resp.json()
        except ValueError:
            data = {}
        return data if isinstance(data, dict) else {"data": data}

    # Default implementations raise to force override where needed
    async def charge(self, req: ChargeRequest) -> ProviderCharge:  # type: ignore[override]
        raise NotImplementedError

    async def query_status(self, transaction_id: str) -> ProviderCharge:  # type: ignore[override]
        raise NotImplementedError

    def parse_webhook(self, payload: dict[str, Any]) -> WebhookEvent:  # type: ignore[override]
        raise NotImplementedError

    def verify_signature(self, headers: dict[str, Any], body: bytes) -> bool:  # type: ignore[override]
        signature = None
        for key, value in headers.items():
            if str(key).lower() == self.signature_header:
                signature = value
                break
        return verify_hmac_signature(self.webhook_secret, body, signature)

    # Helpers
    def _map_status(self, provider_status: Optional[str]) -> PaymentStatus:
        return map_provider_status(provider_status)

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )


def as_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None
