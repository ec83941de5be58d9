"""
KkiaPay adapter.

KkiaPay collects the payment in a hosted widget opened by the client, so
``charge`` performs no HTTP call: it returns the widget parameters and the
payment stays ``pending`` until a webhook or a status check reports back.
Status checks use the REST ``/api/v1/transactions/status`` endpoint with the
merchant key triple.
"""
from __future__ import annotations

import json
from typing import Any, Optional

import httpx

from application.dtos.payments import ChargeRequest, ProviderCharge, WebhookEvent
from core.settings import payment_settings
from domain.payment.entity import PaymentStatus
from infrastructure.external.payments.base import BasePaymentClient, as_int


class KkiapayClient(BasePaymentClient):
    provider = "kkiapay"
    signature_header = "x-kkiapay-signature"

    def __init__(self, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        super().__init__(transport=transport)
        self._cfg = payment_settings.kkiapay

    @property
    def base_url(self) -> str:
        return (self._cfg.sandbox_base_url if self._cfg.sandbox else self._cfg.base_url).rstrip("/")

    @property
    def has_credentials(self) -> bool:
        return bool(self._cfg.public_key and self._cfg.private_key)

    @property
    def webhook_secret(self) -> Optional[str]:
        return self._cfg.webhook_secret or self._cfg.secret

    async def charge(self, req: ChargeRequest) -> ProviderCharge:  # type: ignore[override]
        if not self._cfg.public_key:
            self._log("kkiapay_public_key_missing", payment_id=req.payment_id)
            return ProviderCharge(
                provider=self.provider,
                accepted=False,
                status=PaymentStatus.FAILED,
                message="KkiaPay public key not configured",
            )
        channel = {
            "type": "widget",
            "key": self._cfg.public_key,
            "amount": req.amount,
            "phone": req.phone_number,
            "email": req.customer_email,
            "name": req.customer_name,
            "reason": req.description,
            "sandbox": self._cfg.sandbox,
            "data": {
                "paymentId": req.payment_id,
                "orderId": req.order_id,
                "userId": req.user_id,
            },
        }
        self._log("kkiapay_widget_prepared", payment_id=req.payment_id, sandbox=self._cfg.sandbox)
        return ProviderCharge(
            provider=self.provider,
            accepted=True,
            status=PaymentStatus.PENDING,
            channel=channel,
        )

    async def query_status(self, transaction_id: str) -> ProviderCharge:  # type: ignore[override]
        headers = {
            "x-api-key": self._cfg.public_key or "",
            "x-private-key": self._cfg.private_key or "",
            "x-secret-key": self._cfg.secret or "",
            "Accept": "application/json",
        }
        data = await self._request(
            "POST",
            f"{self.base_url}/api/v1/transactions/status",
            json={"transactionId": transaction_id},
            headers=headers,
        )
        raw_status = data.get("status")
        self._log("kkiapay_status_queried", transaction_id=transaction_id, status=raw_status)
        return ProviderCharge(
            provider=self.provider,
            accepted=True,
            status=self._map_status(raw_status),
            transaction_id=str(data.get("transactionId") or transaction_id),
            raw=data,
        )

    def parse_webhook(self, payload: dict[str, Any]) -> WebhookEvent:  # type: ignore[override]
        # Flat payloads and ``{"event", "data": {...}}`` envelopes are both delivered
        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        event_name = payload.get("event")

        def pick(*keys: str) -> Any:
            for key in keys:
                for source in (data, payload):
                    value = source.get(key)
                    if value not in (None, ""):
                        return value
            return None

        raw_status = pick("status")
        if raw_status is None and isinstance(event_name, str) and "." in event_name:
            raw_status = event_name.rsplit(".", 1)[-1]

        custom = pick("custom_data", "customData", "state") or {}
        if isinstance(custom, str):
            try:
                custom = json.loads(custom)
            except ValueError:
                custom = {}
        if not isinstance(custom, dict):
            custom = {}

        transaction_id = pick("transactionId", "transaction_id")
        metadata: dict[str, Any] = {}
        external_id = pick("externalTransactionId")
        if external_id:
            metadata["kkiapay_external_transaction_id"] = external_id
        payment_method = pick("paymentMethod", "source")
        if payment_method:
            metadata["kkiapay_payment_method"] = payment_method

        return WebhookEvent(
            provider=self.provider,
            event=event_name,
            raw_status=str(raw_status) if raw_status is not None else None,
            status=self._map_status(raw_status),
            payment_id=custom.get("paymentId") or custom.get("payment_id"),
            transaction_id=str(transaction_id) if transaction_id is not None else None,
            order_id=custom.get("orderId") or custom.get("order_id"),
            user_id=custom.get("userId") or custom.get("user_id"),
            amount=as_int(pick("amount")),
            failure_reason=pick("failureReason", "failure_reason"),
            metadata=metadata,
        )
