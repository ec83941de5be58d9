"""
FedaPay adapter (mobile-money push).

Initiation is three REST calls: create the transaction carrying our payment
id in its metadata, generate a payment token, then send the push to the
payer's phone through the operator mode. On acceptance the payment moves to
``processing`` and FedaPay's transaction id becomes our ``transaction_id``.
"""
from __future__ import annotations

import json
from typing import Any, Optional

import httpx

from application.dtos.payments import ChargeRequest, ProviderCharge, WebhookEvent
from core.settings import payment_settings
from domain.payment.entity import PaymentStatus
from infrastructure.external.payments.base import BasePaymentClient, as_int


def _unwrap(data: dict[str, Any]) -> dict[str, Any]:
    """FedaPay wraps resources as ``{"v1/transaction": {...}}``."""
    for key in ("v1/transaction", "transaction"):
        value = data.get(key)
        if isinstance(value, dict):
            return value
    return data


class FedapayClient(BasePaymentClient):
    provider = "fedapay"
    signature_header = "x-fedapay-signature"

    def __init__(self, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        super().__init__(transport=transport)
        self._cfg = payment_settings.fedapay

    @property
    def base_url(self) -> str:
        return (self._cfg.sandbox_base_url if self._cfg.sandbox else self._cfg.base_url).rstrip("/")

    @property
    def has_credentials(self) -> bool:
        return bool(self._cfg.secret_key)

    @property
    def webhook_secret(self) -> Optional[str]:
        return self._cfg.webhook_secret

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._cfg.secret_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _reject(self, req: ChargeRequest, message: str) -> ProviderCharge:
        self._log("fedapay_charge_rejected", payment_id=req.payment_id, reason=message)
        return ProviderCharge(provider=self.provider, accepted=False, status=PaymentStatus.FAILED, message=message)

    async def charge(self, req: ChargeRequest) -> ProviderCharge:  # type: ignore[override]
        if not self.has_credentials:
            return self._reject(req, "FedaPay secret key not configured")
        mode = self._cfg.modes.get(req.payment_method.value)
        if not mode:
            return self._reject(req, f"Unsupported payment method for FedaPay: {req.payment_method.value}")
        if not req.phone_number:
            return self._reject(req, "Phone number required for mobile money")

        phone = {"number": req.phone_number, "country": self._cfg.country}
        customer: dict[str, Any] = {"phone_number": phone}
        if req.customer_email:
            customer["email"] = req.customer_email
        if req.customer_name:
            customer["firstname"] = req.customer_name

        created = _unwrap(await self._request(
            "POST",
            f"{self.base_url}/v1/transactions",
            headers=self._headers(),
            json={
                "description": req.description or f"Commande {req.order_id or req.payment_id}",
                "amount": req.amount,
                "currency": {"iso": self._cfg.currency},
                "customer": customer,
                "custom_metadata": {
                    "payment_id": req.payment_id,
                    "order_id": req.order_id,
                    "user_id": req.user_id,
                },
            },
        ))
        transaction_id = created.get("id")
        if transaction_id is None:
            return self._reject(req, "FedaPay did not return a transaction id")

        token_data = await self._request(
            "POST", f"{self.base_url}/v1/transactions/{transaction_id}/token", headers=self._headers()
        )
        token = token_data.get("token")
        if not token:
            return self._reject(req, "FedaPay did not return a payment token")

        await self._request(
            "POST",
            f"{self.base_url}/v1/{mode}",
            headers=self._headers(),
            json={"token": token, "phone_number": phone},
        )
        self._log("fedapay_push_sent", payment_id=req.payment_id, transaction_id=transaction_id, mode=mode)
        return ProviderCharge(
            provider=self.provider,
            accepted=True,
            status=PaymentStatus.PROCESSING,
            transaction_id=str(transaction_id),
            channel={"type": "push", "mode": mode, "reference": created.get("reference")},
            raw={"id": transaction_id, "reference": created.get("reference"), "status": created.get("status")},
        )

    async def query_status(self, transaction_id: str) -> ProviderCharge:  # type: ignore[override]
        data = _unwrap(await self._request(
            "GET", f"{self.base_url}/v1/transactions/{transaction_id}", headers=self._headers()
        ))
        raw_status = data.get("status")
        self._log("fedapay_status_queried", transaction_id=transaction_id, status=raw_status)
        return ProviderCharge(
            provider=self.provider,
            accepted=True,
            status=self._map_status(raw_status),
            transaction_id=str(data.get("id") or transaction_id),
            raw=data,
        )

    def parse_webhook(self, payload: dict[str, Any]) -> WebhookEvent:  # type: ignore[override]
        obj = payload.get("object") if isinstance(payload.get("object"), dict) else {}
        event_name = payload.get("name")

        meta = obj.get("custom_metadata") or obj.get("metadata") or {}
        if isinstance(meta, str):
            try:
                meta = json.loads(meta)
            except ValueError:
                meta = {}
        if not isinstance(meta, dict):
            meta = {}

        raw_status = obj.get("status")
        if not raw_status and isinstance(event_name, str) and "." in event_name:
            raw_status = event_name.rsplit(".", 1)[-1]

        transaction_id = obj.get("id")
        metadata: dict[str, Any] = {}
        if obj.get("reference"):
            metadata["fedapay_reference"] = obj["reference"]
        if obj.get("mode"):
            metadata["fedapay_mode"] = obj["mode"]

        return WebhookEvent(
            provider=self.provider,
            event=event_name,
            raw_status=str(raw_status) if raw_status else None,
            status=self._map_status(raw_status),
            payment_id=meta.get("payment_id"),
            transaction_id=str(transaction_id) if transaction_id is not None else None,
            reference=obj.get("reference"),
            order_id=meta.get("order_id"),
            user_id=meta.get("user_id"),
            amount=as_int(obj.get("amount")),
            failure_reason=obj.get("last_error_code") or obj.get("failure_reason"),
            metadata=metadata,
        )
