"""
Webhook reconciliation: authenticate a provider callback, resolve the
payment it refers to and apply the reported status idempotently.

The HTTP contract is owned here so the route stays thin: providers retry on
anything but 2xx, so only an invalid signature (401) and an unparseable body
(400) are reported as errors; every other outcome is acknowledged with 200.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from application.dtos.payments import ReconcileOutcome, WebhookEvent
from application.ports.payment_gateway import PaymentGateway
from application.services.payment_service import PaymentApplicationService
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Payment


logger = get_logger(__name__)


class WebhookReconciler:
    def __init__(
        self,
        payments: PaymentApplicationService,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway_factory: Callable[[Optional[str]], PaymentGateway],
    ) -> None:
        self._payments = payments
        self._uow_factory = uow_factory
        self._gateway_factory = gateway_factory

    def authenticate(self, gateway: PaymentGateway, headers: dict[str, Any], body: bytes) -> bool:
        if not gateway.webhook_secret:
            if payment_settings.webhook.require_signature:
                logger.warning("webhook_secret_missing_rejected", provider=gateway.provider)
                return False
            logger.warning("webhook_signature_unchecked", provider=gateway.provider)
            return True
        return gateway.verify_signature(headers, body)

    async def resolve(self, event: WebhookEvent) -> tuple[Optional[Payment], Optional[str]]:
        """按优先级定位支付：支付ID > 交易号 > 订单ID（最新）> 同金额最新 pending"""
        async with self._uow_factory(readonly=True) as uow:
            repo = uow.payment_repository
            if event.payment_id:
                payment = await repo.get_by_id(event.payment_id)
                if payment is not None:
                    return payment, "payment_id"
            for provider_ref in (event.transaction_id, event.reference):
                if not provider_ref:
                    continue
                payment = await repo.get_by_transaction_id(provider_ref)
                if payment is not None:
                    return payment, "transaction_id"
            if event.order_id:
                payment = await repo.get_latest_by_order(event.order_id)
                if payment is not None:
                    return payment, "order_id"
            if event.amount:
                payment = await repo.find_latest_pending_by_amount(event.amount)
                if payment is not None:
                    return payment, "amount"
        return None, None

    async def reconcile(self, event: WebhookEvent) -> ReconcileOutcome:
        payment, resolved_by = await self.resolve(event)
        if payment is None:
            logger.warning(
                "webhook_payment_not_found",
                provider=event.provider,
                event=event.event,
                transaction_id=event.transaction_id,
                order_id=event.order_id,
            )
            return ReconcileOutcome(resolved=False)

        provider = event.provider
        metadata: dict[str, Any] = {
            f"{provider}_event": event.event,
            f"{provider}_status": event.raw_status,
            "webhook_received_at": datetime.now(timezone.utc).isoformat(),
            **event.metadata,
        }
        if event.transaction_id:
            metadata[f"{provider}_transaction_id"] = event.transaction_id
        if event.failure_reason:
            metadata["failure_reason"] = event.failure_reason

        result = await self._payments.apply_reported_status(
            payment.id,
            event.status,
            transaction_id=event.transaction_id,
            metadata=metadata,
            source="webhook",
        )
        return ReconcileOutcome(
            resolved=True,
            payment_id=payment.id,
            status=result.payment.status,
            changed=result.changed,
            resolved_by=resolved_by,
        )

    async def handle(self, provider: str, headers: dict[str, Any], body: bytes) -> tuple[int, dict[str, Any]]:
        gateway = self._gateway_factory(provider)
        normalized = {str(k).lower(): v for k, v in headers.items()}

        if not self.authenticate(gateway, normalized, body):
            logger.warning("webhook_invalid_signature", provider=gateway.provider)
            return 401, {"received": False, "error": "Invalid signature"}

        try:
            payload = json.loads(body or b"")
        except ValueError:
            logger.warning("webhook_invalid_json", provider=gateway.provider, size=len(body or b""))
            return 400, {"received": False, "error": "Invalid JSON"}
        if not isinstance(payload, dict):
            logger.warning("webhook_invalid_payload", provider=gateway.provider)
            return 400, {"received": False, "error": "Invalid JSON"}

        try:
            event = gateway.parse_webhook(payload)
            logger.info(
                "webhook_received",
                provider=gateway.provider,
                event=event.event,
                raw_status=event.raw_status,
                status=event.status.value,
            )
            outcome = await self.reconcile(event)
        except Exception as exc:
            logger.error("webhook_processing_failed", provider=gateway.provider, error=str(exc), exc_info=True)
            return 200, {"received": True, "error": "Processing failed"}

        if not outcome.resolved:
            return 200, {"received": True, "message": "Payment not found but acknowledged"}
        return 200, {
            "received": True,
            "success": True,
            "paymentId": outcome.payment_id,
            "status": outcome.status.value if outcome.status else None,
            "changed": outcome.changed,
        }
