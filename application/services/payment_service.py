"""
Application service orchestrating payment use-cases.

This class depends only on the application ports and DTOs. Gateway
implementations are provided by infrastructure and must be injected from
the composition root (API/tasks), keeping dependencies one-way.

Every status write (webhook, status check, manual confirm, initiation
failure) goes through ``apply_reported_status`` so the same idempotent
compare-and-set and the same post-commit events apply everywhere.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from application.dtos.payments import (
    ChargeRequest,
    ConfirmPaymentRequest,
    ConfirmPaymentResult,
    InitiatePaymentRequest,
    InitiatePaymentResult,
    PaymentView,
    PendingPaymentBreadcrumb,
    StatusCheckRequest,
    StatusCheckResult,
)
from application.ports.payment_gateway import PaymentGateway
from application.ports.pending_payments import PendingPaymentStore
from application.services.event_dispatcher import PaymentEventDispatcher
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.common.exceptions import (
    OrderAccessDeniedException,
    OrderNotFoundException,
    PaymentNotFoundException,
    PaymentUpdateConflictException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Payment, PaymentStatus
from domain.payment.service import ApplyResult, PaymentDomainService
from domain.payment.events import PaymentCancelled, PaymentCompleted, PaymentFailed, PaymentRefunded


logger = get_logger(__name__)

GatewayFactory = Callable[[Optional[str]], PaymentGateway]

INITIATED_MESSAGE = "Paiement initié. Utilisez le widget KkiaPay pour compléter le paiement."
PUSH_SENT_MESSAGE = "Demande de paiement envoyée. Validez la transaction sur votre téléphone."
FAILED_MESSAGE = "Le paiement n'a pas pu être initié. Veuillez réessayer."


def to_view(payment: Payment) -> PaymentView:
    return PaymentView(
        id=payment.id,
        status=payment.status,
        transaction_id=payment.transaction_id,
        payment_method=payment.payment_method,
        amount=payment.amount,
        order_id=payment.order_id,
        created_at=payment.created_at,
        updated_at=payment.updated_at,
        completed_at=payment.completed_at,
    )


class PaymentApplicationService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        gateway_factory: GatewayFactory,
        *,
        events: Optional[PaymentEventDispatcher] = None,
        pending_store: Optional[PendingPaymentStore] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._gateway_factory = gateway_factory
        self._events = events or PaymentEventDispatcher()
        self._pending = pending_store

    @property
    def events(self) -> PaymentEventDispatcher:
        return self._events

    # ------------------------------------------------------------------ writes
    async def apply_reported_status(
        self,
        payment_id: str,
        reported: PaymentStatus,
        *,
        transaction_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        source: str = "webhook",
    ) -> ApplyResult:
        try:
            async with self._uow_factory() as uow:
                domain_service = PaymentDomainService(uow.payment_repository, uow.order_repository)
                result = await domain_service.apply_status(
                    payment_id,
                    reported,
                    transaction_id=transaction_id,
                    metadata=metadata,
                    source=source,
                )
                events = domain_service.clear_events()
        except PaymentUpdateConflictException:
            logger.warning(
                "payment_cas_exhausted", payment_id=payment_id, source=source, reported=reported.value
            )
            raise

        logger.info(
            "payment_status_applied",
            payment_id=payment_id,
            source=source,
            reported=reported.value,
            previous=result.previous.value,
            status=result.payment.status.value,
            changed=result.changed,
            order_confirmed=result.order_confirmed,
        )
        # 事务已提交，再分发事件
        await self._events.dispatch(events)
        return result

    async def initiate_payment(
        self,
        req: InitiatePaymentRequest,
        *,
        caller_id: Optional[str] = None,
        caller_is_admin: bool = False,
    ) -> InitiatePaymentResult:
        if caller_id is not None and caller_id != req.user_id and not caller_is_admin:
            raise OrderAccessDeniedException(req.order_id or "")

        gateway = self._gateway_factory(None)
        async with self._uow_factory() as uow:
            if req.order_id:
                order = await uow.order_repository.get_by_id(req.order_id)
                if order is None:
                    raise OrderNotFoundException(req.order_id)
                if order.user_id != req.user_id:
                    raise OrderAccessDeniedException(req.order_id)

            domain_service = PaymentDomainService(uow.payment_repository, uow.order_repository)
            payment = await domain_service.create_payment(
                user_id=req.user_id,
                amount=req.amount,
                payment_method=req.payment_method,
                order_id=req.order_id,
                phone_number=req.phone_number,
                metadata={
                    "provider": gateway.provider,
                    "customer_email": req.customer_email,
                    "customer_name": req.customer_name,
                    "description": req.description,
                },
            )
            events = domain_service.clear_events()
        await self._events.dispatch(events)
        logger.info(
            "payment_initiated",
            payment_id=payment.id,
            order_id=payment.order_id,
            provider=gateway.provider,
            payment_method=payment.payment_method.value,
        )

        try:
            charge = await gateway.charge(ChargeRequest(
                payment_id=payment.id,
                order_id=payment.order_id,
                user_id=payment.user_id,
                amount=payment.amount,
                payment_method=payment.payment_method,
                phone_number=payment.phone_number,
                customer_email=req.customer_email,
                customer_name=req.customer_name,
                description=req.description,
            ))
        except Exception as exc:
            logger.warning("payment_provider_call_failed", payment_id=payment.id, provider=gateway.provider, error=str(exc))
            return await self._fail_initiation(payment, gateway.provider, str(exc))
        finally:
            await gateway.aclose()

        if not charge.accepted:
            return await self._fail_initiation(payment, gateway.provider, charge.message or "rejected", raw=charge.raw)

        status = payment.status
        if charge.status is PaymentStatus.PROCESSING or charge.transaction_id:
            result = await self.apply_reported_status(
                payment.id,
                charge.status,
                transaction_id=charge.transaction_id,
                metadata={f"{gateway.provider}_initiation": charge.raw or {}},
                source="initiate",
            )
            status = result.payment.status

        await self._save_breadcrumb(payment, gateway.provider)
        return InitiatePaymentResult(
            success=True,
            payment_id=payment.id,
            transaction_id=charge.transaction_id,
            message=charge.message or (PUSH_SENT_MESSAGE if status is PaymentStatus.PROCESSING else INITIATED_MESSAGE),
            status=status,
            provider=gateway.provider,
            channel=charge.channel,
        )

    async def _fail_initiation(
        self, payment: Payment, provider: str, error: str, *, raw: Optional[dict] = None
    ) -> InitiatePaymentResult:
        meta: dict[str, Any] = {"provider_error": error, "failure_reason": error}
        if raw:
            meta["provider_response"] = raw
        result = await self.apply_reported_status(
            payment.id, PaymentStatus.FAILED, metadata=meta, source="initiate"
        )
        return InitiatePaymentResult(
            success=False,
            payment_id=payment.id,
            message=FAILED_MESSAGE,
            status=result.payment.status,
            provider=provider,
        )

    async def confirm_payment(self, req: ConfirmPaymentRequest) -> ConfirmPaymentResult:
        result = await self.apply_reported_status(
            req.payment_id,
            PaymentStatus(req.status),
            transaction_id=req.transaction_id,
            metadata={"confirmed_at": datetime.now(timezone.utc).isoformat()},
            source="confirm",
        )
        status = result.payment.status
        if result.changed:
            message = f"Paiement mis à jour: {status.value}"
        else:
            message = f"Paiement déjà traité: {status.value}"
        return ConfirmPaymentResult(
            success=True,
            payment_id=req.payment_id,
            status=status,
            changed=result.changed,
            message=message,
        )

    # ------------------------------------------------------------------ reads
    async def _load(self, req: StatusCheckRequest) -> Optional[Payment]:
        async with self._uow_factory(readonly=True) as uow:
            if req.payment_id:
                return await uow.payment_repository.get_by_id(req.payment_id)
            return await uow.payment_repository.get_latest_by_order(req.order_id)

    async def find_payment_view(self, req: StatusCheckRequest) -> Optional[PaymentView]:
        """读取当前支付行，不存在时返回 None（刚创建时的竞争）"""
        payment = await self._load(req)
        return to_view(payment) if payment else None

    async def poll_status(self, req: StatusCheckRequest) -> Optional[PaymentView]:
        """跟踪器的轮询数据源：非终态时向提供商复核，行尚不存在时返回 None"""
        try:
            result = await self.check_status(req, refresh_from_provider=True)
        except PaymentNotFoundException:
            return None
        return result.payment

    async def check_status(
        self,
        req: StatusCheckRequest,
        *,
        caller_id: Optional[str] = None,
        caller_is_admin: bool = False,
        refresh_from_provider: bool = True,
    ) -> StatusCheckResult:
        payment = await self._load(req)
        if payment is None:
            raise PaymentNotFoundException(req.payment_id or req.order_id)
        if caller_id is not None and payment.user_id != caller_id and not caller_is_admin:
            raise PaymentNotFoundException(req.payment_id or req.order_id)

        if refresh_from_provider and not payment.is_terminal:
            payment = await self.refresh_from_provider(payment)
        return StatusCheckResult(success=True, payment=to_view(payment))

    async def refresh_from_provider(self, payment: Payment) -> Payment:
        """非终态且有凭证与交易号时向提供商查询，差异走同一幂等更新路径"""
        if not payment.transaction_id:
            return payment
        provider = (payment.metadata or {}).get("provider")
        try:
            gateway = self._gateway_factory(provider)
        except Exception as exc:
            logger.warning("payment_gateway_unavailable", payment_id=payment.id, provider=provider, error=str(exc))
            return payment
        if not gateway.has_credentials:
            return payment
        try:
            answer = await gateway.query_status(payment.transaction_id)
        except Exception as exc:
            logger.warning("payment_status_query_failed", payment_id=payment.id, provider=gateway.provider, error=str(exc))
            return payment
        finally:
            await gateway.aclose()
        if answer.status == payment.status:
            return payment
        try:
            result = await self.apply_reported_status(
                payment.id,
                answer.status,
                metadata={
                    f"{gateway.provider}_status": (answer.raw or {}).get("status"),
                    "status_checked_at": datetime.now(timezone.utc).isoformat(),
                },
                source="status_check",
            )
        except PaymentUpdateConflictException:
            # 并发写入者已在处理，下一轮查询再对齐
            return payment
        return result.payment

    async def reconcile_stale(self, *, older_than_s: Optional[int] = None, limit: Optional[int] = None) -> int:
        """对长时间停留在非终态的支付执行状态查询，返回状态发生变化的数量"""
        age = older_than_s if older_than_s is not None else payment_settings.tracking.stale_after_s
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=age)
        async with self._uow_factory(readonly=True) as uow:
            stale = await uow.payment_repository.list_stale_non_terminal(
                cutoff, limit=limit or payment_settings.tracking.sweep_batch
            )
        changed = 0
        for payment in stale:
            refreshed = await self.refresh_from_provider(payment)
            if refreshed.status != payment.status:
                changed += 1
        logger.info("payment_stale_sweep", scanned=len(stale), changed=changed)
        return changed

    # ------------------------------------------------------------- breadcrumbs
    async def _save_breadcrumb(self, payment: Payment, provider: str) -> None:
        if self._pending is None:
            return
        try:
            await self._pending.save(PendingPaymentBreadcrumb(
                payment_id=payment.id,
                order_id=payment.order_id,
                user_id=payment.user_id,
                amount=payment.amount,
                payment_method=payment.payment_method,
                provider=provider,
                created_at=payment.created_at or datetime.now(timezone.utc),
            ))
        except Exception as exc:
            logger.warning("pending_breadcrumb_save_failed", payment_id=payment.id, error=str(exc))

    async def list_pending(self, user_id: str) -> list[PendingPaymentBreadcrumb]:
        if self._pending is None:
            return []
        return await self._pending.list_for_user(user_id)

    async def _clear_breadcrumb(self, event) -> None:
        if self._pending is not None:
            await self._pending.remove(event.payment_id, event.user_id)

    def register_breadcrumb_cleanup(self) -> None:
        for event_type in (PaymentCompleted, PaymentFailed, PaymentCancelled, PaymentRefunded):
            self._events.subscribe(event_type, self._clear_breadcrumb)
