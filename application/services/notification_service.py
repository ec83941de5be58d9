"""
Notification dispatch (in-app rows + web push fan-out) and the payment
transition subscriber that turns payment events into user/admin messages.
"""
from __future__ import annotations

from typing import Any, Callable, Optional

from application.dtos.notifications import NotificationView, PushMessage, PushSubscriptionRequest
from application.ports.push import PushSenderPort
from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import NotificationNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.notification.entity import Notification, PushSubscription
from domain.payment.events import (
    PaymentCancelled,
    PaymentCompleted,
    PaymentEvent,
    PaymentFailed,
    PaymentRefunded,
)


logger = get_logger(__name__)

PAYMENT_NOTIFICATION_TYPE = "payment"

EmailScheduler = Callable[[str, str, str], None]


def _fcfa(amount: int) -> str:
    return f"{amount} FCFA"


class NotificationDispatcher:
    """持久化通知并推送到用户所有已注册端点。

    dispatch 永不抛出异常：失败只记录日志并返回 0。
    """

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        push_sender: Optional[PushSenderPort] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._push = push_sender

    async def dispatch(
        self,
        user_id: str,
        type: str,
        title: str,
        message: str,
        data: Optional[dict[str, Any]] = None,
    ) -> int:
        try:
            async with self._uow_factory() as uow:
                await uow.notification_repository.create(Notification(
                    id=None,
                    user_id=user_id,
                    type=type,
                    title=title,
                    message=message,
                    data=data or {},
                ))
        except Exception as exc:
            logger.error("notification_persist_failed", user_id=user_id, type=type, error=str(exc))
            return 0

        try:
            return await self._fan_out(user_id, PushMessage(
                title=title,
                body=message,
                tag=type,
                data=data or {},
            ))
        except Exception as exc:
            logger.error("notification_push_failed", user_id=user_id, type=type, error=str(exc))
            return 0

    async def _fan_out(self, user_id: str, message: PushMessage) -> int:
        if self._push is None:
            return 0
        async with self._uow_factory(readonly=True) as uow:
            subscriptions = await uow.push_subscription_repository.list_by_user(user_id)
        if not subscriptions:
            logger.info("push_no_subscriptions", user_id=user_id)
            return 0

        sent = 0
        gone: list[str] = []
        for sub in subscriptions:
            try:
                delivery = await self._push.send(sub, message)
            except Exception as exc:
                logger.warning("push_send_error", user_id=user_id, error=str(exc))
                continue
            if delivery.delivered:
                sent += 1
            elif delivery.gone:
                gone.append(sub.endpoint)

        if gone:
            async with self._uow_factory() as uow:
                await uow.push_subscription_repository.delete_by_endpoints(gone)
        logger.info("push_dispatched", user_id=user_id, sent=sent, total=len(subscriptions), cleaned=len(gone))
        return sent


class NotificationQueryService:
    """用户读取/标记自己的通知"""

    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]) -> None:
        self._uow_factory = uow_factory

    async def list_for_user(
        self, user_id: str, *, page: int = 1, size: int = 20, unread_only: bool = False
    ) -> tuple[list[NotificationView], int]:
        async with self._uow_factory(readonly=True) as uow:
            items = await uow.notification_repository.list_by_user(
                user_id, skip=(page - 1) * size, limit=size, unread_only=unread_only
            )
            total = await uow.notification_repository.count_by_user(user_id, unread_only=unread_only)
        return [NotificationView.model_validate(n, from_attributes=True) for n in items], total

    async def mark_read(self, user_id: str, notification_id: str) -> bool:
        async with self._uow_factory() as uow:
            notification = await uow.notification_repository.get_by_id(notification_id)
            if notification is None or notification.user_id != user_id:
                raise NotificationNotFoundException(notification_id)
            if notification.is_read:
                return False
            return await uow.notification_repository.mark_read(notification_id)

    async def mark_all_read(self, user_id: str) -> int:
        async with self._uow_factory() as uow:
            return await uow.notification_repository.mark_all_read(user_id)

    async def register_push_subscription(self, user_id: str, req: PushSubscriptionRequest) -> None:
        async with self._uow_factory() as uow:
            await uow.push_subscription_repository.upsert(PushSubscription(
                id=None,
                user_id=user_id,
                endpoint=req.endpoint,
                p256dh=req.keys.p256dh,
                auth=req.keys.auth,
            ))


class PaymentNotificationSubscriber:
    """支付状态转换 → 用户/管理员通知（以及确认邮件）"""

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        email_scheduler: Optional[EmailScheduler] = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._uow_factory = uow_factory
        self._email_scheduler = email_scheduler

    def register(self, events) -> None:
        events.subscribe(PaymentCompleted, self.on_completed)
        events.subscribe(PaymentFailed, self.on_failed)
        events.subscribe(PaymentCancelled, self.on_cancelled)
        events.subscribe(PaymentRefunded, self.on_refunded)

    @staticmethod
    def _data(event: PaymentEvent, status: str) -> dict[str, Any]:
        return {
            "payment_id": event.payment_id,
            "order_id": event.order_id,
            "transaction_id": event.transaction_id,
            "amount": event.amount,
            "status": status,
        }

    async def on_completed(self, event: PaymentCompleted) -> None:
        data = self._data(event, "completed")
        order_ref = (event.order_id or "")[:8]
        async with self._uow_factory(readonly=True) as uow:
            admin_ids = await uow.user_role_repository.list_user_ids_by_role(settings.auth.admin_role)
        for admin_id in admin_ids:
            await self._dispatcher.dispatch(
                admin_id,
                PAYMENT_NOTIFICATION_TYPE,
                "Paiement confirmé",
                f"Paiement de {_fcfa(event.amount)} confirmé pour la commande #{order_ref}",
                data,
            )
        await self._dispatcher.dispatch(
            event.user_id,
            PAYMENT_NOTIFICATION_TYPE,
            "Paiement réussi",
            f"Votre paiement de {_fcfa(event.amount)} a été confirmé. "
            "Votre commande est en cours de préparation.",
            data,
        )
        if event.customer_email and self._email_scheduler is not None:
            try:
                self._email_scheduler(
                    event.customer_email,
                    "Confirmation de paiement - Izy-Scoly",
                    f"Votre paiement de {_fcfa(event.amount)} a été confirmé "
                    f"(commande #{order_ref}, transaction {event.transaction_id or '-'}).",
                )
            except Exception as exc:
                logger.warning("payment_email_enqueue_failed", payment_id=event.payment_id, error=str(exc))

    async def on_failed(self, event: PaymentFailed) -> None:
        await self._dispatcher.dispatch(
            event.user_id,
            PAYMENT_NOTIFICATION_TYPE,
            "Paiement échoué",
            f"Votre paiement de {_fcfa(event.amount)} a échoué. Veuillez réessayer.",
            {**self._data(event, "failed"), "reason": event.reason},
        )

    async def on_cancelled(self, event: PaymentCancelled) -> None:
        await self._dispatcher.dispatch(
            event.user_id,
            PAYMENT_NOTIFICATION_TYPE,
            "Paiement annulé",
            f"Votre paiement de {_fcfa(event.amount)} a été annulé.",
            self._data(event, "cancelled"),
        )

    async def on_refunded(self, event: PaymentRefunded) -> None:
        await self._dispatcher.dispatch(
            event.user_id,
            PAYMENT_NOTIFICATION_TYPE,
            "Paiement remboursé",
            f"Votre paiement de {_fcfa(event.amount)} a été remboursé.",
            self._data(event, "refunded"),
        )
