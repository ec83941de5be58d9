"""
组合根：装配支付相关服务与事件订阅者

API 生命周期（main.lifespan）与 Celery 任务共用同一套装配，保证两边的
状态写入触发完全相同的提交后副作用。
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from application.ports.payment_gateway import PaymentGateway
from application.ports.pending_payments import PendingPaymentStore
from application.ports.push import PushSenderPort
from application.ports.realtime import RealtimeBrokerPort
from application.services.event_dispatcher import PaymentEventDispatcher
from application.services.notification_service import (
    EmailScheduler,
    NotificationDispatcher,
    NotificationQueryService,
    PaymentNotificationSubscriber,
)
from application.services.payment_service import PaymentApplicationService
from application.services.realtime_service import PaymentChangePublisher
from application.services.webhook_service import WebhookReconciler
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.external.payments import get_payment_gateway
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


@dataclass
class PaymentStack:
    events: PaymentEventDispatcher
    payments: PaymentApplicationService
    webhooks: WebhookReconciler
    notifications: NotificationDispatcher
    notification_queries: NotificationQueryService


def build_payment_stack(
    *,
    uow_factory: Callable[..., AbstractUnitOfWork] = SQLAlchemyUnitOfWork,
    gateway_factory: Callable[[Optional[str]], PaymentGateway] = get_payment_gateway,
    broker: Optional[RealtimeBrokerPort] = None,
    pending_store: Optional[PendingPaymentStore] = None,
    push_sender: Optional[PushSenderPort] = None,
    email_scheduler: Optional[EmailScheduler] = None,
) -> PaymentStack:
    events = PaymentEventDispatcher()
    payments = PaymentApplicationService(
        uow_factory,
        gateway_factory,
        events=events,
        pending_store=pending_store,
    )
    notifications = NotificationDispatcher(uow_factory, push_sender)

    # 订阅顺序：实时推送 → 通知 → 清理待完成记录
    if broker is not None:
        PaymentChangePublisher(broker).register(events)
    PaymentNotificationSubscriber(notifications, uow_factory, email_scheduler=email_scheduler).register(events)
    payments.register_breadcrumb_cleanup()

    return PaymentStack(
        events=events,
        payments=payments,
        webhooks=WebhookReconciler(payments, uow_factory, gateway_factory),
        notifications=notifications,
        notification_queries=NotificationQueryService(uow_factory),
    )
