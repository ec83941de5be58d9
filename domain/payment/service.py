"""
支付领域服务 - 处理支付创建与幂等状态应用
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, replace, asdict
from datetime import datetime, timezone
from typing import Any, List, Optional

from .entity import Payment, PaymentMethod, PaymentStatus
from .repository import PaymentRepository
from .events import (
    OrderConfirmed,
    PaymentCancelled,
    PaymentCompleted,
    PaymentEvent,
    PaymentFailed,
    PaymentRefunded,
    PaymentRowChanged,
)
from domain.common.exceptions import PaymentNotFoundException, PaymentUpdateConflictException
from domain.order.repository import OrderRepository


# 条件写入失败后重新读取并重试的次数上限
MAX_CAS_ATTEMPTS = 5


def payment_row(payment: Payment) -> dict[str, Any]:
    """支付的完整行数据（实时推送与日志使用），可 JSON 序列化"""
    row = asdict(payment)
    row["status"] = payment.status.value
    row["payment_method"] = payment.payment_method.value
    for key in ("created_at", "updated_at", "completed_at"):
        value = row.get(key)
        row[key] = value.isoformat() if isinstance(value, datetime) else None
    return row


@dataclass
class ApplyResult:
    payment: Payment
    previous: PaymentStatus
    order_confirmed: bool = False

    @property
    def changed(self) -> bool:
        return self.payment.status != self.previous


class PaymentDomainService:
    """
    支付领域服务 - 编排状态机与副作用事件

    职责：
    1. 创建支付（pending，独立于提供商的ID）
    2. 以条件写入（compare-and-set）应用外部上报的状态，并发重复投递只有一个写入者生效
    3. 首次进入 completed 时在同一事务内确认订单
    4. 收集领域事件，由应用层在提交后分发
    """

    def __init__(
        self,
        payment_repository: PaymentRepository,
        order_repository: Optional[OrderRepository] = None,
    ):
        self.payment_repository = payment_repository
        self.order_repository = order_repository
        self.events: List = []  # 领域事件收集

    async def create_payment(
        self,
        *,
        user_id: str,
        amount: int,
        payment_method: PaymentMethod,
        order_id: Optional[str] = None,
        phone_number: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Payment:
        now = datetime.now(timezone.utc)
        payment = Payment(
            id=str(uuid.uuid4()),
            user_id=user_id,
            amount=amount,
            payment_method=payment_method,
            status=PaymentStatus.PENDING,
            order_id=order_id,
            phone_number=phone_number,
            metadata={"initiated_at": now.isoformat(), **(metadata or {})},
            created_at=now,
            updated_at=now,
        )
        created = await self.payment_repository.create(payment)
        self.events.append(self._row_event(created, change="insert", source="initiate"))
        return created

    async def apply_status(
        self,
        payment_id: str,
        reported: PaymentStatus,
        *,
        transaction_id: Optional[str] = None,
        metadata: Optional[dict] = None,
        source: str = "webhook",
    ) -> ApplyResult:
        """
        幂等应用状态

        业务规则：
        1. 支付必须存在
        2. 终态吸收：重复或乱序投递不改变状态、不产生事件
        3. 写入以读取时的状态为条件；竞争失败则重新读取再判断
        """
        for _ in range(MAX_CAS_ATTEMPTS):
            current = await self.payment_repository.get_by_id(payment_id)
            if current is None:
                raise PaymentNotFoundException(payment_id)

            previous = current.status
            candidate = replace(current, metadata=dict(current.metadata or {}))
            change = candidate.apply_status(reported, transaction_id=transaction_id, metadata=metadata)
            if current.is_terminal and not change.changed:
                return ApplyResult(payment=current, previous=previous)

            if not await self.payment_repository.compare_and_set(candidate, expected_status=previous):
                continue

            result = ApplyResult(payment=candidate, previous=previous)
            self.events.append(self._row_event(candidate, change="update", source=source))
            if result.changed:
                result.order_confirmed = await self._on_transition(candidate, source)
            return result

        # 持续竞争失败：不写入，交由调用方记录并决定是否重试
        raise PaymentUpdateConflictException(payment_id, reported.value, MAX_CAS_ATTEMPTS)

    async def _on_transition(self, payment: Payment, source: str) -> bool:
        base = dict(
            payment_id=payment.id,
            user_id=payment.user_id,
            amount=payment.amount,
            order_id=payment.order_id,
            transaction_id=payment.transaction_id,
            source=source,
        )
        status = payment.status
        order_confirmed = False
        if status is PaymentStatus.COMPLETED:
            if payment.order_id and self.order_repository is not None:
                order_confirmed = await self.order_repository.confirm_if_pending(
                    payment.order_id, payment.transaction_id
                )
                if order_confirmed:
                    self.events.append(OrderConfirmed(
                        order_id=payment.order_id,
                        payment_id=payment.id,
                        payment_reference=payment.transaction_id,
                    ))
            self.events.append(PaymentCompleted(
                **base, customer_email=(payment.metadata or {}).get("customer_email")
            ))
        elif status is PaymentStatus.FAILED:
            self.events.append(PaymentFailed(**base, reason=(payment.metadata or {}).get("failure_reason")))
        elif status is PaymentStatus.CANCELLED:
            self.events.append(PaymentCancelled(**base))
        elif status is PaymentStatus.REFUNDED:
            self.events.append(PaymentRefunded(**base))
        return order_confirmed

    @staticmethod
    def _row_event(payment: Payment, *, change: str, source: str) -> PaymentEvent:
        return PaymentRowChanged(
            payment_id=payment.id,
            user_id=payment.user_id,
            amount=payment.amount,
            order_id=payment.order_id,
            transaction_id=payment.transaction_id,
            source=source,
            change=change,
            row=payment_row(payment),
        )

    def clear_events(self) -> List:
        """清空并返回领域事件"""
        events = self.events.copy()
        self.events.clear()
        return events
