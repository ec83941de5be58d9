"""
支付领域实体 - 支付聚合根
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from domain.common.exceptions import DomainValidationException


class PaymentStatus(str, Enum):
    """支付状态枚举"""
    PENDING = "pending"           # 待支付
    PROCESSING = "processing"     # 处理中（已推送至运营商）
    COMPLETED = "completed"       # 支付成功
    FAILED = "failed"             # 支付失败
    CANCELLED = "cancelled"       # 已取消
    REFUNDED = "refunded"         # 已退款（仅可由 completed 进入）

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    PaymentStatus.COMPLETED,
    PaymentStatus.FAILED,
    PaymentStatus.CANCELLED,
    PaymentStatus.REFUNDED,
})

# 状态机：当前状态 -> 允许进入的状态
ALLOWED_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({
        PaymentStatus.PROCESSING,
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    }),
    PaymentStatus.PROCESSING: frozenset({
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    }),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.CANCELLED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}


class PaymentMethod(str, Enum):
    """支付方式：移动支付运营商或聚合渠道"""
    ORANGE = "orange"
    MTN = "mtn"
    MOOV = "moov"
    WAVE = "wave"
    KKIAPAY = "kkiapay"  # 聚合器托管组件

    @property
    def is_mobile_money(self) -> bool:
        return self is not PaymentMethod.KKIAPAY


# 可选 + 或 00 前缀与国家码，随后 8-10 位号码
PHONE_PATTERN = re.compile(r"^(?:\+|00)?(?:\d{3})?\d{8,10}$")


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """去掉空格、点和连字符"""
    if phone is None:
        return None
    cleaned = re.sub(r"[\s.\-]", "", phone)
    return cleaned or None


def is_valid_phone(phone: str) -> bool:
    return bool(PHONE_PATTERN.match(phone))


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class StatusChange:
    """一次状态应用的结果"""
    previous: PaymentStatus
    current: PaymentStatus

    @property
    def changed(self) -> bool:
        return self.previous != self.current


@dataclass
class Payment:
    """
    支付聚合根 - 管理支付生命周期

    业务规则：
    1. 金额必须大于0（FCFA，整数）
    2. 状态转换必须遵循状态机，终态不可回退
    3. completed_at 仅在进入 completed 时写入；refunded 保留原完成时间
    4. 记录不删除，失败后重试会创建新的支付
    """

    id: str
    user_id: str
    amount: int
    payment_method: PaymentMethod
    status: PaymentStatus = PaymentStatus.PENDING
    order_id: Optional[str] = None
    phone_number: Optional[str] = None
    transaction_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        """初始化后验证"""
        if isinstance(self.status, str):
            self.status = PaymentStatus(self.status)
        if isinstance(self.payment_method, str):
            self.payment_method = PaymentMethod(self.payment_method)
        self._validate_amount()
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.completed_at = _ensure_utc(self.completed_at)
        if self.metadata is None:
            self.metadata = {}

    def _validate_amount(self) -> None:
        if isinstance(self.amount, bool) or not isinstance(self.amount, int) or self.amount <= 0:
            raise DomainValidationException(
                f"Le montant doit être un entier positif: {self.amount}",
                field="amount",
            )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def can_transition_to(self, target: PaymentStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status]

    def resolve_target(self, reported: PaymentStatus) -> PaymentStatus:
        """将上报状态归一为实际可应用的目标状态。

        - 未完成支付上报 refunded，视为 failed
        - 其余不可达的目标保持当前状态（终态吸收、不回退）
        """
        if reported is PaymentStatus.REFUNDED and self.status is not PaymentStatus.COMPLETED:
            reported = PaymentStatus.FAILED
        if self.can_transition_to(reported):
            return reported
        return self.status

    def apply_status(
        self,
        reported: PaymentStatus,
        *,
        transaction_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> StatusChange:
        """应用外部上报的状态（webhook / 状态查询 / 手动确认）。

        终态支付不会再合并交易号或元数据。
        """
        previous = self.status
        target = self.resolve_target(reported)
        if self.is_terminal and target == previous:
            return StatusChange(previous, previous)

        now = now or datetime.now(timezone.utc)
        if transaction_id and not self.transaction_id:
            self.transaction_id = transaction_id
        if metadata:
            self.metadata = {**self.metadata, **metadata}
        if target != previous:
            self.status = target
            if target is PaymentStatus.COMPLETED:
                self.completed_at = now
        self.updated_at = now
        return StatusChange(previous, self.status)

    def mark_processing(self, transaction_id: Optional[str] = None) -> StatusChange:
        """运营商已受理推送"""
        return self.apply_status(PaymentStatus.PROCESSING, transaction_id=transaction_id)

    def mark_failed(self, reason: Optional[str] = None, **extra: Any) -> StatusChange:
        """标记失败，并记录原因到 metadata"""
        meta: dict[str, Any] = dict(extra)
        if reason:
            meta["failure_reason"] = reason
        return self.apply_status(PaymentStatus.FAILED, metadata=meta)
