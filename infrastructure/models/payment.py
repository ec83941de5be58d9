"""
支付数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON, Index
from datetime import datetime, timezone

from .base import Base


class PaymentModel(Base):
    """
    支付数据库模型

    这是数据库表的映射，不包含业务逻辑
    所有业务规则都在 domain.payment.entity.Payment 中
    """
    __tablename__ = "payments"

    # 主键（UUID 字符串，与提供商交易号无关）
    id = Column(String(36), primary_key=True, comment="支付ID")

    # 关联信息
    order_id = Column(String(36), nullable=True, index=True, comment="订单ID")
    user_id = Column(String(36), nullable=False, index=True, comment="用户ID")

    # 金额（FCFA 无小数位）
    amount = Column(Integer, nullable=False, comment="支付金额 FCFA")
    payment_method = Column(String(20), nullable=False, comment="支付方式: orange/mtn/moov/wave/kkiapay")
    phone_number = Column(String(20), nullable=True, comment="付款手机号")

    status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="支付状态: pending/processing/completed/failed/cancelled/refunded"
    )
    transaction_id = Column(String(100), nullable=True, index=True, comment="提供商交易号")

    # 元数据（使用 extra_metadata 避免与 SQLAlchemy 的 metadata 冲突）
    extra_metadata = Column("metadata", JSON, nullable=True, comment="提供商原始字段与中间事件时间")

    # 时间戳
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )
    completed_at = Column(DateTime(timezone=True), nullable=True, comment="支付完成时间")

    __table_args__ = (
        Index("ix_payments_order_created", "order_id", "created_at"),
        Index("ix_payments_status_amount", "status", "amount"),
        Index("ix_payments_user_created", "user_id", "created_at"),
    )

    def __repr__(self):
        return (
            f"<PaymentModel(id='{self.id}', order_id='{self.order_id}', "
            f"amount={self.amount}, status='{self.status}')>"
        )
