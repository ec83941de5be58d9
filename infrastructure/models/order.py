"""
订单数据库模型（只映射支付子系统使用的列）
"""
from sqlalchemy import Column, Integer, String, DateTime
from datetime import datetime, timezone

from .base import Base


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, comment="订单ID")
    user_id = Column(String(36), nullable=False, index=True, comment="用户ID")
    total_amount = Column(Integer, nullable=False, comment="订单总额 FCFA")
    status = Column(String(20), nullable=False, default="pending", index=True, comment="订单状态")
    payment_reference = Column(String(100), nullable=True, comment="支付交易号")
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

    def __repr__(self):
        return f"<OrderModel(id='{self.id}', status='{self.status}')>"
