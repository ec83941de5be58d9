"""
通知与推送订阅数据库模型
"""
from sqlalchemy import Column, String, Boolean, DateTime, JSON, Text, Index
from datetime import datetime, timezone
import uuid

from .base import Base


class NotificationModel(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True, comment="接收用户ID")
    type = Column(String(50), nullable=False, comment="通知类型: payment")
    title = Column(String(200), nullable=False, comment="标题")
    message = Column(Text, nullable=False, comment="内容")
    data = Column(JSON, nullable=True, comment="附加数据")
    is_read = Column(Boolean, nullable=False, default=False, comment="是否已读")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )

    __table_args__ = (
        Index("ix_notifications_user_created", "user_id", "created_at"),
    )


class PushSubscriptionModel(Base):
    __tablename__ = "push_subscriptions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True, comment="用户ID")
    endpoint = Column(Text, nullable=False, unique=True, comment="浏览器推送端点")
    p256dh = Column(String(255), nullable=False, comment="客户端公钥")
    auth = Column(String(255), nullable=False, comment="客户端认证密钥")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
