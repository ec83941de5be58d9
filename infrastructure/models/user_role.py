"""
用户角色数据库模型
"""
from sqlalchemy import Column, String, DateTime, UniqueConstraint
from datetime import datetime, timezone
import uuid

from .base import Base


class UserRoleModel(Base):
    __tablename__ = "user_roles"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False, index=True, comment="用户ID")
    role = Column(String(20), nullable=False, index=True, comment="角色: admin/user")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
    )
