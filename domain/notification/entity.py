"""
通知与推送订阅实体
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


@dataclass
class Notification:
    id: Optional[str]
    user_id: str
    type: str
    title: str
    message: str
    data: dict[str, Any] = field(default_factory=dict)
    is_read: bool = False
    created_at: Optional[datetime] = None

    def mark_read(self) -> bool:
        if self.is_read:
            return False
        self.is_read = True
        return True


@dataclass
class PushSubscription:
    id: Optional[str]
    user_id: str
    endpoint: str
    p256dh: str
    auth: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
