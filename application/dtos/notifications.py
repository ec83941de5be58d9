"""
Notification DTOs.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field


class NotificationView(BaseModel):
    id: str
    user_id: str
    type: str
    title: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    is_read: bool = False
    created_at: Optional[datetime] = None


class PushMessage(BaseModel):
    title: str
    body: str
    url: Optional[str] = None
    tag: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)


class PushSubscriptionKeys(BaseModel):
    p256dh: str
    auth: str


class PushSubscriptionRequest(BaseModel):
    """Browser ``PushSubscription.toJSON()`` shape."""
    endpoint: str = Field(min_length=8)
    keys: PushSubscriptionKeys
