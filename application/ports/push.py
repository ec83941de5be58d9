"""
Push delivery port.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from application.dtos.notifications import PushMessage
from domain.notification.entity import PushSubscription


@dataclass
class PushDelivery:
    endpoint: str
    delivered: bool
    # Endpoint answered 404/410 and must be forgotten
    gone: bool = False
    status_code: int | None = None


class PushSenderPort(Protocol):

    async def send(self, subscription: PushSubscription, message: PushMessage) -> PushDelivery: ...

    async def aclose(self) -> None: ...
