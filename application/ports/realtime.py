"""
Realtime port and message DTOs (contracts-first).

This module defines the boundary DTOs and the RealtimeBrokerPort
protocol so the application layer can remain decoupled from the
concrete broadcast implementations (infrastructure).
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol
from pydantic import BaseModel, Field
from datetime import datetime, timezone


def _utc_now_z() -> str:
    ts = datetime.now(timezone.utc)
    s = ts.isoformat()
    return s.replace("+00:00", "Z")


class Envelope(BaseModel):
    """Unified realtime message envelope passed around the system.

    Fields:
      - type: semantic message type (payment.insert/payment.update/join/leave/ping/pong/error)
      - room: optional room channel, e.g. ``payments:id:<uuid>``
      - data: payload (JSON-serializable); for payment changes, the full row
      - ts: server-generated UTC timestamp (ISO8601 with Z)
      - sender_id: optional user id set by server
    """

    type: str
    room: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    ts: str = Field(default_factory=_utc_now_z)
    sender_id: str | None = None


Handler = Callable[[Envelope], Awaitable[None]]


class RealtimeBrokerPort(Protocol):
    """Abstraction for cross-process broadcast.

    Implementations may be in-memory (single process) or Redis pub/sub.
    Every ``subscribe`` must be paired with an ``unsubscribe`` of the same
    handler by its owner.
    """

    async def publish(self, room: str, envelope: Envelope) -> None: ...

    async def subscribe(self, handler: Handler) -> None: ...

    async def unsubscribe(self, handler: Handler) -> None: ...

    async def aclose(self) -> None: ...


def payment_rooms(payment_id: str, order_id: str | None, user_id: str | None) -> list[str]:
    """Rooms a payment row change is published to."""
    rooms = [f"payments:id:{payment_id}"]
    if order_id:
        rooms.append(f"payments:order:{order_id}")
    if user_id:
        rooms.append(f"payments:user:{user_id}")
    return rooms


__all__ = ["Envelope", "RealtimeBrokerPort", "Handler", "payment_rooms"]
