"""
Payment domain events.

Dataclass events record payment lifecycle facts. They are collected by the
domain service while the transaction is open and dispatched only after the
unit of work commits, so subscribers (notifications, realtime fan-out) can
never roll back or block a state transition.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
import uuid


@dataclass
class PaymentEvent:
    payment_id: str
    user_id: str
    amount: int
    order_id: Optional[str] = None
    transaction_id: Optional[str] = None
    source: str = "webhook"
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class PaymentRowChanged(PaymentEvent):
    """Any committed insert/update of a payment row (realtime feed)."""
    change: str = "update"  # insert | update
    row: dict[str, Any] = field(default_factory=dict)


@dataclass
class PaymentCompleted(PaymentEvent):
    customer_email: Optional[str] = None


@dataclass
class PaymentFailed(PaymentEvent):
    reason: Optional[str] = None


@dataclass
class PaymentCancelled(PaymentEvent):
    pass


@dataclass
class PaymentRefunded(PaymentEvent):
    pass


@dataclass
class OrderConfirmed:
    order_id: str
    payment_id: str
    payment_reference: Optional[str] = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
