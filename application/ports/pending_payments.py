"""
Pending-payment breadcrumb store port.

Breadcrumbs let a client resume tracking after a page reload; they expire on
their own and are dropped once the payment reaches a terminal status.
"""
from __future__ import annotations

from typing import Optional, Protocol

from application.dtos.payments import PendingPaymentBreadcrumb


class PendingPaymentStore(Protocol):

    async def save(self, crumb: PendingPaymentBreadcrumb) -> None: ...

    async def get(self, payment_id: str) -> Optional[PendingPaymentBreadcrumb]: ...

    async def list_for_user(self, user_id: str) -> list[PendingPaymentBreadcrumb]: ...

    async def remove(self, payment_id: str, user_id: Optional[str] = None) -> None: ...
