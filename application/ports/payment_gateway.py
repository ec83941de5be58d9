"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from application.dtos.payments import ChargeRequest, ProviderCharge, WebhookEvent


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for mobile-money aggregators.

    Implementations should be async and side-effect free beyond IO.
    """

    provider: str
    signature_header: str

    @property
    def has_credentials(self) -> bool: ...

    @property
    def webhook_secret(self) -> Optional[str]: ...

    async def charge(self, req: ChargeRequest) -> ProviderCharge: ...

    async def query_status(self, transaction_id: str) -> ProviderCharge: ...

    def verify_signature(self, headers: dict[str, Any], body: bytes) -> bool: ...

    def parse_webhook(self, payload: dict[str, Any]) -> WebhookEvent: ...

    async def aclose(self) -> None: ...
