"""
Payment DTOs (Pydantic v2) used at application boundaries.

Wire names are camelCase to match the web client; Python attributes stay
snake_case through aliases.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Literal
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from domain.payment.entity import (
    PaymentMethod,
    PaymentStatus,
    is_valid_phone,
    normalize_phone,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InitiatePaymentRequest(CamelModel):
    order_id: Optional[str] = None
    amount: int = Field(gt=0)
    payment_method: PaymentMethod
    phone_number: Optional[str] = None
    user_id: str
    customer_email: Optional[EmailStr] = None
    customer_name: Optional[str] = None
    description: Optional[str] = None

    @field_validator("phone_number")
    @classmethod
    def _normalize_phone(cls, v: Optional[str]) -> Optional[str]:
        return normalize_phone(v)

    @model_validator(mode="after")
    def _validate_contact(self):
        if self.phone_number is None:
            if self.payment_method.is_mobile_money:
                raise ValueError("phoneNumber is required for mobile money payments")
            return self
        if not is_valid_phone(self.phone_number):
            raise ValueError("phoneNumber is not a valid mobile number")
        return self


class InitiatePaymentResult(CamelModel):
    success: bool
    payment_id: str
    transaction_id: Optional[str] = None
    message: str
    status: PaymentStatus
    provider: str
    channel: Optional[dict[str, Any]] = None


class StatusCheckRequest(CamelModel):
    payment_id: Optional[str] = None
    order_id: Optional[str] = None

    @model_validator(mode="after")
    def _require_identifier(self):
        if not self.payment_id and not self.order_id:
            raise ValueError("paymentId or orderId is required")
        return self


class PaymentView(CamelModel):
    id: str
    status: PaymentStatus
    transaction_id: Optional[str] = None
    payment_method: PaymentMethod
    amount: int
    order_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class StatusCheckResult(CamelModel):
    success: bool = True
    payment: PaymentView


class ConfirmPaymentRequest(CamelModel):
    payment_id: str
    transaction_id: Optional[str] = None
    status: Literal["completed", "failed", "cancelled"]


class ConfirmPaymentResult(CamelModel):
    success: bool
    payment_id: str
    status: PaymentStatus
    changed: bool
    message: str


class ProviderCharge(BaseModel):
    """Synchronous answer of a provider to an initiation request."""
    provider: str
    accepted: bool
    status: PaymentStatus = PaymentStatus.PENDING
    transaction_id: Optional[str] = None
    channel: Optional[dict[str, Any]] = None
    message: Optional[str] = None
    raw: Optional[dict[str, Any]] = None


class ChargeRequest(BaseModel):
    payment_id: str
    order_id: Optional[str] = None
    user_id: str
    amount: int
    payment_method: PaymentMethod
    phone_number: Optional[str] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    description: Optional[str] = None


class WebhookEvent(BaseModel):
    """Provider callback normalized to the fields reconciliation needs."""
    provider: str
    event: Optional[str] = None
    raw_status: Optional[str] = None
    status: PaymentStatus = PaymentStatus.PENDING
    payment_id: Optional[str] = None
    transaction_id: Optional[str] = None
    # Secondary provider identifier (FedaPay reference)
    reference: Optional[str] = None
    order_id: Optional[str] = None
    user_id: Optional[str] = None
    amount: Optional[int] = None
    failure_reason: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ReconcileOutcome(BaseModel):
    resolved: bool
    payment_id: Optional[str] = None
    status: Optional[PaymentStatus] = None
    changed: bool = False
    resolved_by: Optional[str] = None


class PendingPaymentBreadcrumb(CamelModel):
    payment_id: str
    order_id: Optional[str] = None
    user_id: str
    amount: int
    payment_method: PaymentMethod
    provider: str
    created_at: datetime
