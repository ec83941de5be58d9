"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so provider credentials can be rotated
without touching application settings. Keys use the ``PAYMENT__`` prefix,
e.g. ``PAYMENT__KKIAPAY__SECRET`` or ``PAYMENT__TRACKING__POLL_INTERVAL_S``.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 2.0
    read: float = 10.0
    write: float = 10.0
    total: float = 15.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    # Reject unsigned callbacks even when no secret is configured
    require_signature: bool = False


class KkiapaySettings(BaseModel):
    public_key: Optional[str] = None
    private_key: Optional[str] = None
    secret: Optional[str] = None
    webhook_secret: Optional[str] = None
    sandbox: bool = True
    base_url: str = "https://api.kkiapay.me"
    sandbox_base_url: str = "https://api-sandbox.kkiapay.me"


class FedapaySettings(BaseModel):
    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    sandbox: bool = True
    base_url: str = "https://api.fedapay.com"
    sandbox_base_url: str = "https://sandbox-api.fedapay.com"
    currency: str = "XOF"
    country: str = "bj"
    # Internal payment method → FedaPay mobile-money mode
    modes: dict[str, str] = Field(default_factory=lambda: {
        "mtn": "mtn_open",
        "moov": "moov",
        "orange": "orange_ci",
        "wave": "wave_ci",
    })


class TrackingSettings(BaseModel):
    poll_interval_s: float = 5.0
    breadcrumb_ttl_s: int = 24 * 3600
    # Server-side sweep of payments stuck in a non-terminal status
    stale_after_s: int = 10 * 60
    sweep_interval_s: int = 5 * 60
    sweep_batch: int = 50


class PushSettings(BaseModel):
    vapid_public_key: Optional[str] = None
    vapid_private_key: Optional[str] = None
    vapid_subject: str = "mailto:contact@izy-scoly.com"
    ttl_seconds: int = 86400
    timeout: float = 5.0


class EmailSettings(BaseModel):
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    from_email: Optional[str] = None
    use_tls: bool = True
    timeout: float = 10.0


class PaymentSettings(BaseSettings):
    default_provider: str = Field(default="kkiapay")
    currency_label: str = "FCFA"
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    tracking: TrackingSettings = Field(default_factory=TrackingSettings)

    kkiapay: KkiapaySettings = Field(default_factory=KkiapaySettings)
    fedapay: FedapaySettings = Field(default_factory=FedapaySettings)
    push: PushSettings = Field(default_factory=PushSettings)
    email: EmailSettings = Field(default_factory=EmailSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
