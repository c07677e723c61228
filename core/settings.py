"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so payment secrets load on their own
(`PAYMENT__STRIPE__WEBHOOK_SECRET`, `PAYMENT__WEBHOOK__IP_ALLOWLIST`, ...).
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class WebhookSettings(BaseModel):
    tolerance_seconds: int = 300
    ip_allowlist: list[str] | None = None  # Optional IPs/CIDRs allowed to post webhooks


class StripeSettings(BaseModel):
    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    success_url: str = "https://t.me/"
    cancel_url: str = "https://t.me/"
    currency: str = "usd"


class PaymentSettings(BaseSettings):
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    stripe: StripeSettings = Field(default_factory=StripeSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
