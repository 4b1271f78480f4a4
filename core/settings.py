"""
Payment-related settings using pydantic-settings v2 with nested env keys.

This module is isolated so core.config.Settings stays focused on the app shell.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 3.0
    write: float = 3.0
    total: float = 5.0


class PaymentRetry(BaseModel):
    # adapter-level retries for idempotent reads/handshakes
    max: int = 2
    base_backoff: float = 0.2


class CheckoutSettings(BaseModel):
    process_timeout_seconds: float = 30.0
    max_auto_retries: int = 2
    backoff_base: float = 0.2
    backoff_max: float = 2.0
    # 已结算会话仅保留最近 N 个供状态查询，之后由持久层判定 AlreadySettled
    settled_cache_size: int = 1024
    # 未完成且无需对账的会话闲置超过该时长后回收
    idle_session_ttl_seconds: float = 86400.0


class StripeSettings(BaseModel):
    secret_key: Optional[str] = None
    publishable_key: Optional[str] = None
    enabled: bool = True


class AmazonPaySettings(BaseModel):
    merchant_id: Optional[str] = None
    store_id: Optional[str] = None
    public_key_id: Optional[str] = None
    api_base: str = "https://pay-api.amazon.jp/live/v2"
    checkout_review_return_url: Optional[str] = None
    supported_regions: list[str] = Field(default_factory=lambda: ["JP", "US", "EU", "UK"])
    enabled: bool = True


class CreditCardSettings(BaseModel):
    enabled: bool = False


class PaymentSettings(BaseSettings):
    default_provider: str = Field(default="stripe", validation_alias="PAYMENT__DEFAULT_PROVIDER")
    region: str = Field(default="JP", validation_alias="PAYMENT__REGION")
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    checkout: CheckoutSettings = Field(default_factory=CheckoutSettings)

    stripe: StripeSettings = Field(default_factory=StripeSettings)
    amazon_pay: AmazonPaySettings = Field(default_factory=AmazonPaySettings)
    credit_card: CreditCardSettings = Field(default_factory=CreditCardSettings)

    # PAYMENT__STRIPE__SECRET_KEY, PAYMENT__CHECKOUT__MAX_AUTO_RETRIES ...
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
