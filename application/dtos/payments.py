"""
Checkout DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field, ConfigDict, field_validator
from pydantic.types import condecimal

from domain.payment.entity import (
    ISO_4217,
    CheckoutPhase,
    CheckoutSession,
    PaymentResult,
    ProviderType,
    StoredPaymentMethod,
)


def _upper_and_validate_currency(v: str) -> str:
    u = (v or "").upper()
    if len(u) != 3 or not u.isalpha():
        raise ValueError("currency must be ISO-4217 alpha-3")
    if u not in ISO_4217:
        raise ValueError("unsupported currency")
    return u


class InitPayload(BaseModel):
    """Provider-specific client handshake data returned by initialize_payment.

    ``data`` is opaque to callers (client secret, redirect URL, ...);
    ``checkout_token`` binds the client collection step to one order.
    """

    provider: ProviderType
    order_ref: Optional[str] = None
    checkout_token: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(use_enum_values=False)

    @property
    def is_empty(self) -> bool:
        return not self.data


class StartCheckoutRequest(BaseModel):
    order_ref: str = Field(min_length=1, max_length=64)
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    currency: str = Field(default="JPY")
    customer_id: str = Field(min_length=1)
    email: Optional[str] = None
    name: Optional[str] = None
    provider: Optional[ProviderType] = None

    @field_validator("currency")
    @classmethod
    def _currency(cls, v: str) -> str:
        return _upper_and_validate_currency(v)


class SubmitPaymentRequest(BaseModel):
    payload: dict[str, Any] = Field(default_factory=dict)
    checkout_token: Optional[str] = None
    save_method: bool = False
    user_id: Optional[str] = None


class SaveMethodRequest(BaseModel):
    user_id: str = Field(min_length=1)
    provider: ProviderType
    payload: dict[str, Any] = Field(default_factory=dict)
    is_default: bool = False


class ReconcileRequest(BaseModel):
    charged: bool
    transaction_id: Optional[str] = None


class PaymentResultOut(BaseModel):
    success: bool
    transaction_id: Optional[str] = None
    error: Optional[str] = None
    attempt: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    @classmethod
    def from_result(cls, result: PaymentResult) -> "PaymentResultOut":
        return cls(
            success=result.success,
            transaction_id=result.transaction_id,
            error=result.error,
            attempt=result.attempt,
            metadata=dict(result.metadata),
            created_at=result.created_at,
        )


class StoredPaymentMethodOut(BaseModel):
    id: str
    type: str
    provider: Optional[str] = None
    last4: Optional[str] = None
    brand: Optional[str] = None
    expiry_month: Optional[int] = None
    expiry_year: Optional[int] = None
    holder_name: Optional[str] = None
    is_default: bool = False
    created_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, method: StoredPaymentMethod) -> "StoredPaymentMethodOut":
        return cls(
            id=method.id,
            type=method.type,
            provider=method.provider,
            last4=method.last4,
            brand=method.brand,
            expiry_month=method.expiry_month,
            expiry_year=method.expiry_year,
            holder_name=method.holder_name,
            is_default=method.is_default,
            created_at=method.created_at,
        )


class CheckoutStatus(BaseModel):
    order_ref: str
    provider: ProviderType
    phase: CheckoutPhase
    amount: Decimal
    currency: str
    attempt_count: int = 0
    latest_result: Optional[PaymentResultOut] = None
    last_error_type: Optional[str] = None
    last_error_category: Optional[str] = None
    last_error_message: Optional[str] = None
    retryable: bool = False
    requires_reconciliation: bool = False
    saved_method_id: Optional[str] = None
    method_save_error: Optional[str] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_session(cls, session: CheckoutSession) -> "CheckoutStatus":
        latest = session.latest_result
        return cls(
            order_ref=session.order_ref,
            provider=session.provider_type,
            phase=session.phase,
            amount=session.amount.amount,
            currency=session.amount.currency,
            attempt_count=session.attempt_count,
            latest_result=PaymentResultOut.from_result(latest) if latest else None,
            last_error_type=session.last_error_type,
            last_error_category=(
                session.last_error_category.value if session.last_error_category else None
            ),
            last_error_message=session.last_error_message,
            retryable=session.retryable,
            requires_reconciliation=session.requires_reconciliation,
            saved_method_id=session.saved_method_id,
            method_save_error=session.method_save_error,
            updated_at=session.updated_at,
        )
