"""
Generic credit-card provider placeholder.

Disabled unless ``PAYMENT__CREDIT_CARD__ENABLED`` is set. Behaviour is
deterministic so the provider contract can be exercised end to end before a
real card processor is wired in: well-known test tokens decline or fail
transiently, everything else succeeds.
"""
from __future__ import annotations

import uuid
from typing import Any, Optional

from application.dtos.payments import InitPayload
from core.settings import PaymentSettings
from domain.payment.entity import (
    Amount,
    Customer,
    PaymentResult,
    ProviderType,
    StoredPaymentMethod,
)
from infrastructure.external.payments.base import BasePaymentProvider
from infrastructure.external.payments.exceptions import PaymentProviderError


# token -> result error code
TEST_TOKENS = {
    "tok_chargeDeclined": "card_declined",
    "tok_chargeDeclinedInsufficientFunds": "insufficient_funds",
    "tok_chargeDeclinedExpiredCard": "expired_card",
    "tok_chargeDeclinedProcessingError": "processing_error",
}


class CreditCardProvider(BasePaymentProvider):
    provider_type = ProviderType.CREDIT_CARD

    def __init__(self, settings: Optional[PaymentSettings] = None, **kwargs: Any):
        super().__init__(settings, **kwargs)
        self._cfg = self.settings.credit_card

    def is_supported(self) -> bool:
        return self._cfg.enabled

    async def initialize_payment(
        self, amount: Amount, customer: Customer, *, order_ref: Optional[str] = None
    ) -> InitPayload:  # type: ignore[override]
        self._log("credit_card_initialized", order_ref=order_ref, customer_id=customer.id)
        return InitPayload(
            provider=self.provider_type,
            order_ref=order_ref,
            data={
                "amount": amount.to_minor(),
                "currency": amount.currency,
                "fields": ["number", "exp_month", "exp_year", "cvc", "name"],
            },
        )

    async def process_payment(self, payment_data: dict[str, Any]) -> PaymentResult:  # type: ignore[override]
        token = payment_data.get("token")
        if not token:
            raise PaymentProviderError(
                "token is required",
                provider=self.provider,
                provider_code="parameter_missing",
                http_status=400,
            )
        error = TEST_TOKENS.get(token)
        if error:
            return PaymentResult.failed(error, metadata={"token": token})
        return PaymentResult.succeeded(f"cc_{uuid.uuid4().hex}", metadata={"token": token, "status": "approved"})

    async def save_payment_method(
        self, user_id: str, payment_data: dict[str, Any]
    ) -> StoredPaymentMethod:  # type: ignore[override]
        card = payment_data.get("card") or {}
        number = "".join(ch for ch in str(card.get("number", "")) if ch.isdigit())
        if len(number) < 12:
            raise PaymentProviderError(
                "card number is invalid",
                provider=self.provider,
                provider_code="incorrect_number",
                http_status=402,
            )
        method_id = payment_data.get("token") or self._idempotency_key("card", user_id, number)[:24]
        return StoredPaymentMethod(
            id=str(method_id),
            type="credit_card",
            user_id=user_id,
            provider=self.provider,
            last4=number[-4:],
            brand=card.get("brand") or _brand_for(number),
            expiry_month=card.get("exp_month"),
            expiry_year=card.get("exp_year"),
            holder_name=card.get("name"),
        )


def _brand_for(number: str) -> str:
    if number.startswith("4"):
        return "visa"
    if number[:2] in {"51", "52", "53", "54", "55"}:
        return "mastercard"
    if number[:2] in {"34", "37"}:
        return "amex"
    if number.startswith("35"):
        return "jcb"
    return "unknown"
