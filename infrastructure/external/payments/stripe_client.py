"""
Stripe PaymentIntents adapter using the official stripe-python SDK.

Notes on SDK usage:
- The module-level resources (`stripe.PaymentIntent`, `stripe.PaymentMethod`,
  `stripe.Customer`) are synchronous; calls run in a worker thread via
  `asyncio.to_thread` so the event loop is never blocked.
- Idempotency keys are supplied via the `idempotency_key` kwarg.
- Card declines surface as `stripe.CardError` and are returned as failed
  results, not raised.
"""
from __future__ import annotations

import asyncio
from typing import Any, Optional

from application.dtos.payments import InitPayload
from core.logging_config import get_logger
from core.settings import PaymentSettings
from domain.payment.entity import (
    Amount,
    Customer,
    PaymentResult,
    ProviderType,
    StoredPaymentMethod,
)
from infrastructure.external.payments.base import BasePaymentProvider
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
)


logger = get_logger(__name__)

try:  # optional import to keep repo install-light
    import stripe  # type: ignore
except Exception:  # pragma: no cover - graceful degradation
    stripe = None  # type: ignore


def _get(obj: Any, key: str, default: Any = None) -> Any:
    try:
        value = obj[key]
    except (KeyError, TypeError, IndexError):
        return getattr(obj, key, default)
    return default if value is None else value


class StripeProvider(BasePaymentProvider):
    provider_type = ProviderType.STRIPE

    def __init__(self, settings: Optional[PaymentSettings] = None, **kwargs: Any):
        super().__init__(settings, **kwargs)
        self._cfg = self.settings.stripe
        if stripe and self._cfg.secret_key:
            # Configure module-level key for compatibility across SDK variants
            stripe.api_key = self._cfg.secret_key

    def is_supported(self) -> bool:
        return bool(stripe and self._cfg.enabled and self._cfg.secret_key)

    def _translate(self, exc: Exception) -> PaymentProviderError:
        code = _get(exc, "code")
        http_status = _get(exc, "http_status")
        message = _get(exc, "user_message") or str(exc)
        if isinstance(exc, stripe.RateLimitError):
            return PaymentRecoverableError(
                message, provider=self.provider, provider_code=code or "rate_limit", http_status=http_status
            )
        if isinstance(exc, stripe.APIConnectionError):
            code = code or "api_connection_error"
        elif isinstance(exc, stripe.AuthenticationError):
            code = code or "authentication_error"
        elif isinstance(exc, stripe.PermissionError):
            code = code or "permission_error"
        return PaymentProviderError(message, provider=self.provider, provider_code=code, http_status=http_status)

    async def initialize_payment(
        self, amount: Amount, customer: Customer, *, order_ref: Optional[str] = None
    ) -> InitPayload:  # type: ignore[override]
        amount_minor = amount.to_minor()
        metadata = {"userId": customer.id}
        if order_ref:
            metadata["order_ref"] = order_ref
        params: dict[str, Any] = {
            "amount": amount_minor,
            "currency": amount.currency.lower(),
            "payment_method_types": ["card"],
            "metadata": metadata,
            "idempotency_key": self._idempotency_key(
                "init", order_ref or "", amount_minor, amount.currency, customer.id
            ),
        }
        if customer.email:
            params["receipt_email"] = customer.email

        try:
            pi = await asyncio.to_thread(stripe.PaymentIntent.create, **params)
        except stripe.StripeError as exc:
            raise self._translate(exc) from exc

        self._log("stripe_intent_created", order_ref=order_ref, intent_id=_get(pi, "id"), amount=amount_minor)
        return InitPayload(
            provider=self.provider_type,
            order_ref=order_ref,
            data={
                "client_secret": _get(pi, "client_secret"),
                "payment_intent_id": _get(pi, "id"),
                "publishable_key": self._cfg.publishable_key,
                "amount": amount_minor,
                "currency": amount.currency,
            },
        )

    async def process_payment(self, payment_data: dict[str, Any]) -> PaymentResult:  # type: ignore[override]
        intent_id = payment_data.get("payment_intent_id") or payment_data.get("payment_intent")
        if not intent_id:
            raise PaymentProviderError(
                "payment_intent_id is required",
                provider=self.provider,
                provider_code="parameter_missing",
                http_status=400,
            )
        payment_method = payment_data.get("payment_method")

        try:
            if payment_method:
                pi = await asyncio.to_thread(
                    stripe.PaymentIntent.confirm,
                    intent_id,
                    payment_method=payment_method,
                    idempotency_key=self._idempotency_key("confirm", intent_id, payment_method),
                )
            else:
                # Confirmed client-side (Stripe.js); verify the outcome server-side
                pi = await asyncio.to_thread(stripe.PaymentIntent.retrieve, intent_id)
        except stripe.CardError as exc:
            decline_code = _get(exc, "code") or "card_declined"
            self._log("stripe_card_declined", intent_id=intent_id, decline_code=decline_code)
            return PaymentResult.failed(
                decline_code,
                metadata={"payment_intent_id": intent_id, "message": _get(exc, "user_message") or str(exc)},
            )
        except stripe.StripeError as exc:
            raise self._translate(exc) from exc

        status = _get(pi, "status")
        internal = self._map_status(status)
        metadata = {
            "payment_intent_id": _get(pi, "id"),
            "status": status,
            "amount": _get(pi, "amount"),
            "currency": _get(pi, "currency"),
        }
        self._log("stripe_intent_processed", intent_id=intent_id, status=status)

        if internal == "succeeded":
            metadata["latest_charge"] = _get(pi, "latest_charge")
            return PaymentResult.succeeded(str(_get(pi, "id")), metadata=metadata)
        if status == "requires_action":
            return PaymentResult.failed("authentication_required", metadata=metadata)
        if internal == "pending":
            # Outcome not final yet; the caller must reconcile before retrying
            raise PaymentProviderError(
                f"PaymentIntent {intent_id} still {status}",
                provider=self.provider,
                details=metadata,
            )
        last_error = _get(pi, "last_payment_error") or {}
        code = _get(last_error, "decline_code") or _get(last_error, "code") or (
            "payment_intent_canceled" if internal == "canceled" else "payment_method_declined"
        )
        return PaymentResult.failed(code, metadata=metadata)

    async def save_payment_method(
        self, user_id: str, payment_data: dict[str, Any]
    ) -> StoredPaymentMethod:  # type: ignore[override]
        pm_id = payment_data.get("payment_method")
        if not pm_id:
            raise PaymentProviderError(
                "payment_method is required",
                provider=self.provider,
                provider_code="parameter_missing",
                http_status=400,
            )

        try:
            customer_id = payment_data.get("customer_id")
            if not customer_id:
                created = await asyncio.to_thread(
                    stripe.Customer.create,
                    email=payment_data.get("email"),
                    metadata={"userId": user_id},
                    idempotency_key=self._idempotency_key("customer", user_id),
                )
                customer_id = _get(created, "id")
            pm = await asyncio.to_thread(stripe.PaymentMethod.attach, pm_id, customer=customer_id)
        except stripe.CardError as exc:
            # A refused card cannot be stored; surface it as a provider decline
            raise PaymentProviderError(
                _get(exc, "user_message") or str(exc),
                provider=self.provider,
                provider_code=_get(exc, "code") or "card_declined",
                http_status=_get(exc, "http_status"),
            ) from exc
        except stripe.StripeError as exc:
            raise self._translate(exc) from exc

        card = _get(pm, "card") or {}
        billing = _get(pm, "billing_details") or {}
        self._log("stripe_payment_method_attached", user_id=user_id, method_id=_get(pm, "id"))
        return StoredPaymentMethod(
            id=str(_get(pm, "id")),
            type=_get(pm, "type") or "card",
            user_id=user_id,
            provider=self.provider,
            last4=_get(card, "last4"),
            brand=_get(card, "brand"),
            expiry_month=_get(card, "exp_month"),
            expiry_year=_get(card, "exp_year"),
            holder_name=_get(billing, "name"),
            metadata={"customer_id": customer_id},
        )
