"""
Amazon Pay adapter over the Checkout Sessions REST API (v2) using httpx.

Flow:
- initialize: create a Checkout Session, hand the redirect URL to the client
- process: read back the session's charge amount and complete it
- save: look up the buyer's charge permission (billing agreement) and store it

Request signing is supplied as an ``httpx.Auth`` so deployments can plug in
their key material (or route through a signing gateway) without touching the
adapter.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

import httpx

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
from shared.codes.payment_codes import DECLINE_CODES


class AmazonPayProvider(BasePaymentProvider):
    provider_type = ProviderType.AMAZON_PAY

    def __init__(
        self,
        settings: Optional[PaymentSettings] = None,
        *,
        auth: Optional[httpx.Auth] = None,
        **kwargs: Any,
    ):
        super().__init__(settings, **kwargs)
        self._cfg = self.settings.amazon_pay
        self._auth = auth

    def is_supported(self) -> bool:
        cfg = self._cfg
        if not (cfg.enabled and cfg.merchant_id and cfg.store_id and cfg.public_key_id):
            return False
        return self.settings.region.upper() in {r.upper() for r in cfg.supported_regions}

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._cfg.api_base.rstrip("/") + "/",
            timeout=self.timeouts,
            transport=self._transport,
            auth=self._auth,
            headers={
                "x-amz-pay-region": self.settings.region.lower(),
                "content-type": "application/json",
                "accept": "application/json",
            },
        )

    @staticmethod
    def _headers(idempotency_key: Optional[str] = None) -> dict[str, str]:
        headers = {"x-amz-pay-date": datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")}
        if idempotency_key:
            headers["x-amz-pay-idempotency-key"] = idempotency_key[:32]
        return headers

    async def initialize_payment(
        self, amount: Amount, customer: Customer, *, order_ref: Optional[str] = None
    ) -> InitPayload:  # type: ignore[override]
        body = {
            "storeId": self._cfg.store_id,
            "webCheckoutDetails": {"checkoutReviewReturnUrl": self._cfg.checkout_review_return_url},
            "paymentDetails": {
                "paymentIntent": "AuthorizeWithCapture",
                "chargeAmount": {"amount": str(amount.amount), "currencyCode": amount.currency},
            },
            "merchantMetadata": {"merchantReferenceId": order_ref or "", "customInformation": customer.id},
        }
        key = self._idempotency_key("init", order_ref or "", amount.amount, amount.currency, customer.id)

        async def _create() -> httpx.Response:
            async with self.client() as c:
                resp = await c.post("checkoutSessions", json=body, headers=self._headers(key))
            self._raise_for_response(resp)
            return resp

        resp = await self._retry(_create)
        data = resp.json()
        session_id = data.get("checkoutSessionId")
        web = data.get("webCheckoutDetails") or {}
        self._log("amazon_pay_session_created", order_ref=order_ref, checkout_session_id=session_id)
        return InitPayload(
            provider=self.provider_type,
            order_ref=order_ref,
            data={
                "checkout_session_id": session_id,
                "redirect_url": web.get("amazonPayRedirectUrl"),
                "merchant_id": self._cfg.merchant_id,
                "public_key_id": self._cfg.public_key_id,
                "amount": str(amount.amount),
                "currency": amount.currency,
            },
        )

    async def process_payment(self, payment_data: dict[str, Any]) -> PaymentResult:  # type: ignore[override]
        session_id = payment_data.get("checkout_session_id")
        if not session_id:
            raise PaymentProviderError(
                "checkout_session_id is required",
                provider=self.provider,
                provider_code="MissingParameterValue",
                http_status=400,
            )

        async def _fetch() -> dict:
            async with self.client() as c:
                resp = await c.get(f"checkoutSessions/{session_id}", headers=self._headers())
            self._raise_for_response(resp)
            return resp.json()

        session = await self._retry(_fetch)
        charge_amount = (session.get("paymentDetails") or {}).get("chargeAmount")
        if not charge_amount:
            raise PaymentProviderError(
                f"Checkout session {session_id} has no charge amount",
                provider=self.provider,
                provider_code="InvalidChargeAmount",
                http_status=422,
            )

        async with self.client() as c:
            resp = await c.post(
                f"checkoutSessions/{session_id}/complete",
                json={"chargeAmount": charge_amount},
                headers=self._headers(self._idempotency_key("complete", session_id)),
            )

        if not resp.is_success:
            reason = self._reason_code(resp)
            if reason in DECLINE_CODES:
                self._log("amazon_pay_declined", checkout_session_id=session_id, reason_code=reason)
                return PaymentResult.failed(reason, metadata={"checkout_session_id": session_id})
            self._raise_for_response(resp)

        data = resp.json()
        state = (data.get("statusDetails") or {}).get("state", "")
        internal = self._map_status(state)
        metadata = {
            "checkout_session_id": session_id,
            "state": state,
            "charge_permission_id": data.get("chargePermissionId"),
            "amount": charge_amount.get("amount"),
            "currency": charge_amount.get("currencyCode"),
        }
        self._log("amazon_pay_session_completed", checkout_session_id=session_id, state=state)
        if internal == "succeeded":
            return PaymentResult.succeeded(str(data.get("chargeId") or session_id), metadata=metadata)
        if internal == "pending":
            raise PaymentProviderError(
                f"Checkout session {session_id} still {state}",
                provider=self.provider,
                details=metadata,
            )
        reason = (data.get("statusDetails") or {}).get("reasonCode") or "AmazonRejected"
        return PaymentResult.failed(reason, metadata=metadata)

    async def save_payment_method(
        self, user_id: str, payment_data: dict[str, Any]
    ) -> StoredPaymentMethod:  # type: ignore[override]
        permission_id = (
            payment_data.get("charge_permission_id")
            or payment_data.get("billing_agreement_id")
            or payment_data.get("amazon_order_reference_id")
        )
        if not permission_id:
            raise PaymentProviderError(
                "charge_permission_id is required",
                provider=self.provider,
                provider_code="MissingParameterValue",
                http_status=400,
            )

        async def _fetch() -> dict:
            async with self.client() as c:
                resp = await c.get(f"chargePermissions/{permission_id}", headers=self._headers())
            self._raise_for_response(resp)
            return resp.json()

        data = await self._retry(_fetch)
        state = (data.get("statusDetails") or {}).get("state")
        buyer = data.get("buyer") or {}
        self._log("amazon_pay_permission_loaded", user_id=user_id, method_id=permission_id, state=state)
        return StoredPaymentMethod(
            id=str(permission_id),
            type="amazon_pay",
            user_id=user_id,
            provider=self.provider,
            holder_name=buyer.get("name"),
            metadata={"buyer_id": buyer.get("buyerId"), "state": state},
        )

    @staticmethod
    def _reason_code(resp: httpx.Response) -> Optional[str]:
        try:
            body = resp.json()
        except ValueError:
            return None
        return body.get("reasonCode") if isinstance(body, dict) else None
