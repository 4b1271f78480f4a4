"""
Base payment provider implementing shared concerns: http, retry, logging, mapping.

Concrete providers should subclass and implement provider-specific logic.
"""
from __future__ import annotations

import hashlib
from typing import Any, Callable, Optional
from contextlib import asynccontextmanager

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings
from application.dtos.payments import InitPayload
from application.ports.payment_provider import PaymentProvider
from domain.payment.entity import (
    Amount,
    Customer,
    PaymentResult,
    ProviderType,
    StoredPaymentMethod,
)
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
)
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL, TRANSIENT_CODES


logger = get_logger(__name__)


class BasePaymentProvider(PaymentProvider):
    provider_type: ProviderType

    def __init__(
        self,
        settings: Optional[PaymentSettings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings or payment_settings
        self._timeouts_cfg = self.settings.timeouts.model_dump()
        self._retry_cfg = {"max": self.settings.retry.max, "base": self.settings.retry.base_backoff}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def provider(self) -> str:
        return self.provider_type.value

    def get_type(self) -> ProviderType:
        return self.provider_type

    def is_supported(self) -> bool:
        return True

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeouts, transport=self._transport)

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = self._build_client()
        try:
            yield self._client
        finally:
            # Keep open for reuse; explicit aclose() will close.
            ...

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Any]):
        # Only for requests that never reached the provider or carry an idempotency key
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type((httpx.ConnectError, httpx.ConnectTimeout, PaymentRecoverableError)),
            reraise=True,
        ):
            with attempt:
                return await fn()

    # Default implementations raise to force override where needed
    async def initialize_payment(
        self, amount: Amount, customer: Customer, *, order_ref: Optional[str] = None
    ) -> InitPayload:  # type: ignore[override]
        raise NotImplementedError

    async def process_payment(self, payment_data: dict[str, Any]) -> PaymentResult:  # type: ignore[override]
        raise NotImplementedError

    async def save_payment_method(
        self, user_id: str, payment_data: dict[str, Any]
    ) -> StoredPaymentMethod:  # type: ignore[override]
        raise NotImplementedError

    # Helpers
    def _map_status(self, provider_status: str) -> str:
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(self.provider, {})
        return mapping.get(provider_status, provider_status)

    def _idempotency_key(self, op: str, *parts: Any) -> str:
        # Stable, reproducible key derived from business identifiers (no timestamp)
        base = "|".join([op, self.provider, *(str(p) for p in parts)])
        return hashlib.sha256(base.encode("utf-8")).hexdigest()

    def _raise_for_response(self, resp: httpx.Response, *, code_field: str = "reasonCode") -> None:
        if resp.is_success:
            return
        try:
            body = resp.json()
        except ValueError:
            body = {}
        code = body.get(code_field) if isinstance(body, dict) else None
        message = (body.get("message") if isinstance(body, dict) else None) or resp.text or resp.reason_phrase
        if resp.status_code == 429 or code in TRANSIENT_CODES:
            raise PaymentRecoverableError(
                message, provider=self.provider, provider_code=code, http_status=resp.status_code
            )
        raise PaymentProviderError(
            message, provider=self.provider, provider_code=code, http_status=resp.status_code
        )

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
