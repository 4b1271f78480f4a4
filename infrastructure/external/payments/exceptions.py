"""
Raw provider exceptions raised by adapters.

These never cross the checkout boundary: the error classifier maps them onto
the caller-facing taxonomy in domain.payment.exceptions.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class PaymentProviderError(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: str | None = None,
        http_status: int | None = None,
        details: Optional[dict] = None,
    ):
        full_details = {"provider": provider, "provider_code": provider_code}
        if http_status is not None:
            full_details["http_status"] = http_status
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.PROVIDER_ERROR,
            message=message,
            error_type="PaymentProviderError",
            details=full_details,
        )
        self.provider = provider
        self.provider_code = provider_code
        self.http_status = http_status


class PaymentRecoverableError(PaymentProviderError):
    """Provider signalled a temporary failure before anything was charged."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: str | None = None,
        http_status: int | None = None,
        details: Optional[dict] = None,
    ):
        super().__init__(
            message,
            provider=provider,
            provider_code=provider_code,
            http_status=http_status,
            details=details,
        )
        self.code = PaymentCode.PROVIDER_RECOVERABLE
        self.error_type = "PaymentRecoverableError"
