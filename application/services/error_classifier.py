"""
Maps anything raised by a provider call onto the caller-facing taxonomy.

Provider-specific exception shapes stop here. Unknown failures default to a
transient error with an ambiguous outcome; they are never reported as a
decline.
"""
from __future__ import annotations

import asyncio
from typing import Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from core.logging_config import get_logger
from domain.common.exceptions import DomainValidationException
from domain.payment.entity import PaymentResult
from domain.payment.exceptions import (
    ConfigurationError,
    Decline,
    ErrorCategory,
    InvalidAmount,
    PaymentError,
    ProviderUnavailable,
    TransientProviderError,
    ValidationError,
)
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
)
from shared.codes.payment_codes import (
    AMOUNT_CODES,
    CONFIGURATION_CODES,
    DECLINE_CODES,
    TRANSIENT_CODES,
    VALIDATION_CODES,
)


logger = get_logger(__name__)


class ErrorClassifier:
    def classify(self, exc: BaseException, *, provider: Optional[str] = None) -> PaymentError:
        if isinstance(exc, PaymentError):
            return exc

        if isinstance(exc, DomainValidationException):
            if exc.field in ("amount", "currency"):
                return InvalidAmount(exc.message, provider=provider)
            return ValidationError(exc.message, provider=provider, field=exc.field, details=exc.details)

        if isinstance(exc, PydanticValidationError):
            return ValidationError(
                "Invalid payment data",
                provider=provider,
                details={"errors": exc.errors(include_url=False, include_context=False, include_input=False)},
            )

        # httpx.ConnectTimeout / PoolTimeout are TimeoutException subclasses; the
        # request never left this process, so they are safe to retry.
        if isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)):
            return ProviderUnavailable(f"Provider unreachable: {exc}", provider=provider)

        if isinstance(exc, httpx.TimeoutException):
            return TransientProviderError(
                f"Provider timed out: {exc}",
                provider=provider,
                provider_code="timeout",
                ambiguous_outcome=True,
            )

        if isinstance(exc, asyncio.TimeoutError):
            return TransientProviderError(
                "Payment processing timed out",
                provider=provider,
                provider_code="timeout",
                ambiguous_outcome=True,
            )

        if isinstance(exc, httpx.HTTPStatusError):
            return self._from_status(exc.response.status_code, str(exc), provider, None)

        if isinstance(exc, httpx.TransportError):
            # Connection dropped mid-request: the provider may have acted on it
            return TransientProviderError(
                f"Provider connection failed: {exc}",
                provider=provider,
                ambiguous_outcome=True,
            )

        if isinstance(exc, PaymentRecoverableError):
            return TransientProviderError(
                exc.message,
                provider=exc.provider or provider,
                provider_code=exc.provider_code,
            )

        if isinstance(exc, PaymentProviderError):
            return self._from_provider_error(exc, provider)

        logger.warning(
            "payment_error_unclassified",
            provider=provider,
            exc_type=type(exc).__name__,
            error=str(exc),
        )
        return TransientProviderError(
            f"Unexpected provider failure: {type(exc).__name__}",
            provider=provider,
            ambiguous_outcome=True,
        )

    def _from_provider_error(self, exc: PaymentProviderError, provider: Optional[str]) -> PaymentError:
        name = exc.provider or provider
        code = exc.provider_code
        if code in DECLINE_CODES:
            return Decline(code, provider=name)
        if code in AMOUNT_CODES:
            return InvalidAmount(exc.message, provider=name, provider_code=code)
        if code in VALIDATION_CODES:
            return ValidationError(exc.message, provider=name, provider_code=code)
        if code in CONFIGURATION_CODES:
            return ConfigurationError(exc.message, provider=name, provider_code=code)
        if code in TRANSIENT_CODES:
            return TransientProviderError(exc.message, provider=name, provider_code=code)
        if exc.http_status is not None:
            return self._from_status(exc.http_status, exc.message, name, code)
        return TransientProviderError(
            exc.message,
            provider=name,
            provider_code=code,
            ambiguous_outcome=True,
        )

    @staticmethod
    def _from_status(status: int, message: str, provider: Optional[str], code: Optional[str]) -> PaymentError:
        if status in (401, 403):
            return ConfigurationError(message, provider=provider, provider_code=code)
        if status in (400, 404, 409, 422):
            return ValidationError(message, provider=provider, provider_code=code)
        if status == 429:
            return TransientProviderError(message, provider=provider, provider_code=code or "rate_limit")
        if status in (502, 503):
            return ProviderUnavailable(message, provider=provider, provider_code=code)
        return TransientProviderError(
            message,
            provider=provider,
            provider_code=code,
            ambiguous_outcome=status >= 500,
        )

    def category_for_result(self, result: PaymentResult) -> Optional[ErrorCategory]:
        """Category of a returned PaymentResult (None for success)."""
        if result.success:
            return None
        if result.error in TRANSIENT_CODES:
            return ErrorCategory.TRANSIENT
        return ErrorCategory.DECLINE

    @staticmethod
    def is_safe_to_retry(err: BaseException) -> bool:
        """Transient and known not to have reached the provider's charge path."""
        return isinstance(err, TransientProviderError) and not err.ambiguous_outcome
