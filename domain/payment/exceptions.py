"""
Caller-facing payment error taxonomy.

Every failure that crosses the checkout boundary is one of these classes.
Provider-specific exception shapes never leave the classifier; orchestrator
local faults (duplicate, settled, unknown provider...) are raised directly.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class ErrorCategory(str, Enum):
    """What the caller should do about an error."""
    VALIDATION = "validation"        # fix input, do not retry as-is
    TRANSIENT = "transient"          # safe to retry with backoff
    DECLINE = "decline"              # user must supply a different instrument
    CONFIGURATION = "configuration"  # operator action required
    ORCHESTRATION = "orchestration"  # rejected locally, provider never contacted


class PaymentError(BusinessException):
    category: ErrorCategory = ErrorCategory.ORCHESTRATION
    retryable: bool = False
    user_message: str = "The payment could not be completed."

    def __init__(
        self,
        message: str,
        *,
        code: int,
        error_type: str,
        provider: Optional[str] = None,
        provider_code: Optional[str] = None,
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        full_details: dict = {}
        if provider:
            full_details["provider"] = provider
        if provider_code:
            full_details["provider_code"] = provider_code
        if details:
            full_details.update(details)
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details=full_details or None,
            field=field,
        )
        self.provider = provider
        self.provider_code = provider_code


class UnknownProviderType(PaymentError):
    def __init__(self, provider: str):
        super().__init__(
            f"Unknown payment provider type: {provider}",
            code=PaymentCode.UNKNOWN_PROVIDER_TYPE,
            error_type="UnknownProviderType",
            provider=str(provider),
        )


class ProviderNotSupported(PaymentError):
    user_message = "This payment method is not available. Please choose another one."

    def __init__(self, provider: str):
        super().__init__(
            f"Payment provider '{provider}' is not supported in this environment",
            code=PaymentCode.PROVIDER_NOT_SUPPORTED,
            error_type="ProviderNotSupported",
            provider=provider,
        )


class DuplicateInFlight(PaymentError):
    user_message = "Your payment is already being processed."

    def __init__(self, order_ref: str):
        super().__init__(
            f"A payment for order {order_ref} is already in flight",
            code=PaymentCode.DUPLICATE_IN_FLIGHT,
            error_type="DuplicateInFlight",
            details={"order_ref": order_ref},
        )


class AlreadySettled(PaymentError):
    user_message = "This order has already been paid."

    def __init__(self, order_ref: str, transaction_id: Optional[str] = None):
        details = {"order_ref": order_ref}
        if transaction_id:
            details["transaction_id"] = transaction_id
        super().__init__(
            f"Order {order_ref} is already settled",
            code=PaymentCode.ALREADY_SETTLED,
            error_type="AlreadySettled",
            details=details,
        )


class ReconciliationRequired(PaymentError):
    user_message = "We are confirming the status of your payment. Please check back shortly."

    def __init__(self, order_ref: str):
        super().__init__(
            f"Order {order_ref} has an unconfirmed payment attempt; reconcile before retrying",
            code=PaymentCode.RECONCILIATION_REQUIRED,
            error_type="ReconciliationRequired",
            details={"order_ref": order_ref},
        )


class ValidationError(PaymentError):
    category = ErrorCategory.VALIDATION
    user_message = "Please check the payment details and try again."

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        provider_code: Optional[str] = None,
        field: Optional[str] = None,
        details: Optional[dict] = None,
        code: int = PaymentCode.VALIDATION_ERROR,
        error_type: str = "ValidationError",
    ):
        super().__init__(
            message,
            code=code,
            error_type=error_type,
            provider=provider,
            provider_code=provider_code,
            details=details,
            field=field,
        )


class InvalidAmount(ValidationError):
    user_message = "The order amount or currency cannot be charged with this payment method."

    def __init__(self, message: str, *, provider: Optional[str] = None, provider_code: Optional[str] = None):
        super().__init__(
            message,
            provider=provider,
            provider_code=provider_code,
            field="amount",
            code=PaymentCode.INVALID_AMOUNT,
            error_type="InvalidAmount",
        )


class TransientProviderError(PaymentError):
    category = ErrorCategory.TRANSIENT
    retryable = True
    user_message = "The payment service is temporarily unavailable. Please try again."

    def __init__(
        self,
        message: str,
        *,
        provider: Optional[str] = None,
        provider_code: Optional[str] = None,
        ambiguous_outcome: bool = False,
        code: int = PaymentCode.TRANSIENT_PROVIDER_ERROR,
        error_type: str = "TransientProviderError",
    ):
        super().__init__(
            message,
            code=code,
            error_type=error_type,
            provider=provider,
            provider_code=provider_code,
            details={"ambiguous_outcome": True} if ambiguous_outcome else None,
        )
        # True when the request may have reached the provider (e.g. read timeout)
        self.ambiguous_outcome = ambiguous_outcome


class ProviderUnavailable(TransientProviderError):
    def __init__(self, message: str, *, provider: Optional[str] = None, provider_code: Optional[str] = None):
        super().__init__(
            message,
            provider=provider,
            provider_code=provider_code,
            code=PaymentCode.PROVIDER_UNAVAILABLE,
            error_type="ProviderUnavailable",
        )


class Decline(PaymentError):
    category = ErrorCategory.DECLINE
    user_message = "Your payment was declined. Please use a different payment method."

    def __init__(
        self,
        decline_code: str,
        *,
        provider: Optional[str] = None,
        repeat: bool = False,
    ):
        message = f"Payment declined: {decline_code}"
        if repeat:
            message = f"Payment declined again with the same payment data: {decline_code}"
        super().__init__(
            message,
            code=PaymentCode.DECLINE,
            error_type="Decline",
            provider=provider,
            provider_code=decline_code,
            details={"repeat": True} if repeat else None,
        )
        self.decline_code = decline_code
        self.repeat = repeat


class ConfigurationError(PaymentError):
    category = ErrorCategory.CONFIGURATION
    user_message = "Payments are temporarily unavailable."

    def __init__(self, message: str, *, provider: Optional[str] = None, provider_code: Optional[str] = None):
        super().__init__(
            message,
            code=PaymentCode.CONFIGURATION_ERROR,
            error_type="ConfigurationError",
            provider=provider,
            provider_code=provider_code,
        )
