"""
Payment specific codes, provider status mapping and provider error-code sets.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Checkout orchestration (61xxx) - raised without contacting a provider
    UNKNOWN_PROVIDER_TYPE = 61000
    PROVIDER_NOT_SUPPORTED = 61001
    DUPLICATE_IN_FLIGHT = 61002
    ALREADY_SETTLED = 61003
    RECONCILIATION_REQUIRED = 61004

    # Classified provider outcomes (62xxx)
    VALIDATION_ERROR = 62000
    INVALID_AMOUNT = 62001
    DECLINE = 62002
    TRANSIENT_PROVIDER_ERROR = 62003
    PROVIDER_UNAVAILABLE = 62004
    CONFIGURATION_ERROR = 62005

    # Raw adapter failures (63xxx) - classified before leaving the checkout boundary
    PROVIDER_ERROR = 63000
    PROVIDER_RECOVERABLE = 63001


# Provider→internal status mapping (PaymentIntent / checkout session states)
PROVIDER_STATUS_TO_INTERNAL = {
    "stripe": {
        "requires_payment_method": "failed",
        "requires_confirmation": "pending",
        "requires_action": "pending",
        "processing": "pending",
        "requires_capture": "succeeded",
        "succeeded": "succeeded",
        "canceled": "canceled",
    },
    "amazon_pay": {
        "Open": "pending",
        "Completed": "succeeded",
        "Canceled": "canceled",
        "Declined": "failed",
    },
    "credit_card": {
        "approved": "succeeded",
        "declined": "failed",
    },
}


# Provider error codes meaning "the instrument was refused"
DECLINE_CODES = frozenset({
    "card_declined",
    "insufficient_funds",
    "expired_card",
    "incorrect_cvc",
    "incorrect_number",
    "invalid_cvc",
    "invalid_expiry_month",
    "invalid_expiry_year",
    "lost_card",
    "stolen_card",
    "do_not_honor",
    "generic_decline",
    "fraudulent",
    "authentication_required",
    "payment_method_declined",
    "HardDeclined",
    "SoftDeclined",
    "PaymentMethodNotAllowed",
    "AmazonRejected",
})

# Provider error codes meaning "the request itself is malformed"
VALIDATION_CODES = frozenset({
    "invalid_request_error",
    "parameter_invalid_integer",
    "parameter_invalid_empty",
    "parameter_missing",
    "parameter_unknown",
    "payment_intent_unexpected_state",
    "resource_missing",
    "InvalidParameterValue",
    "InvalidRequestFormat",
    "MissingParameterValue",
    "ResourceNotFound",
})

# Provider error codes meaning "amount or currency refused"
AMOUNT_CODES = frozenset({
    "amount_too_small",
    "amount_too_large",
    "invalid_currency",
    "currency_not_supported",
    "InvalidChargeAmount",
    "CurrencyMismatch",
    "TransactionAmountExceeded",
})

# Provider error codes meaning "operator must fix credentials/account"
CONFIGURATION_CODES = frozenset({
    "authentication_error",
    "api_key_expired",
    "permission_error",
    "account_invalid",
    "platform_api_key_expired",
    "secret_key_required",
    "InvalidAuthentication",
    "UnauthorizedAccess",
    "InvalidAccountStatus",
})

# Provider error codes meaning "temporary; nothing changed"
TRANSIENT_CODES = frozenset({
    "rate_limit",
    "lock_timeout",
    "processing_error",
    "api_connection_error",
    "try_again_later",
    "TooManyRequests",
    "ServiceUnavailable",
    "InternalServerError",
    "ProcessingFailure",
})
