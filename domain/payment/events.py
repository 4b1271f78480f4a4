"""
Checkout domain events.

Dataclass events record important payment lifecycle facts for downstream handling
(e.g., order completion, audit). Domain remains free of infrastructure imports.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
import uuid


@dataclass
class CheckoutEvent:
    order_ref: str
    provider: str
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class CheckoutStarted(CheckoutEvent):
    checkout_token: str = ""


@dataclass
class PaymentSettled(CheckoutEvent):
    transaction_id: Optional[str] = None
    attempt: int = 0


@dataclass
class PaymentFailed(CheckoutEvent):
    error_type: str = ""
    category: str = ""
    attempt: int = 0
    retryable: bool = False


@dataclass
class ReconciliationNeeded(CheckoutEvent):
    attempt: int = 0


@dataclass
class PaymentMethodSaved(CheckoutEvent):
    user_id: str = ""
    method_id: str = ""


@dataclass
class PaymentMethodSaveFailed(CheckoutEvent):
    user_id: str = ""
    reason: str = ""
