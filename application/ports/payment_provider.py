"""
Payment provider port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from application.dtos.payments import InitPayload
from domain.payment.entity import (
    Amount,
    Customer,
    PaymentResult,
    ProviderType,
    StoredPaymentMethod,
)


@runtime_checkable
class PaymentProvider(Protocol):
    """Contract every payment backend implements.

    - ``initialize_payment`` never charges.
    - ``process_payment`` returns a failed ``PaymentResult`` for ordinary
      declines and raises only for transport/protocol failures. Providers
      do not deduplicate; the checkout orchestrator does.
    - ``save_payment_method`` is independent of processing.
    """

    def get_type(self) -> ProviderType: ...

    async def initialize_payment(
        self, amount: Amount, customer: Customer, *, order_ref: Optional[str] = None
    ) -> InitPayload: ...

    async def process_payment(self, payment_data: dict[str, Any]) -> PaymentResult: ...

    async def save_payment_method(
        self, user_id: str, payment_data: dict[str, Any]
    ) -> StoredPaymentMethod: ...

    def is_supported(self) -> bool: ...

    async def aclose(self) -> None: ...
