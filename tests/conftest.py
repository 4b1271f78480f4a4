"""Pytest bootstrap configuration.

Settings are read at import time, so the environment is prepared before any
application module is imported. Shared stub providers and an orchestrator
wired to in-memory repositories live here.
"""
import asyncio
import os
import uuid
from typing import Any, Optional

import pytest

os.environ.setdefault("PAYMENT_STORE", "memory")
os.environ.setdefault("DEBUG", "false")

from application.dtos.payments import InitPayload  # noqa: E402
from application.services.checkout_service import CheckoutOrchestrator  # noqa: E402
from core.settings import CheckoutSettings, PaymentSettings  # noqa: E402
from domain.payment.entity import (  # noqa: E402
    Amount,
    Customer,
    PaymentResult,
    ProviderType,
    StoredPaymentMethod,
)
from infrastructure.external.payments import ProviderRegistry  # noqa: E402
from infrastructure.repositories.memory import (  # noqa: E402
    InMemoryOrderPaymentRepository,
    InMemoryPaymentMethodRepository,
)


class StubProvider:
    """Scriptable provider: each process_payment call pops the next outcome.

    An outcome is a PaymentResult, an exception instance (raised), or the
    string "succeed"/"decline". When the script runs out the last outcome
    repeats.
    """

    def __init__(
        self,
        provider_type: ProviderType = ProviderType.STRIPE,
        outcomes: Optional[list] = None,
        *,
        supported: bool = True,
        gate: Optional[asyncio.Event] = None,
        delay: float = 0.0,
        init_error: Optional[BaseException] = None,
        init_gate: Optional[asyncio.Event] = None,
        save_error: Optional[BaseException] = None,
    ):
        self.provider_type = provider_type
        self.outcomes = list(outcomes or ["succeed"])
        self.supported = supported
        self.gate = gate
        self.delay = delay
        self.init_error = init_error
        self.init_gate = init_gate
        self.save_error = save_error
        self.entered = asyncio.Event()
        self.init_entered = asyncio.Event()
        self.process_calls: list[dict] = []
        self.init_calls: list[tuple] = []
        self.save_calls: list[tuple] = []
        self.closed = False

    def get_type(self) -> ProviderType:
        return self.provider_type

    def is_supported(self) -> bool:
        return self.supported

    async def initialize_payment(self, amount: Amount, customer: Customer, *, order_ref=None) -> InitPayload:
        self.init_calls.append((amount, customer, order_ref))
        self.init_entered.set()
        if self.init_gate is not None:
            await self.init_gate.wait()
        if self.init_error is not None:
            raise self.init_error
        return InitPayload(
            provider=self.provider_type,
            data={"client_secret": f"cs_{uuid.uuid4().hex[:8]}", "amount": amount.to_minor()},
        )

    async def process_payment(self, payment_data: dict[str, Any]) -> PaymentResult:
        self.process_calls.append(dict(payment_data))
        self.entered.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome == "succeed":
            return PaymentResult.succeeded(f"txn_{len(self.process_calls)}")
        if outcome == "decline":
            return PaymentResult.failed("card_declined")
        return outcome

    async def save_payment_method(self, user_id: str, payment_data: dict[str, Any]) -> StoredPaymentMethod:
        self.save_calls.append((user_id, dict(payment_data)))
        if self.save_error is not None:
            raise self.save_error
        return StoredPaymentMethod(
            id=payment_data.get("payment_method", "pm_1"),
            type="card",
            last4="4242",
            brand="visa",
            expiry_month=12,
            expiry_year=2030,
        )

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def payment_settings() -> PaymentSettings:
    return PaymentSettings(
        checkout=CheckoutSettings(
            process_timeout_seconds=0.5,
            max_auto_retries=2,
            backoff_base=0,
            backoff_max=0,
        )
    )


@pytest.fixture
def registry(payment_settings) -> ProviderRegistry:
    return ProviderRegistry(payment_settings)


@pytest.fixture
def order_repository() -> InMemoryOrderPaymentRepository:
    return InMemoryOrderPaymentRepository()


@pytest.fixture
def method_repository() -> InMemoryPaymentMethodRepository:
    return InMemoryPaymentMethodRepository()


@pytest.fixture
def orchestrator(registry, order_repository, method_repository, payment_settings) -> CheckoutOrchestrator:
    return CheckoutOrchestrator(
        registry,
        order_repository,
        method_repository,
        settings=payment_settings,
    )


@pytest.fixture
def use_provider(registry):
    """Register a StubProvider for its type and return it."""

    def _use(provider: StubProvider) -> StubProvider:
        registry.register(provider.provider_type, lambda _settings: provider)
        return provider

    return _use


@pytest.fixture
def jpy_5000() -> Amount:
    return Amount(5000, "JPY")


@pytest.fixture
def customer() -> Customer:
    return Customer(id="u1", email="u1@example.com", name="Taro")
