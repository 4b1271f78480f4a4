from types import SimpleNamespace

import pytest

from core.settings import PaymentSettings, StripeSettings
from domain.payment.entity import Amount, Customer, ProviderType
from infrastructure.external.payments import stripe_client
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentRecoverableError
from infrastructure.external.payments.stripe_client import StripeProvider


class _StripeError(Exception):
    def __init__(self, message="", code=None, http_status=None):
        super().__init__(message)
        self.code = code
        self.http_status = http_status
        self.user_message = message


class _CardError(_StripeError):
    pass


class _RateLimitError(_StripeError):
    pass


class _APIConnectionError(_StripeError):
    pass


class _AuthenticationError(_StripeError):
    pass


class _PermissionError(_StripeError):
    pass


class FakeStripe:
    """Minimal stand-in for the stripe module surface the adapter touches."""

    StripeError = _StripeError
    CardError = _CardError
    RateLimitError = _RateLimitError
    APIConnectionError = _APIConnectionError
    AuthenticationError = _AuthenticationError
    PermissionError = _PermissionError

    def __init__(self):
        self.api_key = None
        self.calls = []
        self.intent = {"id": "pi_1", "status": "succeeded", "amount": 5000, "currency": "jpy", "latest_charge": "ch_1"}
        self.confirm_error = None
        self.attach_error = None
        self.PaymentIntent = SimpleNamespace(create=self._create, confirm=self._confirm, retrieve=self._retrieve)
        self.Customer = SimpleNamespace(create=self._customer_create)
        self.PaymentMethod = SimpleNamespace(attach=self._attach)

    def _create(self, **params):
        self.calls.append(("create", params))
        if params["amount"] <= 0:
            raise _StripeError("Amount must be positive", code="amount_too_small", http_status=400)
        return {"id": "pi_1", "client_secret": "pi_1_secret_x"}

    def _confirm(self, intent_id, **params):
        self.calls.append(("confirm", intent_id, params))
        if self.confirm_error:
            raise self.confirm_error
        return self.intent

    def _retrieve(self, intent_id):
        self.calls.append(("retrieve", intent_id))
        return self.intent

    def _customer_create(self, **params):
        self.calls.append(("customer", params))
        return {"id": "cus_1"}

    def _attach(self, pm_id, customer=None):
        self.calls.append(("attach", pm_id, customer))
        if self.attach_error:
            raise self.attach_error
        return {
            "id": pm_id,
            "type": "card",
            "card": {"last4": "4242", "brand": "visa", "exp_month": 12, "exp_year": 2030},
            "billing_details": {"name": "Taro Yamada"},
        }


@pytest.fixture
def fake_stripe(monkeypatch):
    fake = FakeStripe()
    monkeypatch.setattr(stripe_client, "stripe", fake)
    return fake


@pytest.fixture
def provider(fake_stripe):
    settings = PaymentSettings(stripe=StripeSettings(secret_key="sk_test_x", publishable_key="pk_test_x"))
    return StripeProvider(settings)


def test_supported_only_with_key_and_sdk(fake_stripe, monkeypatch):
    assert StripeProvider(PaymentSettings(stripe=StripeSettings(secret_key="sk"))).is_supported()
    assert not StripeProvider(PaymentSettings(stripe=StripeSettings(secret_key=None))).is_supported()
    assert not StripeProvider(PaymentSettings(stripe=StripeSettings(secret_key="sk", enabled=False))).is_supported()
    monkeypatch.setattr(stripe_client, "stripe", None)
    assert not StripeProvider(PaymentSettings(stripe=StripeSettings(secret_key="sk"))).is_supported()


def test_provider_type(provider):
    assert provider.get_type() == ProviderType.STRIPE
    assert provider._map_status("processing") == "pending"
    assert provider._map_status("succeeded") == "succeeded"


@pytest.mark.asyncio
async def test_initialize_creates_intent_in_minor_units(provider, fake_stripe):
    payload = await provider.initialize_payment(Amount(5000, "JPY"), Customer(id="u1", email="u1@example.com"), order_ref="o1")

    op, params = fake_stripe.calls[0]
    assert op == "create"
    assert params["amount"] == 5000
    assert params["currency"] == "jpy"
    assert params["metadata"] == {"userId": "u1", "order_ref": "o1"}
    assert params["receipt_email"] == "u1@example.com"
    assert len(params["idempotency_key"]) == 64

    assert payload.provider == ProviderType.STRIPE
    assert payload.data["client_secret"] == "pi_1_secret_x"
    assert payload.data["publishable_key"] == "pk_test_x"


@pytest.mark.asyncio
async def test_initialize_idempotency_key_is_stable(provider, fake_stripe):
    await provider.initialize_payment(Amount(5000, "JPY"), Customer(id="u1"), order_ref="o1")
    await provider.initialize_payment(Amount(5000, "JPY"), Customer(id="u1"), order_ref="o1")
    keys = {call[1]["idempotency_key"] for call in fake_stripe.calls}
    assert len(keys) == 1


@pytest.mark.asyncio
async def test_process_success(provider, fake_stripe):
    result = await provider.process_payment({"payment_intent_id": "pi_1", "payment_method": "pm_card_visa"})
    assert result.success is True
    assert result.transaction_id == "pi_1"
    assert result.metadata["latest_charge"] == "ch_1"
    assert fake_stripe.calls[0][0] == "confirm"


@pytest.mark.asyncio
async def test_process_without_method_verifies_intent(provider, fake_stripe):
    result = await provider.process_payment({"payment_intent_id": "pi_1"})
    assert result.success
    assert fake_stripe.calls[0] == ("retrieve", "pi_1")


@pytest.mark.asyncio
async def test_card_error_is_failed_result(provider, fake_stripe):
    fake_stripe.confirm_error = _CardError("Your card was declined.", code="card_declined", http_status=402)
    result = await provider.process_payment({"payment_intent_id": "pi_1", "payment_method": "pm_x"})
    assert result.success is False
    assert result.error == "card_declined"


@pytest.mark.asyncio
async def test_requires_action_is_failed_result(provider, fake_stripe):
    fake_stripe.intent = {"id": "pi_1", "status": "requires_action"}
    result = await provider.process_payment({"payment_intent_id": "pi_1"})
    assert result.error == "authentication_required"


@pytest.mark.asyncio
async def test_processing_intent_raises_for_reconciliation(provider, fake_stripe):
    fake_stripe.intent = {"id": "pi_1", "status": "processing"}
    with pytest.raises(PaymentProviderError) as exc_info:
        await provider.process_payment({"payment_intent_id": "pi_1"})
    assert exc_info.value.provider_code is None


@pytest.mark.asyncio
async def test_rate_limit_is_recoverable(provider, fake_stripe):
    fake_stripe.confirm_error = _RateLimitError("Too many requests", http_status=429)
    with pytest.raises(PaymentRecoverableError) as exc_info:
        await provider.process_payment({"payment_intent_id": "pi_1", "payment_method": "pm_x"})
    assert exc_info.value.provider_code == "rate_limit"


@pytest.mark.asyncio
async def test_authentication_error_keeps_code(provider, fake_stripe):
    fake_stripe.confirm_error = _AuthenticationError("Invalid API Key", http_status=401)
    with pytest.raises(PaymentProviderError) as exc_info:
        await provider.process_payment({"payment_intent_id": "pi_1", "payment_method": "pm_x"})
    assert exc_info.value.provider_code == "authentication_error"
    assert exc_info.value.http_status == 401


@pytest.mark.asyncio
async def test_missing_intent_is_rejected(provider):
    with pytest.raises(PaymentProviderError) as exc_info:
        await provider.process_payment({})
    assert exc_info.value.provider_code == "parameter_missing"


@pytest.mark.asyncio
async def test_save_payment_method_attaches_card(provider, fake_stripe):
    method = await provider.save_payment_method("u1", {"payment_method": "pm_card_visa"})
    assert method.id == "pm_card_visa"
    assert method.last4 == "4242"
    assert method.brand == "visa"
    assert method.expiry_month == 12 and method.expiry_year == 2030
    assert method.holder_name == "Taro Yamada"
    assert method.metadata == {"customer_id": "cus_1"}
    assert [c[0] for c in fake_stripe.calls] == ["customer", "attach"]


@pytest.mark.asyncio
async def test_save_declined_card_raises_decline_code(provider, fake_stripe):
    fake_stripe.attach_error = _CardError("declined", code="card_declined", http_status=402)
    with pytest.raises(PaymentProviderError) as exc_info:
        await provider.save_payment_method("u1", {"payment_method": "pm_x", "customer_id": "cus_9"})
    assert exc_info.value.provider_code == "card_declined"
