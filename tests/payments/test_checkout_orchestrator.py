import asyncio

import pytest

from domain.common.exceptions import DomainValidationException
from domain.payment.entity import Amount, CheckoutPhase, Customer, PaymentResult, ProviderType
from domain.payment.events import (
    CheckoutStarted,
    PaymentFailed,
    PaymentMethodSaveFailed,
    PaymentSettled,
    ReconciliationNeeded,
)
from domain.payment.exceptions import (
    AlreadySettled,
    ConfigurationError,
    Decline,
    DuplicateInFlight,
    ErrorCategory,
    ProviderNotSupported,
    ReconciliationRequired,
    TransientProviderError,
    UnknownProviderType,
    ValidationError,
)
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentRecoverableError
from infrastructure.repositories.memory import InMemoryOrderPaymentRepository
from tests.conftest import StubProvider


PAYLOAD = {"payment_intent_id": "pi_1", "payment_method": "pm_card_visa"}


@pytest.mark.asyncio
async def test_successful_checkout_settles_order(orchestrator, use_provider, order_repository, jpy_5000, customer):
    provider = use_provider(StubProvider(ProviderType.STRIPE, ["succeed"]))

    init = await orchestrator.start_checkout("o1", jpy_5000, customer, ProviderType.STRIPE)
    assert init.provider == ProviderType.STRIPE
    assert init.order_ref == "o1"
    assert init.checkout_token
    assert init.data["amount"] == 5000
    amount, seen_customer, order_ref = provider.init_calls[0]
    assert amount.to_minor() == 5000 and seen_customer.id == "u1" and order_ref == "o1"

    result = await orchestrator.submit_payment("o1", PAYLOAD, checkout_token=init.checkout_token)
    assert result.success is True
    assert result.transaction_id == "txn_1"
    assert result.attempt == 1

    status = orchestrator.get_status("o1")
    assert status.phase == CheckoutPhase.SETTLED
    assert status.latest_result.transaction_id == "txn_1"

    record = await order_repository.get_by_order_ref("o1")
    assert record is not None and record.is_settled
    assert record.transaction_id == "txn_1"

    events = orchestrator.clear_events()
    assert [type(e) for e in events] == [CheckoutStarted, PaymentSettled]
    assert orchestrator.events == []


@pytest.mark.asyncio
async def test_settled_order_rejects_further_attempts(orchestrator, use_provider, jpy_5000, customer):
    provider = use_provider(StubProvider(ProviderType.STRIPE, ["succeed"]))
    await orchestrator.start_checkout("o1", jpy_5000, customer)
    await orchestrator.submit_payment("o1", PAYLOAD)

    with pytest.raises(AlreadySettled):
        await orchestrator.submit_payment("o1", PAYLOAD)
    with pytest.raises(AlreadySettled):
        await orchestrator.start_checkout("o1", jpy_5000, customer)
    assert len(provider.process_calls) == 1


@pytest.mark.asyncio
async def test_settlement_in_store_blocks_new_orchestrator(registry, order_repository, method_repository, payment_settings, use_provider, jpy_5000, customer):
    from application.services.checkout_service import CheckoutOrchestrator

    use_provider(StubProvider(ProviderType.STRIPE, ["succeed"]))
    first = CheckoutOrchestrator(registry, order_repository, method_repository, settings=payment_settings)
    await first.start_checkout("o1", jpy_5000, customer)
    await first.submit_payment("o1", PAYLOAD)

    second = CheckoutOrchestrator(registry, order_repository, method_repository, settings=payment_settings)
    with pytest.raises(AlreadySettled):
        await second.start_checkout("o1", jpy_5000, customer)


@pytest.mark.asyncio
async def test_concurrent_submit_is_rejected_while_processing(orchestrator, use_provider, jpy_5000, customer):
    gate = asyncio.Event()
    provider = use_provider(StubProvider(ProviderType.STRIPE, ["succeed"], gate=gate))
    await orchestrator.start_checkout("o1", jpy_5000, customer)

    first = asyncio.create_task(orchestrator.submit_payment("o1", PAYLOAD))
    await provider.entered.wait()
    assert orchestrator.get_status("o1").phase == CheckoutPhase.PROCESSING

    with pytest.raises(DuplicateInFlight):
        await orchestrator.submit_payment("o1", PAYLOAD)
    with pytest.raises(DuplicateInFlight):
        await orchestrator.start_checkout("o1", jpy_5000, customer)

    gate.set()
    result = await first
    assert result.success
    assert len(provider.process_calls) == 1


@pytest.mark.asyncio
async def test_parallel_submits_settle_exactly_once(orchestrator, use_provider, jpy_5000, customer):
    gate = asyncio.Event()
    provider = use_provider(StubProvider(ProviderType.STRIPE, ["succeed"], gate=gate))
    await orchestrator.start_checkout("o1", jpy_5000, customer)

    tasks = [asyncio.create_task(orchestrator.submit_payment("o1", PAYLOAD)) for _ in range(5)]
    await provider.entered.wait()
    gate.set()
    outcomes = await asyncio.gather(*tasks, return_exceptions=True)

    successes = [o for o in outcomes if isinstance(o, PaymentResult) and o.success]
    assert len(successes) == 1
    assert all(isinstance(o, DuplicateInFlight) for o in outcomes if o not in successes)
    assert len(provider.process_calls) == 1


@pytest.mark.asyncio
async def test_decline_returns_failed_result_and_allows_new_data(orchestrator, use_provider, jpy_5000, customer):
    provider = use_provider(StubProvider(ProviderType.STRIPE, ["decline", "succeed"]))
    await orchestrator.start_checkout("o1", jpy_5000, customer)

    result = await orchestrator.submit_payment("o1", PAYLOAD)
    assert result.success is False
    assert result.error == "card_declined"
    assert result.attempt == 1

    status = orchestrator.get_status("o1")
    assert status.phase == CheckoutPhase.FAILED
    assert status.last_error_category == ErrorCategory.DECLINE.value
    assert status.retryable is False

    # Same instrument again is refused locally
    with pytest.raises(Decline) as exc_info:
        await orchestrator.submit_payment("o1", PAYLOAD)
    assert exc_info.value.repeat is True
    assert len(provider.process_calls) == 1

    retry = await orchestrator.submit_payment("o1", {**PAYLOAD, "payment_method": "pm_other"})
    assert retry.success is True
    assert retry.attempt == 2


@pytest.mark.asyncio
async def test_declined_payload_stays_rejected_after_restart(orchestrator, use_provider, jpy_5000, customer):
    provider = use_provider(StubProvider(ProviderType.STRIPE, ["decline", "succeed"]))
    await orchestrator.start_checkout("o1", jpy_5000, customer)
    declined = await orchestrator.submit_payment("o1", PAYLOAD)
    assert declined.success is False

    init = await orchestrator.start_checkout("o1", jpy_5000, customer)
    with pytest.raises(Decline) as exc_info:
        await orchestrator.submit_payment("o1", PAYLOAD, checkout_token=init.checkout_token)
    assert exc_info.value.repeat is True
    assert len(provider.process_calls) == 1

    other = {**PAYLOAD, "payment_method": "pm_other"}
    result = await orchestrator.submit_payment("o1", other, checkout_token=init.checkout_token)
    assert result.success is True
    assert len(provider.process_calls) == 2


@pytest.mark.asyncio
async def test_decline_raised_by_provider_becomes_failed_result(orchestrator, use_provider, jpy_5000, customer):
    declined = PaymentProviderError("insufficient funds", provider="stripe", provider_code="insufficient_funds")
    use_provider(StubProvider(ProviderType.STRIPE, [declined]))
    await orchestrator.start_checkout("o1", jpy_5000, customer)

    result = await orchestrator.submit_payment("o1", PAYLOAD)
    assert result.success is False
    assert result.error == "insufficient_funds"
    failed = [e for e in orchestrator.events if isinstance(e, PaymentFailed)]
    assert failed and failed[0].category == "decline"


@pytest.mark.asyncio
async def test_transient_error_is_retried_automatically(orchestrator, use_provider, jpy_5000, customer):
    flaky = PaymentRecoverableError("rate limited", provider="stripe", provider_code="rate_limit", http_status=429)
    provider = use_provider(StubProvider(ProviderType.STRIPE, [flaky, "succeed"]))
    await orchestrator.start_checkout("o1", jpy_5000, customer)

    result = await orchestrator.submit_payment("o1", PAYLOAD)
    assert result.success is True
    assert result.attempt == 1
    assert len(provider.process_calls) == 2


@pytest.mark.asyncio
async def test_exhausted_transient_error_leaves_order_retryable(orchestrator, use_provider, jpy_5000, customer):
    flaky = PaymentRecoverableError("busy", provider="stripe", provider_code="try_again_later")
    provider = use_provider(StubProvider(ProviderType.STRIPE, [flaky, flaky, flaky, "succeed"]))
    await orchestrator.start_checkout("o1", jpy_5000, customer)

    with pytest.raises(TransientProviderError) as exc_info:
        await orchestrator.submit_payment("o1", PAYLOAD)
    assert exc_info.value.ambiguous_outcome is False
    assert len(provider.process_calls) == 3

    status = orchestrator.get_status("o1")
    assert status.retryable is True
    assert status.requires_reconciliation is False

    result = await orchestrator.submit_payment("o1", PAYLOAD)
    assert result.success is True
    assert result.attempt == 2


@pytest.mark.asyncio
async def test_timeout_requires_reconciliation(orchestrator, use_provider, jpy_5000, customer):
    provider = use_provider(StubProvider(ProviderType.STRIPE, ["succeed"], delay=5))
    await orchestrator.start_checkout("o1", jpy_5000, customer)

    with pytest.raises(TransientProviderError) as exc_info:
        await orchestrator.submit_payment("o1", PAYLOAD)
    assert exc_info.value.ambiguous_outcome is True
    # An attempt that may have charged is never retried automatically
    assert len(provider.process_calls) == 1

    status = orchestrator.get_status("o1")
    assert status.requires_reconciliation is True
    assert any(isinstance(e, ReconciliationNeeded) for e in orchestrator.events)

    with pytest.raises(ReconciliationRequired):
        await orchestrator.submit_payment("o1", PAYLOAD)
    with pytest.raises(ReconciliationRequired):
        await orchestrator.start_checkout("o1", jpy_5000, customer)


@pytest.mark.asyncio
async def test_reconciliation_not_charged_allows_retry(orchestrator, use_provider, jpy_5000, customer):
    provider = use_provider(StubProvider(ProviderType.STRIPE, ["succeed"], delay=5))
    await orchestrator.start_checkout("o1", jpy_5000, customer)
    with pytest.raises(TransientProviderError):
        await orchestrator.submit_payment("o1", PAYLOAD)

    status = await orchestrator.resolve_reconciliation("o1", charged=False)
    assert status.requires_reconciliation is False
    assert status.retryable is True

    provider.delay = 0
    result = await orchestrator.submit_payment("o1", PAYLOAD)
    assert result.success is True


@pytest.mark.asyncio
async def test_reconciliation_charged_settles_order(orchestrator, use_provider, order_repository, jpy_5000, customer):
    use_provider(StubProvider(ProviderType.STRIPE, ["succeed"], delay=5))
    await orchestrator.start_checkout("o1", jpy_5000, customer)
    with pytest.raises(TransientProviderError):
        await orchestrator.submit_payment("o1", PAYLOAD)

    with pytest.raises(ValidationError):
        await orchestrator.resolve_reconciliation("o1", charged=True)

    status = await orchestrator.resolve_reconciliation("o1", charged=True, transaction_id="pi_late")
    assert status.phase == CheckoutPhase.SETTLED
    assert status.latest_result.transaction_id == "pi_late"

    record = await order_repository.get_by_order_ref("o1")
    assert record.is_settled and record.transaction_id == "pi_late"
    with pytest.raises(AlreadySettled):
        await orchestrator.submit_payment("o1", PAYLOAD)


@pytest.mark.asyncio
async def test_resolve_without_pending_reconciliation_is_rejected(orchestrator, use_provider, jpy_5000, customer):
    use_provider(StubProvider(ProviderType.STRIPE, ["decline"]))
    await orchestrator.start_checkout("o1", jpy_5000, customer)
    await orchestrator.submit_payment("o1", PAYLOAD)

    with pytest.raises(ValidationError):
        await orchestrator.resolve_reconciliation("o1", charged=False)


@pytest.mark.asyncio
async def test_cancelled_submit_requires_reconciliation(orchestrator, use_provider, jpy_5000, customer):
    provider = use_provider(StubProvider(ProviderType.STRIPE, ["succeed"], gate=asyncio.Event()))
    await orchestrator.start_checkout("o1", jpy_5000, customer)

    task = asyncio.create_task(orchestrator.submit_payment("o1", PAYLOAD))
    await provider.entered.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    status = orchestrator.get_status("o1")
    assert status.phase == CheckoutPhase.FAILED
    assert status.requires_reconciliation is True


@pytest.mark.asyncio
async def test_cancelled_start_leaves_order_restartable(orchestrator, use_provider, jpy_5000, customer):
    gate = asyncio.Event()
    provider = use_provider(StubProvider(ProviderType.STRIPE, ["succeed"], init_gate=gate))

    task = asyncio.create_task(orchestrator.start_checkout("o1", jpy_5000, customer))
    await provider.init_entered.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    status = orchestrator.get_status("o1")
    assert status.phase == CheckoutPhase.FAILED
    assert status.retryable is True
    assert status.requires_reconciliation is False

    gate.set()
    init = await orchestrator.start_checkout("o1", jpy_5000, customer)
    result = await orchestrator.submit_payment("o1", PAYLOAD, checkout_token=init.checkout_token)
    assert result.success is True
    assert len(provider.init_calls) == 2


@pytest.mark.asyncio
async def test_unknown_provider_type_is_rejected(orchestrator, jpy_5000, customer):
    with pytest.raises(UnknownProviderType):
        await orchestrator.start_checkout("o1", jpy_5000, customer, "paypal")


@pytest.mark.asyncio
async def test_unsupported_provider_is_never_contacted(orchestrator, use_provider, jpy_5000, customer):
    provider = use_provider(StubProvider(ProviderType.AMAZON_PAY, supported=False))

    with pytest.raises(ProviderNotSupported):
        await orchestrator.start_checkout("o1", jpy_5000, customer, ProviderType.AMAZON_PAY)
    assert provider.init_calls == []
    with pytest.raises(ValidationError):
        orchestrator.get_status("o1")


@pytest.mark.asyncio
async def test_configuration_error_is_raised_again_without_calling_provider(orchestrator, use_provider, jpy_5000, customer):
    bad_key = PaymentProviderError("Invalid API Key", provider="stripe", provider_code="authentication_error", http_status=401)
    provider = use_provider(StubProvider(ProviderType.STRIPE, [bad_key]))
    await orchestrator.start_checkout("o1", jpy_5000, customer)

    with pytest.raises(ConfigurationError) as first:
        await orchestrator.submit_payment("o1", PAYLOAD)
    with pytest.raises(ConfigurationError) as second:
        await orchestrator.submit_payment("o1", {**PAYLOAD, "payment_method": "pm_other"})
    assert second.value is first.value
    assert len(provider.process_calls) == 1


@pytest.mark.asyncio
async def test_initialize_failure_is_classified_and_restartable(orchestrator, use_provider, jpy_5000, customer):
    provider = use_provider(StubProvider(
        ProviderType.STRIPE,
        init_error=PaymentProviderError("amount too small", provider="stripe", provider_code="amount_too_small"),
    ))

    with pytest.raises(ValidationError) as exc_info:
        await orchestrator.start_checkout("o1", jpy_5000, customer)
    assert exc_info.value.error_type == "InvalidAmount"
    assert orchestrator.get_status("o1").phase == CheckoutPhase.FAILED

    provider.init_error = None
    init = await orchestrator.start_checkout("o1", jpy_5000, customer)
    assert init.checkout_token
    assert orchestrator.get_status("o1").phase == CheckoutPhase.AWAITING_CLIENT_INPUT


@pytest.mark.asyncio
async def test_checkout_token_must_match_order(orchestrator, use_provider, jpy_5000, customer):
    provider = use_provider(StubProvider(ProviderType.STRIPE, ["succeed"]))
    await orchestrator.start_checkout("o1", jpy_5000, customer)

    with pytest.raises(ValidationError) as exc_info:
        await orchestrator.submit_payment("o1", PAYLOAD, checkout_token="not-the-token")
    assert exc_info.value.field == "checkout_token"
    assert provider.process_calls == []


@pytest.mark.asyncio
async def test_customer_must_not_change_between_attempts(orchestrator, use_provider, jpy_5000, customer):
    use_provider(StubProvider(ProviderType.STRIPE, ["decline"]))
    await orchestrator.start_checkout("o1", jpy_5000, customer)
    await orchestrator.submit_payment("o1", PAYLOAD)

    with pytest.raises(ValidationError):
        await orchestrator.start_checkout("o1", jpy_5000, Customer(id="u2"))


@pytest.mark.asyncio
async def test_submit_without_checkout_is_rejected(orchestrator):
    with pytest.raises(ValidationError):
        await orchestrator.submit_payment("missing", PAYLOAD)


def test_amount_must_be_positive():
    with pytest.raises(DomainValidationException):
        Amount(0, "JPY")
    with pytest.raises(DomainValidationException):
        Amount(100, "XXX")


@pytest.mark.asyncio
async def test_save_method_after_settlement(orchestrator, use_provider, jpy_5000, customer):
    provider = use_provider(StubProvider(ProviderType.STRIPE, ["succeed"]))
    await orchestrator.start_checkout("o1", jpy_5000, customer)

    result = await orchestrator.submit_payment("o1", PAYLOAD, save_method=True, user_id="u1")
    assert result.success
    assert provider.save_calls[0][0] == "u1"

    status = orchestrator.get_status("o1")
    assert status.saved_method_id == "pm_card_visa"
    methods = await orchestrator.method_service.list_methods("u1")
    assert [m.id for m in methods] == ["pm_card_visa"]
    assert methods[0].is_default is True


@pytest.mark.asyncio
async def test_save_failure_does_not_revert_settlement(orchestrator, use_provider, order_repository, jpy_5000, customer):
    use_provider(StubProvider(
        ProviderType.STRIPE,
        ["succeed"],
        save_error=PaymentProviderError("card refused", provider="stripe", provider_code="card_declined"),
    ))
    await orchestrator.start_checkout("o1", jpy_5000, customer)

    result = await orchestrator.submit_payment("o1", PAYLOAD, save_method=True)
    assert result.success is True

    status = orchestrator.get_status("o1")
    assert status.phase == CheckoutPhase.SETTLED
    assert status.saved_method_id is None
    assert status.method_save_error
    assert any(isinstance(e, PaymentMethodSaveFailed) for e in orchestrator.events)
    assert (await order_repository.get_by_order_ref("o1")).is_settled


class _BrokenOrderRepository(InMemoryOrderPaymentRepository):
    async def record_settlement(self, order_ref, provider, result):
        raise RuntimeError("database unavailable")


@pytest.mark.asyncio
async def test_settlement_stands_when_persistence_fails(registry, method_repository, payment_settings, use_provider, jpy_5000, customer):
    from application.services.checkout_service import CheckoutOrchestrator

    use_provider(StubProvider(ProviderType.STRIPE, ["succeed"]))
    orch = CheckoutOrchestrator(registry, _BrokenOrderRepository(), method_repository, settings=payment_settings)
    await orch.start_checkout("o1", jpy_5000, customer)

    result = await orch.submit_payment("o1", PAYLOAD)
    assert result.success is True
    assert orch.get_status("o1").phase == CheckoutPhase.SETTLED
    with pytest.raises(AlreadySettled):
        await orch.submit_payment("o1", PAYLOAD)


@pytest.mark.asyncio
async def test_separate_orders_do_not_block_each_other(orchestrator, use_provider, jpy_5000, customer):
    gate = asyncio.Event()
    provider = use_provider(StubProvider(ProviderType.STRIPE, ["succeed"], gate=gate))
    await orchestrator.start_checkout("o1", jpy_5000, customer)
    await orchestrator.start_checkout("o2", jpy_5000, customer)

    first = asyncio.create_task(orchestrator.submit_payment("o1", PAYLOAD))
    second = asyncio.create_task(orchestrator.submit_payment("o2", PAYLOAD))
    while len(provider.process_calls) < 2:
        await asyncio.sleep(0)
    gate.set()
    results = await asyncio.gather(first, second)
    assert all(r.success for r in results)


@pytest.mark.asyncio
async def test_aclose_closes_provider_clients(orchestrator, use_provider, jpy_5000, customer):
    provider = use_provider(StubProvider(ProviderType.STRIPE))
    await orchestrator.start_checkout("o1", jpy_5000, customer)

    await orchestrator.aclose()
    assert provider.closed is True


def _orchestrator_with(registry, order_repository, method_repository, **checkout):
    from application.services.checkout_service import CheckoutOrchestrator
    from core.settings import CheckoutSettings, PaymentSettings

    cfg = dict(process_timeout_seconds=0.5, max_auto_retries=0, backoff_base=0, backoff_max=0)
    cfg.update(checkout)
    settings = PaymentSettings(checkout=CheckoutSettings(**cfg))
    return CheckoutOrchestrator(registry, order_repository, method_repository, settings=settings)


@pytest.mark.asyncio
async def test_settled_order_is_evicted_and_still_rejected(registry, order_repository, method_repository, use_provider, jpy_5000, customer):
    provider = use_provider(StubProvider(ProviderType.STRIPE, ["succeed"]))
    orch = _orchestrator_with(registry, order_repository, method_repository, settled_cache_size=0)

    await orch.start_checkout("o1", jpy_5000, customer)
    result = await orch.submit_payment("o1", PAYLOAD)
    assert result.success is True
    assert orch._sessions == {} and orch._locks == {} and orch._last_errors == {}

    with pytest.raises(ValidationError):
        orch.get_status("o1")
    with pytest.raises(AlreadySettled):
        await orch.submit_payment("o1", PAYLOAD)
    with pytest.raises(AlreadySettled):
        await orch.start_checkout("o1", jpy_5000, customer)
    assert len(provider.process_calls) == 1
    assert orch._sessions == {}


@pytest.mark.asyncio
async def test_recently_settled_orders_are_bounded(registry, order_repository, method_repository, use_provider, jpy_5000, customer):
    use_provider(StubProvider(ProviderType.STRIPE, ["succeed"]))
    orch = _orchestrator_with(registry, order_repository, method_repository, settled_cache_size=1)

    for order_ref in ("o1", "o2"):
        await orch.start_checkout(order_ref, jpy_5000, customer)
        await orch.submit_payment(order_ref, PAYLOAD)

    assert orch.get_status("o2").phase == CheckoutPhase.SETTLED
    with pytest.raises(ValidationError):
        orch.get_status("o1")
    with pytest.raises(AlreadySettled):
        await orch.start_checkout("o1", jpy_5000, customer)


@pytest.mark.asyncio
async def test_reconciled_settlement_is_evicted(registry, order_repository, method_repository, use_provider, jpy_5000, customer):
    use_provider(StubProvider(ProviderType.STRIPE, ["succeed"], delay=5))
    orch = _orchestrator_with(registry, order_repository, method_repository, settled_cache_size=0, process_timeout_seconds=0.05)

    await orch.start_checkout("o1", jpy_5000, customer)
    with pytest.raises(TransientProviderError):
        await orch.submit_payment("o1", PAYLOAD)

    status = await orch.resolve_reconciliation("o1", charged=True, transaction_id="pi_late")
    assert status.phase == CheckoutPhase.SETTLED
    assert "o1" not in orch._sessions
    with pytest.raises(AlreadySettled):
        await orch.submit_payment("o1", PAYLOAD)


@pytest.mark.asyncio
async def test_idle_sessions_are_pruned_but_reconciliation_is_kept(registry, order_repository, method_repository, use_provider, jpy_5000, customer):
    use_provider(StubProvider(ProviderType.STRIPE, ["succeed"], delay=5))
    orch = _orchestrator_with(
        registry, order_repository, method_repository,
        idle_session_ttl_seconds=0.05, process_timeout_seconds=0.01,
    )

    await orch.start_checkout("abandoned", jpy_5000, customer)
    await orch.start_checkout("ambiguous", jpy_5000, customer)
    with pytest.raises(TransientProviderError):
        await orch.submit_payment("ambiguous", PAYLOAD)

    await asyncio.sleep(0.1)
    await orch.start_checkout("fresh", jpy_5000, customer)

    assert "abandoned" not in orch._sessions
    assert "abandoned" not in orch._locks
    with pytest.raises(ReconciliationRequired):
        await orch.submit_payment("ambiguous", PAYLOAD)
    assert orch.get_status("fresh").phase == CheckoutPhase.AWAITING_CLIENT_INPUT
