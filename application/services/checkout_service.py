"""
Application service orchestrating checkout payment attempts.

This class depends only on the application PaymentProvider port, the domain
repositories and DTOs. Provider implementations come from a registry that is
injected from the composition root (API/tests), keeping dependencies one-way.

State per order reference lives in a ``CheckoutSession``. A per-order
``asyncio.Lock`` guards every state transition; it is released while a
provider call is awaited, and the ``processing`` phase itself rejects
duplicate submissions during that window.
"""
from __future__ import annotations

import asyncio
import hashlib
import json
import threading
import time
import uuid
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from application.dtos.payments import CheckoutStatus, InitPayload
from application.ports.payment_provider import PaymentProvider
from application.services.error_classifier import ErrorClassifier
from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings
from domain.payment.entity import (
    Amount,
    CheckoutPhase,
    CheckoutSession,
    Customer,
    PaymentResult,
    ProviderType,
    StoredPaymentMethod,
)
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
    ErrorCategory,
    PaymentError,
    ProviderNotSupported,
    TransientProviderError,
    ValidationError,
)
from domain.payment.repository import OrderPaymentRepository, PaymentMethodRepository
from domain.payment.service import PaymentMethodDomainService


logger = get_logger(__name__)


def _fingerprint(payload: dict[str, Any]) -> str:
    # Stable digest of the client payment data; identical data => identical key
    canonical = json.dumps(payload or {}, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class CheckoutOrchestrator:
    def __init__(
        self,
        registry,
        order_repository: OrderPaymentRepository,
        method_repository: PaymentMethodRepository,
        classifier: Optional[ErrorClassifier] = None,
        settings: Optional[PaymentSettings] = None,
    ) -> None:
        self.registry = registry
        self.order_repository = order_repository
        self.method_service = PaymentMethodDomainService(method_repository)
        self.classifier = classifier or ErrorClassifier()
        self.settings = settings or payment_settings
        self.events: list = []  # 领域事件收集

        self._sessions: dict[str, CheckoutSession] = {}
        self._last_errors: dict[str, PaymentError] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._locks_guard = threading.Lock()
        # 已结算会话（最近 N 个，仅供状态查询）
        self._settled: "OrderedDict[str, CheckoutSession]" = OrderedDict()
        self._next_prune = 0.0

    # ---- locking -----------------------------------------------------------

    def _lock_for(self, order_ref: str) -> asyncio.Lock:
        lock = self._locks.get(order_ref)
        if lock is None:
            with self._locks_guard:
                lock = self._locks.setdefault(order_ref, asyncio.Lock())
        return lock

    # ---- start ---------------------------------------------------------------

    async def start_checkout(
        self,
        order_ref: str,
        amount: Amount,
        customer: Customer,
        provider_type: Union[ProviderType, str, None] = None,
    ) -> InitPayload:
        if not order_ref:
            raise ValidationError("Order reference is required", field="order_ref")
        requested = provider_type or self.settings.default_provider
        self._prune_idle()

        async with self._lock_for(order_ref):
            session = self._lookup(order_ref)
            if session is not None:
                session.ensure_can_start(customer)
            else:
                await self._ensure_not_settled_in_store(order_ref)

            provider = self.registry.resolve(requested)
            if not provider.is_supported():
                logger.warning("checkout_provider_not_supported", order_ref=order_ref, provider=str(requested))
                raise ProviderNotSupported(provider.get_type().value)
            ptype = provider.get_type()

            if session is None:
                session = CheckoutSession(
                    order_ref=order_ref,
                    provider_type=ptype,
                    amount=amount,
                    customer=customer,
                )
                self._sessions[order_ref] = session
            session.begin_initializing(ptype, amount)
            self._last_errors.pop(order_ref, None)

        logger.info(
            "checkout_start_request",
            order_ref=order_ref,
            provider=ptype.value,
            amount=str(amount.amount),
            currency=amount.currency,
            customer_id=customer.id,
        )

        try:
            payload = await provider.initialize_payment(amount, customer, order_ref=order_ref)
        except asyncio.CancelledError:
            # Nothing is charged during initialization; leave the order restartable
            session.mark_failed(
                error_type="TransientProviderError",
                category=ErrorCategory.TRANSIENT,
                message="Checkout initialization was cancelled",
                retryable=True,
            )
            logger.warning("checkout_start_cancelled", order_ref=order_ref, provider=ptype.value)
            raise
        except Exception as exc:
            err = self.classifier.classify(exc, provider=ptype.value)
            async with self._lock_for(order_ref):
                session.mark_failed(
                    error_type=err.error_type,
                    category=err.category,
                    message=err.message,
                    retryable=err.retryable,
                )
                self._last_errors[order_ref] = err
            self._log_failure(order_ref, ptype.value, err, stage="initialize")
            if err is exc:
                raise
            raise err from exc

        token = uuid.uuid4().hex
        payload = payload.model_copy(update={"order_ref": order_ref, "checkout_token": token})
        async with self._lock_for(order_ref):
            session.mark_awaiting_input(token, dict(payload.data))

        self.events.append(CheckoutStarted(order_ref=order_ref, provider=ptype.value, checkout_token=token))
        logger.info("checkout_started", order_ref=order_ref, provider=ptype.value, checkout_token=token)
        return payload

    # ---- submit ---------------------------------------------------------------

    async def submit_payment(
        self,
        order_ref: str,
        payload: dict[str, Any],
        *,
        checkout_token: Optional[str] = None,
        save_method: bool = False,
        user_id: Optional[str] = None,
    ) -> PaymentResult:
        fingerprint = _fingerprint(payload)

        async with self._lock_for(order_ref):
            session = self._lookup(order_ref)
            if session is None:
                await self._ensure_not_settled_in_store(order_ref)
                raise ValidationError(
                    f"No checkout in progress for order {order_ref}",
                    details={"order_ref": order_ref},
                )
            self._check_token(session, checkout_token)
            self._raise_recorded_error(session)
            session.ensure_can_process(fingerprint)
            provider = self.registry.resolve(session.provider_type)
            attempt = session.begin_processing()

        name = session.provider_type.value
        logger.info("payment_submit_request", order_ref=order_ref, provider=name, attempt=attempt)

        try:
            result = await self._process_with_retry(provider, payload, order_ref, attempt)
        except asyncio.CancelledError:
            # Caller went away mid-charge; the provider may still complete it
            session.mark_failed(
                error_type="TransientProviderError",
                category=ErrorCategory.TRANSIENT,
                message="Payment processing was cancelled",
                retryable=True,
                requires_reconciliation=True,
            )
            logger.warning("payment_cancelled", order_ref=order_ref, provider=name, attempt=attempt)
            raise
        except PaymentError as err:
            if isinstance(err, Decline):
                result = PaymentResult.failed(
                    err.decline_code, metadata={"provider_code": err.decline_code}
                )
            else:
                await self._handle_error(session, err, attempt, fingerprint)
                raise

        result = result.for_attempt(attempt)
        if result.success:
            await self._settle(session, result)
            if save_method:
                await self._save_after_settlement(session, payload, user_id)
        else:
            await self._fail_with_result(session, result, fingerprint)
        return result

    async def _process_with_retry(
        self,
        provider: PaymentProvider,
        payload: dict[str, Any],
        order_ref: str,
        attempt: int,
    ) -> PaymentResult:
        name = provider.get_type().value
        cfg = self.settings.checkout

        async def _call() -> PaymentResult:
            try:
                return await asyncio.wait_for(
                    provider.process_payment(payload),
                    timeout=cfg.process_timeout_seconds,
                )
            except Exception as exc:
                err = self.classifier.classify(exc, provider=name)
                if err is exc:
                    raise
                raise err from exc

        def _before_sleep(retry_state) -> None:
            logger.warning(
                "payment_retry_scheduled",
                order_ref=order_ref,
                provider=name,
                attempt=attempt,
                try_number=retry_state.attempt_number,
                error=str(retry_state.outcome.exception()),
            )

        async for retry in AsyncRetrying(
            stop=stop_after_attempt(int(cfg.max_auto_retries) + 1),
            wait=wait_exponential(multiplier=cfg.backoff_base, max=cfg.backoff_max),
            retry=retry_if_exception(ErrorClassifier.is_safe_to_retry),
            before_sleep=_before_sleep,
            reraise=True,
        ):
            with retry:
                return await _call()
        raise AssertionError("unreachable")  # pragma: no cover

    async def _settle(self, session: CheckoutSession, result: PaymentResult) -> None:
        order_ref = session.order_ref
        name = session.provider_type.value
        async with self._lock_for(order_ref):
            session.mark_settled(result)
            self._last_errors.pop(order_ref, None)
            session.settlement_recorded = await self._record_settlement(order_ref, name, result)
        if session.settlement_recorded:
            self._retire(session)

        self.events.append(PaymentSettled(
            order_ref=order_ref,
            provider=name,
            transaction_id=result.transaction_id,
            attempt=result.attempt,
        ))
        logger.info(
            "payment_settled",
            order_ref=order_ref,
            provider=name,
            attempt=result.attempt,
            transaction_id=result.transaction_id,
        )

    async def _record_settlement(self, order_ref: str, provider: str, result: PaymentResult) -> bool:
        try:
            recorded = await self.order_repository.record_settlement(order_ref, provider, result)
        except Exception:
            # The charge already happened; keep the in-memory settlement and page an operator
            logger.exception(
                "payment_settlement_persist_failed",
                order_ref=order_ref,
                provider=provider,
                transaction_id=result.transaction_id,
                alert=True,
            )
            return False
        if not recorded:
            logger.critical(
                "payment_settlement_conflict",
                order_ref=order_ref,
                provider=provider,
                transaction_id=result.transaction_id,
                alert=True,
            )
        return recorded

    async def _fail_with_result(self, session: CheckoutSession, result: PaymentResult, fingerprint: str) -> None:
        order_ref = session.order_ref
        name = session.provider_type.value
        category = self.classifier.category_for_result(result)
        retryable = category == ErrorCategory.TRANSIENT
        error_type = "TransientProviderError" if retryable else "Decline"

        async with self._lock_for(order_ref):
            session.mark_failed(
                error_type=error_type,
                category=category,
                message=result.error,
                retryable=retryable,
                result=result,
                fingerprint=fingerprint,
            )
            await self._record_failure(order_ref, name, result.attempt, result.error, category)

        self.events.append(PaymentFailed(
            order_ref=order_ref,
            provider=name,
            error_type=error_type,
            category=category.value,
            attempt=result.attempt,
            retryable=retryable,
        ))
        logger.info(
            "payment_failed",
            order_ref=order_ref,
            provider=name,
            attempt=result.attempt,
            error=result.error,
            category=category.value,
        )

    async def _handle_error(self, session: CheckoutSession, err: PaymentError, attempt: int, fingerprint: str) -> None:
        order_ref = session.order_ref
        name = session.provider_type.value
        ambiguous = isinstance(err, TransientProviderError) and err.ambiguous_outcome

        async with self._lock_for(order_ref):
            session.mark_failed(
                error_type=err.error_type,
                category=err.category,
                message=err.message,
                retryable=err.retryable,
                fingerprint=fingerprint,
                requires_reconciliation=ambiguous,
            )
            self._last_errors[order_ref] = err
            await self._record_failure(order_ref, name, attempt, err.message, err.category)

        if ambiguous:
            self.events.append(ReconciliationNeeded(order_ref=order_ref, provider=name, attempt=attempt))
            logger.error(
                "payment_reconciliation_required",
                order_ref=order_ref,
                provider=name,
                attempt=attempt,
                error=err.message,
            )
        else:
            self.events.append(PaymentFailed(
                order_ref=order_ref,
                provider=name,
                error_type=err.error_type,
                category=err.category.value,
                attempt=attempt,
                retryable=err.retryable,
            ))
        self._log_failure(order_ref, name, err, stage="process", attempt=attempt)

    async def _record_failure(
        self,
        order_ref: str,
        provider: str,
        attempt: int,
        message: str,
        category: Optional[ErrorCategory],
    ) -> None:
        try:
            await self.order_repository.record_failure(
                order_ref,
                provider,
                attempt,
                message,
                category.value if category else None,
            )
        except Exception:
            logger.exception("payment_failure_persist_failed", order_ref=order_ref, provider=provider)

    async def _save_after_settlement(
        self,
        session: CheckoutSession,
        payload: dict[str, Any],
        user_id: Optional[str],
    ) -> None:
        owner = user_id or session.customer.id
        try:
            method = await self.save_method(owner, session.provider_type, payload)
        except Exception as exc:
            # Never reverts the settlement
            session.method_save_error = getattr(exc, "message", None) or str(exc)
            self.events.append(PaymentMethodSaveFailed(
                order_ref=session.order_ref,
                provider=session.provider_type.value,
                user_id=owner,
                reason=session.method_save_error,
            ))
            logger.warning(
                "payment_method_save_failed",
                order_ref=session.order_ref,
                provider=session.provider_type.value,
                user_id=owner,
                error=session.method_save_error,
            )
            return
        session.saved_method_id = method.id

    # ---- stored methods -----------------------------------------------------

    async def save_method(
        self,
        user_id: str,
        provider_type: Union[ProviderType, str],
        payload: dict[str, Any],
        *,
        make_default: bool = False,
    ) -> StoredPaymentMethod:
        provider = self.registry.resolve(provider_type)
        if not provider.is_supported():
            raise ProviderNotSupported(provider.get_type().value)
        name = provider.get_type().value

        try:
            method = await asyncio.wait_for(
                provider.save_payment_method(user_id, payload),
                timeout=self.settings.checkout.process_timeout_seconds,
            )
        except Exception as exc:
            err = self.classifier.classify(exc, provider=name)
            self._log_failure(None, name, err, stage="save_method")
            if err is exc:
                raise
            raise err from exc

        stored = await self.method_service.add_method(user_id, name, method, make_default=make_default)
        self.events.extend(self.method_service.clear_events())
        logger.info("payment_method_saved", provider=name, user_id=user_id, method_id=stored.id)
        return stored

    # ---- reconciliation / status -----------------------------------------------

    async def resolve_reconciliation(
        self,
        order_ref: str,
        *,
        charged: bool,
        transaction_id: Optional[str] = None,
    ) -> CheckoutStatus:
        async with self._lock_for(order_ref):
            session = self._get_session(order_ref)
            session.resolve_reconciliation(charged=charged, transaction_id=transaction_id)
            self._last_errors.pop(order_ref, None)
            name = session.provider_type.value
            if charged:
                result = session.latest_result
                session.settlement_recorded = await self._record_settlement(order_ref, name, result)

        if charged:
            if session.settlement_recorded:
                self._retire(session)
            self.events.append(PaymentSettled(
                order_ref=order_ref,
                provider=name,
                transaction_id=transaction_id,
                attempt=session.attempt_count,
            ))
        logger.info(
            "payment_reconciled",
            order_ref=order_ref,
            provider=name,
            charged=charged,
            transaction_id=transaction_id,
        )
        return CheckoutStatus.from_session(session)

    def get_status(self, order_ref: str) -> CheckoutStatus:
        return CheckoutStatus.from_session(self._get_session(order_ref))

    def clear_events(self) -> list:
        """清空并返回领域事件"""
        events = self.events.copy()
        self.events.clear()
        return events

    async def aclose(self) -> None:
        await self.registry.aclose()

    # ---- helpers ---------------------------------------------------------------

    def _lookup(self, order_ref: str) -> Optional[CheckoutSession]:
        session = self._sessions.get(order_ref)
        if session is None:
            session = self._settled.get(order_ref)
        return session

    def _forget(self, order_ref: str) -> None:
        self._sessions.pop(order_ref, None)
        self._last_errors.pop(order_ref, None)
        with self._locks_guard:
            self._locks.pop(order_ref, None)

    def _retire(self, session: CheckoutSession) -> None:
        """结算已落库：移出活动会话，AlreadySettled 此后可由持久层判定"""
        order_ref = session.order_ref
        self._forget(order_ref)
        size = self.settings.checkout.settled_cache_size
        if size <= 0:
            return
        self._settled[order_ref] = session
        self._settled.move_to_end(order_ref)
        while len(self._settled) > size:
            self._settled.popitem(last=False)

    def _prune_idle(self) -> None:
        ttl = self.settings.checkout.idle_session_ttl_seconds
        now = time.monotonic()
        if ttl <= 0 or now < self._next_prune:
            return
        self._next_prune = now + min(ttl, 60.0)
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=ttl)
        idle_phases = (CheckoutPhase.IDLE, CheckoutPhase.AWAITING_CLIENT_INPUT, CheckoutPhase.FAILED)
        stale = [
            order_ref
            for order_ref, session in self._sessions.items()
            if session.phase in idle_phases
            and not session.requires_reconciliation
            and session.updated_at < cutoff
            and not (order_ref in self._locks and self._locks[order_ref].locked())
        ]
        for order_ref in stale:
            self._forget(order_ref)
        if stale:
            logger.info("checkout_sessions_pruned", count=len(stale))

    def _get_session(self, order_ref: str) -> CheckoutSession:
        session = self._lookup(order_ref)
        if session is None:
            raise ValidationError(
                f"No checkout in progress for order {order_ref}",
                details={"order_ref": order_ref},
            )
        return session

    async def _ensure_not_settled_in_store(self, order_ref: str) -> None:
        record = await self.order_repository.get_by_order_ref(order_ref)
        if record is not None and record.is_settled:
            raise AlreadySettled(order_ref, record.transaction_id)

    @staticmethod
    def _check_token(session: CheckoutSession, checkout_token: Optional[str]) -> None:
        if checkout_token is None:
            return
        if checkout_token != session.checkout_token:
            raise ValidationError(
                f"Checkout token does not belong to order {session.order_ref}",
                field="checkout_token",
            )

    def _raise_recorded_error(self, session: CheckoutSession) -> None:
        if session.phase != CheckoutPhase.FAILED or session.retryable or session.requires_reconciliation:
            return
        if session.last_error_category in (ErrorCategory.DECLINE, ErrorCategory.VALIDATION):
            return
        err = self._last_errors.get(session.order_ref)
        if err is not None:
            raise err

    def _log_failure(
        self,
        order_ref: Optional[str],
        provider: str,
        err: PaymentError,
        *,
        stage: str,
        attempt: Optional[int] = None,
    ) -> None:
        fields = dict(
            order_ref=order_ref,
            provider=provider,
            stage=stage,
            attempt=attempt,
            error_type=err.error_type,
            category=err.category.value,
            provider_code=err.provider_code,
            error=err.message,
        )
        if isinstance(err, ConfigurationError):
            logger.critical("payment_provider_misconfigured", alert=True, **fields)
        else:
            logger.warning("payment_error", **fields)
