"""
支付领域实体 - 金额/客户/结果值对象与结账会话聚合根
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from domain.common.exceptions import DomainValidationException
from domain.payment.exceptions import (
    AlreadySettled,
    Decline,
    DuplicateInFlight,
    ErrorCategory,
    ReconciliationRequired,
    ValidationError,
)


# Common ISO-4217 currencies (extend as needed)
ISO_4217 = {
    "USD", "EUR", "GBP", "CNY", "JPY", "KRW", "HKD", "AUD", "CAD", "SGD",
}

# 最小货币单位即为整数的币种
ZERO_DECIMAL_CURRENCIES = {"JPY", "KRW"}

# 带卡面信息（尾号/品牌/有效期）的支付方式类型
CARD_METHOD_TYPES = {"card", "credit_card"}


class ProviderType(str, Enum):
    """支付提供商类型（新增提供商只能新增成员，不得复用已有标识）"""
    STRIPE = "stripe"              # 卡组织处理商
    AMAZON_PAY = "amazon_pay"      # 钱包跳转类
    CREDIT_CARD = "credit_card"    # 通用卡处理（预留）


class CheckoutPhase(str, Enum):
    """结账状态机"""
    IDLE = "idle"
    INITIALIZING = "initializing"
    AWAITING_CLIENT_INPUT = "awaiting_client_input"
    PROCESSING = "processing"
    SETTLED = "settled"
    FAILED = "failed"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Amount:
    """
    应付金额（不可变）

    业务规则：
    1. 金额必须大于0
    2. 货币代码必须是受支持的 ISO-4217 三位字母代码
    """

    amount: Decimal
    currency: str

    def __post_init__(self):
        try:
            value = Decimal(str(self.amount))
        except (InvalidOperation, ValueError) as exc:
            raise DomainValidationException(f"无效的金额: {self.amount}", field="amount") from exc
        if not value.is_finite() or value <= 0:
            raise DomainValidationException(f"支付金额必须大于0: {self.amount}", field="amount")

        code = (self.currency or "").strip().upper()
        if len(code) != 3 or not code.isalpha():
            raise DomainValidationException(f"无效的货币代码: {self.currency}", field="currency")
        if code not in ISO_4217:
            raise DomainValidationException(f"不支持的货币: {self.currency}", field="currency")

        minor = value.scaleb(0 if code in ZERO_DECIMAL_CURRENCIES else 2)
        if minor != minor.to_integral_value():
            raise DomainValidationException(
                f"金额精度超出 {code} 的最小货币单位: {self.amount}", field="amount"
            )

        object.__setattr__(self, "amount", value)
        object.__setattr__(self, "currency", code)

    @property
    def exponent(self) -> int:
        return 0 if self.currency in ZERO_DECIMAL_CURRENCIES else 2

    def to_minor(self) -> int:
        """转换为最小货币单位（JPY 5000 -> 5000, USD 12.34 -> 1234）"""
        return int(self.amount.scaleb(self.exponent))


@dataclass(frozen=True)
class Customer:
    """付款人标识；同一订单的多次尝试必须使用相同 id"""

    id: str
    email: Optional[str] = None
    name: Optional[str] = None

    def __post_init__(self):
        cid = (self.id or "").strip() if isinstance(self.id, str) else ""
        if not cid:
            raise DomainValidationException("客户ID不能为空", field="customer.id")
        object.__setattr__(self, "id", cid)


@dataclass(frozen=True)
class PaymentResult:
    """
    单次 process_payment 的结果（创建后不可修改，重试产生新对象）

    业务规则：成功必有交易号且无错误；失败必有非空错误且无交易号。
    """

    success: bool
    transaction_id: Optional[str] = None
    error: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    attempt: int = 0
    created_at: datetime = field(default_factory=_now)

    def __post_init__(self):
        if self.success:
            if not self.transaction_id:
                raise DomainValidationException("成功的支付结果必须包含交易号", field="transaction_id")
            if self.error:
                raise DomainValidationException("成功的支付结果不能包含错误信息", field="error")
        else:
            if not self.error:
                raise DomainValidationException("失败的支付结果必须包含错误信息", field="error")
            if self.transaction_id:
                raise DomainValidationException("失败的支付结果不能包含交易号", field="transaction_id")
        object.__setattr__(self, "metadata", dict(self.metadata or {}))
        object.__setattr__(self, "created_at", _ensure_utc(self.created_at))

    @classmethod
    def succeeded(cls, transaction_id: str, *, metadata: Optional[dict] = None) -> "PaymentResult":
        return cls(success=True, transaction_id=transaction_id, metadata=metadata or {})

    @classmethod
    def failed(cls, error: str, *, metadata: Optional[dict] = None) -> "PaymentResult":
        return cls(success=False, error=error, metadata=metadata or {})

    def for_attempt(self, attempt: int) -> "PaymentResult":
        """返回带尝试序号的新结果对象"""
        return dataclasses.replace(self, attempt=attempt)


@dataclass
class StoredPaymentMethod:
    """
    已保存的支付方式 - 归属用户记录，独立于任何订单

    业务规则：
    1. (user_id, provider, id) 唯一
    2. 尾号/品牌/有效期仅适用于卡类支付方式
    """

    id: str
    type: str
    user_id: Optional[str] = None
    provider: Optional[str] = None
    last4: Optional[str] = None
    brand: Optional[str] = None
    expiry_month: Optional[int] = None
    expiry_year: Optional[int] = None
    holder_name: Optional[str] = None
    is_default: bool = False
    created_at: Optional[datetime] = None
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        if not self.id:
            raise DomainValidationException("支付方式ID不能为空", field="id")
        if not self.type:
            raise DomainValidationException("支付方式类型不能为空", field="type")
        if not self.is_card:
            card_fields = {
                "last4": self.last4,
                "brand": self.brand,
                "expiry_month": self.expiry_month,
                "expiry_year": self.expiry_year,
            }
            present = [k for k, v in card_fields.items() if v is not None]
            if present:
                raise DomainValidationException(
                    f"非卡类支付方式不能包含卡面信息: {', '.join(present)}",
                    field=present[0],
                )
        if self.last4 is not None and (len(self.last4) != 4 or not self.last4.isdigit()):
            raise DomainValidationException(f"卡号尾号必须为4位数字: {self.last4}", field="last4")
        if self.expiry_month is not None and not 1 <= int(self.expiry_month) <= 12:
            raise DomainValidationException(f"无效的有效期月份: {self.expiry_month}", field="expiry_month")
        self.created_at = _ensure_utc(self.created_at)
        if self.metadata is None:
            self.metadata = {}

    @property
    def is_card(self) -> bool:
        return self.type in CARD_METHOD_TYPES

    def owned_by(self, user_id: str) -> "StoredPaymentMethod":
        """绑定归属用户与提供商后返回自身"""
        self.user_id = user_id
        return self

    def mark_default(self) -> None:
        self.is_default = True

    def unmark_default(self) -> None:
        self.is_default = False


@dataclass
class CheckoutSession:
    """
    结账会话聚合根 - 每个订单引用一个

    状态机：idle -> initializing -> awaiting_client_input -> processing -> {settled, failed}

    业务规则：
    1. 同一订单同一时间最多一个 processing
    2. settled 之后不允许任何新的尝试
    3. failed 之后仅可重试的失败允许新尝试；拒付/校验失败需更换支付数据
    4. 超时等结果不明确的尝试需先对账
    """

    order_ref: str
    provider_type: ProviderType
    amount: Amount
    customer: Customer
    phase: CheckoutPhase = CheckoutPhase.IDLE
    checkout_token: Optional[str] = None
    init_payload: Optional[dict[str, Any]] = None
    results: list[PaymentResult] = field(default_factory=list)
    attempt_count: int = 0
    last_error_type: Optional[str] = None
    last_error_category: Optional[ErrorCategory] = None
    last_error_message: Optional[str] = None
    retryable: bool = False
    requires_reconciliation: bool = False
    rejected_fingerprints: dict[str, tuple[ErrorCategory, str]] = field(default_factory=dict)
    saved_method_id: Optional[str] = None
    method_save_error: Optional[str] = None
    settlement_recorded: bool = False
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    @property
    def latest_result(self) -> Optional[PaymentResult]:
        return self.results[-1] if self.results else None

    @property
    def is_settled(self) -> bool:
        return self.phase == CheckoutPhase.SETTLED

    def _touch(self) -> None:
        self.updated_at = _now()

    def ensure_can_start(self, customer: Customer) -> None:
        """重新发起/恢复结账前的校验"""
        self._ensure_not_locked()
        if customer.id != self.customer.id:
            raise ValidationError(
                f"Customer for order {self.order_ref} changed between attempts",
                field="customer.id",
            )

    def ensure_can_process(self, fingerprint: str) -> None:
        """进入 processing 前的幂等校验"""
        self._ensure_not_locked()
        self._ensure_not_rejected(fingerprint)
        if self.phase == CheckoutPhase.AWAITING_CLIENT_INPUT:
            return
        if self.phase == CheckoutPhase.FAILED and self.init_payload is not None:
            if self.last_error_category in (ErrorCategory.DECLINE, ErrorCategory.VALIDATION):
                return
            if self.retryable:
                return
        raise ValidationError(
            f"Order {self.order_ref} is not awaiting payment data (phase={self.phase.value})",
            details={"order_ref": self.order_ref, "phase": self.phase.value},
        )

    def _ensure_not_rejected(self, fingerprint: str) -> None:
        """同一订单已被拒绝的支付数据不得再次提交给提供商"""
        rejected = self.rejected_fingerprints.get(fingerprint)
        if rejected is None:
            return
        category, message = rejected
        if category == ErrorCategory.DECLINE:
            raise Decline(
                message or "card_declined",
                provider=self.provider_type.value,
                repeat=True,
            )
        raise ValidationError(
            "The same payment data was already rejected; correct it before retrying",
            provider=self.provider_type.value,
            details={"order_ref": self.order_ref, "repeat": True},
        )

    def _ensure_not_locked(self) -> None:
        if self.phase == CheckoutPhase.SETTLED:
            latest = self.latest_result
            raise AlreadySettled(self.order_ref, latest.transaction_id if latest else None)
        if self.phase in (CheckoutPhase.PROCESSING, CheckoutPhase.INITIALIZING):
            raise DuplicateInFlight(self.order_ref)
        if self.requires_reconciliation:
            raise ReconciliationRequired(self.order_ref)

    def begin_initializing(self, provider_type: ProviderType, amount: Amount) -> None:
        self.provider_type = provider_type
        self.amount = amount
        self.checkout_token = None
        self.init_payload = None
        self.phase = CheckoutPhase.INITIALIZING
        self._touch()

    def mark_awaiting_input(self, checkout_token: str, init_payload: dict[str, Any]) -> None:
        if self.phase != CheckoutPhase.INITIALIZING:
            raise DomainValidationException(
                f"无法从状态 {self.phase.value} 转换为 awaiting_client_input", field="phase"
            )
        self.checkout_token = checkout_token
        self.init_payload = init_payload
        self.phase = CheckoutPhase.AWAITING_CLIENT_INPUT
        self.retryable = False
        self.last_error_type = None
        self.last_error_category = None
        self.last_error_message = None
        # 仅保留拒付记录
        self.rejected_fingerprints = {
            fp: rejected
            for fp, rejected in self.rejected_fingerprints.items()
            if rejected[0] == ErrorCategory.DECLINE
        }
        self._touch()

    def begin_processing(self) -> int:
        """进入 processing，返回本次尝试序号"""
        if self.phase not in (CheckoutPhase.AWAITING_CLIENT_INPUT, CheckoutPhase.FAILED):
            raise DomainValidationException(
                f"无法从状态 {self.phase.value} 转换为 processing", field="phase"
            )
        self.attempt_count += 1
        self.phase = CheckoutPhase.PROCESSING
        self._touch()
        return self.attempt_count

    def _record(self, result: PaymentResult) -> None:
        if result.attempt != self.attempt_count:
            raise DomainValidationException(
                f"过期的支付结果: attempt={result.attempt}, current={self.attempt_count}",
                field="attempt",
            )
        self.results.append(result)

    def mark_settled(self, result: PaymentResult) -> None:
        if self.phase != CheckoutPhase.PROCESSING or not result.success:
            raise DomainValidationException(
                f"无法从状态 {self.phase.value} 转换为 settled", field="phase"
            )
        self._record(result)
        self.phase = CheckoutPhase.SETTLED
        self.retryable = False
        self.last_error_type = None
        self.last_error_category = None
        self.last_error_message = None
        self._touch()

    def mark_failed(
        self,
        *,
        error_type: str,
        category: ErrorCategory,
        message: str,
        retryable: bool,
        result: Optional[PaymentResult] = None,
        fingerprint: Optional[str] = None,
        requires_reconciliation: bool = False,
    ) -> None:
        if self.phase not in (CheckoutPhase.INITIALIZING, CheckoutPhase.PROCESSING):
            raise DomainValidationException(
                f"无法从状态 {self.phase.value} 转换为 failed", field="phase"
            )
        if result is not None:
            self._record(result)
        self.phase = CheckoutPhase.FAILED
        self.last_error_type = error_type
        self.last_error_category = category
        self.last_error_message = message
        self.retryable = retryable
        self.requires_reconciliation = requires_reconciliation
        if fingerprint and category in (ErrorCategory.DECLINE, ErrorCategory.VALIDATION):
            self.rejected_fingerprints[fingerprint] = (category, message)
        self._touch()

    def resolve_reconciliation(self, *, charged: bool, transaction_id: Optional[str] = None) -> None:
        """对账结果：已扣款则结算，未扣款则恢复为可重试失败"""
        if not self.requires_reconciliation:
            raise ValidationError(
                f"Order {self.order_ref} has no attempt awaiting reconciliation",
                details={"order_ref": self.order_ref},
            )
        if charged and not transaction_id:
            raise ValidationError("Reconciled charge requires a transaction id", field="transaction_id")
        self.requires_reconciliation = False
        if charged:
            result = PaymentResult.succeeded(
                transaction_id, metadata={"reconciled": True}
            ).for_attempt(self.attempt_count)
            self.results.append(result)
            self.phase = CheckoutPhase.SETTLED
            self.retryable = False
        else:
            self.phase = CheckoutPhase.FAILED
            self.retryable = True
        self._touch()


class OrderPaymentStatus(str, Enum):
    """订单支付持久化状态"""
    SETTLED = "settled"
    FAILED = "failed"


@dataclass
class OrderPaymentRecord:
    """订单支付状态记录（持久化层所有）"""

    order_ref: str
    provider: str
    status: OrderPaymentStatus
    attempt: int = 0
    transaction_id: Optional[str] = None
    error: Optional[str] = None
    error_category: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        if self.status == OrderPaymentStatus.SETTLED and not self.transaction_id:
            raise DomainValidationException("已结算的订单必须包含交易号", field="transaction_id")
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        if self.metadata is None:
            self.metadata = {}

    @property
    def is_settled(self) -> bool:
        return self.status == OrderPaymentStatus.SETTLED
