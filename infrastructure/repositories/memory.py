"""
内存仓储实现 - 用于单进程部署与测试
"""
import asyncio
import dataclasses
from datetime import datetime, timezone
from typing import Optional, List

from domain.payment.entity import (
    OrderPaymentRecord,
    OrderPaymentStatus,
    PaymentResult,
    StoredPaymentMethod,
)
from domain.payment.repository import (
    OrderPaymentRepository,
    PaymentMethodAlreadyExists,
    PaymentMethodRepository,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryOrderPaymentRepository(OrderPaymentRepository):
    def __init__(self):
        self._records: dict[str, OrderPaymentRecord] = {}
        self._lock = asyncio.Lock()

    async def get_by_order_ref(self, order_ref: str) -> Optional[OrderPaymentRecord]:
        record = self._records.get(order_ref)
        return dataclasses.replace(record) if record else None

    async def record_settlement(self, order_ref: str, provider: str, result: PaymentResult) -> bool:
        async with self._lock:
            existing = self._records.get(order_ref)
            if existing is not None and existing.is_settled:
                return False
            self._records[order_ref] = OrderPaymentRecord(
                order_ref=order_ref,
                provider=provider,
                status=OrderPaymentStatus.SETTLED,
                attempt=result.attempt,
                transaction_id=result.transaction_id,
                created_at=existing.created_at if existing else _now(),
                updated_at=_now(),
                metadata=dict(result.metadata),
            )
            return True

    async def record_failure(
        self,
        order_ref: str,
        provider: str,
        attempt: int,
        error: str,
        error_category: Optional[str] = None
    ) -> None:
        async with self._lock:
            existing = self._records.get(order_ref)
            if existing is not None and existing.is_settled:
                return
            self._records[order_ref] = OrderPaymentRecord(
                order_ref=order_ref,
                provider=provider,
                status=OrderPaymentStatus.FAILED,
                attempt=attempt,
                error=error,
                error_category=error_category,
                created_at=existing.created_at if existing else _now(),
                updated_at=_now(),
            )


class InMemoryPaymentMethodRepository(PaymentMethodRepository):
    def __init__(self):
        self._methods: dict[tuple[str, str, str], StoredPaymentMethod] = {}

    @staticmethod
    def _key(method: StoredPaymentMethod) -> tuple[str, str, str]:
        return (method.user_id or "", method.provider or "", method.id)

    async def create(self, method: StoredPaymentMethod) -> StoredPaymentMethod:
        key = self._key(method)
        if key in self._methods:
            raise PaymentMethodAlreadyExists(*key)
        stored = dataclasses.replace(method, created_at=method.created_at or _now())
        self._methods[key] = stored
        return dataclasses.replace(stored)

    async def get(self, user_id: str, provider: str, method_id: str) -> Optional[StoredPaymentMethod]:
        method = self._methods.get((user_id, provider, method_id))
        return dataclasses.replace(method) if method else None

    async def get_by_id(self, method_id: str) -> Optional[StoredPaymentMethod]:
        for method in self._methods.values():
            if method.id == method_id:
                return dataclasses.replace(method)
        return None

    async def list_by_user(self, user_id: str) -> List[StoredPaymentMethod]:
        methods = [dataclasses.replace(m) for m in self._methods.values() if m.user_id == user_id]
        methods.sort(key=lambda m: (m.is_default, m.created_at), reverse=True)
        return methods

    async def update(self, method: StoredPaymentMethod) -> StoredPaymentMethod:
        key = self._key(method)
        if key not in self._methods:
            raise ValueError(f"Payment method {method.provider}:{method.id} not found")
        self._methods[key] = dataclasses.replace(method)
        return dataclasses.replace(method)

    async def delete(self, user_id: str, provider: str, method_id: str) -> bool:
        return self._methods.pop((user_id, provider, method_id), None) is not None

    async def clear_default(self, user_id: str) -> int:
        count = 0
        for method in self._methods.values():
            if method.user_id == user_id and method.is_default:
                method.unmark_default()
                count += 1
        return count
