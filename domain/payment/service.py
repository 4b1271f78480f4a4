"""
支付方式领域服务 - 处理已保存支付方式的业务规则
"""
from typing import List, Optional
from datetime import datetime, timezone

from .entity import StoredPaymentMethod
from .repository import PaymentMethodRepository, PaymentMethodAlreadyExists
from .events import PaymentMethodSaved
from domain.common.exceptions import (
    DomainValidationException,
    PaymentMethodNotFoundException,
    PaymentMethodForbiddenException,
)


class PaymentMethodDomainService:
    """
    支付方式领域服务

    职责：
    1. 保存支付方式（默认标记唯一）
    2. 列表排序：默认优先，其次最新
    3. 删除时的归属校验与默认方式迁移
    4. 产生领域事件
    """

    def __init__(self, method_repository: PaymentMethodRepository):
        self.method_repository = method_repository
        self.events: List = []  # 领域事件收集

    async def add_method(
        self,
        user_id: str,
        provider: str,
        method: StoredPaymentMethod,
        make_default: bool = False
    ) -> StoredPaymentMethod:
        """
        保存支付方式

        业务规则：
        1. 用户ID不能为空
        2. 设为默认：新记录创建成功后再迁移默认标记；已存在的记录同样生效
        3. 用户的第一个支付方式自动成为默认
        """
        if not user_id:
            raise DomainValidationException("用户ID不能为空", field="user_id")

        method.owned_by(user_id)
        method.provider = provider
        if method.created_at is None:
            method.created_at = datetime.now(timezone.utc)

        # 业务规则：同一 (用户, 提供商, ID) 只保存一次
        stored = await self.method_repository.get(user_id, provider, method.id)
        if stored:
            return await self._honour_default(stored, make_default)

        existing = await self.method_repository.list_by_user(user_id)
        if existing:
            method.unmark_default()
        else:
            method.mark_default()

        try:
            created = await self.method_repository.create(method)
        except PaymentMethodAlreadyExists:
            # 并发保存：返回已存在的记录
            stored = await self.method_repository.get(user_id, provider, method.id)
            if stored is None:
                raise
            return await self._honour_default(stored, make_default)

        created = await self._honour_default(created, make_default)
        self.events.append(PaymentMethodSaved(
            order_ref="",
            provider=provider,
            user_id=user_id,
            method_id=created.id,
        ))
        return created

    async def _honour_default(self, method: StoredPaymentMethod, make_default: bool) -> StoredPaymentMethod:
        if not make_default or method.is_default:
            return method
        return await self._make_default(method)

    async def _make_default(self, method: StoredPaymentMethod) -> StoredPaymentMethod:
        await self.method_repository.clear_default(method.user_id)
        method.mark_default()
        return await self.method_repository.update(method)

    async def list_methods(self, user_id: str) -> List[StoredPaymentMethod]:
        """获取用户支付方式（默认优先，其次按创建时间倒序）"""
        methods = await self.method_repository.list_by_user(user_id)
        return sorted(
            methods,
            key=lambda m: (
                m.is_default,
                m.created_at or datetime.min.replace(tzinfo=timezone.utc),
            ),
            reverse=True,
        )

    async def _get_owned(self, user_id: str, method_id: str) -> StoredPaymentMethod:
        for method in await self.method_repository.list_by_user(user_id):
            if method.id == method_id:
                return method
        if await self.method_repository.get_by_id(method_id):
            raise PaymentMethodForbiddenException(method_id, user_id)
        raise PaymentMethodNotFoundException(method_id)

    async def delete_method(self, user_id: str, method_id: str) -> Optional[StoredPaymentMethod]:
        """
        删除支付方式

        业务规则：
        1. 不存在返回 404，非本人返回 403
        2. 删除默认方式后，最早创建的剩余方式成为默认

        返回：新的默认支付方式（如有变更）
        """
        method = await self._get_owned(user_id, method_id)
        await self.method_repository.delete(user_id, method.provider or "", method.id)

        if not method.is_default:
            return None

        remaining = await self.method_repository.list_by_user(user_id)
        if not remaining:
            return None
        oldest = min(
            remaining,
            key=lambda m: m.created_at or datetime.min.replace(tzinfo=timezone.utc),
        )
        oldest.mark_default()
        return await self.method_repository.update(oldest)

    async def set_default(self, user_id: str, method_id: str) -> StoredPaymentMethod:
        """设置默认支付方式"""
        method = await self._get_owned(user_id, method_id)
        return await self._honour_default(method, True)

    def clear_events(self) -> List:
        """清空并返回领域事件"""
        events = self.events.copy()
        self.events.clear()
        return events
