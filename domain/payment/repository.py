"""
支付仓储接口 - 定义订单支付状态与已保存支付方式的抽象接口
"""
from abc import ABC, abstractmethod
from typing import Optional, List

from .entity import OrderPaymentRecord, PaymentResult, StoredPaymentMethod


class OrderPaymentRepository(ABC):
    """订单支付状态仓储 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def get_by_order_ref(self, order_ref: str) -> Optional[OrderPaymentRecord]:
        """根据订单引用获取支付状态"""
        pass

    @abstractmethod
    async def record_settlement(
        self,
        order_ref: str,
        provider: str,
        result: PaymentResult
    ) -> bool:
        """
        原子地记录订单结算

        返回 False 表示该订单已被结算（不会覆盖已有结算）
        """
        pass

    @abstractmethod
    async def record_failure(
        self,
        order_ref: str,
        provider: str,
        attempt: int,
        error: str,
        error_category: Optional[str] = None
    ) -> None:
        """记录失败（已结算的订单不受影响）"""
        pass


class PaymentMethodRepository(ABC):
    """已保存支付方式仓储"""

    @abstractmethod
    async def create(self, method: StoredPaymentMethod) -> StoredPaymentMethod:
        """创建支付方式；(user_id, provider, id) 冲突时抛出 PaymentMethodAlreadyExists"""
        pass

    @abstractmethod
    async def get(self, user_id: str, provider: str, method_id: str) -> Optional[StoredPaymentMethod]:
        """根据 (用户, 提供商, 支付方式ID) 获取"""
        pass

    @abstractmethod
    async def get_by_id(self, method_id: str) -> Optional[StoredPaymentMethod]:
        """根据支付方式ID获取（不限用户）"""
        pass

    @abstractmethod
    async def list_by_user(self, user_id: str) -> List[StoredPaymentMethod]:
        """获取用户的支付方式：默认优先，其次按创建时间倒序"""
        pass

    @abstractmethod
    async def update(self, method: StoredPaymentMethod) -> StoredPaymentMethod:
        """更新支付方式"""
        pass

    @abstractmethod
    async def delete(self, user_id: str, provider: str, method_id: str) -> bool:
        """删除支付方式"""
        pass

    @abstractmethod
    async def clear_default(self, user_id: str) -> int:
        """清除用户的默认支付方式，返回受影响数量"""
        pass


class PaymentMethodAlreadyExists(Exception):
    """仓储层唯一约束冲突"""

    def __init__(self, user_id: str, provider: str, method_id: str):
        super().__init__(f"payment method {provider}:{method_id} already stored for user {user_id}")
        self.user_id = user_id
        self.provider = provider
        self.method_id = method_id
