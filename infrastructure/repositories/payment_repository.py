"""
支付仓储实现 - 使用SQLAlchemy实现数据访问

仓储由长生命周期的结账编排器持有，因此持有 session 工厂，每个操作一个事务。
"""
from typing import Optional, List
from datetime import datetime, timezone
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select, update, delete
from sqlalchemy.exc import IntegrityError

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
from infrastructure.models.payment import OrderPaymentModel, StoredPaymentMethodModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyOrderPaymentRepository(OrderPaymentRepository):
    """订单支付状态仓储的SQLAlchemy实现"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    def _to_entity(self, model: OrderPaymentModel) -> OrderPaymentRecord:
        """将数据库模型转换为领域实体"""
        return OrderPaymentRecord(
            order_ref=model.order_ref,
            provider=model.provider,
            status=OrderPaymentStatus(model.status),
            attempt=model.attempt,
            transaction_id=model.transaction_id,
            error=model.error,
            error_category=model.error_category,
            created_at=model.created_at,
            updated_at=model.updated_at,
            metadata=model.extra_metadata or {},
        )

    async def get_by_order_ref(self, order_ref: str) -> Optional[OrderPaymentRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(OrderPaymentModel).where(OrderPaymentModel.order_ref == order_ref)
            )
            model = result.scalar_one_or_none()
            return self._to_entity(model) if model else None

    async def _settle_existing(self, session: AsyncSession, order_ref: str, provider: str, result: PaymentResult) -> bool:
        # 条件更新：已结算的行不会被覆盖
        stmt = (
            update(OrderPaymentModel)
            .where(
                OrderPaymentModel.order_ref == order_ref,
                OrderPaymentModel.status != OrderPaymentStatus.SETTLED.value,
            )
            .values(
                provider=provider,
                status=OrderPaymentStatus.SETTLED.value,
                attempt=result.attempt,
                transaction_id=result.transaction_id,
                error=None,
                error_category=None,
                extra_metadata=dict(result.metadata),
                updated_at=datetime.now(timezone.utc),
            )
        )
        res = await session.execute(stmt)
        return res.rowcount == 1

    async def record_settlement(self, order_ref: str, provider: str, result: PaymentResult) -> bool:
        async with self.session_factory() as session:
            async with session.begin():
                if await self._settle_existing(session, order_ref, provider, result):
                    logger.info("order_payment_settled", order_ref=order_ref, provider=provider)
                    return True
                existing = await session.execute(
                    select(OrderPaymentModel.id).where(OrderPaymentModel.order_ref == order_ref)
                )
                if existing.scalar_one_or_none() is not None:
                    logger.warning("order_payment_already_settled", order_ref=order_ref)
                    return False

        try:
            async with self.session_factory() as session:
                async with session.begin():
                    session.add(OrderPaymentModel(
                        order_ref=order_ref,
                        provider=provider,
                        status=OrderPaymentStatus.SETTLED.value,
                        attempt=result.attempt,
                        transaction_id=result.transaction_id,
                        extra_metadata=dict(result.metadata),
                    ))
        except IntegrityError:
            # 并发插入：另一方已写入该订单
            async with self.session_factory() as session:
                async with session.begin():
                    settled = await self._settle_existing(session, order_ref, provider, result)
            if not settled:
                logger.warning("order_payment_settle_conflict", order_ref=order_ref)
            return settled

        logger.info("order_payment_settled", order_ref=order_ref, provider=provider)
        return True

    async def record_failure(
        self,
        order_ref: str,
        provider: str,
        attempt: int,
        error: str,
        error_category: Optional[str] = None
    ) -> None:
        values = dict(
            provider=provider,
            attempt=attempt,
            error=error,
            error_category=error_category,
            updated_at=datetime.now(timezone.utc),
        )
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    res = await session.execute(
                        update(OrderPaymentModel)
                        .where(
                            OrderPaymentModel.order_ref == order_ref,
                            OrderPaymentModel.status != OrderPaymentStatus.SETTLED.value,
                        )
                        .values(**values)
                    )
                    if res.rowcount == 0:
                        existing = await session.execute(
                            select(OrderPaymentModel.id).where(OrderPaymentModel.order_ref == order_ref)
                        )
                        if existing.scalar_one_or_none() is None:
                            session.add(OrderPaymentModel(
                                order_ref=order_ref,
                                status=OrderPaymentStatus.FAILED.value,
                                **values,
                            ))
            except IntegrityError:
                logger.warning("order_payment_failure_conflict", order_ref=order_ref)


class SQLAlchemyPaymentMethodRepository(PaymentMethodRepository):
    """已保存支付方式仓储的SQLAlchemy实现"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    def _to_entity(self, model: StoredPaymentMethodModel) -> StoredPaymentMethod:
        """将数据库模型转换为领域实体"""
        return StoredPaymentMethod(
            id=model.method_id,
            type=model.type,
            user_id=model.user_id,
            provider=model.provider,
            last4=model.last4,
            brand=model.brand,
            expiry_month=model.expiry_month,
            expiry_year=model.expiry_year,
            holder_name=model.holder_name,
            is_default=bool(model.is_default),
            created_at=model.created_at,
            metadata=model.extra_metadata or {},
        )

    def _to_model(self, entity: StoredPaymentMethod) -> StoredPaymentMethodModel:
        """将领域实体转换为数据库模型"""
        return StoredPaymentMethodModel(
            method_id=entity.id,
            user_id=entity.user_id,
            provider=entity.provider,
            type=entity.type,
            last4=entity.last4,
            brand=entity.brand,
            expiry_month=entity.expiry_month,
            expiry_year=entity.expiry_year,
            holder_name=entity.holder_name,
            is_default=entity.is_default,
            created_at=entity.created_at or datetime.now(timezone.utc),
            extra_metadata=entity.metadata,
        )

    async def create(self, method: StoredPaymentMethod) -> StoredPaymentMethod:
        """创建支付方式"""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    model = self._to_model(method)
                    session.add(model)
                    await session.flush()
                    await session.refresh(model)
                    created = self._to_entity(model)
        except IntegrityError as e:
            logger.warning(
                "payment_method_create_conflict",
                user_id=method.user_id,
                provider=method.provider,
                method_id=method.id,
            )
            raise PaymentMethodAlreadyExists(method.user_id, method.provider, method.id) from e
        logger.info("payment_method_created", user_id=created.user_id, method_id=created.id)
        return created

    async def get(self, user_id: str, provider: str, method_id: str) -> Optional[StoredPaymentMethod]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(StoredPaymentMethodModel).where(
                    StoredPaymentMethodModel.user_id == user_id,
                    StoredPaymentMethodModel.provider == provider,
                    StoredPaymentMethodModel.method_id == method_id,
                )
            )
            model = result.scalar_one_or_none()
            return self._to_entity(model) if model else None

    async def get_by_id(self, method_id: str) -> Optional[StoredPaymentMethod]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(StoredPaymentMethodModel)
                .where(StoredPaymentMethodModel.method_id == method_id)
                .order_by(StoredPaymentMethodModel.pk)
                .limit(1)
            )
            model = result.scalar_one_or_none()
            return self._to_entity(model) if model else None

    async def list_by_user(self, user_id: str) -> List[StoredPaymentMethod]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(StoredPaymentMethodModel)
                .where(StoredPaymentMethodModel.user_id == user_id)
                .order_by(
                    StoredPaymentMethodModel.is_default.desc(),
                    StoredPaymentMethodModel.created_at.desc(),
                )
            )
            return [self._to_entity(m) for m in result.scalars().all()]

    async def update(self, method: StoredPaymentMethod) -> StoredPaymentMethod:
        """更新支付方式"""
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    select(StoredPaymentMethodModel).where(
                        StoredPaymentMethodModel.user_id == method.user_id,
                        StoredPaymentMethodModel.provider == method.provider,
                        StoredPaymentMethodModel.method_id == method.id,
                    )
                )
                model = result.scalar_one_or_none()
                if not model:
                    raise ValueError(f"Payment method {method.provider}:{method.id} not found")

                model.type = method.type
                model.last4 = method.last4
                model.brand = method.brand
                model.expiry_month = method.expiry_month
                model.expiry_year = method.expiry_year
                model.holder_name = method.holder_name
                model.is_default = method.is_default
                model.extra_metadata = method.metadata

                await session.flush()
                await session.refresh(model)
                updated = self._to_entity(model)

        logger.info("payment_method_updated", user_id=updated.user_id, method_id=updated.id, is_default=updated.is_default)
        return updated

    async def delete(self, user_id: str, provider: str, method_id: str) -> bool:
        async with self.session_factory() as session:
            async with session.begin():
                res = await session.execute(
                    delete(StoredPaymentMethodModel).where(
                        StoredPaymentMethodModel.user_id == user_id,
                        StoredPaymentMethodModel.provider == provider,
                        StoredPaymentMethodModel.method_id == method_id,
                    )
                )
        deleted = res.rowcount > 0
        if deleted:
            logger.info("payment_method_deleted", user_id=user_id, method_id=method_id)
        return deleted

    async def clear_default(self, user_id: str) -> int:
        async with self.session_factory() as session:
            async with session.begin():
                res = await session.execute(
                    update(StoredPaymentMethodModel)
                    .where(
                        StoredPaymentMethodModel.user_id == user_id,
                        StoredPaymentMethodModel.is_default.is_(True),
                    )
                    .values(is_default=False)
                )
        return res.rowcount
