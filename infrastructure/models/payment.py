"""
支付数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Column, Integer, String, DateTime, Text, JSON, Boolean,
    Index, UniqueConstraint
)
from datetime import datetime, timezone

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderPaymentModel(Base):
    """
    订单支付状态模型

    每个订单一行；status=settled 的行不会被覆盖
    """
    __tablename__ = "order_payments"

    id = Column(Integer, primary_key=True, index=True)
    order_ref = Column(String(64), unique=True, index=True, nullable=False, comment="订单引用")
    provider = Column(String(50), nullable=False, comment="支付提供商: stripe/amazon_pay/credit_card")
    status = Column(String(20), nullable=False, index=True, comment="状态: settled/failed")
    attempt = Column(Integer, nullable=False, default=0, comment="尝试序号")
    transaction_id = Column(String(200), nullable=True, index=True, comment="支付渠道交易号")
    error = Column(Text, nullable=True, comment="最近一次失败原因")
    error_category = Column(String(32), nullable=True, comment="失败分类")

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, comment="创建时间")
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
        comment="更新时间"
    )

    extra_metadata = Column("metadata", JSON, nullable=True, comment="结果元数据（审计）")

    def __repr__(self):
        return f"<OrderPayment(order_ref={self.order_ref}, status={self.status})>"


class StoredPaymentMethodModel(Base):
    """
    已保存支付方式模型
    """
    __tablename__ = "payment_methods"

    pk = Column(Integer, primary_key=True, index=True)
    method_id = Column(String(200), nullable=False, index=True, comment="提供商侧支付方式ID")
    user_id = Column(String(64), nullable=False, index=True, comment="用户ID")
    provider = Column(String(50), nullable=False, comment="支付提供商")
    type = Column(String(32), nullable=False, comment="类型: card/credit_card/amazon_pay")

    last4 = Column(String(4), nullable=True)
    brand = Column(String(32), nullable=True)
    expiry_month = Column(Integer, nullable=True)
    expiry_year = Column(Integer, nullable=True)
    holder_name = Column(String(200), nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, comment="创建时间")
    extra_metadata = Column("metadata", JSON, nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "provider", "method_id", name="uq_payment_methods_user_provider_method"),
        Index("ix_payment_methods_user_default", "user_id", "is_default"),
    )

    def __repr__(self):
        return f"<StoredPaymentMethod(user_id={self.user_id}, provider={self.provider}, method_id={self.method_id})>"
