"""Infrastructure models package exports."""
from .base import Base, metadata
from .payment import OrderPaymentModel, StoredPaymentMethodModel

__all__ = [
    "Base",
    "metadata",
    "OrderPaymentModel",
    "StoredPaymentMethodModel",
]
