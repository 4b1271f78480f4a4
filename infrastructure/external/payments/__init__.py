"""
Payment provider registry with lazy, init-once construction.

Built-in providers are registered by module path and imported on first use,
so an absent optional SDK only affects its own provider.
"""
from __future__ import annotations

import importlib
import threading
from typing import Callable, Optional, Union

from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings
from application.ports.payment_provider import PaymentProvider
from domain.payment.entity import ProviderType
from domain.payment.exceptions import UnknownProviderType

logger = get_logger(__name__)

# Provider builder type
ProviderBuilder = Callable[[PaymentSettings], PaymentProvider]

BUILTIN_PROVIDERS = [
    (ProviderType.STRIPE, "infrastructure.external.payments.stripe_client", "StripeProvider"),
    (ProviderType.AMAZON_PAY, "infrastructure.external.payments.amazon_pay_client", "AmazonPayProvider"),
    (ProviderType.CREDIT_CARD, "infrastructure.external.payments.credit_card_client", "CreditCardProvider"),
]


def _lazy_builder(module_path: str, class_name: str) -> ProviderBuilder:
    def build(settings: PaymentSettings) -> PaymentProvider:
        module = importlib.import_module(module_path)
        return getattr(module, class_name)(settings)
    return build


class ProviderRegistry:
    """Maps provider-type identifiers to provider instances.

    Instances are built once, on first resolve, and cached for the registry's
    lifetime. Construction is serialised by a lock; cached lookups take none.
    """

    def __init__(self, settings: Optional[PaymentSettings] = None) -> None:
        self.settings = settings or payment_settings
        self._builders: dict[ProviderType, ProviderBuilder] = {}
        self._instances: dict[ProviderType, PaymentProvider] = {}
        self._lock = threading.Lock()

    @classmethod
    def default(cls, settings: Optional[PaymentSettings] = None) -> "ProviderRegistry":
        registry = cls(settings)
        for ptype, module_path, class_name in BUILTIN_PROVIDERS:
            registry.register(ptype, _lazy_builder(module_path, class_name))
        return registry

    def register(self, provider_type: Union[ProviderType, str], builder: ProviderBuilder) -> None:
        ptype = self._coerce(provider_type)
        with self._lock:
            self._builders[ptype] = builder
            self._instances.pop(ptype, None)
        logger.info("payment_provider_registered", provider=ptype.value)

    def registered(self) -> list[ProviderType]:
        return list(self._builders)

    @staticmethod
    def _coerce(provider_type: Union[ProviderType, str]) -> ProviderType:
        if isinstance(provider_type, ProviderType):
            return provider_type
        try:
            return ProviderType(str(provider_type).strip().lower())
        except ValueError:
            raise UnknownProviderType(str(provider_type)) from None

    def resolve(self, provider_type: Union[ProviderType, str]) -> PaymentProvider:
        ptype = self._coerce(provider_type)
        instance = self._instances.get(ptype)
        if instance is not None:
            return instance

        with self._lock:
            instance = self._instances.get(ptype)
            if instance is not None:
                return instance
            builder = self._builders.get(ptype)
            if builder is None:
                raise UnknownProviderType(ptype.value)
            instance = builder(self.settings)
            self._instances[ptype] = instance
        logger.info("payment_provider_created", provider=ptype.value, supported=instance.is_supported())
        return instance

    async def aclose(self) -> None:
        """Close provider clients; instances are rebuilt on the next resolve."""
        with self._lock:
            instances = list(self._instances.values())
            self._instances.clear()
        for instance in instances:
            await instance.aclose()

    def reset(self) -> None:
        """Drop builders and cached instances (tests)."""
        with self._lock:
            self._builders.clear()
            self._instances.clear()


_registry: Optional[ProviderRegistry] = None
_registry_lock = threading.Lock()


def get_provider_registry() -> ProviderRegistry:
    global _registry
    if _registry is None:
        with _registry_lock:
            if _registry is None:
                _registry = ProviderRegistry.default()
    return _registry
