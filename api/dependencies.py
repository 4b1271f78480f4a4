"""
API依赖项 - 从应用状态获取结账编排器

编排器在 lifespan 中构建（组合根），路由只通过依赖拿到它。
"""
from fastapi import Request

from application.services.checkout_service import CheckoutOrchestrator
from domain.payment.service import PaymentMethodDomainService


def get_checkout_orchestrator(request: Request) -> CheckoutOrchestrator:
    return request.app.state.checkout_orchestrator


def get_payment_method_service(request: Request) -> PaymentMethodDomainService:
    return request.app.state.checkout_orchestrator.method_service
