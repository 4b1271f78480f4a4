"""
已保存支付方式API路由

认证由上游会话层负责，这里显式接收 user_id。
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from application.dtos.payments import SaveMethodRequest, StoredPaymentMethodOut
from application.services.checkout_service import CheckoutOrchestrator
from api.dependencies import get_checkout_orchestrator, get_payment_method_service
from core.response import Response as ApiResponse, success_response
from domain.payment.service import PaymentMethodDomainService


router = APIRouter(prefix="/payment-methods", tags=["Payment Methods"])


@router.get("", summary="支付方式列表", response_model=ApiResponse[list[StoredPaymentMethodOut]])
async def list_payment_methods(
    user_id: str = Query(..., min_length=1),
    service: PaymentMethodDomainService = Depends(get_payment_method_service),
):
    """默认支付方式在前，其余按创建时间倒序"""
    methods = await service.list_methods(user_id)
    return success_response(data=[StoredPaymentMethodOut.from_entity(m) for m in methods])


@router.post("", summary="保存支付方式（不扣款）", response_model=ApiResponse[StoredPaymentMethodOut])
async def save_payment_method(
    body: SaveMethodRequest,
    orchestrator: CheckoutOrchestrator = Depends(get_checkout_orchestrator),
):
    method = await orchestrator.save_method(
        body.user_id, body.provider, body.payload, make_default=body.is_default
    )
    return success_response(data=StoredPaymentMethodOut.from_entity(method), message="Payment method saved")


@router.delete(
    "/{method_id}",
    summary="删除支付方式",
    response_model=ApiResponse[Optional[StoredPaymentMethodOut]],
)
async def delete_payment_method(
    method_id: str,
    user_id: str = Query(..., min_length=1),
    service: PaymentMethodDomainService = Depends(get_payment_method_service),
):
    """删除默认支付方式时，最早保存的剩余方式成为默认；返回新的默认方式（如有）"""
    promoted = await service.delete_method(user_id, method_id)
    data = StoredPaymentMethodOut.from_entity(promoted) if promoted else None
    return success_response(data=data, message="Payment method deleted")


@router.post(
    "/{method_id}/default",
    summary="设为默认支付方式",
    response_model=ApiResponse[StoredPaymentMethodOut],
)
async def set_default_payment_method(
    method_id: str,
    user_id: str = Query(..., min_length=1),
    service: PaymentMethodDomainService = Depends(get_payment_method_service),
):
    method = await service.set_default(user_id, method_id)
    return success_response(data=StoredPaymentMethodOut.from_entity(method))
