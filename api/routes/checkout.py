"""
结账API路由 - FastAPI表现层

保持轻薄：不包含任何提供商 SDK 细节，所有状态转换都在编排器中完成。
"""
from fastapi import APIRouter, Depends

from application.dtos.payments import (
    CheckoutStatus,
    InitPayload,
    PaymentResultOut,
    ReconcileRequest,
    StartCheckoutRequest,
    SubmitPaymentRequest,
)
from application.services.checkout_service import CheckoutOrchestrator
from api.dependencies import get_checkout_orchestrator
from core.response import Response as ApiResponse, success_response
from domain.payment.entity import Amount, Customer
from domain.payment.exceptions import Decline, ErrorCategory, TransientProviderError
from shared.codes.payment_codes import PaymentCode


router = APIRouter(prefix="/checkout", tags=["Checkout"])


@router.post("/sessions", summary="发起结账", response_model=ApiResponse[InitPayload])
async def start_checkout(
    body: StartCheckoutRequest,
    orchestrator: CheckoutOrchestrator = Depends(get_checkout_orchestrator),
):
    """
    为订单初始化支付，返回客户端握手数据

    - **order_ref**: 订单引用
    - **amount** / **currency**: 应付金额（JPY 等零小数币种按整数处理）
    - **customer_id**: 付款人；同一订单的多次尝试必须一致
    - **provider**: stripe / amazon_pay / credit_card（缺省使用配置的默认提供商）
    """
    payload = await orchestrator.start_checkout(
        body.order_ref,
        Amount(body.amount, body.currency),
        Customer(id=body.customer_id, email=body.email, name=body.name),
        body.provider,
    )
    return success_response(data=payload, message="Checkout initialized")


@router.post(
    "/sessions/{order_ref}/submit",
    summary="提交支付数据",
    response_model=ApiResponse[PaymentResultOut],
)
async def submit_payment(
    order_ref: str,
    body: SubmitPaymentRequest,
    orchestrator: CheckoutOrchestrator = Depends(get_checkout_orchestrator),
):
    """
    提交客户端收集的支付数据

    拒付以失败结果返回（code 非 0），不会作为异常抛出。
    """
    result = await orchestrator.submit_payment(
        order_ref,
        body.payload,
        checkout_token=body.checkout_token,
        save_method=body.save_method,
        user_id=body.user_id,
    )
    data = PaymentResultOut.from_result(result)
    if result.success:
        return success_response(data=data, message="Payment settled")
    if orchestrator.classifier.category_for_result(result) == ErrorCategory.TRANSIENT:
        return success_response(
            data=data,
            message=TransientProviderError.user_message,
            code=PaymentCode.TRANSIENT_PROVIDER_ERROR,
        )
    return success_response(data=data, message=Decline.user_message, code=PaymentCode.DECLINE)


@router.get(
    "/sessions/{order_ref}",
    summary="查询结账状态",
    response_model=ApiResponse[CheckoutStatus],
)
async def get_checkout_status(
    order_ref: str,
    orchestrator: CheckoutOrchestrator = Depends(get_checkout_orchestrator),
):
    return success_response(data=orchestrator.get_status(order_ref))


@router.post(
    "/sessions/{order_ref}/reconcile",
    summary="对账结果回填",
    response_model=ApiResponse[CheckoutStatus],
)
async def reconcile(
    order_ref: str,
    body: ReconcileRequest,
    orchestrator: CheckoutOrchestrator = Depends(get_checkout_orchestrator),
):
    """超时等结果不明确的尝试，由运营/对账任务确认是否已扣款"""
    status = await orchestrator.resolve_reconciliation(
        order_ref, charged=body.charged, transaction_id=body.transaction_id
    )
    return success_response(data=status, message="Reconciliation recorded")
