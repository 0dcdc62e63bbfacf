"""
结算与订单 API 路由
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from sf_core.integrations.payment import PaymentResult
from sf_core.services.orders import OrderOrchestrator
from sf_core.utils.logger import get_logger
from .deps import get_orchestrator, get_current_user_id, require_admin
from .models import (
    ApiResponse, CheckoutRequest, OrderResponse, OrderStatsResponse,
    UpdateOrderStatusRequest, PaymentResultRequest
)

checkout_router = APIRouter()
router = APIRouter()
logger = get_logger(__name__)


@checkout_router.post("", response_model=ApiResponse[OrderResponse], status_code=201)
async def checkout(
    body: CheckoutRequest,
    user_id: str = Depends(get_current_user_id),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator)
):
    """从购物车下单"""
    order = await orchestrator.create_order_from_cart(
        user_id,
        shipping_address=body.shipping_address,
        payment_method=body.payment_method
    )
    return ApiResponse.success(OrderResponse.from_order(order))


# 管理端路由需要先于 /{order_id} 注册
@router.get("/admin/stats", response_model=ApiResponse[OrderStatsResponse])
async def get_order_stats(
    _: str = Depends(require_admin),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator)
):
    """订单统计"""
    stats = await orchestrator.get_order_stats()
    stats["total_revenue"] = str(stats["total_revenue"])
    return ApiResponse.success(OrderStatsResponse(**stats))


@router.get("/admin/by-status", response_model=ApiResponse[List[OrderResponse]])
async def get_orders_by_status(
    status: str = Query(..., description="订单状态"),
    _: str = Depends(require_admin),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator)
):
    """按状态查询订单"""
    orders = await orchestrator.get_orders_by_status(status)
    return ApiResponse.success(
        [OrderResponse.from_order(order) for order in orders],
        metadata={"count": len(orders)}
    )


@router.get("", response_model=ApiResponse[List[OrderResponse]])
async def get_my_orders(
    limit: Optional[int] = Query(None, ge=1, le=200, description="最多返回条数"),
    user_id: str = Depends(get_current_user_id),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator)
):
    """当前用户的订单，按创建时间倒序"""
    orders = await orchestrator.get_user_orders(user_id, limit=limit)
    return ApiResponse.success(
        [OrderResponse.from_order(order) for order in orders],
        metadata={"count": len(orders)}
    )


@router.get("/{order_id}", response_model=ApiResponse[OrderResponse])
async def get_my_order(
    order_id: str,
    user_id: str = Depends(get_current_user_id),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator)
):
    """订单详情"""
    order = await orchestrator.get_user_order(user_id, order_id)
    return ApiResponse.success(OrderResponse.from_order(order))


@router.post("/{order_id}/cancel", response_model=ApiResponse[OrderResponse])
async def cancel_order(
    order_id: str,
    user_id: str = Depends(get_current_user_id),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator)
):
    """取消订单并回补库存"""
    order = await orchestrator.cancel_order(user_id, order_id)
    return ApiResponse.success(OrderResponse.from_order(order))


@router.patch("/{order_id}/status", response_model=ApiResponse[OrderResponse])
async def update_order_status(
    order_id: str,
    body: UpdateOrderStatusRequest,
    _: str = Depends(require_admin),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator)
):
    """推进订单状态"""
    order = await orchestrator.update_order_status(order_id, body.status)
    return ApiResponse.success(OrderResponse.from_order(order))


@router.post("/{order_id}/payment", response_model=ApiResponse[OrderResponse])
async def record_payment(
    order_id: str,
    body: PaymentResultRequest,
    _: str = Depends(require_admin),
    orchestrator: OrderOrchestrator = Depends(get_orchestrator)
):
    """记录支付结果"""
    order = await orchestrator.process_payment(
        order_id,
        PaymentResult(
            success=body.success,
            transaction_id=body.transaction_id,
            failure_reason=body.failure_reason
        )
    )
    return ApiResponse.success(OrderResponse.from_order(order))
