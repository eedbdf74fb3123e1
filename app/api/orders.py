"""
订单路由
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from app.api.deps import get_current_user_id, get_current_merchant_id, get_order_service
from app.models.order import (
    Order,
    OrderStatus,
    CheckoutRequest,
    OrderCreateResult,
    OrderTransitionResult,
    MerchantConfirmRequest,
    CancelOrderRequest
)
from app.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["订单"])


@router.post("", response_model=OrderCreateResult, status_code=201)
async def create_order(
    request: CheckoutRequest,
    customer_id: str = Depends(get_current_user_id),
    service: OrderService = Depends(get_order_service)
):
    """顾客下单"""
    order = await service.create_order(customer_id, request)
    await service.commit()
    return OrderCreateResult.from_order(order)


@router.get("", response_model=List[Order])
async def list_my_orders(
    status: Optional[OrderStatus] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    customer_id: str = Depends(get_current_user_id),
    service: OrderService = Depends(get_order_service)
):
    """顾客订单列表"""
    return await service.list_customer_orders(
        customer_id,
        limit=limit,
        offset=offset,
        status_filter=status.value if status else None
    )


@router.get("/merchant", response_model=List[Order])
async def list_merchant_orders(
    status: Optional[OrderStatus] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    merchant_id: str = Depends(get_current_merchant_id),
    service: OrderService = Depends(get_order_service)
):
    """商家订单列表"""
    return await service.list_merchant_orders(
        merchant_id,
        limit=limit,
        offset=offset,
        status_filter=status.value if status else None
    )


@router.get("/merchant/stats")
async def merchant_order_stats(
    merchant_id: str = Depends(get_current_merchant_id),
    service: OrderService = Depends(get_order_service)
):
    """商家各状态订单数"""
    return {"merchant_id": merchant_id, "status_counts": await service.get_merchant_status_counts(merchant_id)}


@router.get("/{order_id}", response_model=Order)
async def get_order(
    order_id: str,
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_merchant_id: Optional[str] = Header(None, alias="X-Merchant-Id"),
    service: OrderService = Depends(get_order_service)
):
    """订单详情，顾客或商家可见"""
    viewer_id = x_user_id or x_merchant_id
    if not viewer_id:
        raise HTTPException(status_code=401, detail="缺少用户身份")
    return await service.get_order(order_id, viewer_id=viewer_id)


@router.post("/{order_id}/pay", response_model=OrderTransitionResult)
async def mark_paid(
    order_id: str,
    customer_id: str = Depends(get_current_user_id),
    service: OrderService = Depends(get_order_service)
):
    """顾客标记已付款"""
    order = await service.mark_paid(order_id, customer_id)
    await service.commit()
    return OrderTransitionResult.from_order(order)


@router.post("/{order_id}/confirm", response_model=OrderTransitionResult)
async def merchant_confirm(
    order_id: str,
    request: Optional[MerchantConfirmRequest] = None,
    merchant_id: str = Depends(get_current_merchant_id),
    service: OrderService = Depends(get_order_service)
):
    """商家确认收款"""
    verification_code = request.verification_code if request else None
    order = await service.merchant_confirm(order_id, merchant_id, verification_code=verification_code)
    await service.commit()
    return OrderTransitionResult.from_order(order)


@router.post("/{order_id}/receive", response_model=OrderTransitionResult)
async def confirm_received(
    order_id: str,
    customer_id: str = Depends(get_current_user_id),
    service: OrderService = Depends(get_order_service)
):
    """顾客确认收货"""
    order = await service.confirm_received(order_id, customer_id)
    await service.commit()
    return OrderTransitionResult.from_order(order)


@router.post("/{order_id}/cancel", response_model=OrderTransitionResult)
async def cancel_order(
    order_id: str,
    request: Optional[CancelOrderRequest] = None,
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_merchant_id: Optional[str] = Header(None, alias="X-Merchant-Id"),
    service: OrderService = Depends(get_order_service)
):
    """取消订单（顾客或商家）"""
    if not (x_user_id or x_merchant_id):
        raise HTTPException(status_code=401, detail="缺少用户身份")
    order = await service.cancel_order(
        order_id,
        customer_id=x_user_id,
        merchant_id=x_merchant_id,
        reason=request.reason if request else ""
    )
    await service.commit()
    return OrderTransitionResult.from_order(order)
