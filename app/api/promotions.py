"""
优惠活动路由
"""

from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from app.api.deps import get_order_service, get_promotion_service
from app.models.promotion import (
    Promotion,
    ApplicablePromotion,
    PromotionUsage,
    PromotionEvaluateRequest,
    AvailabilityResponse
)
from app.services.order_service import OrderService
from app.services.promotion_service import PromotionService

router = APIRouter(prefix="/promotions", tags=["优惠活动"])


@router.post("/evaluate", response_model=List[ApplicablePromotion])
async def evaluate_promotions(
    request: PromotionEvaluateRequest,
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    service: OrderService = Depends(get_order_service)
):
    """评估购物车可用的优惠活动，按折扣从高到低排列"""
    return await service.preview_promotions(x_user_id, request.merchant_id, request.items)


@router.get("/{promotion_id}", response_model=Promotion)
async def get_promotion(
    promotion_id: str,
    service: PromotionService = Depends(get_promotion_service)
):
    promotion = await service.get_promotion(promotion_id)
    if promotion is None:
        raise HTTPException(status_code=404, detail="优惠活动不存在")
    return promotion


@router.get("/{promotion_id}/availability", response_model=AvailabilityResponse)
async def check_availability(
    promotion_id: str,
    product_count: int = Query(..., ge=1),
    order_amount: Decimal = Query(..., ge=0),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    service: PromotionService = Depends(get_promotion_service)
):
    """检查优惠活动是否可用，不可用时返回具体原因"""
    result = await service.check_availability(promotion_id, x_user_id, product_count, order_amount)
    return AvailabilityResponse.from_result(result)


@router.get("/{promotion_id}/usage", response_model=List[PromotionUsage])
async def get_usage_history(
    promotion_id: str,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    service: PromotionService = Depends(get_promotion_service)
):
    """优惠活动使用记录"""
    return await service.get_usage_history(promotion_id, limit=limit, offset=offset)
