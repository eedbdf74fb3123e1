"""
优惠活动相关数据模型
"""

from decimal import Decimal
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, model_validator
from enum import Enum

from .order import CheckoutItem


class DiscountType(str, Enum):
    """折扣计算类型"""
    PERCENTAGE = "percentage"  # 百分比折扣，discount_value 取 0-100
    FIXED_AMOUNT = "fixed_amount"  # 固定金额


class PromotionType(str, Enum):
    """优惠活动类型"""
    GENERAL = "general"  # 全场通用
    MINIMUM_AMOUNT = "minimum_amount"  # 满减
    PRODUCT_SPECIFIC = "product_specific"  # 指定商品
    CATEGORY_SPECIFIC = "category_specific"  # 指定分类
    LUCKY_RED_PACKET = "lucky_red_packet"  # 拼手气红包


class IneligibleReason(str, Enum):
    """优惠不可用的具体原因"""
    NOT_FOUND = "not_found"
    EXPIRED = "expired"  # 未开始、已结束或已停用
    BELOW_MINIMUM = "below_minimum"
    OVER_GLOBAL_CAP = "over_global_cap"
    OVER_CUSTOMER_CAP = "over_customer_cap"
    NOT_APPLICABLE = "not_applicable"  # 购物车不包含适用商品/分类，或活动类型不能用于下单


INELIGIBLE_MESSAGES = {
    IneligibleReason.NOT_FOUND: "优惠活动不存在",
    IneligibleReason.EXPIRED: "优惠活动未开始或已结束",
    IneligibleReason.BELOW_MINIMUM: "订单金额未达到优惠门槛",
    IneligibleReason.OVER_GLOBAL_CAP: "优惠活动名额已用完",
    IneligibleReason.OVER_CUSTOMER_CAP: "您已达到该优惠的使用上限",
    IneligibleReason.NOT_APPLICABLE: "购物车中没有适用该优惠的商品",
}


class Promotion(BaseModel):
    """优惠活动模型"""

    promotion_id: str
    merchant_id: str
    title: str
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal = Field(..., ge=0)
    promotion_type: PromotionType = PromotionType.GENERAL
    minimum_amount: Decimal = Field(default=Decimal("0"), ge=0)
    applicable_products: List[str] = Field(default_factory=list)
    applicable_categories: List[str] = Field(default_factory=list)
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    max_usage_count: Optional[int] = None
    current_usage_count: int = 0
    max_usage_per_customer: Optional[int] = None
    max_usage_product_count: Optional[int] = None
    current_usage_product_count: int = 0
    total_red_packets: int = 0
    remaining_red_packets: int = 0
    voucher_validity_days: int = 30

    @model_validator(mode="after")
    def validate_discount_value(self):
        """百分比折扣不能超过100"""
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError("百分比折扣不能超过100")
        return self

    def is_in_window(self, now: datetime) -> bool:
        """活动是否在有效期内且已启用"""
        return self.is_active and self.start_date <= now <= self.end_date

    @property
    def is_red_packet(self) -> bool:
        return self.promotion_type == PromotionType.LUCKY_RED_PACKET


class CartLine(BaseModel):
    """参与优惠计算的购物车行"""

    product_id: str
    category: Optional[str] = None
    quantity: int = Field(..., ge=1)
    line_total: Decimal = Field(..., ge=0)


class OrderCandidate(BaseModel):
    """待评估的订单"""

    merchant_id: str
    customer_id: Optional[str] = None
    lines: List[CartLine] = Field(..., min_length=1)

    @property
    def order_amount(self) -> Decimal:
        return sum((line.line_total for line in self.lines), Decimal("0"))

    @property
    def product_count(self) -> int:
        return sum(line.quantity for line in self.lines)


class ApplicablePromotion(BaseModel):
    """可用优惠及其折扣金额"""

    promotion: Promotion
    base_amount: Decimal
    discount_amount: Decimal


class AvailabilityResult(BaseModel):
    """优惠可用性检查结果"""

    promotion_id: str
    is_available: bool
    reason: Optional[IneligibleReason] = None

    @property
    def message(self) -> Optional[str]:
        return INELIGIBLE_MESSAGES.get(self.reason) if self.reason else None


class PromotionUsage(BaseModel):
    """优惠使用记录"""

    usage_id: str
    promotion_id: str
    order_id: str
    customer_id: str
    discount_amount: Decimal
    product_count: int
    created_at: Optional[datetime] = None


class PromotionEvaluateRequest(BaseModel):
    """优惠评估请求，金额由服务端按当前售价计算"""

    merchant_id: str
    items: List[CheckoutItem] = Field(..., min_length=1)


class AvailabilityResponse(BaseModel):
    """可用性检查接口响应"""

    promotion_id: str
    is_available: bool
    reason: Optional[IneligibleReason] = None
    message: Optional[str] = None

    @classmethod
    def from_result(cls, result: AvailabilityResult) -> "AvailabilityResponse":
        return cls(
            promotion_id=result.promotion_id,
            is_available=result.is_available,
            reason=result.reason,
            message=result.message
        )
