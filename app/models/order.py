"""
订单相关数据模型
"""

from decimal import Decimal
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from enum import Enum


class OrderStatus(str, Enum):
    """订单状态枚举（取值为持久化契约，不可修改）"""
    PENDING = "pending"  # 待付款
    CUSTOMER_PAID = "customer_paid"  # 顾客已付款
    MERCHANT_CONFIRMED = "merchant_confirmed"  # 商家已确认收款
    CUSTOMER_RECEIVED = "customer_received"  # 顾客已收货
    TIMEOUT_CLOSED = "timeout_closed"  # 超时关闭
    CANCELLED = "cancelled"  # 已取消

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    def can_transition_to(self, target: "OrderStatus") -> bool:
        return target in ALLOWED_TRANSITIONS.get(self, frozenset())


TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.CUSTOMER_RECEIVED,
    OrderStatus.TIMEOUT_CLOSED,
    OrderStatus.CANCELLED,
})

# 允许的状态流转，只能前进，终态不再变化
ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.CUSTOMER_PAID,
        OrderStatus.TIMEOUT_CLOSED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.CUSTOMER_PAID: frozenset({
        OrderStatus.MERCHANT_CONFIRMED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.MERCHANT_CONFIRMED: frozenset({
        OrderStatus.CUSTOMER_RECEIVED,
        OrderStatus.CANCELLED,
    }),
}

# 进入这些状态时需要把已扣减的库存还回去
RESTORING_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.TIMEOUT_CLOSED,
    OrderStatus.CANCELLED,
})


def source_statuses(target: OrderStatus) -> List[OrderStatus]:
    """能够流转到 target 的所有状态"""
    return [status for status, targets in ALLOWED_TRANSITIONS.items() if target in targets]


class OrderItem(BaseModel):
    """订单项目模型"""

    item_id: Optional[str] = Field(None, description="项目ID")
    product_id: str = Field(..., description="商品ID")
    product_name: str = Field(..., description="商品名称")
    quantity: int = Field(..., ge=1, description="数量")
    unit_price: Decimal = Field(..., ge=0, description="单价")
    total_price: Decimal = Field(..., ge=0, description="小计")


class Order(BaseModel):
    """订单基础模型"""

    order_id: str = Field(..., description="订单ID")
    order_number: str = Field(..., description="订单编号")
    verification_code: str = Field(..., description="核销码")
    customer_id: str = Field(..., description="顾客ID")
    merchant_id: str = Field(..., description="商家ID")
    order_items: List[OrderItem] = Field(default_factory=list, description="订单项目列表")
    subtotal_amount: Decimal = Field(..., ge=0, description="商品原价合计")
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0, description="优惠活动折扣")
    voucher_amount: Decimal = Field(default=Decimal("0"), ge=0, description="代金券抵扣")
    total_amount: Decimal = Field(..., ge=0, description="应付金额")
    promotion_id: Optional[str] = Field(None, description="应用的优惠活动ID")
    voucher_id: Optional[str] = Field(None, description="使用的代金券ID")
    delivery_name: str
    delivery_phone: str
    delivery_address: str
    status: OrderStatus = Field(default=OrderStatus.PENDING, description="订单状态")
    inventory_restored: bool = False
    cancel_reason: Optional[str] = None
    payment_deadline: Optional[datetime] = None
    auto_close_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    @model_validator(mode="after")
    def validate_total_amount(self):
        """应付金额 = 原价合计 - 优惠折扣 - 代金券"""
        expected = self.subtotal_amount - self.discount_amount - self.voucher_amount
        if abs(self.total_amount - expected) > Decimal("0.01"):  # 允许1分钱误差
            raise ValueError("应付金额计算错误")
        return self

    @property
    def total_quantity(self) -> int:
        """订单中的商品总件数"""
        return sum(item.quantity for item in self.order_items)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class CheckoutItem(BaseModel):
    """下单商品行"""

    product_id: str = Field(..., description="商品ID")
    quantity: int = Field(..., ge=1, description="数量")


class CheckoutRequest(BaseModel):
    """创建订单请求模型"""

    merchant_id: str = Field(..., description="商家ID")
    items: List[CheckoutItem] = Field(..., min_length=1, description="商品列表")
    delivery_name: str = Field(..., min_length=1, max_length=100)
    delivery_phone: str = Field(..., min_length=1, max_length=20)
    delivery_address: str = Field(..., min_length=1)
    promotion_id: Optional[str] = Field(None, description="选择的优惠活动（最多一个）")
    voucher_code: Optional[str] = Field(None, description="使用的代金券编码")

    @field_validator("items")
    @classmethod
    def merge_duplicate_items(cls, v: List[CheckoutItem]) -> List[CheckoutItem]:
        """同一商品合并为一行，保持首次出现的顺序"""
        merged: Dict[str, int] = {}
        for item in v:
            merged[item.product_id] = merged.get(item.product_id, 0) + item.quantity
        return [CheckoutItem(product_id=pid, quantity=qty) for pid, qty in merged.items()]

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)


class OrderCreateResult(BaseModel):
    """下单结果"""

    order_id: str
    order_number: str
    verification_code: str
    subtotal_amount: Decimal
    discount_amount: Decimal
    voucher_amount: Decimal
    total_amount: Decimal
    status: OrderStatus
    payment_deadline: Optional[datetime]

    @classmethod
    def from_order(cls, order: Order) -> "OrderCreateResult":
        return cls(
            order_id=order.order_id,
            order_number=order.order_number,
            verification_code=order.verification_code,
            subtotal_amount=order.subtotal_amount,
            discount_amount=order.discount_amount,
            voucher_amount=order.voucher_amount,
            total_amount=order.total_amount,
            status=order.status,
            payment_deadline=order.payment_deadline
        )


class OrderTransitionResult(BaseModel):
    """状态变更结果"""

    order_id: str
    status: OrderStatus
    updated_at: Optional[datetime]
    paid_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    @classmethod
    def from_order(cls, order: Order) -> "OrderTransitionResult":
        return cls(
            order_id=order.order_id,
            status=order.status,
            updated_at=order.updated_at,
            paid_at=order.paid_at,
            confirmed_at=order.confirmed_at,
            received_at=order.received_at,
            cancelled_at=order.cancelled_at,
            closed_at=order.closed_at
        )


class MerchantConfirmRequest(BaseModel):
    """商家确认收款请求"""

    verification_code: Optional[str] = Field(None, description="顾客出示的核销码")


class CancelOrderRequest(BaseModel):
    """取消订单请求"""

    reason: str = Field(default="", max_length=500)
