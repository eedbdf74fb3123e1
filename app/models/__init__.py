"""
数据模型包初始化文件
"""

from .order import (
    OrderStatus,
    Order,
    OrderItem,
    CheckoutItem,
    CheckoutRequest,
    OrderCreateResult,
    OrderTransitionResult,
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES
)
from .promotion import (
    DiscountType,
    PromotionType,
    IneligibleReason,
    Promotion,
    CartLine,
    OrderCandidate,
    ApplicablePromotion,
    AvailabilityResult,
    PromotionUsage
)
from .red_packet import VoucherStatus, Voucher, RedPacketClaimResult
from .inventory import (
    MerchantStatus,
    Merchant,
    Product,
    StockRequest,
    StockCheckItem,
    StockCheckReport
)

__all__ = [
    "OrderStatus",
    "Order",
    "OrderItem",
    "CheckoutItem",
    "CheckoutRequest",
    "OrderCreateResult",
    "OrderTransitionResult",
    "ALLOWED_TRANSITIONS",
    "TERMINAL_STATUSES",
    "DiscountType",
    "PromotionType",
    "IneligibleReason",
    "Promotion",
    "CartLine",
    "OrderCandidate",
    "ApplicablePromotion",
    "AvailabilityResult",
    "PromotionUsage",
    "VoucherStatus",
    "Voucher",
    "RedPacketClaimResult",
    "MerchantStatus",
    "Merchant",
    "Product",
    "StockRequest",
    "StockCheckItem",
    "StockCheckReport"
]
