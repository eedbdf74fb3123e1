"""
业务异常定义

所有领域错误都继承 BusinessException，携带稳定的错误码、HTTP状态码
以及是否可重试的标记。资源耗尽类错误（库存不足、红包抢完）不可重试，
只有存储层的瞬时冲突可以重试。
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional


class BusinessException(Exception):
    """业务异常基类"""

    error_code: str = "BUSINESS_ERROR"
    status_code: int = 400
    retryable: bool = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error_code": self.error_code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


class InsufficientStockError(BusinessException):
    """库存不足（一次列出所有不足的商品）"""

    error_code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(self, items: List[Dict[str, Any]]):
        self.items = items
        lines = [
            f"{item.get('product_name') or item['product_id']}：需要{item['requested_quantity']}件，库存仅剩{item['available_stock']}件"
            for item in items
        ]
        super().__init__("库存不足：" + "；".join(lines), {"items": items})


class PromotionIneligibleError(BusinessException):
    """优惠活动不可用，reason 为具体子原因"""

    error_code = "PROMOTION_INELIGIBLE"
    status_code = 409

    def __init__(self, promotion_id: str, reason: str, message: Optional[str] = None):
        self.promotion_id = promotion_id
        self.reason = reason
        super().__init__(
            message or f"优惠活动不可用: {reason}",
            {"promotion_id": promotion_id, "reason": reason}
        )


class PromotionNotActiveError(BusinessException):
    """红包活动不存在或已结束"""

    error_code = "PROMOTION_NOT_ACTIVE"
    status_code = 409

    def __init__(self, promotion_id: str):
        self.promotion_id = promotion_id
        super().__init__("红包活动不存在或已结束", {"promotion_id": promotion_id})


class RedPacketExhaustedError(BusinessException):
    """红包已被抢完"""

    error_code = "RED_PACKET_EXHAUSTED"
    status_code = 409

    def __init__(self, promotion_id: str):
        self.promotion_id = promotion_id
        super().__init__("红包已被抢完", {"promotion_id": promotion_id})


class RedPacketAlreadyClaimedError(BusinessException):
    """用户已领取过该红包"""

    error_code = "RED_PACKET_ALREADY_CLAIMED"
    status_code = 409

    def __init__(self, promotion_id: str, user_id: str):
        self.promotion_id = promotion_id
        self.user_id = user_id
        super().__init__("您已经领取过这个红包", {"promotion_id": promotion_id, "user_id": user_id})


class InvalidTransitionError(BusinessException):
    """当前订单状态不允许该操作"""

    error_code = "INVALID_TRANSITION"
    status_code = 409

    def __init__(self, order_id: str, current_status: str, target_status: str):
        self.order_id = order_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"订单状态 {current_status} 不能变更为 {target_status}",
            {"order_id": order_id, "current_status": current_status, "target_status": target_status}
        )


class MinimumOrderNotMetError(BusinessException):
    """订单金额低于起送金额"""

    error_code = "MINIMUM_ORDER_NOT_MET"
    status_code = 422

    def __init__(self, order_amount: Decimal, minimum_amount: Decimal):
        self.order_amount = order_amount
        self.minimum_amount = minimum_amount
        super().__init__(
            f"订单金额不足，起送金额为¥{minimum_amount}",
            {"order_amount": str(order_amount), "minimum_amount": str(minimum_amount)}
        )


class MerchantNotActiveError(BusinessException):
    """商家未激活或已封停"""

    error_code = "MERCHANT_NOT_ACTIVE"
    status_code = 409

    def __init__(self, merchant_id: str, status: Optional[str] = None):
        super().__init__("商家当前不接受新订单", {"merchant_id": merchant_id, "status": status})


class ProductUnavailableError(BusinessException):
    """商品不存在、已下架或不属于该商家"""

    error_code = "PRODUCT_UNAVAILABLE"
    status_code = 409

    def __init__(self, product_ids: List[str]):
        self.product_ids = product_ids
        super().__init__("部分商品已下架或不存在", {"product_ids": product_ids})


class VoucherUnavailableError(BusinessException):
    """代金券不可用（不存在、已使用、已过期或不属于当前用户）"""

    error_code = "VOUCHER_UNAVAILABLE"
    status_code = 409

    def __init__(self, voucher_code: str, reason: str):
        self.reason = reason
        super().__init__(f"代金券不可用: {reason}", {"voucher_code": voucher_code, "reason": reason})


class VerificationMismatchError(BusinessException):
    """核销码不匹配"""

    error_code = "VERIFICATION_MISMATCH"
    status_code = 422

    def __init__(self, order_id: str):
        super().__init__("核销码不匹配", {"order_id": order_id})


class OrderNotFoundError(BusinessException):
    """订单不存在（或不属于当前操作人）"""

    error_code = "ORDER_NOT_FOUND"
    status_code = 404

    def __init__(self, order_id: str):
        super().__init__("订单不存在", {"order_id": order_id})


class ConcurrencyConflictError(BusinessException):
    """存储层瞬时冲突，可以重试"""

    error_code = "CONCURRENCY_CONFLICT"
    status_code = 503
    retryable = True
