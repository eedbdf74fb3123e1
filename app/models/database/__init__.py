"""
数据库模型包初始化文件
"""

from .merchant_db import MerchantDB, ProductDB
from .order_db import OrderDB, OrderItemDB
from .promotion_db import PromotionDB, PromotionUsageDB
from .red_packet_db import RedPacketClaimDB, VoucherDB

__all__ = [
    "MerchantDB",
    "ProductDB",
    "OrderDB",
    "OrderItemDB",
    "PromotionDB",
    "PromotionUsageDB",
    "RedPacketClaimDB",
    "VoucherDB"
]
