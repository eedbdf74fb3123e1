"""
仓库包初始化文件 - 数据库访问层
"""

from .inventory_repository import InventoryRepository
from .merchant_repository import MerchantRepository
from .order_repository import OrderRepository
from .promotion_repository import PromotionRepository
from .red_packet_repository import RedPacketRepository

__all__ = [
    "InventoryRepository",
    "MerchantRepository",
    "OrderRepository",
    "PromotionRepository",
    "RedPacketRepository"
]
