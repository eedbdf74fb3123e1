"""
服务包初始化文件
"""

from .common_cache import SimpleCache, order_cache
from .inventory_service import InventoryService
from .promotion_service import PromotionService
from .red_packet_service import RedPacketService
from .order_service import OrderService
from .order_timeout import OrderTimeoutReaper

__all__ = [
    "SimpleCache",
    "order_cache",
    "InventoryService",
    "PromotionService",
    "RedPacketService",
    "OrderService",
    "OrderTimeoutReaper"
]
