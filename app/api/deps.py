"""
路由依赖：调用方身份与服务组装

身份认证在网关完成，这里只读取网关透传的请求头。
"""

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db_session
from app.repositories.promotion_repository import PromotionRepository
from app.repositories.red_packet_repository import RedPacketRepository
from app.services.order_service import OrderService
from app.services.promotion_service import PromotionService
from app.services.red_packet_service import RedPacketService


async def get_current_user_id(x_user_id: str = Header(None, alias="X-User-Id")) -> str:
    """当前用户ID（顾客）"""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="缺少用户身份")
    return x_user_id


async def get_current_merchant_id(x_merchant_id: str = Header(None, alias="X-Merchant-Id")) -> str:
    """当前商家ID（商家端接口）"""
    if not x_merchant_id:
        raise HTTPException(status_code=401, detail="缺少商家身份")
    return x_merchant_id


async def get_order_service(db: AsyncSession = Depends(get_db_session)) -> OrderService:
    return OrderService.for_session(db)


async def get_promotion_service(db: AsyncSession = Depends(get_db_session)) -> PromotionService:
    return PromotionService(PromotionRepository(db))


async def get_red_packet_service(db: AsyncSession = Depends(get_db_session)) -> RedPacketService:
    return RedPacketService(PromotionRepository(db), RedPacketRepository(db))
