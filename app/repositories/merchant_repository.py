"""
商家数据库操作层（只读）
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.inventory import Merchant
from app.models.database.merchant_db import MerchantDB


class MerchantRepository:
    """商家数据库操作层"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, merchant_id: str) -> Optional[MerchantDB]:
        """根据ID获取商家"""
        result = await self.db.execute(
            select(MerchantDB).where(MerchantDB.id == merchant_id)
        )
        return result.scalar_one_or_none()

    def to_model(self, db_merchant: MerchantDB) -> Merchant:
        """转换为Pydantic模型"""
        return Merchant(
            merchant_id=db_merchant.id,
            name=db_merchant.name,
            status=db_merchant.status,
            minimum_order_amount=db_merchant.minimum_order_amount or 0
        )
