"""
优惠活动数据库操作层
"""

import uuid
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update, and_, or_, desc, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.promotion import Promotion, PromotionUsage
from app.models.database.promotion_db import PromotionDB, PromotionUsageDB


class PromotionRepository:
    """优惠活动数据库操作层"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, promotion_id: str) -> Optional[PromotionDB]:
        """根据ID获取优惠活动（总是读取最新计数）"""
        result = await self.db.execute(
            select(PromotionDB)
            .where(PromotionDB.id == promotion_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_active_promotions(
        self,
        merchant_id: str,
        now: datetime
    ) -> List[PromotionDB]:
        """获取商家在当前时间有效的优惠活动"""
        query = select(PromotionDB).where(
            and_(
                PromotionDB.merchant_id == merchant_id,
                PromotionDB.is_active.is_(True),
                PromotionDB.start_date <= now,
                PromotionDB.end_date >= now
            )
        ).order_by(desc(PromotionDB.created_at)).execution_options(populate_existing=True)

        result = await self.db.execute(query)
        return result.scalars().all()

    async def get_customer_product_usage(self, promotion_id: str, customer_id: str) -> int:
        """获取顾客在该活动中已使用的商品数量"""
        result = await self.db.execute(
            select(func.coalesce(func.sum(PromotionUsageDB.product_count), 0))
            .where(
                and_(
                    PromotionUsageDB.promotion_id == promotion_id,
                    PromotionUsageDB.customer_id == customer_id
                )
            )
        )
        return int(result.scalar() or 0)

    async def increment_usage(self, promotion_id: str, product_count: int) -> bool:
        """条件递增活动使用计数

        同时检查总商品数上限与总订单数上限，任一不满足则不修改并返回False。
        """
        result = await self.db.execute(
            update(PromotionDB)
            .where(
                and_(
                    PromotionDB.id == promotion_id,
                    or_(
                        PromotionDB.max_usage_product_count.is_(None),
                        PromotionDB.current_usage_product_count + product_count
                        <= PromotionDB.max_usage_product_count
                    ),
                    or_(
                        PromotionDB.max_usage_count.is_(None),
                        PromotionDB.current_usage_count < PromotionDB.max_usage_count
                    )
                )
            )
            .values(
                current_usage_count=PromotionDB.current_usage_count + 1,
                current_usage_product_count=PromotionDB.current_usage_product_count + product_count,
                updated_at=datetime.now()
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def create_usage(
        self,
        promotion_id: str,
        order_id: str,
        customer_id: str,
        discount_amount: Decimal,
        product_count: int
    ) -> PromotionUsageDB:
        """写入使用记录（只追加）"""
        usage = PromotionUsageDB(
            id=str(uuid.uuid4()),
            promotion_id=promotion_id,
            order_id=order_id,
            customer_id=customer_id,
            discount_amount=discount_amount,
            product_count=product_count,
            created_at=datetime.now()
        )
        self.db.add(usage)
        await self.db.flush()
        return usage

    async def get_usage_history(
        self,
        promotion_id: str,
        limit: int = 50,
        offset: int = 0
    ) -> List[PromotionUsageDB]:
        """获取活动使用记录"""
        result = await self.db.execute(
            select(PromotionUsageDB)
            .where(PromotionUsageDB.promotion_id == promotion_id)
            .order_by(desc(PromotionUsageDB.created_at))
            .limit(limit)
            .offset(offset)
        )
        return result.scalars().all()

    async def decrement_red_packet(self, promotion_id: str) -> bool:
        """条件递减红包剩余数量，剩余为0时不修改并返回False"""
        result = await self.db.execute(
            update(PromotionDB)
            .where(
                and_(
                    PromotionDB.id == promotion_id,
                    PromotionDB.remaining_red_packets > 0
                )
            )
            .values(
                remaining_red_packets=PromotionDB.remaining_red_packets - 1,
                updated_at=datetime.now()
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def to_model(self, db_promotion: PromotionDB) -> Promotion:
        """转换为Pydantic模型"""
        return Promotion(
            promotion_id=db_promotion.id,
            merchant_id=db_promotion.merchant_id,
            title=db_promotion.title,
            description=db_promotion.description,
            discount_type=db_promotion.discount_type,
            discount_value=db_promotion.discount_value,
            promotion_type=db_promotion.promotion_type,
            minimum_amount=db_promotion.minimum_amount or 0,
            applicable_products=db_promotion.applicable_products or [],
            applicable_categories=db_promotion.applicable_categories or [],
            start_date=db_promotion.start_date,
            end_date=db_promotion.end_date,
            is_active=db_promotion.is_active,
            max_usage_count=db_promotion.max_usage_count,
            current_usage_count=db_promotion.current_usage_count or 0,
            max_usage_per_customer=db_promotion.max_usage_per_customer,
            max_usage_product_count=db_promotion.max_usage_product_count,
            current_usage_product_count=db_promotion.current_usage_product_count or 0,
            total_red_packets=db_promotion.total_red_packets or 0,
            remaining_red_packets=db_promotion.remaining_red_packets or 0,
            voucher_validity_days=db_promotion.voucher_validity_days or 30
        )

    def usage_to_model(self, db_usage: PromotionUsageDB) -> PromotionUsage:
        return PromotionUsage(
            usage_id=db_usage.id,
            promotion_id=db_usage.promotion_id,
            order_id=db_usage.order_id,
            customer_id=db_usage.customer_id,
            discount_amount=db_usage.discount_amount,
            product_count=db_usage.product_count,
            created_at=db_usage.created_at
        )
