"""
库存数据库操作层

库存是高并发争用的单行计数器，所有扣减都用一条带前置条件的
UPDATE 完成，以受影响行数判断成败，不做先读后写。
"""

import logging
from typing import Dict, List, Optional
from datetime import datetime

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.inventory import Product, StockRequest, StockCheckItem, StockCheckReport
from app.models.database.merchant_db import ProductDB

logger = logging.getLogger(__name__)


class InventoryRepository:
    """库存数据库操作层"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_product(self, product_id: str) -> Optional[ProductDB]:
        """根据ID获取商品（总是读取最新库存）"""
        result = await self.db.execute(
            select(ProductDB)
            .where(ProductDB.id == product_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_products(self, product_ids: List[str]) -> Dict[str, ProductDB]:
        """批量获取商品，按ID索引"""
        if not product_ids:
            return {}
        result = await self.db.execute(
            select(ProductDB)
            .where(ProductDB.id.in_(product_ids))
            .execution_options(populate_existing=True)
        )
        return {product.id: product for product in result.scalars().all()}

    async def check_batch(self, items: List[StockRequest]) -> StockCheckReport:
        """批量检查库存（不修改数据）

        不存在或已下架的商品按库存0处理，报告中列出所有不足的商品。
        """
        products = await self.get_products([item.product_id for item in items])

        report_items = []
        for item in items:
            product = products.get(item.product_id)
            if product is None or not product.is_available:
                available = 0
            else:
                available = product.stock_quantity
            report_items.append(StockCheckItem(
                product_id=item.product_id,
                product_name=product.name if product else None,
                requested_quantity=item.quantity,
                available_stock=available,
                is_sufficient=available >= item.quantity
            ))

        return StockCheckReport(items=report_items)

    async def reserve_and_deduct(self, product_id: str, quantity: int) -> bool:
        """原子扣减库存，库存不足时不修改并返回False"""
        result = await self.db.execute(
            update(ProductDB)
            .where(
                and_(
                    ProductDB.id == product_id,
                    ProductDB.stock_quantity >= quantity
                )
            )
            .values(
                stock_quantity=ProductDB.stock_quantity - quantity,
                updated_at=datetime.now()
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def restore(self, product_id: str, quantity: int) -> bool:
        """恢复库存（无条件增加）"""
        result = await self.db.execute(
            update(ProductDB)
            .where(ProductDB.id == product_id)
            .values(
                stock_quantity=ProductDB.stock_quantity + quantity,
                updated_at=datetime.now()
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(f"恢复库存时商品不存在: product_id={product_id}, quantity={quantity}")
        return result.rowcount > 0

    def to_model(self, db_product: ProductDB) -> Product:
        """转换为Pydantic模型"""
        return Product(
            product_id=db_product.id,
            merchant_id=db_product.merchant_id,
            name=db_product.name,
            category=db_product.category,
            price=db_product.price,
            stock_quantity=db_product.stock_quantity,
            is_available=db_product.is_available
        )
