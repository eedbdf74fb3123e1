"""
库存业务服务层
"""

import logging
from typing import Dict, List, Optional

from app.core.exceptions import InsufficientStockError
from app.models.inventory import Product, StockRequest, StockCheckReport
from app.repositories.inventory_repository import InventoryRepository

logger = logging.getLogger(__name__)


class InventoryService:
    """库存台账

    扣减与订单写入处于同一事务中，任一商品扣减失败时抛出异常，
    由外层事务回滚此前已扣减的商品。
    """

    def __init__(self, inventory_repo: InventoryRepository):
        self.inventory_repo = inventory_repo

    async def get_products(self, product_ids: List[str]) -> Dict[str, Product]:
        db_products = await self.inventory_repo.get_products(product_ids)
        return {pid: self.inventory_repo.to_model(p) for pid, p in db_products.items()}

    async def check_batch(self, items: List[StockRequest]) -> StockCheckReport:
        """批量检查库存，不修改数据"""
        return await self.inventory_repo.check_batch(items)

    async def ensure_available(self, items: List[StockRequest]) -> StockCheckReport:
        """预检库存，不足时一次性列出所有不足的商品"""
        report = await self.check_batch(items)
        if not report.is_sufficient:
            insufficient = [item.model_dump() for item in report.insufficient_items]
            logger.warning(f"库存预检不足: {insufficient}")
            raise InsufficientStockError(insufficient)
        return report

    async def reserve_and_deduct(
        self,
        product_id: str,
        quantity: int,
        product_name: Optional[str] = None
    ) -> None:
        """原子扣减单个商品库存"""
        success = await self.inventory_repo.reserve_and_deduct(product_id, quantity)
        if success:
            return

        product = await self.inventory_repo.get_product(product_id)
        available = product.stock_quantity if product else 0
        logger.warning(
            f"库存扣减失败: product_id={product_id}, requested={quantity}, available={available}"
        )
        raise InsufficientStockError([{
            "product_id": product_id,
            "product_name": product_name or (product.name if product else None),
            "requested_quantity": quantity,
            "available_stock": available,
        }])

    async def reserve_items(self, items: List[StockRequest]) -> None:
        """按顺序扣减多个商品，全部成功或抛出异常"""
        # 固定加锁顺序，避免并发下单互相等待
        for item in sorted(items, key=lambda i: i.product_id):
            await self.reserve_and_deduct(item.product_id, item.quantity)

    async def restore(self, product_id: str, quantity: int) -> None:
        """恢复单个商品库存"""
        await self.inventory_repo.restore(product_id, quantity)
        logger.info(f"恢复库存: product_id={product_id}, quantity={quantity}")

    async def restore_items(self, items: List[StockRequest]) -> None:
        for item in sorted(items, key=lambda i: i.product_id):
            await self.restore(item.product_id, item.quantity)
