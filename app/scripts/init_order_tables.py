"""
订单核心数据库表初始化脚本

运行方式:
python -m app.scripts.init_order_tables
"""

import asyncio
import logging
from sqlalchemy import text

from app.core.database import init_database, close_database, Base
# 导入所有数据库模型以确保表被注册
from app.models import database  # noqa: F401

logger = logging.getLogger(__name__)

# 列表查询与超时扫描用到的组合索引
ADDITIONAL_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_orders_customer_created ON orders(customer_id, created_at DESC);",
    "CREATE INDEX IF NOT EXISTS idx_orders_merchant_status ON orders(merchant_id, status);",
    "CREATE INDEX IF NOT EXISTS idx_products_merchant_available ON products(merchant_id, is_available);",
    "CREATE INDEX IF NOT EXISTS idx_promotions_merchant_window ON promotions(merchant_id, start_date, end_date);",
    "CREATE INDEX IF NOT EXISTS idx_promotion_usage_customer ON promotion_usage(promotion_id, customer_id);",
    "CREATE INDEX IF NOT EXISTS idx_user_vouchers_status_expires ON user_vouchers(status, expires_at);",
]


async def create_order_tables():
    """创建订单、库存、优惠和红包相关数据表"""
    try:
        await init_database()

        from app.core.database import engine as db_engine

        if not db_engine:
            raise RuntimeError("数据库引擎未初始化")

        logger.info("开始创建订单核心数据表...")

        async with db_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            logger.info("数据表创建成功")

            for index_sql in ADDITIONAL_INDEXES:
                await conn.execute(text(index_sql))
            logger.info(f"组合索引创建成功: count={len(ADDITIONAL_INDEXES)}")

        logger.info("订单核心数据库初始化完成")

    except Exception as e:
        logger.error(f"创建订单核心数据表失败: {e}")
        raise
    finally:
        await close_database()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(create_order_tables())
