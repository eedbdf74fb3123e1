"""
测试配置文件 - pytest fixtures和共用配置

设置 TEST_DATABASE_URL 时使用真实PostgreSQL，否则使用临时目录下的SQLite文件库。
SQLite 下每个事务以 BEGIN IMMEDIATE 开始，并发会话按事务串行执行。
"""

import os
import uuid
import pytest
import pytest_asyncio
from decimal import Decimal
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from app.core.database import Base
from app.models.database import (
    MerchantDB,
    ProductDB,
    OrderDB,
    PromotionDB,
    VoucherDB
)


@pytest_asyncio.fixture(scope="function")
async def test_db_engine(tmp_path):
    """测试数据库引擎"""
    test_db_url = os.getenv("TEST_DATABASE_URL")

    if test_db_url:
        engine = create_async_engine(test_db_url, echo=False, pool_pre_ping=True)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
    else:
        engine = create_async_engine(
            f"sqlite+aiosqlite:///{tmp_path / 'test_orders.db'}",
            echo=False,
            connect_args={"timeout": 30}
        )

        @event.listens_for(engine.sync_engine, "connect")
        def _disable_driver_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine.sync_engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

    # 创建表结构
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(test_db_engine) -> async_sessionmaker:
    return async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncSession:
    """测试数据库会话（单会话测试使用）"""
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@pytest.fixture
def mock_cache():
    """模拟缓存"""
    cache = AsyncMock()
    cache.get = AsyncMock(return_value=None)
    cache.set = AsyncMock(return_value=True)
    cache.delete = AsyncMock(return_value=True)
    return cache


class DictCache:
    """内存字典缓存，接口与 SimpleCache 一致"""

    def __init__(self):
        self.data: Dict[str, Any] = {}

    async def get(self, key: str) -> Optional[Any]:
        return self.data.get(key)

    async def set(self, key: str, value: Any, ttl: int = 3600) -> bool:
        self.data[key] = value
        return True

    async def delete(self, key: str) -> bool:
        return self.data.pop(key, None) is not None


@pytest.fixture
def dict_cache():
    return DictCache()


@pytest.fixture
def now():
    """固定的当前时间"""
    return datetime(2025, 6, 1, 12, 0, 0)


class DataFactory:
    """测试数据工厂，每次写入都在独立事务中提交"""

    def __init__(self, session_maker: async_sessionmaker, now: datetime):
        self.session_maker = session_maker
        self.now = now

    async def _add(self, obj):
        async with self.session_maker() as session:
            async with session.begin():
                session.add(obj)
        return obj

    async def merchant(
        self,
        status: str = "active",
        minimum_order_amount: Decimal = Decimal("0"),
        **kwargs
    ) -> MerchantDB:
        return await self._add(MerchantDB(
            id=kwargs.pop("id", None) or f"merchant_{uuid.uuid4().hex[:8]}",
            owner_id=kwargs.pop("owner_id", "owner_001"),
            name=kwargs.pop("name", "测试餐厅"),
            category=kwargs.pop("category", "restaurant"),
            status=status,
            minimum_order_amount=minimum_order_amount,
            created_at=self.now,
            updated_at=self.now,
            **kwargs
        ))

    async def product(
        self,
        merchant_id: str,
        price: Decimal = Decimal("10.00"),
        stock_quantity: int = 10,
        **kwargs
    ) -> ProductDB:
        return await self._add(ProductDB(
            id=kwargs.pop("id", None) or f"product_{uuid.uuid4().hex[:8]}",
            merchant_id=merchant_id,
            name=kwargs.pop("name", "招牌牛肉面"),
            category=kwargs.pop("category", "noodles"),
            price=price,
            stock_quantity=stock_quantity,
            is_available=kwargs.pop("is_available", True),
            created_at=self.now,
            updated_at=self.now,
            **kwargs
        ))

    async def promotion(
        self,
        merchant_id: str,
        discount_type: str = "fixed_amount",
        discount_value: Decimal = Decimal("5.00"),
        promotion_type: str = "general",
        **kwargs
    ) -> PromotionDB:
        return await self._add(PromotionDB(
            id=kwargs.pop("id", None) or f"promo_{uuid.uuid4().hex[:8]}",
            merchant_id=merchant_id,
            title=kwargs.pop("title", "测试活动"),
            discount_type=discount_type,
            discount_value=discount_value,
            promotion_type=promotion_type,
            minimum_amount=kwargs.pop("minimum_amount", Decimal("0")),
            applicable_products=kwargs.pop("applicable_products", []),
            applicable_categories=kwargs.pop("applicable_categories", []),
            start_date=kwargs.pop("start_date", self.now - timedelta(days=1)),
            end_date=kwargs.pop("end_date", self.now + timedelta(days=7)),
            is_active=kwargs.pop("is_active", True),
            current_usage_count=kwargs.pop("current_usage_count", 0),
            current_usage_product_count=kwargs.pop("current_usage_product_count", 0),
            total_red_packets=kwargs.pop("total_red_packets", 0),
            remaining_red_packets=kwargs.pop("remaining_red_packets", 0),
            voucher_validity_days=kwargs.pop("voucher_validity_days", 30),
            created_at=self.now,
            updated_at=self.now,
            **kwargs
        ))

    async def red_packet(
        self,
        merchant_id: str,
        total: int = 10,
        remaining: Optional[int] = None,
        average: Decimal = Decimal("5.00"),
        **kwargs
    ) -> PromotionDB:
        return await self.promotion(
            merchant_id,
            discount_type="fixed_amount",
            discount_value=average,
            promotion_type="lucky_red_packet",
            total_red_packets=total,
            remaining_red_packets=total if remaining is None else remaining,
            **kwargs
        )

    async def voucher(
        self,
        user_id: str,
        promotion_id: str,
        amount: Decimal = Decimal("5.00"),
        status: str = "active",
        expires_at: Optional[datetime] = None,
        voucher_code: Optional[str] = None
    ) -> VoucherDB:
        return await self._add(VoucherDB(
            id=str(uuid.uuid4()),
            user_id=user_id,
            promotion_id=promotion_id,
            voucher_code=voucher_code or f"V{uuid.uuid4().int % 10_000_000:07d}",
            amount=amount,
            status=status,
            expires_at=expires_at or self.now + timedelta(days=30),
            created_at=self.now,
            updated_at=self.now
        ))

    async def get(self, model, obj_id: str):
        """在新会话中读取最新数据"""
        async with self.session_maker() as session:
            return await session.get(model, obj_id)

    async def stock_of(self, product_id: str) -> int:
        product = await self.get(ProductDB, product_id)
        return product.stock_quantity

    async def order(self, order_id: str) -> OrderDB:
        return await self.get(OrderDB, order_id)


@pytest_asyncio.fixture
async def factory(session_maker, now) -> DataFactory:
    return DataFactory(session_maker, now)


def checkout_payload(
    merchant_id: str,
    items: List[Dict[str, Any]],
    **kwargs
) -> Dict[str, Any]:
    """构造下单请求数据"""
    payload = {
        "merchant_id": merchant_id,
        "items": items,
        "delivery_name": "张三",
        "delivery_phone": "13800138000",
        "delivery_address": "北京市朝阳区建国路88号",
    }
    payload.update(kwargs)
    return payload


@pytest.fixture
def make_checkout():
    return checkout_payload
