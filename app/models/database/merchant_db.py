"""
商家与商品数据库模型
"""

import uuid

from sqlalchemy import Column, String, Integer, Numeric, Text, Boolean, DateTime, CheckConstraint
from sqlalchemy.sql import func
from app.core.database import Base


class MerchantDB(Base):
    """商家数据库表（由商家管理模块维护，本模块只读）"""

    __tablename__ = "merchants"

    id = Column(String(50), primary_key=True, default=lambda: str(uuid.uuid4()), comment="商家ID")
    owner_id = Column(String(50), nullable=False, index=True, comment="店主用户ID")
    name = Column(String(200), nullable=False, comment="商家名称")
    category = Column(String(100), comment="经营分类")

    # 唯一的状态来源，是否营业由 status 推导
    status = Column(String(20), nullable=False, default="pending", index=True, comment="商家状态")
    minimum_order_amount = Column(Numeric(10, 2), nullable=False, default=0, comment="起送金额")

    created_at = Column(DateTime, server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), comment="更新时间")

    __table_args__ = (
        CheckConstraint("status IN ('pending', 'active', 'suspended')", name="ck_merchants_status"),
        CheckConstraint("minimum_order_amount >= 0", name="ck_merchants_minimum_order_amount"),
        {'comment': '商家信息表'}
    )

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class ProductDB(Base):
    """商品数据库表"""

    __tablename__ = "products"

    id = Column(String(50), primary_key=True, default=lambda: str(uuid.uuid4()), comment="商品ID")
    merchant_id = Column(String(50), nullable=False, index=True, comment="商家ID")
    name = Column(String(200), nullable=False, comment="商品名称")
    description = Column(Text, comment="商品描述")
    category = Column(String(100), index=True, comment="商品分类")

    price = Column(Numeric(10, 2), nullable=False, comment="单价")
    stock_quantity = Column(Integer, nullable=False, default=0, comment="库存数量")
    is_available = Column(Boolean, nullable=False, default=True, index=True, comment="是否上架")

    created_at = Column(DateTime, server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), comment="更新时间")

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_products_price"),
        CheckConstraint("stock_quantity >= 0", name="ck_products_stock_quantity"),
        {'comment': '商品信息表'}
    )
