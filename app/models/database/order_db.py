"""
订单相关数据库模型
"""

import uuid

from sqlalchemy import Column, String, Integer, Numeric, Text, Boolean, DateTime, ForeignKey, CheckConstraint, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base


class OrderDB(Base):
    """订单数据库表"""

    __tablename__ = "orders"

    # 主键和参与方
    id = Column(String(50), primary_key=True, default=lambda: str(uuid.uuid4()), comment="订单ID")
    customer_id = Column(String(50), nullable=False, index=True, comment="顾客ID")
    merchant_id = Column(String(50), nullable=False, index=True, comment="商家ID")
    order_number = Column(String(50), nullable=False, unique=True, comment="订单编号")
    verification_code = Column(String(10), nullable=False, unique=True, comment="核销码")

    # 金额信息
    subtotal_amount = Column(Numeric(12, 2), nullable=False, comment="商品原价合计")
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0, comment="优惠活动折扣")
    voucher_amount = Column(Numeric(12, 2), nullable=False, default=0, comment="代金券抵扣")
    total_amount = Column(Numeric(12, 2), nullable=False, comment="应付金额")

    # 应用的优惠信息
    promotion_id = Column(String(50), comment="应用的优惠活动ID")
    voucher_id = Column(String(50), comment="使用的代金券ID")

    # 收货信息
    delivery_name = Column(String(100), nullable=False, comment="收货人")
    delivery_phone = Column(String(20), nullable=False, comment="联系电话")
    delivery_address = Column(Text, nullable=False, comment="收货地址")

    # 订单状态
    status = Column(String(30), nullable=False, default="pending", index=True, comment="订单状态")
    inventory_restored = Column(Boolean, nullable=False, default=False, comment="库存是否已恢复")
    cancel_reason = Column(Text, comment="取消原因")

    # 时间戳
    payment_deadline = Column(DateTime, comment="支付截止时间")
    auto_close_at = Column(DateTime, index=True, comment="超时自动关闭时间")
    created_at = Column(DateTime, nullable=False, server_default=func.now(), index=True, comment="创建时间")
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), comment="更新时间")
    paid_at = Column(DateTime, comment="顾客付款时间")
    confirmed_at = Column(DateTime, comment="商家确认收款时间")
    received_at = Column(DateTime, comment="顾客确认收货时间")
    cancelled_at = Column(DateTime, comment="取消时间")
    closed_at = Column(DateTime, comment="超时关闭时间")

    # 关系映射
    order_items = relationship("OrderItemDB", back_populates="order", cascade="all, delete-orphan")

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'customer_paid', 'timeout_closed', 'merchant_confirmed', 'customer_received', 'cancelled')",
            name="ck_orders_status"
        ),
        CheckConstraint("total_amount >= 0", name="ck_orders_total_amount"),
        Index('idx_orders_status_auto_close', 'status', 'auto_close_at'),
        {'comment': '订单主表'}
    )


class OrderItemDB(Base):
    """订单项目数据库表"""

    __tablename__ = "order_items"

    id = Column(String(50), primary_key=True, default=lambda: str(uuid.uuid4()), comment="项目ID")
    order_id = Column(String(50), ForeignKey("orders.id"), nullable=False, index=True, comment="订单ID")

    # 商品信息快照
    product_id = Column(String(50), nullable=False, index=True, comment="商品ID")
    product_name = Column(String(200), nullable=False, comment="商品名称")

    # 价格信息
    quantity = Column(Integer, nullable=False, comment="数量")
    unit_price = Column(Numeric(10, 2), nullable=False, comment="单价")
    total_price = Column(Numeric(12, 2), nullable=False, comment="小计")

    # 关系映射
    order = relationship("OrderDB", back_populates="order_items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity"),
        {'comment': '订单项目表'}
    )
