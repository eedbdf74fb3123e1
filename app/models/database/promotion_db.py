"""
优惠活动数据库模型
"""

import uuid

from sqlalchemy import Column, String, Integer, Numeric, Text, Boolean, DateTime, JSON, CheckConstraint
from sqlalchemy.sql import func
from app.core.database import Base


class PromotionDB(Base):
    """优惠活动数据库表"""

    __tablename__ = "promotions"

    # 主键和基本信息
    id = Column(String(50), primary_key=True, default=lambda: str(uuid.uuid4()), comment="优惠活动ID")
    merchant_id = Column(String(50), nullable=False, index=True, comment="商家ID")
    title = Column(String(200), nullable=False, comment="活动标题")
    description = Column(Text, comment="活动描述")

    # 折扣信息
    discount_type = Column(String(20), nullable=False, default="fixed_amount", comment="折扣计算类型")
    discount_value = Column(Numeric(10, 2), nullable=False, comment="折扣值（百分比或金额，红包为平均金额）")
    promotion_type = Column(String(50), nullable=False, default="general", comment="活动类型")
    minimum_amount = Column(Numeric(10, 2), nullable=False, default=0, comment="最低消费金额")

    # 适用范围
    applicable_products = Column(JSON, default=list, comment="适用商品ID列表")
    applicable_categories = Column(JSON, default=list, comment="适用分类列表")

    # 有效期
    start_date = Column(DateTime, nullable=False, index=True, comment="开始时间")
    end_date = Column(DateTime, nullable=False, index=True, comment="结束时间")
    is_active = Column(Boolean, nullable=False, default=True, comment="是否启用")

    # 使用限制
    max_usage_count = Column(Integer, comment="总使用次数限制（按订单）")
    current_usage_count = Column(Integer, nullable=False, default=0, comment="已使用次数")
    max_usage_per_customer = Column(Integer, comment="每人使用商品数限制")
    max_usage_product_count = Column(Integer, comment="总使用商品数限制")
    current_usage_product_count = Column(Integer, nullable=False, default=0, comment="已使用商品数")

    # 拼手气红包
    total_red_packets = Column(Integer, nullable=False, default=0, comment="红包总数量")
    remaining_red_packets = Column(Integer, nullable=False, default=0, comment="红包剩余数量")
    voucher_validity_days = Column(Integer, nullable=False, default=30, comment="代金券有效天数")

    # 时间戳
    created_at = Column(DateTime, server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), comment="更新时间")

    __table_args__ = (
        CheckConstraint("discount_type IN ('percentage', 'fixed_amount')", name="ck_promotions_discount_type"),
        CheckConstraint(
            "promotion_type IN ('general', 'minimum_amount', 'product_specific', 'category_specific', 'lucky_red_packet')",
            name="ck_promotions_promotion_type"
        ),
        CheckConstraint("discount_value >= 0", name="ck_promotions_discount_value"),
        CheckConstraint(
            "discount_type <> 'percentage' OR discount_value <= 100",
            name="ck_promotions_percentage_value"
        ),
        CheckConstraint(
            "remaining_red_packets >= 0 AND remaining_red_packets <= total_red_packets",
            name="ck_promotions_remaining_red_packets"
        ),
        CheckConstraint(
            "max_usage_product_count IS NULL OR current_usage_product_count <= max_usage_product_count",
            name="ck_promotions_usage_product_count"
        ),
        {'comment': '优惠活动表'}
    )


class PromotionUsageDB(Base):
    """优惠活动使用记录表（只追加）"""

    __tablename__ = "promotion_usage"

    id = Column(String(50), primary_key=True, default=lambda: str(uuid.uuid4()), comment="使用记录ID")
    promotion_id = Column(String(50), nullable=False, index=True, comment="优惠活动ID")
    order_id = Column(String(50), nullable=False, unique=True, comment="关联订单ID")
    customer_id = Column(String(50), nullable=False, index=True, comment="顾客ID")

    discount_amount = Column(Numeric(10, 2), nullable=False, comment="折扣金额")
    product_count = Column(Integer, nullable=False, default=1, comment="本次使用涉及的商品数量")

    created_at = Column(DateTime, server_default=func.now(), comment="使用时间")

    __table_args__ = (
        CheckConstraint("discount_amount >= 0", name="ck_promotion_usage_discount_amount"),
        {'comment': '优惠活动使用记录表'}
    )
