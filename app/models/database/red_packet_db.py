"""
红包领取与代金券数据库模型
"""

import uuid

from sqlalchemy import Column, String, Numeric, DateTime, CheckConstraint, UniqueConstraint
from sqlalchemy.sql import func
from app.core.database import Base


class RedPacketClaimDB(Base):
    """红包领取记录表"""

    __tablename__ = "red_packet_claims"

    id = Column(String(50), primary_key=True, default=lambda: str(uuid.uuid4()), comment="领取记录ID")
    promotion_id = Column(String(50), nullable=False, index=True, comment="红包活动ID")
    user_id = Column(String(50), nullable=False, index=True, comment="领取用户ID")
    claimed_amount = Column(Numeric(10, 2), nullable=False, comment="领取金额")
    voucher_id = Column(String(50), comment="生成的代金券ID")
    claimed_at = Column(DateTime, server_default=func.now(), comment="领取时间")

    __table_args__ = (
        # 同一用户对同一红包只能领取一次，以存储层约束为准
        UniqueConstraint("promotion_id", "user_id", name="uq_red_packet_claims_promotion_user"),
        CheckConstraint("claimed_amount > 0", name="ck_red_packet_claims_amount"),
        {'comment': '红包领取记录表'}
    )


class VoucherDB(Base):
    """用户代金券表"""

    __tablename__ = "user_vouchers"

    id = Column(String(50), primary_key=True, default=lambda: str(uuid.uuid4()), comment="代金券ID")
    user_id = Column(String(50), nullable=False, index=True, comment="持有用户ID")
    promotion_id = Column(String(50), nullable=False, index=True, comment="来源活动ID")
    red_packet_claim_id = Column(String(50), comment="来源领取记录ID")
    voucher_code = Column(String(20), nullable=False, unique=True, comment="代金券编码")
    amount = Column(Numeric(10, 2), nullable=False, comment="面值")

    status = Column(String(20), nullable=False, default="active", index=True, comment="状态")
    expires_at = Column(DateTime, nullable=False, index=True, comment="过期时间")
    used_at = Column(DateTime, comment="使用时间")
    used_order_id = Column(String(50), comment="使用的订单ID")

    created_at = Column(DateTime, server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), comment="更新时间")

    __table_args__ = (
        CheckConstraint("status IN ('active', 'used', 'expired')", name="ck_user_vouchers_status"),
        CheckConstraint("amount > 0", name="ck_user_vouchers_amount"),
        {'comment': '用户代金券表'}
    )
