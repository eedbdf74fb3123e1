"""
红包与代金券数据模型
"""

from decimal import Decimal
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field
from enum import Enum


class VoucherStatus(str, Enum):
    """代金券状态枚举"""
    ACTIVE = "active"  # 可用
    USED = "used"  # 已使用
    EXPIRED = "expired"  # 已过期


class Voucher(BaseModel):
    """代金券模型"""

    voucher_id: str
    user_id: str
    promotion_id: str
    voucher_code: str
    amount: Decimal = Field(..., gt=0)
    status: VoucherStatus = VoucherStatus.ACTIVE
    expires_at: datetime
    used_at: Optional[datetime] = None
    used_order_id: Optional[str] = None
    created_at: Optional[datetime] = None

    def is_usable(self, now: datetime) -> bool:
        return self.status == VoucherStatus.ACTIVE and self.expires_at > now


class RedPacketClaimResult(BaseModel):
    """领取红包结果"""

    claim_id: str
    voucher_id: str
    voucher_code: str
    amount: Decimal
    expires_at: datetime
