"""
红包领取与代金券数据库操作层
"""

import uuid
from typing import List, Optional
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update, and_, desc, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.red_packet import Voucher, VoucherStatus
from app.models.database.red_packet_db import RedPacketClaimDB, VoucherDB


class RedPacketRepository:
    """红包领取与代金券数据库操作层"""

    def __init__(self, db: AsyncSession):
        self.db = db

    @staticmethod
    def new_id() -> str:
        return str(uuid.uuid4())

    async def claim_exists(self, promotion_id: str, user_id: str) -> bool:
        """用户是否已领取过该红包"""
        result = await self.db.execute(
            select(func.count(RedPacketClaimDB.id)).where(
                and_(
                    RedPacketClaimDB.promotion_id == promotion_id,
                    RedPacketClaimDB.user_id == user_id
                )
            )
        )
        return (result.scalar() or 0) > 0

    async def voucher_code_exists(self, voucher_code: str) -> bool:
        result = await self.db.execute(
            select(func.count(VoucherDB.id)).where(VoucherDB.voucher_code == voucher_code)
        )
        return (result.scalar() or 0) > 0

    async def create_claim(
        self,
        promotion_id: str,
        user_id: str,
        amount: Decimal,
        voucher_id: str,
        claimed_at: datetime
    ) -> RedPacketClaimDB:
        """写入领取记录

        (promotion_id, user_id) 唯一约束冲突时 flush 抛出 IntegrityError，由调用方处理。
        """
        claim = RedPacketClaimDB(
            id=str(uuid.uuid4()),
            promotion_id=promotion_id,
            user_id=user_id,
            claimed_amount=amount,
            voucher_id=voucher_id,
            claimed_at=claimed_at
        )
        self.db.add(claim)
        await self.db.flush()
        return claim

    async def create_voucher(
        self,
        voucher_id: str,
        user_id: str,
        promotion_id: str,
        claim_id: str,
        voucher_code: str,
        amount: Decimal,
        created_at: datetime,
        expires_at: datetime
    ) -> VoucherDB:
        """写入代金券

        在保存点内写入，编码唯一约束冲突时只回滚本次写入并抛出 IntegrityError，
        外层事务（领取记录、红包递减）保持不变，调用方可以换编码重试。
        """
        voucher = VoucherDB(
            id=voucher_id,
            user_id=user_id,
            promotion_id=promotion_id,
            red_packet_claim_id=claim_id,
            voucher_code=voucher_code,
            amount=amount,
            status=VoucherStatus.ACTIVE.value,
            expires_at=expires_at,
            created_at=created_at
        )
        async with self.db.begin_nested():
            self.db.add(voucher)
        return voucher

    async def get_voucher_by_code(self, voucher_code: str) -> Optional[VoucherDB]:
        result = await self.db.execute(
            select(VoucherDB)
            .where(VoucherDB.voucher_code == voucher_code)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def mark_voucher_used(self, voucher_id: str, order_id: str, now: datetime) -> bool:
        """条件核销代金券，只有可用且未绑定订单的代金券能被核销"""
        result = await self.db.execute(
            update(VoucherDB)
            .where(
                and_(
                    VoucherDB.id == voucher_id,
                    VoucherDB.status == VoucherStatus.ACTIVE.value,
                    VoucherDB.used_order_id.is_(None),
                    VoucherDB.expires_at > now
                )
            )
            .values(
                status=VoucherStatus.USED.value,
                used_at=now,
                used_order_id=order_id,
                updated_at=now
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def get_user_vouchers(
        self,
        user_id: str,
        status_filter: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[VoucherDB]:
        """获取用户代金券列表"""
        conditions = [VoucherDB.user_id == user_id]
        if status_filter:
            conditions.append(VoucherDB.status == status_filter)

        result = await self.db.execute(
            select(VoucherDB)
            .where(and_(*conditions))
            .order_by(desc(VoucherDB.created_at))
            .limit(limit)
            .offset(offset)
        )
        return result.scalars().all()

    async def expire_vouchers(self, now: datetime) -> int:
        """将已过期的可用代金券标记为过期，返回处理数量"""
        result = await self.db.execute(
            update(VoucherDB)
            .where(
                and_(
                    VoucherDB.status == VoucherStatus.ACTIVE.value,
                    VoucherDB.expires_at <= now
                )
            )
            .values(
                status=VoucherStatus.EXPIRED.value,
                updated_at=now
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def to_model(self, db_voucher: VoucherDB) -> Voucher:
        """转换为Pydantic模型"""
        return Voucher(
            voucher_id=db_voucher.id,
            user_id=db_voucher.user_id,
            promotion_id=db_voucher.promotion_id,
            voucher_code=db_voucher.voucher_code,
            amount=db_voucher.amount,
            status=db_voucher.status,
            expires_at=db_voucher.expires_at,
            used_at=db_voucher.used_at,
            used_order_id=db_voucher.used_order_id,
            created_at=db_voucher.created_at
        )
