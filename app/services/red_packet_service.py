"""
拼手气红包业务服务层
"""

import random
import logging
from typing import List, Optional
from decimal import Decimal
from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError

from app.config.pricing_rules import (
    RED_PACKET_SPREAD,
    RED_PACKET_MIN_AMOUNT,
    VOUCHER_CODE_PREFIX,
    VOUCHER_CODE_DIGITS,
    round_money
)
from app.core.config import settings
from app.core.exceptions import (
    PromotionNotActiveError,
    RedPacketExhaustedError,
    RedPacketAlreadyClaimedError,
    ConcurrencyConflictError
)
from app.models.red_packet import Voucher, RedPacketClaimResult
from app.models.database.red_packet_db import VoucherDB
from app.repositories.promotion_repository import PromotionRepository
from app.repositories.red_packet_repository import RedPacketRepository

logger = logging.getLogger(__name__)


class RedPacketService:
    """拼手气红包服务

    领取流程在一个事务内完成：检查活动 -> 检查重复领取 -> 随机金额 ->
    条件递减剩余数量 -> 生成代金券编码 -> 写入领取记录和代金券。
    递减之后的任何失败都由事务回滚。
    """

    def __init__(
        self,
        promotion_repo: PromotionRepository,
        red_packet_repo: RedPacketRepository,
        rng: Optional[random.Random] = None
    ):
        self.promotion_repo = promotion_repo
        self.red_packet_repo = red_packet_repo
        self.rng = rng or random.SystemRandom()

    def draw_amount(self, average: Decimal) -> Decimal:
        """在平均金额上下浮动，最低0.01元"""
        offset = Decimal(str(self.rng.uniform(-float(RED_PACKET_SPREAD), float(RED_PACKET_SPREAD))))
        return round_money(max(average + offset, RED_PACKET_MIN_AMOUNT))

    def _new_voucher_code(self) -> str:
        number = self.rng.randint(0, 10 ** VOUCHER_CODE_DIGITS - 1)
        return f"{VOUCHER_CODE_PREFIX}{number:0{VOUCHER_CODE_DIGITS}d}"

    async def _generate_voucher_code(self) -> str:
        """生成未被占用的代金券编码，超过重试次数时抛出可重试异常"""
        for _ in range(settings.voucher_code_max_attempts):
            code = self._new_voucher_code()
            if not await self.red_packet_repo.voucher_code_exists(code):
                return code

        logger.error(f"代金券编码生成失败，已重试{settings.voucher_code_max_attempts}次")
        raise ConcurrencyConflictError("代金券编码生成失败，请稍后重试")

    async def claim(
        self,
        promotion_id: str,
        user_id: str,
        now: Optional[datetime] = None
    ) -> RedPacketClaimResult:
        """领取拼手气红包"""
        now = now or datetime.now()

        db_promotion = await self.promotion_repo.get_by_id(promotion_id)
        if not db_promotion:
            raise PromotionNotActiveError(promotion_id)

        promotion = self.promotion_repo.to_model(db_promotion)
        if not promotion.is_red_packet or not promotion.is_in_window(now):
            raise PromotionNotActiveError(promotion_id)

        if promotion.remaining_red_packets <= 0:
            raise RedPacketExhaustedError(promotion_id)

        if await self.red_packet_repo.claim_exists(promotion_id, user_id):
            logger.warning(f"重复领取红包: promotion_id={promotion_id}, user_id={user_id}")
            raise RedPacketAlreadyClaimedError(promotion_id, user_id)

        amount = self.draw_amount(promotion.discount_value)

        if not await self.promotion_repo.decrement_red_packet(promotion_id):
            logger.warning(f"红包已抢完: promotion_id={promotion_id}, user_id={user_id}")
            raise RedPacketExhaustedError(promotion_id)

        expires_at = now + timedelta(days=promotion.voucher_validity_days)

        # 先生成代金券ID，领取记录和代金券互相引用
        voucher_id = self.red_packet_repo.new_id()

        try:
            claim = await self.red_packet_repo.create_claim(
                promotion_id=promotion_id,
                user_id=user_id,
                amount=amount,
                voucher_id=voucher_id,
                claimed_at=now
            )
        except IntegrityError:
            logger.warning(f"重复领取红包（唯一约束）: promotion_id={promotion_id}, user_id={user_id}")
            raise RedPacketAlreadyClaimedError(promotion_id, user_id)

        voucher = await self._create_voucher(
            voucher_id=voucher_id,
            user_id=user_id,
            promotion_id=promotion_id,
            claim_id=claim.id,
            amount=amount,
            created_at=now,
            expires_at=expires_at
        )

        logger.info(
            f"领取红包成功: promotion_id={promotion_id}, user_id={user_id}, "
            f"amount={amount}, voucher_code={voucher.voucher_code}"
        )

        return RedPacketClaimResult(
            claim_id=claim.id,
            voucher_id=voucher.id,
            voucher_code=voucher.voucher_code,
            amount=amount,
            expires_at=expires_at
        )

    async def _create_voucher(self, **fields) -> VoucherDB:
        """写入代金券，编码与并发写入的代金券冲突时换编码重试"""
        for _ in range(settings.voucher_code_max_attempts):
            voucher_code = await self._generate_voucher_code()
            try:
                return await self.red_packet_repo.create_voucher(voucher_code=voucher_code, **fields)
            except IntegrityError:
                logger.warning(f"代金券编码冲突，重新生成: voucher_code={voucher_code}")

        logger.error(f"代金券写入失败，已重试{settings.voucher_code_max_attempts}次")
        raise ConcurrencyConflictError("代金券编码冲突，请稍后重试")

    async def commit(self) -> None:
        """提交当前事务"""
        await self.red_packet_repo.db.commit()

    async def list_user_vouchers(
        self,
        user_id: str,
        only_usable: bool = False,
        now: Optional[datetime] = None
    ) -> List[Voucher]:
        """获取用户代金券，only_usable 时只返回可用且未过期的"""
        now = now or datetime.now()
        db_vouchers = await self.red_packet_repo.get_user_vouchers(
            user_id,
            status_filter="active" if only_usable else None
        )
        vouchers = [self.red_packet_repo.to_model(v) for v in db_vouchers]
        if only_usable:
            vouchers = [v for v in vouchers if v.is_usable(now)]
        return vouchers

    async def expire_vouchers(self, now: Optional[datetime] = None) -> int:
        """将过期的可用代金券标记为已过期"""
        count = await self.red_packet_repo.expire_vouchers(now or datetime.now())
        if count:
            logger.info(f"标记过期代金券: count={count}")
        return count
