"""
优惠活动业务服务层
负责优惠筛选、可用性检查、折扣计算和使用记录
"""

import logging
from typing import List, Optional
from decimal import Decimal
from datetime import datetime

from app.config.pricing_rules import round_money
from app.core.exceptions import PromotionIneligibleError
from app.models.promotion import (
    Promotion,
    PromotionType,
    DiscountType,
    IneligibleReason,
    INELIGIBLE_MESSAGES,
    OrderCandidate,
    ApplicablePromotion,
    AvailabilityResult,
    PromotionUsage
)
from app.repositories.promotion_repository import PromotionRepository

logger = logging.getLogger(__name__)


class PromotionService:
    """优惠活动业务服务"""

    def __init__(self, promotion_repo: PromotionRepository):
        self.promotion_repo = promotion_repo

    @staticmethod
    def compute_discount(promotion: Promotion, order_amount: Decimal) -> Decimal:
        """计算折扣金额，结果不超过订单金额"""
        if order_amount <= 0:
            return Decimal("0.00")

        if promotion.discount_type == DiscountType.PERCENTAGE:
            computed = order_amount * promotion.discount_value / Decimal("100")
        else:
            computed = promotion.discount_value

        return round_money(max(min(computed, order_amount), Decimal("0")))

    @staticmethod
    def discount_base(promotion: Promotion, candidate: OrderCandidate) -> Decimal:
        """折扣基数：指定商品/分类活动只计算匹配的商品行，其余为订单总额"""
        if promotion.promotion_type == PromotionType.PRODUCT_SPECIFIC:
            targets = set(promotion.applicable_products)
            return sum(
                (line.line_total for line in candidate.lines if line.product_id in targets),
                Decimal("0")
            )
        if promotion.promotion_type == PromotionType.CATEGORY_SPECIFIC:
            targets = set(promotion.applicable_categories)
            return sum(
                (line.line_total for line in candidate.lines if line.category in targets),
                Decimal("0")
            )
        return candidate.order_amount

    def _check_rules(
        self,
        promotion: Promotion,
        product_count: int,
        order_amount: Decimal,
        now: datetime
    ) -> Optional[IneligibleReason]:
        """检查不依赖顾客历史的规则，按 有效期 -> 门槛 -> 总量上限 的顺序"""
        if promotion.is_red_packet:
            return IneligibleReason.NOT_APPLICABLE

        if not promotion.is_in_window(now):
            return IneligibleReason.EXPIRED

        if (promotion.promotion_type == PromotionType.MINIMUM_AMOUNT
                and order_amount < promotion.minimum_amount):
            return IneligibleReason.BELOW_MINIMUM

        if (promotion.max_usage_product_count is not None
                and promotion.current_usage_product_count + product_count > promotion.max_usage_product_count):
            return IneligibleReason.OVER_GLOBAL_CAP

        if (promotion.max_usage_count is not None
                and promotion.current_usage_count >= promotion.max_usage_count):
            return IneligibleReason.OVER_GLOBAL_CAP

        return None

    async def _check_customer_cap(
        self,
        promotion: Promotion,
        customer_id: Optional[str],
        product_count: int
    ) -> Optional[IneligibleReason]:
        if promotion.max_usage_per_customer is None or not customer_id:
            return None

        used = await self.promotion_repo.get_customer_product_usage(
            promotion.promotion_id, customer_id
        )
        if used + product_count > promotion.max_usage_per_customer:
            return IneligibleReason.OVER_CUSTOMER_CAP
        return None

    async def get_promotion(self, promotion_id: str) -> Optional[Promotion]:
        db_promotion = await self.promotion_repo.get_by_id(promotion_id)
        if not db_promotion:
            return None
        return self.promotion_repo.to_model(db_promotion)

    async def evaluate(
        self,
        candidate: OrderCandidate,
        now: Optional[datetime] = None
    ) -> List[ApplicablePromotion]:
        """筛选订单可用的优惠活动，按折扣金额从高到低排序

        红包活动不是订单折扣，不会出现在结果中。
        """
        now = now or datetime.now()
        db_promotions = await self.promotion_repo.get_active_promotions(candidate.merchant_id, now)

        results = []
        for db_promotion in db_promotions:
            promotion = self.promotion_repo.to_model(db_promotion)

            reason = await self.find_ineligible_reason(
                promotion, candidate.customer_id, candidate.product_count, candidate.order_amount, now
            )
            if reason is not None:
                continue

            base_amount = self.discount_base(promotion, candidate)
            if base_amount <= 0:
                continue

            results.append(ApplicablePromotion(
                promotion=promotion,
                base_amount=base_amount,
                discount_amount=self.compute_discount(promotion, base_amount)
            ))

        results.sort(key=lambda item: item.discount_amount, reverse=True)
        return results

    async def check_availability(
        self,
        promotion_id: str,
        customer_id: Optional[str],
        product_count: int,
        order_amount: Decimal,
        now: Optional[datetime] = None
    ) -> AvailabilityResult:
        """检查优惠活动对当前顾客和订单是否可用，不可用时给出具体原因"""
        now = now or datetime.now()
        promotion = await self.get_promotion(promotion_id)
        if promotion is None:
            return AvailabilityResult(
                promotion_id=promotion_id,
                is_available=False,
                reason=IneligibleReason.NOT_FOUND
            )

        reason = await self.find_ineligible_reason(promotion, customer_id, product_count, order_amount, now)
        return AvailabilityResult(
            promotion_id=promotion_id,
            is_available=reason is None,
            reason=reason
        )

    async def find_ineligible_reason(
        self,
        promotion: Promotion,
        customer_id: Optional[str],
        product_count: int,
        order_amount: Decimal,
        now: datetime
    ) -> Optional[IneligibleReason]:
        """对已加载的活动执行完整检查，可用时返回None"""
        reason = self._check_rules(promotion, product_count, order_amount, now)
        if reason is None:
            reason = await self._check_customer_cap(promotion, customer_id, product_count)
        return reason

    async def record_usage(
        self,
        promotion_id: str,
        order_id: str,
        customer_id: str,
        discount_amount: Decimal,
        product_count: int,
        now: Optional[datetime] = None
    ) -> PromotionUsage:
        """记录优惠使用

        先以条件更新递增总量计数（同时锁定活动行），再读取该顾客的历史用量，
        超出个人上限时抛出异常，由外层事务回滚已递增的计数。
        """
        now = now or datetime.now()
        promotion = await self.get_promotion(promotion_id)
        if promotion is None:
            self.reject(promotion_id, IneligibleReason.NOT_FOUND)
        if promotion.is_red_packet:
            self.reject(promotion_id, IneligibleReason.NOT_APPLICABLE)
        if not promotion.is_in_window(now):
            self.reject(promotion_id, IneligibleReason.EXPIRED)

        incremented = await self.promotion_repo.increment_usage(promotion_id, product_count)
        if not incremented:
            self.reject(promotion_id, IneligibleReason.OVER_GLOBAL_CAP)

        if promotion.max_usage_per_customer is not None:
            used = await self.promotion_repo.get_customer_product_usage(promotion_id, customer_id)
            if used + product_count > promotion.max_usage_per_customer:
                self.reject(promotion_id, IneligibleReason.OVER_CUSTOMER_CAP)

        db_usage = await self.promotion_repo.create_usage(
            promotion_id=promotion_id,
            order_id=order_id,
            customer_id=customer_id,
            discount_amount=discount_amount,
            product_count=product_count
        )

        logger.info(
            f"记录优惠使用: promotion_id={promotion_id}, order_id={order_id}, "
            f"customer_id={customer_id}, product_count={product_count}, discount={discount_amount}"
        )
        return self.promotion_repo.usage_to_model(db_usage)

    async def get_usage_history(
        self,
        promotion_id: str,
        limit: int = 50,
        offset: int = 0
    ) -> List[PromotionUsage]:
        db_usages = await self.promotion_repo.get_usage_history(promotion_id, limit, offset)
        return [self.promotion_repo.usage_to_model(u) for u in db_usages]

    @staticmethod
    def reject(promotion_id: str, reason: IneligibleReason) -> None:
        """记录并抛出 PromotionIneligibleError"""
        logger.warning(f"优惠活动不可用: promotion_id={promotion_id}, reason={reason.value}")
        raise PromotionIneligibleError(promotion_id, reason.value, INELIGIBLE_MESSAGES[reason])
