"""
PromotionService业务逻辑测试
"""

import pytest
from decimal import Decimal
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

from app.core.exceptions import PromotionIneligibleError
from app.models.promotion import (
    Promotion,
    PromotionType,
    DiscountType,
    CartLine,
    OrderCandidate,
    IneligibleReason
)
from app.repositories.promotion_repository import PromotionRepository
from app.services.promotion_service import PromotionService

NOW = datetime(2025, 6, 1, 12, 0, 0)


def make_promotion(**kwargs) -> Promotion:
    data = {
        "promotion_id": "promo_001",
        "merchant_id": "merchant_001",
        "title": "立减5元",
        "discount_type": DiscountType.FIXED_AMOUNT,
        "discount_value": Decimal("5.00"),
        "start_date": NOW - timedelta(days=1),
        "end_date": NOW + timedelta(days=7),
    }
    data.update(kwargs)
    return Promotion(**data)


def make_candidate(customer_id="customer_001") -> OrderCandidate:
    return OrderCandidate(
        merchant_id="merchant_001",
        customer_id=customer_id,
        lines=[
            CartLine(product_id="p1", category="noodles", quantity=2, line_total=Decimal("30.00")),
            CartLine(product_id="p2", category="drinks", quantity=1, line_total=Decimal("8.00")),
        ]
    )


class TestComputeDiscount:
    """折扣计算测试"""

    def test_percentage(self):
        promotion = make_promotion(discount_type=DiscountType.PERCENTAGE, discount_value=Decimal("15"))
        assert PromotionService.compute_discount(promotion, Decimal("38.00")) == Decimal("5.70")

    def test_percentage_rounds_half_up(self):
        promotion = make_promotion(discount_type=DiscountType.PERCENTAGE, discount_value=Decimal("10"))
        assert PromotionService.compute_discount(promotion, Decimal("0.25")) == Decimal("0.03")

    def test_fixed_amount(self):
        assert PromotionService.compute_discount(make_promotion(), Decimal("38.00")) == Decimal("5.00")

    def test_never_exceeds_order_amount(self):
        promotion = make_promotion(discount_value=Decimal("50.00"))
        assert PromotionService.compute_discount(promotion, Decimal("12.34")) == Decimal("12.34")

    def test_zero_amount(self):
        assert PromotionService.compute_discount(make_promotion(), Decimal("0")) == Decimal("0.00")

    def test_discount_base_by_type(self):
        candidate = make_candidate()
        assert PromotionService.discount_base(make_promotion(), candidate) == Decimal("38.00")
        assert PromotionService.discount_base(
            make_promotion(promotion_type=PromotionType.PRODUCT_SPECIFIC, applicable_products=["p2"]),
            candidate
        ) == Decimal("8.00")
        assert PromotionService.discount_base(
            make_promotion(promotion_type=PromotionType.CATEGORY_SPECIFIC, applicable_categories=["noodles"]),
            candidate
        ) == Decimal("30.00")
        assert PromotionService.discount_base(
            make_promotion(promotion_type=PromotionType.CATEGORY_SPECIFIC, applicable_categories=["dessert"]),
            candidate
        ) == Decimal("0")


@pytest.mark.asyncio
class TestPromotionService:
    """PromotionService业务逻辑测试类"""

    @pytest.fixture
    def mock_promotion_repo(self):
        """模拟PromotionRepository，仓库直接返回领域模型"""
        repo = AsyncMock(spec=PromotionRepository)
        repo.to_model = MagicMock(side_effect=lambda p: p)
        repo.usage_to_model = MagicMock(side_effect=lambda u: u)
        repo.get_customer_product_usage.return_value = 0
        return repo

    @pytest.fixture
    def promotion_service(self, mock_promotion_repo):
        return PromotionService(mock_promotion_repo)

    async def test_evaluate_sorts_and_skips_ineligible(self, promotion_service, mock_promotion_repo):
        """按折扣从高到低排序，跳过红包、不满足门槛和不适用的活动"""
        mock_promotion_repo.get_active_promotions.return_value = [
            make_promotion(promotion_id="fixed_5"),
            make_promotion(
                promotion_id="pct_20",
                discount_type=DiscountType.PERCENTAGE,
                discount_value=Decimal("20")
            ),
            make_promotion(
                promotion_id="min_100",
                promotion_type=PromotionType.MINIMUM_AMOUNT,
                minimum_amount=Decimal("100")
            ),
            make_promotion(
                promotion_id="red_packet",
                promotion_type=PromotionType.LUCKY_RED_PACKET,
                total_red_packets=10,
                remaining_red_packets=10
            ),
            make_promotion(
                promotion_id="dessert_only",
                promotion_type=PromotionType.CATEGORY_SPECIFIC,
                applicable_categories=["dessert"]
            ),
        ]

        results = await promotion_service.evaluate(make_candidate(), NOW)

        assert [r.promotion.promotion_id for r in results] == ["pct_20", "fixed_5"]
        assert results[0].discount_amount == Decimal("7.60")
        assert results[1].base_amount == Decimal("38.00")

    async def test_evaluate_respects_customer_cap(self, promotion_service, mock_promotion_repo):
        mock_promotion_repo.get_active_promotions.return_value = [
            make_promotion(max_usage_per_customer=4)
        ]
        mock_promotion_repo.get_customer_product_usage.return_value = 2

        # 本单3件，历史2件，超出个人上限4件
        assert await promotion_service.evaluate(make_candidate(), NOW) == []

    async def test_check_availability_not_found(self, promotion_service, mock_promotion_repo):
        mock_promotion_repo.get_by_id.return_value = None

        result = await promotion_service.check_availability("missing", "customer_001", 1, Decimal("10"), NOW)

        assert not result.is_available
        assert result.reason == IneligibleReason.NOT_FOUND

    @pytest.mark.parametrize("overrides, reason", [
        ({"end_date": NOW - timedelta(minutes=1)}, IneligibleReason.EXPIRED),
        ({"is_active": False}, IneligibleReason.EXPIRED),
        (
            {"promotion_type": PromotionType.MINIMUM_AMOUNT, "minimum_amount": Decimal("50")},
            IneligibleReason.BELOW_MINIMUM
        ),
        (
            {"max_usage_product_count": 10, "current_usage_product_count": 8},
            IneligibleReason.OVER_GLOBAL_CAP
        ),
        ({"max_usage_count": 3, "current_usage_count": 3}, IneligibleReason.OVER_GLOBAL_CAP),
        ({"promotion_type": PromotionType.LUCKY_RED_PACKET}, IneligibleReason.NOT_APPLICABLE),
    ])
    async def test_check_availability_reasons(
        self, promotion_service, mock_promotion_repo, overrides, reason
    ):
        """不可用时返回具体原因"""
        mock_promotion_repo.get_by_id.return_value = make_promotion(**overrides)

        result = await promotion_service.check_availability("promo_001", "customer_001", 3, Decimal("38.00"), NOW)

        assert not result.is_available
        assert result.reason == reason
        assert result.message is not None

    async def test_check_availability_over_customer_cap(self, promotion_service, mock_promotion_repo):
        mock_promotion_repo.get_by_id.return_value = make_promotion(max_usage_per_customer=5)
        mock_promotion_repo.get_customer_product_usage.return_value = 4

        result = await promotion_service.check_availability("promo_001", "customer_001", 2, Decimal("38.00"), NOW)

        assert result.reason == IneligibleReason.OVER_CUSTOMER_CAP
        mock_promotion_repo.get_customer_product_usage.assert_called_once_with("promo_001", "customer_001")

    async def test_check_availability_available(self, promotion_service, mock_promotion_repo):
        mock_promotion_repo.get_by_id.return_value = make_promotion(
            max_usage_product_count=10,
            current_usage_product_count=7
        )

        result = await promotion_service.check_availability("promo_001", "customer_001", 3, Decimal("38.00"), NOW)

        assert result.is_available
        assert result.reason is None

    async def test_record_usage_success(self, promotion_service, mock_promotion_repo):
        mock_promotion_repo.get_by_id.return_value = make_promotion(max_usage_per_customer=5)
        mock_promotion_repo.increment_usage.return_value = True
        mock_promotion_repo.get_customer_product_usage.return_value = 1
        mock_promotion_repo.create_usage.return_value = "usage_record"

        result = await promotion_service.record_usage(
            "promo_001", "order_001", "customer_001", Decimal("5.00"), 3, NOW
        )

        assert result == "usage_record"
        mock_promotion_repo.increment_usage.assert_called_once_with("promo_001", 3)
        mock_promotion_repo.create_usage.assert_called_once()

    async def test_record_usage_over_global_cap(self, promotion_service, mock_promotion_repo):
        """条件递增失败时拒绝，不写使用记录"""
        mock_promotion_repo.get_by_id.return_value = make_promotion(max_usage_product_count=10)
        mock_promotion_repo.increment_usage.return_value = False

        with pytest.raises(PromotionIneligibleError) as exc_info:
            await promotion_service.record_usage(
                "promo_001", "order_001", "customer_001", Decimal("5.00"), 5, NOW
            )

        assert exc_info.value.reason == "over_global_cap"
        mock_promotion_repo.create_usage.assert_not_called()

    async def test_record_usage_over_customer_cap(self, promotion_service, mock_promotion_repo):
        mock_promotion_repo.get_by_id.return_value = make_promotion(max_usage_per_customer=3)
        mock_promotion_repo.increment_usage.return_value = True
        mock_promotion_repo.get_customer_product_usage.return_value = 2

        with pytest.raises(PromotionIneligibleError) as exc_info:
            await promotion_service.record_usage(
                "promo_001", "order_001", "customer_001", Decimal("5.00"), 2, NOW
            )

        assert exc_info.value.reason == "over_customer_cap"
        mock_promotion_repo.create_usage.assert_not_called()

    async def test_record_usage_rejects_red_packet(self, promotion_service, mock_promotion_repo):
        mock_promotion_repo.get_by_id.return_value = make_promotion(
            promotion_type=PromotionType.LUCKY_RED_PACKET
        )

        with pytest.raises(PromotionIneligibleError) as exc_info:
            await promotion_service.record_usage(
                "promo_001", "order_001", "customer_001", Decimal("5.00"), 1, NOW
            )

        assert exc_info.value.reason == "not_applicable"
        mock_promotion_repo.increment_usage.assert_not_called()
