"""
优惠、红包、库存模型及金额规则测试
"""

import pytest
from decimal import Decimal
from datetime import datetime, timedelta
from pydantic import ValidationError

from app.config.pricing_rules import round_money
from app.core.exceptions import (
    BusinessException,
    InsufficientStockError,
    RedPacketExhaustedError,
    ConcurrencyConflictError,
    PromotionIneligibleError
)
from app.models.inventory import Merchant, MerchantStatus, StockCheckItem, StockCheckReport
from app.models.promotion import (
    Promotion,
    PromotionType,
    DiscountType,
    CartLine,
    OrderCandidate,
    AvailabilityResult,
    IneligibleReason
)
from app.models.red_packet import Voucher, VoucherStatus


class TestRoundMoney:
    """金额取整测试"""

    def test_half_up(self):
        assert round_money(Decimal("1.005")) == Decimal("1.01")
        assert round_money(Decimal("1.004")) == Decimal("1.00")
        assert round_money(Decimal("2.675")) == Decimal("2.68")

    def test_accepts_plain_numbers(self):
        assert round_money(3) == Decimal("3.00")
        assert round_money("0.125") == Decimal("0.13")


class TestPromotionModels:
    """优惠活动模型测试"""

    def _promotion(self, **kwargs):
        data = {
            "promotion_id": "promo_001",
            "merchant_id": "merchant_001",
            "title": "满30减5",
            "discount_type": DiscountType.FIXED_AMOUNT,
            "discount_value": Decimal("5"),
            "start_date": datetime(2025, 6, 1),
            "end_date": datetime(2025, 6, 30),
        }
        data.update(kwargs)
        return Promotion(**data)

    def test_window(self):
        promotion = self._promotion()
        assert promotion.is_in_window(datetime(2025, 6, 15))
        assert not promotion.is_in_window(datetime(2025, 5, 31))
        assert not promotion.is_in_window(datetime(2025, 7, 1))

    def test_switched_off_is_outside_window(self):
        promotion = self._promotion(is_active=False)
        assert not promotion.is_in_window(datetime(2025, 6, 15))

    def test_percentage_over_100_rejected(self):
        """百分比折扣最多100"""
        assert self._promotion(discount_type=DiscountType.PERCENTAGE, discount_value=Decimal("100")).discount_value == 100
        with pytest.raises(ValidationError):
            self._promotion(discount_type=DiscountType.PERCENTAGE, discount_value=Decimal("150"))
        # 固定金额不受此限制
        assert self._promotion(discount_value=Decimal("150")).discount_value == Decimal("150")

    def test_red_packet_flag(self):
        assert self._promotion(promotion_type=PromotionType.LUCKY_RED_PACKET).is_red_packet
        assert not self._promotion().is_red_packet

    def test_candidate_totals(self):
        candidate = OrderCandidate(
            merchant_id="merchant_001",
            lines=[
                CartLine(product_id="p1", quantity=2, line_total=Decimal("20.00")),
                CartLine(product_id="p2", quantity=3, line_total=Decimal("15.50")),
            ]
        )
        assert candidate.order_amount == Decimal("35.50")
        assert candidate.product_count == 5

    def test_availability_message(self):
        result = AvailabilityResult(
            promotion_id="promo_001",
            is_available=False,
            reason=IneligibleReason.OVER_GLOBAL_CAP
        )
        assert result.message == "优惠活动名额已用完"
        assert AvailabilityResult(promotion_id="promo_001", is_available=True).message is None


class TestInventoryModels:
    """商家与库存模型测试"""

    def test_merchant_is_active_derived_from_status(self):
        assert Merchant(merchant_id="m1", name="店", status=MerchantStatus.ACTIVE).is_active
        assert not Merchant(merchant_id="m1", name="店", status=MerchantStatus.PENDING).is_active
        assert not Merchant(merchant_id="m1", name="店", status=MerchantStatus.SUSPENDED).is_active

    def test_stock_report(self):
        report = StockCheckReport(items=[
            StockCheckItem(product_id="p1", requested_quantity=1, available_stock=5, is_sufficient=True),
            StockCheckItem(product_id="p2", requested_quantity=3, available_stock=2, is_sufficient=False),
        ])
        assert not report.is_sufficient
        assert [i.product_id for i in report.insufficient_items] == ["p2"]


class TestVoucherModel:

    def test_usable(self):
        now = datetime(2025, 6, 1)
        voucher = Voucher(
            voucher_id="v1",
            user_id="u1",
            promotion_id="promo_001",
            voucher_code="V0000001",
            amount=Decimal("5.00"),
            expires_at=now + timedelta(days=1)
        )
        assert voucher.is_usable(now)
        assert not voucher.is_usable(now + timedelta(days=2))
        assert not voucher.model_copy(update={"status": VoucherStatus.USED}).is_usable(now)


class TestBusinessExceptions:
    """业务异常测试"""

    def test_insufficient_stock_lists_every_item(self):
        error = InsufficientStockError([
            {"product_id": "p1", "product_name": "牛肉面", "requested_quantity": 3, "available_stock": 1},
            {"product_id": "p2", "product_name": None, "requested_quantity": 2, "available_stock": 0},
        ])

        assert len(error.items) == 2
        assert "牛肉面" in error.message
        assert "p2" in error.message
        assert error.to_dict()["error_code"] == "INSUFFICIENT_STOCK"

    def test_retryable_flags(self):
        assert not RedPacketExhaustedError("promo_001").retryable
        assert not InsufficientStockError([]).retryable
        assert ConcurrencyConflictError("冲突").retryable
        assert ConcurrencyConflictError("冲突").status_code == 503

    def test_promotion_ineligible_carries_reason(self):
        error = PromotionIneligibleError("promo_001", "over_customer_cap")
        assert isinstance(error, BusinessException)
        assert error.reason == "over_customer_cap"
        assert error.to_dict()["details"] == {"promotion_id": "promo_001", "reason": "over_customer_cap"}
