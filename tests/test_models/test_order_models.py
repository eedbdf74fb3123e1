"""
订单模型与状态机测试
"""

import pytest
from decimal import Decimal
from pydantic import ValidationError

from app.models.order import (
    Order,
    OrderItem,
    OrderStatus,
    CheckoutRequest,
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    source_statuses
)


class TestOrderStatus:
    """订单状态机测试"""

    def test_status_values_are_stable(self):
        """状态取值是持久化契约"""
        assert {s.value for s in OrderStatus} == {
            "pending",
            "customer_paid",
            "timeout_closed",
            "merchant_confirmed",
            "customer_received",
            "cancelled",
        }

    def test_forward_edges(self):
        assert OrderStatus.PENDING.can_transition_to(OrderStatus.CUSTOMER_PAID)
        assert OrderStatus.CUSTOMER_PAID.can_transition_to(OrderStatus.MERCHANT_CONFIRMED)
        assert OrderStatus.MERCHANT_CONFIRMED.can_transition_to(OrderStatus.CUSTOMER_RECEIVED)
        assert OrderStatus.PENDING.can_transition_to(OrderStatus.TIMEOUT_CLOSED)

    def test_skipping_and_backward_edges_rejected(self):
        assert not OrderStatus.PENDING.can_transition_to(OrderStatus.CUSTOMER_RECEIVED)
        assert not OrderStatus.PENDING.can_transition_to(OrderStatus.MERCHANT_CONFIRMED)
        assert not OrderStatus.CUSTOMER_PAID.can_transition_to(OrderStatus.PENDING)
        assert not OrderStatus.CUSTOMER_PAID.can_transition_to(OrderStatus.TIMEOUT_CLOSED)

    def test_every_non_terminal_can_cancel(self):
        for status in OrderStatus:
            if status.is_terminal:
                continue
            assert status.can_transition_to(OrderStatus.CANCELLED)

    def test_terminal_states_accept_nothing(self):
        for status in TERMINAL_STATUSES:
            assert status.is_terminal
            assert status not in ALLOWED_TRANSITIONS
            for target in OrderStatus:
                assert not status.can_transition_to(target)

    def test_source_statuses(self):
        assert source_statuses(OrderStatus.TIMEOUT_CLOSED) == [OrderStatus.PENDING]
        assert set(source_statuses(OrderStatus.CANCELLED)) == {
            OrderStatus.PENDING,
            OrderStatus.CUSTOMER_PAID,
            OrderStatus.MERCHANT_CONFIRMED,
        }
        assert source_statuses(OrderStatus.PENDING) == []


class TestCheckoutRequest:
    """下单请求校验测试"""

    def _payload(self, **kwargs):
        payload = {
            "merchant_id": "merchant_001",
            "items": [{"product_id": "p1", "quantity": 1}],
            "delivery_name": "张三",
            "delivery_phone": "13800138000",
            "delivery_address": "北京市朝阳区",
        }
        payload.update(kwargs)
        return payload

    def test_duplicate_lines_merged(self):
        request = CheckoutRequest(**self._payload(items=[
            {"product_id": "p1", "quantity": 1},
            {"product_id": "p2", "quantity": 2},
            {"product_id": "p1", "quantity": 3},
        ]))

        assert [(i.product_id, i.quantity) for i in request.items] == [("p1", 4), ("p2", 2)]
        assert request.total_quantity == 6

    def test_empty_cart_rejected(self):
        with pytest.raises(ValidationError):
            CheckoutRequest(**self._payload(items=[]))

    def test_zero_quantity_rejected(self):
        with pytest.raises(ValidationError):
            CheckoutRequest(**self._payload(items=[{"product_id": "p1", "quantity": 0}]))

    def test_missing_delivery_info_rejected(self):
        with pytest.raises(ValidationError):
            CheckoutRequest(**self._payload(delivery_address=""))


class TestOrderModel:
    """订单金额校验测试"""

    def _order(self, **kwargs):
        data = {
            "order_id": "order_001",
            "order_number": "ORDER123456ABCD",
            "verification_code": "ABC234",
            "customer_id": "customer_001",
            "merchant_id": "merchant_001",
            "order_items": [
                OrderItem(
                    product_id="p1",
                    product_name="牛肉面",
                    quantity=2,
                    unit_price=Decimal("15.00"),
                    total_price=Decimal("30.00")
                )
            ],
            "subtotal_amount": Decimal("30.00"),
            "discount_amount": Decimal("5.00"),
            "voucher_amount": Decimal("3.00"),
            "total_amount": Decimal("22.00"),
            "delivery_name": "张三",
            "delivery_phone": "13800138000",
            "delivery_address": "北京市朝阳区",
        }
        data.update(kwargs)
        return Order(**data)

    def test_valid_amounts(self):
        order = self._order()
        assert order.total_quantity == 2
        assert order.status == OrderStatus.PENDING
        assert not order.is_terminal

    def test_inconsistent_total_rejected(self):
        with pytest.raises(ValidationError):
            self._order(total_amount=Decimal("25.00"))

    def test_negative_total_rejected(self):
        with pytest.raises(ValidationError):
            self._order(
                discount_amount=Decimal("0"),
                voucher_amount=Decimal("0"),
                total_amount=Decimal("-1.00")
            )
