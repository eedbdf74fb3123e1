"""
订单业务服务层
下单、状态流转与超时关闭都在这里完成，订单状态只由本服务写入
"""

import logging
import secrets
import string
from typing import List, Optional, Dict, Any, Tuple
from decimal import Decimal
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from app.config.pricing_rules import (
    ORDER_NUMBER_PREFIX,
    ORDER_NUMBER_RANDOM_LENGTH,
    VERIFICATION_CODE_ALPHABET,
    VERIFICATION_CODE_LENGTH,
    round_money
)
from app.core.config import settings
from app.core.exceptions import (
    MerchantNotActiveError,
    ProductUnavailableError,
    MinimumOrderNotMetError,
    VoucherUnavailableError,
    InvalidTransitionError,
    VerificationMismatchError,
    OrderNotFoundError,
    ConcurrencyConflictError
)
from app.models.order import (
    Order,
    OrderItem,
    OrderStatus,
    CheckoutItem,
    CheckoutRequest,
    RESTORING_STATUSES,
    source_statuses
)
from app.models.inventory import StockRequest
from app.models.promotion import CartLine, OrderCandidate, IneligibleReason, Promotion, ApplicablePromotion
from app.models.red_packet import VoucherStatus
from app.models.database.order_db import OrderDB
from app.repositories.order_repository import OrderRepository
from app.repositories.merchant_repository import MerchantRepository
from app.repositories.inventory_repository import InventoryRepository
from app.repositories.promotion_repository import PromotionRepository
from app.repositories.red_packet_repository import RedPacketRepository
from app.services.inventory_service import InventoryService
from app.services.promotion_service import PromotionService
from app.services.common_cache import SimpleCache, order_cache

logger = logging.getLogger(__name__)


class OrderService:
    """订单业务服务"""

    def __init__(
        self,
        order_repo: OrderRepository,
        merchant_repo: MerchantRepository,
        inventory_service: InventoryService,
        promotion_service: PromotionService,
        red_packet_repo: RedPacketRepository,
        cache: Optional[SimpleCache] = None
    ):
        self.order_repo = order_repo
        self.merchant_repo = merchant_repo
        self.inventory_service = inventory_service
        self.promotion_service = promotion_service
        self.red_packet_repo = red_packet_repo
        self.cache = cache if cache is not None else order_cache
        self.cache_ttl = settings.order_cache_ttl
        self._changed_order_ids = set()

    @classmethod
    def for_session(cls, db: AsyncSession, cache: Optional[SimpleCache] = None) -> "OrderService":
        """基于同一个会话组装订单服务，所有仓库共享一个事务"""
        return cls(
            order_repo=OrderRepository(db),
            merchant_repo=MerchantRepository(db),
            inventory_service=InventoryService(InventoryRepository(db)),
            promotion_service=PromotionService(PromotionRepository(db)),
            red_packet_repo=RedPacketRepository(db),
            cache=cache
        )

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def _detail_key(self, order_id: str) -> str:
        return f"detail:{order_id}"

    async def get_order(
        self,
        order_id: str,
        viewer_id: Optional[str] = None,
        use_cache: bool = True
    ) -> Order:
        """获取订单详情

        viewer_id 不是该订单的顾客或商家时按订单不存在处理。
        """
        order = None
        if use_cache:
            cached_order = await self.cache.get(self._detail_key(order_id))
            if cached_order:
                order = Order(**cached_order)

        if order is None:
            db_order = await self.order_repo.get_by_id(order_id)
            if not db_order:
                raise OrderNotFoundError(order_id)
            order = self.order_repo.to_model(db_order)
            if use_cache:
                await self.cache.set(
                    self._detail_key(order_id),
                    order.model_dump(mode="json"),
                    ttl=self.cache_ttl
                )

        if viewer_id is not None and viewer_id not in (order.customer_id, order.merchant_id):
            raise OrderNotFoundError(order_id)

        return order

    async def list_customer_orders(
        self,
        customer_id: str,
        limit: int = 20,
        offset: int = 0,
        status_filter: Optional[str] = None
    ) -> List[Order]:
        """获取顾客订单列表"""
        db_orders = await self.order_repo.get_customer_orders(
            customer_id=customer_id,
            limit=limit,
            offset=offset,
            status_filter=status_filter
        )
        return [self.order_repo.to_model(db_order) for db_order in db_orders]

    async def list_merchant_orders(
        self,
        merchant_id: str,
        limit: int = 20,
        offset: int = 0,
        status_filter: Optional[str] = None
    ) -> List[Order]:
        """获取商家订单列表"""
        db_orders = await self.order_repo.get_merchant_orders(
            merchant_id=merchant_id,
            limit=limit,
            offset=offset,
            status_filter=status_filter
        )
        return [self.order_repo.to_model(db_order) for db_order in db_orders]

    async def get_merchant_status_counts(self, merchant_id: str) -> Dict[str, int]:
        return await self.order_repo.get_status_counts(merchant_id)

    # ------------------------------------------------------------------
    # 下单
    # ------------------------------------------------------------------

    async def _generate_order_number(self, now: datetime) -> str:
        alphabet = string.ascii_uppercase + string.digits
        timestamp = str(int(now.timestamp() * 1000))[-6:]
        for _ in range(settings.order_code_max_attempts):
            suffix = "".join(secrets.choice(alphabet) for _ in range(ORDER_NUMBER_RANDOM_LENGTH))
            order_number = f"{ORDER_NUMBER_PREFIX}{timestamp}{suffix}"
            if not await self.order_repo.order_number_exists(order_number):
                return order_number
        raise ConcurrencyConflictError("订单编号生成失败，请稍后重试")

    async def _generate_verification_code(self) -> str:
        for _ in range(settings.order_code_max_attempts):
            code = "".join(
                secrets.choice(VERIFICATION_CODE_ALPHABET) for _ in range(VERIFICATION_CODE_LENGTH)
            )
            if not await self.order_repo.verification_code_exists(code):
                return code
        raise ConcurrencyConflictError("核销码生成失败，请稍后重试")

    async def _build_cart(
        self,
        merchant_id: str,
        customer_id: Optional[str],
        items: List[CheckoutItem]
    ) -> Tuple[List[OrderItem], OrderCandidate]:
        """校验商品并生成订单项和优惠评估用的购物车"""
        product_ids = [item.product_id for item in items]
        products = await self.inventory_service.get_products(product_ids)
        unavailable = [
            pid for pid in product_ids
            if pid not in products
            or products[pid].merchant_id != merchant_id
            or not products[pid].is_available
        ]
        if unavailable:
            raise ProductUnavailableError(unavailable)

        order_items = []
        cart_lines = []
        for item in items:
            product = products[item.product_id]
            line_total = round_money(product.price * item.quantity)
            order_items.append(OrderItem(
                product_id=product.product_id,
                product_name=product.name,
                quantity=item.quantity,
                unit_price=product.price,
                total_price=line_total
            ))
            cart_lines.append(CartLine(
                product_id=product.product_id,
                category=product.category,
                quantity=item.quantity,
                line_total=line_total
            ))

        candidate = OrderCandidate(merchant_id=merchant_id, customer_id=customer_id, lines=cart_lines)
        return order_items, candidate

    async def preview_promotions(
        self,
        customer_id: Optional[str],
        merchant_id: str,
        items: List[CheckoutItem],
        now: Optional[datetime] = None
    ) -> List[ApplicablePromotion]:
        """按当前售价评估购物车可用的优惠活动"""
        _, candidate = await self._build_cart(merchant_id, customer_id, items)
        return await self.promotion_service.evaluate(candidate, now)

    async def _resolve_promotion(
        self,
        promotion_id: str,
        customer_id: str,
        candidate: OrderCandidate,
        now: datetime
    ) -> Promotion:
        """加载并校验下单选择的优惠活动"""
        promotion = await self.promotion_service.get_promotion(promotion_id)
        if promotion is None:
            self.promotion_service.reject(promotion_id, IneligibleReason.NOT_FOUND)
        if promotion.merchant_id != candidate.merchant_id:
            self.promotion_service.reject(promotion_id, IneligibleReason.NOT_APPLICABLE)

        reason = await self.promotion_service.find_ineligible_reason(
            promotion, customer_id, candidate.product_count, candidate.order_amount, now
        )
        if reason is not None:
            self.promotion_service.reject(promotion_id, reason)

        if self.promotion_service.discount_base(promotion, candidate) <= 0:
            self.promotion_service.reject(promotion_id, IneligibleReason.NOT_APPLICABLE)

        return promotion

    async def _resolve_voucher(self, voucher_code: str, customer_id: str, now: datetime):
        db_voucher = await self.red_packet_repo.get_voucher_by_code(voucher_code)
        if not db_voucher or db_voucher.user_id != customer_id:
            raise VoucherUnavailableError(voucher_code, "not_found")
        if db_voucher.status == VoucherStatus.USED.value or db_voucher.used_order_id:
            raise VoucherUnavailableError(voucher_code, "used")
        if db_voucher.status != VoucherStatus.ACTIVE.value or db_voucher.expires_at <= now:
            raise VoucherUnavailableError(voucher_code, "expired")
        return db_voucher

    async def create_order(
        self,
        customer_id: str,
        request: CheckoutRequest,
        now: Optional[datetime] = None
    ) -> Order:
        """创建订单

        商家与商品校验、库存预检、优惠与代金券校验都在写入之前完成；
        写入订单后逐个原子扣减库存，再核销代金券并记录优惠使用。
        任一步失败抛出业务异常，由外层事务整体回滚。
        """
        now = now or datetime.now()

        # 1. 商家必须营业中
        db_merchant = await self.merchant_repo.get_by_id(request.merchant_id)
        if not db_merchant:
            raise MerchantNotActiveError(request.merchant_id)
        merchant = self.merchant_repo.to_model(db_merchant)
        if not merchant.is_active:
            logger.warning(f"商家未营业，拒绝下单: merchant_id={merchant.merchant_id}, status={merchant.status.value}")
            raise MerchantNotActiveError(merchant.merchant_id, merchant.status.value)

        # 2. 商品必须属于该商家且在售，按当前售价计算商品行
        order_items, candidate = await self._build_cart(merchant.merchant_id, customer_id, request.items)

        # 3. 库存预检
        stock_requests = [
            StockRequest(product_id=item.product_id, quantity=item.quantity)
            for item in request.items
        ]
        await self.inventory_service.ensure_available(stock_requests)

        # 4. 原价合计
        subtotal = round_money(candidate.order_amount)

        # 5. 优惠活动（最多一个）
        promotion = None
        discount_amount = Decimal("0.00")
        if request.promotion_id:
            promotion = await self._resolve_promotion(request.promotion_id, customer_id, candidate, now)
            discount_amount = self.promotion_service.compute_discount(
                promotion, self.promotion_service.discount_base(promotion, candidate)
            )

        discounted_total = round_money(subtotal - discount_amount)

        # 6. 起送金额按优惠后金额判断
        if discounted_total < merchant.minimum_order_amount:
            raise MinimumOrderNotMetError(discounted_total, merchant.minimum_order_amount)

        # 7. 代金券，抵扣不超过优惠后金额
        db_voucher = None
        voucher_amount = Decimal("0.00")
        if request.voucher_code:
            db_voucher = await self._resolve_voucher(request.voucher_code, customer_id, now)
            voucher_amount = round_money(min(db_voucher.amount, discounted_total))

        total_amount = round_money(discounted_total - voucher_amount)

        # 8. 写入订单并扣减库存
        deadline = now + timedelta(minutes=settings.order_payment_timeout_minutes)
        order_data: Dict[str, Any] = {
            "customer_id": customer_id,
            "merchant_id": merchant.merchant_id,
            "order_number": await self._generate_order_number(now),
            "verification_code": await self._generate_verification_code(),
            "subtotal_amount": subtotal,
            "discount_amount": discount_amount,
            "voucher_amount": voucher_amount,
            "total_amount": total_amount,
            "promotion_id": promotion.promotion_id if promotion else None,
            "voucher_id": db_voucher.id if db_voucher else None,
            "delivery_name": request.delivery_name,
            "delivery_phone": request.delivery_phone,
            "delivery_address": request.delivery_address,
            "payment_deadline": deadline,
            "auto_close_at": deadline,
            "created_at": now,
            "updated_at": now,
        }
        db_order = await self.order_repo.create_order_with_items(order_data, order_items)
        order_id = db_order.id

        await self.inventory_service.reserve_items(stock_requests)

        # 9. 核销代金券
        if db_voucher is not None:
            used = await self.red_packet_repo.mark_voucher_used(db_voucher.id, order_id, now)
            if not used:
                raise VoucherUnavailableError(request.voucher_code, "used")

        # 10. 记录优惠使用
        if promotion is not None:
            await self.promotion_service.record_usage(
                promotion_id=promotion.promotion_id,
                order_id=order_id,
                customer_id=customer_id,
                discount_amount=discount_amount,
                product_count=candidate.product_count,
                now=now
            )

        order = self.order_repo.to_model(await self.order_repo.get_by_id(order_id))
        logger.info(
            f"创建订单成功: order_id={order_id}, order_number={order.order_number}, "
            f"customer_id={customer_id}, merchant_id={merchant.merchant_id}, total={total_amount}"
        )
        return order

    # ------------------------------------------------------------------
    # 状态流转
    # ------------------------------------------------------------------

    async def _load_order(self, order_id: str) -> OrderDB:
        db_order = await self.order_repo.get_by_id(order_id)
        if not db_order:
            raise OrderNotFoundError(order_id)
        return db_order

    async def _reload(self, order_id: str) -> Order:
        return self.order_repo.to_model(await self._load_order(order_id))

    async def commit(self) -> None:
        """提交当前事务，提交成功后清除本事务变更过的订单缓存"""
        await self.order_repo.db.commit()
        await self.invalidate_cache()

    async def invalidate_cache(self) -> None:
        """清除已提交变更的订单详情缓存

        必须在事务提交之后调用，提交前清除会被并发读取以旧数据重新写回。
        """
        while self._changed_order_ids:
            await self.cache.delete(self._detail_key(self._changed_order_ids.pop()))

    async def _transition(
        self,
        db_order: OrderDB,
        target: OrderStatus,
        values: Dict[str, Any],
        idempotent: bool = False
    ) -> Order:
        """执行条件状态变更

        进入取消/超时关闭状态时在同一条更新中置位 inventory_restored，
        只有更新成功的那一次才恢复库存。
        """
        order_id = db_order.id
        current = OrderStatus(db_order.status)
        if idempotent and current == target:
            return self.order_repo.to_model(db_order)

        restoring = target in RESTORING_STATUSES
        items = [
            StockRequest(product_id=item.product_id, quantity=item.quantity)
            for item in db_order.order_items
        ]

        success = await self.order_repo.transition_status(
            order_id,
            source_statuses(target),
            target,
            values=values,
            mark_inventory_restored=restoring
        )

        if not success:
            # 缓存可能落后于已提交的状态
            await self.cache.delete(self._detail_key(order_id))
            latest = await self._reload(order_id)
            if idempotent and latest.status == target:
                return latest
            logger.warning(
                f"订单状态变更被拒绝: order_id={order_id}, current={latest.status.value}, target={target.value}"
            )
            raise InvalidTransitionError(order_id, latest.status.value, target.value)

        self._changed_order_ids.add(order_id)
        if restoring:
            await self.inventory_service.restore_items(items)

        logger.info(f"订单状态变更: order_id={order_id}, {current.value} -> {target.value}")
        return await self._reload(order_id)

    async def mark_paid(
        self,
        order_id: str,
        customer_id: str,
        now: Optional[datetime] = None
    ) -> Order:
        """顾客标记已付款，重复标记直接返回"""
        now = now or datetime.now()
        db_order = await self._load_order(order_id)
        if db_order.customer_id != customer_id:
            raise OrderNotFoundError(order_id)

        return await self._transition(
            db_order,
            OrderStatus.CUSTOMER_PAID,
            {"paid_at": now, "updated_at": now},
            idempotent=True
        )

    async def merchant_confirm(
        self,
        order_id: str,
        merchant_id: str,
        verification_code: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Order:
        """商家确认收款，提供核销码时必须与订单一致"""
        now = now or datetime.now()
        db_order = await self._load_order(order_id)
        if db_order.merchant_id != merchant_id:
            raise OrderNotFoundError(order_id)

        if verification_code is not None:
            if verification_code.strip().upper() != db_order.verification_code:
                logger.warning(f"核销码不匹配: order_id={order_id}")
                raise VerificationMismatchError(order_id)

        return await self._transition(
            db_order,
            OrderStatus.MERCHANT_CONFIRMED,
            {"confirmed_at": now, "updated_at": now}
        )

    async def confirm_received(
        self,
        order_id: str,
        customer_id: str,
        now: Optional[datetime] = None
    ) -> Order:
        """顾客确认收货"""
        now = now or datetime.now()
        db_order = await self._load_order(order_id)
        if db_order.customer_id != customer_id:
            raise OrderNotFoundError(order_id)

        return await self._transition(
            db_order,
            OrderStatus.CUSTOMER_RECEIVED,
            {"received_at": now, "updated_at": now}
        )

    async def cancel_order(
        self,
        order_id: str,
        customer_id: Optional[str] = None,
        merchant_id: Optional[str] = None,
        reason: str = "",
        now: Optional[datetime] = None
    ) -> Order:
        """取消订单并恢复库存，重复取消直接返回"""
        now = now or datetime.now()
        db_order = await self._load_order(order_id)
        is_customer = customer_id is not None and db_order.customer_id == customer_id
        is_merchant = merchant_id is not None and db_order.merchant_id == merchant_id
        if not (is_customer or is_merchant):
            raise OrderNotFoundError(order_id)

        return await self._transition(
            db_order,
            OrderStatus.CANCELLED,
            {"cancelled_at": now, "cancel_reason": reason or None, "updated_at": now},
            idempotent=True
        )

    async def close_expired(self, order_id: str, now: Optional[datetime] = None) -> bool:
        """超时关闭单个订单，返回本次是否实际关闭

        只处理仍为待付款且已到自动关闭时间的订单，其他情况直接返回False。
        """
        now = now or datetime.now()
        db_order = await self.order_repo.get_by_id(order_id)
        if not db_order:
            return False
        if db_order.status != OrderStatus.PENDING.value:
            return False
        if db_order.auto_close_at is None or db_order.auto_close_at > now:
            return False

        try:
            await self._transition(
                db_order,
                OrderStatus.TIMEOUT_CLOSED,
                {"closed_at": now, "updated_at": now}
            )
        except InvalidTransitionError:
            # 已被其他实例或顾客操作抢先处理
            return False

        logger.info(f"订单超时关闭: order_id={order_id}, auto_close_at={db_order.auto_close_at}")
        return True
