"""
订单数据库操作层
"""

import uuid
from typing import List, Optional, Dict, Any
from datetime import datetime

from sqlalchemy import select, update, and_, desc, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.order import Order, OrderItem, OrderStatus
from app.models.database.order_db import OrderDB, OrderItemDB


class OrderRepository:
    """订单数据库操作层"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, order_id: str) -> Optional[OrderDB]:
        """根据订单ID获取订单（包含订单项，总是读取最新状态）"""
        result = await self.db.execute(
            select(OrderDB)
            .options(selectinload(OrderDB.order_items))
            .where(OrderDB.id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_customer_orders(
        self,
        customer_id: str,
        limit: int = 20,
        offset: int = 0,
        status_filter: Optional[str] = None
    ) -> List[OrderDB]:
        """获取顾客订单列表"""
        conditions = [OrderDB.customer_id == customer_id]

        if status_filter:
            conditions.append(OrderDB.status == status_filter)

        query = select(OrderDB).options(
            selectinload(OrderDB.order_items)
        ).where(
            and_(*conditions)
        ).order_by(desc(OrderDB.created_at)).limit(limit).offset(offset)

        result = await self.db.execute(query)
        return result.scalars().all()

    async def get_merchant_orders(
        self,
        merchant_id: str,
        limit: int = 20,
        offset: int = 0,
        status_filter: Optional[str] = None
    ) -> List[OrderDB]:
        """获取商家订单列表"""
        conditions = [OrderDB.merchant_id == merchant_id]

        if status_filter:
            conditions.append(OrderDB.status == status_filter)

        query = select(OrderDB).options(
            selectinload(OrderDB.order_items)
        ).where(
            and_(*conditions)
        ).order_by(desc(OrderDB.created_at)).limit(limit).offset(offset)

        result = await self.db.execute(query)
        return result.scalars().all()

    async def order_number_exists(self, order_number: str) -> bool:
        result = await self.db.execute(
            select(func.count(OrderDB.id)).where(OrderDB.order_number == order_number)
        )
        return (result.scalar() or 0) > 0

    async def verification_code_exists(self, verification_code: str) -> bool:
        result = await self.db.execute(
            select(func.count(OrderDB.id)).where(OrderDB.verification_code == verification_code)
        )
        return (result.scalar() or 0) > 0

    async def create_order_with_items(
        self,
        order_data: Dict[str, Any],
        items: List[OrderItem]
    ) -> OrderDB:
        """创建订单及订单项

        order_data 为订单表字段，id 缺省时自动生成。
        """
        db_order = OrderDB(
            id=order_data.get("id") or str(uuid.uuid4()),
            status=OrderStatus.PENDING.value,
            inventory_restored=False,
            **{k: v for k, v in order_data.items() if k != "id"}
        )

        self.db.add(db_order)
        await self.db.flush()

        for item in items:
            db_item = OrderItemDB(
                id=str(uuid.uuid4()),
                order_id=db_order.id,
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=item.total_price
            )
            self.db.add(db_item)

        await self.db.flush()
        return db_order

    async def transition_status(
        self,
        order_id: str,
        from_statuses: List[OrderStatus],
        to_status: OrderStatus,
        values: Optional[Dict[str, Any]] = None,
        mark_inventory_restored: bool = False
    ) -> bool:
        """条件状态变更

        仅当订单当前状态属于 from_statuses 时更新，返回是否成功。
        mark_inventory_restored 为真时还要求 inventory_restored 尚未置位，
        并在同一条语句中置位，保证库存只恢复一次。
        """
        conditions = [
            OrderDB.id == order_id,
            OrderDB.status.in_([s.value for s in from_statuses])
        ]
        update_data = dict(values or {})
        update_data["status"] = to_status.value
        update_data.setdefault("updated_at", datetime.now())

        if mark_inventory_restored:
            conditions.append(OrderDB.inventory_restored.is_(False))
            update_data["inventory_restored"] = True

        result = await self.db.execute(
            update(OrderDB)
            .where(and_(*conditions))
            .values(**update_data)
            .execution_options(synchronize_session=False)
        )

        return result.rowcount == 1

    async def get_expired_pending_order_ids(
        self,
        now: datetime,
        limit: int = 200
    ) -> List[str]:
        """获取已超过自动关闭时间的待付款订单ID"""
        query = select(OrderDB.id).where(
            and_(
                OrderDB.status == OrderStatus.PENDING.value,
                OrderDB.auto_close_at.is_not(None),
                OrderDB.auto_close_at <= now
            )
        ).order_by(OrderDB.auto_close_at).limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count_expired_pending(self, now: datetime) -> int:
        """已到自动关闭时间但仍待付款的订单数"""
        result = await self.db.execute(
            select(func.count(OrderDB.id)).where(
                and_(
                    OrderDB.status == OrderStatus.PENDING.value,
                    OrderDB.auto_close_at <= now
                )
            )
        )
        return result.scalar() or 0

    async def get_status_counts(self, merchant_id: str) -> Dict[str, int]:
        """按状态统计商家订单数"""
        result = await self.db.execute(
            select(OrderDB.status, func.count(OrderDB.id).label("count"))
            .where(OrderDB.merchant_id == merchant_id)
            .group_by(OrderDB.status)
        )
        return {row.status: row.count for row in result.fetchall()}

    def to_model(self, db_order: OrderDB) -> Order:
        """转换为Pydantic模型"""
        items = [
            OrderItem(
                item_id=db_item.id,
                product_id=db_item.product_id,
                product_name=db_item.product_name,
                quantity=db_item.quantity,
                unit_price=db_item.unit_price,
                total_price=db_item.total_price
            )
            for db_item in db_order.order_items
        ]

        return Order(
            order_id=db_order.id,
            order_number=db_order.order_number,
            verification_code=db_order.verification_code,
            customer_id=db_order.customer_id,
            merchant_id=db_order.merchant_id,
            order_items=items,
            subtotal_amount=db_order.subtotal_amount,
            discount_amount=db_order.discount_amount,
            voucher_amount=db_order.voucher_amount,
            total_amount=db_order.total_amount,
            promotion_id=db_order.promotion_id,
            voucher_id=db_order.voucher_id,
            delivery_name=db_order.delivery_name,
            delivery_phone=db_order.delivery_phone,
            delivery_address=db_order.delivery_address,
            status=db_order.status,
            inventory_restored=db_order.inventory_restored,
            cancel_reason=db_order.cancel_reason,
            payment_deadline=db_order.payment_deadline,
            auto_close_at=db_order.auto_close_at,
            created_at=db_order.created_at,
            updated_at=db_order.updated_at,
            paid_at=db_order.paid_at,
            confirmed_at=db_order.confirmed_at,
            received_at=db_order.received_at,
            cancelled_at=db_order.cancelled_at,
            closed_at=db_order.closed_at
        )
