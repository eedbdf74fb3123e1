"""
订单超时关闭后台任务

定期扫描已过自动关闭时间的待付款订单，逐个在独立事务中关闭并恢复库存。
关闭操作以订单状态为条件，多个实例同时运行时每个订单只会被关闭一次。
"""

import asyncio
import logging
from typing import Optional
from datetime import datetime

from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.config import settings
from app.repositories.order_repository import OrderRepository
from app.repositories.promotion_repository import PromotionRepository
from app.repositories.red_packet_repository import RedPacketRepository
from app.services.common_cache import SimpleCache
from app.services.order_service import OrderService
from app.services.red_packet_service import RedPacketService

logger = logging.getLogger(__name__)


class OrderTimeoutReaper:
    """订单超时关闭任务"""

    def __init__(
        self,
        session_maker: async_sessionmaker,
        cache: Optional[SimpleCache] = None,
        batch_size: Optional[int] = None
    ):
        self.session_maker = session_maker
        self.cache = cache
        self.batch_size = batch_size or settings.order_timeout_batch_size
        self._task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _find_expired(self, now: datetime):
        async with self.session_maker() as session:
            return await OrderRepository(session).get_expired_pending_order_ids(now, limit=self.batch_size)

    async def backlog(self, now: Optional[datetime] = None) -> int:
        """当前积压的超时未关闭订单数"""
        async with self.session_maker() as session:
            return await OrderRepository(session).count_expired_pending(now or datetime.now())

    async def close_one(self, order_id: str, now: datetime) -> bool:
        """在独立事务中关闭单个订单，提交后再清除订单缓存"""
        async with self.session_maker() as session:
            service = OrderService.for_session(session, cache=self.cache)
            async with session.begin():
                closed = await service.close_expired(order_id, now)
            await service.invalidate_cache()
            return closed

    async def sweep(self, now: Optional[datetime] = None) -> int:
        """扫描并关闭超时订单，返回本次实际关闭的数量

        单个订单失败只记录日志，不影响其余订单。
        """
        now = now or datetime.now()
        order_ids = await self._find_expired(now)
        if not order_ids:
            return 0

        logger.info(f"发现超时订单: count={len(order_ids)}")
        closed = 0
        for order_id in order_ids:
            try:
                if await self.close_one(order_id, now):
                    closed += 1
            except Exception as e:
                logger.error(f"关闭超时订单失败: order_id={order_id}, error: {e}", exc_info=True)

        logger.info(f"超时订单处理完成: found={len(order_ids)}, closed={closed}")
        return closed

    async def expire_vouchers(self, now: Optional[datetime] = None) -> int:
        """顺带标记已过期的代金券"""
        async with self.session_maker() as session:
            async with session.begin():
                service = RedPacketService(PromotionRepository(session), RedPacketRepository(session))
                return await service.expire_vouchers(now)

    async def run_once(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now()
        closed = await self.sweep(now)
        await self.expire_vouchers(now)
        return closed

    async def _loop(self, interval: float) -> None:
        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"超时订单扫描失败: {e}", exc_info=True)

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    def start(self, interval: Optional[float] = None) -> None:
        """启动后台任务，立即执行一次扫描后按间隔重复"""
        if self.running:
            logger.warning("超时订单任务已在运行")
            return

        interval = interval or settings.order_timeout_check_interval_seconds
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop(interval))
        logger.info(f"超时订单任务已启动: interval={interval}s")

    async def stop(self) -> None:
        """停止后台任务，等待当前一轮扫描结束"""
        if not self._task:
            return

        self._stop_event.set()
        await self._task
        self._task = None
        logger.info("超时订单任务已停止")
