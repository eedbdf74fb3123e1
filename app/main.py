from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError
import uvicorn

from app.core.config import settings
from app.core.redis import redis_manager
from app.core.database import init_database, close_database, get_session_maker
from app.services.common_cache import order_cache
from app.services.order_timeout import OrderTimeoutReaper
from app.api.health import router as health_router
from app.api.orders import router as orders_router
from app.api.promotions import router as promotions_router
from app.api.red_packets import router as red_packets_router, voucher_router
from app.api.exceptions import (
    validation_exception_handler,
    http_exception_handler,
    database_exception_handler,
    general_exception_handler,
    business_exception_handler,
    BusinessException
)

# 简化日志配置
import logging

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logger.info("正在启动订单核心服务")

    try:
        # 初始化数据库连接
        await init_database()
        logger.info("PostgreSQL数据库初始化成功")
    except Exception as e:
        logger.error(f"应用启动失败: {e}")
        raise

    # Redis 只承担缓存，不可用时降级为直接读库
    try:
        await redis_manager.init_redis()
        order_cache.redis_client = redis_manager.redis_pool
        await order_cache.init_redis()
        logger.info("Redis初始化成功")
    except Exception as e:
        logger.warning(f"Redis不可用，订单缓存已禁用: {e}")

    reaper = OrderTimeoutReaper(get_session_maker(), cache=order_cache)
    app.state.order_timeout_reaper = reaper
    if settings.order_timeout_reaper_enabled:
        reaper.start(settings.order_timeout_check_interval_seconds)

    logger.info("应用启动完成")

    yield

    logger.info("正在关闭应用")
    await reaper.stop()
    order_cache.redis_client = None
    await redis_manager.close_redis()
    await close_database()
    logger.info("应用关闭完成")


# 创建FastAPI应用
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="多商家订单核心 - 库存扣减、优惠活动、拼手气红包与订单状态流转",
    debug=settings.debug,
    lifespan=lifespan
)

# CORS中间件
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# 注册路由
app.include_router(health_router)
app.include_router(orders_router)
app.include_router(promotions_router)
app.include_router(red_packets_router)
app.include_router(voucher_router)

# 注册异常处理器
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(SQLAlchemyError, database_exception_handler)
app.add_exception_handler(BusinessException, business_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)


@app.get("/")
async def root():
    """根路径"""
    return {
        "message": f"欢迎使用 {settings.app_name}",
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
