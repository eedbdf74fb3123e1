from fastapi import APIRouter, HTTPException, Request
import logging

from app.core.config import settings
from app.core.redis import redis_manager
from app.core.database import database_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["健康检查"])


@router.get("")
async def health_check():
    """基础健康检查接口"""
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment
    }


@router.get("/database")
async def database_health():
    """数据库连接健康检查

    PostgreSQL 不可用时返回503；Redis 只用于缓存，不可用时仅标记降级。
    """
    health_status = {
        "postgresql": False,
        "redis": False,
        "overall": False,
        "details": {}
    }

    pg_status = await database_service.health_check()
    health_status["postgresql"] = pg_status["status"] == "healthy"
    health_status["details"]["postgresql"] = pg_status["message"]

    redis_status = await redis_manager.health_check()
    health_status["redis"] = redis_status["status"] == "healthy"
    health_status["details"]["redis"] = redis_status["message"]

    health_status["overall"] = health_status["postgresql"] and health_status["redis"]

    if not health_status["postgresql"]:
        logger.error(f"数据库健康检查失败: {pg_status['message']}")
        raise HTTPException(status_code=503, detail="数据库连接失败")

    if not health_status["overall"]:
        logger.warning(f"连接检查部分失败: {health_status['details']}")
    return health_status


@router.get("/detailed")
async def detailed_health(request: Request):
    """详细健康检查，包括各组件状态"""
    reaper = getattr(request.app.state, "order_timeout_reaper", None)

    pg_status = await database_service.health_check()
    redis_status = await redis_manager.health_check()

    backlog = None
    if reaper and pg_status["status"] == "healthy":
        backlog = await reaper.backlog()

    return {
        "app": {
            "name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
            "debug": settings.debug
        },
        "databases": {
            "postgresql": {**pg_status, "connection": await database_service.get_connection_info()},
            "redis": redis_status
        },
        "order_timeout_reaper": {
            "running": bool(reaper and reaper.running),
            "interval_seconds": settings.order_timeout_check_interval_seconds,
            "overdue_pending_orders": backlog
        },
        "overall": pg_status["status"] == "healthy" and redis_status["status"] == "healthy"
    }
