from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, AsyncEngine, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from typing import AsyncGenerator
import logging
import time

from app.core.config import settings

logger = logging.getLogger(__name__)

# 创建基础模型类
Base = declarative_base()

# 全局数据库引擎
engine: AsyncEngine = None
async_session_maker: async_sessionmaker = None


async def init_database() -> None:
    """初始化数据库连接"""
    global engine, async_session_maker

    try:
        # 创建异步数据库引擎
        engine = create_async_engine(
            settings.database_url_computed,
            echo=settings.debug,  # 调试模式下打印SQL
            poolclass=NullPool if settings.is_testing else None,
            pool_pre_ping=True,  # 连接前ping检查
            pool_recycle=3600,   # 连接回收时间1小时
        )

        # 创建异步session工厂
        async_session_maker = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        logger.info("数据库连接初始化成功")

    except Exception as e:
        logger.error(f"数据库连接初始化失败: {e}")
        raise


async def close_database() -> None:
    """关闭数据库连接"""
    global engine

    if engine:
        await engine.dispose()
        logger.info("数据库连接已关闭")


def get_session_maker() -> async_sessionmaker:
    """获取session工厂（供后台任务自行开启事务）"""
    if not async_session_maker:
        raise RuntimeError("数据库未初始化，请先调用 init_database()")
    return async_session_maker


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """获取数据库会话依赖注入函数

    一个请求对应一个事务：任何异常都回滚，因此库存扣减、优惠计数、
    红包领取不会留下部分副作用。
    依赖的收尾代码在响应发出之后才执行，写操作路由需要在返回前自行提交；
    这里的提交只处理没有显式提交的会话。
    """
    async with get_session_maker()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


class DatabaseService:
    """数据库连接状态查询"""

    @property
    def engine(self) -> AsyncEngine:
        return engine

    async def health_check(self) -> dict:
        """执行一次往返查询，返回连接状态和耗时"""
        if not self.engine:
            return {"status": "error", "message": "数据库引擎未初始化"}

        started = time.perf_counter()
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"数据库健康检查失败: {e}")
            return {"status": "error", "message": f"数据库连接失败: {e}"}

        return {
            "status": "healthy",
            "message": "数据库连接正常",
            "latency_ms": round((time.perf_counter() - started) * 1000, 2)
        }

    async def get_connection_info(self) -> dict:
        """连接池概况（密码已隐藏）"""
        if not self.engine:
            return {"status": "not_initialized"}

        pool = self.engine.pool
        return {
            "url": self.engine.url.render_as_string(hide_password=True),
            "driver": self.engine.url.drivername,
            "pool": pool.status(),
        }


# 全局数据库服务实例
database_service = DatabaseService()
