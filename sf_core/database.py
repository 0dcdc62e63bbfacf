"""
StoreFlow 数据库连接和会话管理
"""
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    create_async_engine,
    async_sessionmaker,
    AsyncSession,
    AsyncEngine
)
from sqlalchemy import text, event
from sqlalchemy.pool import NullPool

from sf_core.config import Settings, get_settings
from sf_core.utils.logger import get_logger
from sf_core.models.base import Base

logger = get_logger(__name__)

# 慢查询阈值（毫秒）
SLOW_QUERY_THRESHOLD_MS = 100


def _setup_slow_query_logging(engine) -> None:
    """为同步引擎设置慢查询监控"""
    @event.listens_for(engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("query_start_time", []).append(time.perf_counter())

    @event.listens_for(engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        start_times = conn.info.get("query_start_time", [])
        if not start_times:
            return
        duration_ms = (time.perf_counter() - start_times.pop()) * 1000
        if duration_ms >= SLOW_QUERY_THRESHOLD_MS:
            # 截断过长的 SQL 语句
            sql = statement[:2000] + "..." if len(statement) > 2000 else statement
            logger.warning(
                "Slow query",
                duration_ms=round(duration_ms, 1),
                sql=" ".join(sql.split()),
            )


class DatabaseManager:
    """数据库管理器"""

    def __init__(self, settings: Optional[Settings] = None, db_url: Optional[str] = None):
        self.settings = settings or get_settings()
        self.url = db_url or self.settings.database_url
        self._async_engine: Optional[AsyncEngine] = None
        self._async_session_factory: Optional[async_sessionmaker] = None

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    def create_async_engine(self) -> AsyncEngine:
        """创建异步数据库引擎"""
        if self._async_engine is None:
            if self.is_sqlite:
                # SQLite 每个会话独立连接，写锁等待交给 busy timeout
                self._async_engine = create_async_engine(
                    self.url,
                    poolclass=NullPool,
                    connect_args={"timeout": 5},
                    echo=self.settings.api_debug,
                )
            else:
                self._async_engine = create_async_engine(
                    self.url,
                    # 连接池配置
                    pool_size=self.settings.db_pool_size,
                    max_overflow=self.settings.db_max_overflow,
                    pool_pre_ping=True,  # 连接前检查有效性
                    pool_recycle=3600,   # 1小时回收连接
                    echo=self.settings.api_debug,
                )
            if self.settings.db_slow_query_log:
                _setup_slow_query_logging(self._async_engine.sync_engine)
            logger.info("Created async database engine", sqlite=self.is_sqlite)

        return self._async_engine

    def get_async_session_factory(self) -> async_sessionmaker:
        """获取异步会话工厂"""
        if self._async_session_factory is None:
            engine = self.create_async_engine()
            self._async_session_factory = async_sessionmaker(
                engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,  # 手动控制刷新时机
            )

        return self._async_session_factory

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """获取数据库会话上下文管理器"""
        session_factory = self.get_async_session_factory()
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    @asynccontextmanager
    async def get_transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """获取事务上下文管理器，正常退出时提交"""
        session_factory = self.get_async_session_factory()
        async with session_factory() as session:
            async with session.begin():
                yield session

    async def create_tables(self) -> None:
        """创建所有表（仅用于测试和本地开发）"""
        engine = self.create_async_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Created all database tables")

    async def drop_tables(self) -> None:
        """删除所有表（仅用于测试）"""
        engine = self.create_async_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.info("Dropped all database tables")

    async def check_connection(self) -> bool:
        """检查数据库连接"""
        try:
            engine = self.create_async_engine()
            async with engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.error("Database connection check failed", exc_info=True)
            return False

    async def close(self) -> None:
        """关闭数据库连接"""
        if self._async_engine:
            await self._async_engine.dispose()
            self._async_engine = None
            self._async_session_factory = None
            logger.info("Closed async database engine")
