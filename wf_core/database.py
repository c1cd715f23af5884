"""
WareFlow 数据库引擎与会话

生产环境 PostgreSQL（asyncpg），测试使用 SQLite（aiosqlite）。
会话统一 autoflush=False、expire_on_commit=False，服务层显式 flush。
"""
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import event, text
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from wf_core.config import Settings, get_settings
from wf_core.models.base import Base
from wf_core.utils.logger import get_logger

logger = get_logger(__name__)

_QUERY_START = "wf_query_start"


def _instrument(sync_engine: Engine, settings: Settings, sqlite: bool) -> None:
    """挂载慢查询计时；SQLite 连接打开外键约束"""
    threshold_ms = settings.db_slow_query_ms

    @event.listens_for(sync_engine, "before_cursor_execute")
    def _start_timer(conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault(_QUERY_START, []).append(time.perf_counter())

    @event.listens_for(sync_engine, "after_cursor_execute")
    def _report_slow(conn, cursor, statement, parameters, context, executemany):
        starts = conn.info.get(_QUERY_START)
        if not starts:
            return
        elapsed_ms = (time.perf_counter() - starts.pop()) * 1000
        if elapsed_ms >= threshold_ms:
            logger.warning(
                "Slow query",
                duration_ms=round(elapsed_ms, 1),
                sql=" ".join(statement.split())[:1000],
            )

    if sqlite:
        @event.listens_for(sync_engine, "connect")
        def _foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()


class DatabaseManager:
    """引擎与会话工厂的惰性持有者"""

    def __init__(self):
        self.settings = get_settings()
        self._engine: Optional[AsyncEngine] = None
        self._sessions: Optional[async_sessionmaker] = None

    @property
    def is_sqlite(self) -> bool:
        return self.settings.database_url.startswith("sqlite")

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            options: Dict[str, Any] = {"echo": self.settings.api_debug}
            if not self.is_sqlite:
                options.update(
                    pool_size=self.settings.db_pool_size,
                    max_overflow=self.settings.db_max_overflow,
                    pool_pre_ping=True,
                    pool_recycle=3600,
                )
            self._engine = create_async_engine(self.settings.database_url, **options)
            _instrument(self._engine.sync_engine, self.settings, self.is_sqlite)
            logger.info("Database engine created", dialect=self._engine.dialect.name)
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker:
        if self._sessions is None:
            self._sessions = async_sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )
        return self._sessions

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """只读会话，出错时回滚"""
        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    @asynccontextmanager
    async def get_transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """写事务：正常退出提交，异常回滚"""
        async with self.session_factory() as session:
            async with session.begin():
                yield session

    async def create_tables(self) -> None:
        """按模型元数据建表（测试与本地开发；生产走 Alembic）"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def check_connection(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.error("Database connection check failed", exc_info=True)
            return False

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._sessions = None
            logger.info("Database engine disposed")


_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


def reset_db_manager() -> None:
    """丢弃单例；调用前应先 await close()"""
    global _db_manager
    _db_manager = None
