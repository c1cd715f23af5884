"""
服务层基类

- 写操作：execute_with_transaction，一次调用一个事务，乐观锁冲突整体重放
- 读操作：execute_with_session
- 业务异常（WareFlowException）原样上抛，其余异常包装为 500
"""
from abc import ABC
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from wf_core.config import get_settings
from wf_core.database import get_db_manager
from wf_core.utils.errors import (
    ConflictError, InternalServerError, NotFoundError, ValidationError, WareFlowException
)
from wf_core.utils.logger import get_logger

T = TypeVar('T')

Operation = Callable[..., Awaitable[Any]]


@dataclass
class ServiceResult(Generic[T]):
    success: bool
    data: Optional[T] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def ok(cls, data: T, metadata: Optional[Dict[str, Any]] = None) -> "ServiceResult[T]":
        return cls(success=True, data=data, metadata=metadata)

    @classmethod
    def error(cls, error: str, error_code: Optional[str] = None) -> "ServiceResult[T]":
        return cls(success=False, error=error, error_code=error_code)


class BaseService(ABC):

    def __init__(self):
        self.settings = get_settings()
        self.db_manager = get_db_manager()
        self.logger = get_logger(self.__class__.__name__)

    def _internal_error(self, code: str, what: str, exc: Exception) -> InternalServerError:
        self.logger.error(f"{what} failed", operation_error=type(exc).__name__, exc_info=True)
        return InternalServerError(code=code, detail=f"{what} failed: {exc}")

    async def execute_with_transaction(self, operation: Operation, *args, **kwargs) -> Any:
        """
        在独立事务中执行 operation(session, *args, **kwargs)

        批次行带版本号；StaleDataError 时回滚并重放整个操作，
        重放 stock_conflict_retries 次仍冲突则抛出 CONCURRENT_MODIFICATION。
        """
        attempts = self.settings.stock_conflict_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                async with self.db_manager.get_transaction() as session:
                    return await operation(session, *args, **kwargs)
            except WareFlowException:
                raise
            except StaleDataError:
                self.logger.info("Stale stock row, replaying transaction", attempt=attempt, attempts=attempts)
            except Exception as e:
                raise self._internal_error("TRANSACTION_FAILED", "Database transaction", e)

        self.logger.warning("Concurrent modification retries exhausted", attempts=attempts)
        raise ConflictError(
            code="CONCURRENT_MODIFICATION",
            detail="Record was modified concurrently, please retry"
        )

    async def execute_with_session(self, operation: Operation, *args, **kwargs) -> Any:
        """只读查询"""
        try:
            async with self.db_manager.get_session() as session:
                return await operation(session, *args, **kwargs)
        except WareFlowException:
            raise
        except Exception as e:
            raise self._internal_error("SESSION_OPERATION_FAILED", "Database operation", e)

    def validate_required_fields(self, data: Dict[str, Any], required_fields: List[str]) -> None:
        missing = [name for name in required_fields if data.get(name) is None]
        if missing:
            raise ValidationError(
                code="MISSING_REQUIRED_FIELDS",
                detail=f"Missing required fields: {', '.join(missing)}"
            )


class RepositoryMixin:
    """按主键读取（软删除视为不存在）、创建、存在性检查"""

    async def get_by_id(self, session: AsyncSession, model_class, record_id: int) -> Optional[Any]:
        instance = await session.get(model_class, record_id)
        if instance is None or getattr(instance, "del_flag", False):
            return None
        return instance

    async def get_or_404(
        self,
        session: AsyncSession,
        model_class,
        record_id: int,
        code: str,
        resource: str
    ) -> Any:
        instance = await self.get_by_id(session, model_class, record_id)
        if instance is None:
            raise NotFoundError(code=code, resource=resource)
        return instance

    async def create(self, session: AsyncSession, model_class, data: Dict[str, Any]) -> Any:
        instance = model_class(**data)
        session.add(instance)
        await session.flush()
        return instance

    async def unique_number(
        self,
        session: AsyncSession,
        column,
        generator: Callable[[], str],
        attempts: int = 5
    ) -> str:
        """生成 column 中未被占用的单号；多次碰撞后抛出 NUMBER_COLLISION"""
        for _ in range(attempts):
            number = generator()
            taken = await session.execute(select(column).where(column == number).limit(1))
            if taken.first() is None:
                return number
        raise ConflictError(
            code="NUMBER_COLLISION",
            detail=f"Could not generate a unique {column.key.replace('_', ' ')}"
        )

    async def exists(self, session: AsyncSession, model_class, **filters) -> bool:
        """包含软删除记录：名称与编号在删除后仍被占用"""
        stmt = select(model_class.id).filter_by(**filters).limit(1)
        return (await session.execute(stmt)).first() is not None
