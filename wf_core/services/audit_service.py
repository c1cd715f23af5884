"""
审计日志服务
台账、发运、调拨的修改操作在同一事务内写入审计记录
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wf_core.models.audit_log import AuditLog
from wf_core.utils.logger import get_logger, trace_id_var
from .base import BaseService, ServiceResult

logger = get_logger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def diff(old: Any, new: Any) -> Dict[str, Any]:
    """单字段变更"""
    return {"old": _jsonable(old), "new": _jsonable(new)}


class AuditService(BaseService):
    """审计日志服务"""

    @staticmethod
    async def record(
        session: AsyncSession,
        *,
        user_id: Optional[int],
        module: str,
        action: str,
        table_name: str,
        record_id: Any,
        changes: Optional[Dict[str, Any]] = None,
        notes: Optional[str] = None,
    ) -> AuditLog:
        """在调用方事务中写入审计记录，不单独提交"""
        audit_log = AuditLog(
            user_id=user_id,
            module=module,
            action=action,
            table_name=table_name,
            record_id=str(record_id),
            changes=changes,
            request_id=trace_id_var.get(),
            notes=notes,
        )
        session.add(audit_log)
        await session.flush()

        logger.debug(
            "Audit log recorded",
            audit_module=module,
            audit_action=action,
            table_name=table_name,
            record_id=str(record_id),
        )
        return audit_log

    async def list_logs(
        self,
        table_name: Optional[str] = None,
        record_id: Optional[str] = None,
        module: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> ServiceResult[List[Dict[str, Any]]]:
        """查询审计日志（按时间倒序）"""
        logs = await self.execute_with_session(
            self._list_logs_query, table_name, record_id, module, limit, offset
        )
        return ServiceResult.ok(logs, metadata={"limit": limit, "offset": offset, "count": len(logs)})

    async def _list_logs_query(
        self,
        session: AsyncSession,
        table_name: Optional[str],
        record_id: Optional[str],
        module: Optional[str],
        limit: int,
        offset: int
    ) -> List[Dict[str, Any]]:
        stmt = select(AuditLog)
        if table_name:
            stmt = stmt.where(AuditLog.table_name == table_name)
        if record_id:
            stmt = stmt.where(AuditLog.record_id == str(record_id))
        if module:
            stmt = stmt.where(AuditLog.module == module)
        stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).offset(offset)

        result = await session.execute(stmt)
        return [log.to_dict() for log in result.scalars().all()]
