"""
审计日志 API 路由
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from wf_core.services import AuditService
from .deps import CurrentUser, get_current_user, respond
from .models import ApiResponse

router = APIRouter()


async def get_audit_service() -> AuditService:
    return AuditService()


@router.get("", response_model=ApiResponse[list])
async def list_audit_logs(
    table_name: Optional[str] = Query(None, description="表名"),
    record_id: Optional[str] = Query(None, description="记录ID"),
    module: Optional[str] = Query(None, description="模块"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(get_current_user),
    service: AuditService = Depends(get_audit_service)
):
    """查询审计日志"""
    return respond(await service.list_logs(table_name, record_id, module, limit, offset))
