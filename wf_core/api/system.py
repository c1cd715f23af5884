"""
系统 API 路由
"""
from fastapi import APIRouter, Response

from wf_core import __version__
from wf_core.config import get_settings
from wf_core.database import get_db_manager
from wf_core.event_bus import get_event_bus
from wf_core.models.base import utcnow
from wf_core.utils.logger import get_logger
from wf_core.utils.metrics import render_latest
from .models import ApiResponse

router = APIRouter()
logger = get_logger(__name__)


@router.get("/health", response_model=ApiResponse[dict])
async def health_check():
    """健康检查（含数据库连通性）"""
    db_ok = await get_db_manager().check_connection()
    return ApiResponse.success({
        "status": "healthy" if db_ok else "degraded",
        "database": db_ok,
        "timestamp": utcnow().isoformat(),
        "version": __version__,
    })


@router.get("/metrics")
async def metrics():
    """Prometheus 指标端点"""
    body, content_type = render_latest()
    return Response(body, media_type=content_type)


@router.get("/info", response_model=ApiResponse[dict])
async def system_info():
    """系统信息"""
    settings = get_settings()
    return ApiResponse.success({
        "name": "WareFlow",
        "version": __version__,
        "api_version": settings.api_version,
        "events_enabled": get_event_bus().enabled,
        "strict_transitions": settings.shipment_strict_transitions,
        "price_guard_enabled": settings.price_guard_enabled,
    })
