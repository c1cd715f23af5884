"""
仓库分析 API 路由
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from wf_core.services import AnalyticsService
from .deps import CurrentUser, get_current_user, respond
from .models import ApiResponse

router = APIRouter()


async def get_analytics_service() -> AnalyticsService:
    """依赖注入：获取分析服务"""
    return AnalyticsService()


@router.get("/warehouses/{warehouse_id}/turnover", response_model=ApiResponse[list])
async def inventory_turnover(
    warehouse_id: int,
    days: Optional[int] = Query(None, ge=1, le=3650),
    user: CurrentUser = Depends(get_current_user),
    service: AnalyticsService = Depends(get_analytics_service)
):
    """库存周转率"""
    return respond(await service.get_inventory_turnover(warehouse_id, days))


@router.get("/warehouses/{warehouse_id}/profitability", response_model=ApiResponse[list])
async def profitability_analysis(
    warehouse_id: int,
    days: Optional[int] = Query(None, ge=1, le=3650),
    user: CurrentUser = Depends(get_current_user),
    service: AnalyticsService = Depends(get_analytics_service)
):
    """批次利润率"""
    return respond(await service.get_profitability_analysis(warehouse_id, days))


@router.get("/warehouses/{warehouse_id}/slow-moving", response_model=ApiResponse[list])
async def slow_moving_stock(
    warehouse_id: int,
    days: Optional[int] = Query(None, ge=1, le=3650),
    user: CurrentUser = Depends(get_current_user),
    service: AnalyticsService = Depends(get_analytics_service)
):
    """滞销库存"""
    return respond(await service.get_slow_moving_stock(warehouse_id, days))


@router.get("/warehouses/{warehouse_id}/expiry-alerts", response_model=ApiResponse[list])
async def expiry_alerts(
    warehouse_id: int,
    days_ahead: Optional[int] = Query(None, ge=1, le=3650),
    user: CurrentUser = Depends(get_current_user),
    service: AnalyticsService = Depends(get_analytics_service)
):
    """临期预警"""
    return respond(await service.get_expiry_alerts(warehouse_id, days_ahead))


@router.get("/warehouses/{warehouse_id}/summary", response_model=ApiResponse[dict])
async def warehouse_summary(
    warehouse_id: int,
    user: CurrentUser = Depends(get_current_user),
    service: AnalyticsService = Depends(get_analytics_service)
):
    """仓库分析汇总"""
    return respond(await service.get_warehouse_analytics_summary(warehouse_id))
