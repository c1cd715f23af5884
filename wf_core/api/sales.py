"""
销售 API 路由
"""
from fastapi import APIRouter, Depends, Query

from wf_core.services import SalesService
from .deps import CurrentUser, get_current_user, respond
from .models import ApiResponse, RecordSaleRequest

router = APIRouter()


async def get_sales_service() -> SalesService:
    """依赖注入：获取销售服务"""
    return SalesService()


@router.post("", response_model=ApiResponse[dict])
async def record_sale(
    body: RecordSaleRequest,
    user: CurrentUser = Depends(get_current_user),
    service: SalesService = Depends(get_sales_service)
):
    """记录销售（按 FIFO 出库）"""
    items = [item.model_dump() for item in body.items]
    return respond(await service.record_sale(
        user.user_id, body.warehouse_id, items, body.payment_method, body.sale_date
    ))


@router.get("", response_model=ApiResponse[list])
async def list_sales(
    warehouse_id: int = Query(...),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(get_current_user),
    service: SalesService = Depends(get_sales_service)
):
    return respond(await service.list_sales(warehouse_id, limit, offset))
