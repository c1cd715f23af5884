"""
库存台账 API 路由
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from wf_core.services import StockLedgerService
from wf_core.utils.logger import get_logger
from .deps import CurrentUser, get_current_user, require_role, respond
from .models import (
    AdjustStockRequest,
    ApiResponse,
    ReceiveStockRequest,
    TransferStockRequest,
    UpdateBatchPricesRequest,
)

router = APIRouter()
logger = get_logger(__name__)


async def get_ledger_service() -> StockLedgerService:
    """依赖注入：获取库存台账服务"""
    return StockLedgerService()


@router.post("/receive", response_model=ApiResponse[dict])
async def receive_stock(
    body: ReceiveStockRequest,
    user: CurrentUser = Depends(get_current_user),
    service: StockLedgerService = Depends(get_ledger_service)
):
    """到货入库"""
    items = [item.model_dump() for item in body.items]
    return respond(await service.receive_stock(user.user_id, body.warehouse_id, items))


@router.post("/adjust", response_model=ApiResponse[dict])
async def adjust_stock(
    body: AdjustStockRequest,
    user: CurrentUser = Depends(get_current_user),
    service: StockLedgerService = Depends(get_ledger_service)
):
    """库存调整（正数入库，负数按 FIFO 扣减）"""
    return respond(await service.adjust_stock(
        user.user_id, body.warehouse_id, body.product_id, body.delta, body.reason
    ))


@router.post("/transfer", response_model=ApiResponse[dict])
async def transfer_stock(
    body: TransferStockRequest,
    user: CurrentUser = Depends(get_current_user),
    service: StockLedgerService = Depends(get_ledger_service)
):
    """仓库间直接调拨"""
    return respond(await service.transfer_stock(
        user.user_id, body.from_warehouse_id, body.to_warehouse_id, body.product_id, body.quantity
    ))


@router.get("/warehouses/{warehouse_id}", response_model=ApiResponse[list])
async def get_warehouse_stock(
    warehouse_id: int,
    user: CurrentUser = Depends(get_current_user),
    service: StockLedgerService = Depends(get_ledger_service)
):
    """仓库库存视图（按商品汇总）"""
    return respond(await service.get_warehouse_stock(warehouse_id))


@router.get("/batches", response_model=ApiResponse[list])
async def list_batches(
    warehouse_id: Optional[int] = Query(None),
    product_id: Optional[int] = Query(None),
    include_depleted: bool = Query(False),
    user: CurrentUser = Depends(get_current_user),
    service: StockLedgerService = Depends(get_ledger_service)
):
    return respond(await service.list_batches(warehouse_id, product_id, include_depleted))


@router.put("/batches/prices", response_model=ApiResponse[list])
async def update_batch_prices(
    body: UpdateBatchPricesRequest,
    user: CurrentUser = Depends(get_current_user),
    service: StockLedgerService = Depends(get_ledger_service)
):
    """批量更新批次售价"""
    updates = [u.model_dump() for u in body.updates]
    return respond(await service.update_batch_prices(user.user_id, updates))


@router.delete("/warehouses/{warehouse_id}/products/{product_id}", response_model=ApiResponse[dict])
async def delete_product_from_warehouse(
    warehouse_id: int,
    product_id: int,
    user: CurrentUser = Depends(require_role("manager")),
    service: StockLedgerService = Depends(get_ledger_service)
):
    """删除某商品在仓库中的全部批次"""
    logger.info("Removing product from warehouse", warehouse_id=warehouse_id, product_id=product_id)
    return respond(await service.delete_product_from_warehouse(user.user_id, warehouse_id, product_id))
