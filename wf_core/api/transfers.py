"""
调拨申请 API 路由
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from wf_core.services import StockTransferService
from .deps import CurrentUser, get_current_user, respond
from .models import ApiResponse, ApproveTransferRequest, CancelTransferRequest, CreateTransferRequest

router = APIRouter()


async def get_transfer_service() -> StockTransferService:
    """依赖注入：获取调拨服务"""
    return StockTransferService()


@router.post("", response_model=ApiResponse[dict])
async def create_transfer(
    body: CreateTransferRequest,
    user: CurrentUser = Depends(get_current_user),
    service: StockTransferService = Depends(get_transfer_service)
):
    """创建调拨申请"""
    return respond(await service.create_transfer(user.user_id, body.model_dump()))


@router.get("", response_model=ApiResponse[list])
async def list_transfers(
    status: Optional[str] = Query(None),
    warehouse_id: Optional[int] = Query(None),
    user: CurrentUser = Depends(get_current_user),
    service: StockTransferService = Depends(get_transfer_service)
):
    return respond(await service.list_transfers(status, warehouse_id))


@router.post("/{transfer_id}/approve", response_model=ApiResponse[dict])
async def approve_transfer(
    transfer_id: int,
    body: ApproveTransferRequest,
    user: CurrentUser = Depends(get_current_user),
    service: StockTransferService = Depends(get_transfer_service)
):
    """审批调拨并生成发运单"""
    return respond(await service.approve_transfer(
        user.user_id, transfer_id, body.transport_id, body.scheduled_pickup_date
    ))


@router.post("/{transfer_id}/complete", response_model=ApiResponse[dict])
async def complete_transfer(
    transfer_id: int,
    user: CurrentUser = Depends(get_current_user),
    service: StockTransferService = Depends(get_transfer_service)
):
    """货物到达，执行台账调拨"""
    return respond(await service.complete_transfer(user.user_id, transfer_id))


@router.post("/{transfer_id}/cancel", response_model=ApiResponse[dict])
async def cancel_transfer(
    transfer_id: int,
    body: CancelTransferRequest,
    user: CurrentUser = Depends(get_current_user),
    service: StockTransferService = Depends(get_transfer_service)
):
    return respond(await service.cancel_transfer(user.user_id, transfer_id, body.reason))
