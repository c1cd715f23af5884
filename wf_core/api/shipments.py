"""
发运 API 路由
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query

from wf_core.services import ShipmentService
from wf_core.utils.logger import get_logger
from .deps import CurrentUser, get_current_user, require_role, respond
from .models import (
    SHIPMENT_WIZARD,
    ApiResponse,
    CreateShipmentRequest,
    QualityCheckRequest,
    ShipmentWizardRequest,
    UpdateLocationRequest,
    UpdateShipmentStatusRequest,
)

router = APIRouter()
logger = get_logger(__name__)


async def get_shipment_service() -> ShipmentService:
    """依赖注入：获取发运服务"""
    return ShipmentService()


@router.post("", response_model=ApiResponse[dict])
async def create_shipment(
    body: CreateShipmentRequest,
    user: CurrentUser = Depends(get_current_user),
    service: ShipmentService = Depends(get_shipment_service)
):
    """创建发运单"""
    return respond(await service.create_shipment(user.user_id, body.model_dump()))


@router.get("", response_model=ApiResponse[list])
async def list_shipments(
    status: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    user: CurrentUser = Depends(get_current_user),
    service: ShipmentService = Depends(get_shipment_service)
):
    return respond(await service.list_shipments(status, limit, offset))


@router.get("/analytics", response_model=ApiResponse[dict])
async def shipment_analytics(
    user: CurrentUser = Depends(get_current_user),
    service: ShipmentService = Depends(get_shipment_service)
):
    """各状态发运数量"""
    return respond(await service.get_shipment_analytics())


@router.get("/status/{status}", response_model=ApiResponse[list])
async def shipments_by_status(
    status: str,
    user: CurrentUser = Depends(get_current_user),
    service: ShipmentService = Depends(get_shipment_service)
):
    return respond(await service.get_shipments_by_status(status))


@router.post("/wizard/{step}", response_model=ApiResponse[dict])
async def validate_wizard_step(
    step: int,
    payload: Dict[str, Any] = Body(...),
    user: CurrentUser = Depends(get_current_user)
):
    """校验向导单步数据"""
    validated = SHIPMENT_WIZARD.validate_step(step, payload)
    is_last = step == SHIPMENT_WIZARD.step_count - 1
    return ApiResponse.success({
        "step": step,
        "valid": True,
        "next_step": None if is_last else step + 1,
        "data": validated.model_dump(mode="json"),
    })


@router.post("/wizard", response_model=ApiResponse[dict])
async def submit_wizard(
    body: ShipmentWizardRequest,
    user: CurrentUser = Depends(get_current_user),
    service: ShipmentService = Depends(get_shipment_service)
):
    """提交全部向导步骤并创建发运单"""
    request = SHIPMENT_WIZARD.assemble(body.steps)
    return respond(await service.create_shipment(user.user_id, request.model_dump()))


@router.get("/{shipment_id}", response_model=ApiResponse[dict])
async def get_shipment(
    shipment_id: int,
    user: CurrentUser = Depends(get_current_user),
    service: ShipmentService = Depends(get_shipment_service)
):
    return respond(await service.get_shipment(shipment_id))


@router.patch("/{shipment_id}/status", response_model=ApiResponse[dict])
async def update_shipment_status(
    shipment_id: int,
    body: UpdateShipmentStatusRequest,
    user: CurrentUser = Depends(get_current_user),
    service: ShipmentService = Depends(get_shipment_service)
):
    """更新发运状态"""
    return respond(await service.update_shipment_status(user.user_id, shipment_id, body.status, body.notes))


@router.post("/{shipment_id}/location", response_model=ApiResponse[dict])
async def update_shipment_location(
    shipment_id: int,
    body: UpdateLocationRequest,
    user: CurrentUser = Depends(get_current_user),
    service: ShipmentService = Depends(get_shipment_service)
):
    """上报当前位置"""
    return respond(await service.update_shipment_location(
        user.user_id, shipment_id, body.model_dump(exclude_none=True)
    ))


@router.post("/{shipment_id}/quality-check", response_model=ApiResponse[dict])
async def perform_quality_check(
    shipment_id: int,
    body: QualityCheckRequest,
    user: CurrentUser = Depends(get_current_user),
    service: ShipmentService = Depends(get_shipment_service)
):
    return respond(await service.perform_quality_check(
        user.user_id, shipment_id, body.results, body.approved, body.issues
    ))


@router.delete("/{shipment_id}", response_model=ApiResponse[dict])
async def delete_shipment(
    shipment_id: int,
    user: CurrentUser = Depends(require_role("manager")),
    service: ShipmentService = Depends(get_shipment_service)
):
    logger.info("Deleting shipment", shipment_id=shipment_id)
    return respond(await service.delete_shipment(user.user_id, shipment_id))
