"""
基础资料 API 路由（仓库、运输工具、商品）
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from wf_core.services import RegistryService
from .deps import CurrentUser, get_current_user, require_role, respond
from .models import ApiResponse, CreateProductRequest, CreateTransportRequest, CreateWarehouseRequest

router = APIRouter()


async def get_registry_service() -> RegistryService:
    """依赖注入：获取基础资料服务"""
    return RegistryService()


@router.post("/warehouses", response_model=ApiResponse[dict])
async def create_warehouse(
    body: CreateWarehouseRequest,
    user: CurrentUser = Depends(get_current_user),
    service: RegistryService = Depends(get_registry_service)
):
    return respond(await service.create_warehouse(user.user_id, body.model_dump()))


@router.get("/warehouses", response_model=ApiResponse[list])
async def list_warehouses(
    active_only: bool = Query(True),
    user: CurrentUser = Depends(get_current_user),
    service: RegistryService = Depends(get_registry_service)
):
    return respond(await service.list_warehouses(active_only))


@router.delete("/warehouses/{warehouse_id}", response_model=ApiResponse[dict])
async def delete_warehouse(
    warehouse_id: int,
    user: CurrentUser = Depends(require_role("manager")),
    service: RegistryService = Depends(get_registry_service)
):
    return respond(await service.delete_warehouse(user.user_id, warehouse_id))


@router.post("/transports", response_model=ApiResponse[dict])
async def create_transport(
    body: CreateTransportRequest,
    user: CurrentUser = Depends(get_current_user),
    service: RegistryService = Depends(get_registry_service)
):
    return respond(await service.create_transport(user.user_id, body.model_dump()))


@router.get("/transports", response_model=ApiResponse[list])
async def list_transports(
    status: Optional[str] = Query(None),
    active_only: bool = Query(True),
    user: CurrentUser = Depends(get_current_user),
    service: RegistryService = Depends(get_registry_service)
):
    return respond(await service.list_transports(status, active_only))


@router.delete("/transports/{transport_id}", response_model=ApiResponse[dict])
async def delete_transport(
    transport_id: int,
    user: CurrentUser = Depends(require_role("manager")),
    service: RegistryService = Depends(get_registry_service)
):
    return respond(await service.delete_transport(user.user_id, transport_id))


@router.post("/products", response_model=ApiResponse[dict])
async def create_product(
    body: CreateProductRequest,
    user: CurrentUser = Depends(get_current_user),
    service: RegistryService = Depends(get_registry_service)
):
    return respond(await service.create_product(user.user_id, body.model_dump()))


@router.get("/products", response_model=ApiResponse[list])
async def list_products(
    user: CurrentUser = Depends(get_current_user),
    service: RegistryService = Depends(get_registry_service)
):
    return respond(await service.list_products())


@router.delete("/products/{product_id}", response_model=ApiResponse[dict])
async def delete_product(
    product_id: int,
    user: CurrentUser = Depends(require_role("manager")),
    service: RegistryService = Depends(get_registry_service)
):
    return respond(await service.delete_product(user.user_id, product_id))
