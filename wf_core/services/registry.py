"""
基础资料服务
仓库、运输工具、商品的创建、查询和软删除
"""
from typing import Any, Dict, List, Optional, Type

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wf_core.models import Product, Transport, Warehouse
from wf_core.models.base import Base
from wf_core.models.warehouse import TRANSPORT_STATUSES, WAREHOUSE_TYPES
from wf_core.utils.errors import ConflictError, ValidationError, WareFlowException
from wf_core.utils.pricing import round_money
from .audit_service import AuditService, diff
from .base import BaseService, RepositoryMixin, ServiceResult


class RegistryService(BaseService, RepositoryMixin):
    """基础资料服务"""

    # 模型 -> (唯一字段, 资源名, 错误码前缀)
    _UNIQUE = {
        Warehouse: ("name", "Warehouse", "WAREHOUSE"),
        Transport: ("vehicle_number", "Transport", "TRANSPORT"),
        Product: ("sku", "Product", "PRODUCT"),
    }

    async def create_warehouse(self, user_id: int, data: Dict[str, Any]) -> ServiceResult[Dict[str, Any]]:
        self.validate_required_fields(data, ["name", "location"])
        warehouse_type = data.get("type") or "main"
        if warehouse_type not in WAREHOUSE_TYPES:
            raise ValidationError(code="INVALID_WAREHOUSE_TYPE", detail=f"Invalid warehouse type: {warehouse_type}")
        if int(data.get("capacity") or 0) < 0:
            raise ValidationError(code="INVALID_CAPACITY", detail="Capacity cannot be negative")

        values = {
            "name": data["name"].strip(),
            "location": data["location"].strip(),
            "description": data.get("description"),
            "capacity": int(data.get("capacity") or 0),
            "type": warehouse_type,
            "is_active": data.get("is_active", True),
            "manager_id": data.get("manager_id"),
            "created_by": user_id,
            "modified_by": user_id,
        }
        return await self._create(Warehouse, user_id, values)

    async def create_transport(self, user_id: int, data: Dict[str, Any]) -> ServiceResult[Dict[str, Any]]:
        self.validate_required_fields(data, ["name", "type", "vehicle_number"])
        status = data.get("status") or "available"
        if status not in TRANSPORT_STATUSES:
            raise ValidationError(code="INVALID_TRANSPORT_STATUS", detail=f"Invalid transport status: {status}")

        values = {
            "name": data["name"].strip(),
            "type": data["type"],
            "capacity": int(data.get("capacity") or 0),
            "location": data.get("location"),
            "vehicle_number": data["vehicle_number"].strip().upper(),
            "driver_name": data.get("driver_name"),
            "driver_contact": data.get("driver_contact"),
            "status": status,
            "is_active": data.get("is_active", True),
            "created_by": user_id,
        }
        return await self._create(Transport, user_id, values)

    async def create_product(self, user_id: int, data: Dict[str, Any]) -> ServiceResult[Dict[str, Any]]:
        self.validate_required_fields(data, ["name", "sku"])
        price = round_money(data.get("price") or 0)
        if price < 0:
            raise ValidationError(code="NEGATIVE_PRICE", detail="Product price cannot be negative")

        values = {
            "name": data["name"].strip(),
            "sku": data["sku"].strip(),
            "category": data.get("category"),
            "description": data.get("description"),
            "price": price,
            "stock": 0,
            "created_by": user_id,
        }
        return await self._create(Product, user_id, values)

    async def _create(self, model: Type[Base], user_id: int, values: Dict[str, Any]) -> ServiceResult[Dict[str, Any]]:
        try:
            data = await self.execute_with_transaction(self._create_tx, model, user_id, values)
            self.logger.info(f"{model.__name__} created", record_id=data["id"])
            return ServiceResult.ok(data)
        except WareFlowException:
            raise
        except Exception as e:
            self.logger.error(f"{model.__name__} creation failed", exc_info=True)
            return ServiceResult.error(
                error=f"Failed to create {model.__name__.lower()}: {str(e)}",
                error_code=f"{self._UNIQUE[model][2]}_CREATE_FAILED"
            )

    async def _create_tx(
        self,
        session: AsyncSession,
        model: Type[Base],
        user_id: int,
        values: Dict[str, Any]
    ) -> Dict[str, Any]:
        field = self._UNIQUE[model][0]
        # 唯一约束包含已软删除的记录
        if await self.exists(session, model, **{field: values[field]}):
            raise self._duplicate(model, values)

        try:
            instance = await self.create(session, model, values)
        except IntegrityError:
            # 检查之后被并发事务抢先插入
            raise self._duplicate(model, values)
        return instance.to_dict()

    def _duplicate(self, model: Type[Base], values: Dict[str, Any]) -> ConflictError:
        field, resource, prefix = self._UNIQUE[model]
        return ConflictError(
            code=f"DUPLICATE_{prefix}",
            detail=f"{resource} with {field.replace('_', ' ')} '{values[field]}' already exists"
        )

    async def list_warehouses(self, active_only: bool = True) -> ServiceResult[List[Dict[str, Any]]]:
        return ServiceResult.ok(await self.execute_with_session(self._list_query, Warehouse, active_only, None))

    async def list_transports(
        self,
        status: Optional[str] = None,
        active_only: bool = True
    ) -> ServiceResult[List[Dict[str, Any]]]:
        return ServiceResult.ok(await self.execute_with_session(self._list_query, Transport, active_only, status))

    async def list_products(self) -> ServiceResult[List[Dict[str, Any]]]:
        return ServiceResult.ok(await self.execute_with_session(self._list_query, Product, False, None))

    async def _list_query(
        self,
        session: AsyncSession,
        model: Type[Base],
        active_only: bool,
        status: Optional[str]
    ) -> List[Dict[str, Any]]:
        stmt = select(model).where(model.del_flag.is_(False))
        if active_only and hasattr(model, "is_active"):
            stmt = stmt.where(model.is_active.is_(True))
        if status is not None:
            stmt = stmt.where(model.status == status)
        stmt = stmt.order_by(model.name)
        result = await session.execute(stmt)
        return [r.to_dict() for r in result.scalars().all()]

    async def delete_warehouse(self, user_id: int, warehouse_id: int) -> ServiceResult[Dict[str, Any]]:
        return await self._soft_delete(Warehouse, user_id, warehouse_id)

    async def delete_transport(self, user_id: int, transport_id: int) -> ServiceResult[Dict[str, Any]]:
        return await self._soft_delete(Transport, user_id, transport_id)

    async def delete_product(self, user_id: int, product_id: int) -> ServiceResult[Dict[str, Any]]:
        return await self._soft_delete(Product, user_id, product_id)

    async def _soft_delete(self, model: Type[Base], user_id: int, record_id: int) -> ServiceResult[Dict[str, Any]]:
        data = await self.execute_with_transaction(self._soft_delete_tx, model, user_id, record_id)
        return ServiceResult.ok(data)

    async def _soft_delete_tx(
        self,
        session: AsyncSession,
        model: Type[Base],
        user_id: int,
        record_id: int
    ) -> Dict[str, Any]:
        _, resource, prefix = self._UNIQUE[model]
        instance = await self.get_or_404(session, model, record_id, f"{prefix}_NOT_FOUND", resource)
        instance.del_flag = True
        await session.flush()

        await AuditService.record(
            session,
            user_id=user_id,
            module="registry",
            action="delete",
            table_name=model.__tablename__,
            record_id=record_id,
            changes={"del_flag": diff(False, True)},
        )
        return {"success": True, "id": record_id}
