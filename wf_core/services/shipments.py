"""
发运服务
处理发运创建、状态流转、位置追踪和质检
"""
from typing import Any, Dict, FrozenSet, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from wf_core.event_bus import get_event_bus
from wf_core.models import Product, Shipment, ShipmentItem, Transport, Warehouse
from wf_core.models.base import as_utc, utcnow
from wf_core.models.shipment import ITEM_CONDITIONS, SHIPMENT_PRIORITIES, SHIPMENT_STATUSES
from wf_core.utils.errors import ConflictError, ValidationError, WareFlowException
from wf_core.utils.logger import get_logger
from wf_core.utils.metrics import SHIPMENT_STATUS_CHANGES
from wf_core.utils.numbering import generate_shipment_number, generate_tracking_number
from wf_core.utils.pricing import round_money, to_decimal
from .audit_service import AuditService, diff
from .base import BaseService, RepositoryMixin, ServiceResult

logger = get_logger(__name__)

# 允许的状态流转；delivered、cancelled 为终态
SHIPMENT_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    "pending": frozenset({"in-transit", "delayed", "cancelled"}),
    "in-transit": frozenset({"delivered", "delayed", "damaged", "cancelled"}),
    "delayed": frozenset({"in-transit", "delivered", "damaged", "cancelled"}),
    "damaged": frozenset({"in-transit", "delivered", "cancelled"}),
    "delivered": frozenset(),
    "cancelled": frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    return target in SHIPMENT_TRANSITIONS.get(current, frozenset())


def _optional_decimal(value: Any) -> Optional[Any]:
    return to_decimal(value) if value is not None else None


class ShipmentService(BaseService, RepositoryMixin):
    """发运服务"""

    def __init__(self):
        super().__init__()
        self.event_bus = get_event_bus()

    async def create_shipment(
        self,
        user_id: int,
        data: Dict[str, Any]
    ) -> ServiceResult[Dict[str, Any]]:
        """创建发运单，运输工具置为 in-use"""
        try:
            validated = self.validate_shipment_data(data)

            result = await self.execute_with_transaction(self._create_shipment_tx, user_id, validated)

            await self._publish_shipment_event(result, "created")

            self.logger.info(
                "Shipment created",
                shipment_number=result["shipment_number"],
                warehouse_id=validated["origin_warehouse_id"],
            )
            return ServiceResult.ok(result)

        except WareFlowException:
            raise
        except Exception as e:
            self.logger.error("Shipment creation failed", exc_info=True)
            return ServiceResult.error(
                error=f"Failed to create shipment: {str(e)}",
                error_code="SHIPMENT_CREATE_FAILED"
            )

    def validate_shipment_data(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self.validate_required_fields(data, [
            "origin_warehouse_id", "destination_warehouse_id", "transport_id",
            "scheduled_pickup_date", "estimated_delivery_date",
        ])

        items = data.get("items") or []
        if not items:
            raise ValidationError(code="EMPTY_SHIPMENT_ITEMS", detail="Shipment must contain at least one item")

        priority = data.get("priority") or "medium"
        if priority not in SHIPMENT_PRIORITIES:
            raise ValidationError(code="INVALID_PRIORITY", detail=f"Invalid priority: {priority}")

        validated_items = []
        for i, item in enumerate(items):
            self.validate_required_fields(item, ["product_id", "quantity", "unit_price"])
            quantity = int(item["quantity"])
            if quantity <= 0:
                raise ValidationError(
                    code="INVALID_QUANTITY",
                    detail=f"Quantity must be positive for item {i}: {quantity}"
                )
            unit_price = round_money(item["unit_price"])
            if unit_price < 0:
                raise ValidationError(
                    code="NEGATIVE_PRICE",
                    detail=f"Unit price cannot be negative for item {i}: {unit_price}"
                )
            condition = item.get("condition") or "good"
            if condition not in ITEM_CONDITIONS:
                raise ValidationError(code="INVALID_CONDITION", detail=f"Invalid item condition: {condition}")

            validated_items.append({
                "product_id": int(item["product_id"]),
                "quantity": quantity,
                "unit_price": unit_price,
                "total_value": round_money(quantity * unit_price),
                "condition": condition,
                "batch_number": item.get("batch_number"),
                "expiry_date": as_utc(item.get("expiry_date")),
                "notes": item.get("notes"),
            })

        insurance_value = data.get("insurance_value")
        return {
            "origin_warehouse_id": int(data["origin_warehouse_id"]),
            "destination_warehouse_id": int(data["destination_warehouse_id"]),
            "transport_id": int(data["transport_id"]),
            "items": validated_items,
            "scheduled_pickup_date": as_utc(data["scheduled_pickup_date"]),
            "estimated_delivery_date": as_utc(data["estimated_delivery_date"]),
            "priority": priority,
            "temperature_required": bool(data.get("temperature_required")),
            "min_temperature": _optional_decimal(data.get("min_temperature")),
            "max_temperature": _optional_decimal(data.get("max_temperature")),
            "insured": bool(data.get("insured")),
            "insurance_value": round_money(insurance_value) if insurance_value is not None else None,
            "notes": data.get("notes"),
        }

    async def _create_shipment_tx(
        self,
        session: AsyncSession,
        user_id: int,
        data: Dict[str, Any]
    ) -> Dict[str, Any]:
        shipment = await self.create_shipment_in_session(session, user_id, data)
        return {
            "success": True,
            "shipment_id": shipment.id,
            "shipment_number": shipment.shipment_number,
            "tracking_number": shipment.tracking_number,
            "total_value": str(shipment.total_value),
        }

    async def create_shipment_in_session(
        self,
        session: AsyncSession,
        user_id: int,
        data: Dict[str, Any]
    ) -> Shipment:
        """在调用方事务内创建发运单（data 需已校验）"""
        # 只校验存在性，不校验状态
        transport = await self.get_or_404(session, Transport, data["transport_id"], "TRANSPORT_NOT_FOUND", "Transport")
        await self.get_or_404(
            session, Warehouse, data["origin_warehouse_id"], "WAREHOUSE_NOT_FOUND", "Origin warehouse"
        )
        await self.get_or_404(
            session, Warehouse, data["destination_warehouse_id"], "WAREHOUSE_NOT_FOUND", "Destination warehouse"
        )
        for item in data["items"]:
            await self.get_or_404(session, Product, item["product_id"], "PRODUCT_NOT_FOUND", "Product")

        shipment_number = await self.unique_number(session, Shipment.shipment_number, generate_shipment_number)
        tracking_number = await self.unique_number(session, Shipment.tracking_number, generate_tracking_number)

        shipment = Shipment(
            shipment_number=shipment_number,
            tracking_number=tracking_number,
            origin_warehouse_id=data["origin_warehouse_id"],
            destination_warehouse_id=data["destination_warehouse_id"],
            transport_id=data["transport_id"],
            status="pending",
            priority=data["priority"],
            scheduled_pickup_date=data["scheduled_pickup_date"],
            estimated_delivery_date=data["estimated_delivery_date"],
            total_value=round_money(sum(item["total_value"] for item in data["items"])),
            total_items=sum(item["quantity"] for item in data["items"]),
            location_history=[],
            temperature_required=data["temperature_required"],
            min_temperature=data["min_temperature"],
            max_temperature=data["max_temperature"],
            insured=data["insured"],
            insurance_value=data["insurance_value"],
            notes=data["notes"],
            created_by=user_id,
            items=[ShipmentItem(**item) for item in data["items"]],
        )
        session.add(shipment)

        transport.status = "in-use"
        await session.flush()

        await AuditService.record(
            session,
            user_id=user_id,
            module="shipment",
            action="create",
            table_name="shipments",
            record_id=shipment.id,
            changes={"status": diff(None, "pending"), "transport_status": diff(None, "in-use")},
        )
        return shipment

    async def update_shipment_status(
        self,
        user_id: int,
        shipment_id: int,
        status: str,
        notes: Optional[str] = None
    ) -> ServiceResult[Dict[str, Any]]:
        """更新发运状态

        进入 in-transit 时补记实际提货时间；进入 delivered 时记录送达时间和备注，并释放运输工具。
        """
        try:
            if status not in SHIPMENT_STATUSES:
                raise ValidationError(code="INVALID_STATUS", detail=f"Invalid shipment status: {status}")

            result = await self.execute_with_transaction(
                self._update_shipment_status_tx, user_id, shipment_id, status, notes
            )

            SHIPMENT_STATUS_CHANGES.labels(from_status=result["previous_status"], to_status=status).inc()
            await self._publish_shipment_event(result, "status_changed")
            self.logger.info(
                "Shipment status updated",
                shipment_id=shipment_id,
                previous_status=result["previous_status"],
                status=status,
            )
            return ServiceResult.ok(result)

        except WareFlowException:
            raise
        except Exception as e:
            self.logger.error("Shipment status update failed", exc_info=True)
            return ServiceResult.error(
                error=f"Failed to update shipment status: {str(e)}",
                error_code="SHIPMENT_STATUS_UPDATE_FAILED"
            )

    async def _update_shipment_status_tx(
        self,
        session: AsyncSession,
        user_id: int,
        shipment_id: int,
        status: str,
        notes: Optional[str]
    ) -> Dict[str, Any]:
        shipment = await self.get_or_404(session, Shipment, shipment_id, "SHIPMENT_NOT_FOUND", "Shipment")
        previous = shipment.status

        if self.settings.shipment_strict_transitions and not can_transition(previous, status):
            raise ConflictError(
                code="INVALID_STATUS_TRANSITION",
                detail=f"Cannot change shipment status from {previous} to {status}",
                current_status=previous,
                requested_status=status,
            )

        changes: Dict[str, Any] = {"status": diff(previous, status)}
        shipment.status = status

        now = utcnow()
        if status == "in-transit" and shipment.actual_pickup_date is None:
            shipment.actual_pickup_date = now
            changes["actual_pickup_date"] = diff(None, now)

        if status == "delivered":
            shipment.actual_delivery_date = now
            shipment.delivery_notes = notes
            changes["actual_delivery_date"] = diff(None, now)

            transport = await session.get(Transport, shipment.transport_id)
            if transport is not None:
                changes["transport_status"] = diff(transport.status, "available")
                transport.status = "available"

        shipment.mod_flag = True
        await session.flush()

        await AuditService.record(
            session,
            user_id=user_id,
            module="shipment",
            action="status",
            table_name="shipments",
            record_id=shipment.id,
            changes=changes,
            notes=notes,
        )

        return {
            "success": True,
            "shipment_id": shipment.id,
            "shipment_number": shipment.shipment_number,
            "previous_status": previous,
            "status": status,
        }

    async def update_shipment_location(
        self,
        user_id: int,
        shipment_id: int,
        location: Dict[str, Any]
    ) -> ServiceResult[Dict[str, Any]]:
        """更新当前位置并追加到位置历史"""
        try:
            entry = self._validate_location(location)
            result = await self.execute_with_transaction(
                self._update_shipment_location_tx, user_id, shipment_id, entry
            )
            return ServiceResult.ok(result)

        except WareFlowException:
            raise
        except Exception as e:
            self.logger.error("Shipment location update failed", exc_info=True)
            return ServiceResult.error(
                error=f"Failed to update shipment location: {str(e)}",
                error_code="SHIPMENT_LOCATION_UPDATE_FAILED"
            )

    def _validate_location(self, location: Dict[str, Any]) -> Dict[str, Any]:
        fields = {k: location.get(k) for k in ("latitude", "longitude", "address", "notes", "temperature")}
        if all(v is None for k, v in fields.items() if k != "notes"):
            raise ValidationError(
                code="EMPTY_LOCATION",
                detail="Location update needs coordinates, an address or a temperature reading"
            )
        latitude, longitude = fields["latitude"], fields["longitude"]
        if latitude is not None and not -90 <= float(latitude) <= 90:
            raise ValidationError(code="INVALID_LATITUDE", detail=f"Latitude out of range: {latitude}")
        if longitude is not None and not -180 <= float(longitude) <= 180:
            raise ValidationError(code="INVALID_LONGITUDE", detail=f"Longitude out of range: {longitude}")
        # 位置记录写入 JSON 列，数值统一为 float
        for key in ("latitude", "longitude", "temperature"):
            if fields[key] is not None:
                fields[key] = float(fields[key])
        return {k: v for k, v in fields.items() if v is not None}

    async def _update_shipment_location_tx(
        self,
        session: AsyncSession,
        user_id: int,
        shipment_id: int,
        entry: Dict[str, Any]
    ) -> Dict[str, Any]:
        shipment = await self.get_or_404(session, Shipment, shipment_id, "SHIPMENT_NOT_FOUND", "Shipment")

        record = {**entry, "timestamp": utcnow().isoformat(), "updated_by": user_id}
        shipment.current_location = record
        # JSON 列需整体赋值才会被识别为变更
        shipment.location_history = [*(shipment.location_history or []), record]
        if "temperature" in entry:
            shipment.current_temperature = round_money(entry["temperature"])
        shipment.mod_flag = True
        await session.flush()

        return {"success": True, "shipment_id": shipment.id, "history_length": len(shipment.location_history)}

    async def perform_quality_check(
        self,
        user_id: int,
        shipment_id: int,
        results: str,
        approved: bool,
        issues: Optional[List[str]] = None
    ) -> ServiceResult[Dict[str, Any]]:
        """记录质检结果，重复调用整体覆盖"""
        try:
            if not results or not results.strip():
                raise ValidationError(code="MISSING_QC_RESULTS", detail="Quality check results are required")

            result = await self.execute_with_transaction(
                self._perform_quality_check_tx, user_id, shipment_id, results.strip(), approved, issues or []
            )
            await self.event_bus.publish("wf.shipment.quality_checked", {
                "shipment_id": shipment_id,
                "approved": approved,
            })
            return ServiceResult.ok(result)

        except WareFlowException:
            raise
        except Exception as e:
            self.logger.error("Quality check failed", exc_info=True)
            return ServiceResult.error(
                error=f"Failed to perform quality check: {str(e)}",
                error_code="SHIPMENT_QC_FAILED"
            )

    async def _perform_quality_check_tx(
        self,
        session: AsyncSession,
        user_id: int,
        shipment_id: int,
        results: str,
        approved: bool,
        issues: List[str]
    ) -> Dict[str, Any]:
        shipment = await self.get_or_404(session, Shipment, shipment_id, "SHIPMENT_NOT_FOUND", "Shipment")

        shipment.quality_check = {
            "performed": True,
            "performed_by": user_id,
            "performed_at": utcnow().isoformat(),
            "results": results,
            "issues": list(issues),
            "approved": approved,
        }
        shipment.mod_flag = True
        await session.flush()

        await AuditService.record(
            session,
            user_id=user_id,
            module="shipment",
            action="quality_check",
            table_name="shipments",
            record_id=shipment.id,
            changes={"approved": approved, "issues": len(issues)},
        )
        return {"success": True, "shipment_id": shipment.id}

    async def list_shipments(
        self,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0
    ) -> ServiceResult[List[Dict[str, Any]]]:
        """发运列表（按创建时间倒序）"""
        data = await self.execute_with_session(self._list_shipments_query, status, limit, offset)
        return ServiceResult.ok(data, metadata={"limit": limit, "offset": offset})

    async def _list_shipments_query(
        self,
        session: AsyncSession,
        status: Optional[str],
        limit: int,
        offset: int
    ) -> List[Dict[str, Any]]:
        stmt = select(Shipment).where(Shipment.del_flag.is_(False))
        if status:
            stmt = stmt.where(Shipment.status == status)
        stmt = stmt.order_by(Shipment.created_at.desc(), Shipment.id.desc()).limit(limit).offset(offset)
        result = await session.execute(stmt)
        return [s.to_dict() for s in result.scalars().all()]

    async def get_shipment(self, shipment_id: int) -> ServiceResult[Dict[str, Any]]:
        data = await self.execute_with_session(self._get_shipment_query, shipment_id)
        return ServiceResult.ok(data)

    async def _get_shipment_query(self, session: AsyncSession, shipment_id: int) -> Dict[str, Any]:
        shipment = await self.get_or_404(session, Shipment, shipment_id, "SHIPMENT_NOT_FOUND", "Shipment")
        return shipment.to_dict()

    async def get_shipments_by_status(self, status: str) -> ServiceResult[List[Dict[str, Any]]]:
        """按状态查询，按计划提货时间升序"""
        if status not in SHIPMENT_STATUSES:
            raise ValidationError(code="INVALID_STATUS", detail=f"Invalid shipment status: {status}")
        data = await self.execute_with_session(self._get_shipments_by_status_query, status)
        return ServiceResult.ok(data)

    async def _get_shipments_by_status_query(self, session: AsyncSession, status: str) -> List[Dict[str, Any]]:
        stmt = (
            select(Shipment)
            .where(Shipment.status == status, Shipment.del_flag.is_(False))
            .order_by(Shipment.scheduled_pickup_date, Shipment.id)
        )
        result = await session.execute(stmt)
        return [s.to_dict() for s in result.scalars().all()]

    async def get_shipment_analytics(self) -> ServiceResult[Dict[str, Any]]:
        """各状态计数和最近 5 条发运"""
        data = await self.execute_with_session(self._get_shipment_analytics_query)
        return ServiceResult.ok(data)

    async def _get_shipment_analytics_query(self, session: AsyncSession) -> Dict[str, Any]:
        counts_stmt = (
            select(Shipment.status, func.count(Shipment.id))
            .where(Shipment.del_flag.is_(False))
            .group_by(Shipment.status)
        )
        counts = {status: count for status, count in (await session.execute(counts_stmt)).all()}

        recent_stmt = (
            select(Shipment)
            .where(Shipment.del_flag.is_(False))
            .order_by(Shipment.created_at.desc(), Shipment.id.desc())
            .limit(5)
        )
        recent = (await session.execute(recent_stmt)).scalars().all()

        return {
            "total_shipments": sum(counts.values()),
            "pending_shipments": counts.get("pending", 0),
            "in_transit_shipments": counts.get("in-transit", 0),
            "delivered_shipments": counts.get("delivered", 0),
            "delayed_shipments": counts.get("delayed", 0) + counts.get("damaged", 0),
            "cancelled_shipments": counts.get("cancelled", 0),
            "recent_shipments": [s.to_dict() for s in recent],
        }

    async def delete_shipment(self, user_id: int, shipment_id: int) -> ServiceResult[Dict[str, Any]]:
        """软删除"""
        result = await self.execute_with_transaction(self._delete_shipment_tx, user_id, shipment_id)
        await self._publish_shipment_event(result, "deleted")
        return ServiceResult.ok(result)

    async def _delete_shipment_tx(self, session: AsyncSession, user_id: int, shipment_id: int) -> Dict[str, Any]:
        shipment = await self.get_or_404(session, Shipment, shipment_id, "SHIPMENT_NOT_FOUND", "Shipment")
        shipment.del_flag = True
        await session.flush()

        await AuditService.record(
            session,
            user_id=user_id,
            module="shipment",
            action="delete",
            table_name="shipments",
            record_id=shipment.id,
            changes={"del_flag": diff(False, True)},
        )
        return {"success": True, "shipment_id": shipment.id, "shipment_number": shipment.shipment_number}

    async def _publish_shipment_event(self, result: Dict[str, Any], action: str) -> None:
        payload = {
            "shipment_id": result["shipment_id"],
            "shipment_number": result.get("shipment_number"),
        }
        if "status" in result:
            payload["status"] = result["status"]
            payload["previous_status"] = result["previous_status"]
        await self.event_bus.publish(f"wf.shipment.{action}", payload)
