"""
调拨申请服务
pending -> in-transit（审批并生成发运单）-> completed（执行台账调拨），或 cancelled
"""
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from wf_core.event_bus import get_event_bus
from wf_core.models import Product, StockTransfer, Warehouse
from wf_core.models.base import as_utc, utcnow
from wf_core.models.stock_transfer import TRANSFER_STATUSES
from wf_core.utils.errors import ConflictError, ValidationError, WareFlowException
from wf_core.utils.numbering import generate_transfer_number
from wf_core.utils.pricing import round_money
from .audit_service import AuditService, diff
from .base import BaseService, RepositoryMixin, ServiceResult
from .shipments import ShipmentService
from .stock_ledger import StockLedgerService


class StockTransferService(BaseService, RepositoryMixin):
    """调拨申请服务"""

    def __init__(self):
        super().__init__()
        self.event_bus = get_event_bus()
        self.ledger = StockLedgerService()
        self.shipments = ShipmentService()

    async def create_transfer(self, user_id: int, data: Dict[str, Any]) -> ServiceResult[Dict[str, Any]]:
        """创建调拨申请"""
        try:
            validated = self._validate_transfer_data(data)
            result = await self.execute_with_transaction(self._create_transfer_tx, user_id, validated)
            await self._publish_transfer_event(result, "created")
            return ServiceResult.ok(result)

        except WareFlowException:
            raise
        except Exception as e:
            self.logger.error("Stock transfer creation failed", exc_info=True)
            return ServiceResult.error(
                error=f"Failed to create stock transfer: {str(e)}",
                error_code="TRANSFER_CREATE_FAILED"
            )

    def _validate_transfer_data(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self.validate_required_fields(data, ["from_warehouse_id", "to_warehouse_id", "reason"])
        if int(data["from_warehouse_id"]) == int(data["to_warehouse_id"]):
            raise ValidationError(
                code="SAME_WAREHOUSE",
                detail="Source and destination warehouses must be different"
            )
        if not str(data["reason"]).strip():
            raise ValidationError(code="MISSING_REASON", detail="Transfer reason is required")

        items = data.get("items") or []
        if not items:
            raise ValidationError(code="EMPTY_TRANSFER_ITEMS", detail="Transfer must contain at least one item")

        validated_items = []
        for i, item in enumerate(items):
            self.validate_required_fields(item, ["product_id", "quantity"])
            quantity = int(item["quantity"])
            if quantity <= 0:
                raise ValidationError(
                    code="INVALID_QUANTITY",
                    detail=f"Quantity must be positive for item {i}: {quantity}"
                )
            validated_items.append({
                "product_id": int(item["product_id"]),
                "quantity": quantity,
                "unit_cost": str(round_money(item.get("unit_cost") or 0)),
            })

        return {
            "from_warehouse_id": int(data["from_warehouse_id"]),
            "to_warehouse_id": int(data["to_warehouse_id"]),
            "items": validated_items,
            "reason": str(data["reason"]).strip(),
            "notes": data.get("notes"),
        }

    async def _create_transfer_tx(self, session: AsyncSession, user_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        await self.get_or_404(session, Warehouse, data["from_warehouse_id"], "WAREHOUSE_NOT_FOUND", "Source warehouse")
        await self.get_or_404(
            session, Warehouse, data["to_warehouse_id"], "WAREHOUSE_NOT_FOUND", "Destination warehouse"
        )
        for item in data["items"]:
            await self.get_or_404(session, Product, item["product_id"], "PRODUCT_NOT_FOUND", "Product")

        transfer_number = await self.unique_number(session, StockTransfer.transfer_number, generate_transfer_number)
        transfer = StockTransfer(
            transfer_number=transfer_number,
            from_warehouse_id=data["from_warehouse_id"],
            to_warehouse_id=data["to_warehouse_id"],
            items=data["items"],
            status="pending",
            requested_by=user_id,
            reason=data["reason"],
            notes=data["notes"],
        )
        session.add(transfer)
        await session.flush()

        await AuditService.record(
            session,
            user_id=user_id,
            module="transfer",
            action="create",
            table_name="stock_transfers",
            record_id=transfer.id,
            changes={"status": diff(None, "pending")},
        )
        return transfer.to_dict()

    async def approve_transfer(
        self,
        user_id: int,
        transfer_id: int,
        transport_id: int,
        scheduled_pickup_date: Optional[Any] = None
    ) -> ServiceResult[Dict[str, Any]]:
        """审批调拨：生成两个仓库之间的发运单，状态转为 in-transit"""
        try:
            result = await self.execute_with_transaction(
                self._approve_transfer_tx, user_id, transfer_id, transport_id, as_utc(scheduled_pickup_date)
            )
            await self._publish_transfer_event(result, "approved")
            return ServiceResult.ok(result)

        except WareFlowException:
            raise
        except Exception as e:
            self.logger.error("Stock transfer approval failed", exc_info=True)
            return ServiceResult.error(
                error=f"Failed to approve stock transfer: {str(e)}",
                error_code="TRANSFER_APPROVE_FAILED"
            )

    async def _approve_transfer_tx(
        self,
        session: AsyncSession,
        user_id: int,
        transfer_id: int,
        transport_id: int,
        scheduled_pickup_date
    ) -> Dict[str, Any]:
        transfer = await self._get_transfer(session, transfer_id)
        self._require_status(transfer, ("pending",), "approve")

        pickup = scheduled_pickup_date or utcnow()
        shipment_data = self.shipments.validate_shipment_data({
            "origin_warehouse_id": transfer.from_warehouse_id,
            "destination_warehouse_id": transfer.to_warehouse_id,
            "transport_id": transport_id,
            "scheduled_pickup_date": pickup,
            "estimated_delivery_date": pickup + timedelta(days=self.settings.transfer_delivery_days),
            "items": [
                {"product_id": i["product_id"], "quantity": i["quantity"], "unit_price": i["unit_cost"]}
                for i in transfer.items
            ],
            "notes": f"Stock transfer {transfer.transfer_number}",
        })
        shipment = await self.shipments.create_shipment_in_session(session, user_id, shipment_data)

        transfer.status = "in-transit"
        transfer.approved_by = user_id
        transfer.shipment_id = shipment.id
        await session.flush()

        await AuditService.record(
            session,
            user_id=user_id,
            module="transfer",
            action="approve",
            table_name="stock_transfers",
            record_id=transfer.id,
            changes={"status": diff("pending", "in-transit"), "shipment_id": shipment.id},
        )
        data = transfer.to_dict()
        data["shipment_number"] = shipment.shipment_number
        data["tracking_number"] = shipment.tracking_number
        return data

    async def complete_transfer(self, user_id: int, transfer_id: int) -> ServiceResult[Dict[str, Any]]:
        """完成调拨：所有明细在同一事务内执行 FIFO 台账调拨"""
        try:
            result = await self.execute_with_transaction(self._complete_transfer_tx, user_id, transfer_id)
            await self._publish_transfer_event(result, "completed")
            return ServiceResult.ok(result)

        except WareFlowException:
            raise
        except Exception as e:
            self.logger.error("Stock transfer completion failed", exc_info=True)
            return ServiceResult.error(
                error=f"Failed to complete stock transfer: {str(e)}",
                error_code="TRANSFER_COMPLETE_FAILED"
            )

    async def _complete_transfer_tx(self, session: AsyncSession, user_id: int, transfer_id: int) -> Dict[str, Any]:
        transfer = await self._get_transfer(session, transfer_id)
        self._require_status(transfer, ("in-transit",), "complete")

        created = []
        for item in transfer.items:
            batches = await self.ledger.move_batches(
                session,
                user_id,
                transfer.from_warehouse_id,
                transfer.to_warehouse_id,
                item["product_id"],
                item["quantity"],
            )
            created.extend(b.id for b in batches)

        transfer.status = "completed"
        transfer.completed_date = utcnow()
        await session.flush()

        await AuditService.record(
            session,
            user_id=user_id,
            module="transfer",
            action="complete",
            table_name="stock_transfers",
            record_id=transfer.id,
            changes={"status": diff("in-transit", "completed"), "created_batches": created},
        )
        data = transfer.to_dict()
        data["created_batch_ids"] = created
        return data

    async def cancel_transfer(
        self,
        user_id: int,
        transfer_id: int,
        reason: Optional[str] = None
    ) -> ServiceResult[Dict[str, Any]]:
        result = await self.execute_with_transaction(self._cancel_transfer_tx, user_id, transfer_id, reason)
        await self._publish_transfer_event(result, "cancelled")
        return ServiceResult.ok(result)

    async def _cancel_transfer_tx(
        self,
        session: AsyncSession,
        user_id: int,
        transfer_id: int,
        reason: Optional[str]
    ) -> Dict[str, Any]:
        transfer = await self._get_transfer(session, transfer_id)
        previous = transfer.status
        self._require_status(transfer, ("pending", "in-transit"), "cancel")

        transfer.status = "cancelled"
        await session.flush()

        await AuditService.record(
            session,
            user_id=user_id,
            module="transfer",
            action="cancel",
            table_name="stock_transfers",
            record_id=transfer.id,
            changes={"status": diff(previous, "cancelled")},
            notes=reason,
        )
        return transfer.to_dict()

    async def list_transfers(
        self,
        status: Optional[str] = None,
        warehouse_id: Optional[int] = None
    ) -> ServiceResult[List[Dict[str, Any]]]:
        if status is not None and status not in TRANSFER_STATUSES:
            raise ValidationError(code="INVALID_STATUS", detail=f"Invalid transfer status: {status}")
        data = await self.execute_with_session(self._list_transfers_query, status, warehouse_id)
        return ServiceResult.ok(data)

    async def _list_transfers_query(
        self,
        session: AsyncSession,
        status: Optional[str],
        warehouse_id: Optional[int]
    ) -> List[Dict[str, Any]]:
        stmt = select(StockTransfer)
        if status:
            stmt = stmt.where(StockTransfer.status == status)
        if warehouse_id is not None:
            stmt = stmt.where(or_(
                StockTransfer.from_warehouse_id == warehouse_id,
                StockTransfer.to_warehouse_id == warehouse_id,
            ))
        stmt = stmt.order_by(StockTransfer.created_at.desc(), StockTransfer.id.desc())
        result = await session.execute(stmt)
        return [t.to_dict() for t in result.scalars().all()]

    async def _get_transfer(self, session: AsyncSession, transfer_id: int) -> StockTransfer:
        return await self.get_or_404(session, StockTransfer, transfer_id, "TRANSFER_NOT_FOUND", "Transfer")

    def _require_status(self, transfer: StockTransfer, allowed, operation: str) -> None:
        if transfer.status not in allowed:
            raise ConflictError(
                code="INVALID_TRANSFER_STATE",
                detail=f"Cannot {operation} transfer in status {transfer.status}",
                current_status=transfer.status,
            )

    async def _publish_transfer_event(self, result: Dict[str, Any], action: str) -> None:
        await self.event_bus.publish(f"wf.transfer.{action}", {
            "warehouse_id": result["from_warehouse_id"],
            "transfer_id": result["id"],
            "transfer_number": result["transfer_number"],
            "status": result["status"],
        })
