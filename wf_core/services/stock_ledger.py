"""
库存批次台账服务
入库、调整、调拨、调价均按 FIFO（最早入库批次优先）作用于批次
"""
from datetime import timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from wf_core.event_bus import get_event_bus
from wf_core.models import Product, StockBatch, Warehouse
from wf_core.models.base import as_utc, utcnow
from wf_core.utils.errors import ConflictError, ValidationError, WareFlowException
from wf_core.utils.logger import get_logger
from wf_core.utils.metrics import record_stock_units
from wf_core.utils.numbering import generate_batch_number
from wf_core.utils.pricing import (
    MONEY_ZERO, gross_margin_from_price, markup_from_price, min_margin_price, round_money, round_pct, to_decimal
)
from .audit_service import AuditService, diff
from .base import BaseService, RepositoryMixin, ServiceResult

logger = get_logger(__name__)


async def load_fifo_batches(
    session: AsyncSession,
    warehouse_id: int,
    product_id: int,
    lock: bool = True
) -> List[StockBatch]:
    """按入库时间升序读取未耗尽批次"""
    stmt = (
        select(StockBatch)
        .where(
            StockBatch.warehouse_id == warehouse_id,
            StockBatch.product_id == product_id,
            StockBatch.is_depleted.is_(False),
            StockBatch.remaining_quantity > 0,
        )
        .order_by(StockBatch.created_at, StockBatch.id)
    )
    if lock:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    return list(result.scalars().all())


def consume_fifo(batches: List[StockBatch], quantity: int) -> List[Tuple[StockBatch, int]]:
    """依次扣减批次，返回 [(批次, 扣减数量)]；调用方须先确认库存充足"""
    consumed = []
    needed = quantity
    for batch in batches:
        if needed <= 0:
            break
        taken = batch.consume(needed)
        needed -= taken
        consumed.append((batch, taken))
    return consumed


def insufficient_stock(requested: int, available: int, what: str = "Insufficient stock") -> ConflictError:
    return ConflictError(
        code="INSUFFICIENT_STOCK",
        detail=f"{what}: requested {requested}, available {available}",
        requested=requested,
        available=available,
    )


def batch_view(batch: StockBatch) -> Dict[str, Any]:
    """批次字典，附带加价率和毛利率"""
    data = batch.to_dict()
    data["markup_pct"] = round_pct(markup_from_price(batch.unit_cost, batch.selling_price))
    data["gross_margin_pct"] = round_pct(gross_margin_from_price(batch.unit_cost, batch.selling_price))
    return data


class StockLedgerService(BaseService, RepositoryMixin):
    """库存台账服务"""

    def __init__(self):
        super().__init__()
        self.event_bus = get_event_bus()

    # ---------- 入库 ----------

    async def receive_stock(
        self,
        user_id: int,
        warehouse_id: int,
        items: List[Dict[str, Any]]
    ) -> ServiceResult[Dict[str, Any]]:
        """到货入库，每行生成一个批次"""
        try:
            validated = self._validate_receipt_items(items)

            result = await self.execute_with_transaction(
                self._receive_stock_tx, user_id, warehouse_id, validated
            )

            record_stock_units("received", sum(item["quantity"] for item in validated))
            await self.event_bus.publish("wf.stock.received", {
                "warehouse_id": warehouse_id,
                "batch_ids": [b["id"] for b in result["batches"]],
            })

            self.logger.info(
                "Stock received",
                warehouse_id=warehouse_id,
                batches=len(result["batches"]),
            )
            return ServiceResult.ok(result)

        except WareFlowException:
            raise
        except Exception as e:
            self.logger.error("Stock receipt failed", exc_info=True)
            return ServiceResult.error(
                error=f"Failed to receive stock: {str(e)}",
                error_code="STOCK_RECEIVE_FAILED"
            )

    def _validate_receipt_items(self, items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not items:
            raise ValidationError(code="EMPTY_RECEIPT_ITEMS", detail="Receipt items list cannot be empty")

        validated = []
        for i, item in enumerate(items):
            self.validate_required_fields(item, ["product_id", "quantity", "unit_cost", "selling_price"])

            quantity = int(item["quantity"])
            if quantity <= 0:
                raise ValidationError(
                    code="INVALID_QUANTITY",
                    detail=f"Quantity must be positive for item {i}: {quantity}"
                )

            try:
                unit_cost = round_money(item["unit_cost"])
                shipping = round_money(item.get("shipping_cost_per_unit") or 0)
                selling_price = round_money(item["selling_price"])
            except (InvalidOperation, ValueError):
                raise ValidationError(code="INVALID_AMOUNT", detail=f"Invalid amount for item {i}")

            if min(unit_cost, shipping, selling_price) < 0:
                raise ValidationError(
                    code="NEGATIVE_AMOUNT",
                    detail=f"Costs and prices cannot be negative for item {i}"
                )

            grade = item.get("quality_grade") or "A"
            if grade not in ("A", "B", "C"):
                raise ValidationError(code="INVALID_QUALITY_GRADE", detail=f"Invalid quality grade: {grade}")

            validated.append({
                "product_id": int(item["product_id"]),
                "quantity": quantity,
                "unit_cost": unit_cost,
                "original_unit_cost": round_money(item.get("original_unit_cost") or unit_cost),
                "shipping_cost_per_unit": shipping,
                "selling_price": selling_price,
                "expiry_date": as_utc(item.get("expiry_date")),
                "quality_grade": grade,
                "batch_number": item.get("batch_number"),
                "received_at": as_utc(item.get("received_at")),
                "notes": item.get("notes"),
            })
        return validated

    async def _receive_stock_tx(
        self,
        session: AsyncSession,
        user_id: int,
        warehouse_id: int,
        items: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        await self.get_or_404(session, Warehouse, warehouse_id, "WAREHOUSE_NOT_FOUND", "Warehouse")

        batches = []
        for item in items:
            await self.get_or_404(session, Product, item["product_id"], "PRODUCT_NOT_FOUND", "Product")

            batch = StockBatch(
                product_id=item["product_id"],
                warehouse_id=warehouse_id,
                batch_number=item["batch_number"] or generate_batch_number(),
                quantity=item["quantity"],
                remaining_quantity=item["quantity"],
                unit_cost=item["unit_cost"],
                original_unit_cost=item["original_unit_cost"],
                shipping_cost_per_unit=item["shipping_cost_per_unit"],
                selling_price=item["selling_price"],
                expiry_date=item["expiry_date"],
                quality_grade=item["quality_grade"],
                notes=item["notes"],
                created_by=user_id,
            )
            if item["received_at"]:
                batch.created_at = item["received_at"]
            session.add(batch)

            await session.execute(
                update(Product)
                .where(Product.id == item["product_id"])
                .values(stock=Product.stock + item["quantity"])
            )
            batches.append(batch)

        await session.flush()

        for batch in batches:
            await AuditService.record(
                session,
                user_id=user_id,
                module="stock",
                action="receive",
                table_name="stock_batches",
                record_id=batch.id,
                changes={"remaining_quantity": diff(None, batch.remaining_quantity)},
            )

        return {"batches": [batch_view(b) for b in batches]}

    # ---------- 调整 ----------

    async def adjust_stock(
        self,
        user_id: int,
        warehouse_id: int,
        product_id: int,
        delta: int,
        reason: str
    ) -> ServiceResult[Dict[str, Any]]:
        """库存调整

        delta > 0 新建一个无成本批次；delta < 0 按 FIFO 扣减，库存不足时整体拒绝。
        批次写入与商品库存计数在同一事务内完成。
        """
        try:
            if delta == 0:
                raise ValidationError(code="INVALID_ADJUSTMENT", detail="Adjustment quantity cannot be zero")
            if not reason or not reason.strip():
                raise ValidationError(code="MISSING_REASON", detail="Adjustment reason is required")

            result = await self.execute_with_transaction(
                self._adjust_stock_tx, user_id, warehouse_id, product_id, delta, reason.strip()
            )

            record_stock_units("adjusted_in" if delta > 0 else "adjusted_out", delta)
            await self.event_bus.publish("wf.stock.adjusted", {
                "warehouse_id": warehouse_id,
                "product_id": product_id,
                "delta": delta,
                "reason": reason,
            })

            self.logger.info(
                "Stock adjusted",
                warehouse_id=warehouse_id,
                product_id=product_id,
                delta=delta,
            )
            return ServiceResult.ok(result)

        except WareFlowException:
            raise
        except Exception as e:
            self.logger.error("Stock adjustment failed", exc_info=True)
            return ServiceResult.error(
                error=f"Failed to adjust stock: {str(e)}",
                error_code="STOCK_ADJUST_FAILED"
            )

    async def _adjust_stock_tx(
        self,
        session: AsyncSession,
        user_id: int,
        warehouse_id: int,
        product_id: int,
        delta: int,
        reason: str
    ) -> Dict[str, Any]:
        await self.get_or_404(session, Warehouse, warehouse_id, "WAREHOUSE_NOT_FOUND", "Warehouse")
        await self.get_or_404(session, Product, product_id, "PRODUCT_NOT_FOUND", "Product")

        created = None
        affected = []

        if delta > 0:
            created = StockBatch(
                product_id=product_id,
                warehouse_id=warehouse_id,
                batch_number=generate_batch_number("ADJ"),
                quantity=delta,
                remaining_quantity=delta,
                unit_cost=MONEY_ZERO,
                original_unit_cost=MONEY_ZERO,
                shipping_cost_per_unit=MONEY_ZERO,
                selling_price=MONEY_ZERO,
                expiry_date=utcnow() + timedelta(days=self.settings.adjustment_expiry_days),
                notes=f"Stock adjustment: {reason}",
                created_by=user_id,
            )
            session.add(created)
        else:
            batches = await load_fifo_batches(session, warehouse_id, product_id)
            available = sum(b.remaining_quantity for b in batches)
            if available < -delta:
                raise insufficient_stock(-delta, available)

            for batch, taken in consume_fifo(batches, -delta):
                affected.append({
                    "batch_id": batch.id,
                    "batch_number": batch.batch_number,
                    "consumed": taken,
                    "remaining_quantity": batch.remaining_quantity,
                    "is_depleted": batch.is_depleted,
                })

        await session.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock=Product.stock + delta)
        )
        await session.flush()

        product_stock = (
            await session.execute(select(Product.stock).where(Product.id == product_id))
        ).scalar_one()

        await AuditService.record(
            session,
            user_id=user_id,
            module="stock",
            action="adjust",
            table_name="products",
            record_id=product_id,
            changes={
                "stock": diff(product_stock - delta, product_stock),
                "batches": affected or [{"batch_id": created.id, "created": delta}],
            },
            notes=reason,
        )

        return {
            "success": True,
            "warehouse_id": warehouse_id,
            "product_id": product_id,
            "delta": delta,
            "created_batch": batch_view(created) if created else None,
            "affected_batches": affected,
            "product_stock": product_stock,
        }

    # ---------- 调拨 ----------

    async def transfer_stock(
        self,
        user_id: int,
        from_warehouse_id: int,
        to_warehouse_id: int,
        product_id: int,
        quantity: int
    ) -> ServiceResult[Dict[str, Any]]:
        """仓库间调拨

        先汇总可用数量，不足时直接失败且不写入任何数据；
        足够时按 FIFO 扣减源批次，并在目的仓库生成成本/售价/效期相同的新批次。
        """
        try:
            result = await self.execute_with_transaction(
                self._transfer_stock_tx, user_id, from_warehouse_id, to_warehouse_id, product_id, quantity
            )

            record_stock_units("transferred", quantity)
            await self.event_bus.publish("wf.stock.transferred", {
                "warehouse_id": from_warehouse_id,
                "to_warehouse_id": to_warehouse_id,
                "product_id": product_id,
                "quantity": quantity,
            })

            self.logger.info(
                "Stock transferred",
                warehouse_id=from_warehouse_id,
                to_warehouse_id=to_warehouse_id,
                product_id=product_id,
                quantity=quantity,
            )
            return ServiceResult.ok(result)

        except WareFlowException:
            raise
        except Exception as e:
            self.logger.error("Stock transfer failed", exc_info=True)
            return ServiceResult.error(
                error=f"Failed to transfer stock: {str(e)}",
                error_code="STOCK_TRANSFER_FAILED"
            )

    async def _transfer_stock_tx(
        self,
        session: AsyncSession,
        user_id: int,
        from_warehouse_id: int,
        to_warehouse_id: int,
        product_id: int,
        quantity: int
    ) -> Dict[str, Any]:
        transferred = await self.move_batches(
            session, user_id, from_warehouse_id, to_warehouse_id, product_id, quantity
        )
        return {
            "success": True,
            "transferred_batches": [batch_view(b) for b in transferred],
        }

    async def move_batches(
        self,
        session: AsyncSession,
        user_id: int,
        from_warehouse_id: int,
        to_warehouse_id: int,
        product_id: int,
        quantity: int
    ) -> List[StockBatch]:
        """在调用方事务内执行调拨，返回目的仓库新批次"""
        if from_warehouse_id == to_warehouse_id:
            raise ValidationError(
                code="SAME_WAREHOUSE",
                detail="Source and destination warehouses must be different"
            )
        if quantity <= 0:
            raise ValidationError(code="INVALID_QUANTITY", detail=f"Transfer quantity must be positive: {quantity}")

        await self.get_or_404(session, Warehouse, from_warehouse_id, "WAREHOUSE_NOT_FOUND", "Source warehouse")
        await self.get_or_404(session, Warehouse, to_warehouse_id, "WAREHOUSE_NOT_FOUND", "Destination warehouse")
        await self.get_or_404(session, Product, product_id, "PRODUCT_NOT_FOUND", "Product")

        batches = await load_fifo_batches(session, from_warehouse_id, product_id)
        available = sum(b.remaining_quantity for b in batches)
        if available < quantity:
            raise insufficient_stock(quantity, available, "Insufficient stock to complete transfer")

        transferred = []
        consumed = consume_fifo(batches, quantity)
        for source, taken in consumed:
            mirrored = StockBatch(
                product_id=product_id,
                warehouse_id=to_warehouse_id,
                batch_number=generate_batch_number("TR"),
                quantity=taken,
                remaining_quantity=taken,
                unit_cost=source.unit_cost,
                original_unit_cost=source.original_unit_cost,
                shipping_cost_per_unit=source.shipping_cost_per_unit,
                selling_price=source.selling_price,
                expiry_date=source.expiry_date,
                quality_grade=source.quality_grade,
                notes=f"Transferred from warehouse {from_warehouse_id} (batch {source.batch_number})",
                created_by=user_id,
            )
            session.add(mirrored)
            transferred.append(mirrored)

        await session.flush()

        await AuditService.record(
            session,
            user_id=user_id,
            module="stock",
            action="transfer",
            table_name="stock_batches",
            record_id=f"{from_warehouse_id}->{to_warehouse_id}:{product_id}",
            changes={
                "quantity": quantity,
                "source_batches": [{"batch_id": s.id, "consumed": taken} for s, taken in consumed],
                "created_batches": [b.id for b in transferred],
            },
        )
        return transferred

    # ---------- 查询 ----------

    async def get_warehouse_stock(self, warehouse_id: int) -> ServiceResult[List[Dict[str, Any]]]:
        """仓库库存视图：按商品汇总未耗尽批次"""
        try:
            data = await self.execute_with_session(self._get_warehouse_stock_query, warehouse_id)
            return ServiceResult.ok(data)
        except WareFlowException:
            raise
        except Exception:
            self.logger.error("Fetching warehouse stock failed", warehouse_id=warehouse_id, exc_info=True)
            return ServiceResult.error(
                error="Failed to fetch warehouse stock",
                error_code="WAREHOUSE_STOCK_FETCH_FAILED"
            )

    async def _get_warehouse_stock_query(self, session: AsyncSession, warehouse_id: int) -> List[Dict[str, Any]]:
        await self.get_or_404(session, Warehouse, warehouse_id, "WAREHOUSE_NOT_FOUND", "Warehouse")

        stmt = (
            select(StockBatch, Product)
            .join(Product, Product.id == StockBatch.product_id)
            .where(
                StockBatch.warehouse_id == warehouse_id,
                StockBatch.is_depleted.is_(False),
            )
            .order_by(StockBatch.created_at.desc(), StockBatch.id.desc())
        )
        rows = (await session.execute(stmt)).all()

        grouped: Dict[int, Dict[str, Any]] = {}
        for batch, product in rows:
            entry = grouped.setdefault(product.id, {
                "product": {"id": product.id, "name": product.name, "sku": product.sku},
                "total_quantity": 0,
                "_value": Decimal("0"),
                "batches": [],
            })
            entry["total_quantity"] += batch.remaining_quantity
            entry["_value"] += to_decimal(batch.selling_price) * batch.remaining_quantity
            entry["batches"].append(batch_view(batch))

        stock = []
        for entry in grouped.values():
            value = entry.pop("_value")
            total = entry["total_quantity"]
            entry["average_selling_price"] = str(round_money(value / total)) if total else "0.00"
            stock.append(entry)
        return stock

    async def list_batches(
        self,
        warehouse_id: Optional[int] = None,
        product_id: Optional[int] = None,
        include_depleted: bool = False
    ) -> ServiceResult[List[Dict[str, Any]]]:
        data = await self.execute_with_session(
            self._list_batches_query, warehouse_id, product_id, include_depleted
        )
        return ServiceResult.ok(data)

    async def _list_batches_query(
        self,
        session: AsyncSession,
        warehouse_id: Optional[int],
        product_id: Optional[int],
        include_depleted: bool
    ) -> List[Dict[str, Any]]:
        stmt = select(StockBatch)
        if warehouse_id is not None:
            stmt = stmt.where(StockBatch.warehouse_id == warehouse_id)
        if product_id is not None:
            stmt = stmt.where(StockBatch.product_id == product_id)
        if not include_depleted:
            stmt = stmt.where(StockBatch.is_depleted.is_(False))
        stmt = stmt.order_by(StockBatch.created_at, StockBatch.id)

        result = await session.execute(stmt)
        return [batch_view(b) for b in result.scalars().all()]

    # ---------- 调价 ----------

    async def update_batch_prices(
        self,
        user_id: int,
        updates: List[Dict[str, Any]]
    ) -> ServiceResult[List[Dict[str, Any]]]:
        """批量更新批次售价（及可选的过期日期），各批次之间相互独立"""
        try:
            validated = self._validate_price_updates(updates)

            result = await self.execute_with_transaction(self._update_batch_prices_tx, user_id, validated)

            await self.event_bus.publish("wf.stock.prices_updated", {
                "batch_ids": [b["id"] for b in result],
            })
            return ServiceResult.ok(result)

        except WareFlowException:
            raise
        except Exception as e:
            self.logger.error("Batch price update failed", exc_info=True)
            return ServiceResult.error(
                error=f"Failed to update batch prices: {str(e)}",
                error_code="BATCH_PRICE_UPDATE_FAILED"
            )

    def _validate_price_updates(self, updates: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not updates:
            raise ValidationError(code="EMPTY_PRICE_UPDATES", detail="Price updates list cannot be empty")

        validated = []
        for i, item in enumerate(updates):
            self.validate_required_fields(item, ["batch_id", "new_selling_price"])
            price = round_money(item["new_selling_price"])
            if price < 0:
                raise ValidationError(
                    code="NEGATIVE_PRICE",
                    detail=f"Selling price cannot be negative for update {i}: {price}"
                )
            validated.append({
                "batch_id": int(item["batch_id"]),
                "new_selling_price": price,
                "expiry_date": as_utc(item.get("expiry_date")),
            })
        return validated

    async def _update_batch_prices_tx(
        self,
        session: AsyncSession,
        user_id: int,
        updates: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        updated = []
        for item in updates:
            batch = await self.get_or_404(session, StockBatch, item["batch_id"], "BATCH_NOT_FOUND", "Batch")
            price = item["new_selling_price"]

            floor = min_margin_price(batch.unit_cost, self.settings.price_min_margin_pct)
            if price < floor:
                if self.settings.price_guard_enabled:
                    raise ValidationError(
                        code="PRICE_BELOW_MINIMUM_MARGIN",
                        detail=f"Selling price {price} is below minimum {floor} for batch {batch.batch_number}"
                    )
                self.logger.warning(
                    "Selling price below minimum margin",
                    batch_id=batch.id,
                    selling_price=str(price),
                    minimum_price=str(floor),
                )

            changes = {"selling_price": diff(batch.selling_price, price)}
            batch.selling_price = price
            if item["expiry_date"] is not None:
                changes["expiry_date"] = diff(batch.expiry_date, item["expiry_date"])
                batch.expiry_date = item["expiry_date"]

            await AuditService.record(
                session,
                user_id=user_id,
                module="stock",
                action="update_price",
                table_name="stock_batches",
                record_id=batch.id,
                changes=changes,
            )
            updated.append(batch)

        await session.flush()
        return [batch_view(b) for b in updated]

    # ---------- 删除 ----------

    async def delete_product_from_warehouse(
        self,
        user_id: int,
        warehouse_id: int,
        product_id: int
    ) -> ServiceResult[Dict[str, Any]]:
        """物理删除某商品在某仓库的全部批次"""
        try:
            result = await self.execute_with_transaction(
                self._delete_product_from_warehouse_tx, user_id, warehouse_id, product_id
            )
            await self.event_bus.publish("wf.stock.product_removed", {
                "warehouse_id": warehouse_id,
                "product_id": product_id,
                "deleted_batches": result["deleted_batches"],
            })
            return ServiceResult.ok(result)

        except WareFlowException:
            raise
        except Exception as e:
            self.logger.error("Removing product from warehouse failed", exc_info=True)
            return ServiceResult.error(
                error=f"Failed to delete product from warehouse: {str(e)}",
                error_code="STOCK_DELETE_FAILED"
            )

    async def _delete_product_from_warehouse_tx(
        self,
        session: AsyncSession,
        user_id: int,
        warehouse_id: int,
        product_id: int
    ) -> Dict[str, Any]:
        await self.get_or_404(session, Warehouse, warehouse_id, "WAREHOUSE_NOT_FOUND", "Warehouse")
        await self.get_or_404(session, Product, product_id, "PRODUCT_NOT_FOUND", "Product")

        pair = (StockBatch.warehouse_id == warehouse_id, StockBatch.product_id == product_id)
        rows = (
            await session.execute(select(StockBatch.id, StockBatch.remaining_quantity).where(*pair))
        ).all()
        removed_units = sum(r.remaining_quantity for r in rows)

        await session.execute(delete(StockBatch).where(*pair))
        if removed_units:
            await session.execute(
                update(Product)
                .where(Product.id == product_id)
                .values(stock=Product.stock - removed_units)
            )

        await AuditService.record(
            session,
            user_id=user_id,
            module="stock",
            action="delete",
            table_name="stock_batches",
            record_id=f"{warehouse_id}:{product_id}",
            changes={"deleted_batches": len(rows), "removed_units": removed_units},
        )

        return {
            "success": True,
            "deleted_batches": len(rows),
            "removed_units": removed_units,
        }
