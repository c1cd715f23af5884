"""
销售服务
销售出库按 FIFO 扣减批次，并记录销货成本
"""
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from wf_core.event_bus import get_event_bus
from wf_core.models import Product, Sale, SaleItem, Warehouse
from wf_core.models.base import as_utc
from wf_core.utils.errors import ValidationError, WareFlowException
from wf_core.utils.metrics import record_stock_units
from wf_core.utils.pricing import round_money, to_decimal
from .audit_service import AuditService
from .base import BaseService, RepositoryMixin, ServiceResult
from .stock_ledger import consume_fifo, insufficient_stock, load_fifo_batches

PAYMENT_METHODS = ("cash", "card", "mobile")


class SalesService(BaseService, RepositoryMixin):
    """销售服务"""

    def __init__(self):
        super().__init__()
        self.event_bus = get_event_bus()

    async def record_sale(
        self,
        user_id: int,
        warehouse_id: int,
        items: List[Dict[str, Any]],
        payment_method: str = "cash",
        sale_date: Optional[Any] = None
    ) -> ServiceResult[Dict[str, Any]]:
        """记录销售；任一商品库存不足则整单拒绝"""
        try:
            if payment_method not in PAYMENT_METHODS:
                raise ValidationError(code="INVALID_PAYMENT_METHOD", detail=f"Invalid payment method: {payment_method}")
            if not items:
                raise ValidationError(code="EMPTY_SALE_ITEMS", detail="Sale must contain at least one item")

            validated = []
            for i, item in enumerate(items):
                self.validate_required_fields(item, ["product_id", "quantity", "unit_price"])
                quantity = int(item["quantity"])
                if quantity <= 0:
                    raise ValidationError(
                        code="INVALID_QUANTITY",
                        detail=f"Quantity must be positive for item {i}: {quantity}"
                    )
                validated.append({
                    "product_id": int(item["product_id"]),
                    "quantity": quantity,
                    "unit_price": round_money(item["unit_price"]),
                })

            result = await self.execute_with_transaction(
                self._record_sale_tx, user_id, warehouse_id, validated, payment_method, as_utc(sale_date)
            )

            record_stock_units("sold", sum(item["quantity"] for item in validated))
            await self.event_bus.publish("wf.stock.sold", {
                "warehouse_id": warehouse_id,
                "sale_id": result["id"],
                "total_revenue": result["total_revenue"],
            })
            self.logger.info("Sale recorded", warehouse_id=warehouse_id, sale_id=result["id"])
            return ServiceResult.ok(result)

        except WareFlowException:
            raise
        except Exception as e:
            self.logger.error("Recording sale failed", exc_info=True)
            return ServiceResult.error(
                error=f"Failed to record sale: {str(e)}",
                error_code="SALE_RECORD_FAILED"
            )

    async def _record_sale_tx(
        self,
        session: AsyncSession,
        user_id: int,
        warehouse_id: int,
        items: List[Dict[str, Any]],
        payment_method: str,
        sale_date
    ) -> Dict[str, Any]:
        await self.get_or_404(session, Warehouse, warehouse_id, "WAREHOUSE_NOT_FOUND", "Warehouse")

        sale = Sale(warehouse_id=warehouse_id, payment_method=payment_method, created_by=user_id)
        if sale_date is not None:
            sale.sale_date = sale_date

        total_revenue = Decimal("0")
        total_cost = Decimal("0")
        for item in items:
            await self.get_or_404(session, Product, item["product_id"], "PRODUCT_NOT_FOUND", "Product")

            batches = await load_fifo_batches(session, warehouse_id, item["product_id"])
            available = sum(b.remaining_quantity for b in batches)
            if available < item["quantity"]:
                raise insufficient_stock(
                    item["quantity"], available, f"Insufficient stock for product {item['product_id']}"
                )

            cost = sum(
                (to_decimal(batch.unit_cost) * taken for batch, taken in consume_fifo(batches, item["quantity"])),
                Decimal("0"),
            )
            line_total = round_money(item["unit_price"] * item["quantity"])

            sale.items.append(SaleItem(
                product_id=item["product_id"],
                quantity=item["quantity"],
                unit_price=item["unit_price"],
                total=line_total,
                cost_of_goods=round_money(cost),
            ))
            await session.execute(
                update(Product)
                .where(Product.id == item["product_id"])
                .values(stock=Product.stock - item["quantity"])
            )

            total_revenue += line_total
            total_cost += round_money(cost)

        sale.total_revenue = total_revenue
        sale.total_cost = total_cost
        sale.profit = total_revenue - total_cost
        session.add(sale)
        await session.flush()

        await AuditService.record(
            session,
            user_id=user_id,
            module="sale",
            action="create",
            table_name="sales",
            record_id=sale.id,
            changes={"total_revenue": str(total_revenue), "total_cost": str(total_cost)},
        )
        return sale.to_dict()

    async def list_sales(self, warehouse_id: int, limit: int = 50, offset: int = 0) -> ServiceResult:
        data = await self.execute_with_session(self._list_sales_query, warehouse_id, limit, offset)
        return ServiceResult.ok(data, metadata={"limit": limit, "offset": offset})

    async def _list_sales_query(
        self, session: AsyncSession, warehouse_id: int, limit: int, offset: int
    ) -> List[Dict[str, Any]]:
        stmt = (
            select(Sale)
            .where(Sale.warehouse_id == warehouse_id)
            .order_by(Sale.sale_date.desc(), Sale.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await session.execute(stmt)
        return [sale.to_dict() for sale in result.scalars().all()]
