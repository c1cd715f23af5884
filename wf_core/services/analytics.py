"""
仓库分析服务
只读聚合：周转率、盈利能力、滞销库存、过期预警
数据整批读出后在内存中聚合
"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wf_core.models import Product, Sale, SaleItem, StockBatch, Warehouse
from wf_core.models.base import as_utc, utcnow
from wf_core.utils.errors import WareFlowException
from wf_core.utils.logger import get_logger
from wf_core.utils.pricing import (
    expiry_urgency, landed_cost, profit_margin, round_money, round_pct, to_decimal, turnover_rate
)
from .base import BaseService, RepositoryMixin, ServiceResult

logger = get_logger(__name__)

SECONDS_PER_DAY = 86400


def _money(value: Any) -> float:
    return float(round_money(value))


def _product_ref(product: Product) -> Dict[str, Any]:
    return {"id": product.id, "name": product.name, "sku": product.sku, "category": product.category}


def _whole_days(delta: timedelta) -> int:
    return int(delta.total_seconds() // SECONDS_PER_DAY)


class AnalyticsService(BaseService, RepositoryMixin):
    """仓库分析服务"""

    async def _run(self, query, error_message: str, *args) -> ServiceResult:
        try:
            data = await self.execute_with_session(query, *args)
            return ServiceResult.ok(data)
        except WareFlowException:
            raise
        except Exception:
            self.logger.error(error_message, exc_info=True)
            return ServiceResult.error(error=error_message, error_code="ANALYTICS_FAILED")

    async def get_inventory_turnover(self, warehouse_id: int, days: Optional[int] = None) -> ServiceResult:
        days = days or self.settings.analytics_window_days
        return await self._run(self._turnover_query, "Failed to fetch inventory turnover data", warehouse_id, days)

    async def get_profitability_analysis(self, warehouse_id: int, days: Optional[int] = None) -> ServiceResult:
        days = days or self.settings.analytics_window_days
        return await self._run(self._profitability_query, "Failed to fetch profitability analysis", warehouse_id, days)

    async def get_slow_moving_stock(self, warehouse_id: int, days: Optional[int] = None) -> ServiceResult:
        days = days or self.settings.slow_moving_days
        return await self._run(self._slow_moving_query, "Failed to fetch slow moving stock", warehouse_id, days)

    async def get_expiry_alerts(self, warehouse_id: int, days_ahead: Optional[int] = None) -> ServiceResult:
        days_ahead = days_ahead or self.settings.expiry_alert_days
        return await self._run(self._expiry_query, "Failed to fetch expiry alerts", warehouse_id, days_ahead)

    async def get_warehouse_analytics_summary(self, warehouse_id: int) -> ServiceResult:
        return await self._run(self._summary_query, "Failed to fetch warehouse analytics summary", warehouse_id)

    async def _turnover_query(self, session: AsyncSession, warehouse_id: int, days: int) -> List[Dict[str, Any]]:
        """周转率：窗口期内有销售且当前有库存的商品"""
        await self.get_or_404(session, Warehouse, warehouse_id, "WAREHOUSE_NOT_FOUND", "Warehouse")
        start = utcnow() - timedelta(days=days)

        sales_stmt = (
            select(SaleItem, Product)
            .join(Sale, Sale.id == SaleItem.sale_id)
            .join(Product, Product.id == SaleItem.product_id)
            .where(Sale.warehouse_id == warehouse_id, Sale.sale_date >= start)
        )
        sold: Dict[int, Dict[str, Any]] = {}
        for item, product in (await session.execute(sales_stmt)).all():
            entry = sold.setdefault(product.id, {
                "product": _product_ref(product),
                "sold_quantity": 0,
                "revenue": Decimal("0"),
            })
            entry["sold_quantity"] += item.quantity
            entry["revenue"] += to_decimal(item.unit_price) * item.quantity

        stock = await self._current_stock(session, warehouse_id)

        turnover = []
        for product_id, entry in sold.items():
            current = stock.get(product_id)
            if not current:
                continue
            turnover.append({
                "product": entry["product"],
                "sold_quantity": entry["sold_quantity"],
                "revenue": _money(entry["revenue"]),
                "current_stock": current,
                "turnover_rate": round_pct(turnover_rate(entry["sold_quantity"], current)),
            })

        turnover.sort(key=lambda t: t["turnover_rate"], reverse=True)
        return turnover

    async def _current_stock(self, session: AsyncSession, warehouse_id: int) -> Dict[int, int]:
        stmt = select(StockBatch.product_id, StockBatch.remaining_quantity).where(
            StockBatch.warehouse_id == warehouse_id,
            StockBatch.is_depleted.is_(False),
            StockBatch.remaining_quantity > 0,
        )
        stock: Dict[int, int] = {}
        for product_id, remaining in (await session.execute(stmt)).all():
            stock[product_id] = stock.get(product_id, 0) + remaining
        return stock

    async def _profitability_query(self, session: AsyncSession, warehouse_id: int, days: int) -> List[Dict[str, Any]]:
        """按批次计算到岸成本利润率；成本为 0 的批次利润率为 None，排在最后"""
        await self.get_or_404(session, Warehouse, warehouse_id, "WAREHOUSE_NOT_FOUND", "Warehouse")
        start = utcnow() - timedelta(days=days)

        stmt = (
            select(StockBatch, Product)
            .join(Product, Product.id == StockBatch.product_id)
            .where(StockBatch.warehouse_id == warehouse_id, StockBatch.created_at >= start)
        )

        rows = []
        for batch, product in (await session.execute(stmt)).all():
            base_cost = batch.original_unit_cost if batch.original_unit_cost is not None else batch.unit_cost
            cost = landed_cost(base_cost, batch.shipping_cost_per_unit)
            margin = profit_margin(base_cost, batch.shipping_cost_per_unit, batch.selling_price)
            rows.append({
                "product": _product_ref(product),
                "category": product.category,
                "batch_number": batch.batch_number,
                "quantity": batch.remaining_quantity,
                "unit_cost": _money(cost),
                "selling_price": _money(batch.selling_price),
                "profit_margin": round_pct(margin),
                "potential_profit": _money((to_decimal(batch.selling_price) - cost) * batch.remaining_quantity),
            })

        rows.sort(key=lambda r: (r["profit_margin"] is None, -(r["profit_margin"] or 0)))
        return rows

    async def _slow_moving_query(self, session: AsyncSession, warehouse_id: int, days: int) -> List[Dict[str, Any]]:
        """入库早于截止日期且仍有剩余的批次，库龄降序"""
        await self.get_or_404(session, Warehouse, warehouse_id, "WAREHOUSE_NOT_FOUND", "Warehouse")
        now = utcnow()
        cutoff = now - timedelta(days=days)

        stmt = (
            select(StockBatch, Product)
            .join(Product, Product.id == StockBatch.product_id)
            .where(
                StockBatch.warehouse_id == warehouse_id,
                StockBatch.created_at <= cutoff,
                StockBatch.is_depleted.is_(False),
                StockBatch.remaining_quantity > 0,
            )
        )

        rows = []
        for batch, product in (await session.execute(stmt)).all():
            rows.append({
                "product": _product_ref(product),
                "batch_number": batch.batch_number,
                "quantity": batch.remaining_quantity,
                "days_in_stock": _whole_days(now - as_utc(batch.created_at)),
                "selling_price": _money(batch.selling_price),
                "total_value": _money(to_decimal(batch.selling_price) * batch.remaining_quantity),
                "expiry_date": _iso(batch.expiry_date),
            })

        rows.sort(key=lambda r: r["days_in_stock"], reverse=True)
        return rows

    async def _expiry_query(self, session: AsyncSession, warehouse_id: int, days_ahead: int) -> List[Dict[str, Any]]:
        """未来 days_ahead 天内过期的批次，按剩余天数升序"""
        await self.get_or_404(session, Warehouse, warehouse_id, "WAREHOUSE_NOT_FOUND", "Warehouse")
        now = utcnow()

        stmt = (
            select(StockBatch, Product)
            .join(Product, Product.id == StockBatch.product_id)
            .where(
                StockBatch.warehouse_id == warehouse_id,
                StockBatch.is_depleted.is_(False),
                StockBatch.remaining_quantity > 0,
                StockBatch.expiry_date.is_not(None),
                StockBatch.expiry_date >= now,
                StockBatch.expiry_date <= now + timedelta(days=days_ahead),
            )
        )

        rows = []
        for batch, product in (await session.execute(stmt)).all():
            days_to_expiry = _whole_days(as_utc(batch.expiry_date) - now)
            rows.append({
                "product": _product_ref(product),
                "batch_number": batch.batch_number,
                "quantity": batch.remaining_quantity,
                "expiry_date": _iso(batch.expiry_date),
                "days_to_expiry": days_to_expiry,
                "selling_price": _money(batch.selling_price),
                "total_value": _money(to_decimal(batch.selling_price) * batch.remaining_quantity),
                "urgency": expiry_urgency(
                    days_to_expiry,
                    self.settings.expiry_critical_days,
                    self.settings.expiry_warning_days,
                ),
            })

        rows.sort(key=lambda r: r["days_to_expiry"])
        return rows

    async def _summary_query(self, session: AsyncSession, warehouse_id: int) -> Dict[str, Any]:
        turnover = await self._turnover_query(session, warehouse_id, self.settings.analytics_window_days)
        profitability = await self._profitability_query(session, warehouse_id, self.settings.analytics_window_days)
        slow_moving = await self._slow_moving_query(session, warehouse_id, self.settings.slow_moving_days)
        expiring = await self._expiry_query(session, warehouse_id, self.settings.expiry_alert_days)

        product_ids = {t["product"]["id"] for t in turnover} | {p["product"]["id"] for p in profitability}
        margins = [p["profit_margin"] for p in profitability if p["profit_margin"] is not None]
        critical = [e for e in expiring if e["urgency"] == "critical"]

        avg_turnover = sum(t["turnover_rate"] for t in turnover) / len(turnover) if turnover else 0
        avg_margin = sum(margins) / len(margins) if margins else 0

        return {
            "summary": {
                "total_products": len(product_ids),
                "avg_turnover_rate": round_pct(avg_turnover),
                "avg_profit_margin": round_pct(avg_margin),
                "slow_moving_value": _money(sum(to_decimal(s["total_value"]) for s in slow_moving)),
                "critical_expiry_count": len(critical),
            },
            "top_performers": turnover[:5],
            "low_performers": [
                p for p in profitability if p["profit_margin"] is not None and p["profit_margin"] < 10
            ][:5],
            "urgent_actions": {
                "slow_moving": slow_moving[:5],
                "expiring": critical[:5],
            },
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return as_utc(value).isoformat() if value else None
