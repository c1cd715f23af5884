"""
仓库分析测试
"""
from datetime import datetime, timedelta, timezone

import pytest

from wf_core.services import AnalyticsService, SalesService, StockLedgerService
from wf_core.utils.errors import NotFoundError


@pytest.fixture
def analytics():
    return AnalyticsService()


async def sell(warehouse_id, product_id, quantity, unit_price="5.00"):
    result = await SalesService().record_sale(1, warehouse_id, [
        {"product_id": product_id, "quantity": quantity, "unit_price": unit_price}
    ])
    assert result.success
    return result.data


def in_days(days: float) -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=days)


class TestTurnover:

    async def test_rate_uses_sold_and_remaining_stock(self, analytics, seed, receive):
        await receive(seed.main, seed.apples, 10)
        await receive(seed.main, seed.pears, 4)
        await sell(seed.main, seed.apples, 4)

        [row] = (await analytics.get_inventory_turnover(seed.main)).data

        assert row["product"]["sku"] == "APL-1"
        assert row["sold_quantity"] == 4
        assert row["current_stock"] == 6
        assert row["revenue"] == 20.0
        assert row["turnover_rate"] == 40.0

    async def test_sold_out_products_are_skipped(self, analytics, seed, receive):
        await receive(seed.main, seed.apples, 3)
        await sell(seed.main, seed.apples, 3)

        assert (await analytics.get_inventory_turnover(seed.main)).data == []

    async def test_sorted_by_rate(self, analytics, seed, receive):
        await receive(seed.main, seed.apples, 10)
        await receive(seed.main, seed.pears, 10)
        await sell(seed.main, seed.apples, 2)
        await sell(seed.main, seed.pears, 8)

        rows = (await analytics.get_inventory_turnover(seed.main)).data

        assert [r["product"]["sku"] for r in rows] == ["PER-1", "APL-1"]

    async def test_unknown_warehouse(self, analytics, seed):
        with pytest.raises(NotFoundError):
            await analytics.get_inventory_turnover(999)


class TestProfitability:

    async def test_margin_on_landed_cost(self, analytics, seed, receive):
        await receive(
            seed.main, seed.apples, 10,
            unit_cost="2.00", shipping_cost_per_unit="0.50", selling_price="3.00",
        )

        [row] = (await analytics.get_profitability_analysis(seed.main)).data

        assert row["unit_cost"] == 2.5
        assert row["profit_margin"] == 20.0
        assert row["potential_profit"] == 5.0
        assert row["category"] == "fruit"

    async def test_zero_cost_batches_sort_last(self, analytics, seed, receive):
        await receive(seed.main, seed.apples, 5, unit_cost="2.00", selling_price="2.20")
        await StockLedgerService().adjust_stock(1, seed.main, seed.pears, 3, "Found during count")
        await receive(seed.main, seed.pears, 5, unit_cost="2.00", selling_price="4.00")

        rows = (await analytics.get_profitability_analysis(seed.main)).data

        assert [r["profit_margin"] for r in rows] == [100.0, 10.0, None]

    async def test_batches_outside_window_are_ignored(self, analytics, seed, receive, days_ago):
        await receive(seed.main, seed.apples, 5, received_at=days_ago(45))

        assert (await analytics.get_profitability_analysis(seed.main, days=30)).data == []
        assert len((await analytics.get_profitability_analysis(seed.main, days=60)).data) == 1


class TestSlowMoving:

    async def test_old_batches_with_stock(self, analytics, seed, receive, days_ago):
        await receive(seed.main, seed.apples, 4, selling_price="2.50", received_at=days_ago(90))
        await receive(seed.main, seed.pears, 2, received_at=days_ago(70))
        await receive(seed.main, seed.pears, 9, received_at=days_ago(5))

        rows = (await analytics.get_slow_moving_stock(seed.main)).data

        assert [r["product"]["sku"] for r in rows] == ["APL-1", "PER-1"]
        assert rows[0]["days_in_stock"] == 90
        assert rows[0]["total_value"] == 10.0

    async def test_depleted_batches_are_not_slow(self, analytics, seed, receive, days_ago):
        await receive(seed.main, seed.apples, 4, received_at=days_ago(90))
        await sell(seed.main, seed.apples, 4)

        assert (await analytics.get_slow_moving_stock(seed.main)).data == []


class TestExpiryAlerts:

    async def test_urgency_levels(self, analytics, seed, receive):
        await receive(seed.main, seed.apples, 1, expiry_date=in_days(20.5))
        await receive(seed.main, seed.apples, 1, expiry_date=in_days(3.5))
        await receive(seed.main, seed.pears, 1, expiry_date=in_days(10.5))
        await receive(seed.main, seed.pears, 1, expiry_date=in_days(-1))
        await receive(seed.main, seed.pears, 1, expiry_date=in_days(45))

        rows = (await analytics.get_expiry_alerts(seed.main)).data

        assert [(r["days_to_expiry"], r["urgency"]) for r in rows] == [
            (3, "critical"),
            (10, "warning"),
            (20, "info"),
        ]

    async def test_custom_horizon(self, analytics, seed, receive):
        await receive(seed.main, seed.apples, 1, expiry_date=in_days(10.5))

        assert (await analytics.get_expiry_alerts(seed.main, days_ahead=5)).data == []


class TestSummary:

    async def test_combines_reports(self, analytics, seed, receive, days_ago):
        await receive(seed.main, seed.apples, 10, unit_cost="2.00", selling_price="2.10")
        await receive(seed.main, seed.pears, 3, unit_cost="1.00", selling_price="2.00", received_at=days_ago(80))
        await receive(seed.main, seed.pears, 1, expiry_date=in_days(2.5))
        await sell(seed.main, seed.apples, 5)

        data = (await analytics.get_warehouse_analytics_summary(seed.main)).data
        summary = data["summary"]

        assert summary["total_products"] == 2
        assert summary["avg_turnover_rate"] == 50.0
        assert summary["avg_profit_margin"] == 27.5
        assert summary["slow_moving_value"] == 6.0
        assert summary["critical_expiry_count"] == 1
        assert [p["product"]["sku"] for p in data["low_performers"]] == ["APL-1"]
        assert data["urgent_actions"]["expiring"][0]["urgency"] == "critical"
