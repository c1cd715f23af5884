"""
销售出库测试
"""
import pytest

from wf_core.models import Product, StockBatch
from wf_core.services import SalesService
from wf_core.utils.errors import ConflictError, NotFoundError, ValidationError


@pytest.fixture
def sales():
    return SalesService()


class TestRecordSale:

    async def test_cost_of_goods_follows_fifo(self, sales, seed, receive, fetch, days_ago):
        old = await receive(seed.main, seed.apples, 5, unit_cost="2.00", received_at=days_ago(4))
        new = await receive(seed.main, seed.apples, 10, unit_cost="3.00", received_at=days_ago(1))

        result = await sales.record_sale(1, seed.main, [
            {"product_id": seed.apples, "quantity": 8, "unit_price": "5.00"}
        ], payment_method="card")

        sale = result.data
        assert sale["payment_method"] == "card"
        assert sale["total_revenue"] == "40.00"
        assert sale["total_cost"] == "19.00"
        assert sale["profit"] == "21.00"
        [line] = sale["items"]
        assert line["cost_of_goods"] == "19.00"
        assert line["total"] == "40.00"

        assert (await fetch(StockBatch, old["id"])).is_depleted is True
        assert (await fetch(StockBatch, new["id"])).remaining_quantity == 7
        assert (await fetch(Product, seed.apples)).stock == 7

    async def test_insufficient_stock_rejects_whole_sale(self, sales, seed, receive, fetch):
        batch = await receive(seed.main, seed.apples, 5)
        await receive(seed.main, seed.pears, 1)

        with pytest.raises(ConflictError) as exc:
            await sales.record_sale(1, seed.main, [
                {"product_id": seed.apples, "quantity": 2, "unit_price": "5.00"},
                {"product_id": seed.pears, "quantity": 3, "unit_price": "4.00"},
            ])

        assert exc.value.code == "INSUFFICIENT_STOCK"
        assert exc.value.extra == {"requested": 3, "available": 1}
        assert (await fetch(StockBatch, batch["id"])).remaining_quantity == 5
        assert (await fetch(Product, seed.apples)).stock == 5
        assert (await sales.list_sales(seed.main)).data == []

    async def test_stock_in_other_warehouse_is_not_used(self, sales, seed, receive):
        await receive(seed.north, seed.apples, 5)

        with pytest.raises(ConflictError):
            await sales.record_sale(1, seed.main, [
                {"product_id": seed.apples, "quantity": 1, "unit_price": "5.00"}
            ])

    async def test_input_validation(self, sales, seed):
        with pytest.raises(ValidationError) as exc:
            await sales.record_sale(1, seed.main, [])
        assert exc.value.code == "EMPTY_SALE_ITEMS"

        with pytest.raises(ValidationError) as exc:
            await sales.record_sale(1, seed.main, [
                {"product_id": seed.apples, "quantity": 1, "unit_price": "1.00"}
            ], payment_method="barter")
        assert exc.value.code == "INVALID_PAYMENT_METHOD"

        with pytest.raises(ValidationError) as exc:
            await sales.record_sale(1, seed.main, [
                {"product_id": seed.apples, "quantity": -1, "unit_price": "1.00"}
            ])
        assert exc.value.code == "INVALID_QUANTITY"

    async def test_unknown_warehouse(self, sales, seed):
        with pytest.raises(NotFoundError):
            await sales.record_sale(1, 999, [
                {"product_id": seed.apples, "quantity": 1, "unit_price": "1.00"}
            ])


class TestListSales:

    async def test_newest_first(self, sales, seed, receive, days_ago):
        await receive(seed.main, seed.apples, 10)
        first = await sales.record_sale(1, seed.main, [
            {"product_id": seed.apples, "quantity": 1, "unit_price": "5.00"}
        ], sale_date=days_ago(2))
        second = await sales.record_sale(1, seed.main, [
            {"product_id": seed.apples, "quantity": 1, "unit_price": "5.00"}
        ])

        listed = await sales.list_sales(seed.main)

        assert [s["id"] for s in listed.data] == [second.data["id"], first.data["id"]]
        assert listed.metadata == {"limit": 50, "offset": 0}
