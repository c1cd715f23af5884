"""
调拨申请测试
"""
import pytest
from sqlalchemy import select

from wf_core.models import Shipment, StockBatch, StockTransfer, Transport
from wf_core.services import StockTransferService
from wf_core.utils.errors import ConflictError, NotFoundError, ValidationError


@pytest.fixture
def transfers():
    return StockTransferService()


@pytest.fixture
def request_transfer(transfers, seed):
    async def _request(quantity=4, **overrides):
        data = {
            "from_warehouse_id": seed.main,
            "to_warehouse_id": seed.north,
            "reason": "Rebalance cold storage",
            "items": [{"product_id": seed.apples, "quantity": quantity, "unit_cost": "2.00"}],
            **overrides,
        }
        result = await transfers.create_transfer(1, data)
        assert result.success
        return result.data

    return _request


class TestTransferLifecycle:

    async def test_create_is_pending(self, request_transfer):
        transfer = await request_transfer()

        assert transfer["status"] == "pending"
        assert transfer["transfer_number"].startswith("ST")
        assert transfer["items"][0]["unit_cost"] == "2.00"
        assert transfer["shipment_id"] is None

    async def test_taken_transfer_number_is_regenerated(self, request_transfer, monkeypatch):
        numbers = iter(["ST000001AAAA", "ST000001AAAA", "ST000002BBBB"])
        monkeypatch.setattr("wf_core.services.transfers.generate_transfer_number", lambda: next(numbers))

        first = await request_transfer()
        second = await request_transfer()

        assert first["transfer_number"] == "ST000001AAAA"
        assert second["transfer_number"] == "ST000002BBBB"

    async def test_exhausted_numbers_are_a_conflict(self, transfers, request_transfer, seed, monkeypatch):
        monkeypatch.setattr("wf_core.services.transfers.generate_transfer_number", lambda: "ST000001AAAA")
        await request_transfer()

        with pytest.raises(ConflictError) as exc:
            await transfers.create_transfer(1, {
                "from_warehouse_id": seed.main,
                "to_warehouse_id": seed.north,
                "reason": "Rebalance cold storage",
                "items": [{"product_id": seed.apples, "quantity": 1}],
            })
        assert exc.value.code == "NUMBER_COLLISION"

    async def test_approve_creates_shipment(self, transfers, request_transfer, seed, fetch):
        transfer = await request_transfer()

        approved = (await transfers.approve_transfer(2, transfer["id"], seed.truck)).data

        assert approved["status"] == "in-transit"
        assert approved["approved_by"] == 2
        shipment = await fetch(Shipment, approved["shipment_id"])
        assert shipment.shipment_number == approved["shipment_number"]
        assert shipment.origin_warehouse_id == seed.main
        assert shipment.destination_warehouse_id == seed.north
        assert shipment.total_items == 4
        assert str(shipment.total_value) == "8.00"
        assert (await fetch(Transport, seed.truck)).status == "in-use"

    async def test_complete_moves_stock(self, transfers, request_transfer, seed, receive, fetch, fetch_all):
        source = await receive(seed.main, seed.apples, 10, unit_cost="2.00")
        transfer = await request_transfer(quantity=4)
        await transfers.approve_transfer(1, transfer["id"], seed.truck)

        completed = (await transfers.complete_transfer(1, transfer["id"])).data

        assert completed["status"] == "completed"
        assert completed["completed_date"] is not None
        assert (await fetch(StockBatch, source["id"])).remaining_quantity == 6
        moved = await fetch_all(select(StockBatch).where(StockBatch.warehouse_id == seed.north))
        assert [b.id for b in moved] == completed["created_batch_ids"]
        assert sum(b.remaining_quantity for b in moved) == 4

    async def test_complete_with_short_stock_keeps_transfer_open(
        self, transfers, request_transfer, seed, receive, fetch
    ):
        await receive(seed.main, seed.apples, 2)
        transfer = await request_transfer(quantity=4)
        await transfers.approve_transfer(1, transfer["id"], seed.truck)

        with pytest.raises(ConflictError) as exc:
            await transfers.complete_transfer(1, transfer["id"])

        assert exc.value.code == "INSUFFICIENT_STOCK"
        assert (await fetch(StockTransfer, transfer["id"])).status == "in-transit"

    async def test_cancel(self, transfers, request_transfer):
        transfer = await request_transfer()

        cancelled = (await transfers.cancel_transfer(1, transfer["id"], "No longer needed")).data

        assert cancelled["status"] == "cancelled"

    async def test_invalid_state_changes(self, transfers, request_transfer, seed):
        transfer = await request_transfer()

        with pytest.raises(ConflictError) as exc:
            await transfers.complete_transfer(1, transfer["id"])
        assert exc.value.code == "INVALID_TRANSFER_STATE"
        assert exc.value.extra == {"current_status": "pending"}

        await transfers.cancel_transfer(1, transfer["id"])
        with pytest.raises(ConflictError):
            await transfers.approve_transfer(1, transfer["id"], seed.truck)
        with pytest.raises(ConflictError):
            await transfers.cancel_transfer(1, transfer["id"])


class TestTransferValidation:

    async def test_rejects_bad_requests(self, transfers, seed):
        base = {
            "from_warehouse_id": seed.main,
            "to_warehouse_id": seed.north,
            "reason": "Rebalance",
            "items": [{"product_id": seed.apples, "quantity": 1}],
        }

        with pytest.raises(ValidationError) as exc:
            await transfers.create_transfer(1, {**base, "to_warehouse_id": seed.main})
        assert exc.value.code == "SAME_WAREHOUSE"

        with pytest.raises(ValidationError) as exc:
            await transfers.create_transfer(1, {**base, "items": []})
        assert exc.value.code == "EMPTY_TRANSFER_ITEMS"

        with pytest.raises(ValidationError) as exc:
            await transfers.create_transfer(1, {**base, "reason": "  "})
        assert exc.value.code == "MISSING_REASON"

        with pytest.raises(NotFoundError) as exc:
            await transfers.create_transfer(1, {**base, "to_warehouse_id": 999})
        assert exc.value.detail == "Destination warehouse not found"

    async def test_unknown_transport_on_approve(self, transfers, request_transfer, fetch):
        transfer = await request_transfer()

        with pytest.raises(NotFoundError) as exc:
            await transfers.approve_transfer(1, transfer["id"], 999)

        assert exc.value.detail == "Transport not found"
        assert (await fetch(StockTransfer, transfer["id"])).status == "pending"


class TestListTransfers:

    async def test_filters(self, transfers, request_transfer, seed):
        first = await request_transfer()
        second = await request_transfer()
        await transfers.cancel_transfer(1, first["id"])

        pending = (await transfers.list_transfers(status="pending")).data
        by_warehouse = (await transfers.list_transfers(warehouse_id=seed.north)).data

        assert [t["id"] for t in pending] == [second["id"]]
        assert [t["id"] for t in by_warehouse] == [second["id"], first["id"]]

    async def test_invalid_status(self, transfers):
        with pytest.raises(ValidationError):
            await transfers.list_transfers(status="lost")
