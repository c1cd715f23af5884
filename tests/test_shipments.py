"""
发运服务测试
"""
from datetime import datetime, timedelta, timezone

import pytest

from wf_core.models import Shipment, Transport
from wf_core.services import AuditService, ShipmentService
from wf_core.services.shipments import can_transition
from wf_core.utils.errors import ConflictError, NotFoundError, ValidationError


@pytest.fixture
def shipments():
    return ShipmentService()


@pytest.fixture
def shipment_data(seed):
    pickup = datetime.now(timezone.utc) + timedelta(days=1)
    return {
        "origin_warehouse_id": seed.main,
        "destination_warehouse_id": seed.north,
        "transport_id": seed.truck,
        "scheduled_pickup_date": pickup,
        "estimated_delivery_date": pickup + timedelta(days=2),
        "priority": "high",
        "items": [
            {"product_id": seed.apples, "quantity": 10, "unit_price": "2.50"},
            {"product_id": seed.pears, "quantity": 3, "unit_price": "4.10", "condition": "excellent"},
        ],
    }


@pytest.fixture
def create(shipments, shipment_data):
    async def _create(**overrides):
        result = await shipments.create_shipment(1, {**shipment_data, **overrides})
        assert result.success
        return result.data

    return _create


class TestCreateShipment:

    async def test_totals_numbers_and_transport(self, create, fetch, seed):
        created = await create()

        assert created["shipment_number"].startswith("SH")
        assert created["tracking_number"].startswith("TK")
        assert created["total_value"] == "37.30"

        shipment = await fetch(Shipment, created["shipment_id"])
        assert shipment.status == "pending"
        assert shipment.priority == "high"
        assert shipment.total_items == 13
        assert shipment.location_history == []
        assert (await fetch(Transport, seed.truck)).status == "in-use"

    async def test_items_are_stored(self, shipments, create):
        created = await create()

        detail = (await shipments.get_shipment(created["shipment_id"])).data
        assert [(i["quantity"], i["total_value"], i["condition"]) for i in detail["items"]] == [
            (10, "25.00", "good"),
            (3, "12.30", "excellent"),
        ]

    async def test_unknown_references(self, shipments, shipment_data):
        with pytest.raises(NotFoundError) as exc:
            await shipments.create_shipment(1, {**shipment_data, "transport_id": 999})
        assert exc.value.detail == "Transport not found"

        with pytest.raises(NotFoundError) as exc:
            await shipments.create_shipment(1, {**shipment_data, "origin_warehouse_id": 999})
        assert exc.value.detail == "Origin warehouse not found"

        with pytest.raises(NotFoundError) as exc:
            await shipments.create_shipment(1, {**shipment_data, "destination_warehouse_id": 999})
        assert exc.value.detail == "Destination warehouse not found"

    async def test_validation(self, shipments, shipment_data):
        with pytest.raises(ValidationError) as exc:
            await shipments.create_shipment(1, {**shipment_data, "items": []})
        assert exc.value.code == "EMPTY_SHIPMENT_ITEMS"

        with pytest.raises(ValidationError) as exc:
            await shipments.create_shipment(1, {**shipment_data, "priority": "asap"})
        assert exc.value.code == "INVALID_PRIORITY"

        bad_item = {"product_id": 1, "quantity": 0, "unit_price": "1.00"}
        with pytest.raises(ValidationError) as exc:
            await shipments.create_shipment(1, {**shipment_data, "items": [bad_item]})
        assert exc.value.code == "INVALID_QUANTITY"


class TestShipmentStatus:

    async def test_in_transit_stamps_pickup_once(self, shipments, create, fetch):
        created = await create()
        shipment_id = created["shipment_id"]

        await shipments.update_shipment_status(1, shipment_id, "in-transit")
        first_pickup = (await fetch(Shipment, shipment_id)).actual_pickup_date
        assert first_pickup is not None

        await shipments.update_shipment_status(1, shipment_id, "delayed")
        await shipments.update_shipment_status(1, shipment_id, "in-transit")
        assert (await fetch(Shipment, shipment_id)).actual_pickup_date == first_pickup

    async def test_delivered_releases_transport(self, shipments, create, fetch, seed):
        created = await create()
        shipment_id = created["shipment_id"]
        await shipments.update_shipment_status(1, shipment_id, "in-transit")

        result = await shipments.update_shipment_status(1, shipment_id, "delivered", "Left at dock 7")

        assert result.data["previous_status"] == "in-transit"
        shipment = await fetch(Shipment, shipment_id)
        assert shipment.status == "delivered"
        assert shipment.actual_delivery_date is not None
        assert shipment.delivery_notes == "Left at dock 7"
        assert shipment.mod_flag is True
        assert (await fetch(Transport, seed.truck)).status == "available"

        logs = (await AuditService().list_logs(table_name="shipments", record_id=str(shipment_id))).data
        assert [log["action"] for log in logs] == ["status", "status", "create"]

    async def test_invalid_transition_is_rejected(self, shipments, create, fetch):
        created = await create()

        with pytest.raises(ConflictError) as exc:
            await shipments.update_shipment_status(1, created["shipment_id"], "delivered")

        assert exc.value.code == "INVALID_STATUS_TRANSITION"
        assert (await fetch(Shipment, created["shipment_id"])).status == "pending"

    async def test_terminal_states(self):
        assert not can_transition("delivered", "in-transit")
        assert not can_transition("cancelled", "pending")
        assert can_transition("damaged", "delivered")

    async def test_unconstrained_when_strict_mode_off(self, create, configure):
        configure(shipment_strict_transitions=False)
        created = await create()

        result = await ShipmentService().update_shipment_status(1, created["shipment_id"], "delivered")

        assert result.data["status"] == "delivered"

    async def test_unknown_status_and_shipment(self, shipments, create):
        created = await create()

        with pytest.raises(ValidationError) as exc:
            await shipments.update_shipment_status(1, created["shipment_id"], "lost")
        assert exc.value.code == "INVALID_STATUS"

        with pytest.raises(NotFoundError) as exc:
            await shipments.update_shipment_status(1, 404, "in-transit")
        assert exc.value.detail == "Shipment not found"


class TestTracking:

    async def test_location_history_is_appended(self, shipments, create, fetch):
        created = await create()
        shipment_id = created["shipment_id"]

        await shipments.update_shipment_location(1, shipment_id, {"latitude": 52.52, "longitude": 13.40})
        result = await shipments.update_shipment_location(
            1, shipment_id, {"address": "Gate 4", "temperature": 3.5}
        )

        assert result.data["history_length"] == 2
        shipment = await fetch(Shipment, shipment_id)
        assert [entry.get("address") for entry in shipment.location_history] == [None, "Gate 4"]
        assert shipment.location_history[0]["latitude"] == 52.52
        assert shipment.current_location["address"] == "Gate 4"
        assert shipment.current_location["updated_by"] == 1
        assert float(shipment.current_temperature) == 3.5

    async def test_invalid_locations(self, shipments, create):
        created = await create()

        with pytest.raises(ValidationError) as exc:
            await shipments.update_shipment_location(1, created["shipment_id"], {"notes": "only a note"})
        assert exc.value.code == "EMPTY_LOCATION"

        with pytest.raises(ValidationError) as exc:
            await shipments.update_shipment_location(1, created["shipment_id"], {"latitude": 91, "longitude": 0})
        assert exc.value.code == "INVALID_LATITUDE"

    async def test_quality_check_overwrites_previous(self, shipments, create, fetch):
        created = await create()
        shipment_id = created["shipment_id"]

        await shipments.perform_quality_check(1, shipment_id, "Two crates dented", False, ["dented crates"])
        await shipments.perform_quality_check(2, shipment_id, "Re-inspected, fine", True)

        check = (await fetch(Shipment, shipment_id)).quality_check
        assert check["performed"] is True
        assert check["performed_by"] == 2
        assert check["approved"] is True
        assert check["issues"] == []
        assert check["results"] == "Re-inspected, fine"

    async def test_quality_check_requires_results(self, shipments, create):
        created = await create()

        with pytest.raises(ValidationError):
            await shipments.perform_quality_check(1, created["shipment_id"], "  ", True)


class TestQueries:

    async def test_analytics_counts(self, shipments, create):
        first = await create()
        second = await create()
        third = await create()
        await shipments.update_shipment_status(1, first["shipment_id"], "in-transit")
        await shipments.update_shipment_status(1, second["shipment_id"], "delayed")
        await shipments.update_shipment_status(1, third["shipment_id"], "cancelled")
        await create()

        analytics = (await shipments.get_shipment_analytics()).data

        assert analytics["total_shipments"] == 4
        assert analytics["pending_shipments"] == 1
        assert analytics["in_transit_shipments"] == 1
        assert analytics["delayed_shipments"] == 1
        assert analytics["cancelled_shipments"] == 1
        assert analytics["delivered_shipments"] == 0
        assert len(analytics["recent_shipments"]) == 4

    async def test_by_status_is_ordered_by_pickup(self, shipments, create, shipment_data):
        later = await create(
            scheduled_pickup_date=shipment_data["scheduled_pickup_date"] + timedelta(days=5),
            estimated_delivery_date=shipment_data["estimated_delivery_date"] + timedelta(days=5),
        )
        sooner = await create()

        pending = (await shipments.get_shipments_by_status("pending")).data

        assert [s["id"] for s in pending] == [sooner["shipment_id"], later["shipment_id"]]

    async def test_soft_delete_hides_shipment(self, shipments, create, fetch):
        created = await create()

        await shipments.delete_shipment(1, created["shipment_id"])

        assert (await fetch(Shipment, created["shipment_id"])).del_flag is True
        assert (await shipments.list_shipments()).data == []
        with pytest.raises(NotFoundError):
            await shipments.get_shipment(created["shipment_id"])
