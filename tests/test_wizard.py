"""
多步向导测试
"""
import pytest
from pydantic import BaseModel

from wf_core.api.models import SHIPMENT_WIZARD, CreateShipmentRequest
from wf_core.utils.errors import ValidationError
from wf_core.utils.wizard import StepWizard


def shipment_steps():
    return {
        0: {"origin_warehouse_id": 1, "destination_warehouse_id": 2, "transport_id": 3},
        1: {"items": [{"product_id": 4, "quantity": 2, "unit_price": "5.00"}]},
        2: {
            "scheduled_pickup_date": "2026-10-20T08:00:00Z",
            "estimated_delivery_date": "2026-10-22T08:00:00Z",
        },
        3: {"temperature_required": True, "min_temperature": "2", "max_temperature": "8"},
    }


class TestStepWizard:

    def test_steps_must_be_contiguous(self):
        class Only(BaseModel):
            name: str

        with pytest.raises(ValueError):
            StepWizard({1: Only}, Only)

    def test_unknown_step(self):
        with pytest.raises(ValidationError) as exc:
            SHIPMENT_WIZARD.validate_step(4, {})
        assert exc.value.code == "INVALID_WIZARD_STEP"

    def test_field_error_names_the_field(self):
        with pytest.raises(ValidationError) as exc:
            SHIPMENT_WIZARD.validate_step(1, {"items": [{"product_id": 4, "quantity": 0, "unit_price": "1"}]})

        assert exc.value.code == "WIZARD_STEP_INVALID"
        assert exc.value.detail.startswith("Step 1: items.0.quantity:")

    def test_missing_steps(self):
        steps = shipment_steps()
        del steps[2]

        with pytest.raises(ValidationError) as exc:
            SHIPMENT_WIZARD.assemble(steps)

        assert exc.value.code == "WIZARD_INCOMPLETE"
        assert "[2]" in exc.value.detail

    def test_assemble_builds_full_request(self):
        request = SHIPMENT_WIZARD.assemble(shipment_steps())

        assert isinstance(request, CreateShipmentRequest)
        assert request.transport_id == 3
        assert request.priority == "medium"
        assert request.items[0].condition == "good"
        assert str(request.max_temperature) == "8"


class TestShipmentSteps:

    def test_route_needs_two_warehouses(self):
        with pytest.raises(ValidationError) as exc:
            SHIPMENT_WIZARD.validate_step(0, {
                "origin_warehouse_id": 1, "destination_warehouse_id": 1, "transport_id": 3
            })
        assert "must be different" in exc.value.detail

    def test_items_cannot_be_empty(self):
        with pytest.raises(ValidationError):
            SHIPMENT_WIZARD.validate_step(1, {"items": []})

    def test_delivery_not_before_pickup(self):
        with pytest.raises(ValidationError) as exc:
            SHIPMENT_WIZARD.validate_step(2, {
                "scheduled_pickup_date": "2026-10-22T08:00:00Z",
                "estimated_delivery_date": "2026-10-20T08:00:00Z",
            })
        assert "Estimated delivery date" in exc.value.detail

    @pytest.mark.parametrize("handling, message", [
        ({"temperature_required": True, "min_temperature": "2"}, "Temperature range is required"),
        ({"temperature_required": True, "min_temperature": "9", "max_temperature": "3"}, "must not exceed"),
        ({"insured": True}, "Insurance value is required"),
    ])
    def test_handling_rules(self, handling, message):
        with pytest.raises(ValidationError) as exc:
            SHIPMENT_WIZARD.validate_step(3, handling)
        assert message in exc.value.detail

    def test_handling_defaults(self):
        step = SHIPMENT_WIZARD.validate_step(3, {})
        assert step.temperature_required is False
        assert step.insured is False
