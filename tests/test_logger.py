"""
日志处理器测试
"""
from wf_core.utils.logger import add_request_context, log_context, mask_pii, trace_id_var, warehouse_id_var


def test_driver_phone_keeps_last_digits():
    event = mask_pii(None, "info", {"event": "Shipment created", "driver_phone": "+48123456789"})

    assert event["driver_phone"] == "********6789"
    assert event["event"] == "Shipment created"


def test_secrets_and_tokens_are_masked():
    event = mask_pii(None, "info", {
        "token": "abc",
        "header": "Bearer eyJhbGciOi.payload.sig",
        "contact": {"email": "dispatch@wareflow.example"},
    })

    assert event["token"] == "***MASKED***"
    assert event["header"] == "Bearer ***"
    assert event["contact"]["email"] == "d***@wareflow.example"


def test_request_context_is_injected_and_restored():
    with log_context(trace_id="t-1", warehouse_id=4):
        event = add_request_context(None, "info", {"event": "Stock adjusted"})

    assert event["action"] == "Stock adjusted"
    assert event["trace_id"] == "t-1"
    assert event["warehouse_id"] == 4
    assert trace_id_var.get() is None
    assert warehouse_id_var.get() is None


def test_explicit_fields_win_over_context():
    with log_context(warehouse_id=4):
        event = add_request_context(None, "info", {"event": "Transfer", "warehouse_id": 9})

    assert event["warehouse_id"] == 9
