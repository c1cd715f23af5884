"""
Prometheus 指标

模块级注册一次；测试中多次 create_app() 共用同一组指标。
"""
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

HTTP_REQUESTS = Counter(
    "wf_http_requests_total",
    "HTTP requests by route template and status",
    ["method", "route", "status_code"],
)

HTTP_LATENCY = Histogram(
    "wf_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "route"],
)

STOCK_UNITS = Counter(
    "wf_stock_units_total",
    "Units moved through the stock ledger",
    ["operation"],
)

SHIPMENT_STATUS_CHANGES = Counter(
    "wf_shipment_transitions_total",
    "Shipment status changes",
    ["from_status", "to_status"],
)


def record_stock_units(operation: str, quantity: int) -> None:
    STOCK_UNITS.labels(operation=operation).inc(abs(quantity))


def render_latest():
    """返回 (body, content_type)"""
    return generate_latest(), CONTENT_TYPE_LATEST
