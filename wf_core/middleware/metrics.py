"""
HTTP 指标中间件
"""
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Match

from wf_core.utils.metrics import HTTP_LATENCY, HTTP_REQUESTS


def _route_template(request: Request) -> str:
    """按应用路由表解析带前缀的路径模板，如 /api/wf/v1/shipments/{shipment_id}"""
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return route.path
    # 未匹配路由时不用原始路径，避免标签基数膨胀
    return "unmatched"


class MetricsMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        status_code = "500"
        try:
            response = await call_next(request)
            status_code = str(response.status_code)
            return response
        finally:
            route = _route_template(request)
            HTTP_REQUESTS.labels(method=request.method, route=route, status_code=status_code).inc()
            HTTP_LATENCY.labels(method=request.method, route=route).observe(time.perf_counter() - started)
