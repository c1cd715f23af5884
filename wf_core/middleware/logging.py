"""
请求日志中间件

每个请求分配 trace_id（沿用上游 x-trace-id），记录方法、路径、状态码和耗时。
查询参数中的 warehouse_id 进入日志上下文。
"""
import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from wf_core.utils.logger import get_logger, log_context

QUIET_PATHS = {"/healthz", "/favicon.ico"}


def _warehouse_from_query(request: Request) -> Optional[int]:
    value = request.query_params.get("warehouse_id", "")
    return int(value) if value.isdigit() else None


def _client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class LoggingMiddleware(BaseHTTPMiddleware):

    def __init__(self, app, logger=None):
        super().__init__(app)
        self.logger = logger or get_logger("wf_core.http")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        trace_id = request.headers.get("x-trace-id") or uuid.uuid4().hex
        request.state.trace_id = trace_id
        quiet = request.url.path in QUIET_PATHS or request.url.path.endswith("/metrics")
        started = time.perf_counter()

        with log_context(trace_id=trace_id, warehouse_id=_warehouse_from_query(request)):
            if not quiet:
                self.logger.info(
                    "Request started",
                    method=request.method,
                    path=request.url.path,
                    client_ip=_client_ip(request),
                )

            try:
                response = await call_next(request)
            except Exception:
                self.logger.error(
                    "Request crashed",
                    method=request.method,
                    path=request.url.path,
                    latency_ms=int((time.perf_counter() - started) * 1000),
                    exc_info=True,
                )
                raise

            latency_ms = int((time.perf_counter() - started) * 1000)
            if response.status_code >= 400:
                self.logger.warning(
                    "Request failed",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    latency_ms=latency_ms,
                )
            elif not quiet:
                self.logger.info(
                    "Request finished",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    latency_ms=latency_ms,
                )

            response.headers["X-Trace-Id"] = trace_id
            return response
