"""
WareFlow FastAPI 应用

所有错误统一以 {"ok": false, "error": <ProblemDetail>} 返回。
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from wf_core import __version__
from wf_core.api import api_router
from wf_core.config import get_settings
from wf_core.database import get_db_manager
from wf_core.event_bus import get_event_bus
from wf_core.middleware.logging import LoggingMiddleware
from wf_core.middleware.metrics import MetricsMiddleware
from wf_core.models.base import utcnow
from wf_core.utils.errors import (
    ErrorKind,
    InternalServerError,
    ValidationError,
    WareFlowException,
)
from wf_core.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)

_KIND_BY_STATUS = {
    401: ErrorKind.UNAUTHORIZED,
    403: ErrorKind.FORBIDDEN,
    404: ErrorKind.NOT_FOUND,
    405: ErrorKind.NOT_FOUND,
    409: ErrorKind.CONFLICT,
    422: ErrorKind.VALIDATION,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    db_manager = get_db_manager()
    event_bus = get_event_bus()

    logger.info("WareFlow starting", version=__version__)
    if not await db_manager.check_connection():
        raise RuntimeError("Database connection failed")
    await event_bus.initialize()

    yield

    await event_bus.shutdown()
    await db_manager.close()
    logger.info("WareFlow stopped")


def jsonable_errors(exc: RequestValidationError) -> list:
    """ctx 中可能带异常对象，只保留 loc / msg / type"""
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


def register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(WareFlowException)
    async def wareflow_error(request: Request, exc: WareFlowException):
        if exc.status >= 500:
            logger.error("Request failed", code=exc.code, detail=exc.detail)
        return exc.to_response(request)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        errors = jsonable_errors(exc)
        logger.warning("Request validation failed", path=request.url.path, errors=errors)
        return ValidationError(
            code="VALIDATION_ERROR",
            detail="Request validation failed",
            validation_errors=errors,
        ).to_response(request)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        error = WareFlowException(
            status=exc.status_code,
            code=f"HTTP_{exc.status_code}",
            title=str(exc.detail),
            detail=str(exc.detail),
        )
        error.kind = _KIND_BY_STATUS.get(exc.status_code, ErrorKind.INTERNAL)
        return error.to_response(request)

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception):
        logger.error("Unhandled server error", path=request.url.path, exc_info=exc)
        return InternalServerError(
            code="INTERNAL_SERVER_ERROR",
            detail="An internal server error occurred",
        ).to_response(request)


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(log_level=settings.log_level, log_format=settings.log_format)

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="WareFlow warehouse stock ledger and shipment API",
        docs_url="/docs" if settings.api_debug else None,
        redoc_url=None,
        openapi_url="/openapi.json" if settings.api_debug else None,
        lifespan=lifespan,
    )

    # 后添加的中间件在外层：日志包住指标
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.api_debug else [],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if settings.metrics_enabled:
        app.add_middleware(MetricsMiddleware)
    app.add_middleware(LoggingMiddleware)

    register_error_handlers(app)
    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/healthz")
    async def liveness():
        return {"status": "healthy", "timestamp": utcnow().isoformat()}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "wf_core.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_debug,
    )
