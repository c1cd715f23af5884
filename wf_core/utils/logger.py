# mypy: disable-error-code="no-untyped-def, assignment, var-annotated"
"""
WareFlow 日志系统

每条日志带 ts / level / action，以及请求上下文中的 trace_id、user_id、warehouse_id。
司机电话、联系邮箱、令牌在输出前脱敏。
"""
import logging
import re
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

import structlog

trace_id_var: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)
user_id_var: ContextVar[Optional[int]] = ContextVar("user_id", default=None)
warehouse_id_var: ContextVar[Optional[int]] = ContextVar("warehouse_id", default=None)

_CONTEXT_VARS = {
    "trace_id": trace_id_var,
    "user_id": user_id_var,
    "warehouse_id": warehouse_id_var,
}

# 按 key 整体遮蔽
_SECRET_KEYS = {"password", "secret_key", "token", "access_token", "authorization"}
_PHONE_KEYS = {"driver_phone", "contact_phone", "phone"}

_MASKS = [
    (re.compile(r"(Bearer\s+)[\w\-.=]+", re.IGNORECASE), r"\1***"),
    (re.compile(r"([A-Za-z0-9])[A-Za-z0-9._%+-]*@([A-Za-z0-9.-]+\.[A-Za-z]{2,})"), r"\1***@\2"),
    (re.compile(r"(\+?\d{3})\d{4,8}(\d{3})"), r"\1****\2"),
]


def _mask_text(value: str) -> str:
    for pattern, replacement in _MASKS:
        value = pattern.sub(replacement, value)
    return value


def _mask(key: str, value: Any) -> Any:
    if key.lower() in _SECRET_KEYS:
        return "***MASKED***"
    if isinstance(value, str):
        if key.lower() in _PHONE_KEYS and len(value) > 4:
            return "*" * (len(value) - 4) + value[-4:]
        return _mask_text(value)
    if isinstance(value, dict):
        return {k: _mask(str(k), v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_mask(key, item) for item in value]
    return value


def mask_pii(logger, method_name, event_dict):
    """脱敏处理器"""
    return {key: _mask(key, value) for key, value in event_dict.items()}


def add_request_context(logger, method_name, event_dict):
    """注入请求上下文并把 event 改名为 action"""
    event_dict["ts"] = datetime.now(timezone.utc).isoformat()
    for name, var in _CONTEXT_VARS.items():
        value = var.get()
        if value is not None:
            event_dict.setdefault(name, value)

    if "event" in event_dict:
        event_dict["action"] = event_dict.pop("event")
    if "exception" in event_dict:
        event_dict["err"] = event_dict.pop("exception")
    return event_dict


def setup_logging(log_level: str = "INFO", log_format: str = "json", enable_pii_masking: bool = True) -> None:
    """配置 structlog，并让标准 logging（uvicorn、sqlalchemy）走同一渲染器输出到 stdout"""
    level = getattr(logging, log_level.upper())

    shared = [
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.format_exc_info,
        add_request_context,
    ]
    if enable_pii_masking:
        shared.append(mask_pii)

    renderer = structlog.processors.JSONRenderer() if log_format == "json" else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=shared + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared,
    ))

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    for name in ("httpx", "httpcore", "asyncio", "uvicorn.access", "sqlalchemy.engine", "aiosqlite"):
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def log_context(**values: Any) -> Iterator[None]:
    """在当前任务内设置 trace_id / user_id / warehouse_id，退出时恢复"""
    tokens = [
        _CONTEXT_VARS[name].set(value)
        for name, value in values.items()
        if value is not None
    ]
    try:
        yield
    finally:
        for token in reversed(tokens):
            token.var.reset(token)
