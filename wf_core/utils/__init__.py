"""
WareFlow 实用工具模块
"""

from .logger import get_logger, log_context, setup_logging
from .errors import WareFlowException, ValidationError, NotFoundError, ConflictError

__all__ = [
    "get_logger",
    "log_context",
    "setup_logging",
    "WareFlowException",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
]
