"""
StoreFlow 实用工具模块
"""

from .logger import get_logger, LogContext, setup_logging
from .errors import StoreFlowException, ValidationError, NotFoundError

__all__ = [
    "get_logger",
    "LogContext",
    "setup_logging",
    "StoreFlowException",
    "ValidationError",
    "NotFoundError",
]
