"""
StoreFlow 中间件
"""
from .logging import LoggingMiddleware
from .metrics import MetricsMiddleware

__all__ = ["LoggingMiddleware", "MetricsMiddleware"]
