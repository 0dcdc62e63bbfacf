"""
请求日志中间件

记录每个入站请求的方法、路径、状态码和耗时，并在响应头中返回 X-Trace-Id
"""
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from sf_core.utils.logger import get_logger, LogContext


# 不记录详细日志的路径
SKIP_DETAIL_SUFFIXES = ("/health", "/metrics")

# 敏感字段（不记录到日志）
SENSITIVE_FIELDS = {"token", "secret", "password", "authorization"}


class LoggingMiddleware(BaseHTTPMiddleware):
    """请求日志中间件"""

    def __init__(self, app, logger=None):
        super().__init__(app)
        self.logger = logger or get_logger("middleware.logging")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # 上游已经带了 trace_id 就沿用
        trace_id = request.headers.get("x-trace-id") or str(uuid.uuid4())
        request.state.trace_id = trace_id

        method = request.method
        path = request.url.path
        skip_detail = path.endswith(SKIP_DETAIL_SUFFIXES)
        start_time = time.time()

        with LogContext(trace_id=trace_id, user_id=request.headers.get("x-user-id")):
            if not skip_detail:
                log_data = {
                    "direction": "inbound",
                    "method": method,
                    "path": path,
                    "client_ip": request.client.host if request.client else "unknown",
                }
                if request.query_params:
                    log_data["query_params"] = self._mask_sensitive(dict(request.query_params))
                self.logger.info("API request", **log_data)

            try:
                response = await call_next(request)
            except Exception as e:
                self.logger.error(
                    "API request failed",
                    method=method,
                    path=path,
                    latency_ms=int((time.time() - start_time) * 1000),
                    result="error",
                    err=str(e),
                    exc_info=True
                )
                raise

            resp_log_data = {
                "direction": "inbound",
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "latency_ms": int((time.time() - start_time) * 1000),
                "result": "success" if response.status_code < 400 else "error",
            }
            if response.status_code >= 400:
                self.logger.warning("API response error", **resp_log_data)
            elif not skip_detail:
                self.logger.info("API response", **resp_log_data)

            response.headers["X-Trace-Id"] = trace_id
            return response

    def _mask_sensitive(self, data: dict) -> dict:
        """脱敏敏感字段"""
        return {
            key: "***MASKED***" if key.lower() in SENSITIVE_FIELDS else value
            for key, value in data.items()
        }
