"""
指标收集中间件
"""
import re
import time
from typing import Callable

from fastapi import Request, Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.middleware.base import BaseHTTPMiddleware

from sf_core.utils.metrics import HTTP_REQUESTS, HTTP_REQUEST_DURATION

UUID_PATTERN = re.compile(r'/[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}')


class MetricsMiddleware(BaseHTTPMiddleware):
    """指标收集中间件"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        method = request.method
        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception:
            endpoint = self._get_endpoint_pattern(request)
            HTTP_REQUESTS.labels(method=method, endpoint=endpoint, status_code="500").inc()
            HTTP_REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(time.time() - start_time)
            raise

        endpoint = self._get_endpoint_pattern(request)
        HTTP_REQUESTS.labels(
            method=method,
            endpoint=endpoint,
            status_code=str(response.status_code)
        ).inc()
        HTTP_REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(time.time() - start_time)
        return response

    def _get_endpoint_pattern(self, request: Request) -> str:
        """获取端点模式（用于聚合指标）"""
        # 路由匹配后优先使用路由模板，避免商品ID撑大标签基数
        route = request.scope.get("route")
        if route is not None and getattr(route, "path", None):
            return route.path
        return UUID_PATTERN.sub('/{uuid}', request.url.path) or "/"


async def metrics_endpoint() -> Response:
    """Prometheus 抓取端点"""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
