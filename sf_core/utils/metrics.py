"""
Prometheus 指标定义

指标在模块级注册一次，重复创建应用（测试）不会重复注册
"""
from prometheus_client import Counter, Histogram

# HTTP 指标
HTTP_REQUESTS = Counter(
    "sf_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"]
)

HTTP_REQUEST_DURATION = Histogram(
    "sf_http_request_duration_seconds",
    "HTTP request duration",
    ["method", "endpoint"]
)

# 业务指标
RESERVATIONS = Counter(
    "sf_inventory_reservations_total",
    "Inventory reservation attempts",
    ["result"]  # reserved / insufficient / conflict
)

CHECKOUTS = Counter(
    "sf_checkouts_total",
    "Checkout attempts",
    ["outcome"]  # created / empty_cart / invalid_cart / insufficient_stock / error
)

SIDE_EFFECT_FAILURES = Counter(
    "sf_side_effect_failures_total",
    "Failed fire-and-forget side effects",
    ["name"]
)
