"""
HTTP 协作方适配器测试
"""
import json
from decimal import Decimal

import httpx
import pytest

from sf_core.integrations.catalog import HttpProductCatalog
from sf_core.integrations.payment import HttpPaymentGateway


def _catalog_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/products/A":
        return httpx.Response(200, json={"id": "A", "name": "Widget A", "price": "25.00"})
    if request.url.path == "/products/broken":
        return httpx.Response(503)
    return httpx.Response(404)


@pytest.fixture
def catalog_client():
    return HttpProductCatalog(
        "http://catalog.local/", transport=httpx.MockTransport(_catalog_handler)
    )


async def test_catalog_returns_product(catalog_client):
    product = await catalog_client.get_product("A")

    assert product.product_id == "A"
    assert product.name == "Widget A"
    assert product.price == Decimal("25.00")


async def test_catalog_missing_product_is_none(catalog_client):
    assert await catalog_client.get_product("Z") is None


async def test_catalog_server_error_propagates(catalog_client):
    with pytest.raises(httpx.HTTPStatusError):
        await catalog_client.get_product("broken")


async def test_payment_capture_success():
    captured = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append((request.headers["Idempotency-Key"], json.loads(request.content)))
        return httpx.Response(200, json={"status": "succeeded", "transaction_id": "txn-1"})

    gateway = HttpPaymentGateway("http://pay.local", transport=httpx.MockTransport(handler))

    result = await gateway.capture("order-1", "pix", Decimal("35.00"))

    assert result.success is True
    assert result.transaction_id == "txn-1"
    assert captured == [("order-1", {
        "order_id": "order-1",
        "method": "pix",
        "amount": "35.00",
        "currency": "BRL",
    })]


async def test_payment_capture_declined():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "declined", "failure_reason": "Card expired"})

    gateway = HttpPaymentGateway("http://pay.local", transport=httpx.MockTransport(handler))

    result = await gateway.capture("order-1", "card", Decimal("35.00"))

    assert result.success is False
    assert result.failure_reason == "Card expired"
