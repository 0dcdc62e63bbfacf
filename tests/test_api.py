"""
HTTP API 测试
"""
import httpx
import pytest

from sf_core.app import create_app


PREFIX = "/api/sf/v1"
USER = {"X-User-Id": "u1"}
ADMIN = {"X-Admin-Token": "test-admin-token"}


@pytest.fixture
async def client(settings, container):
    app = create_app(settings, container)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def _restock(client, product_id, delta):
    response = await client.post(
        f"{PREFIX}/inventory/{product_id}/adjust",
        json={"delta": delta, "reason": "restock"},
        headers=ADMIN,
    )
    assert response.status_code == 200
    return response.json()["data"]


async def test_health(client):
    response = await client.get(f"{PREFIX}/system/health")

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["data"]["status"] == "healthy"


async def test_metrics_endpoint(client):
    await client.get(f"{PREFIX}/system/health")

    response = await client.get(f"{PREFIX}/system/metrics")

    assert response.status_code == 200
    assert "sf_http_requests_total" in response.text


async def test_user_header_is_required(client):
    response = await client.get(f"{PREFIX}/cart")

    assert response.status_code == 401
    body = response.json()
    assert body["ok"] is False
    assert body["error"]["code"] == "MISSING_USER"


async def test_admin_token_is_checked(client):
    missing = await client.post(f"{PREFIX}/inventory/A/adjust", json={"delta": 1})
    wrong = await client.post(
        f"{PREFIX}/inventory/A/adjust",
        json={"delta": 1},
        headers={"X-Admin-Token": "nope"},
    )

    assert missing.status_code == 401
    assert wrong.status_code == 403
    assert wrong.json()["error"]["code"] == "INVALID_ADMIN_TOKEN"


async def test_inventory_endpoints(client):
    data = await _restock(client, "A", 4)
    assert data["quantity"] == 4
    assert data["available"] == 4

    response = await client.get(f"{PREFIX}/inventory/A")
    assert response.json()["data"]["product_id"] == "A"

    response = await client.get(f"{PREFIX}/inventory", params={"product_ids": "A,Z"})
    body = response.json()
    assert [item["product_id"] for item in body["data"]] == ["A"]
    assert body["metadata"]["missing"] == ["Z"]

    response = await client.get(f"{PREFIX}/inventory/Z")
    assert response.status_code == 404

    response = await client.get(f"{PREFIX}/inventory/admin/alerts", headers=ADMIN)
    assert [alert["alert_type"] for alert in response.json()["data"]] == ["low_stock"]

    response = await client.get(
        f"{PREFIX}/inventory/admin/changes", params={"product_id": "A"}, headers=ADMIN
    )
    assert [change["quantity_change"] for change in response.json()["data"]] == [4]


async def test_bulk_adjust_rejects_unknown_reason(client):
    response = await client.post(
        f"{PREFIX}/inventory/bulk-adjust",
        json={"items": [
            {"product_id": "A", "delta": 3, "reason": "restock"},
            {"product_id": "B", "delta": 3, "reason": "gift"},
        ]},
        headers=ADMIN,
    )

    assert response.status_code == 422
    assert (await client.get(f"{PREFIX}/inventory/A")).status_code == 404


async def test_cart_flow(client):
    await _restock(client, "A", 5)

    response = await client.post(f"{PREFIX}/cart/items", json={"product_id": "A", "quantity": 2}, headers=USER)
    assert response.status_code == 200
    assert response.json()["data"]["items"] == [{"product_id": "A", "quantity": 2}]

    response = await client.put(f"{PREFIX}/cart/items/A", json={"quantity": 3}, headers=USER)
    assert response.json()["data"]["item_count"] == 3

    response = await client.get(f"{PREFIX}/cart/summary", headers=USER)
    assert response.json()["data"]["total_value"] == "75.00"

    response = await client.get(f"{PREFIX}/cart/validate", headers=USER)
    assert response.json()["data"] == {"is_valid": True, "errors": []}

    response = await client.delete(f"{PREFIX}/cart/items/A", headers=USER)
    assert response.json()["data"]["items"] == []


async def test_out_of_stock_error_body(client):
    await _restock(client, "A", 1)

    response = await client.post(f"{PREFIX}/cart/items", json={"product_id": "A", "quantity": 2}, headers=USER)

    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "OUT_OF_STOCK"
    assert error["status"] == 409


async def test_invalid_body_returns_validation_error(client):
    response = await client.post(f"{PREFIX}/cart/items", json={"product_id": "A"}, headers=USER)

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_checkout_and_order_lifecycle(client, container):
    await _restock(client, "A", 5)
    await client.post(f"{PREFIX}/cart/items", json={"product_id": "A", "quantity": 2}, headers=USER)

    response = await client.post(
        f"{PREFIX}/checkout",
        json={"shipping_address": "Rua das Flores 100", "payment_method": "card"},
        headers=USER,
    )
    assert response.status_code == 201
    order = response.json()["data"]
    assert order["status"] == "pending"
    assert order["total"] == "60.00"
    await container.dispatcher.drain()

    response = await client.get(f"{PREFIX}/orders", headers=USER)
    assert [o["id"] for o in response.json()["data"]] == [order["id"]]
    assert response.json()["data"][0]["status"] == "paid"

    response = await client.get(f"{PREFIX}/orders/{order['id']}", headers={"X-User-Id": "u2"})
    assert response.status_code == 404

    response = await client.patch(
        f"{PREFIX}/orders/{order['id']}/status", json={"status": "shipped"}, headers=ADMIN
    )
    assert response.json()["data"]["status"] == "shipped"

    response = await client.post(f"{PREFIX}/orders/{order['id']}/cancel", headers=USER)
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "INVALID_TRANSITION"

    response = await client.get(f"{PREFIX}/orders/admin/stats", headers=ADMIN)
    assert response.json()["data"]["by_status"]["shipped"] == 1


async def test_checkout_empty_cart(client):
    response = await client.post(
        f"{PREFIX}/checkout",
        json={"shipping_address": "Rua das Flores 100", "payment_method": "pix"},
        headers=USER,
    )

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "EMPTY_CART"


async def test_cancel_via_api_restores_stock(client, container):
    await _restock(client, "A", 5)
    container.payment_gateway.configure(should_succeed=False)
    await client.post(f"{PREFIX}/cart/items", json={"product_id": "A", "quantity": 5}, headers=USER)
    response = await client.post(
        f"{PREFIX}/checkout",
        json={"shipping_address": "Rua das Flores 100", "payment_method": "pix"},
        headers=USER,
    )
    order_id = response.json()["data"]["id"]
    await container.dispatcher.drain()

    response = await client.post(f"{PREFIX}/orders/{order_id}/cancel", headers=USER)

    assert response.json()["data"]["status"] == "cancelled"
    response = await client.get(f"{PREFIX}/inventory/A")
    assert response.json()["data"]["available"] == 5
