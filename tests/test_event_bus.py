"""
事件总线与邮件通知测试
"""
import json
from decimal import Decimal

import pytest

from sf_core.event_bus import EMAIL_NOTIFICATION, INVENTORY_UPDATED, EventBus
from sf_core.integrations.email import EventBusEmailNotifier
from sf_core.models import Order, OrderItem


class StreamRecorder:
    """只实现 xadd 的 Redis 客户端替身"""

    def __init__(self):
        self.entries = []
        self.closed = False

    async def xadd(self, name, fields, maxlen=None, approximate=True):
        self.entries.append({"stream": name, "fields": fields, "maxlen": maxlen})
        return f"{len(self.entries)}-0"

    async def ping(self):
        return True

    async def aclose(self):
        self.closed = True


@pytest.fixture
def recorder():
    return StreamRecorder()


@pytest.fixture
def bus(settings, recorder):
    return EventBus(settings, client=recorder)


async def test_publish_writes_envelope_to_stream(bus, recorder, settings):
    event_id = await bus.publish(INVENTORY_UPDATED, {"product_id": "A", "quantity": 3}, key="A")

    entry = recorder.entries[0]
    assert entry["stream"] == "sf:events:sf.inventory.updated"
    assert entry["maxlen"] == settings.event_stream_maxlen
    assert entry["fields"]["key"] == "A"

    envelope = json.loads(entry["fields"]["data"])
    assert envelope["event_id"] == event_id
    assert envelope["topic"] == INVENTORY_UPDATED
    assert envelope["payload"] == {"product_id": "A", "quantity": 3}


async def test_publish_rejects_foreign_topic(bus, recorder):
    with pytest.raises(ValueError):
        await bus.publish("orders.created", {})
    assert recorder.entries == []


async def test_shutdown_closes_client(bus, recorder):
    await bus.initialize()
    await bus.shutdown()

    assert recorder.closed is True
    assert bus.redis_client is None


async def test_email_notifier_publishes_order_summary(bus, recorder):
    order = Order(
        id="order-1",
        user_id="u1",
        status="shipped",
        total=Decimal("60.00"),
        items=[OrderItem(product_id="A", product_name="Widget A", quantity=2,
                         unit_price_at_purchase=Decimal("25.00"))],
    )

    await EventBusEmailNotifier(bus).send_shipping_confirmation(order)

    entry = recorder.entries[0]
    assert entry["stream"] == f"sf:events:{EMAIL_NOTIFICATION}"
    assert entry["fields"]["key"] == "u1"
    payload = json.loads(entry["fields"]["data"])["payload"]
    assert payload["template"] == "shipping_confirmation"
    assert payload["order"] == {
        "order_id": "order-1",
        "user_id": "u1",
        "status": "shipped",
        "total": "60.00",
        "items": [{"product_name": "Widget A", "quantity": 2}],
    }
