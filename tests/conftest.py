"""
Pytest 配置和 fixtures
"""
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio

from sf_core.config import Settings
from sf_core.container import ServiceContainer
from sf_core.integrations.catalog import ProductInfo
from sf_core.integrations.fakes import (
    FakePaymentGateway, InMemoryProductCatalog, RecordingEmailNotifier
)

ADMIN_TOKEN = "test-admin-token"


class RecordingEventBus:
    """记录发布内容的事件总线，不连接 Redis"""

    def __init__(self):
        self.published: List[Tuple[str, Dict[str, Any]]] = []
        self.fail = False

    async def initialize(self) -> None:
        pass

    async def shutdown(self) -> None:
        pass

    async def publish(self, topic: str, payload: Dict[str, Any], key: Optional[str] = None) -> str:
        if self.fail:
            raise ConnectionError("redis unavailable")
        self.published.append((topic, payload))
        return str(uuid.uuid4())

    def payloads(self, topic: str) -> List[Dict[str, Any]]:
        return [payload for published_topic, payload in self.published if published_topic == topic]


@pytest.fixture
def settings(tmp_path) -> Settings:
    """每个测试独立的 SQLite 数据库"""
    return Settings(
        _env_file=None,
        db_url=f"sqlite+aiosqlite:///{tmp_path / 'storeflow.db'}",
        admin_token=ADMIN_TOKEN,
        inventory_default_threshold=10,
        log_format="text",
    )


@pytest.fixture
def catalog() -> InMemoryProductCatalog:
    return InMemoryProductCatalog([
        ProductInfo("A", "Widget A", Decimal("25.00")),
        ProductInfo("B", "Widget B", Decimal("10.50")),
        ProductInfo("C", "Gadget C", Decimal("99.90")),
    ])


@pytest.fixture
def event_bus() -> RecordingEventBus:
    return RecordingEventBus()


@pytest.fixture
def payment_gateway() -> FakePaymentGateway:
    return FakePaymentGateway()


@pytest.fixture
def notifier() -> RecordingEmailNotifier:
    return RecordingEmailNotifier()


@pytest_asyncio.fixture
async def container(settings, catalog, event_bus, payment_gateway, notifier):
    """装配好的服务容器"""
    container = ServiceContainer(
        settings,
        event_bus=event_bus,
        catalog=catalog,
        payment_gateway=payment_gateway,
        notifier=notifier,
    )
    await container.db_manager.create_tables()

    yield container

    await container.dispatcher.drain()
    await container.db_manager.close()


@pytest.fixture
def ledger(container):
    return container.ledger


@pytest.fixture
def cart_store(container):
    return container.cart_store


@pytest.fixture
def orchestrator(container):
    return container.orchestrator


@pytest.fixture
def place_order(container):
    """把商品加入购物车并结算，返回订单"""
    async def _place_order(user_id: str, items: Dict[str, int], payment_method: str = "pix"):
        for product_id, quantity in items.items():
            await container.cart_store.add_item(user_id, product_id, quantity)
        return await container.orchestrator.create_order_from_cart(
            user_id,
            shipping_address="Rua das Flores 100, Sao Paulo",
            payment_method=payment_method,
        )

    return _place_order
