"""
服务容器
每个服务只构建一次，依赖通过构造函数注入；FastAPI 依赖从 app.state.container 读取
"""
from typing import Optional

from sf_core.config import Settings, get_settings
from sf_core.database import DatabaseManager
from sf_core.event_bus import EventBus
from sf_core.integrations.catalog import ProductCatalog, HttpProductCatalog
from sf_core.integrations.email import EmailNotifier, EventBusEmailNotifier
from sf_core.integrations.fakes import FakePaymentGateway, InMemoryProductCatalog
from sf_core.integrations.payment import PaymentGateway, HttpPaymentGateway
from sf_core.services.cart import CartStore
from sf_core.services.change_log import ChangeLog
from sf_core.services.dispatcher import SideEffectDispatcher
from sf_core.services.inventory import InventoryLedger
from sf_core.services.orders import OrderOrchestrator
from sf_core.utils.logger import get_logger

logger = get_logger(__name__)


class ServiceContainer:
    """组装全部服务"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        db_manager: Optional[DatabaseManager] = None,
        event_bus: Optional[EventBus] = None,
        catalog: Optional[ProductCatalog] = None,
        payment_gateway: Optional[PaymentGateway] = None,
        notifier: Optional[EmailNotifier] = None,
    ):
        self.settings = settings or get_settings()
        self.db_manager = db_manager or DatabaseManager(self.settings)
        self.event_bus = event_bus or EventBus(self.settings)
        self.catalog = catalog or self._build_catalog()
        self.payment_gateway = payment_gateway or self._build_payment_gateway()
        self.notifier = notifier or EventBusEmailNotifier(self.event_bus)
        self.dispatcher = SideEffectDispatcher()

        self.change_log = ChangeLog(self.db_manager)
        self.ledger = InventoryLedger(
            self.db_manager, self.change_log, self.event_bus, self.settings
        )
        self.cart_store = CartStore(self.db_manager, self.ledger, self.catalog)
        self.orchestrator = OrderOrchestrator(
            self.db_manager,
            ledger=self.ledger,
            cart_store=self.cart_store,
            catalog=self.catalog,
            payment_gateway=self.payment_gateway,
            notifier=self.notifier,
            dispatcher=self.dispatcher,
            event_bus=self.event_bus,
            settings=self.settings,
        )

    def _build_catalog(self) -> ProductCatalog:
        if self.settings.catalog_base_url:
            return HttpProductCatalog(self.settings.catalog_base_url, self.settings.collaborator_timeout)
        logger.warning("catalog_base_url not set, using in-memory product catalog")
        return InMemoryProductCatalog()

    def _build_payment_gateway(self) -> PaymentGateway:
        if self.settings.payment_gateway_url:
            return HttpPaymentGateway(
                self.settings.payment_gateway_url,
                currency=self.settings.currency,
                timeout=self.settings.collaborator_timeout,
            )
        if not self.settings.allow_fake_payments:
            raise RuntimeError(
                "payment_gateway_url is not set; set SF__ALLOW_FAKE_PAYMENTS=true to use the fake gateway"
            )
        logger.warning("payment_gateway_url not set, using fake payment gateway")
        return FakePaymentGateway()

    async def startup(self) -> None:
        if not await self.db_manager.check_connection():
            raise RuntimeError("Database connection failed")
        await self.event_bus.initialize()

    async def shutdown(self) -> None:
        await self.dispatcher.shutdown()
        await self.event_bus.shutdown()
        await self.db_manager.close()
