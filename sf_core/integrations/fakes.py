"""
进程内协作方实现，用于本地开发和测试

行为可在运行时配置，不做任何外部调用
"""
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import uuid4

from sf_core.models import Order
from .catalog import ProductCatalog, ProductInfo
from .email import EmailNotifier
from .payment import PaymentGateway, PaymentResult


class InMemoryProductCatalog(ProductCatalog):
    """内存商品目录"""

    def __init__(self, products: Optional[List[ProductInfo]] = None):
        self.products: Dict[str, ProductInfo] = {}
        for product in products or []:
            self.add(product)

    def add(self, product: ProductInfo) -> None:
        self.products[product.product_id] = product

    def set_price(self, product_id: str, price: Decimal) -> None:
        current = self.products[product_id]
        self.products[product_id] = ProductInfo(current.product_id, current.name, price)

    def remove(self, product_id: str) -> None:
        self.products.pop(product_id, None)

    async def get_product(self, product_id: str) -> Optional[ProductInfo]:
        return self.products.get(product_id)


class FakePaymentGateway(PaymentGateway):
    """可配置成功或失败的支付网关"""

    def __init__(self):
        self.should_succeed = True
        self.failure_reason = "Card declined"
        self.raise_error: Optional[Exception] = None
        self.calls: List[dict] = []

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Card declined",
        raise_error: Optional[Exception] = None
    ) -> None:
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.raise_error = raise_error

    async def capture(self, order_id: str, method: str, amount: Decimal) -> PaymentResult:
        self.calls.append({"order_id": order_id, "method": method, "amount": amount})
        if self.raise_error is not None:
            raise self.raise_error
        if self.should_succeed:
            return PaymentResult(success=True, transaction_id=f"fake_txn_{uuid4().hex[:12]}")
        return PaymentResult(success=False, failure_reason=self.failure_reason)


class RecordingEmailNotifier(EmailNotifier):
    """记录所有发送请求的邮件通知器"""

    def __init__(self):
        self.sent: List[tuple] = []
        self.fail = False

    def _record(self, template: str, order: Order) -> None:
        if self.fail:
            raise RuntimeError("SMTP unavailable")
        self.sent.append((template, order.id, order.status))

    async def send_order_confirmation(self, order: Order) -> None:
        self._record("order_confirmation", order)

    async def send_status_update(self, order: Order) -> None:
        self._record("order_status_update", order)

    async def send_shipping_confirmation(self, order: Order) -> None:
        self._record("shipping_confirmation", order)

    def templates_for(self, order_id: str) -> List[str]:
        return [template for template, sent_order_id, _ in self.sent if sent_order_id == order_id]
