"""
外部协作方端口与适配器
"""
from .catalog import ProductCatalog, ProductInfo, HttpProductCatalog
from .payment import PaymentGateway, PaymentResult, HttpPaymentGateway
from .email import EmailNotifier, EventBusEmailNotifier

__all__ = [
    "ProductCatalog",
    "ProductInfo",
    "HttpProductCatalog",
    "PaymentGateway",
    "PaymentResult",
    "HttpPaymentGateway",
    "EmailNotifier",
    "EventBusEmailNotifier",
]
