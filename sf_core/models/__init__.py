"""
StoreFlow 数据模型
"""
from .base import Base, utcnow
from .inventory import InventoryRecord
from .change_log import InventoryChangeRecord, CHANGE_REASONS, QUANTITY_REASONS
from .cart import Cart, CartItem
from .orders import (
    Order, OrderItem, OrderStatus, PaymentStatus,
    PAYMENT_METHODS, ALLOWED_TRANSITIONS, can_transition
)

__all__ = [
    "Base",
    "utcnow",
    "InventoryRecord",
    "InventoryChangeRecord",
    "CHANGE_REASONS",
    "QUANTITY_REASONS",
    "Cart",
    "CartItem",
    "Order",
    "OrderItem",
    "OrderStatus",
    "PaymentStatus",
    "PAYMENT_METHODS",
    "ALLOWED_TRANSITIONS",
    "can_transition",
]
