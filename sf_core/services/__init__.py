"""
StoreFlow 核心服务
"""
from .change_log import ChangeLog, ChangeEntry
from .inventory import InventoryLedger, InventoryAlert
from .cart import CartStore, CartValidation
from .dispatcher import SideEffectDispatcher
from .orders import OrderOrchestrator

__all__ = [
    "ChangeLog",
    "ChangeEntry",
    "InventoryLedger",
    "InventoryAlert",
    "CartStore",
    "CartValidation",
    "SideEffectDispatcher",
    "OrderOrchestrator",
]
