"""
StoreFlow API 路由模块
"""
from fastapi import APIRouter

from .cart import router as cart_router
from .orders import router as orders_router, checkout_router
from .inventory import router as inventory_router
from .system import router as system_router

# 创建主路由器
api_router = APIRouter()

api_router.include_router(cart_router, prefix="/cart", tags=["Cart"])
api_router.include_router(checkout_router, prefix="/checkout", tags=["Checkout"])
api_router.include_router(orders_router, prefix="/orders", tags=["Orders"])
api_router.include_router(inventory_router, prefix="/inventory", tags=["Inventory"])
api_router.include_router(system_router, prefix="/system", tags=["System"])

__all__ = ["api_router"]
