"""
购物车 API 路由
"""
from fastapi import APIRouter, Depends

from sf_core.services.cart import CartStore
from sf_core.utils.logger import get_logger
from .deps import get_cart_store, get_current_user_id
from .models import (
    ApiResponse, AddCartItemRequest, UpdateCartItemRequest,
    CartResponse, CartValidationResponse, CartSummaryResponse
)

router = APIRouter()
logger = get_logger(__name__)


@router.get("", response_model=ApiResponse[CartResponse])
async def get_cart(
    user_id: str = Depends(get_current_user_id),
    cart_store: CartStore = Depends(get_cart_store)
):
    """查看购物车"""
    cart = await cart_store.get_cart(user_id)
    return ApiResponse.success(CartResponse.from_cart(user_id, cart))


@router.post("/items", response_model=ApiResponse[CartResponse])
async def add_cart_item(
    body: AddCartItemRequest,
    user_id: str = Depends(get_current_user_id),
    cart_store: CartStore = Depends(get_cart_store)
):
    """加入商品"""
    cart = await cart_store.add_item(user_id, body.product_id, body.quantity)
    return ApiResponse.success(CartResponse.from_cart(user_id, cart))


@router.put("/items/{product_id}", response_model=ApiResponse[CartResponse])
async def update_cart_item(
    product_id: str,
    body: UpdateCartItemRequest,
    user_id: str = Depends(get_current_user_id),
    cart_store: CartStore = Depends(get_cart_store)
):
    """修改数量"""
    cart = await cart_store.update_item_quantity(user_id, product_id, body.quantity)
    return ApiResponse.success(CartResponse.from_cart(user_id, cart))


@router.delete("/items/{product_id}", response_model=ApiResponse[CartResponse])
async def remove_cart_item(
    product_id: str,
    user_id: str = Depends(get_current_user_id),
    cart_store: CartStore = Depends(get_cart_store)
):
    """删除一行"""
    cart = await cart_store.remove_item(user_id, product_id)
    return ApiResponse.success(CartResponse.from_cart(user_id, cart))


@router.delete("", response_model=ApiResponse[CartResponse])
async def clear_cart(
    user_id: str = Depends(get_current_user_id),
    cart_store: CartStore = Depends(get_cart_store)
):
    """清空购物车"""
    await cart_store.clear(user_id)
    return ApiResponse.success(CartResponse.from_cart(user_id, None))


@router.get("/validate", response_model=ApiResponse[CartValidationResponse])
async def validate_cart(
    user_id: str = Depends(get_current_user_id),
    cart_store: CartStore = Depends(get_cart_store)
):
    """按当前库存校验购物车"""
    validation = await cart_store.validate(user_id)
    return ApiResponse.success(CartValidationResponse(
        is_valid=validation.is_valid,
        errors=validation.errors
    ))


@router.get("/summary", response_model=ApiResponse[CartSummaryResponse])
async def get_cart_summary(
    user_id: str = Depends(get_current_user_id),
    cart_store: CartStore = Depends(get_cart_store)
):
    """购物车汇总"""
    summary = await cart_store.get_cart_summary(user_id)
    summary["total_value"] = str(summary["total_value"])
    return ApiResponse.success(CartSummaryResponse(**summary))
