"""
API 请求/响应模型
"""
from typing import Any, Dict, List, Optional, Generic, TypeVar
from pydantic import BaseModel, Field

from sf_core.models import Cart, Order, InventoryRecord, InventoryChangeRecord

T = TypeVar('T')


class ApiResponse(BaseModel, Generic[T]):
    """统一 API 响应格式"""
    ok: bool = Field(description="操作是否成功")
    data: Optional[T] = Field(default=None, description="响应数据")
    error: Optional[Dict[str, Any]] = Field(default=None, description="错误信息（RFC7807 Problem Details）")
    metadata: Optional[Dict[str, Any]] = Field(default=None, description="元数据")

    @classmethod
    def success(cls, data: T, metadata: Optional[Dict[str, Any]] = None) -> "ApiResponse[T]":
        """创建成功响应"""
        return cls(ok=True, data=data, metadata=metadata)


# 购物车
class AddCartItemRequest(BaseModel):
    """加入购物车"""
    product_id: str = Field(min_length=1, max_length=100)
    quantity: int = Field(description="数量，必须为正整数")


class UpdateCartItemRequest(BaseModel):
    """修改购物车行数量，0 表示删除"""
    quantity: int


class CartItemResponse(BaseModel):
    product_id: str
    quantity: int


class CartResponse(BaseModel):
    user_id: str
    items: List[CartItemResponse] = Field(default_factory=list)
    item_count: int = 0

    @classmethod
    def from_cart(cls, user_id: str, cart: Optional[Cart]) -> "CartResponse":
        if cart is None:
            return cls(user_id=user_id)
        return cls(
            user_id=cart.user_id,
            items=[CartItemResponse(product_id=i.product_id, quantity=i.quantity) for i in cart.items],
            item_count=cart.item_count,
        )


class CartValidationResponse(BaseModel):
    is_valid: bool
    errors: List[str]


class CartSummaryResponse(BaseModel):
    user_id: str
    line_count: int
    item_count: int
    total_value: str  # Decimal 序列化为字符串
    is_valid: bool
    errors: List[str]


# 订单
class CheckoutRequest(BaseModel):
    """结算请求"""
    shipping_address: str = Field(min_length=1, description="收货地址")
    payment_method: str = Field(description="支付方式：pix 或 card")


class UpdateOrderStatusRequest(BaseModel):
    status: str


class PaymentResultRequest(BaseModel):
    """支付网关回调结果"""
    success: bool
    transaction_id: Optional[str] = None
    failure_reason: Optional[str] = None


class OrderItemResponse(BaseModel):
    product_id: str
    product_name: str
    quantity: int
    unit_price_at_purchase: str
    subtotal: str


class OrderResponse(BaseModel):
    """订单响应"""
    id: str
    user_id: str
    status: str
    items: List[OrderItemResponse]
    shipping_address: str
    shipping_method: str
    shipping_cost: str
    payment_method: str
    payment_status: str
    payment_transaction_id: Optional[str] = None
    payment_failure_reason: Optional[str] = None
    subtotal: str
    discount: str
    total: str
    created_at: str
    updated_at: str

    @classmethod
    def from_order(cls, order: Order) -> "OrderResponse":
        return cls(**order.to_dict())


class OrderStatsResponse(BaseModel):
    total_orders: int
    total_revenue: str
    by_status: Dict[str, int]


# 库存
class AdjustInventoryRequest(BaseModel):
    delta: int
    reason: str = Field(default="adjustment", description="sale/return/adjustment/restock/damage")
    reference: Optional[str] = None


class BulkAdjustItem(AdjustInventoryRequest):
    product_id: str = Field(min_length=1, max_length=100)


class BulkAdjustRequest(BaseModel):
    items: List[BulkAdjustItem] = Field(min_length=1)


class ThresholdRequest(BaseModel):
    threshold: int


class InventoryResponse(BaseModel):
    product_id: str
    quantity: int
    reserved: int
    available: int
    low_stock_threshold: int
    last_updated: str

    @classmethod
    def from_record(cls, record: InventoryRecord) -> "InventoryResponse":
        return cls(**record.to_dict())


class InventoryAlertResponse(BaseModel):
    product_id: str
    alert_type: str
    quantity: int
    available: int
    threshold: int


class InventoryChangeResponse(BaseModel):
    id: int
    product_id: str
    quantity_change: int
    reason: str
    reference: Optional[str] = None
    performed_by: str
    timestamp: str

    @classmethod
    def from_record(cls, record: InventoryChangeRecord) -> "InventoryChangeResponse":
        return cls(**record.to_dict())
