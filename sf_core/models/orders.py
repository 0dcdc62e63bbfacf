"""
订单相关数据模型
单价、名称和运费在下单时快照，之后不随商品目录变化
"""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import (
    String, Text, Integer, Numeric, DateTime,
    CheckConstraint, Index, ForeignKey
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, BigIntPK, utcnow


class OrderStatus:
    PENDING = "pending"
    PAID = "paid"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    ALL = (PENDING, PAID, SHIPPED, DELIVERED, CANCELLED)


class PaymentStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


PAYMENT_METHODS = ("pix", "card")

# 合法的状态迁移
ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: (OrderStatus.PAID, OrderStatus.CANCELLED),
    OrderStatus.PAID: (OrderStatus.SHIPPED, OrderStatus.CANCELLED),
    OrderStatus.SHIPPED: (OrderStatus.DELIVERED,),
    OrderStatus.DELIVERED: (),
    OrderStatus.CANCELLED: (),
}


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, ())


def new_order_id() -> str:
    return str(uuid.uuid4())


class Order(Base):
    """订单表"""
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_order_id)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False, comment="下单用户")

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=OrderStatus.PENDING, comment="订单状态"
    )

    # 配送
    shipping_address: Mapped[str] = mapped_column(Text, nullable=False, comment="收货地址")
    shipping_method: Mapped[str] = mapped_column(String(50), nullable=False, comment="配送方式")
    shipping_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, comment="运费快照")

    # 支付
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False, comment="支付方式")
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING, comment="支付状态"
    )
    payment_transaction_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    payment_failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # 金额（必须使用 Decimal）
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # 乐观锁版本号
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending','paid','shipped','delivered','cancelled')",
            name="ck_orders_status"
        ),
        CheckConstraint(
            "payment_status IN ('pending','processing','completed','failed')",
            name="ck_orders_payment_status"
        ),
        CheckConstraint("payment_method IN ('pix','card')", name="ck_orders_payment_method"),
        Index("ix_orders_user_created", "user_id", "created_at"),
        Index("ix_orders_status", "status"),
        Index("ix_orders_payment_updated", "payment_status", "updated_at"),
    )

    def to_dict(self):
        data = super().to_dict()
        data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(Base):
    """订单行"""
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[str] = mapped_column(String(100), nullable=False)
    product_name: Mapped[str] = mapped_column(Text, nullable=False, comment="商品名称快照")
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price_at_purchase: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, comment="下单时单价快照"
    )

    order: Mapped["Order"] = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        Index("ix_order_items_order", "order_id"),
    )

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price_at_purchase * self.quantity

    def to_dict(self):
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_at_purchase": str(self.unit_price_at_purchase),
            "subtotal": str(self.subtotal),
        }
