"""
购物车数据模型
购物车只是意向，不占用库存
"""
from datetime import datetime
from typing import List

from sqlalchemy import (
    String, Integer, DateTime, ForeignKey,
    CheckConstraint, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, BigIntPK, utcnow


class Cart(Base):
    """用户购物车"""
    __tablename__ = "carts"

    user_id: Mapped[str] = mapped_column(String(100), primary_key=True, comment="用户ID")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    # 按加入顺序排列
    items: Mapped[List["CartItem"]] = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.position",
        lazy="selectin",
    )

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def find_item(self, product_id: str):
        for item in self.items:
            if item.product_id == product_id:
                return item
        return None

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "items": [item.to_dict() for item in self.items],
            "item_count": self.item_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class CartItem(Base):
    """购物车行项目"""
    __tablename__ = "cart_items"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(100), ForeignKey("carts.user_id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="加入顺序")

    cart: Mapped["Cart"] = relationship("Cart", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_cart_items_quantity_positive"),
        UniqueConstraint("user_id", "product_id", name="uq_cart_items_user_product"),
    )

    def to_dict(self):
        return {"product_id": self.product_id, "quantity": self.quantity}
