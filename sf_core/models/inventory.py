"""
库存数据模型
"""
from datetime import datetime

from sqlalchemy import String, Integer, DateTime, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, utcnow


class InventoryRecord(Base):
    """商品库存记录，首次调整时创建，从不删除"""
    __tablename__ = "inventory"

    product_id: Mapped[str] = mapped_column(String(100), primary_key=True, comment="商品ID")

    # 库存数量
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="实物库存")
    reserved: Mapped[int] = mapped_column(Integer, nullable=False, default=0, comment="结算中预留数量")

    # 安全阈值
    low_stock_threshold: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=10,
        comment="低库存阈值"
    )

    # 乐观锁版本号
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, comment="乐观锁版本")

    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment="最后更新时间"
    )

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        CheckConstraint("reserved >= 0", name="ck_inventory_reserved_non_negative"),
        CheckConstraint("reserved <= quantity", name="ck_inventory_reserved_within_quantity"),
        CheckConstraint("low_stock_threshold >= 0", name="ck_inventory_threshold_non_negative"),
        Index("ix_inventory_quantity", "quantity"),
    )

    @property
    def available(self) -> int:
        """可售库存 = 实物库存 - 预留"""
        return max(self.quantity - self.reserved, 0)

    @property
    def is_low_stock(self) -> bool:
        return 0 < self.quantity <= self.low_stock_threshold

    @property
    def is_out_of_stock(self) -> bool:
        return self.quantity == 0

    def to_dict(self):
        data = super().to_dict()
        data["available"] = self.available
        return data
