"""
库存变更日志模型（只追加）
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, DateTime, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, BigIntPK, utcnow

# 改变实物库存的原因
QUANTITY_REASONS = ("sale", "return", "adjustment", "restock", "damage")
# 只改变预留的原因
RESERVATION_REASONS = ("reservation", "release")
CHANGE_REASONS = QUANTITY_REASONS + RESERVATION_REASONS


class InventoryChangeRecord(Base):
    """
    库存变更记录

    quantity_change 的符号约定：
    - sale/return/adjustment/restock/damage：实际作用于 quantity 的增量
    - reservation/release：作用于可售库存的增量（预留为负，释放为正）
    """
    __tablename__ = "inventory_change_log"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)

    product_id: Mapped[str] = mapped_column(String(100), nullable=False, comment="商品ID")
    quantity_change: Mapped[int] = mapped_column(Integer, nullable=False, comment="带符号的变更数量")
    reason: Mapped[str] = mapped_column(String(20), nullable=False, comment="变更原因")
    reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, comment="关联单据（订单ID等）")
    performed_by: Mapped[str] = mapped_column(String(100), nullable=False, default="system", comment="操作人")

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment="发生时间"
    )

    __table_args__ = (
        CheckConstraint(
            "reason IN ('sale','return','adjustment','restock','damage','reservation','release')",
            name="ck_inventory_change_log_reason"
        ),
        Index("ix_inventory_change_log_product_time", "product_id", "timestamp"),
        Index("ix_inventory_change_log_reference", "reference"),
    )
