"""
库存变更日志服务
只追加；写入失败只记日志，不影响被记录的库存变更
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sf_core.models import InventoryChangeRecord, CHANGE_REASONS, utcnow
from .base import BaseService


@dataclass
class ChangeEntry:
    """待写入的变更条目"""
    product_id: str
    quantity_change: int
    reason: str
    reference: Optional[str] = None
    performed_by: str = "system"
    timestamp: datetime = field(default_factory=utcnow)


class ChangeLog(BaseService):
    """库存变更日志"""

    async def record(self, entry: ChangeEntry) -> Optional[InventoryChangeRecord]:
        """追加一条变更记录，失败时返回 None"""
        if entry.reason not in CHANGE_REASONS:
            self.logger.error("Unknown change reason, entry dropped",
                              product_id=entry.product_id, reason=entry.reason)
            return None

        try:
            async with self.db_manager.get_transaction() as session:
                record = InventoryChangeRecord(
                    product_id=entry.product_id,
                    quantity_change=entry.quantity_change,
                    reason=entry.reason,
                    reference=entry.reference,
                    performed_by=entry.performed_by or "system",
                    timestamp=entry.timestamp,
                )
                session.add(record)
            return record
        except Exception:
            # 日志写入失败不应该影响库存变更
            self.logger.error("Failed to record inventory change",
                              product_id=entry.product_id,
                              reason=entry.reason,
                              exc_info=True)
            return None

    async def query(
        self,
        product_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None
    ) -> List[InventoryChangeRecord]:
        """按时间升序查询变更记录"""
        return await self.execute_with_session(
            self._query, product_id, start, end, limit
        )

    async def _query(
        self,
        session: AsyncSession,
        product_id: Optional[str],
        start: Optional[datetime],
        end: Optional[datetime],
        limit: Optional[int]
    ) -> List[InventoryChangeRecord]:
        stmt = select(InventoryChangeRecord)
        if product_id:
            stmt = stmt.where(InventoryChangeRecord.product_id == product_id)
        if start:
            stmt = stmt.where(InventoryChangeRecord.timestamp >= start)
        if end:
            stmt = stmt.where(InventoryChangeRecord.timestamp <= end)
        stmt = stmt.order_by(InventoryChangeRecord.timestamp, InventoryChangeRecord.id)
        if limit:
            stmt = stmt.limit(limit)

        result = await session.execute(stmt)
        return list(result.scalars().all())
