"""
库存台账服务
预留、释放、出库和补货都是带条件的相对更新；减少库存时按读到的版本号比较并交换，冲突时重新读取并重试
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, update as sql_update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from sf_core.config import Settings, get_settings
from sf_core.event_bus import EventBus, INVENTORY_UPDATED, INVENTORY_LOW_STOCK
from sf_core.models import InventoryRecord, QUANTITY_REASONS, utcnow
from sf_core.utils.errors import (
    ConflictError, InvalidQuantityError, NotFoundError,
    ReservationConflictError, ValidationError
)
from sf_core.utils.metrics import RESERVATIONS
from .base import BaseService
from .change_log import ChangeLog, ChangeEntry


@dataclass
class InventoryAlert:
    """库存告警"""
    product_id: str
    alert_type: str  # low_stock / out_of_stock
    quantity: int
    available: int
    threshold: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "alert_type": self.alert_type,
            "quantity": self.quantity,
            "available": self.available,
            "threshold": self.threshold,
        }


class InventoryLedger(BaseService):
    """库存台账"""

    def __init__(
        self,
        db_manager,
        change_log: ChangeLog,
        event_bus: Optional[EventBus] = None,
        settings: Optional[Settings] = None
    ):
        super().__init__(db_manager)
        self.change_log = change_log
        self.event_bus = event_bus
        self.settings = settings or get_settings()
        self.max_retries = self.settings.reservation_max_retries

    # ========== 读取 ==========

    async def get_inventory(self, product_id: str) -> Optional[InventoryRecord]:
        """获取单个商品的库存记录"""
        return await self.execute_with_session(self._load, product_id)

    async def get_inventory_batch(self, product_ids: List[str]) -> Dict[str, InventoryRecord]:
        """批量获取库存记录，缺失的商品不出现在结果中"""
        if not product_ids:
            return {}

        async def _query(session: AsyncSession):
            stmt = select(InventoryRecord).where(InventoryRecord.product_id.in_(product_ids))
            result = await session.execute(stmt)
            return {record.product_id: record for record in result.scalars().all()}

        return await self.execute_with_session(_query)

    async def get_available(self, product_id: str) -> int:
        """可售库存，未知商品为 0"""
        record = await self.get_inventory(product_id)
        return record.available if record else 0

    async def get_low_stock_alerts(self) -> List[InventoryAlert]:
        """低库存和缺货告警"""
        async def _query(session: AsyncSession):
            stmt = (
                select(InventoryRecord)
                .where(InventoryRecord.quantity <= InventoryRecord.low_stock_threshold)
                .order_by(InventoryRecord.quantity, InventoryRecord.product_id)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

        alerts = []
        for record in await self.execute_with_session(_query):
            if record.is_out_of_stock:
                alert_type = "out_of_stock"
            elif record.is_low_stock:
                alert_type = "low_stock"
            else:
                continue
            alerts.append(InventoryAlert(
                product_id=record.product_id,
                alert_type=alert_type,
                quantity=record.quantity,
                available=record.available,
                threshold=record.low_stock_threshold,
            ))
        return alerts

    async def get_inventory_summary(self) -> Dict[str, int]:
        """库存汇总"""
        async def _query(session: AsyncSession):
            stmt = select(
                func.count(InventoryRecord.product_id),
                func.coalesce(func.sum(InventoryRecord.quantity), 0),
                func.coalesce(func.sum(InventoryRecord.reserved), 0),
            )
            total_products, total_quantity, total_reserved = (await session.execute(stmt)).one()

            low_stmt = select(func.count()).select_from(InventoryRecord).where(
                InventoryRecord.quantity > 0,
                InventoryRecord.quantity <= InventoryRecord.low_stock_threshold,
            )
            out_stmt = select(func.count()).select_from(InventoryRecord).where(
                InventoryRecord.quantity == 0
            )
            return {
                "total_products": int(total_products),
                "total_quantity": int(total_quantity),
                "total_reserved": int(total_reserved),
                "low_stock_count": int((await session.execute(low_stmt)).scalar_one()),
                "out_of_stock_count": int((await session.execute(out_stmt)).scalar_one()),
            }

        return await self.execute_with_session(_query)

    # ========== 变更 ==========

    async def adjust(
        self,
        product_id: str,
        delta: int,
        reason: str,
        reference: Optional[str] = None,
        actor: str = "system"
    ) -> InventoryRecord:
        """
        调整实物库存

        quantity 不会低于 reserved（因此也不会低于 0），变更日志记录实际生效的增量。
        商品首次调整时创建库存记录。
        """
        if reason not in QUANTITY_REASONS:
            raise ValidationError(
                code="INVALID_REASON",
                detail=f"Invalid adjustment reason: {reason}"
            )

        for attempt in range(1, self.max_retries + 1):
            before = await self.get_inventory(product_id)

            if before is None:
                applied = max(delta, 0)
                if not await self._create(product_id, applied):
                    self.logger.debug("Inventory record created concurrently, retrying",
                                      product_id=product_id, attempt=attempt)
                    continue
            elif delta >= 0:
                # 增加库存不依赖读到的值，直接相对更新
                applied = delta
                if applied != 0:
                    await self._guarded_update(product_id, {"quantity": InventoryRecord.quantity + delta})
            else:
                new_quantity = max(before.quantity + delta, before.reserved)
                applied = new_quantity - before.quantity
                if applied != 0 and not await self._guarded_update(
                    product_id, {"quantity": new_quantity}, version=before.version
                ):
                    self.logger.debug("Adjust conflict, retrying",
                                      product_id=product_id, attempt=attempt)
                    continue

            after = await self.get_inventory(product_id)
            if applied != delta:
                self.logger.warning("Adjustment floored",
                                    product_id=product_id,
                                    requested=delta,
                                    applied=applied)

            await self.change_log.record(ChangeEntry(
                product_id=product_id,
                quantity_change=applied,
                reason=reason,
                reference=reference,
                performed_by=actor,
            ))
            await self._publish_events(
                None if before is None else self._previous_state(after, applied), after, reason
            )

            self.logger.info("Inventory adjusted",
                             product_id=product_id,
                             delta=applied,
                             reason=reason,
                             quantity=after.quantity)
            return after

        raise ReservationConflictError(product_id, self.max_retries)

    async def bulk_adjust(
        self,
        updates: List[Dict[str, Any]],
        actor: str = "system"
    ) -> List[InventoryRecord]:
        """
        批量调整库存

        先校验全部条目再逐个调整；每个商品单独原子，不跨商品成事务。
        """
        for i, item in enumerate(updates):
            if not item.get("product_id"):
                raise ValidationError(
                    code="MISSING_PRODUCT_ID",
                    detail=f"product_id is required for item {i}"
                )
            if not isinstance(item.get("delta"), int):
                raise ValidationError(
                    code="INVALID_DELTA",
                    detail=f"Integer delta is required for item {i}"
                )
            if item.get("reason", "adjustment") not in QUANTITY_REASONS:
                raise ValidationError(
                    code="INVALID_REASON",
                    detail=f"Invalid adjustment reason for item {i}: {item.get('reason')}"
                )

        results = []
        for item in updates:
            results.append(await self.adjust(
                item["product_id"],
                item["delta"],
                item.get("reason", "adjustment"),
                reference=item.get("reference"),
                actor=actor,
            ))
        return results

    async def reserve(self, product_id: str, quantity: int) -> bool:
        """
        预留库存

        可售库存不足或商品不存在时返回 False，这是正常业务结果而不是错误。
        """
        if quantity <= 0:
            raise InvalidQuantityError(f"Reservation quantity must be positive, got {quantity}")

        for attempt in range(1, self.max_retries + 1):
            if await self._guarded_update(
                product_id,
                {"reserved": InventoryRecord.reserved + quantity},
                InventoryRecord.quantity - InventoryRecord.reserved >= quantity,
            ):
                RESERVATIONS.labels(result="reserved").inc()
                await self.change_log.record(ChangeEntry(
                    product_id=product_id,
                    quantity_change=-quantity,
                    reason="reservation",
                ))
                after = await self.get_inventory(product_id)
                await self._publish_events(after, after, "reservation")
                return True

            current = await self.get_inventory(product_id)
            if current is None or current.available < quantity:
                RESERVATIONS.labels(result="insufficient").inc()
                self.logger.info("Reservation rejected",
                                 product_id=product_id,
                                 requested=quantity,
                                 available=current.available if current else 0)
                return False

            # 更新失败后又有库存被释放
            self.logger.debug("Reservation raced with a release, retrying",
                              product_id=product_id, attempt=attempt)

        RESERVATIONS.labels(result="conflict").inc()
        raise ReservationConflictError(product_id, self.max_retries)

    async def release(self, product_id: str, quantity: int) -> None:
        """释放预留，最多释放到 0；未知商品不做任何事"""
        if quantity <= 0:
            raise InvalidQuantityError(f"Release quantity must be positive, got {quantity}")

        for attempt in range(1, self.max_retries + 1):
            before = await self.get_inventory(product_id)
            if before is None:
                return

            released = min(quantity, before.reserved)
            if released == 0:
                self.logger.warning("Release with nothing reserved",
                                    product_id=product_id, requested=quantity)
                return

            if await self._guarded_update(
                product_id,
                {"reserved": InventoryRecord.reserved - released},
                InventoryRecord.reserved >= released,
            ):
                await self.change_log.record(ChangeEntry(
                    product_id=product_id,
                    quantity_change=released,
                    reason="release",
                ))
                after = await self.get_inventory(product_id)
                await self._publish_events(after, after, "release")
                return

            self.logger.debug("Reserved count shrank during release, retrying",
                              product_id=product_id, attempt=attempt)

        raise ReservationConflictError(product_id, self.max_retries)

    async def commit(
        self,
        product_id: str,
        quantity: int,
        reference: Optional[str] = None,
        actor: str = "system"
    ) -> InventoryRecord:
        """把预留转为实际出库：quantity 与 reserved 在同一次更新中同时减少，记为 sale"""
        if quantity <= 0:
            raise InvalidQuantityError(f"Commit quantity must be positive, got {quantity}")

        if not await self._guarded_update(
            product_id,
            {
                "quantity": InventoryRecord.quantity - quantity,
                "reserved": InventoryRecord.reserved - quantity,
            },
            InventoryRecord.reserved >= quantity,
        ):
            current = await self.get_inventory(product_id)
            if current is None:
                raise NotFoundError(code="INVENTORY_NOT_FOUND", resource=f"Inventory for {product_id}")
            raise ConflictError(
                code="RESERVATION_MISSING",
                detail=f"Cannot commit {quantity} unit(s) of {product_id}: only {current.reserved} reserved",
                product_id=product_id
            )

        after = await self.get_inventory(product_id)
        await self.change_log.record(ChangeEntry(
            product_id=product_id,
            quantity_change=-quantity,
            reason="sale",
            reference=reference,
            performed_by=actor,
        ))
        await self._publish_events(self._previous_state(after, -quantity), after, "sale")
        return after

    async def set_low_stock_threshold(self, product_id: str, threshold: int) -> InventoryRecord:
        """设置低库存阈值，负数按 0 处理"""
        threshold = max(threshold, 0)

        async def _update(session: AsyncSession) -> int:
            stmt = (
                sql_update(InventoryRecord)
                .where(InventoryRecord.product_id == product_id)
                .values(low_stock_threshold=threshold, last_updated=utcnow())
                .execution_options(synchronize_session=False)
            )
            result = await session.execute(stmt)
            return result.rowcount

        if await self.execute_with_transaction(_update) == 0:
            raise NotFoundError(code="INVENTORY_NOT_FOUND", resource=f"Inventory for {product_id}")

        self.logger.info("Low stock threshold updated", product_id=product_id, threshold=threshold)
        return await self.get_inventory(product_id)

    # ========== 内部实现 ==========

    async def _load(self, session: AsyncSession, product_id: str) -> Optional[InventoryRecord]:
        return await session.get(InventoryRecord, product_id)

    async def _create(self, product_id: str, quantity: int) -> bool:
        """创建库存记录；并发创建导致主键冲突时返回 False"""
        try:
            async with self.db_manager.get_transaction() as session:
                session.add(InventoryRecord(
                    product_id=product_id,
                    quantity=quantity,
                    reserved=0,
                    low_stock_threshold=self.settings.inventory_default_threshold,
                    version=1,
                    last_updated=utcnow(),
                ))
            return True
        except IntegrityError:
            return False

    async def _guarded_update(
        self,
        product_id: str,
        values: Dict[str, Any],
        *conditions,
        version: Optional[int] = None
    ) -> bool:
        """
        条件更新，返回是否生效

        相对更新靠附加条件保证原子性；新值来自读取结果时传入 version 做比较并交换。
        """
        criteria = [InventoryRecord.product_id == product_id, *conditions]
        if version is not None:
            criteria.append(InventoryRecord.version == version)

        stmt = (
            sql_update(InventoryRecord)
            .where(*criteria)
            .values(version=InventoryRecord.version + 1, last_updated=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )

        async def _execute(session: AsyncSession) -> bool:
            result = await session.execute(stmt)
            return result.rowcount == 1

        return await self.execute_with_transaction(_execute)

    @staticmethod
    def _previous_state(after: InventoryRecord, quantity_change: int) -> InventoryRecord:
        """由更新后的记录推出更新前的实物库存，用于判断是否跨过告警阈值"""
        return InventoryRecord(
            product_id=after.product_id,
            quantity=after.quantity - quantity_change,
            reserved=after.reserved,
            low_stock_threshold=after.low_stock_threshold,
        )

    async def _publish_events(
        self,
        before: Optional[InventoryRecord],
        after: Optional[InventoryRecord],
        reason: str
    ) -> None:
        """发布库存事件，失败只记日志"""
        if self.event_bus is None or after is None:
            return

        try:
            await self.event_bus.publish(
                INVENTORY_UPDATED,
                {
                    "product_id": after.product_id,
                    "quantity": after.quantity,
                    "reserved": after.reserved,
                    "available": after.available,
                    "reason": reason,
                },
                key=after.product_id
            )

            was_alerting = before is not None and (before.is_low_stock or before.is_out_of_stock)
            became_out = after.is_out_of_stock and not (before is not None and before.is_out_of_stock)
            if became_out or (after.is_low_stock and not was_alerting):
                await self.event_bus.publish(
                    INVENTORY_LOW_STOCK,
                    {
                        "product_id": after.product_id,
                        "alert_type": "out_of_stock" if after.is_out_of_stock else "low_stock",
                        "quantity": after.quantity,
                        "threshold": after.low_stock_threshold,
                    },
                    key=after.product_id
                )
                self.logger.warning("Inventory below threshold",
                                    product_id=after.product_id,
                                    quantity=after.quantity,
                                    threshold=after.low_stock_threshold)
        except Exception:
            # 事件发布失败不应该影响主流程
            self.logger.error("Failed to publish inventory event",
                              product_id=after.product_id,
                              exc_info=True)
