"""
订单编排服务

结算流程：校验购物车 → 逐行预留 → 快照价格 → 创建订单并清空购物车 → 确认出库 → 派发支付和邮件。
出库失败时删除订单、恢复购物车并归还库存，异常不会带着已保存的订单抛出。
状态机：pending → paid → shipped → delivered，pending/paid 可取消。
所有状态变更都以当前状态为条件原子更新，取消时先抢占状态再回补库存，重复取消不会重复回补。
"""
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func, update as sql_update
from sqlalchemy.ext.asyncio import AsyncSession

from sf_core.config import Settings, get_settings
from sf_core.event_bus import EventBus, ORDER_STATUS_CHANGED
from sf_core.integrations.catalog import ProductCatalog
from sf_core.integrations.email import EmailNotifier
from sf_core.integrations.payment import PaymentGateway, PaymentResult
from sf_core.models import (
    Order, OrderItem, OrderStatus, PaymentStatus,
    PAYMENT_METHODS, can_transition, utcnow
)
from sf_core.utils.errors import (
    CartValidationError, EmptyCartError, InsufficientStockError,
    InternalServerError, InvalidTransitionError, NotFoundError,
    ValidationError
)
from sf_core.utils.metrics import CHECKOUTS
from .base import BaseService
from .cart import CartStore
from .dispatcher import SideEffectDispatcher
from .inventory import InventoryLedger

CANCELLABLE = (OrderStatus.PENDING, OrderStatus.PAID)
CENT = Decimal("0.01")


class OrderOrchestrator(BaseService):
    """订单编排"""

    def __init__(
        self,
        db_manager,
        ledger: InventoryLedger,
        cart_store: CartStore,
        catalog: ProductCatalog,
        payment_gateway: PaymentGateway,
        notifier: EmailNotifier,
        dispatcher: SideEffectDispatcher,
        event_bus: Optional[EventBus] = None,
        settings: Optional[Settings] = None
    ):
        super().__init__(db_manager)
        self.ledger = ledger
        self.cart_store = cart_store
        self.catalog = catalog
        self.payment_gateway = payment_gateway
        self.notifier = notifier
        self.dispatcher = dispatcher
        self.event_bus = event_bus
        self.settings = settings or get_settings()

    # ========== 结算 ==========

    async def create_order_from_cart(
        self,
        user_id: str,
        shipping_address: str,
        payment_method: str
    ) -> Order:
        """从购物车创建订单"""
        async with self.cart_store.lock_for(user_id):
            try:
                order = await self._checkout(user_id, shipping_address, payment_method)
            except EmptyCartError:
                CHECKOUTS.labels(outcome="empty_cart").inc()
                raise
            except CartValidationError:
                CHECKOUTS.labels(outcome="invalid_cart").inc()
                raise
            except InsufficientStockError:
                CHECKOUTS.labels(outcome="insufficient_stock").inc()
                raise
            except Exception:
                CHECKOUTS.labels(outcome="error").inc()
                raise

        CHECKOUTS.labels(outcome="created").inc()
        self.logger.info("Order created",
                         order_id=order.id,
                         user_id=user_id,
                         total=str(order.total),
                         items=len(order.items))

        # 不持有任何锁
        self.dispatcher.dispatch(
            "payment_capture",
            self._capture_payment(order.id, order.payment_method, order.total)
        )
        self.dispatcher.dispatch("order_confirmation", self.notifier.send_order_confirmation(order))
        return order

    async def _checkout(self, user_id: str, shipping_address: str, payment_method: str) -> Order:
        cart = await self.cart_store.get_cart(user_id)
        if cart is None or not cart.items:
            raise EmptyCartError(user_id)

        validation = await self.cart_store.validate(user_id)
        if not validation.is_valid:
            raise CartValidationError(validation.errors)

        self._validate_order_input(shipping_address, payment_method)

        lines = [(item.product_id, item.quantity) for item in cart.items]
        reserved: List[Tuple[str, int]] = []
        try:
            for product_id, quantity in lines:
                if not await self.ledger.reserve(product_id, quantity):
                    raise InsufficientStockError(product_id, quantity)
                reserved.append((product_id, quantity))

            order = await self._build_order(user_id, shipping_address, payment_method, lines)
            order = await self.execute_with_transaction(self._persist_order_tx, order)
        except Exception:
            await self._release_all(reserved)
            raise

        committed: List[Tuple[str, int]] = []
        try:
            for product_id, quantity in lines:
                await self.ledger.commit(product_id, quantity, reference=order.id, actor=user_id)
                committed.append((product_id, quantity))
        except Exception:
            self.logger.error("Commit failed, rolling back checkout",
                              order_id=order.id,
                              user_id=user_id,
                              committed=len(committed),
                              exc_info=True)
            await self._rollback_checkout(order, lines, committed)
            raise

        return order

    def _validate_order_input(self, shipping_address: str, payment_method: str) -> None:
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(
                code="INVALID_PAYMENT_METHOD",
                detail=f"Payment method must be one of {', '.join(PAYMENT_METHODS)}"
            )
        if not shipping_address or not shipping_address.strip():
            raise ValidationError(
                code="INVALID_SHIPPING_ADDRESS",
                detail="Shipping address is required"
            )

    async def _build_order(
        self,
        user_id: str,
        shipping_address: str,
        payment_method: str,
        lines: List[Tuple[str, int]]
    ) -> Order:
        """按目录当前价格和名称快照订单行"""
        items = []
        subtotal = Decimal("0")
        for product_id, quantity in lines:
            product = await self.catalog.get_product(product_id)
            if product is None:
                raise NotFoundError(code="PRODUCT_NOT_FOUND", resource=f"Product {product_id}")
            unit_price = Decimal(product.price).quantize(CENT)
            subtotal += unit_price * quantity
            items.append(OrderItem(
                product_id=product_id,
                product_name=product.name,
                quantity=quantity,
                unit_price_at_purchase=unit_price,
            ))

        shipping_cost = Decimal(self.settings.default_shipping_cost).quantize(CENT)
        discount = Decimal("0.00")
        now = utcnow()
        return Order(
            user_id=user_id,
            status=OrderStatus.PENDING,
            shipping_address=shipping_address.strip(),
            shipping_method=self.settings.default_shipping_method,
            shipping_cost=shipping_cost,
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING,
            subtotal=subtotal,
            discount=discount,
            total=subtotal + shipping_cost - discount,
            version=1,
            created_at=now,
            updated_at=now,
            items=items,
        )

    async def _persist_order_tx(self, session: AsyncSession, order: Order) -> Order:
        session.add(order)
        await self.cart_store.clear_in_session(session, order.user_id)
        await session.flush()
        return order

    async def _rollback_checkout(
        self,
        order: Order,
        lines: List[Tuple[str, int]],
        committed: List[Tuple[str, int]]
    ) -> None:
        """
        出库阶段失败时撤销整个结算

        删除订单并恢复购物车，已出库的行按 return 回补，其余行释放预留。
        """
        try:
            await self.execute_with_transaction(self._discard_order_tx, order.id, order.user_id, lines)
        except Exception:
            self.logger.error("Failed to discard order", order_id=order.id, exc_info=True)

        for product_id, quantity in committed:
            try:
                await self.ledger.adjust(product_id, quantity, "return", reference=order.id, actor=order.user_id)
            except Exception:
                self.logger.error("Failed to return committed stock",
                                  order_id=order.id,
                                  product_id=product_id,
                                  quantity=quantity,
                                  exc_info=True)

        await self._release_all(lines[len(committed):])

    async def _discard_order_tx(
        self,
        session: AsyncSession,
        order_id: str,
        user_id: str,
        lines: List[Tuple[str, int]]
    ) -> None:
        order = await session.get(Order, order_id)
        if order is not None:
            await session.delete(order)
        await self.cart_store.restore_in_session(session, user_id, lines)

    async def _release_all(self, reserved: List[Tuple[str, int]]) -> None:
        """释放本次结算已经取得的全部预留"""
        for product_id, quantity in reserved:
            try:
                await self.ledger.release(product_id, quantity)
            except Exception:
                self.logger.error("Failed to release reservation",
                                  product_id=product_id,
                                  quantity=quantity,
                                  exc_info=True)

    # ========== 支付 ==========

    async def _capture_payment(self, order_id: str, method: str, amount: Decimal) -> None:
        await self._update_if_status(
            order_id, OrderStatus.PENDING, {"payment_status": PaymentStatus.PROCESSING}
        )
        try:
            result = await self.payment_gateway.capture(order_id, method, amount)
        except Exception as e:
            self.logger.error("Payment capture failed", order_id=order_id, exc_info=True)
            result = PaymentResult(success=False, failure_reason=f"Payment capture error: {e}")
        await self.process_payment(order_id, result)

    async def process_payment(self, order_id: str, payment_result: PaymentResult) -> Order:
        """记录扣款结果：成功则进入 paid，失败时订单保持 pending"""
        order = await self.get_order(order_id)
        if order.status != OrderStatus.PENDING:
            raise InvalidTransitionError(order.status, OrderStatus.PAID)

        if payment_result.success:
            values = {
                "status": OrderStatus.PAID,
                "payment_status": PaymentStatus.COMPLETED,
                "payment_transaction_id": payment_result.transaction_id,
                "payment_failure_reason": None,
            }
        else:
            values = {
                "payment_status": PaymentStatus.FAILED,
                "payment_failure_reason": payment_result.failure_reason or "Payment failed",
            }

        if not await self._update_if_status(order_id, OrderStatus.PENDING, values):
            current = await self.get_order(order_id)
            raise InvalidTransitionError(current.status, OrderStatus.PAID)

        updated = await self.get_order(order_id)
        if payment_result.success:
            self.logger.info("Payment completed",
                             order_id=order_id,
                             transaction_id=payment_result.transaction_id)
            await self._publish_status_change(updated, OrderStatus.PENDING)
            self._notify_status(updated)
        else:
            self.logger.warning("Payment failed",
                                order_id=order_id,
                                reason=updated.payment_failure_reason)
        return updated

    # ========== 状态机 ==========

    async def update_order_status(self, order_id: str, new_status: str) -> Order:
        """管理端推进订单状态；取消会执行库存回补"""
        if new_status not in OrderStatus.ALL:
            raise ValidationError(code="INVALID_STATUS", detail=f"Unknown order status: {new_status}")

        order = await self.get_order(order_id)
        if new_status == OrderStatus.CANCELLED:
            return await self._cancel(order, actor="admin")

        if not can_transition(order.status, new_status):
            raise InvalidTransitionError(order.status, new_status)

        if not await self._update_if_status(order_id, order.status, {"status": new_status}):
            current = await self.get_order(order_id)
            raise InvalidTransitionError(current.status, new_status)

        updated = await self.get_order(order_id)
        self.logger.info("Order status updated",
                         order_id=order_id,
                         from_status=order.status,
                         to_status=new_status)
        await self._publish_status_change(updated, order.status)
        self._notify_status(updated)
        return updated

    async def cancel_order(self, user_id: str, order_id: str) -> Order:
        """用户取消自己的订单"""
        order = await self.get_user_order(user_id, order_id)
        return await self._cancel(order, actor=user_id)

    async def _cancel(self, order: Order, actor: str) -> Order:
        """
        抢占状态后回补库存

        状态抢占失败（被并发修改）时重新读取；已是终态则抛出 InvalidTransitionError。
        """
        for _ in range(self.settings.reservation_max_retries):
            if order.status not in CANCELLABLE:
                raise InvalidTransitionError(order.status, OrderStatus.CANCELLED)
            previous = order.status
            if await self._update_if_status(order.id, previous, {"status": OrderStatus.CANCELLED}):
                break
            order = await self.get_order(order.id)
        else:
            raise InvalidTransitionError(order.status, OrderStatus.CANCELLED)

        failed = []
        for item in order.items:
            try:
                await self.ledger.adjust(
                    item.product_id,
                    item.quantity,
                    "return",
                    reference=order.id,
                    actor=actor,
                )
            except Exception:
                self.logger.error("Failed to restore stock for cancelled order",
                                  order_id=order.id,
                                  product_id=item.product_id,
                                  quantity=item.quantity,
                                  exc_info=True)
                failed.append(item.product_id)

        if failed:
            raise InternalServerError(
                code="STOCK_RESTORE_FAILED",
                detail=f"Order {order.id} cancelled but stock restore failed for: {', '.join(failed)}"
            )

        cancelled = await self.get_order(order.id)
        self.logger.info("Order cancelled",
                         order_id=order.id,
                         from_status=previous,
                         actor=actor)
        await self._publish_status_change(cancelled, previous)
        self._notify_status(cancelled)
        return cancelled

    # ========== 对账 ==========

    async def reconcile_failed_payments(self, older_than: timedelta) -> List[str]:
        """取消支付失败且超过 older_than 未更新的 pending 订单，返回被取消的订单ID"""
        cutoff = utcnow() - older_than

        async def _query(session: AsyncSession):
            stmt = (
                select(Order)
                .where(
                    Order.status == OrderStatus.PENDING,
                    Order.payment_status == PaymentStatus.FAILED,
                    Order.updated_at <= cutoff,
                )
                .order_by(Order.updated_at)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

        cancelled = []
        for order in await self.execute_with_session(_query):
            try:
                await self._cancel(order, actor="reconciler")
                cancelled.append(order.id)
            except InvalidTransitionError:
                # 期间已被支付或取消
                self.logger.info("Order changed during reconciliation, skipped", order_id=order.id)

        if cancelled:
            self.logger.info("Reconciled failed payments", cancelled=len(cancelled))
        return cancelled

    # ========== 查询 ==========

    async def get_order(self, order_id: str) -> Order:
        async def _load(session: AsyncSession):
            return await session.get(Order, order_id)

        order = await self.execute_with_session(_load)
        if order is None:
            raise NotFoundError(code="ORDER_NOT_FOUND", resource=f"Order {order_id}")
        return order

    async def get_user_order(self, user_id: str, order_id: str) -> Order:
        """只返回属于该用户的订单，其他用户的订单按不存在处理"""
        order = await self.get_order(order_id)
        if order.user_id != user_id:
            raise NotFoundError(code="ORDER_NOT_FOUND", resource=f"Order {order_id}")
        return order

    async def get_user_orders(self, user_id: str, limit: Optional[int] = None) -> List[Order]:
        async def _query(session: AsyncSession):
            stmt = (
                select(Order)
                .where(Order.user_id == user_id)
                .order_by(Order.created_at.desc(), Order.id)
            )
            if limit:
                stmt = stmt.limit(limit)
            result = await session.execute(stmt)
            return list(result.scalars().all())

        return await self.execute_with_session(_query)

    async def get_orders_by_status(self, status: str) -> List[Order]:
        if status not in OrderStatus.ALL:
            raise ValidationError(code="INVALID_STATUS", detail=f"Unknown order status: {status}")

        async def _query(session: AsyncSession):
            stmt = select(Order).where(Order.status == status).order_by(Order.created_at)
            result = await session.execute(stmt)
            return list(result.scalars().all())

        return await self.execute_with_session(_query)

    async def get_order_stats(self) -> Dict[str, Any]:
        """订单统计：总数、已送达订单的收入、各状态数量"""
        async def _query(session: AsyncSession):
            counts_stmt = select(Order.status, func.count(Order.id)).group_by(Order.status)
            counts = {status: 0 for status in OrderStatus.ALL}
            for status, count in (await session.execute(counts_stmt)).all():
                counts[status] = int(count)

            revenue_stmt = select(func.coalesce(func.sum(Order.total), 0)).where(
                Order.status == OrderStatus.DELIVERED
            )
            revenue = (await session.execute(revenue_stmt)).scalar_one()
            return {
                "total_orders": sum(counts.values()),
                "total_revenue": Decimal(str(revenue)).quantize(CENT),
                "by_status": counts,
            }

        return await self.execute_with_session(_query)

    # ========== 内部实现 ==========

    async def _update_if_status(
        self,
        order_id: str,
        expected_status: str,
        values: Dict[str, Any]
    ) -> bool:
        """仅当订单仍处于 expected_status 时更新"""
        stmt = (
            sql_update(Order)
            .where(Order.id == order_id, Order.status == expected_status)
            .values(version=Order.version + 1, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )

        async def _execute(session: AsyncSession) -> bool:
            result = await session.execute(stmt)
            return result.rowcount == 1

        return await self.execute_with_transaction(_execute)

    async def _publish_status_change(self, order: Order, previous: str) -> None:
        if self.event_bus is None:
            return
        try:
            await self.event_bus.publish(
                ORDER_STATUS_CHANGED,
                {
                    "order_id": order.id,
                    "user_id": order.user_id,
                    "from_status": previous,
                    "to_status": order.status,
                },
                key=order.id
            )
        except Exception:
            # 事件发布失败不应该影响主流程
            self.logger.error("Failed to publish order status event",
                              order_id=order.id,
                              exc_info=True)

    def _notify_status(self, order: Order) -> None:
        if order.status == OrderStatus.SHIPPED:
            self.dispatcher.dispatch("shipping_confirmation", self.notifier.send_shipping_confirmation(order))
        else:
            self.dispatcher.dispatch("status_update", self.notifier.send_status_update(order))
