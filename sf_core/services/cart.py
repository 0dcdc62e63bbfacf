"""
购物车服务
购物车不占用库存；加入和修改时只读检查可售库存，结算时再由订单编排重新校验
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, AsyncContextManager, Dict, List, Optional, Tuple

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from sf_core.integrations.catalog import ProductCatalog
from sf_core.models import Cart, CartItem, utcnow
from sf_core.utils.errors import InvalidQuantityError, NotFoundError, OutOfStockError
from sf_core.utils.locks import KeyedLocks
from .base import BaseService
from .inventory import InventoryLedger


@dataclass
class CartValidation:
    """购物车校验结果"""
    is_valid: bool
    errors: List[str] = field(default_factory=list)


class CartStore(BaseService):
    """购物车存储，同一用户的修改串行执行"""

    def __init__(self, db_manager, ledger: InventoryLedger, catalog: ProductCatalog):
        super().__init__(db_manager)
        self.ledger = ledger
        self.catalog = catalog
        self._locks = KeyedLocks()

    def lock_for(self, user_id: str) -> AsyncContextManager[None]:
        """用户级购物车锁（不可重入）"""
        return self._locks.hold(user_id)

    async def get_cart(self, user_id: str) -> Optional[Cart]:
        """获取购物车，不存在时返回 None"""
        async def _load(session: AsyncSession):
            return await session.get(Cart, user_id)

        return await self.execute_with_session(_load)

    async def add_item(self, user_id: str, product_id: str, quantity: int) -> Cart:
        """加入商品，已有的行合并数量"""
        if quantity <= 0:
            raise InvalidQuantityError(f"Quantity must be positive, got {quantity}")

        async with self.lock_for(user_id):
            product = await self.catalog.get_product(product_id)
            if product is None:
                raise NotFoundError(code="PRODUCT_NOT_FOUND", resource=f"Product {product_id}")

            cart = await self.get_cart(user_id)
            existing = cart.find_item(product_id) if cart else None
            requested = quantity + (existing.quantity if existing else 0)
            await self._check_available(product_id, requested)

            cart = await self.execute_with_transaction(
                self._add_item_tx, user_id, product_id, quantity
            )

        self.logger.info("Cart item added",
                         user_id=user_id,
                         product_id=product_id,
                         quantity=requested)
        return cart

    async def update_item_quantity(self, user_id: str, product_id: str, quantity: int) -> Cart:
        """修改行数量；数量为 0 时删除该行"""
        if quantity < 0:
            raise InvalidQuantityError(f"Quantity cannot be negative, got {quantity}")

        async with self.lock_for(user_id):
            cart = await self._require_cart(user_id)
            if cart.find_item(product_id) is None:
                raise NotFoundError(code="CART_ITEM_NOT_FOUND", resource=f"Product {product_id} in cart")

            if quantity > 0:
                await self._check_available(product_id, quantity)

            cart = await self.execute_with_transaction(
                self._set_quantity_tx, user_id, product_id, quantity
            )

        self.logger.info("Cart item updated",
                         user_id=user_id,
                         product_id=product_id,
                         quantity=quantity)
        return cart

    async def remove_item(self, user_id: str, product_id: str) -> Cart:
        """删除一行"""
        async with self.lock_for(user_id):
            cart = await self._require_cart(user_id)
            if cart.find_item(product_id) is None:
                raise NotFoundError(code="CART_ITEM_NOT_FOUND", resource=f"Product {product_id} in cart")

            return await self.execute_with_transaction(
                self._set_quantity_tx, user_id, product_id, 0
            )

    async def clear(self, user_id: str) -> None:
        """清空购物车"""
        async with self.lock_for(user_id):
            await self.execute_with_transaction(self.clear_in_session, user_id)
        self.logger.info("Cart cleared", user_id=user_id)

    async def validate(self, user_id: str) -> CartValidation:
        """按当前目录和可售库存重新校验每一行；空购物车视为有效"""
        cart = await self.get_cart(user_id)
        if cart is None or not cart.items:
            return CartValidation(is_valid=True)

        inventory = await self.ledger.get_inventory_batch([item.product_id for item in cart.items])

        errors = []
        for item in cart.items:
            product = await self.catalog.get_product(item.product_id)
            if product is None:
                errors.append(f"Product {item.product_id} not found")
                continue

            record = inventory.get(item.product_id)
            available = record.available if record else 0
            if item.quantity > available:
                errors.append(
                    f"Insufficient stock for {product.name}: "
                    f"requested {item.quantity}, available {available}"
                )

        return CartValidation(is_valid=not errors, errors=errors)

    async def get_cart_summary(self, user_id: str) -> Dict[str, Any]:
        """购物车汇总，金额按当前目录价格计算"""
        cart = await self.get_cart(user_id)
        items = cart.items if cart else []

        total_value = Decimal("0")
        for item in items:
            product = await self.catalog.get_product(item.product_id)
            if product is not None:
                total_value += product.price * item.quantity

        validation = await self.validate(user_id)
        return {
            "user_id": user_id,
            "line_count": len(items),
            "item_count": sum(item.quantity for item in items),
            "total_value": total_value.quantize(Decimal("0.01")),
            "is_valid": validation.is_valid,
            "errors": validation.errors,
        }

    async def clear_in_session(self, session: AsyncSession, user_id: str) -> None:
        """在调用方的事务中清空购物车"""
        await session.execute(delete(CartItem).where(CartItem.user_id == user_id))
        await session.execute(delete(Cart).where(Cart.user_id == user_id))

    async def restore_in_session(self, session: AsyncSession, user_id: str, lines: List[Tuple[str, int]]) -> None:
        """在调用方的事务中按原顺序放回购物车行，用于撤销结算"""
        for product_id, quantity in lines:
            await self._add_item_tx(session, user_id, product_id, quantity)

    # ========== 内部实现 ==========

    async def _require_cart(self, user_id: str) -> Cart:
        cart = await self.get_cart(user_id)
        if cart is None:
            raise NotFoundError(code="CART_NOT_FOUND", resource=f"Cart of user {user_id}")
        return cart

    async def _check_available(self, product_id: str, requested: int) -> None:
        available = await self.ledger.get_available(product_id)
        if requested > available:
            raise OutOfStockError(product_id, requested, available)

    async def _add_item_tx(
        self,
        session: AsyncSession,
        user_id: str,
        product_id: str,
        quantity: int
    ) -> Cart:
        cart = await session.get(Cart, user_id)
        if cart is None:
            cart = Cart(user_id=user_id, items=[])
            session.add(cart)

        item = cart.find_item(product_id)
        if item is not None:
            item.quantity += quantity
        else:
            position = max((line.position for line in cart.items), default=-1) + 1
            cart.items.append(CartItem(product_id=product_id, quantity=quantity, position=position))

        cart.updated_at = utcnow()
        await session.flush()
        return cart

    async def _set_quantity_tx(
        self,
        session: AsyncSession,
        user_id: str,
        product_id: str,
        quantity: int
    ) -> Cart:
        cart = await session.get(Cart, user_id)
        item = cart.find_item(product_id) if cart else None
        if item is None:
            raise NotFoundError(code="CART_ITEM_NOT_FOUND", resource=f"Product {product_id} in cart")

        if quantity == 0:
            cart.items.remove(item)
        else:
            item.quantity = quantity

        cart.updated_at = utcnow()
        await session.flush()
        return cart
