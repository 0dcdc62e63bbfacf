"""
邮件通知端口
生产实现把邮件任务投递到事件总线，由邮件 worker 实际发送
"""
from abc import ABC, abstractmethod
from typing import Any, Dict

from sf_core.event_bus import EventBus, EMAIL_NOTIFICATION
from sf_core.models import Order


class EmailNotifier(ABC):
    """邮件通知抽象接口"""

    @abstractmethod
    async def send_order_confirmation(self, order: Order) -> None:
        ...

    @abstractmethod
    async def send_status_update(self, order: Order) -> None:
        ...

    @abstractmethod
    async def send_shipping_confirmation(self, order: Order) -> None:
        ...


def _order_summary(order: Order) -> Dict[str, Any]:
    return {
        "order_id": order.id,
        "user_id": order.user_id,
        "status": order.status,
        "total": str(order.total),
        "items": [
            {"product_name": item.product_name, "quantity": item.quantity}
            for item in order.items
        ],
    }


class EventBusEmailNotifier(EmailNotifier):
    """把邮件请求发布到 sf.notifications.email"""

    def __init__(self, event_bus: EventBus):
        self.event_bus = event_bus

    async def _send(self, template: str, order: Order) -> None:
        await self.event_bus.publish(
            EMAIL_NOTIFICATION,
            {"template": template, "order": _order_summary(order)},
            key=order.user_id
        )

    async def send_order_confirmation(self, order: Order) -> None:
        await self._send("order_confirmation", order)

    async def send_status_update(self, order: Order) -> None:
        await self._send("order_status_update", order)

    async def send_shipping_confirmation(self, order: Order) -> None:
        await self._send("shipping_confirmation", order)
