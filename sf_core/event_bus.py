"""
StoreFlow 事件总线
库存和订单事件写入 Redis Streams，由下游消费者（邮件 worker、搜索索引等）各自订阅
"""
import json
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import redis.asyncio as redis

from sf_core.config import Settings, get_settings
from sf_core.utils.logger import get_logger

logger = get_logger(__name__)

TOPIC_PREFIX = "sf."

INVENTORY_UPDATED = "sf.inventory.updated"
INVENTORY_LOW_STOCK = "sf.inventory.low_stock"
ORDER_STATUS_CHANGED = "sf.orders.status_changed"
EMAIL_NOTIFICATION = "sf.notifications.email"


def stream_name(topic: str) -> str:
    if not topic.startswith(TOPIC_PREFIX):
        raise ValueError(f"Invalid topic format: {topic}")
    return f"sf:events:{topic}"


def build_envelope(topic: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """事件信封：event_id, ts, topic, payload"""
    return {
        "event_id": str(uuid.uuid4()),
        "ts": datetime.now(timezone.utc).isoformat(),
        "topic": topic,
        "payload": payload,
    }


class EventBus:
    """Redis Streams 事件发布器"""

    def __init__(self, settings: Optional[Settings] = None, client: Optional[redis.Redis] = None):
        self.settings = settings or get_settings()
        self.redis_client = client

    def _client(self) -> redis.Redis:
        if self.redis_client is None:
            self.redis_client = redis.from_url(
                self.settings.redis_url,
                encoding="utf-8",
                decode_responses=True
            )
        return self.redis_client

    async def initialize(self) -> None:
        await self._client().ping()
        logger.info("Event bus initialized", redis_db=self.settings.redis_db)

    async def shutdown(self) -> None:
        if self.redis_client is not None:
            await self.redis_client.aclose()
            self.redis_client = None
        logger.info("Event bus shutdown complete")

    async def publish(
        self,
        topic: str,
        payload: Dict[str, Any],
        key: Optional[str] = None
    ) -> str:
        """
        发布事件，返回 event_id

        key 随消息写入，消费者按它分区（库存事件用商品ID，订单事件用订单ID）。
        流长度按 event_stream_maxlen 近似裁剪。
        """
        stream = stream_name(topic)
        envelope = build_envelope(topic, payload)
        fields = {"data": json.dumps(envelope, default=str)}
        if key:
            fields["key"] = key

        message_id = await self._client().xadd(
            stream,
            fields,
            maxlen=self.settings.event_stream_maxlen,
            approximate=True,
        )
        logger.debug("Event published",
                     topic=topic,
                     event_id=envelope["event_id"],
                     message_id=message_id)
        return envelope["event_id"]
