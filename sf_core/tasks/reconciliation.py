"""
支付失败对账任务
"""
from datetime import timedelta
from typing import Dict, Optional

from sf_core.config import get_settings
from sf_core.container import ServiceContainer
from sf_core.utils.logger import get_logger
from .base import task_with_context

logger = get_logger(__name__)


async def run_reconciliation(
    older_than_minutes: Optional[int] = None,
    container: Optional[ServiceContainer] = None
) -> Dict[str, object]:
    """取消支付失败的过期订单；未传入容器时临时构建一个并在结束后关闭"""
    settings = container.settings if container else get_settings()
    minutes = older_than_minutes if older_than_minutes is not None else settings.payment_reconcile_after_minutes

    owns_container = container is None
    # 每次 asyncio.run 都是新的事件循环，连接不能跨循环复用
    container = container or ServiceContainer(settings)
    try:
        cancelled = await container.orchestrator.reconcile_failed_payments(timedelta(minutes=minutes))
        await container.dispatcher.drain()
    finally:
        if owns_container:
            await container.shutdown()

    logger.info("Failed payment reconciliation finished",
                older_than_minutes=minutes,
                cancelled=len(cancelled))
    return {"cancelled": len(cancelled), "order_ids": cancelled}


@task_with_context(name="sf.core.reconcile_failed_payments")
async def reconcile_failed_payments(older_than_minutes: Optional[int] = None):
    """Celery beat 定时任务"""
    return await run_reconciliation(older_than_minutes)
