"""
Celery 应用配置
"""
from celery import Celery
from celery.schedules import crontab

from sf_core.config import get_settings
from sf_core.utils.logger import get_logger

logger = get_logger(__name__)

settings = get_settings()

celery_app = Celery(
    "storeflow",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "sf_core.tasks.reconciliation",
    ]
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],

    timezone=settings.celery_timezone,
    enable_utc=True,

    task_default_queue=settings.celery_task_default_queue,
    task_routes={
        "sf.core.*": {"queue": "sf_core"},
    },

    result_expires=3600,  # 1小时后过期

    # Worker 配置
    worker_prefetch_multiplier=1,  # 公平调度
    task_acks_late=True,  # 任务完成后确认
    worker_max_tasks_per_child=1000,

    # 任务超时配置（防止僵尸任务）
    task_soft_time_limit=300,
    task_time_limit=360,
)

# 定期任务配置（Beat Schedule）
celery_app.conf.beat_schedule = {
    # 取消支付失败且长时间未处理的订单，回补库存
    "reconcile-failed-payments": {
        "task": "sf.core.reconcile_failed_payments",
        "schedule": crontab(minute="*/15"),  # 每15分钟
        "options": {"queue": "sf_core"}
    },
}
