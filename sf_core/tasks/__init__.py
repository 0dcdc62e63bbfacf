"""
StoreFlow 后台任务
"""
from .celery_app import celery_app

__all__ = ["celery_app"]
