"""
系统 API 路由
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from sf_core.container import ServiceContainer
from sf_core.middleware.metrics import metrics_endpoint
from sf_core.utils.logger import get_logger
from .deps import get_container
from .models import ApiResponse

router = APIRouter()
logger = get_logger(__name__)


@router.get("/health", response_model=ApiResponse[dict])
async def health_check(container: ServiceContainer = Depends(get_container)):
    """健康检查"""
    db_healthy = await container.db_manager.check_connection()
    return ApiResponse.success({
        "status": "healthy" if db_healthy else "degraded",
        "database": db_healthy,
        "pending_side_effects": container.dispatcher.pending,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": container.settings.api_version
    })


router.add_api_route("/metrics", metrics_endpoint, methods=["GET"], include_in_schema=False)
