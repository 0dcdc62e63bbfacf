"""
API 依赖注入
身份由上游网关负责，这里只读取 X-User-Id，管理端接口校验 X-Admin-Token
"""
import hmac
from typing import Optional

from fastapi import Depends, Header, Request

from sf_core.container import ServiceContainer
from sf_core.services.cart import CartStore
from sf_core.services.change_log import ChangeLog
from sf_core.services.inventory import InventoryLedger
from sf_core.services.orders import OrderOrchestrator
from sf_core.utils.errors import ForbiddenError, UnauthorizedError
from sf_core.utils.logger import user_id_var


def get_container(request: Request) -> ServiceContainer:
    """依赖注入：获取服务容器"""
    return request.app.state.container


def get_ledger(container: ServiceContainer = Depends(get_container)) -> InventoryLedger:
    return container.ledger


def get_change_log(container: ServiceContainer = Depends(get_container)) -> ChangeLog:
    return container.change_log


def get_cart_store(container: ServiceContainer = Depends(get_container)) -> CartStore:
    return container.cart_store


def get_orchestrator(container: ServiceContainer = Depends(get_container)) -> OrderOrchestrator:
    return container.orchestrator


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """当前用户ID（由网关注入）"""
    if not x_user_id or not x_user_id.strip():
        raise UnauthorizedError(code="MISSING_USER", detail="X-User-Id header is required")
    user_id = x_user_id.strip()
    user_id_var.set(user_id)
    return user_id


async def require_admin(
    x_admin_token: Optional[str] = Header(None),
    container: ServiceContainer = Depends(get_container)
) -> str:
    """校验管理端令牌"""
    if not x_admin_token:
        raise UnauthorizedError(code="MISSING_ADMIN_TOKEN", detail="X-Admin-Token header is required")
    if not hmac.compare_digest(x_admin_token, container.settings.admin_token):
        raise ForbiddenError(code="INVALID_ADMIN_TOKEN", detail="Admin token is invalid")
    return "admin"
