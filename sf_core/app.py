"""
StoreFlow FastAPI 主应用
"""
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from starlette.exceptions import HTTPException as StarletteHTTPException

from sf_core.config import Settings, get_settings
from sf_core.container import ServiceContainer
from sf_core.utils.logger import setup_logging, get_logger
from sf_core.utils.errors import StoreFlowException
from sf_core.middleware.logging import LoggingMiddleware
from sf_core.middleware.metrics import MetricsMiddleware
from sf_core.api import api_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    settings = app.state.settings
    logger.info("Starting StoreFlow application", version=settings.api_version)

    # 测试等场景可以预先注入容器
    owns_container = getattr(app.state, "container", None) is None
    if owns_container:
        container = ServiceContainer(settings)
        try:
            await container.startup()
        except Exception:
            logger.error("Failed to start application", exc_info=True)
            raise
        app.state.container = container

    logger.info("StoreFlow application started successfully")

    yield  # 应用运行期间

    logger.info("Shutting down StoreFlow application")
    if owns_container:
        try:
            await app.state.container.shutdown()
            logger.info("StoreFlow application shutdown complete")
        except Exception:
            logger.error("Error during application shutdown", exc_info=True)


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[ServiceContainer] = None
) -> FastAPI:
    """创建 FastAPI 应用"""
    settings = settings or get_settings()

    setup_logging(
        log_level=settings.log_level,
        log_format=settings.log_format
    )

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="StoreFlow inventory reservation and order lifecycle API",
        docs_url="/docs" if settings.api_debug else None,
        redoc_url="/redoc" if settings.api_debug else None,
        openapi_url="/openapi.json" if settings.api_debug else None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.container = container

    # 添加中间件（后添加的先执行）
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.api_debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if settings.metrics_enabled:
        app.add_middleware(MetricsMiddleware)

    app.add_middleware(LoggingMiddleware)

    app.include_router(api_router, prefix=settings.api_prefix)

    @app.exception_handler(StoreFlowException)
    async def storeflow_exception_handler(request: Request, exc: StoreFlowException):
        """处理 StoreFlow 业务异常"""
        if exc.status >= 500:
            logger.error("Request failed", code=exc.code, detail=exc.detail)
        return exc.to_response(request)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """处理 Pydantic 验证异常"""
        logger.warning("Request validation failed", path=request.url.path, errors=str(exc.errors()))
        return JSONResponse(
            status_code=422,
            content={
                "ok": False,
                "error": {
                    "type": "about:blank",
                    "title": "Validation Error",
                    "status": 422,
                    "detail": "Request validation failed",
                    "code": "VALIDATION_ERROR",
                    "validation_errors": jsonable_encoder(exc.errors())
                }
            }
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """处理 HTTP 异常（404 路由等）"""
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "ok": False,
                "error": {
                    "type": "about:blank",
                    "title": str(exc.detail),
                    "status": exc.status_code,
                    "detail": str(exc.detail),
                    "code": f"HTTP_{exc.status_code}"
                }
            }
        )

    @app.exception_handler(Exception)
    async def internal_server_error_handler(request: Request, exc: Exception):
        """处理未捕获的服务器错误"""
        logger.error("Unhandled server error", path=request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={
                "ok": False,
                "error": {
                    "type": "about:blank",
                    "title": "Internal Server Error",
                    "status": 500,
                    "detail": "An internal server error occurred",
                    "code": "INTERNAL_SERVER_ERROR"
                }
            }
        )

    return app


def main() -> None:
    """命令行入口"""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "sf_core.app:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_debug,
        log_level=settings.log_level.lower(),
        access_log=False,  # 使用自定义日志中间件
    )


if __name__ == "__main__":
    main()
