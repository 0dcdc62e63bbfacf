"""
StoreFlow Configuration Management
遵循约束：环境变量前缀 SF__
"""
from decimal import Decimal
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, validator
from functools import lru_cache


class Settings(BaseSettings):
    """全局配置类"""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SF__",
        case_sensitive=False
    )

    # Database
    db_host: str = Field(default="localhost")
    db_port: int = Field(default=5432)
    db_name: str = Field(default="storeflow")
    db_user: str = Field(default="storeflow")
    db_password: str = Field(default="")
    db_pool_size: int = Field(default=20)
    db_max_overflow: int = Field(default=40)
    db_url: Optional[str] = Field(default=None)  # 完整连接串，优先于上面的分项配置
    db_slow_query_log: bool = Field(default=False)

    # Redis
    redis_host: str = Field(default="localhost")
    redis_port: int = Field(default=6379)
    redis_db: int = Field(default=0)
    redis_password: Optional[str] = Field(default=None)
    event_stream_maxlen: int = Field(default=100000)  # 每个事件流保留的近似条数

    # API Settings
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    api_prefix: str = Field(default="/api/sf/v1")
    api_title: str = Field(default="StoreFlow API")
    api_version: str = Field(default="1.0.0")
    api_debug: bool = Field(default=False)

    # Security
    admin_token: str = Field(default="change-me-in-production")

    # Celery
    celery_broker_url: str = Field(default="redis://localhost:6379/0")
    celery_result_backend: str = Field(default="redis://localhost:6379/1")
    celery_task_default_queue: str = Field(default="sf_default")
    celery_timezone: str = Field(default="UTC")

    # Monitoring
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")  # json or text
    metrics_enabled: bool = Field(default=True)

    # 库存
    inventory_default_threshold: int = Field(default=10)
    reservation_max_retries: int = Field(default=5)

    # 订单
    default_shipping_cost: Decimal = Field(default=Decimal("10.00"))
    default_shipping_method: str = Field(default="standard")
    currency: str = Field(default="BRL")
    payment_reconcile_after_minutes: int = Field(default=30)

    # 外部协作服务
    catalog_base_url: Optional[str] = Field(default=None)
    payment_gateway_url: Optional[str] = Field(default=None)
    allow_fake_payments: bool = Field(default=False)  # 仅用于本地开发，未配置支付网关时自动批准扣款
    collaborator_timeout: float = Field(default=10.0)

    @validator("api_prefix")
    def validate_api_prefix(cls, v):
        """确保 API 前缀符合规范"""
        if not v.startswith("/api/sf/"):
            raise ValueError("API prefix must start with /api/sf/")
        return v

    @validator("reservation_max_retries")
    def validate_max_retries(cls, v):
        if v < 1:
            raise ValueError("reservation_max_retries must be at least 1")
        return v

    @validator("log_format")
    def validate_log_format(cls, v):
        if v not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return v

    @property
    def database_url(self) -> str:
        """构建数据库连接字符串"""
        if self.db_url:
            return self.db_url
        return f"postgresql+asyncpg://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def sync_database_url(self) -> str:
        """构建同步数据库连接字符串（用于 Alembic）"""
        if self.db_url:
            return self.db_url.replace("+asyncpg", "").replace("+aiosqlite", "")
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    @property
    def redis_url(self) -> str:
        """构建 Redis 连接字符串"""
        password = f":{self.redis_password}@" if self.redis_password else ""
        return f"redis://{password}{self.redis_host}:{self.redis_port}/{self.redis_db}"


@lru_cache()
def get_settings() -> Settings:
    """获取配置单例"""
    return Settings()
