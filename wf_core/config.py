"""
WareFlow Configuration Management
遵循约束：环境变量前缀 WF__
"""
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache


class Settings(BaseSettings):
    """全局配置类"""
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="WF__",
        case_sensitive=False
    )

    # Database
    db_host: str = Field(default="localhost")
    db_port: int = Field(default=5432)
    db_name: str = Field(default="wareflow")
    db_user: str = Field(default="wareflow")
    db_password: str = Field(default="")
    db_pool_size: int = Field(default=20)
    db_max_overflow: int = Field(default=40)
    db_slow_query_ms: int = Field(default=100)
    # 完整连接串，设置后覆盖上面的 PostgreSQL 配置（测试使用 SQLite）
    db_url: Optional[str] = Field(default=None)

    # Redis
    redis_host: str = Field(default="localhost")
    redis_port: int = Field(default=6379)
    redis_db: int = Field(default=0)
    redis_password: Optional[str] = Field(default=None)
    events_enabled: bool = Field(default=True)
    events_stream_maxlen: int = Field(default=10000)

    # API Settings
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    api_prefix: str = Field(default="/api/wf/v1")
    api_title: str = Field(default="WareFlow API")
    api_version: str = Field(default="1.0.0")
    api_debug: bool = Field(default=False)

    # Security
    secret_key: str = Field(default="change-me-in-production")
    algorithm: str = Field(default="HS256")
    access_token_expire_minutes: int = Field(default=30)

    # Monitoring
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")  # json or text
    metrics_enabled: bool = Field(default=True)
    metrics_prefix: str = Field(default="wf")

    # 库存台账
    adjustment_expiry_days: int = Field(default=365)
    stock_conflict_retries: int = Field(default=3)
    price_guard_enabled: bool = Field(default=False)
    price_min_margin_pct: float = Field(default=1.0)

    # 发运
    shipment_strict_transitions: bool = Field(default=True)
    transfer_delivery_days: int = Field(default=3)

    # 分析窗口（天）
    analytics_window_days: int = Field(default=30)
    slow_moving_days: int = Field(default=60)
    expiry_alert_days: int = Field(default=30)
    expiry_critical_days: int = Field(default=7)
    expiry_warning_days: int = Field(default=14)

    @field_validator("api_prefix")
    @classmethod
    def validate_api_prefix(cls, v):
        """确保 API 前缀符合规范"""
        if not v.startswith("/api/wf/"):
            raise ValueError("API prefix must start with /api/wf/")
        return v

    @field_validator("metrics_prefix")
    @classmethod
    def validate_metrics_prefix(cls, v):
        """确保指标前缀符合规范"""
        if not v.startswith("wf"):
            raise ValueError("Metrics prefix must start with 'wf'")
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
