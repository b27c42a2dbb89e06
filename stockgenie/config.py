"""
StockGenie 数据服务配置模块
支持从环境变量 / .env 读取配置，自动检测 Docker 容器环境并启用服务发现
"""

import os
from functools import lru_cache
from typing import Dict, List

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _in_container() -> bool:
    if os.path.exists("/.dockerenv"):
        return True
    return os.environ.get("DOCKER_CONTAINER", "").lower() in ("1", "true", "yes")


def _service_host(service: str) -> str:
    """容器内按 compose 服务名寻址，本地开发回落到 localhost"""
    return service if _in_container() else "localhost"


def _default_mongo_host() -> str:
    return _service_host("mongodb")


def _default_redis_host() -> str:
    return _service_host("redis")


def _default_ollama_url() -> str:
    return f"http://{_service_host('ollama')}:11434"


# 未登记提供商的保守限额
DEFAULT_CALLS_PER_MINUTE = 5
DEFAULT_CALLS_PER_DAY = 25

# 视为未配置的占位凭证
PLACEHOLDER_API_KEYS = frozenset({"", "demo", "your_api_key_here", "changeme"})


class RateLimitConfig(BaseModel):
    calls_per_minute: int = DEFAULT_CALLS_PER_MINUTE
    calls_per_day: int = DEFAULT_CALLS_PER_DAY


class ProviderConfig(BaseModel):
    """单个行情数据提供商的完整配置"""

    name: str
    base_url: str = ""
    api_key: str = ""
    timeout: float = 30.0
    max_attempts: int = 3
    retry_delay: float = 1.0
    max_rate_limit_waits: int = 30
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)

    @property
    def has_credentials(self) -> bool:
        return self.api_key.strip().lower() not in PLACEHOLDER_API_KEYS


class SignalConfig(BaseModel):
    """交易信号生成所用的指标周期"""

    sma_short: int = 20
    sma_long: int = 50
    ema_fast: int = 12
    ema_slow: int = 26
    macd_signal: int = 9
    rsi_period: int = 14
    min_bars: int = 50


class StockGenieSettings(BaseSettings):
    """数据服务配置"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── 基础配置 ──────────────────────────────────────────
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8080)
    DEBUG: bool = Field(default=False)
    ALLOWED_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"]
    )

    # ── MongoDB 配置（支持服务发现） ───────────────────────
    MONGODB_HOST: str = Field(default_factory=_default_mongo_host)
    MONGODB_PORT: int = Field(default=27017)
    MONGODB_USERNAME: str = Field(default="")
    MONGODB_PASSWORD: str = Field(default="")
    MONGODB_DATABASE: str = Field(default="stockgenie")
    MONGODB_AUTH_SOURCE: str = Field(default="admin")
    MONGODB_ENABLED: bool = Field(default=True)
    MONGO_MAX_CONNECTIONS: int = Field(default=50)
    MONGO_MIN_CONNECTIONS: int = Field(default=5)
    MONGO_CONNECT_TIMEOUT_MS: int = Field(default=30000)
    MONGO_SOCKET_TIMEOUT_MS: int = Field(default=60000)
    MONGO_SERVER_SELECTION_TIMEOUT_MS: int = Field(default=5000)

    @property
    def MONGO_URI(self) -> str:
        if self.MONGODB_USERNAME and self.MONGODB_PASSWORD:
            return (
                f"mongodb://{self.MONGODB_USERNAME}:{self.MONGODB_PASSWORD}"
                f"@{self.MONGODB_HOST}:{self.MONGODB_PORT}"
                f"/{self.MONGODB_DATABASE}?authSource={self.MONGODB_AUTH_SOURCE}"
            )
        return f"mongodb://{self.MONGODB_HOST}:{self.MONGODB_PORT}/{self.MONGODB_DATABASE}"

    # ── Redis 配置（支持服务发现） ─────────────────────────
    REDIS_HOST: str = Field(default_factory=_default_redis_host)
    REDIS_PORT: int = Field(default=6379)
    REDIS_PASSWORD: str = Field(default="")
    REDIS_DB: int = Field(default=0)
    REDIS_ENABLED: bool = Field(default=True)
    REDIS_MAX_CONNECTIONS: int = Field(default=20)

    @property
    def REDIS_URL(self) -> str:
        if self.REDIS_PASSWORD:
            return f"redis://:{self.REDIS_PASSWORD}@{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # ── 行情数据提供商 ─────────────────────────────────────
    MARKET_DATA_PROVIDER: str = Field(default="alpha-vantage")
    ALPHA_VANTAGE_BASE_URL: str = Field(default="https://www.alphavantage.co/query")
    ALPHA_VANTAGE_API_KEY: str = Field(default="demo")
    ALPHA_VANTAGE_CALLS_PER_MINUTE: int = Field(default=5)
    ALPHA_VANTAGE_CALLS_PER_DAY: int = Field(default=25)
    EODHD_BASE_URL: str = Field(default="https://eodhd.com/api")
    EODHD_API_KEY: str = Field(default="")
    EODHD_CALLS_PER_MINUTE: int = Field(default=60)
    EODHD_CALLS_PER_DAY: int = Field(default=20)

    # ── 拉取策略 ──────────────────────────────────────────
    FETCH_TIMEOUT: float = Field(default=30.0)          # 单次请求超时（秒）
    FETCH_MAX_ATTEMPTS: int = Field(default=3)
    FETCH_RETRY_DELAY: float = Field(default=1.0)       # 重试基础间隔（秒）
    FETCH_MAX_RATE_LIMIT_WAITS: int = Field(default=30)
    FETCH_WORKER_POOL_SIZE: int = Field(default=10)

    # ── 技术指标 ──────────────────────────────────────────
    SMA_SHORT_PERIOD: int = Field(default=20)
    SMA_LONG_PERIOD: int = Field(default=50)
    EMA_FAST_PERIOD: int = Field(default=12)
    EMA_SLOW_PERIOD: int = Field(default=26)
    MACD_SIGNAL_PERIOD: int = Field(default=9)
    RSI_PERIOD: int = Field(default=14)
    SIGNAL_MIN_BARS: int = Field(default=50)

    # ── 本地大模型（Ollama） ───────────────────────────────
    LLM_BASE_URL: str = Field(default_factory=_default_ollama_url)
    LLM_MODEL: str = Field(default="mistral:7b")
    LLM_TIMEOUT: float = Field(default=120.0)
    LLM_MAX_TOKENS: int = Field(default=1024)
    LLM_TEMPERATURE: float = Field(default=0.7)
    LLM_TOP_P: float = Field(default=0.9)

    # ── 缓存配置 ──────────────────────────────────────────
    CACHE_TTL: int = Field(default=3600)                      # 通用缓存 TTL（秒）
    STOCK_DATA_CACHE_TTL: int = Field(default=3600)
    TECHNICAL_ANALYSIS_CACHE_TTL: int = Field(default=1800)
    LLM_ANALYSIS_CACHE_TTL: int = Field(default=7200)
    CACHE_DIR: str = Field(default="./cache")                 # 文件缓存目录

    # ── 日志配置 ──────────────────────────────────────────
    LOG_LEVEL: str = Field(default="INFO")
    TZ: str = Field(default="America/New_York")

    def rate_limits(self) -> Dict[str, RateLimitConfig]:
        """各提供商的分钟 / 日调用上限"""
        return {
            "alpha-vantage": RateLimitConfig(
                calls_per_minute=self.ALPHA_VANTAGE_CALLS_PER_MINUTE,
                calls_per_day=self.ALPHA_VANTAGE_CALLS_PER_DAY,
            ),
            "eodhd": RateLimitConfig(
                calls_per_minute=self.EODHD_CALLS_PER_MINUTE,
                calls_per_day=self.EODHD_CALLS_PER_DAY,
            ),
        }

    def provider_config(self, name: str = None) -> ProviderConfig:
        name = name or self.MARKET_DATA_PROVIDER
        if name == "alpha-vantage":
            base_url, api_key = self.ALPHA_VANTAGE_BASE_URL, self.ALPHA_VANTAGE_API_KEY
        elif name == "eodhd":
            base_url, api_key = self.EODHD_BASE_URL, self.EODHD_API_KEY
        else:
            base_url, api_key = "", ""
        return ProviderConfig(
            name=name,
            base_url=base_url,
            api_key=api_key,
            timeout=self.FETCH_TIMEOUT,
            max_attempts=self.FETCH_MAX_ATTEMPTS,
            retry_delay=self.FETCH_RETRY_DELAY,
            max_rate_limit_waits=self.FETCH_MAX_RATE_LIMIT_WAITS,
            rate_limit=self.rate_limits().get(name, RateLimitConfig()),
        )

    def signal_config(self) -> SignalConfig:
        return SignalConfig(
            sma_short=self.SMA_SHORT_PERIOD,
            sma_long=self.SMA_LONG_PERIOD,
            ema_fast=self.EMA_FAST_PERIOD,
            ema_slow=self.EMA_SLOW_PERIOD,
            macd_signal=self.MACD_SIGNAL_PERIOD,
            rsi_period=self.RSI_PERIOD,
            min_bars=self.SIGNAL_MIN_BARS,
        )


@lru_cache
def get_settings() -> StockGenieSettings:
    """获取全局配置（单例）"""
    return StockGenieSettings()


settings = get_settings()
