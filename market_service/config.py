"""
行情服务配置模块
支持从环境变量 / .env 文件读取配置
"""

from functools import lru_cache
from typing import List

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MarketServiceSettings(BaseSettings):
    """行情服务配置"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── 基础配置 ──────────────────────────────────────────
    HOST: str = Field(default="0.0.0.0")
    PORT: int = Field(default=8002)
    DEBUG: bool = Field(default=False)
    ALLOWED_ORIGINS: List[str] = Field(
        default_factory=lambda: ["*"]
    )

    # ── Tushare 配置 ──────────────────────────────────────
    TUSHARE_API_URL: str = Field(default="https://api.tushare.pro")
    TUSHARE_TOKEN: str = Field(default="")
    TUSHARE_TIMEOUT: float = Field(default=30.0)     # 单次请求超时（秒）

    # ── Binance 配置 ──────────────────────────────────────
    BINANCE_API_URL: str = Field(default="https://api.binance.com")
    BINANCE_TIMEOUT: float = Field(default=10.0)

    # ── 分页配置 ──────────────────────────────────────────
    DEFAULT_PAGE_SIZE: int = Field(default=1000)
    MAX_PAGE_SIZE: int = Field(default=5000)

    # ── 查询默认值 ────────────────────────────────────────
    DEFAULT_HISTORY_DAYS: int = Field(default=30)    # 未指定开始日期时回看天数

    # ── 日志配置 ──────────────────────────────────────────
    LOG_LEVEL: str = Field(default="INFO")

    @model_validator(mode="after")
    def _check_limits(self) -> "MarketServiceSettings":
        if self.DEFAULT_PAGE_SIZE < 1:
            raise ValueError("DEFAULT_PAGE_SIZE 必须大于 0")
        if self.DEFAULT_PAGE_SIZE > self.MAX_PAGE_SIZE:
            raise ValueError("DEFAULT_PAGE_SIZE 不能大于 MAX_PAGE_SIZE")
        if self.TUSHARE_TIMEOUT < 1 or self.BINANCE_TIMEOUT < 1:
            raise ValueError("请求超时不能小于 1 秒")
        if not self.BINANCE_API_URL.startswith("http"):
            raise ValueError("BINANCE_API_URL 必须以 http:// 或 https:// 开头")
        return self


@lru_cache
def get_settings() -> MarketServiceSettings:
    """获取全局配置（单例）"""
    return MarketServiceSettings()


settings = get_settings()
