"""
统一错误类型
所有错误携带结构化 details（代码、市场、指标、日期范围等），
调用方无需重新推导上下文即可生成提示信息
"""

from typing import Any, Dict, Optional


class MarketDataError(Exception):
    """行情服务基础错误"""

    code = "UNKNOWN_ERROR"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class ValidationError(MarketDataError):
    """参数验证失败（指标格式、参数个数、市场类型等）"""

    code = "VALIDATION_ERROR"
    status_code = 400


class ApiError(MarketDataError):
    """上游接口返回失败（HTTP 错误或业务错误码）"""

    code = "API_ERROR"
    status_code = 502


class NetworkError(MarketDataError):
    """网络超时或连接中断，调用方可自行决定是否重试"""

    code = "NETWORK_ERROR"
    status_code = 503


class NotFoundError(MarketDataError):
    """上游未返回任何数据"""

    code = "NOT_FOUND"
    status_code = 404


class ConfigError(MarketDataError):
    """配置缺失或无效"""

    code = "CONFIG_ERROR"
    status_code = 500
