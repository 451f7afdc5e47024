"""
每请求上下文
凭证作为参数显式传入数据获取层，核心计算不读取任何凭证
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict

from market_service.config import settings
from market_service.errors import ConfigError


class RequestContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    tushare_token: Optional[str] = None

    def resolve_tushare_token(self) -> str:
        """请求头中的 Token 优先，其次回退到环境变量"""
        token = (self.tushare_token or "").strip() or settings.TUSHARE_TOKEN
        if not token:
            raise ConfigError(
                "缺少 Tushare Token：请在请求头 X-Tushare-Token 中提供或配置 TUSHARE_TOKEN",
                {"config_key": "TUSHARE_TOKEN"},
            )
        return token

    def __repr__(self) -> str:
        # 不在日志中输出 Token
        return f"RequestContext(tushare_token={'***' if self.tushare_token else None})"
