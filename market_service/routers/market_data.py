"""
行情数据路由
GET /api/market                    - 支持的市场与指标说明
GET /api/market/{market}/{symbol}  - 获取标准化日线与技术指标
"""

from typing import Optional

from fastapi import APIRouter, Header, Query

from market_service.context import RequestContext
from market_service.models.indicators import INDICATOR_USAGE
from market_service.models.response import ApiResponse
from market_service.models.series import MARKET_TITLES, requires_forward_adjustment
from market_service.services.market_data_service import get_market_data_service

router = APIRouter(prefix="/api/market", tags=["行情数据"])


@router.get("", response_model=ApiResponse)
async def list_markets():
    """列出支持的市场与指标格式"""
    return ApiResponse.ok(data={
        "markets": [
            {
                "market": market.value,
                "name": title,
                "forward_adjusted": requires_forward_adjustment(market),
            }
            for market, title in MARKET_TITLES.items()
        ],
        "indicators": {kind.value: usage for kind, usage in INDICATOR_USAGE.items()},
    })


@router.get("/{market}/{symbol}", response_model=ApiResponse)
async def get_market_data(
    market: str,
    symbol: str,
    start_date: Optional[str] = Query(
        default=None, description="开始日期 YYYYMMDD，默认一个月前"
    ),
    end_date: Optional[str] = Query(
        default=None, description="结束日期 YYYYMMDD，默认今天"
    ),
    indicators: Optional[str] = Query(
        default=None,
        description="空格分隔的指标，如 `macd(12,26,9) rsi(14) ma(20)`",
    ),
    x_tushare_token: Optional[str] = Header(default=None, alias="X-Tushare-Token"),
):
    """
    获取行情数据

    - A 股（cn）自动前复权，复权因子不可用时返回未复权数据并附带警告
    - 结果按日期倒序（最新在前），指标数组与行情按行对齐
    - 错误由全局异常处理器转换为统一响应
    """
    svc = get_market_data_service()
    result = await svc.get_market_data(
        symbol=symbol,
        market=market,
        start_date=start_date,
        end_date=end_date,
        indicators=indicators,
        context=RequestContext(tushare_token=x_tushare_token),
    )
    return ApiResponse.ok(data=result.to_dict())
