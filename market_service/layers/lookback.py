"""
指标预热回看策略
根据请求的指标计算需要额外获取的历史天数（自然日），并扩展查询开始日期
"""

from datetime import date, timedelta
from typing import Iterable

from market_service.errors import ValidationError
from market_service.models.indicators import IndicatorKind, IndicatorRequest

# 每根 K 线折算的自然日数，覆盖周末与长假
CALENDAR_DAYS_PER_BAR = 2
HOLIDAY_BUFFER_DAYS = 10


def required_bars(request: IndicatorRequest) -> int:
    """单个指标所需的预热 K 线数"""
    p = request.params
    if request.kind is IndicatorKind.MACD:
        return p[1] + p[2]
    if request.kind is IndicatorKind.RSI:
        return p[0] + 1
    if request.kind is IndicatorKind.KDJ:
        return p[0] + p[1] + p[2]
    # BOLL / MA
    return p[0]


def required_days(requests: Iterable[IndicatorRequest]) -> int:
    bars = max((required_bars(r) for r in requests), default=0)
    if bars == 0:
        return 0
    return bars * CALENDAR_DAYS_PER_BAR + HOLIDAY_BUFFER_DAYS


def extended_start_date(user_start: date, requests: Iterable[IndicatorRequest]) -> date:
    """无指标时返回原始开始日期；扩展后超出可表示日期范围时抛 ValidationError"""
    requests = list(requests)
    days = required_days(requests)
    try:
        return user_start - timedelta(days=days)
    except OverflowError:
        raise ValidationError(
            f"开始日期 {user_start.isoformat()} 向前扩展 {days} 天超出可用日期范围",
            {
                "start_date": user_start.isoformat(),
                "required_days": days,
                "indicators": [r.token for r in requests],
            },
        ) from None
