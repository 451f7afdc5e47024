"""
前复权（qfq）
以序列中最新交易日的复权因子为基准：price * f_d / f_latest，
最新交易日价格保持不变，历史价格按比例折算
"""

import logging
from datetime import date
from typing import Dict, NamedTuple, Optional

import pandas as pd

from market_service.layers.processing import to_dates
from market_service.models.rows import TushareBatch
from market_service.models.series import PRICE_FIELDS, TimeSeries

logger = logging.getLogger(__name__)

AdjustmentFactorMap = Dict[date, float]


class AdjustmentOutcome(NamedTuple):
    series: TimeSeries
    applied: bool
    reason: Optional[str] = None


def factor_map_from_batch(batch: TushareBatch) -> AdjustmentFactorMap:
    """由 adj_factor 接口返回构建 日期 → 因子 映射，忽略非正数与无法解析的因子"""
    df = batch.to_frame().reindex(columns=["trade_date", "adj_factor"])
    df["date"] = to_dates(df["trade_date"])
    df["adj_factor"] = pd.to_numeric(df["adj_factor"], errors="coerce")
    df = df.dropna(subset=["date", "adj_factor"])
    df = df[df["adj_factor"] > 0]
    return {ts.date(): float(f) for ts, f in zip(df["date"], df["adj_factor"])}


def forward_adjust(series: TimeSeries, factors: AdjustmentFactorMap) -> AdjustmentOutcome:
    latest = series.latest()
    if latest is None:
        return AdjustmentOutcome(series, False, "序列为空")

    latest_factor = factors.get(latest.date)
    if latest_factor is None:
        # 不回退到最近的更早日期因子
        reason = f"未找到最新交易日 {latest.date.isoformat()} 的复权因子，跳过前复权"
        logger.warning(reason)
        return AdjustmentOutcome(series, False, reason)

    points = []
    for point in series.points:
        factor = factors.get(point.date)
        if factor is None:
            points.append(point)
            continue
        ratio = factor / latest_factor
        points.append(point.model_copy(update={
            name: getattr(point, name) * ratio
            for name in PRICE_FIELDS
            if getattr(point, name) is not None
        }))

    adjusted = TimeSeries(points=tuple(points), order=series.order)
    return AdjustmentOutcome(adjusted, True)
