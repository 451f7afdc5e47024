"""统一日线序列模型"""

import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SeriesOrder(str, Enum):
    """序列排列方向"""

    NEWEST_FIRST = "newest_first"
    CHRONOLOGICAL = "chronological"

    def flipped(self) -> "SeriesOrder":
        if self is SeriesOrder.NEWEST_FIRST:
            return SeriesOrder.CHRONOLOGICAL
        return SeriesOrder.NEWEST_FIRST


class MarketType(str, Enum):
    CN = "cn"
    US = "us"
    HK = "hk"
    FX = "fx"
    FUTURES = "futures"
    FUND = "fund"
    REPO = "repo"
    CONVERTIBLE_BOND = "convertible_bond"
    OPTIONS = "options"
    CRYPTO = "crypto"


class RowSchema(str, Enum):
    """上游原始记录结构"""

    EQUITY = "equity"
    FX = "fx"
    KLINE = "kline"


# ── 市场 → Tushare 接口 ───────────────────────────────────
TUSHARE_API_NAMES = {
    MarketType.CN: "daily",
    MarketType.US: "us_daily",
    MarketType.HK: "hk_daily",
    MarketType.FX: "fx_daily",
    MarketType.FUTURES: "fut_daily",
    MarketType.FUND: "fund_daily",
    MarketType.REPO: "repo_daily",
    MarketType.CONVERTIBLE_BOND: "cb_daily",
    MarketType.OPTIONS: "opt_daily",
}

MARKET_TITLES = {
    MarketType.CN: "A股",
    MarketType.US: "美股",
    MarketType.HK: "港股",
    MarketType.FX: "外汇",
    MarketType.FUTURES: "期货",
    MarketType.FUND: "基金",
    MarketType.REPO: "债券逆回购",
    MarketType.CONVERTIBLE_BOND: "可转债",
    MarketType.OPTIONS: "期权",
    MarketType.CRYPTO: "加密货币",
}


# ── 各市场保留的附加列 ───────────────────────────────────
# 外汇的买卖双边原始报价在计算中间价后仍原样保留
MARKET_EXTRA_FIELDS: Dict[MarketType, Tuple[str, ...]] = {
    MarketType.FX: (
        "bid_open", "bid_high", "bid_low", "bid_close",
        "ask_open", "ask_high", "ask_low", "ask_close",
        "tick_qty",
    ),
    MarketType.FUTURES: ("pre_close", "pre_settle", "settle", "change1", "change2", "oi"),
    MarketType.REPO: ("name", "rate"),
    MarketType.CONVERTIBLE_BOND: (
        "pre_close", "change", "pct_chg",
        "bond_value", "bond_over_rate", "cb_value", "cb_over_rate",
    ),
    MarketType.OPTIONS: ("exchange", "pre_settle", "pre_close", "settle", "oi"),
}

# 文本列，其余附加列按数值解析
TEXT_EXTRA_FIELDS = frozenset({"name", "exchange"})

ExtraValue = Union[float, str, None]


def extra_fields(market: MarketType) -> Tuple[str, ...]:
    return MARKET_EXTRA_FIELDS.get(market, ())


def row_schema(market: MarketType) -> RowSchema:
    if market is MarketType.FX:
        return RowSchema.FX
    if market is MarketType.CRYPTO:
        return RowSchema.KLINE
    return RowSchema.EQUITY


def requires_forward_adjustment(market: MarketType) -> bool:
    """仅 A 股需要前复权"""
    return market is MarketType.CN


class PricePoint(BaseModel):
    """
    单日价格记录，None 表示上游未提供该字段

    extras 保留各市场特有的原始列（见 MARKET_EXTRA_FIELDS），不参与指标计算
    """

    model_config = ConfigDict(frozen=True)

    date: datetime.date
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    close: Optional[float] = None
    volume: Optional[float] = None
    amount: Optional[float] = None
    extras: Dict[str, ExtraValue] = Field(default_factory=dict)


PRICE_FIELDS = ("open", "high", "low", "close")


class TimeSeries(BaseModel):
    """
    按日期排列的价格序列

    points 的排列方向由 order 声明；日期在序列内唯一。
    上游多为最新在前，所有数值计算要求按时间正序。
    """

    model_config = ConfigDict(frozen=True)

    points: Tuple[PricePoint, ...] = ()
    order: SeriesOrder = SeriesOrder.NEWEST_FIRST

    @model_validator(mode="after")
    def _unique_dates(self) -> "TimeSeries":
        dates = [p.date for p in self.points]
        if len(set(dates)) != len(dates):
            raise ValueError("序列中存在重复交易日期")
        return self

    @classmethod
    def from_points(
        cls, points: Iterable[PricePoint], order: SeriesOrder = SeriesOrder.NEWEST_FIRST
    ) -> "TimeSeries":
        """按日期排序后构造（忽略输入顺序）"""
        ordered = sorted(points, key=lambda p: p.date, reverse=order is SeriesOrder.NEWEST_FIRST)
        return cls(points=tuple(ordered), order=order)

    def __len__(self) -> int:
        return len(self.points)

    def reversed(self) -> "TimeSeries":
        return TimeSeries(points=tuple(reversed(self.points)), order=self.order.flipped())

    def chronological(self) -> "TimeSeries":
        return self if self.order is SeriesOrder.CHRONOLOGICAL else self.reversed()

    def newest_first(self) -> "TimeSeries":
        return self if self.order is SeriesOrder.NEWEST_FIRST else self.reversed()

    def dates(self) -> List[datetime.date]:
        return [p.date for p in self.points]

    def column(self, name: str) -> List[Optional[float]]:
        return [getattr(p, name) for p in self.points]

    def latest(self) -> Optional[PricePoint]:
        if not self.points:
            return None
        return max(self.points, key=lambda p: p.date)

    def take(self, indices: Iterable[int]) -> "TimeSeries":
        return TimeSeries(points=tuple(self.points[i] for i in indices), order=self.order)
