"""
上游原始记录模型
TushareBatch 承载接口原始返回；各行模型声明对应上游结构的数值列，
在 pandas 完成类型转换与去重后逐行校验为 PricePoint
"""

import datetime
from typing import Any, ClassVar, Dict, List, Optional, Tuple

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, field_validator

from market_service.models.series import ExtraValue, PricePoint


class TushareBatch(BaseModel):
    """Tushare 批量返回：列名与行值平行数组"""

    fields: List[str] = Field(default_factory=list)
    items: List[List[Any]] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.items)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.items, columns=self.fields)


def is_missing(value: Any) -> bool:
    """None / NaN / NaT 视为缺失"""
    if value is None or isinstance(value, str):
        return value is None
    return bool(pd.isna(value))


class TypedRow(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    # 需按数值解析的上游列
    source_columns: ClassVar[Tuple[str, ...]] = ()

    date: datetime.date

    @field_validator("*", mode="before")
    @classmethod
    def _missing_to_none(cls, value: Any) -> Any:
        return None if is_missing(value) else value

    def to_point(self, extras: Optional[Dict[str, ExtraValue]] = None) -> PricePoint:
        raise NotImplementedError


class EquityRow(TypedRow):
    """股票类日线（A股 / 美股 / 港股 / 基金 / 期货 / 逆回购 / 可转债 / 期权）"""

    source_columns: ClassVar[Tuple[str, ...]] = ("open", "high", "low", "close", "vol", "amount")

    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    close: Optional[float] = None
    vol: Optional[float] = None
    amount: Optional[float] = None

    def to_point(self, extras: Optional[Dict[str, ExtraValue]] = None) -> PricePoint:
        return PricePoint(
            date=self.date,
            open=self.open,
            high=self.high,
            low=self.low,
            close=self.close,
            volume=self.vol,
            amount=self.amount,
            extras=extras or {},
        )


class FxRow(TypedRow):
    """外汇日线：OHLC 为买卖中间价，报价笔数不计入成交量"""

    source_columns: ClassVar[Tuple[str, ...]] = (
        "bid_open", "bid_high", "bid_low", "bid_close",
        "ask_open", "ask_high", "ask_low", "ask_close",
        "tick_qty",
    )

    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    close: Optional[float] = None

    def to_point(self, extras: Optional[Dict[str, ExtraValue]] = None) -> PricePoint:
        return PricePoint(
            date=self.date,
            open=self.open,
            high=self.high,
            low=self.low,
            close=self.close,
            extras=extras or {},
        )


class CryptoKline(TypedRow):
    """Binance K 线：[openTime, open, high, low, close, volume, ...]"""

    source_columns: ClassVar[Tuple[str, ...]] = ("open", "high", "low", "close", "volume")

    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    close: Optional[float] = None
    volume: Optional[float] = None

    def to_point(self, extras: Optional[Dict[str, ExtraValue]] = None) -> PricePoint:
        return PricePoint(
            date=self.date,
            open=self.open,
            high=self.high,
            low=self.low,
            close=self.close,
            volume=self.volume,
            extras=extras or {},
        )
