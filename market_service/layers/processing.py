"""
Layer 2 – 数据处理层
将各上游结构的原始记录映射为统一日线序列（最新在前），
并在指标计算完成后按用户区间裁剪数据与指标

标准化流程：
  构造 DataFrame → 数值列 to_numeric(coerce) → 日期列 to_datetime(coerce)
  → 丢弃无效日期 → 按日期去重（保留最后一条）→ 按日期倒序
"""

import logging
from datetime import date
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple, Type

import pandas as pd

from market_service.models.indicators import IndicatorResult
from market_service.models.rows import (
    CryptoKline,
    EquityRow,
    FxRow,
    TushareBatch,
    TypedRow,
    is_missing,
)
from market_service.models.series import (
    PRICE_FIELDS,
    TEXT_EXTRA_FIELDS,
    ExtraValue,
    MarketType,
    RowSchema,
    SeriesOrder,
    TimeSeries,
    extra_fields,
    row_schema,
)

logger = logging.getLogger(__name__)

Indicators = Dict[str, IndicatorResult]


def to_dates(values: pd.Series) -> pd.Series:
    """YYYYMMDD / YYYY-MM-DD → datetime64，无法解析为 NaT"""
    text = values.astype(str).str.strip().str.replace("-", "", regex=False)
    return pd.to_datetime(text, format="%Y%m%d", errors="coerce")


def parse_trade_date(value: Any) -> Optional[date]:
    """单个日期字符串解析，无法解析返回 None"""
    parsed = to_dates(pd.Series([value], dtype=object)).iloc[0]
    if pd.isna(parsed):
        return None
    return parsed.date()


class ProcessingLayer:
    """数据处理层：字段映射 + 去重排序 + 区间裁剪"""

    # ── 字段映射 ──────────────────────────────────────────

    def normalize(self, market: MarketType, raw: Any) -> TimeSeries:
        """按市场对应的上游结构选择映射方式"""
        schema = row_schema(market)
        if schema is RowSchema.KLINE:
            return self.normalize_klines(raw)
        if schema is RowSchema.FX:
            return self.normalize_fx(raw)
        return self.normalize_equity(raw, extra_fields(market))

    def normalize_equity(self, batch: TushareBatch, extras: Sequence[str] = ()) -> TimeSeries:
        if len(batch) == 0:
            return TimeSeries()
        df = self._with_trade_dates(batch.to_frame())
        return self._build_series(df, EquityRow, extras)

    def normalize_fx(self, batch: TushareBatch) -> TimeSeries:
        """外汇：OHLC 取买卖中间价，仅一侧有值时取该侧；原始双边报价保留在 extras"""
        if len(batch) == 0:
            return TimeSeries()
        df = self._coerce_numeric(batch.to_frame(), FxRow.source_columns)
        for field in PRICE_FIELDS:
            df[field] = df[[f"bid_{field}", f"ask_{field}"]].mean(axis=1)
        df = self._with_trade_dates(df)
        return self._build_series(df, FxRow, extra_fields(MarketType.FX))

    def normalize_klines(self, klines: Iterable[Sequence[Any]]) -> TimeSeries:
        """加密货币 K 线：日期取开盘时间（UTC）所在自然日"""
        rows = [list(k)[:6] for k in klines]
        if not rows:
            return TimeSeries()
        df = pd.DataFrame(rows).reindex(columns=range(6))
        df.columns = ["open_time", *CryptoKline.source_columns]
        open_time = pd.to_numeric(df["open_time"], errors="coerce")
        df["date"] = pd.to_datetime(open_time, unit="ms", utc=True, errors="coerce")
        return self._build_series(df, CryptoKline)

    @staticmethod
    def _with_trade_dates(df: pd.DataFrame) -> pd.DataFrame:
        if "trade_date" not in df.columns:
            df["trade_date"] = None
        df["date"] = to_dates(df["trade_date"])
        return df

    @staticmethod
    def _coerce_numeric(df: pd.DataFrame, columns: Iterable[str]) -> pd.DataFrame:
        for col in columns:
            if col not in df.columns:
                df[col] = None
            df[col] = pd.to_numeric(df[col], errors="coerce").astype("float64")
        return df

    def _build_series(
        self,
        df: pd.DataFrame,
        row_model: Type[TypedRow],
        extras: Sequence[str] = (),
    ) -> TimeSeries:
        numeric = [*row_model.source_columns, *(c for c in extras if c not in TEXT_EXTRA_FIELDS)]
        df = self._coerce_numeric(df, numeric)
        for col in extras:
            if col not in df.columns:
                df[col] = None

        total = len(df)
        df = df.dropna(subset=["date"])
        if len(df) < total:
            logger.debug(f"丢弃 {total - len(df)} 条无法解析日期的记录")

        # 重复日期保留最后一条
        df = df.drop_duplicates(subset=["date"], keep="last")
        df = df.sort_values("date", ascending=False).reset_index(drop=True)
        df["date"] = df["date"].dt.date

        points = [
            row_model.model_validate(record).to_point(self._extras(record, extras))
            for record in df.to_dict(orient="records")
        ]
        return TimeSeries(points=tuple(points), order=SeriesOrder.NEWEST_FIRST)

    @staticmethod
    def _extras(record: Dict[str, Any], names: Sequence[str]) -> Dict[str, ExtraValue]:
        values: Dict[str, ExtraValue] = {}
        for name in names:
            value = record.get(name)
            if is_missing(value):
                values[name] = None
            elif name in TEXT_EXTRA_FIELDS:
                values[name] = str(value)
            else:
                values[name] = float(value)
        return values

    # ── 区间裁剪 ──────────────────────────────────────────

    def trim_to_range(
        self,
        series: TimeSeries,
        indicators: Indicators,
        start_date: date,
        end_date: date,
    ) -> Tuple[TimeSeries, Indicators]:
        """
        按 [start_date, end_date] 裁剪序列，
        所有指标数组删除同一组下标，保证第 i 行仍是同一交易日
        """
        for key, result in indicators.items():
            if len(result) != len(series):
                raise ValueError(
                    f"指标 {key} 长度 {len(result)} 与序列长度 {len(series)} 不一致"
                )
        keep = [
            i for i, point in enumerate(series.points)
            if start_date <= point.date <= end_date
        ]
        trimmed = series.take(keep)
        return trimmed, {key: result.take(keep) for key, result in indicators.items()}


# ── 模块级别单例 ──────────────────────────────────────────
_processor: Optional[ProcessingLayer] = None


def get_processing_layer() -> ProcessingLayer:
    global _processor
    if _processor is None:
        _processor = ProcessingLayer()
    return _processor
