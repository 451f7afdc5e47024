"""
Layer 4 – 技术分析层
在按时间正序排列的序列上计算 MACD、RSI、KDJ、BOLL、MA，
预热期不足的位置为 NaN，所有结果与输入序列按位置对齐
"""

import logging
from typing import Dict, Iterable, Optional

import pandas as pd

from market_service.models.indicators import (
    BollResult,
    IndicatorKind,
    IndicatorRequest,
    IndicatorResult,
    KdjResult,
    MacdResult,
    MaResult,
    RsiResult,
)
from market_service.models.series import SeriesOrder, TimeSeries

logger = logging.getLogger(__name__)


def to_frame(series: TimeSeries) -> pd.DataFrame:
    """序列 → DataFrame（None → NaN），保持输入顺序"""
    return pd.DataFrame({
        name: pd.Series(series.column(name), dtype="float64")
        for name in ("open", "high", "low", "close", "volume")
    })


class AnalysisLayer:
    """技术分析层：输入必须为时间正序"""

    # ── 均线 ──────────────────────────────────────────────

    def sma(self, close: pd.Series, period: int) -> MaResult:
        """简单移动平均，前 period-1 个位置为 NaN"""
        values = close.rolling(window=period, min_periods=period).mean()
        return MaResult(period=period, values=values.tolist())

    # ── MACD ──────────────────────────────────────────────

    def macd(
        self,
        close: pd.Series,
        fast: int = 12,
        slow: int = 26,
        signal: int = 9,
    ) -> MacdResult:
        """DIF = EMA(fast) - EMA(slow)，DEA = EMA(DIF, signal)，MACD = 2 * (DIF - DEA)"""
        ema_fast = close.ewm(span=fast, adjust=False).mean()
        ema_slow = close.ewm(span=slow, adjust=False).mean()
        dif = ema_fast - ema_slow
        dea = dif.ewm(span=signal, adjust=False).mean()
        hist = 2 * (dif - dea)
        return MacdResult(dif=dif.tolist(), dea=dea.tolist(), macd=hist.tolist())

    # ── RSI ───────────────────────────────────────────────

    def rsi(self, close: pd.Series, period: int = 14) -> RsiResult:
        """
        RSI = 100 - 100 / (1 + 平均涨幅 / 平均跌幅)

        涨跌幅取最近 period 个价格变动的简单平均；平均跌幅为 0 时 RSI = 100。
        第一个变动出现在下标 1，因此前 period 个位置为 NaN。
        """
        delta = close.diff()
        gain = delta.clip(lower=0).rolling(window=period, min_periods=period).mean()
        loss = (-delta.clip(upper=0)).rolling(window=period, min_periods=period).mean()
        values = 100 - 100 / (1 + gain / loss)
        values = values.mask(loss == 0, 100.0)
        return RsiResult(values=values.tolist())

    # ── KDJ ───────────────────────────────────────────────

    def kdj(
        self,
        high: pd.Series,
        low: pd.Series,
        close: pd.Series,
        period: int = 9,
        k_smooth: int = 3,
        d_smooth: int = 3,
    ) -> KdjResult:
        """RSV 区间为 0 时取 0；K、D 为 1/N 平滑，J = 3K - 2D"""
        low_min = low.rolling(window=period, min_periods=period).min()
        high_max = high.rolling(window=period, min_periods=period).max()
        denom = high_max - low_min
        rsv = ((close - low_min) / denom * 100).where(denom != 0, 0.0)
        k = rsv.ewm(com=k_smooth - 1, adjust=False).mean()
        d = k.ewm(com=d_smooth - 1, adjust=False).mean()
        j = 3 * k - 2 * d
        return KdjResult(k=k.tolist(), d=d.tolist(), j=j.tolist())

    # ── 布林带 ────────────────────────────────────────────

    def bollinger(self, close: pd.Series, period: int = 20, width: float = 2) -> BollResult:
        """中轨为 SMA，带宽使用总体标准差"""
        middle = close.rolling(window=period, min_periods=period).mean()
        std = close.rolling(window=period, min_periods=period).std(ddof=0)
        return BollResult(
            upper=(middle + width * std).tolist(),
            middle=middle.tolist(),
            lower=(middle - width * std).tolist(),
        )

    # ── 按请求计算 ────────────────────────────────────────

    def compute(
        self, series: TimeSeries, requests: Iterable[IndicatorRequest]
    ) -> Dict[str, IndicatorResult]:
        """
        计算请求的全部指标

        Args:
            series: 时间正序序列（最新在前的序列需先 reversed()）
            requests: 已校验的指标请求；同一键的后续请求覆盖前者

        Returns:
            { "macd": MacdResult, "ma20": MaResult, ... }，与 series 按位置对齐
        """
        if series.order is not SeriesOrder.CHRONOLOGICAL:
            raise ValueError("指标计算要求时间正序序列")

        df = to_frame(series)
        results: Dict[str, IndicatorResult] = {}
        for req in requests:
            p = req.params
            if req.kind is IndicatorKind.MACD:
                result = self.macd(df["close"], p[0], p[1], p[2])
            elif req.kind is IndicatorKind.RSI:
                result = self.rsi(df["close"], p[0])
            elif req.kind is IndicatorKind.KDJ:
                result = self.kdj(df["high"], df["low"], df["close"], p[0], p[1], p[2])
            elif req.kind is IndicatorKind.BOLL:
                result = self.bollinger(df["close"], p[0], p[1])
            else:
                result = self.sma(df["close"], p[0])
            results[req.key] = result
            logger.debug(f"指标 {req.token} 计算完成，共 {len(result)} 个点")
        return results


# ── 模块级别单例 ──────────────────────────────────────────
_analysis: Optional[AnalysisLayer] = None


def get_analysis_layer() -> AnalysisLayer:
    global _analysis
    if _analysis is None:
        _analysis = AnalysisLayer()
    return _analysis
