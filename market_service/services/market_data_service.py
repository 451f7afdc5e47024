"""
行情数据服务
整合获取 → 标准化 → 前复权 → 指标计算 → 区间裁剪，对外提供统一查询接口
"""

import logging
from datetime import date, timedelta
from typing import List, Optional, Tuple

from market_service.config import settings
from market_service.context import RequestContext
from market_service.errors import MarketDataError, NotFoundError, ValidationError
from market_service.layers.acquisition import (
    BinanceClient,
    TushareClient,
    normalize_binance_symbol,
)
from market_service.layers.adjustment import factor_map_from_batch, forward_adjust
from market_service.layers.analysis import get_analysis_layer
from market_service.layers.indicator_spec import parse_indicators
from market_service.layers.lookback import extended_start_date
from market_service.layers.processing import get_processing_layer, parse_trade_date
from market_service.models.result import MarketDataResult
from market_service.models.series import (
    MARKET_TITLES,
    TUSHARE_API_NAMES,
    MarketType,
    TimeSeries,
    requires_forward_adjustment,
)

logger = logging.getLogger(__name__)


def parse_market(value: str) -> MarketType:
    try:
        return MarketType((value or "").strip().lower())
    except ValueError:
        raise ValidationError(
            f"不支持的市场类型: {value}，支持的类型有: {', '.join(m.value for m in MarketType)}",
            {"market": value},
        ) from None


def _parse_date(value: Optional[str], field: str) -> Optional[date]:
    if not value:
        return None
    parsed = parse_trade_date(value)
    if parsed is None:
        raise ValidationError(
            f"日期格式错误: {field}={value}，应为 YYYYMMDD",
            {field: value},
        )
    return parsed


def _ymd(d: date) -> str:
    return d.strftime("%Y%m%d")


class MarketDataService:
    """行情数据业务服务"""

    def __init__(
        self,
        tushare: Optional[TushareClient] = None,
        binance: Optional[BinanceClient] = None,
    ):
        self._proc = get_processing_layer()
        self._analysis = get_analysis_layer()
        self._tushare = tushare or TushareClient()
        self._binance = binance or BinanceClient()

    async def get_market_data(
        self,
        symbol: str,
        market: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        indicators: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> MarketDataResult:
        """
        获取行情数据并计算技术指标

        Args:
            symbol: 代码，如 000001.SZ / AAPL / BTCUSDT
            market: 市场类型 cn / us / hk / fx / futures / fund / repo /
                    convertible_bond / options / crypto
            start_date: 开始日期 YYYYMMDD，默认结束日期前 DEFAULT_HISTORY_DAYS 天
            end_date: 结束日期 YYYYMMDD，默认今天
            indicators: 空格分隔的指标，如 "macd(12,26,9) rsi(14) ma(20)"
            context: 每请求上下文（凭证）

        Raises:
            ValidationError / ConfigError / ApiError / NetworkError / NotFoundError
        """
        market_type = parse_market(market)
        end = _parse_date(end_date, "end_date") or date.today()
        start = _parse_date(start_date, "start_date") or end - timedelta(
            days=settings.DEFAULT_HISTORY_DAYS
        )
        if start > end:
            raise ValidationError(
                f"开始日期 {_ymd(start)} 晚于结束日期 {_ymd(end)}",
                {"symbol": symbol, "start_date": _ymd(start), "end_date": _ymd(end)},
            )

        requests = parse_indicators(indicators)
        fetch_start = extended_start_date(start, requests)
        if fetch_start != start:
            logger.info(
                f"技术指标需要预热数据，扩展开始日期 {_ymd(start)} → {_ymd(fetch_start)}"
            )

        # 期权未给出完整区间且不计算指标时，仅查询结束日当天的行情
        single_day = (
            market_type is MarketType.OPTIONS
            and not requests
            and not (start_date and end_date)
        )
        if single_day:
            start = fetch_start = end

        context = context or RequestContext()
        series = await self._fetch_series(
            market_type, symbol, fetch_start, end, context, single_day=single_day
        )

        warnings: List[str] = []
        adjusted = False
        if requires_forward_adjustment(market_type):
            series, adjusted, warning = await self._forward_adjust(
                symbol, series, fetch_start, end, context
            )
            if warning:
                warnings.append(warning)

        results = {}
        if requests:
            computed = self._analysis.compute(series.chronological(), requests)
            # 指标逆序回最新在前，与展示顺序一致
            results = {key: result.reversed() for key, result in computed.items()}
            series, results = self._proc.trim_to_range(series, results, start, end)
            logger.info(f"过滤到用户请求时间范围，剩余 {len(series)} 条记录")

        return MarketDataResult(
            symbol=symbol,
            market=market_type,
            start_date=start,
            end_date=end,
            series=series,
            indicators=results,
            requested_indicator_specs=[r.token for r in requests],
            adjusted=adjusted,
            warnings=warnings,
        )

    # ── 数据获取 ──────────────────────────────────────────

    async def _fetch_series(
        self,
        market: MarketType,
        symbol: str,
        start: date,
        end: date,
        context: RequestContext,
        single_day: bool = False,
    ) -> TimeSeries:
        details = {
            "symbol": symbol,
            "market": market.value,
            "start_date": _ymd(start),
            "end_date": _ymd(end),
        }
        if market is MarketType.CRYPTO:
            pair = normalize_binance_symbol(symbol)
            logger.info(f"使用 Binance 获取 {pair} 日 K 线")
            raw = await self._binance.fetch_daily_klines(pair, start, end)
        else:
            if single_day:
                params = {"ts_code": symbol, "trade_date": _ymd(end)}
                logger.info(f"按单个交易日 {_ymd(end)} 查询{MARKET_TITLES[market]}行情")
            else:
                params = {"ts_code": symbol, "start_date": _ymd(start), "end_date": _ymd(end)}
            raw = await self._tushare.query(TUSHARE_API_NAMES[market], params, context)

        series = self._proc.normalize(market, raw)
        if len(series) == 0:
            raise NotFoundError(f"未找到{MARKET_TITLES[market]}{symbol}的行情数据", details)
        logger.info(f"成功获取 {symbol} {len(series)} 条记录（含预热区间）")
        return series

    async def _forward_adjust(
        self,
        symbol: str,
        series: TimeSeries,
        start: date,
        end: date,
        context: RequestContext,
    ) -> Tuple[TimeSeries, bool, Optional[str]]:
        """复权因子获取失败时降级为未复权数据，返回警告而非抛错"""
        try:
            batch = await self._tushare.query(
                "adj_factor",
                {"ts_code": symbol, "start_date": _ymd(start), "end_date": _ymd(end)},
                context,
                fields="trade_date,adj_factor",
            )
        except MarketDataError as exc:
            warning = f"获取复权因子失败，返回未复权数据: {exc}"
            logger.warning(warning)
            return series, False, warning

        outcome = forward_adjust(series, factor_map_from_batch(batch))
        if outcome.applied:
            logger.info(f"已应用前复权到 {symbol} 的 OHLC 价格")
        return outcome.series, outcome.applied, outcome.reason


# ── 模块级别单例 ──────────────────────────────────────────
_market_data_service: Optional[MarketDataService] = None


def get_market_data_service() -> MarketDataService:
    global _market_data_service
    if _market_data_service is None:
        _market_data_service = MarketDataService()
    return _market_data_service
