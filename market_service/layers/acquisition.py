"""
Layer 1 – 数据获取层
从 Tushare Pro（HTTP）与 Binance（K 线）异步拉取原始批量数据。
超时统一由 httpx 客户端的 timeout 控制，超时抛出 NetworkError，不做自动重试。
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx
from pydantic import ValidationError as PydanticValidationError

from market_service.config import settings
from market_service.context import RequestContext
from market_service.errors import ApiError, NetworkError, ValidationError
from market_service.models.rows import TushareBatch

logger = logging.getLogger(__name__)

Kline = Sequence[Any]
PageFetcher = Callable[[str, int, int, int], Awaitable[List[Kline]]]

# 分页安全上限，防止上游异常时无限循环
MAX_PAGES = 100

_DAY_MS = 24 * 60 * 60 * 1000

# Binance 报价资产
_VALID_QUOTES = {"USDT", "USDC", "FDUSD", "TUSD", "BUSD", "BTC", "ETH"}

# CoinGecko 风格 id → 代码
_COIN_ID_TO_TICKER = {
    "bitcoin": "BTC", "ethereum": "ETH", "tether": "USDT", "usd-coin": "USDC",
    "solana": "SOL", "binancecoin": "BNB", "ripple": "XRP", "cardano": "ADA",
    "polkadot": "DOT", "chainlink": "LINK", "litecoin": "LTC", "shiba-inu": "SHIB",
    "tron": "TRX", "toncoin": "TON", "bitcoin-cash": "BCH", "ethereum-classic": "ETC",
}


def day_start_ms(d: date) -> int:
    """UTC 零点毫秒时间戳"""
    return int(datetime(d.year, d.month, d.day, tzinfo=timezone.utc).timestamp() * 1000)


def day_end_ms(d: date) -> int:
    return day_start_ms(d) + _DAY_MS - 1


def normalize_binance_symbol(raw: str) -> str:
    """
    规范化交易对写法

    BTCUSDT / BTC-USDT / BTC/USDT / bitcoin.usdt → BTCUSDT；报价币 USD 自动映射为 USDT
    """
    upper = (raw or "").strip().upper()
    if not upper:
        raise ValidationError("加密货币代码不能为空", {"symbol": raw})
    if not any(sep in upper for sep in "-/."):
        return upper

    if "-" in upper or "/" in upper:
        sep = "-" if "-" in upper else "/"
        base, _, quote = upper.partition(sep)
    else:
        coin_id, _, quote = upper.partition(".")
        base = _COIN_ID_TO_TICKER.get(coin_id.lower(), coin_id)

    if quote == "USD":
        quote = "USDT"
    if quote not in _VALID_QUOTES:
        raise ValidationError(
            f"不支持的报价资产: {quote}，支持: {', '.join(sorted(_VALID_QUOTES))}",
            {"symbol": raw, "quote": quote},
        )
    return f"{base}{quote}"


# ── Tushare ───────────────────────────────────────────────


class TushareClient:
    """Tushare Pro HTTP 接口客户端"""

    def __init__(
        self,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_url = api_url or settings.TUSHARE_API_URL
        self._timeout = timeout or settings.TUSHARE_TIMEOUT
        self._transport = transport

    async def query(
        self,
        api_name: str,
        params: Dict[str, Any],
        context: RequestContext,
        fields: Optional[str] = None,
    ) -> TushareBatch:
        """
        调用 Tushare 接口

        Raises:
            ConfigError: 未提供 Token
            NetworkError: 超时或连接失败
            ApiError: HTTP 非 2xx、业务错误码非 0 或返回格式异常
        """
        payload: Dict[str, Any] = {
            "api_name": api_name,
            "token": context.resolve_tushare_token(),
            "params": params,
        }
        if fields:
            payload["fields"] = fields
        details = {"api": api_name, **params}

        logger.info(f"请求 Tushare 接口 {api_name}，参数: {params}")
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(self._api_url, json=payload)
        except httpx.TimeoutException as exc:
            raise NetworkError(
                f"Tushare 接口 {api_name} 请求超时（{self._timeout}s）", details
            ) from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"Tushare 接口 {api_name} 网络异常: {exc}", details) from exc

        if not response.is_success:
            raise ApiError(
                f"Tushare 接口 {api_name} 请求失败: HTTP {response.status_code}",
                {**details, "status": response.status_code},
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise ApiError(f"Tushare 接口 {api_name} 返回格式异常", details) from exc

        if not isinstance(body, dict):
            raise ApiError(
                f"Tushare 接口 {api_name} 返回格式异常",
                {**details, "body_type": type(body).__name__},
            )
        if body.get("code") != 0:
            raise ApiError(
                f"Tushare API错误: {body.get('msg')}",
                {**details, "code": body.get("code")},
            )
        data = body.get("data") or {}
        if not isinstance(data, dict):
            raise ApiError(
                f"Tushare 接口 {api_name} 返回格式异常",
                {**details, "data_type": type(data).__name__},
            )
        try:
            batch = TushareBatch(fields=data.get("fields") or [], items=data.get("items") or [])
        except PydanticValidationError as exc:
            raise ApiError(f"Tushare 接口 {api_name} 返回格式异常", details) from exc
        logger.info(f"Tushare 接口 {api_name} 返回 {len(batch)} 条记录")
        return batch


# ── Binance ───────────────────────────────────────────────


class PaginatedFetcher:
    """
    分页拼接 K 线

    每页最后一根 K 线开盘时间 + 1ms 作为下一页起点；
    遇到空页、不足一页（数据已取完）或达到 MAX_PAGES 时停止。
    某页未推进游标视为拼接失败，直接中止。
    """

    def __init__(self, fetch_page: PageFetcher, page_size: int):
        self._fetch_page = fetch_page
        self._page_size = page_size

    async def fetch(self, symbol: str, start_ms: int, end_ms: int) -> List[Kline]:
        rows: List[Kline] = []
        cursor = start_ms
        pages = 0
        while cursor < end_ms:
            if pages >= MAX_PAGES:
                logger.warning(f"{symbol} 分页达到上限 {MAX_PAGES} 页，停止拉取")
                break
            page = await self._fetch_page(symbol, cursor, end_ms, self._page_size)
            pages += 1
            if not page:
                break
            rows.extend(page)

            last_open = int(page[-1][0])
            if last_open < cursor:
                raise ApiError(
                    f"{symbol} K 线分页未推进（第 {pages} 页）",
                    {"symbol": symbol, "page": pages, "cursor": cursor, "last_open_time": last_open},
                )
            cursor = last_open + 1
            if len(page) < self._page_size:
                break

        logger.info(f"{symbol} 分页完成：{pages} 页，共 {len(rows)} 根 K 线")
        return rows


class BinanceClient:
    """Binance 现货日 K 线客户端"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        page_size: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = (base_url or settings.BINANCE_API_URL).rstrip("/")
        self._timeout = timeout or settings.BINANCE_TIMEOUT
        self._page_size = page_size or settings.DEFAULT_PAGE_SIZE
        self._transport = transport

    async def fetch_daily_klines(self, symbol: str, start: date, end: date) -> List[Kline]:
        """拉取 [start, end]（UTC 自然日）内的全部日 K 线"""
        async with httpx.AsyncClient(
            base_url=self._base_url, timeout=self._timeout, transport=self._transport
        ) as client:

            async def fetch_page(sym: str, start_ms: int, end_ms: int, limit: int) -> List[Kline]:
                return await self._fetch_page(client, sym, start_ms, end_ms, limit)

            fetcher = PaginatedFetcher(fetch_page, self._page_size)
            return await fetcher.fetch(symbol, day_start_ms(start), day_end_ms(end))

    async def _fetch_page(
        self,
        client: httpx.AsyncClient,
        symbol: str,
        start_ms: int,
        end_ms: int,
        limit: int,
    ) -> List[Kline]:
        params = {
            "symbol": symbol,
            "interval": "1d",
            "startTime": start_ms,
            "endTime": end_ms,
            "limit": limit,
        }
        details = {"symbol": symbol, "start_ms": start_ms, "end_ms": end_ms}
        try:
            response = await client.get("/api/v3/klines", params=params)
        except httpx.TimeoutException as exc:
            raise NetworkError(f"Binance K 线请求超时（{self._timeout}s）", details) from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"Binance K 线网络异常: {exc}", details) from exc

        if not response.is_success:
            raise self._error_from_response(response, symbol, details)

        try:
            klines = response.json()
        except ValueError as exc:
            raise ApiError("Binance 返回的 K 线数据格式异常", details) from exc
        if not isinstance(klines, list):
            raise ApiError("Binance 返回的 K 线数据格式异常", details)
        return klines

    @staticmethod
    def _error_from_response(response: httpx.Response, symbol: str, details: dict) -> ApiError:
        details = {**details, "status": response.status_code}
        try:
            body = response.json()
        except ValueError:
            text = response.text
            return ApiError(
                f"Binance K 线请求失败: {response.status_code}{f' - {text}' if text else ''}",
                details,
            )
        if not isinstance(body, dict):
            body = {}
        msg = str(body.get("msg") or f"HTTP {response.status_code}")
        code = body.get("code")
        if str(code) == "-1121" or "invalid symbol" in msg.lower():
            return ApiError(
                f"Binance 无效交易对: {symbol}，请更换有效币对（例如 BTCUSDT、ETHUSDT）",
                {**details, "code": code},
            )
        return ApiError(f"Binance K 线请求失败: {response.status_code} - {msg}", {**details, "code": code})
