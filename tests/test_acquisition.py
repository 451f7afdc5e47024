"""
数据获取层单元测试（不访问网络）

覆盖范围：
  - 加密货币交易对规范化
  - K 线分页拼接（短页停止、游标未推进、页数上限）
  - Tushare HTTP 客户端错误分类（httpx.MockTransport）
  - Binance K 线客户端
"""

import asyncio
import json
import os
import sys
from datetime import date
from unittest.mock import patch

import httpx
import pytest

# 确保项目根目录在 sys.path
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

DAY_MS = 86400000


def _kline(open_time: int, close: str = "1.5") -> list:
    return [open_time, "1.0", "2.0", "0.5", close, "100", open_time + DAY_MS - 1]


# ─────────────────────────────────────────────────────────
# 1. 交易对规范化
# ─────────────────────────────────────────────────────────

class TestNormalizeBinanceSymbol:
    @pytest.mark.parametrize("raw,expected", [
        ("BTCUSDT", "BTCUSDT"),
        ("btc-usdt", "BTCUSDT"),
        ("ETH/USD", "ETHUSDT"),
        ("bitcoin.usdt", "BTCUSDT"),
        ("SOL/BTC", "SOLBTC"),
    ])
    def test_normalize(self, raw, expected):
        from market_service.layers.acquisition import normalize_binance_symbol
        assert normalize_binance_symbol(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", "BTC-XYZ"])
    def test_invalid(self, raw):
        from market_service.errors import ValidationError
        from market_service.layers.acquisition import normalize_binance_symbol
        with pytest.raises(ValidationError):
            normalize_binance_symbol(raw)

    def test_utc_day_bounds(self):
        from market_service.layers.acquisition import day_end_ms, day_start_ms
        assert day_start_ms(date(2024, 1, 1)) == 1704067200000
        assert day_end_ms(date(2024, 1, 1)) == 1704067200000 + DAY_MS - 1


# ─────────────────────────────────────────────────────────
# 2. 分页拼接
# ─────────────────────────────────────────────────────────

class _FakePages:
    """按调用顺序返回预设页，记录每次请求的游标"""

    def __init__(self, pages):
        self.pages = list(pages)
        self.cursors = []

    async def __call__(self, symbol, start_ms, end_ms, limit):
        self.cursors.append(start_ms)
        return self.pages.pop(0) if self.pages else []


class TestPaginatedFetcher:
    def test_short_page_stops(self):
        from market_service.layers.acquisition import PaginatedFetcher
        fake = _FakePages([
            [_kline(0), _kline(1), _kline(2)],
            [_kline(3), _kline(4)],
            [_kline(5), _kline(6), _kline(7)],
        ])
        rows = asyncio.run(PaginatedFetcher(fake, page_size=3).fetch("BTCUSDT", 0, 10 ** 9))
        assert len(rows) == 5
        assert fake.cursors == [0, 3]

    def test_cursor_reaches_end(self):
        from market_service.layers.acquisition import PaginatedFetcher
        fake = _FakePages([[_kline(0), _kline(1), _kline(2)], [_kline(3)]])
        rows = asyncio.run(PaginatedFetcher(fake, page_size=3).fetch("BTCUSDT", 0, 3))
        assert len(rows) == 3
        assert len(fake.cursors) == 1

    def test_empty_page_stops(self):
        from market_service.layers.acquisition import PaginatedFetcher
        fake = _FakePages([])
        rows = asyncio.run(PaginatedFetcher(fake, page_size=3).fetch("BTCUSDT", 0, 10 ** 9))
        assert rows == []
        assert len(fake.cursors) == 1

    def test_non_advancing_page_aborts(self):
        from market_service.errors import ApiError
        from market_service.layers.acquisition import PaginatedFetcher
        fake = _FakePages([
            [_kline(0), _kline(1), _kline(2)],
            [_kline(1), _kline(2), _kline(2)],
        ])
        with pytest.raises(ApiError) as exc_info:
            asyncio.run(PaginatedFetcher(fake, page_size=3).fetch("BTCUSDT", 0, 10 ** 9))
        assert exc_info.value.details["page"] == 2

    def test_page_ceiling(self):
        from market_service.layers.acquisition import MAX_PAGES, PaginatedFetcher

        calls = []

        async def endless(symbol, start_ms, end_ms, limit):
            calls.append(start_ms)
            return [_kline(start_ms)]

        rows = asyncio.run(PaginatedFetcher(endless, page_size=1).fetch("BTCUSDT", 0, 10 ** 12))
        assert len(calls) == MAX_PAGES
        assert len(rows) == MAX_PAGES


# ─────────────────────────────────────────────────────────
# 3. Tushare 客户端
# ─────────────────────────────────────────────────────────

class TestTushareClient:
    def _client(self, handler):
        from market_service.layers.acquisition import TushareClient
        return TushareClient(
            api_url="https://tushare.test",
            timeout=5,
            transport=httpx.MockTransport(handler),
        )

    def _query(self, client, token="tok"):
        from market_service.context import RequestContext
        return asyncio.run(client.query(
            "daily",
            {"ts_code": "000001.SZ", "start_date": "20240101", "end_date": "20240131"},
            RequestContext(tushare_token=token),
        ))

    def test_success(self):
        seen = {}

        def handler(request):
            seen.update(json.loads(request.content))
            return httpx.Response(200, json={
                "code": 0,
                "msg": "",
                "data": {
                    "fields": ["ts_code", "trade_date", "close"],
                    "items": [["000001.SZ", "20240102", 10.1]],
                },
            })

        batch = self._query(self._client(handler))
        assert len(batch) == 1
        assert batch.to_frame().loc[0, "close"] == 10.1
        assert seen["api_name"] == "daily"
        assert seen["token"] == "tok"
        assert seen["params"]["ts_code"] == "000001.SZ"

    def test_fields_forwarded(self):
        seen = {}

        def handler(request):
            seen.update(json.loads(request.content))
            return httpx.Response(200, json={"code": 0, "data": {"fields": [], "items": []}})

        from market_service.context import RequestContext
        client = self._client(handler)
        asyncio.run(client.query(
            "adj_factor", {"ts_code": "X"}, RequestContext(tushare_token="t"),
            fields="trade_date,adj_factor",
        ))
        assert seen["fields"] == "trade_date,adj_factor"

    def test_business_error(self):
        from market_service.errors import ApiError

        def handler(request):
            return httpx.Response(200, json={"code": 40203, "msg": "抱歉，您没有访问该接口的权限"})

        with pytest.raises(ApiError) as exc_info:
            self._query(self._client(handler))
        assert "Tushare API错误" in exc_info.value.message
        assert exc_info.value.details["code"] == 40203
        assert exc_info.value.details["ts_code"] == "000001.SZ"

    def test_http_error(self):
        from market_service.errors import ApiError

        def handler(request):
            return httpx.Response(500, text="Internal Server Error")

        with pytest.raises(ApiError) as exc_info:
            self._query(self._client(handler))
        assert exc_info.value.details["status"] == 500

    def test_bad_json(self):
        from market_service.errors import ApiError

        def handler(request):
            return httpx.Response(200, text="<html>")

        with pytest.raises(ApiError):
            self._query(self._client(handler))

    @pytest.mark.parametrize("body,key,type_name", [
        (["oops"], "body_type", "list"),
        ("oops", "body_type", "str"),
        ({"code": 0, "data": "oops"}, "data_type", "str"),
        ({"code": 0, "data": [1, 2]}, "data_type", "list"),
    ])
    def test_unexpected_body_shape(self, body, key, type_name):
        from market_service.errors import ApiError

        def handler(request):
            return httpx.Response(200, json=body)

        with pytest.raises(ApiError) as exc_info:
            self._query(self._client(handler))
        assert exc_info.value.status_code == 502
        assert exc_info.value.details[key] == type_name

    def test_malformed_items(self):
        from market_service.errors import ApiError

        def handler(request):
            return httpx.Response(200, json={"code": 0, "data": {"fields": ["close"], "items": "oops"}})

        with pytest.raises(ApiError) as exc_info:
            self._query(self._client(handler))
        assert "返回格式异常" in exc_info.value.message

    def test_client_timeout_applied(self):
        seen = {}

        def handler(request):
            seen.update(request.extensions["timeout"])
            return httpx.Response(200, json={"code": 0, "data": {"fields": [], "items": []}})

        self._query(self._client(handler))
        assert seen["read"] == 5
        assert seen["connect"] == 5

    def test_timeout_is_network_error(self):
        from market_service.errors import NetworkError

        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(NetworkError) as exc_info:
            self._query(self._client(handler))
        assert exc_info.value.status_code == 503

    def test_connect_error_is_network_error(self):
        from market_service.errors import NetworkError

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(NetworkError):
            self._query(self._client(handler))

    def test_missing_token(self):
        from market_service.config import settings
        from market_service.errors import ConfigError

        def handler(request):  # pragma: no cover
            raise AssertionError("不应发出请求")

        with patch.object(settings, "TUSHARE_TOKEN", ""):
            with pytest.raises(ConfigError):
                self._query(self._client(handler), token=None)

    def test_header_token_preferred(self):
        from market_service.config import settings
        seen = {}

        def handler(request):
            seen.update(json.loads(request.content))
            return httpx.Response(200, json={"code": 0, "data": {"fields": [], "items": []}})

        with patch.object(settings, "TUSHARE_TOKEN", "env-token"):
            self._query(self._client(handler), token="header-token")
            assert seen["token"] == "header-token"
            self._query(self._client(handler), token=None)
            assert seen["token"] == "env-token"

    def test_context_repr_masks_token(self):
        from market_service.context import RequestContext
        assert "secret" not in repr(RequestContext(tushare_token="secret"))


# ─────────────────────────────────────────────────────────
# 4. Binance 客户端
# ─────────────────────────────────────────────────────────

class TestBinanceClient:
    def _client(self, handler, page_size=2):
        from market_service.layers.acquisition import BinanceClient
        return BinanceClient(
            base_url="https://binance.test",
            timeout=5,
            page_size=page_size,
            transport=httpx.MockTransport(handler),
        )

    def test_paginates_daily_klines(self):
        from market_service.layers.acquisition import day_start_ms

        day0 = day_start_ms(date(2024, 1, 1))
        all_klines = [_kline(day0 + i * DAY_MS) for i in range(5)]
        requests = []

        def handler(request):
            params = request.url.params
            assert request.url.path == "/api/v3/klines"
            assert params["interval"] == "1d"
            requests.append(int(params["startTime"]))
            start, end, limit = int(params["startTime"]), int(params["endTime"]), int(params["limit"])
            page = [k for k in all_klines if start <= k[0] <= end][:limit]
            return httpx.Response(200, json=page)

        rows = asyncio.run(
            self._client(handler).fetch_daily_klines("BTCUSDT", date(2024, 1, 1), date(2024, 1, 5))
        )
        assert [r[0] for r in rows] == [k[0] for k in all_klines]
        assert len(requests) == 3
        assert requests[0] == day0
        assert requests[1] == day0 + DAY_MS + 1

    def test_invalid_symbol(self):
        from market_service.errors import ApiError

        def handler(request):
            return httpx.Response(400, json={"code": -1121, "msg": "Invalid symbol."})

        with pytest.raises(ApiError) as exc_info:
            asyncio.run(
                self._client(handler).fetch_daily_klines("FOOUSDT", date(2024, 1, 1), date(2024, 1, 2))
            )
        assert "无效交易对" in exc_info.value.message
        assert exc_info.value.details["code"] == -1121

    def test_http_error_with_text(self):
        from market_service.errors import ApiError

        def handler(request):
            return httpx.Response(503, text="Service Unavailable")

        with pytest.raises(ApiError) as exc_info:
            asyncio.run(
                self._client(handler).fetch_daily_klines("BTCUSDT", date(2024, 1, 1), date(2024, 1, 2))
            )
        assert exc_info.value.details["status"] == 503

    def test_unexpected_body(self):
        from market_service.errors import ApiError

        def handler(request):
            return httpx.Response(200, json={"unexpected": True})

        with pytest.raises(ApiError):
            asyncio.run(
                self._client(handler).fetch_daily_klines("BTCUSDT", date(2024, 1, 1), date(2024, 1, 2))
            )

    def test_timeout_is_network_error(self):
        from market_service.errors import NetworkError

        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(NetworkError):
            asyncio.run(
                self._client(handler).fetch_daily_klines("BTCUSDT", date(2024, 1, 1), date(2024, 1, 2))
            )

    def test_client_timeout_applied(self):
        seen = {}

        def handler(request):
            seen.update(request.extensions["timeout"])
            return httpx.Response(200, json=[])

        rows = asyncio.run(
            self._client(handler).fetch_daily_klines("BTCUSDT", date(2024, 1, 1), date(2024, 1, 2))
        )
        assert rows == []
        assert seen["read"] == 5
