"""
多市场行情数据服务
独立 FastAPI 应用程序入口

启动方式:
    uvicorn market_service.main:app --host 0.0.0.0 --port 8002
    python -m market_service.main
"""

import logging
import time
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from market_service import __version__
from market_service.config import settings
from market_service.errors import MarketDataError
from market_service.models.indicators import INDICATOR_USAGE
from market_service.models.response import ApiResponse
from market_service.models.series import MARKET_TITLES, MarketType
from market_service.routers import health, market_data
from market_service.services.market_data_service import get_market_data_service

# ── 日志配置 ──────────────────────────────────────────────
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# ── 生命周期管理 ──────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用启动/关闭生命周期钩子"""
    logger.info("=" * 60)
    logger.info(f"🚀 MarketDataService v{__version__} 启动中")
    logger.info(f"   Tushare   : {settings.TUSHARE_API_URL}")
    logger.info(f"   Tushare 超时 : {settings.TUSHARE_TIMEOUT}s")
    logger.info(f"   Binance   : {settings.BINANCE_API_URL}")
    logger.info(f"   Binance 超时 : {settings.BINANCE_TIMEOUT}s，每页 {settings.DEFAULT_PAGE_SIZE} 根 K 线")
    logger.info(f"   默认区间  : 结束日前 {settings.DEFAULT_HISTORY_DAYS} 天")
    logger.info(f"   市场      : {', '.join(m.value for m in MarketType)}")
    logger.info(f"   指标      : {', '.join(kind.value for kind in INDICATOR_USAGE)}")
    logger.info("=" * 60)
    if not settings.TUSHARE_TOKEN:
        logger.warning("⚠️ 未配置 TUSHARE_TOKEN，Tushare 市场需在请求头 X-Tushare-Token 中提供")

    # 预先构建各层单例
    get_market_data_service()
    logger.info("✅ 数据获取 / 处理 / 复权 / 指标各层已就绪")

    yield

    logger.info("✅ 行情数据服务已关闭")


# ── 应用实例 ──────────────────────────────────────────────
app = FastAPI(
    title="多市场行情数据服务",
    description=(
        "对上游行情数据进行标准化、复权和技术指标计算：\n"
        "- 📊 多市场日线（A股 / 美股 / 港股 / 外汇 / 期货 / 基金 / 债券 / 期权）\n"
        "- 🪙 加密货币日 K 线（Binance 分页拼接）\n"
        "- 🔁 A 股前复权\n"
        "- 📈 技术指标（MACD / RSI / KDJ / BOLL / MA）\n\n"
        "**分层架构**\n"
        "```\n"
        "Acquisition Layer  ← 从 Tushare / Binance 拉取原始数据\n"
        "Processing Layer   ← 字段标准化、区间裁剪\n"
        "Adjustment Layer   ← A 股前复权\n"
        "Analysis Layer     ← 技术指标计算\n"
        "```"
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# ── CORS 中间件 ───────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── 请求计时中间件 ─────────────────────────────────────────
@app.middleware("http")
async def add_process_time(request: Request, call_next):
    start = time.time()
    response = await call_next(request)
    response.headers["X-Process-Time"] = f"{(time.time() - start) * 1000:.1f}ms"
    return response


# ── 全局异常处理 ──────────────────────────────────────────
@app.exception_handler(MarketDataError)
async def market_data_exception_handler(request: Request, exc: MarketDataError):
    logger.warning(f"请求 {request.url.path} 失败: {exc}")
    body = ApiResponse.fail(
        error=exc.message,
        message="failed",
        code=exc.code,
        details=exc.details,
    )
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"未处理的异常: {exc}", exc_info=True)
    body = ApiResponse.fail(error="内部服务错误", message=str(exc), code="INTERNAL_ERROR")
    return JSONResponse(status_code=500, content=body.model_dump())


# ── 注册路由 ──────────────────────────────────────────────
app.include_router(health.router)
app.include_router(market_data.router)


# ── 根路由 ───────────────────────────────────────────────
@app.get("/", include_in_schema=False)
async def root():
    return {
        "service": "MarketDataService",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "markets": "/api/market",
            "market_data": "/api/market/{market}/{symbol}",
        },
        "markets": {market.value: title for market, title in MARKET_TITLES.items()},
        "indicators": {kind.value: usage for kind, usage in INDICATOR_USAGE.items()},
    }


# ── 直接运行入口 ──────────────────────────────────────────
if __name__ == "__main__":
    uvicorn.run(
        "market_service.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
