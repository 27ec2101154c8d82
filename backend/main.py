"""
Ticker Tape — FastAPI 應用程式進入點。
負責建立 App、註冊路由、管理生命週期（載入快取、啟動背景回填）。
"""

import os
import threading
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from api.dependencies import get_ticker_service, require_api_key
from api.rate_limit import ADMIN_RATE_LIMIT, limiter
from api.routes.cache_routes import router as cache_router
from api.routes.market_routes import router as market_router
from api.schemas import CacheClearResponse, HealthResponse
from application.backfill import BackfillScheduler
from application.cache_service import CacheService, build_caches
from application.ticker_service import TickerService
from config.settings import init_settings, load_ticker_config
from infrastructure.market_data import YahooStockService
from logging_config import get_logger

# Load environment variables from .env file
load_dotenv()
init_settings()

logger = get_logger(__name__)


def create_ticker_service() -> TickerService:
    stock_service = YahooStockService()
    caches = build_caches()
    return TickerService(
        config=load_ticker_config(),
        service=stock_service,
        cache_service=CacheService(caches, stock_service),
        scheduler=BackfillScheduler(stock_service, caches),
    )


# ---------------------------------------------------------------------------
# Lifespan: 啟動時載入快取並啟動背景回填
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("Ticker Tape 後端啟動中...")
    service = create_ticker_service()
    app.state.ticker_service = service

    # 快取載入與回填在背景執行（非阻塞，daemon=True 確保不影響關閉）
    threading.Thread(target=service.startup, name="cache-startup", daemon=True).start()
    logger.info("快取載入與背景回填已啟動。")

    yield
    logger.info("Ticker Tape 後端關閉中...")
    service.shutdown()


# ---------------------------------------------------------------------------
# App Factory
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Ticker Tape API",
    description="Ticker Tape — 市場資料快取與背景回填",
    version="1.0.0",
    lifespan=lifespan,
    # Auth applied per-router, NOT globally (health must be exempt)
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ALLOW_ORIGIN", "http://localhost:3000").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["X-API-Key", "Content-Type"],
)


# ---------------------------------------------------------------------------
# Health Check
# ---------------------------------------------------------------------------


@app.get("/health", response_model=HealthResponse, summary="Health check")
def health_check() -> dict:
    """Health check endpoint - NO auth (Docker healthcheck must access without key)."""
    return {"status": "ok", "service": "tickertape-backend"}


@app.post(
    "/admin/cache/clear",
    response_model=CacheClearResponse,
    summary="Clear all persisted caches and the HTTP L1 cache, then restart backfill",
    dependencies=[Depends(require_api_key)],
)
@limiter.limit(ADMIN_RATE_LIMIT)
def clear_cache(
    request: Request,
    service: TickerService = Depends(get_ticker_service),
) -> dict:
    """Admin endpoint - WITH auth and rate limiting."""
    result = service.clear_caches()
    return {"status": "ok", **result}


# ---------------------------------------------------------------------------
# 註冊路由
# ---------------------------------------------------------------------------

auth_deps = [Depends(require_api_key)]

app.include_router(market_router, dependencies=auth_deps)
app.include_router(cache_router, dependencies=auth_deps)
