"""
API — Pydantic Request / Response Schemas。
僅用於 HTTP 層的資料驗證與序列化，不含業務邏輯。
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from domain.enums import BackfillPhase, CacheKind, MarketState


# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class WatchlistUpdateRequest(BaseModel):
    """PUT /config/watchlist 請求 Body。"""

    watchlist: list[str] = Field(..., max_length=200)

    @field_validator("watchlist")
    @classmethod
    def _strip_blank(cls, value: list[str]) -> list[str]:
        return [s for s in value if s and s.strip()]


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """GET /health 回應。"""

    status: str
    service: str


class QuoteResponse(BaseModel):
    symbol: str
    price: float
    previous_close: float
    change: float
    change_percent: Optional[float] = None
    session: MarketState
    market_state: Optional[str] = None
    pre_market_price: Optional[float] = None
    pre_market_change_percent: Optional[float] = None
    post_market_price: Optional[float] = None
    post_market_change_percent: Optional[float] = None


class QuotesResponse(BaseModel):
    """GET /quotes 回應。"""

    plan: str
    market_state: Optional[str] = None
    quotes: dict[str, QuoteResponse]
    index_quotes: dict[str, QuoteResponse]
    refreshed_at: Optional[datetime] = None


class HolidayResponse(BaseModel):
    date: str
    name: str
    early_close: bool


class MarketStatusResponse(BaseModel):
    """GET /market/status 回應。"""

    state: MarketState
    schedule: str
    holiday_name: Optional[str] = None
    upstream_market_state: Optional[str] = None
    next_holiday: Optional[HolidayResponse] = None


class CacheSnapshotResponse(BaseModel):
    """GET /cache/{kind} 回應。"""

    kind: CacheKind
    last_updated: Optional[str] = None
    count: int
    data: dict[str, Any]


class BackfillStatusResponse(BaseModel):
    """GET /backfill/status 回應。"""

    running: bool
    phase: Optional[BackfillPhase] = None
    completed: dict[str, int] = {}
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    cancelled: bool = False
    last_batch_notifications: dict[str, datetime] = {}


class TickerConfigResponse(BaseModel):
    watchlist: list[str]
    universe: list[str]
    index_symbols: list[str]
    always_open_symbols: list[str]
    closed_market_symbol: str


class AcceptedResponse(BaseModel):
    """非同步操作已接受回應。"""

    status: str = "accepted"
    message: str


class CacheClearResponse(BaseModel):
    status: str = "ok"
    caches: int
    http: int


class CacheMaintenanceResponse(BaseModel):
    """UI 路徑快取維護結果。"""

    invalidated: bool
    daily_refreshed: bool
    retried: bool
