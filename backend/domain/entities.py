"""
Domain — 快取實體 (Pydantic Models)。
定義各種快取的持久化信封 (envelope)、快取條目與報價資料結構。
"""

from typing import ClassVar

from pydantic import BaseModel, Field

from domain.constants import CACHE_ENVELOPE_VERSION
from domain.enums import MarketState

# ---------------------------------------------------------------------------
# Cache Entries
# ---------------------------------------------------------------------------


class SwingLevelEntry(BaseModel):
    """波段突破 / 跌破價位（日期格式 M/D/YY）。"""

    breakout_price: float | None = None
    breakout_date: str | None = None
    breakdown_price: float | None = None
    breakdown_date: str | None = None


class EMAEntry(BaseModel):
    """日 / 週 / 月 EMA 及週線穿越資訊。"""

    day: float | None = None
    week: float | None = None
    month: float | None = None
    week_crossover_weeks_below: int | None = None  # 剛站上週 EMA 前連續在下方的週數
    week_below_count: int | None = None  # 目前連續在週 EMA 下方的週數


# ---------------------------------------------------------------------------
# Cache Envelopes — 每種快取一份 JSON 文件
# ---------------------------------------------------------------------------


class CacheEnvelope(BaseModel):
    """所有快取信封的共同欄位。

    DATA_FIELD 指出承載資料的欄位名稱；EPOCH_FIELD 指出失效週期欄位（若有）。
    last_updated 為空字串代表「從未蓋章」，每日刷新判斷一律視為過期。
    """

    DATA_FIELD: ClassVar[str] = "data"
    EPOCH_FIELD: ClassVar[str | None] = None

    version: int = CACHE_ENVELOPE_VERSION
    last_updated: str = ""


class YTDCacheData(CacheEnvelope):
    DATA_FIELD: ClassVar[str] = "prices"
    EPOCH_FIELD: ClassVar[str | None] = "year"

    year: int
    prices: dict[str, float] = Field(default_factory=dict)


class QuarterlyCacheData(CacheEnvelope):
    DATA_FIELD: ClassVar[str] = "quarters"

    quarters: dict[str, dict[str, float]] = Field(default_factory=dict)


class HighestCloseCacheData(CacheEnvelope):
    DATA_FIELD: ClassVar[str] = "prices"
    EPOCH_FIELD: ClassVar[str | None] = "quarter_range"

    quarter_range: str
    prices: dict[str, float] = Field(default_factory=dict)


class ForwardPECacheData(CacheEnvelope):
    """symbol → {quarter-id → forward P/E}；空 dict 代表「已抓取、無資料」。"""

    DATA_FIELD: ClassVar[str] = "symbols"
    EPOCH_FIELD: ClassVar[str | None] = "quarter_range"

    quarter_range: str
    symbols: dict[str, dict[str, float]] = Field(default_factory=dict)


class SwingLevelCacheData(CacheEnvelope):
    DATA_FIELD: ClassVar[str] = "entries"
    EPOCH_FIELD: ClassVar[str | None] = "quarter_range"

    quarter_range: str
    entries: dict[str, SwingLevelEntry] = Field(default_factory=dict)


class RSICacheData(CacheEnvelope):
    DATA_FIELD: ClassVar[str] = "values"

    values: dict[str, float] = Field(default_factory=dict)


class EMACacheData(CacheEnvelope):
    DATA_FIELD: ClassVar[str] = "entries"

    entries: dict[str, EMAEntry] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Upstream Results
# ---------------------------------------------------------------------------


class DailyAnalysisResult(BaseModel):
    """一次日線抓取同時產出的四項衍生值。"""

    highest_close: float | None = None
    swing_level_entry: SwingLevelEntry | None = None
    rsi: float | None = None
    daily_ema: float | None = None


class StockQuote(BaseModel):
    """單一標的即時報價（含盤前 / 盤後）。"""

    symbol: str
    price: float
    previous_close: float
    session: MarketState = MarketState.CLOSED
    market_state: str | None = None  # upstream marketState 原始字串
    pre_market_price: float | None = None
    pre_market_change: float | None = None
    pre_market_change_percent: float | None = None
    post_market_price: float | None = None
    post_market_change: float | None = None
    post_market_change_percent: float | None = None

    @property
    def change(self) -> float:
        return self.price - self.previous_close

    @property
    def change_percent(self) -> float | None:
        if not self.previous_close:
            return None
        return (self.price - self.previous_close) / self.previous_close * 100


# ---------------------------------------------------------------------------
# Ticker Configuration
# ---------------------------------------------------------------------------


class TickerConfig(BaseModel):
    """使用者的標的設定（設定檔載入不在此範圍，僅定義形狀）。"""

    watchlist: list[str] = Field(default_factory=list)
    universe: list[str] = Field(default_factory=list)
    index_symbols: list[str] = Field(default_factory=list)
    always_open_symbols: list[str] = Field(default_factory=list)
    closed_market_symbol: str = "SPY"

    @property
    def all_cache_symbols(self) -> list[str]:
        """watchlist ∪ universe ∪ index，保留首次出現順序。"""
        return list(dict.fromkeys(self.watchlist + self.universe + self.index_symbols))

    @property
    def extra_stats_symbols(self) -> list[str]:
        """forward P/E 與季度價格使用的標的範圍：watchlist ∪ universe。"""
        return list(dict.fromkeys(self.watchlist + self.universe))
