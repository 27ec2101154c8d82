"""
Domain — 列舉定義。
交易時段、回填階段、快取失效週期等狀態常數。
"""

from enum import Enum


class MarketState(str, Enum):
    """交易時段狀態"""

    PRE_MARKET = "PreMarket"
    OPEN = "Open"
    AFTER_HOURS = "AfterHours"
    CLOSED = "Closed"

    @classmethod
    def from_upstream_state(cls, state: str | None) -> "MarketState":
        """Map the upstream's marketState string (PRE, REGULAR, POST, ...) to a session."""
        value = (state or "").upper()
        if value in ("PRE", "PREPRE"):
            return cls.PRE_MARKET
        if value == "REGULAR":
            return cls.OPEN
        if value in ("POST", "POSTPOST"):
            return cls.AFTER_HOURS
        return cls.CLOSED

    @property
    def is_extended_hours(self) -> bool:
        return self in (MarketState.PRE_MARKET, MarketState.AFTER_HOURS)


class EpochKind(str, Enum):
    """快取失效週期：年度 / 滾動季度區間 / 每日"""

    YEAR = "YEAR"
    QUARTER_RANGE = "QUARTER_RANGE"
    DAILY = "DAILY"


class CacheKind(str, Enum):
    """持久化快取種類（每種對應一個 JSON 檔）"""

    YTD = "ytd"
    QUARTERLY = "quarterly"
    HIGHEST_CLOSE = "highest_close"
    FORWARD_PE = "forward_pe"
    SWING_LEVEL = "swing_level"
    RSI = "rsi"
    EMA = "ema"


class BackfillPhase(str, Enum):
    """背景回填階段（依宣告順序嚴格執行）"""

    YTD = "YTD"
    DAILY_ANALYSIS = "DAILY_ANALYSIS"
    WEEKLY_EMA = "WEEKLY_EMA"
    FORWARD_PE = "FORWARD_PE"
    QUARTERLY = "QUARTERLY"


class FetchPlanKind(str, Enum):
    """報價抓取策略"""

    INITIAL_LOAD = "INITIAL_LOAD"
    CLOSED_MARKET = "CLOSED_MARKET"
    REGULAR_SESSION = "REGULAR_SESSION"
    EXTENDED_HOURS = "EXTENDED_HOURS"


class HistoricalSource(str, Enum):
    """歷史 K 線資料來源"""

    YAHOO = "yahoo"
    FINNHUB = "finnhub"
