"""
Domain — 集中管理所有常數與閾值。
避免散落在各模組中的 magic numbers / magic strings。
"""

import os as _os

# ---------------------------------------------------------------------------
# Technical Indicator Parameters
# ---------------------------------------------------------------------------
RSI_PERIOD = 14
EMA_PERIOD = 5
SWING_THRESHOLD = 0.10  # 10% reversal marks a significant high / low

# ---------------------------------------------------------------------------
# Quarter Math
# ---------------------------------------------------------------------------
QUARTER_RANGE_SIZE = 12  # quarters shown + used as the rolling range epoch
QUARTERLY_BACKFILL_QUARTERS = 13  # 12 for display + 1 reference quarter
QUARTER_END_WINDOW_DAYS_BEFORE = 5
QUARTER_END_WINDOW_DAYS_AFTER = 2

# ---------------------------------------------------------------------------
# Market Schedule (US equities, Eastern time)
# ---------------------------------------------------------------------------
MARKET_TIMEZONE = "America/New_York"
PRE_MARKET_OPEN_MINUTES = 4 * 60  # 04:00
REGULAR_OPEN_MINUTES = 9 * 60 + 30  # 09:30
REGULAR_CLOSE_MINUTES = 16 * 60  # 16:00
EARLY_CLOSE_MINUTES = 13 * 60  # 13:00
AFTER_HOURS_CLOSE_MINUTES = 20 * 60  # 20:00
EMA_SNEAK_PEEK_MINUTES = 15 * 60 + 30  # Friday 15:30, weekly candle nearly final

# One-off full-day closures (not derivable from the calendar rules)
SPECIAL_CLOSURES: dict[str, str] = {
    "2025-01-09": "National Day of Mourning",
}

# ---------------------------------------------------------------------------
# Cache Files — one JSON document per cache kind
# ---------------------------------------------------------------------------
CACHE_DIR = _os.getenv("CACHE_DIR", _os.path.join(_os.path.expanduser("~"), ".tickertape"))
CACHE_ENVELOPE_VERSION = 1
YTD_CACHE_FILE = "ytd-cache.json"
QUARTERLY_CACHE_FILE = "quarterly-cache.json"
HIGHEST_CLOSE_CACHE_FILE = "highest-close-cache.json"
FORWARD_PE_CACHE_FILE = "forward-pe-cache.json"
SWING_LEVEL_CACHE_FILE = "swing-level-cache.json"
RSI_CACHE_FILE = "rsi-cache.json"
EMA_CACHE_FILE = "ema-cache.json"

# ---------------------------------------------------------------------------
# Throttled Mapper Profiles (max_concurrency, delay seconds per launch slot)
# ---------------------------------------------------------------------------
THROTTLE_DEFAULT_CONCURRENCY = 5
THROTTLE_DEFAULT_DELAY = 0.1
THROTTLE_BACKFILL_CONCURRENCY = 1
THROTTLE_BACKFILL_DELAY = 2.0
THROTTLE_FINNHUB_CONCURRENCY = 1
THROTTLE_FINNHUB_DELAY = 1.1  # Finnhub free tier: 60 calls / minute

# ---------------------------------------------------------------------------
# Backfill Scheduler
# ---------------------------------------------------------------------------
BACKFILL_DELAY_SECONDS = 4.0  # fixed pause between sequential backfill calls
BACKFILL_BATCH_NOTIFY_SIZE = 10
BACKFILL_JOIN_TIMEOUT = 5.0  # seconds to wait for a cancelled run to exit
CACHE_RETRY_BATCH_SIZE = 5  # UI-path retry batch for EMA / forward P/E

# ---------------------------------------------------------------------------
# Quote Symbols
# ---------------------------------------------------------------------------
CLOSED_MARKET_SYMBOL = "SPY"  # market-state source; shown while the market is shut
MARKET_STATE_SYMBOL = "SPY"
DEFAULT_WATCHLIST: list[str] = ["AAPL", "MSFT", "NVDA", "GOOGL", "AMZN"]
DEFAULT_INDEX_SYMBOLS: list[str] = ["^GSPC", "^DJI", "^IXIC"]
DEFAULT_ALWAYS_OPEN_SYMBOLS: list[str] = ["BTC-USD", "ETH-USD"]
UPSTREAM_CLOSED_STATE = "CLOSED"

# ---------------------------------------------------------------------------
# Upstream: Yahoo Finance (chart / timeseries)
# ---------------------------------------------------------------------------
YAHOO_CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}"
YAHOO_TIMESERIES_URL = (
    "https://query2.finance.yahoo.com/ws/fundamentals-timeseries/v1/finance/"
    "timeseries/{symbol}"
)
YAHOO_FORWARD_PE_TYPE = "quarterlyForwardPeRatio"
CURL_CFFI_IMPERSONATE = "chrome"
YAHOO_RATE_LIMIT_CPS = 10.0  # calls per second, shared by every Yahoo request
UPSTREAM_REQUEST_TIMEOUT = 10  # seconds
CHART_CACHE_MAXSIZE = 500
CHART_CACHE_TTL = 30  # seconds; collapses bursts of identical chart requests
EXTENDED_HOURS_PRICE_THRESHOLD = 0.001  # min diff vs regular price to report pre/post

# EMA timeframes: (range, interval)
EMA_DAILY_RANGE = ("1mo", "1d")
EMA_WEEKLY_RANGE = ("6mo", "1wk")
EMA_MONTHLY_RANGE = ("2y", "1mo")

# ---------------------------------------------------------------------------
# HTTP Retry (client layer only; skipped during extended hours)
# ---------------------------------------------------------------------------
HTTP_RETRY_ATTEMPTS = 2
HTTP_RETRY_WAIT = 0.5  # seconds, fixed backoff
HTTP_STATUS_TOO_MANY_REQUESTS = 429

# ---------------------------------------------------------------------------
# Upstream: Finnhub (optional, API key required)
# ---------------------------------------------------------------------------
FINNHUB_CANDLE_URL = "https://finnhub.io/api/v1/stock/candle"
FINNHUB_TOKEN_HEADER = "X-Finnhub-Token"
FINNHUB_REQUEST_TIMEOUT = 10
FINNHUB_CIRCUIT_BREAKER_THRESHOLD = 3  # consecutive failures before opening
FINNHUB_CIRCUIT_BREAKER_COOLDOWN = 300  # seconds
