"""infrastructure.market_data sub-package — upstream market data adapters (Yahoo, Finnhub)."""

from infrastructure.market_data.http_client import (  # noqa: F401
    RateLimiter,
    cached_fetch_json,
    clear_http_cache,
    fetch_json,
)
from infrastructure.market_data.yahoo_client import YahooStockService  # noqa: F401
