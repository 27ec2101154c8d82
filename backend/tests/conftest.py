"""
Shared test fixtures — TestClient, temp cache directory, fake upstream service.
"""

import os
import tempfile

# Set environment variables BEFORE any app imports to avoid writing under $HOME
os.environ.setdefault(
    "LOG_DIR", os.path.join(tempfile.gettempdir(), "tickertape_test_logs")
)
os.environ.setdefault(
    "CACHE_DIR", os.path.join(tempfile.gettempdir(), "tickertape_test_cache")
)
os.environ.pop("FINNHUB_API_KEY", None)
os.environ.pop("TICKER_API_KEY", None)

import domain.constants  # noqa: E402

domain.constants.CACHE_DIR = os.environ["CACHE_DIR"]
domain.constants.BACKFILL_DELAY_SECONDS = 0.0

from collections.abc import Generator  # noqa: E402
from datetime import UTC, datetime  # noqa: E402
from unittest.mock import patch  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from api.rate_limit import limiter  # noqa: E402
from application.backfill import BackfillScheduler  # noqa: E402
from application.cache_service import CacheService, build_caches  # noqa: E402
from application.ticker_service import TickerService  # noqa: E402
from domain.entities import (  # noqa: E402
    DailyAnalysisResult,
    EMAEntry,
    StockQuote,
    SwingLevelEntry,
    TickerConfig,
)
from domain.enums import MarketState  # noqa: E402
from main import app  # noqa: E402

# Wednesday 2025-06-11 11:00 ET, regular session
REGULAR_SESSION_NOW = datetime(2025, 6, 11, 15, 0, tzinfo=UTC)


def fixed_clock(moment: datetime):
    return lambda: moment


# ---------------------------------------------------------------------------
# Fake upstream — StockDataService with canned data and call recording
# ---------------------------------------------------------------------------


def make_quote(
    symbol: str,
    price: float = 100.0,
    previous_close: float = 99.0,
    market_state: str | None = "REGULAR",
) -> StockQuote:
    return StockQuote(
        symbol=symbol,
        price=price,
        previous_close=previous_close,
        session=MarketState.from_upstream_state(market_state),
        market_state=market_state,
    )


class FakeStockService:
    """In-memory StockDataService; symbols in `failing` behave like upstream errors."""

    def __init__(self):
        self.quotes: dict[str, StockQuote] = {}
        self.market_state: str | None = "REGULAR"
        self.ytd_prices: dict[str, float] = {}
        self.quarter_prices: dict[str, float] = {}
        self.daily: dict[str, DailyAnalysisResult] = {}
        self.ema: dict[str, EMAEntry] = {}
        self.forward_pe: dict[str, dict[str, float]] = {}
        self.failing: set[str] = set()
        self.calls: list[tuple[str, str]] = []

    def _record(self, method: str, symbol: str) -> bool:
        self.calls.append((method, symbol))
        return symbol not in self.failing

    def calls_for(self, method: str) -> list[str]:
        return [symbol for name, symbol in self.calls if name == method]

    def fetch_quote(self, symbol):
        return self.quotes.get(symbol) if self._record("quote", symbol) else None

    def fetch_quotes(self, symbols):
        return {s: q for s in symbols if (q := self.fetch_quote(s)) is not None}

    def fetch_market_state(self, symbol="SPY"):
        self.calls.append(("market_state", symbol))
        return self.market_state

    def fetch_ytd_start_price(self, symbol):
        return self.ytd_prices.get(symbol) if self._record("ytd", symbol) else None

    def fetch_quarter_end_price(self, symbol, period1, period2):
        if not self._record("quarter_end", symbol):
            return None
        return self.quarter_prices.get(symbol)

    def fetch_daily_analysis(self, symbol, period1, period2):
        return self.daily.get(symbol) if self._record("daily", symbol) else None

    def fetch_ema_entry(self, symbol, precomputed_daily_ema=None):
        if not self._record("ema", symbol):
            return None
        entry = self.ema.get(symbol)
        if entry is None:
            return None
        if precomputed_daily_ema is not None:
            return entry.model_copy(update={"day": precomputed_daily_ema})
        return entry

    def fetch_forward_pe_ratios(self, symbol, period1, period2):
        if not self._record("forward_pe", symbol):
            return None
        return self.forward_pe.get(symbol)

    def batch_fetch_daily_analysis(self, symbols, period1, period2):
        return {
            s: r
            for s in symbols
            if (r := self.fetch_daily_analysis(s, period1, period2)) is not None
        }

    def batch_fetch_ema_entries(self, symbols, daily_emas=None):
        daily = daily_emas or {}
        return {
            s: e
            for s in symbols
            if (e := self.fetch_ema_entry(s, daily.get(s))) is not None
        }

    def batch_fetch_forward_pe_ratios(self, symbols, period1, period2):
        return {
            s: r
            for s in symbols
            if (r := self.fetch_forward_pe_ratios(s, period1, period2)) is not None
        }


def make_daily_result(price: float = 150.0) -> DailyAnalysisResult:
    return DailyAnalysisResult(
        highest_close=price,
        swing_level_entry=SwingLevelEntry(
            breakout_price=price,
            breakout_date="3/7/25",
            breakdown_price=price * 0.8,
            breakdown_date="4/8/25",
        ),
        rsi=55.0,
        daily_ema=price * 0.95,
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def fake_service() -> FakeStockService:
    return FakeStockService()


@pytest.fixture()
def ticker_config() -> TickerConfig:
    return TickerConfig(
        watchlist=["AAPL", "MSFT"],
        universe=["NVDA"],
        index_symbols=["^GSPC"],
        always_open_symbols=["BTC-USD"],
        closed_market_symbol="SPY",
    )


@pytest.fixture()
def caches(tmp_path):
    return build_caches(str(tmp_path), fixed_clock(REGULAR_SESSION_NOW))


@pytest.fixture()
def cache_service(caches, fake_service) -> CacheService:
    return CacheService(caches, fake_service, fixed_clock(REGULAR_SESSION_NOW))


@pytest.fixture()
def ticker_service(
    caches, cache_service, fake_service, ticker_config
) -> Generator[TickerService, None, None]:
    scheduler = BackfillScheduler(
        fake_service, caches, fixed_clock(REGULAR_SESSION_NOW)
    )
    service = TickerService(
        config=ticker_config,
        service=fake_service,
        cache_service=cache_service,
        scheduler=scheduler,
        clock=fixed_clock(REGULAR_SESSION_NOW),
    )
    yield service
    scheduler.cancel()


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    limiter.reset()
    yield


@pytest.fixture()
def client(ticker_service) -> Generator[TestClient, None, None]:
    """TestClient whose lifespan builds the fake-backed TickerService."""
    with patch("main.create_ticker_service", return_value=ticker_service):
        with TestClient(app) as c:
            yield c
