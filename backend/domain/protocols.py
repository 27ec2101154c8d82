from typing import Optional, Protocol, runtime_checkable

from domain.entities import DailyAnalysisResult, EMAEntry, StockQuote


@runtime_checkable
class StockDataService(Protocol):
    """Interface for upstream market data (Yahoo chart / timeseries, Finnhub candles).

    Every method degrades to None / empty on failure; nothing raises.
    """

    def fetch_quote(self, symbol: str) -> Optional[StockQuote]:
        """Live quote incl. pre/post market prices."""
        ...

    def fetch_quotes(self, symbols: list[str]) -> dict[str, StockQuote]:
        """Throttled fan-out of fetch_quote; failed symbols are omitted."""
        ...

    def fetch_market_state(self, symbol: str) -> Optional[str]:
        """Upstream marketState string (PRE / REGULAR / POST / CLOSED)."""
        ...

    def fetch_ytd_start_price(self, symbol: str) -> Optional[float]:
        """Last close of the previous calendar year."""
        ...

    def fetch_quarter_end_price(
        self, symbol: str, period1: int, period2: int
    ) -> Optional[float]:
        """Last close inside the quarter-end window."""
        ...

    def fetch_daily_analysis(
        self, symbol: str, period1: int, period2: int
    ) -> Optional[DailyAnalysisResult]:
        """Highest close, swing levels, RSI and daily EMA from one daily history."""
        ...

    def fetch_ema_entry(
        self, symbol: str, precomputed_daily_ema: Optional[float] = None
    ) -> Optional[EMAEntry]:
        """Daily / weekly / monthly EMA plus weekly crossover counts."""
        ...

    def fetch_forward_pe_ratios(
        self, symbol: str, period1: int, period2: int
    ) -> Optional[dict[str, float]]:
        """quarter-id → forward P/E. {} = no data; None = fetch failed."""
        ...

    def batch_fetch_daily_analysis(
        self, symbols: list[str], period1: int, period2: int
    ) -> dict[str, DailyAnalysisResult]:
        ...

    def batch_fetch_ema_entries(
        self, symbols: list[str], daily_emas: Optional[dict[str, float]] = None
    ) -> dict[str, EMAEntry]:
        ...

    def batch_fetch_forward_pe_ratios(
        self, symbols: list[str], period1: int, period2: int
    ) -> dict[str, dict[str, float]]:
        ...
