"""
Infrastructure — 市場資料適配器 (Yahoo chart / timeseries，選用 Finnhub K 線)。
實作 domain.protocols.StockDataService。
所有呼叫失敗時回傳 None（或略過該標的），永不拋出例外；
「缺值」是唯一的錯誤訊號，讓快取維持缺失狀態、下次回填再試。
"""

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime

from domain.analysis import (
    analyze_swing,
    compute_ema,
    compute_rsi,
    count_weeks_below,
    detect_weekly_crossover,
    quarter_for_date_string,
)
from domain.constants import (
    EMA_DAILY_RANGE,
    EMA_MONTHLY_RANGE,
    EMA_WEEKLY_RANGE,
    EXTENDED_HOURS_PRICE_THRESHOLD,
    MARKET_STATE_SYMBOL,
    YAHOO_CHART_URL,
    YAHOO_FORWARD_PE_TYPE,
    YAHOO_TIMESERIES_URL,
)
from domain.entities import DailyAnalysisResult, EMAEntry, StockQuote, SwingLevelEntry
from domain.enums import HistoricalSource, MarketState
from domain.market_schedule import EASTERN, MarketSchedule, utc_now
from infrastructure import throttled_mapper
from infrastructure.market_data import finnhub_adapter
from infrastructure.market_data.http_client import cached_fetch_json, fetch_json
from infrastructure.throttled_mapper import ThrottleProfile, throttled_map_with_profile
from logging_config import get_logger

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Parsing Helpers（純函式，方便單元測試）
# ---------------------------------------------------------------------------


def first_chart_result(payload: dict | None) -> dict | None:
    if not payload:
        return None
    results = (payload.get("chart") or {}).get("result") or []
    first = results[0] if results else None
    return first if isinstance(first, dict) else None


def _raw_closes(result: dict) -> list:
    quotes = (result.get("indicators") or {}).get("quote") or []
    if not quotes:
        return []
    return quotes[0].get("close") or []


def extract_closes(result: dict) -> list[float]:
    return [float(c) for c in _raw_closes(result) if c is not None]


def extract_timestamped_closes(result: dict) -> tuple[list[int], list[float]]:
    """timestamp 與 close 配對後去除 null 收盤價。"""
    timestamps = result.get("timestamp") or []
    paired = [
        (int(ts), float(close))
        for ts, close in zip(timestamps, _raw_closes(result))
        if close is not None
    ]
    return [ts for ts, _ in paired], [close for _, close in paired]


def format_swing_date(timestamp: int) -> str:
    """Unix 秒 → 美東日期 "M/D/YY"（不補零）。"""
    day = datetime.fromtimestamp(timestamp, tz=UTC).astimezone(EASTERN)
    return f"{day.month}/{day.day}/{day.year % 100:02d}"


def build_swing_entry(timestamps: list[int], closes: list[float]) -> SwingLevelEntry | None:
    if not closes:
        return None
    swing = analyze_swing(closes)

    def _date(index: int | None) -> str | None:
        if index is None or index >= len(timestamps):
            return None
        return format_swing_date(timestamps[index])

    return SwingLevelEntry(
        breakout_price=swing.breakout_price,
        breakout_date=_date(swing.breakout_index),
        breakdown_price=swing.breakdown_price,
        breakdown_date=_date(swing.breakdown_index),
    )


def build_daily_analysis(
    timestamps: list[int], closes: list[float]
) -> DailyAnalysisResult | None:
    """一段日線收盤價 → 最高收盤、波段價位、RSI、日 EMA。"""
    if not closes:
        return None
    return DailyAnalysisResult(
        highest_close=max(closes),
        swing_level_entry=build_swing_entry(timestamps, closes),
        rsi=compute_rsi(closes),
        daily_ema=compute_ema(closes),
    )


def _latest_close(result: dict) -> float | None:
    for close in reversed(_raw_closes(result)):
        if close is not None:
            return float(close)
    return None


def _pct(change: float, base: float) -> float | None:
    return change / base * 100 if base else None


def parse_quote(
    symbol: str, result: dict, time_session: MarketState
) -> StockQuote | None:
    """
    解析 1 分鐘 K 線（includePrePost=true）為報價。
    盤前 / 盤後時段若最新分鐘價與正規盤價差異明顯，改以分鐘價推算延長時段漲跌。
    """
    meta = result.get("meta") or {}
    price = meta.get("regularMarketPrice")
    previous_close = meta.get("chartPreviousClose")
    if price is None or previous_close is None:
        return None

    fields: dict = {
        "pre_market_price": meta.get("preMarketPrice"),
        "pre_market_change": meta.get("preMarketChange"),
        "pre_market_change_percent": meta.get("preMarketChangePercent"),
        "post_market_price": meta.get("postMarketPrice"),
        "post_market_change": meta.get("postMarketChange"),
        "post_market_change_percent": meta.get("postMarketChangePercent"),
    }

    latest = _latest_close(result)
    if latest is not None and abs(latest - price) > EXTENDED_HOURS_PRICE_THRESHOLD:
        change = latest - price
        if time_session == MarketState.PRE_MARKET:
            fields.update(
                pre_market_price=latest,
                pre_market_change=change,
                pre_market_change_percent=_pct(change, price),
            )
        elif time_session == MarketState.AFTER_HOURS:
            fields.update(
                post_market_price=latest,
                post_market_change=change,
                post_market_change_percent=_pct(change, price),
            )

    market_state = meta.get("marketState")
    return StockQuote(
        symbol=symbol,
        price=float(price),
        previous_close=float(previous_close),
        session=MarketState.from_upstream_state(market_state),
        market_state=market_state,
        **fields,
    )


def parse_forward_pe(payload: dict) -> dict[str, float]:
    """timeseries 回應 → {quarter-id: forward P/E}。上游無此欄位時回傳 {}。"""
    results = (payload.get("timeseries") or {}).get("result") or []
    entries = None
    for item in results:
        if isinstance(item, dict) and YAHOO_FORWARD_PE_TYPE in item:
            entries = item[YAHOO_FORWARD_PE_TYPE]
            break

    ratios: dict[str, float] = {}
    for entry in entries or []:
        if not isinstance(entry, dict):
            continue
        quarter = quarter_for_date_string(entry.get("asOfDate") or "")
        raw = (entry.get("reportedValue") or {}).get("raw")
        if quarter is None or raw is None:
            continue
        ratios[quarter] = float(raw)
    return ratios


# ---------------------------------------------------------------------------
# YahooStockService
# ---------------------------------------------------------------------------


class YahooStockService:
    """StockDataService 實作。歷史 K 線在設定 Finnhub key 時優先走 Finnhub，失敗退回 Yahoo。"""

    def __init__(
        self,
        clock: Callable[[], datetime] = utc_now,
        quote_profile: ThrottleProfile = throttled_mapper.DEFAULT,
        backfill_profile: ThrottleProfile = throttled_mapper.BACKFILL,
        finnhub_profile: ThrottleProfile = throttled_mapper.FINNHUB_BACKFILL,
    ):
        self._clock = clock
        self._schedule = MarketSchedule(clock)
        self._quote_profile = quote_profile
        self._backfill_profile = backfill_profile
        self._finnhub_profile = finnhub_profile

    # -- routing -----------------------------------------------------------

    @staticmethod
    def historical_source(symbol: str) -> HistoricalSource:
        if finnhub_adapter.is_available() and finnhub_adapter.is_routable(symbol):
            return HistoricalSource.FINNHUB
        return HistoricalSource.YAHOO

    def _partition(self, symbols: list[str]) -> tuple[list[str], list[str]]:
        finnhub, yahoo = [], []
        for symbol in dict.fromkeys(symbols):
            if self.historical_source(symbol) == HistoricalSource.FINNHUB:
                finnhub.append(symbol)
            else:
                yahoo.append(symbol)
        return finnhub, yahoo

    def _routed_batch(
        self, symbols: list[str], fetcher: Callable[[str], object]
    ) -> dict:
        """Finnhub 與 Yahoo 兩組各自以回填限流設定並行執行後合併。"""
        finnhub_symbols, yahoo_symbols = self._partition(symbols)
        if not finnhub_symbols:
            return throttled_map_with_profile(
                yahoo_symbols, fetcher, self._backfill_profile
            )
        with ThreadPoolExecutor(max_workers=2) as pool:
            finnhub_future = pool.submit(
                throttled_map_with_profile,
                finnhub_symbols,
                fetcher,
                self._finnhub_profile,
            )
            yahoo_future = pool.submit(
                throttled_map_with_profile, yahoo_symbols, fetcher, self._backfill_profile
            )
            merged = dict(yahoo_future.result())
            merged.update(finnhub_future.result())
        return merged

    # -- chart primitives ----------------------------------------------------

    def _chart_result(self, symbol: str, params: dict) -> dict | None:
        payload = cached_fetch_json(YAHOO_CHART_URL.format(symbol=symbol), params)
        return first_chart_result(payload)

    def _chart_closes(self, symbol: str, range_: str, interval: str) -> list[float] | None:
        result = self._chart_result(symbol, {"range": range_, "interval": interval})
        if result is None:
            return None
        return extract_closes(result)

    def _daily_history(
        self, symbol: str, period1: int, period2: int
    ) -> tuple[list[int], list[float]] | None:
        if self.historical_source(symbol) == HistoricalSource.FINNHUB:
            candles = finnhub_adapter.fetch_daily_candles(symbol, period1, period2)
            if candles and candles[1]:
                return candles
        result = self._chart_result(
            symbol, {"period1": period1, "period2": period2, "interval": "1d"}
        )
        if result is None:
            return None
        return extract_timestamped_closes(result)

    # -- quotes --------------------------------------------------------------

    def fetch_quote(self, symbol: str) -> StockQuote | None:
        result = self._chart_result(
            symbol, {"interval": "1m", "range": "1d", "includePrePost": "true"}
        )
        if result is None:
            return None
        return parse_quote(symbol, result, self._schedule.current_session())

    def fetch_quotes(self, symbols: list[str]) -> dict[str, StockQuote]:
        return throttled_map_with_profile(symbols, self.fetch_quote, self._quote_profile)

    def fetch_market_state(self, symbol: str = MARKET_STATE_SYMBOL) -> str | None:
        result = self._chart_result(
            symbol, {"interval": "1m", "range": "1d", "includePrePost": "true"}
        )
        if result is None:
            return None
        return (result.get("meta") or {}).get("marketState")

    # -- historical closes ---------------------------------------------------

    def fetch_historical_close_price(
        self, symbol: str, period1: int, period2: int
    ) -> float | None:
        history = self._daily_history(symbol, period1, period2)
        if not history or not history[1]:
            return None
        return history[1][-1]

    def fetch_ytd_start_price(self, symbol: str) -> float | None:
        """前一年度最後一個交易日的收盤價（視窗：前一年 12/24 至 1/1 結束）。"""
        year = self._clock().astimezone(EASTERN).year
        period1 = int(datetime(year - 1, 12, 24, tzinfo=UTC).timestamp())
        period2 = int(datetime(year, 1, 2, tzinfo=UTC).timestamp())
        return self.fetch_historical_close_price(symbol, period1, period2)

    def fetch_quarter_end_price(
        self, symbol: str, period1: int, period2: int
    ) -> float | None:
        return self.fetch_historical_close_price(symbol, period1, period2)

    def fetch_daily_analysis(
        self, symbol: str, period1: int, period2: int
    ) -> DailyAnalysisResult | None:
        history = self._daily_history(symbol, period1, period2)
        if history is None:
            return None
        return build_daily_analysis(*history)

    # -- EMA -----------------------------------------------------------------

    def fetch_ema_entry(
        self, symbol: str, precomputed_daily_ema: float | None = None
    ) -> EMAEntry | None:
        """日 / 週 / 月 EMA + 週線穿越。三個時間框架全部失敗時回傳 None。"""
        day = precomputed_daily_ema
        if day is None:
            daily_closes = self._chart_closes(symbol, *EMA_DAILY_RANGE)
            day = compute_ema(daily_closes) if daily_closes else None

        weekly_closes = self._chart_closes(symbol, *EMA_WEEKLY_RANGE) or []
        monthly_closes = self._chart_closes(symbol, *EMA_MONTHLY_RANGE) or []

        entry = EMAEntry(
            day=day,
            week=compute_ema(weekly_closes),
            month=compute_ema(monthly_closes),
            week_crossover_weeks_below=detect_weekly_crossover(weekly_closes),
            week_below_count=count_weeks_below(weekly_closes),
        )
        if entry.day is None and entry.week is None and entry.month is None:
            return None
        return entry

    # -- forward P/E ---------------------------------------------------------

    def fetch_forward_pe_ratios(
        self, symbol: str, period1: int, period2: int
    ) -> dict[str, float] | None:
        """{} = 上游成功但無資料；None = 抓取失敗（維持缺失，下次重試）。"""
        payload = fetch_json(
            YAHOO_TIMESERIES_URL.format(symbol=symbol),
            {"type": YAHOO_FORWARD_PE_TYPE, "period1": period1, "period2": period2},
        )
        if payload is None:
            return None
        return parse_forward_pe(payload)

    # -- batch (UI path) -----------------------------------------------------

    def batch_fetch_daily_analysis(
        self, symbols: list[str], period1: int, period2: int
    ) -> dict[str, DailyAnalysisResult]:
        return self._routed_batch(
            symbols, lambda s: self.fetch_daily_analysis(s, period1, period2)
        )

    def batch_fetch_ema_entries(
        self, symbols: list[str], daily_emas: dict[str, float] | None = None
    ) -> dict[str, EMAEntry]:
        daily = daily_emas or {}
        return throttled_map_with_profile(
            symbols,
            lambda s: self.fetch_ema_entry(s, daily.get(s)),
            self._quote_profile,
        )

    def batch_fetch_forward_pe_ratios(
        self, symbols: list[str], period1: int, period2: int
    ) -> dict[str, dict[str, float]]:
        return throttled_map_with_profile(
            symbols,
            lambda s: self.fetch_forward_pe_ratios(s, period1, period2),
            self._quote_profile,
        )
