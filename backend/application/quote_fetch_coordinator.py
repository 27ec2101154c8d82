"""
Application — 報價抓取協調器。
依目前時段選擇抓取計畫（select_fetch_plan 為純函式），
計畫內各子抓取以執行緒池並行，各自回傳獨立結果後再合併。
"""

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from domain.constants import MARKET_STATE_SYMBOL, UPSTREAM_CLOSED_STATE
from domain.entities import StockQuote, TickerConfig
from domain.enums import FetchPlanKind, MarketState
from domain.protocols import StockDataService
from logging_config import get_logger

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Plans & Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FetchPlan:
    kind: FetchPlanKind
    merge_quotes: bool
    completes_initial_load: bool


INITIAL_LOAD_PLAN = FetchPlan(FetchPlanKind.INITIAL_LOAD, False, True)
CLOSED_MARKET_PLAN = FetchPlan(FetchPlanKind.CLOSED_MARKET, True, False)
REGULAR_SESSION_PLAN = FetchPlan(FetchPlanKind.REGULAR_SESSION, False, False)
EXTENDED_HOURS_PLAN = FetchPlan(FetchPlanKind.EXTENDED_HOURS, False, False)


@dataclass
class FetchResult:
    plan: FetchPlan
    quotes: dict[str, StockQuote] = field(default_factory=dict)
    index_quotes: dict[str, StockQuote] = field(default_factory=dict)
    market_state: str | None = None
    fetched_symbols: set[str] = field(default_factory=set)

    @property
    def should_merge_quotes(self) -> bool:
        return self.plan.merge_quotes

    @property
    def is_initial_load_complete(self) -> bool:
        return self.plan.completes_initial_load


def select_fetch_plan(state: MarketState, is_initial_load: bool) -> FetchPlan:
    """首次抓取一律走 INITIAL_LOAD；其後依時段選擇。"""
    if is_initial_load:
        return INITIAL_LOAD_PLAN
    if state == MarketState.CLOSED:
        return CLOSED_MARKET_PLAN
    if state == MarketState.OPEN:
        return REGULAR_SESSION_PLAN
    return EXTENDED_HOURS_PLAN


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def ensure_closed_market_symbol(symbol: str, symbols: list[str]) -> list[str]:
    if symbol in symbols:
        return list(symbols)
    return [*symbols, symbol]


def extract_market_state(
    quotes: dict[str, StockQuote], symbol: str = MARKET_STATE_SYMBOL
) -> str | None:
    quote = quotes.get(symbol)
    return quote.market_state if quote else None


# ---------------------------------------------------------------------------
# Plan Execution
# ---------------------------------------------------------------------------


def _run_initial_load(
    pool: ThreadPoolExecutor,
    service: StockDataService,
    config: TickerConfig,
    is_weekend: bool,
) -> FetchResult:
    symbols = ensure_closed_market_symbol(config.closed_market_symbol, config.watchlist)
    quotes_f = pool.submit(service.fetch_quotes, symbols)
    index_f = pool.submit(service.fetch_quotes, config.index_symbols)
    always_open_f = pool.submit(service.fetch_quotes, config.always_open_symbols)

    quotes = quotes_f.result()
    index_quotes = {**index_f.result(), **always_open_f.result()}
    if is_weekend:
        # upstream 週末仍可能回報週五的盤後狀態
        market_state: str | None = UPSTREAM_CLOSED_STATE
    else:
        market_state = (
            extract_market_state(quotes, config.closed_market_symbol)
            or extract_market_state(index_quotes, config.closed_market_symbol)
        )
        if market_state is None:
            # 報價未帶時段資訊時才另外查詢
            market_state = service.fetch_market_state(config.closed_market_symbol)
    return FetchResult(
        plan=INITIAL_LOAD_PLAN,
        quotes=quotes,
        index_quotes=index_quotes,
        market_state=market_state,
        fetched_symbols=set(symbols),
    )


def _run_closed_market(
    pool: ThreadPoolExecutor, service: StockDataService, config: TickerConfig
) -> FetchResult:
    symbols = list(dict.fromkeys([config.closed_market_symbol, *config.always_open_symbols]))
    quotes = pool.submit(service.fetch_quotes, symbols).result()
    return FetchResult(
        plan=CLOSED_MARKET_PLAN,
        quotes=quotes,
        index_quotes=dict(quotes),
        market_state=UPSTREAM_CLOSED_STATE,
        fetched_symbols=set(symbols),
    )


def _run_regular_session(
    pool: ThreadPoolExecutor, service: StockDataService, config: TickerConfig
) -> FetchResult:
    symbols = ensure_closed_market_symbol(config.closed_market_symbol, config.watchlist)
    quotes_f = pool.submit(service.fetch_quotes, symbols)
    index_f = pool.submit(service.fetch_quotes, config.index_symbols)
    quotes = quotes_f.result()
    return FetchResult(
        plan=REGULAR_SESSION_PLAN,
        quotes=quotes,
        index_quotes=index_f.result(),
        market_state=extract_market_state(quotes, config.closed_market_symbol),
        fetched_symbols=set(symbols),
    )


def _run_extended_hours(
    pool: ThreadPoolExecutor, service: StockDataService, config: TickerConfig
) -> FetchResult:
    symbols = ensure_closed_market_symbol(config.closed_market_symbol, config.watchlist)
    quotes_f = pool.submit(service.fetch_quotes, symbols)
    always_open_f = pool.submit(service.fetch_quotes, config.always_open_symbols)
    quotes = quotes_f.result()
    return FetchResult(
        plan=EXTENDED_HOURS_PLAN,
        quotes=quotes,
        index_quotes=always_open_f.result(),
        market_state=extract_market_state(quotes, config.closed_market_symbol),
        fetched_symbols=set(symbols),
    )


_EXECUTORS: dict[FetchPlanKind, Callable[..., FetchResult]] = {
    FetchPlanKind.CLOSED_MARKET: _run_closed_market,
    FetchPlanKind.REGULAR_SESSION: _run_regular_session,
    FetchPlanKind.EXTENDED_HOURS: _run_extended_hours,
}


def execute_fetch_plan(
    plan: FetchPlan,
    service: StockDataService,
    config: TickerConfig,
    is_weekend: bool = False,
) -> FetchResult:
    with ThreadPoolExecutor(max_workers=4) as pool:
        if plan.kind == FetchPlanKind.INITIAL_LOAD:
            result = _run_initial_load(pool, service, config, is_weekend)
        else:
            result = _EXECUTORS[plan.kind](pool, service, config)
    logger.debug(
        "報價抓取 [%s] 完成：quotes=%d, index=%d, state=%s",
        plan.kind.value,
        len(result.quotes),
        len(result.index_quotes),
        result.market_state,
    )
    return result


def apply_fetch_result(
    previous_quotes: dict[str, StockQuote],
    previous_index_quotes: dict[str, StockQuote],
    result: FetchResult,
) -> tuple[dict[str, StockQuote], dict[str, StockQuote]]:
    """依計畫合併或取代既有報價，回傳新的 (quotes, index_quotes)。"""
    if result.should_merge_quotes:
        return (
            {**previous_quotes, **result.quotes},
            {**previous_index_quotes, **result.index_quotes},
        )
    return dict(result.quotes), dict(result.index_quotes)
