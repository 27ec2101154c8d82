"""
Application — Ticker 服務（UI 端狀態持有者）。
持有目前報價、市場狀態與標的設定；設定變更或清除快取時重新啟動背景回填。
"""

import threading
from collections.abc import Callable
from datetime import datetime

from application.backfill import BackfillScheduler, BackfillStatus
from application.cache_service import CacheService
from application.quote_fetch_coordinator import (
    FetchResult,
    apply_fetch_result,
    execute_fetch_plan,
    select_fetch_plan,
)
from domain.entities import StockQuote, TickerConfig
from domain.enums import BackfillPhase, CacheKind
from domain.market_schedule import MarketHoliday, MarketSchedule, TodaySchedule, utc_now
from domain.protocols import StockDataService
from infrastructure.market_data import clear_http_cache
from logging_config import get_logger

logger = get_logger(__name__)


class TickerService:
    def __init__(
        self,
        config: TickerConfig,
        service: StockDataService,
        cache_service: CacheService,
        scheduler: BackfillScheduler,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._config = config
        self._service = service
        self._cache_service = cache_service
        self._scheduler = scheduler
        self._schedule = MarketSchedule(clock)
        self._clock = clock
        self._lock = threading.Lock()

        self._quotes: dict[str, StockQuote] = {}
        self._index_quotes: dict[str, StockQuote] = {}
        self._market_state: str | None = None
        self._initial_load_done = False
        self._last_refresh: datetime | None = None
        self._batch_notifications: dict[str, datetime] = {}

    # -- lifecycle -----------------------------------------------------------

    def startup(self) -> None:
        """載入快取後啟動背景回填（於 lifespan 的背景執行緒呼叫）。"""
        self._cache_service.load_all()
        self.restart_backfill()

    def shutdown(self) -> None:
        self._scheduler.cancel()
        for manager in self._cache_service.managers().values():
            manager.save()

    def restart_backfill(self) -> None:
        request = self._cache_service.backfill_request(self.config)
        self._scheduler.start(request, on_batch_complete=self._on_batch_complete)

    def _on_batch_complete(self, phase: BackfillPhase) -> None:
        with self._lock:
            self._batch_notifications[phase.value] = self._clock()
        logger.debug("回填批次完成通知：%s", phase.value)

    # -- config --------------------------------------------------------------

    @property
    def config(self) -> TickerConfig:
        with self._lock:
            return self._config.model_copy(deep=True)

    def update_watchlist(self, watchlist: list[str]) -> TickerConfig:
        cleaned = list(dict.fromkeys(s.strip().upper() for s in watchlist if s.strip()))
        with self._lock:
            self._config = self._config.model_copy(update={"watchlist": cleaned})
        logger.info("Watchlist 已更新：%d 檔，重新啟動回填。", len(cleaned))
        self.restart_backfill()
        return self.config

    # -- quotes --------------------------------------------------------------

    def refresh_quotes(self) -> FetchResult:
        """依目前時段執行一次報價抓取並合併 / 取代既有報價。"""
        today = self._schedule.get_today_schedule()
        with self._lock:
            is_initial = not self._initial_load_done
        plan = select_fetch_plan(today.state, is_initial)
        result = execute_fetch_plan(
            plan, self._service, self.config, self._schedule.is_weekend()
        )

        with self._lock:
            self._quotes, self._index_quotes = apply_fetch_result(
                self._quotes, self._index_quotes, result
            )
            if result.market_state is not None:
                self._market_state = result.market_state
            if result.is_initial_load_complete:
                self._initial_load_done = True
            self._last_refresh = self._clock()
        return result

    def quotes(self) -> tuple[dict[str, StockQuote], dict[str, StockQuote]]:
        with self._lock:
            return dict(self._quotes), dict(self._index_quotes)

    @property
    def last_refresh(self) -> datetime | None:
        with self._lock:
            return self._last_refresh

    # -- market --------------------------------------------------------------

    def today_schedule(self) -> TodaySchedule:
        return self._schedule.get_today_schedule()

    def next_holiday(self) -> MarketHoliday | None:
        return self._schedule.get_next_holiday()

    @property
    def market_state(self) -> str | None:
        with self._lock:
            return self._market_state

    # -- caches & backfill ---------------------------------------------------

    def cache_snapshot(self, kind: CacheKind) -> dict:
        return self._cache_service.snapshot(kind)

    def backfill_status(self) -> BackfillStatus:
        return self._scheduler.status()

    def batch_notifications(self) -> dict[str, datetime]:
        with self._lock:
            return dict(self._batch_notifications)

    def maintain_caches(self) -> dict:
        """
        週期失效（跨年 / 季度區間）後每日刷新日線快取；
        回填閒置時再小批次重試 EMA / forward P/E 缺口。
        """
        config = self.config
        invalidated = self._cache_service.apply_invalidation()
        if invalidated:
            logger.info("快取週期已變更，重新啟動回填。")
            self.restart_backfill()
        refreshed = self._cache_service.refresh_daily_analysis_if_needed(
            config.all_cache_symbols
        )
        # 回填執行中時由回填負責補齊
        retried = not self._scheduler.status().running
        if retried:
            self._cache_service.retry_missing_entries(config)
        return {
            "invalidated": invalidated,
            "daily_refreshed": refreshed,
            "retried": retried,
        }

    def clear_caches(self) -> dict:
        self._scheduler.cancel()
        self._cache_service.clear_all()
        http_cleared = clear_http_cache()
        self.restart_backfill()
        return {"caches": len(self._cache_service.managers()), "http": http_cleared}
