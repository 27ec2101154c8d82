"""
Application — 快取服務。
啟動時載入七個快取並依週期失效；UI 路徑的每日刷新、小批次重試與全部清除。
背景回填使用同一組 cache manager（見 application.backfill）。
"""

from collections.abc import Callable
from datetime import date, datetime

from application.backfill import BackfillCaches, BackfillRequest
from domain.analysis import (
    QuarterInfo,
    last_n_completed_quarters,
    quarter_range_id,
    quarter_start_timestamp,
)
from domain.constants import (
    CACHE_RETRY_BATCH_SIZE,
    QUARTER_RANGE_SIZE,
    QUARTERLY_BACKFILL_QUARTERS,
)
from domain.entities import TickerConfig
from domain.enums import CacheKind
from domain.market_schedule import EASTERN, utc_now
from domain.protocols import StockDataService
from infrastructure.cache import (
    CacheManager,
    EMACacheManager,
    ForwardPECacheManager,
    HighestCloseCacheManager,
    QuarterlyCacheManager,
    RSICacheManager,
    SwingLevelCacheManager,
    YTDCacheManager,
)
from logging_config import get_logger

logger = get_logger(__name__)


def build_caches(
    cache_dir: str | None = None, clock: Callable[[], datetime] = utc_now
) -> BackfillCaches:
    return BackfillCaches(
        ytd=YTDCacheManager(cache_dir, clock),
        quarterly=QuarterlyCacheManager(cache_dir, clock),
        highest_close=HighestCloseCacheManager(cache_dir, clock),
        forward_pe=ForwardPECacheManager(cache_dir, clock),
        swing_level=SwingLevelCacheManager(cache_dir, clock),
        rsi=RSICacheManager(cache_dir, clock),
        ema=EMACacheManager(cache_dir, clock),
    )


class CacheService:
    def __init__(
        self,
        caches: BackfillCaches,
        service: StockDataService,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.caches = caches
        self._service = service
        self._clock = clock

    # -- helpers -------------------------------------------------------------

    def managers(self) -> dict[CacheKind, CacheManager]:
        c = self.caches
        return {
            CacheKind.YTD: c.ytd,
            CacheKind.QUARTERLY: c.quarterly,
            CacheKind.HIGHEST_CLOSE: c.highest_close,
            CacheKind.FORWARD_PE: c.forward_pe,
            CacheKind.SWING_LEVEL: c.swing_level,
            CacheKind.RSI: c.rsi,
            CacheKind.EMA: c.ema,
        }

    def _today(self) -> date:
        return self._clock().astimezone(EASTERN).date()

    def display_quarters(self) -> list[QuarterInfo]:
        return last_n_completed_quarters(self._today(), QUARTER_RANGE_SIZE)

    def backfill_quarters(self) -> list[QuarterInfo]:
        return last_n_completed_quarters(self._today(), QUARTERLY_BACKFILL_QUARTERS)

    def quarter_range(self) -> str:
        return quarter_range_id(self._today())

    def analysis_window(self) -> tuple[int, int]:
        """(最舊季度起點, 現在)：日線分析與 forward P/E 共用的視窗。"""
        oldest = self.display_quarters()[-1]
        period1 = quarter_start_timestamp(oldest.year, oldest.quarter)
        return period1, int(self._clock().timestamp())

    def backfill_request(self, config: TickerConfig) -> BackfillRequest:
        period1, period2 = self.analysis_window()
        return BackfillRequest(
            symbols=config.all_cache_symbols,
            extra_stats_symbols=config.extra_stats_symbols,
            quarter_infos=self.backfill_quarters(),
            period1=period1,
            period2=period2,
            forward_pe_period1=period1,
        )

    # -- startup -------------------------------------------------------------

    def load_all(self) -> None:
        """載入全部快取並套用年度 / 季度區間 / 每日失效規則。"""
        c = self.caches
        for manager in self.managers().values():
            manager.load()

        self.apply_invalidation()

        for manager in (c.highest_close, c.swing_level, c.rsi, c.ema):
            if manager.needs_daily_refresh():
                manager.clear_for_daily_refresh()

        for manager in self.managers().values():
            manager.save()
        logger.info("快取載入完成（quarter_range=%s）。", self.quarter_range())

    def apply_invalidation(self) -> bool:
        """跨年、滾動季度區間改變與季度修剪；有任何快取被清除時回傳 True。"""
        c = self.caches
        cleared = False

        if c.ytd.needs_year_rollover():
            # 尚無信封（從未寫入）只建立新信封，不算清除
            cleared = c.ytd.last_updated is not None
            c.ytd.clear_for_new_year()
            c.ytd.save()

        current_range = self.quarter_range()
        for manager in (c.highest_close, c.forward_pe, c.swing_level):
            if manager.needs_invalidation(current_range):
                cleared = cleared or manager.last_updated is not None
                manager.clear_for_new_range(current_range)
                manager.save()

        if self.prune_quarters():
            cleared = True
        return cleared

    def prune_quarters(self) -> list[str]:
        active = [q.identifier for q in self.backfill_quarters()]
        removed = self.caches.quarterly.prune_old_quarters(active)
        if removed:
            self.caches.quarterly.save()
        return removed

    # -- UI path -------------------------------------------------------------

    def fetch_missing_daily_analysis(self, symbols: list[str]) -> int:
        """一次日線抓取補齊 highest close / swing / RSI；EMA 再以批次補週、月線。"""
        c = self.caches
        highest_missing = set(c.highest_close.get_missing(symbols))
        swing_missing = set(c.swing_level.get_missing(symbols))
        rsi_missing = set(c.rsi.get_missing(symbols))
        ema_missing = set(c.ema.get_missing(symbols))
        union = highest_missing | swing_missing | rsi_missing | ema_missing
        to_fetch = [s for s in dict.fromkeys(symbols) if s in union]
        if not to_fetch:
            return 0

        period1, period2 = self.analysis_window()
        results = self._service.batch_fetch_daily_analysis(to_fetch, period1, period2)

        daily_emas: dict[str, float] = {}
        for symbol, result in results.items():
            if symbol in highest_missing and result.highest_close is not None:
                c.highest_close.set_highest_close(symbol, result.highest_close)
            if symbol in swing_missing and result.swing_level_entry is not None:
                c.swing_level.set_entry(symbol, result.swing_level_entry)
            if symbol in rsi_missing and result.rsi is not None:
                c.rsi.set_rsi(symbol, result.rsi)
            if symbol in ema_missing and result.daily_ema is not None:
                daily_emas[symbol] = result.daily_ema

        if highest_missing:
            c.highest_close.save()
        if swing_missing:
            c.swing_level.save()
        if rsi_missing:
            c.rsi.save()

        if ema_missing:
            ema_symbols = [s for s in to_fetch if s in ema_missing]
            entries = self._service.batch_fetch_ema_entries(ema_symbols, daily_emas)
            for symbol, entry in entries.items():
                c.ema.set_entry(symbol, entry)
            c.ema.save()

        logger.info("日線分析補齊 %d / %d 檔。", len(results), len(to_fetch))
        return len(results)

    def refresh_daily_analysis_if_needed(self, symbols: list[str]) -> bool:
        c = self.caches
        needs_refresh = False
        for manager in (c.highest_close, c.swing_level, c.rsi, c.ema):
            if manager.needs_daily_refresh():
                manager.clear_for_daily_refresh()
                needs_refresh = True
        if not needs_refresh:
            return False
        self.fetch_missing_daily_analysis(symbols)
        return True

    def retry_missing_entries(self, config: TickerConfig) -> None:
        """每次最多重試 CACHE_RETRY_BATCH_SIZE 檔 EMA 與 forward P/E 缺口。"""
        c = self.caches
        ema_batch = c.ema.get_missing(config.all_cache_symbols)[:CACHE_RETRY_BATCH_SIZE]
        if ema_batch:
            entries = self._service.batch_fetch_ema_entries(ema_batch)
            for symbol, entry in entries.items():
                c.ema.set_entry(symbol, entry)
            if entries:
                c.ema.save()

        pe_batch = c.forward_pe.get_missing(config.extra_stats_symbols)[
            :CACHE_RETRY_BATCH_SIZE
        ]
        if pe_batch:
            period1, period2 = self.analysis_window()
            ratios = self._service.batch_fetch_forward_pe_ratios(pe_batch, period1, period2)
            for symbol, quarter_pes in ratios.items():
                c.forward_pe.set_forward_pe(symbol, quarter_pes)
            if ratios:
                c.forward_pe.save()

    # -- admin ---------------------------------------------------------------

    def clear_all(self) -> None:
        for manager in self.managers().values():
            manager.clear()
            manager.save(force=True)
        logger.info("全部快取已清除。")

    def snapshot(self, kind: CacheKind) -> dict:
        manager = self.managers()[kind]
        data = manager.get_all()
        return {
            "kind": kind.value,
            "last_updated": manager.last_updated,
            "count": len(data),
            "data": {
                key: value.model_dump() if hasattr(value, "model_dump") else value
                for key, value in data.items()
            },
        }
