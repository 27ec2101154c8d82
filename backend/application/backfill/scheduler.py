"""
Application — 背景回填排程器。
單一 daemon 執行緒依序執行五個階段（YTD → 日線分析 → 週 EMA → 預估本益比 → 季度價格），
以固定間隔逐一補齊快取缺口，讓 UI 路徑永遠命中暖快取。

取消機制：每次執行配一個 threading.Event，階段開始與每個標的前檢查；
呼叫間隔使用 event.wait(delay)，取消會立即中斷等待。
start() 會先取消並等待前一次執行結束，之後的通知只會來自新的執行。
"""

import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial

from domain import constants
from domain.analysis import QuarterInfo, quarter_end_date_range
from domain.constants import BACKFILL_BATCH_NOTIFY_SIZE, BACKFILL_JOIN_TIMEOUT
from domain.entities import EMAEntry
from domain.enums import BackfillPhase
from domain.market_schedule import utc_now
from domain.protocols import StockDataService
from infrastructure.cache import (
    EMACacheManager,
    ForwardPECacheManager,
    HighestCloseCacheManager,
    QuarterlyCacheManager,
    RSICacheManager,
    SwingLevelCacheManager,
    YTDCacheManager,
)
from logging_config import backfill_phase_var, get_logger

logger = get_logger(__name__)

BatchCallback = Callable[[BackfillPhase], None]


@dataclass(frozen=True)
class BackfillCaches:
    ytd: YTDCacheManager
    quarterly: QuarterlyCacheManager
    highest_close: HighestCloseCacheManager
    forward_pe: ForwardPECacheManager
    swing_level: SwingLevelCacheManager
    rsi: RSICacheManager
    ema: EMACacheManager


@dataclass(frozen=True)
class BackfillRequest:
    """一次回填所需的標的範圍與時間視窗。"""

    symbols: list[str]  # 主要快取範圍（watchlist ∪ universe ∪ index）
    extra_stats_symbols: list[str]  # forward P/E 與季度價格範圍
    quarter_infos: list[QuarterInfo]  # 季度價格要補的季度（最新在前）
    period1: int  # 日線分析視窗起點（unix 秒）
    period2: int
    forward_pe_period1: int


@dataclass
class BackfillStatus:
    running: bool = False
    phase: BackfillPhase | None = None
    completed: dict[str, int] = field(default_factory=dict)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    cancelled: bool = False


class _Run:
    """單次執行的取消旗標、延遲與通知。"""

    def __init__(self, delay: float, on_batch_complete: BatchCallback | None):
        self.cancel_event = threading.Event()
        self.delay = delay
        self._on_batch_complete = on_batch_complete

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def notify(self, phase: BackfillPhase) -> None:
        if self.cancelled or self._on_batch_complete is None:
            return
        try:
            self._on_batch_complete(phase)
        except Exception as exc:
            logger.warning("回填批次通知失敗（%s）：%s", phase.value, exc)

    def pause(self) -> bool:
        """等待 delay 秒；被取消時立即回傳 True。"""
        return self.cancel_event.wait(self.delay)


class BackfillScheduler:
    """Idle → Running(phase) → Idle | Cancelled。"""

    def __init__(
        self,
        service: StockDataService,
        caches: BackfillCaches,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._service = service
        self._caches = caches
        self._clock = clock
        self._lock = threading.Lock()
        self._status_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._run: _Run | None = None
        self._status = BackfillStatus()
        self._phases: dict[BackfillPhase, Callable[[BackfillRequest, _Run], None]] = {
            BackfillPhase.YTD: self._run_ytd_phase,
            BackfillPhase.DAILY_ANALYSIS: self._run_daily_analysis_phase,
            BackfillPhase.WEEKLY_EMA: self._run_weekly_ema_phase,
            BackfillPhase.FORWARD_PE: self._run_forward_pe_phase,
            BackfillPhase.QUARTERLY: self._run_quarterly_phase,
        }

    # -- control -------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    def start(
        self,
        request: BackfillRequest,
        on_batch_complete: BatchCallback | None = None,
        delay: float | None = None,
    ) -> None:
        """取消既有執行後啟動新的一輪回填。"""
        with self._lock:
            self._stop_locked()
            run = _Run(
                constants.BACKFILL_DELAY_SECONDS if delay is None else delay,
                on_batch_complete,
            )
            self._run = run
            with self._status_lock:
                self._status = BackfillStatus(running=True, started_at=self._clock())
            self._thread = threading.Thread(
                target=self._execute,
                args=(request, run),
                name="backfill-scheduler",
                daemon=True,
            )
            self._thread.start()
        logger.info(
            "背景回填啟動：%d 檔標的（extra=%d, quarters=%d）。",
            len(request.symbols),
            len(request.extra_stats_symbols),
            len(request.quarter_infos),
        )

    def cancel(self) -> None:
        with self._lock:
            self._stop_locked()

    def join(self, timeout: float | None = None) -> None:
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def status(self) -> BackfillStatus:
        with self._status_lock:
            return BackfillStatus(
                running=self._status.running,
                phase=self._status.phase,
                completed=dict(self._status.completed),
                started_at=self._status.started_at,
                finished_at=self._status.finished_at,
                cancelled=self._status.cancelled,
            )

    def _stop_locked(self) -> None:
        run, thread = self._run, self._thread
        self._run = None
        if run is None:
            return
        run.cancel_event.set()
        if thread is None or not thread.is_alive():
            return
        logger.info("背景回填取消中...")
        if thread is not threading.current_thread():
            thread.join(BACKFILL_JOIN_TIMEOUT)
            if thread.is_alive():
                logger.warning("前一次回填未在 %.1f 秒內結束。", BACKFILL_JOIN_TIMEOUT)

    # -- run loop ------------------------------------------------------------

    def _execute(self, request: BackfillRequest, run: _Run) -> None:
        started = time.monotonic()
        for phase in BackfillPhase:
            if run.cancelled:
                break
            backfill_phase_var.set(phase.value)
            self._update_status(run, phase=phase)
            phase_start = time.monotonic()
            try:
                self._phases[phase](request, run)
            except Exception as exc:
                logger.error("回填階段 [%s] 發生未預期錯誤：%s", phase.value, exc, exc_info=True)
            logger.info(
                "回填階段 [%s] 結束，耗時 %.1f 秒。",
                phase.value,
                time.monotonic() - phase_start,
            )
        backfill_phase_var.set("-")

        self._finish(run)
        if run.cancelled:
            logger.info("背景回填中止（已取消），耗時 %.1f 秒。", time.monotonic() - started)
        else:
            logger.info("背景回填完成，耗時 %.1f 秒。", time.monotonic() - started)

    def _update_status(self, run: _Run, phase: BackfillPhase) -> None:
        with self._status_lock:
            if self._run is run:
                self._status.phase = phase

    def _record_progress(self, run: _Run, phase: BackfillPhase) -> None:
        with self._status_lock:
            if self._run is run:
                done = self._status.completed
                done[phase.value] = done.get(phase.value, 0) + 1

    def _finish(self, run: _Run) -> None:
        with self._status_lock:
            # 被新的執行取代時，狀態已屬於新執行
            if self._run is not run and self._run is not None:
                return
            self._status.running = False
            self._status.phase = None
            self._status.cancelled = run.cancelled
            self._status.finished_at = self._clock()

    def _process_symbols(
        self,
        symbols: Iterable[str],
        phase: BackfillPhase,
        run: _Run,
        body: Callable[[str], None],
    ) -> int:
        """逐一處理標的；每 BACKFILL_BATCH_NOTIFY_SIZE 個通知一次，結束時再通知一次。"""
        completed = 0
        for symbol in symbols:
            if run.cancelled:
                return completed
            try:
                body(symbol)
            except Exception as exc:
                logger.debug("回填 %s（%s）失敗，略過：%s", symbol, phase.value, exc)
            completed += 1
            self._record_progress(run, phase)
            if completed % BACKFILL_BATCH_NOTIFY_SIZE == 0:
                run.notify(phase)
            if run.pause():
                return completed
        if completed:
            run.notify(phase)
        return completed

    # -- phases --------------------------------------------------------------

    def _run_ytd_phase(self, request: BackfillRequest, run: _Run) -> None:
        cache = self._caches.ytd
        missing = cache.get_missing(request.symbols)
        logger.info("YTD 缺 %d 檔。", len(missing))

        def _fill(symbol: str) -> None:
            price = self._service.fetch_ytd_start_price(symbol)
            if price is not None:
                cache.set_start_price(symbol, price)
                cache.save()

        self._process_symbols(missing, BackfillPhase.YTD, run, _fill)

    def _run_daily_analysis_phase(self, request: BackfillRequest, run: _Run) -> None:
        caches = self._caches
        highest_missing = set(caches.highest_close.get_missing(request.symbols))
        swing_missing = set(caches.swing_level.get_missing(request.symbols))
        rsi_missing = set(caches.rsi.get_missing(request.symbols))
        ema_missing = set(caches.ema.get_missing(request.symbols))
        union = highest_missing | swing_missing | rsi_missing | ema_missing
        to_fetch = [s for s in dict.fromkeys(request.symbols) if s in union]
        logger.info(
            "日線分析缺 %d 檔（highest=%d, swing=%d, rsi=%d, ema=%d）。",
            len(to_fetch),
            len(highest_missing),
            len(swing_missing),
            len(rsi_missing),
            len(ema_missing),
        )

        def _fill(symbol: str) -> None:
            result = self._service.fetch_daily_analysis(
                symbol, request.period1, request.period2
            )
            if result is None:
                return
            if symbol in highest_missing and result.highest_close is not None:
                caches.highest_close.set_highest_close(symbol, result.highest_close)
                caches.highest_close.save()
            if symbol in swing_missing and result.swing_level_entry is not None:
                caches.swing_level.set_entry(symbol, result.swing_level_entry)
                caches.swing_level.save()
            if symbol in rsi_missing and result.rsi is not None:
                caches.rsi.set_rsi(symbol, result.rsi)
                caches.rsi.save()
            if symbol in ema_missing and result.daily_ema is not None:
                # 週 / 月 EMA 留給下一階段補齊
                caches.ema.set_entry(symbol, EMAEntry(day=result.daily_ema))
                caches.ema.save()

        self._process_symbols(to_fetch, BackfillPhase.DAILY_ANALYSIS, run, _fill)

    def _run_weekly_ema_phase(self, request: BackfillRequest, run: _Run) -> None:
        cache = self._caches.ema
        missing = cache.get_missing(request.symbols)
        needs_weekly = cache.get_missing_weekly(request.symbols)
        to_fetch = list(dict.fromkeys(missing + needs_weekly))
        entries = cache.get_all_entries()
        logger.info("週 EMA 缺 %d 檔。", len(to_fetch))

        def _fill(symbol: str) -> None:
            existing = entries.get(symbol)
            entry = self._service.fetch_ema_entry(
                symbol, existing.day if existing else None
            )
            if entry is not None:
                cache.set_entry(symbol, entry)
                cache.save()

        self._process_symbols(to_fetch, BackfillPhase.WEEKLY_EMA, run, _fill)

    def _run_forward_pe_phase(self, request: BackfillRequest, run: _Run) -> None:
        cache = self._caches.forward_pe
        missing = cache.get_missing(request.extra_stats_symbols)
        logger.info("預估本益比缺 %d 檔。", len(missing))
        fetched = 0

        def _fill(symbol: str) -> None:
            nonlocal fetched
            ratios = self._service.fetch_forward_pe_ratios(
                symbol, request.forward_pe_period1, request.period2
            )
            if ratios is not None:
                cache.set_forward_pe(symbol, ratios)
                fetched += 1

        self._process_symbols(missing, BackfillPhase.FORWARD_PE, run, _fill)
        if fetched:
            cache.save()

    def _run_quarterly_phase(self, request: BackfillRequest, run: _Run) -> None:
        cache = self._caches.quarterly
        for info in request.quarter_infos:
            if run.cancelled:
                return
            missing = cache.get_missing_for_quarter(
                info.identifier, request.extra_stats_symbols
            )
            if not missing:
                continue
            period1, period2 = quarter_end_date_range(info.year, info.quarter)
            logger.info("季度 %s 缺 %d 檔。", info.identifier, len(missing))

            self._process_symbols(
                missing,
                BackfillPhase.QUARTERLY,
                run,
                partial(self._fill_quarter_price, info.identifier, period1, period2),
            )

    def _fill_quarter_price(
        self, quarter: str, period1: int, period2: int, symbol: str
    ) -> None:
        price = self._service.fetch_quarter_end_price(symbol, period1, period2)
        if price is not None:
            self._caches.quarterly.set_prices(quarter, {symbol: price})
            self._caches.quarterly.save()
