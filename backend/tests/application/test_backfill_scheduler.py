"""Tests for the background backfill scheduler in application/backfill/scheduler.py."""

import threading
from unittest.mock import patch

import pytest

from application.backfill import BackfillRequest, BackfillScheduler
from domain.entities import EMAEntry
from domain.enums import BackfillPhase
from tests.conftest import REGULAR_SESSION_NOW, fixed_clock, make_daily_result

JOIN_TIMEOUT = 10


class NotificationRecorder:
    def __init__(self):
        self.phases: list[BackfillPhase] = []
        self._lock = threading.Lock()

    def __call__(self, phase: BackfillPhase) -> None:
        with self._lock:
            self.phases.append(phase)

    def first_seen_order(self) -> list[BackfillPhase]:
        return list(dict.fromkeys(self.phases))


@pytest.fixture()
def scheduler(fake_service, caches):
    scheduler = BackfillScheduler(fake_service, caches, fixed_clock(REGULAR_SESSION_NOW))
    yield scheduler
    scheduler.cancel()


@pytest.fixture()
def request_(cache_service, ticker_config) -> BackfillRequest:
    return cache_service.backfill_request(ticker_config)


@pytest.fixture()
def stocked_service(fake_service):
    for symbol in ("AAPL", "MSFT", "NVDA", "^GSPC"):
        fake_service.ytd_prices[symbol] = 100.0
        fake_service.daily[symbol] = make_daily_result(150.0)
        fake_service.ema[symbol] = EMAEntry(day=1.0, week=140.0, month=130.0)
        fake_service.quarter_prices[symbol] = 120.0
    fake_service.forward_pe = {"AAPL": {"Q1-2025": 28.0}, "MSFT": {}}
    return fake_service


def _run_to_completion(scheduler, request, recorder=None):
    scheduler.start(request, on_batch_complete=recorder, delay=0)
    scheduler.join(JOIN_TIMEOUT)
    assert not scheduler.is_running


# ---------------------------------------------------------------------------
# Full run
# ---------------------------------------------------------------------------


class TestBackfillRun:
    def test_run_should_fill_every_cache(self, scheduler, request_, stocked_service, caches):
        # Act
        _run_to_completion(scheduler, request_)

        # Assert
        symbols = ["AAPL", "MSFT", "NVDA", "^GSPC"]
        assert caches.ytd.get_missing(symbols) == []
        assert caches.highest_close.get_missing(symbols) == []
        assert caches.swing_level.get_missing(symbols) == []
        assert caches.rsi.get_missing(symbols) == []
        assert caches.ema.get_missing(symbols) == []
        assert caches.forward_pe.get_all_data() == {"AAPL": {"Q1-2025": 28.0}, "MSFT": {}}
        quarters = caches.quarterly.get_all_quarter_prices()
        assert len(quarters) == len(request_.quarter_infos) == 13
        assert all(set(prices) == {"AAPL", "MSFT", "NVDA"} for prices in quarters.values())

    def test_run_should_notify_phases_in_order(self, scheduler, request_, stocked_service):
        recorder = NotificationRecorder()

        _run_to_completion(scheduler, request_, recorder)

        assert recorder.first_seen_order() == list(BackfillPhase)

    def test_run_should_persist_caches_to_disk(
        self, scheduler, request_, stocked_service, caches
    ):
        _run_to_completion(scheduler, request_)

        for manager in (caches.ytd, caches.rsi, caches.forward_pe, caches.quarterly):
            assert not manager.is_dirty

    def test_run_should_skip_cached_symbols(
        self, scheduler, request_, stocked_service, caches
    ):
        caches.ytd.set_start_price("AAPL", 99.0)

        _run_to_completion(scheduler, request_)

        assert "AAPL" not in stocked_service.calls_for("ytd")
        assert caches.ytd.get_start_price("AAPL") == 99.0

    def test_run_should_leave_failed_symbols_missing(
        self, scheduler, request_, stocked_service, caches
    ):
        stocked_service.failing.add("NVDA")

        _run_to_completion(scheduler, request_)

        assert caches.ytd.get_missing(["AAPL", "NVDA"]) == ["NVDA"]
        assert caches.forward_pe.get_missing(["NVDA"]) == ["NVDA"]

    def test_weekly_ema_phase_should_reuse_daily_ema(
        self, scheduler, request_, stocked_service, caches
    ):
        _run_to_completion(scheduler, request_)

        entry = caches.ema.get_entry("AAPL")
        # day comes from the daily-analysis phase, week / month from the EMA fetch
        assert entry.day == pytest.approx(150.0 * 0.95)
        assert entry.week == 140.0
        assert entry.month == 130.0

    def test_quarterly_phase_should_only_cover_extra_stats_symbols(
        self, scheduler, request_, stocked_service
    ):
        _run_to_completion(scheduler, request_)

        assert "^GSPC" not in stocked_service.calls_for("quarter_end")
        assert "^GSPC" not in stocked_service.calls_for("forward_pe")

    def test_status_should_report_completed_counts(
        self, scheduler, request_, stocked_service
    ):
        _run_to_completion(scheduler, request_)

        status = scheduler.status()
        assert status.running is False
        assert status.cancelled is False
        assert status.phase is None
        assert status.completed[BackfillPhase.YTD.value] == 4
        assert status.completed[BackfillPhase.QUARTERLY.value] == 13 * 3
        assert status.finished_at == REGULAR_SESSION_NOW

    def test_run_should_notify_every_ten_symbols(self, scheduler, fake_service):
        # Arrange
        symbols = [f"S{i:02d}" for i in range(25)]
        fake_service.ytd_prices = dict.fromkeys(symbols, 10.0)
        request = BackfillRequest(
            symbols=symbols,
            extra_stats_symbols=[],
            quarter_infos=[],
            period1=0,
            period2=1,
            forward_pe_period1=0,
        )
        recorder = NotificationRecorder()

        # Act
        _run_to_completion(scheduler, request, recorder)

        # Assert: after 10, after 20, then the final partial batch
        assert recorder.phases.count(BackfillPhase.YTD) == 3

    def test_phase_error_should_not_stop_later_phases(
        self, scheduler, request_, stocked_service, caches
    ):
        with patch.object(
            caches.ytd, "get_missing", side_effect=RuntimeError("corrupt")
        ):
            _run_to_completion(scheduler, request_)

        assert stocked_service.calls_for("ytd") == []
        assert caches.rsi.get_missing(["AAPL"]) == []


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


class TestBackfillCancellation:
    def test_cancel_should_interrupt_delay_and_mark_cancelled(
        self, scheduler, request_, stocked_service
    ):
        # Arrange
        recorder = NotificationRecorder()
        scheduler.start(request_, on_batch_complete=recorder, delay=30)

        # Act
        scheduler.cancel()

        # Assert
        assert not scheduler.is_running
        status = scheduler.status()
        assert status.cancelled is True
        assert status.running is False
        assert len(stocked_service.calls_for("ytd")) <= 1
        assert recorder.phases == []

    def test_start_should_replace_previous_run_without_stale_notifications(
        self, scheduler, request_, stocked_service
    ):
        # Arrange
        first = NotificationRecorder()
        second = NotificationRecorder()
        scheduler.start(request_, on_batch_complete=first, delay=30)

        # Act
        _run_to_completion(scheduler, request_, second)

        # Assert
        assert first.phases == []
        assert second.phases
        assert scheduler.status().cancelled is False

    def test_cancel_should_be_safe_when_idle(self, scheduler):
        scheduler.cancel()
        scheduler.cancel()

        assert scheduler.status().running is False
