"""
Domain — 美股交易日曆與時段計算。
假日規則（固定假日順延、浮動假日、Good Friday、提早收盤日）與
美東時間的分鐘邊界，推導出「今天」的交易時段狀態。
時鐘可注入，方便測試。
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

from domain.constants import (
    AFTER_HOURS_CLOSE_MINUTES,
    EARLY_CLOSE_MINUTES,
    MARKET_TIMEZONE,
    PRE_MARKET_OPEN_MINUTES,
    REGULAR_CLOSE_MINUTES,
    REGULAR_OPEN_MINUTES,
    SPECIAL_CLOSURES,
)
from domain.enums import MarketState

EASTERN = ZoneInfo(MARKET_TIMEZONE)

PRE_MARKET_SCHEDULE = "4:00 AM - 9:30 AM ET"
REGULAR_SCHEDULE = "9:30 AM - 4:00 PM ET"
EARLY_CLOSE_SCHEDULE = "9:30 AM - 1:00 PM ET"
AFTER_HOURS_SCHEDULE = "4:00 PM - 8:00 PM ET"

_MONDAY, _THURSDAY, _FRIDAY, _SATURDAY, _SUNDAY = 0, 3, 4, 5, 6


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MarketHoliday:
    """休市日或提早收盤日。"""

    date: date
    name: str
    early_close: bool = False


@dataclass(frozen=True)
class TodaySchedule:
    state: MarketState
    schedule: str
    holiday_name: str | None = None


# ---------------------------------------------------------------------------
# Calendar Helpers (pure)
# ---------------------------------------------------------------------------


def nth_weekday(year: int, month: int, weekday: int, nth: int) -> date:
    """該月第 nth 個 weekday（0=Monday）。"""
    first = date(year, month, 1)
    offset = (weekday - first.weekday()) % 7
    return first + timedelta(days=offset + 7 * (nth - 1))


def last_weekday(year: int, month: int, weekday: int) -> date:
    """該月最後一個 weekday（0=Monday）。"""
    next_month = date(year + month // 12, month % 12 + 1, 1)
    last = next_month - timedelta(days=1)
    return last - timedelta(days=(last.weekday() - weekday) % 7)


def easter_sunday(year: int) -> date:
    """Anonymous Gregorian algorithm (Meeus/Jones/Butcher)."""
    a = year % 19
    b, c = divmod(year, 100)
    d, e = divmod(b, 4)
    f = (b + 8) // 25
    g = (b - f + 1) // 3
    h = (19 * a + b - d - g + 15) % 30
    i, k = divmod(c, 4)
    l = (32 + 2 * e + 2 * i - h - k) % 7  # noqa: E741
    m = (a + 11 * h + 22 * l) // 451
    month, day = divmod(h + l - 7 * m + 114, 31)
    return date(year, month, day + 1)


def _observed(year: int, month: int, day: int, name: str) -> MarketHoliday:
    actual = date(year, month, day)
    if actual.weekday() == _SUNDAY:
        return MarketHoliday(actual + timedelta(days=1), f"{name} (Observed)")
    if actual.weekday() == _SATURDAY:
        return MarketHoliday(actual - timedelta(days=1), f"{name} (Observed)")
    return MarketHoliday(actual, name)


def holidays_for_year(year: int) -> list[MarketHoliday]:
    """回傳該年所有休市日與提早收盤日，依日期排序。"""
    thanksgiving = nth_weekday(year, 11, _THURSDAY, 4)
    holidays = [
        _observed(year, 1, 1, "New Year's Day"),
        _observed(year, 6, 19, "Juneteenth"),
        _observed(year, 7, 4, "Independence Day"),
        _observed(year, 12, 25, "Christmas Day"),
        MarketHoliday(nth_weekday(year, 1, _MONDAY, 3), "Martin Luther King Jr. Day"),
        MarketHoliday(nth_weekday(year, 2, _MONDAY, 3), "Presidents' Day"),
        MarketHoliday(easter_sunday(year) - timedelta(days=2), "Good Friday"),
        MarketHoliday(last_weekday(year, 5, _MONDAY), "Memorial Day"),
        MarketHoliday(nth_weekday(year, 9, _MONDAY, 1), "Labor Day"),
        MarketHoliday(thanksgiving, "Thanksgiving Day"),
        MarketHoliday(
            thanksgiving + timedelta(days=1), "Day After Thanksgiving", early_close=True
        ),
    ]

    # 7/3 提早收盤：僅當 7/4 落在週二至週五
    july4 = date(year, 7, 4)
    if 1 <= july4.weekday() <= _FRIDAY:
        holidays.append(
            MarketHoliday(
                july4 - timedelta(days=1),
                "Day Before Independence Day",
                early_close=True,
            )
        )

    # 平安夜提早收盤：12/24 為平日且聖誕節不落在週六（否則 12/24 即為補假）
    christmas_eve = date(year, 12, 24)
    if christmas_eve.weekday() <= _FRIDAY and date(year, 12, 25).weekday() != _SATURDAY:
        holidays.append(MarketHoliday(christmas_eve, "Christmas Eve", early_close=True))

    for iso_day, name in SPECIAL_CLOSURES.items():
        special = date.fromisoformat(iso_day)
        if special.year == year:
            holidays.append(MarketHoliday(special, name))

    return sorted(holidays, key=lambda h: h.date)


def _minutes_since_midnight(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def session_for_minutes(minutes: int, early_close: bool = False) -> MarketState:
    """依美東時間的分鐘數判斷時段（不考慮週末與假日）。"""
    close_minutes = EARLY_CLOSE_MINUTES if early_close else REGULAR_CLOSE_MINUTES
    if minutes < PRE_MARKET_OPEN_MINUTES:
        return MarketState.CLOSED
    if minutes < REGULAR_OPEN_MINUTES:
        return MarketState.PRE_MARKET
    if minutes < close_minutes:
        return MarketState.OPEN
    if not early_close and minutes < AFTER_HOURS_CLOSE_MINUTES:
        return MarketState.AFTER_HOURS
    return MarketState.CLOSED


def _schedule_string(state: MarketState, early_close: bool) -> str:
    if state == MarketState.PRE_MARKET:
        return PRE_MARKET_SCHEDULE
    if state == MarketState.AFTER_HOURS:
        return AFTER_HOURS_SCHEDULE
    return EARLY_CLOSE_SCHEDULE if early_close else REGULAR_SCHEDULE


def utc_now() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# MarketSchedule
# ---------------------------------------------------------------------------


class MarketSchedule:
    """以注入的時鐘計算今日交易時段與下一個休市日。"""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock

    def now_eastern(self) -> datetime:
        return self._clock().astimezone(EASTERN)

    def is_weekend(self) -> bool:
        return self.now_eastern().weekday() >= _SATURDAY

    def get_holidays_for_year(self, year: int) -> list[MarketHoliday]:
        return holidays_for_year(year)

    def get_today_schedule(self) -> TodaySchedule:
        now = self.now_eastern()
        if now.weekday() >= _SATURDAY:
            return TodaySchedule(MarketState.CLOSED, "Closed - Weekend")

        today = now.date()
        holiday = next(
            (h for h in holidays_for_year(today.year) if h.date == today), None
        )
        if holiday is None:
            state = session_for_minutes(_minutes_since_midnight(now))
            return TodaySchedule(state, _schedule_string(state, early_close=False))

        if holiday.early_close:
            state = session_for_minutes(_minutes_since_midnight(now), early_close=True)
            return TodaySchedule(
                state, _schedule_string(state, early_close=True), holiday.name
            )

        return TodaySchedule(MarketState.CLOSED, "Closed", holiday.name)

    def current_session(self) -> MarketState:
        """純時間判斷的時段（忽略週末與假日），供 HTTP 重試閘門使用。"""
        return session_for_minutes(_minutes_since_midnight(self.now_eastern()))

    def get_next_holiday(self) -> MarketHoliday | None:
        """今天之後第一個全日休市日（略過提早收盤日），掃描今年與明年。"""
        today = self.now_eastern().date()
        candidates = holidays_for_year(today.year) + holidays_for_year(today.year + 1)
        return next(
            (h for h in candidates if h.date > today and not h.early_close), None
        )
