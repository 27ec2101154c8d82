"""
Domain — 季度日期計算。
季度邊界為 3/6/9/12 月底；「已完成」表示該季最後一天已經過去。
時間戳一律以 UTC 午夜換算（upstream 查詢用的 period1 / period2）。
"""

import calendar
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

from domain.constants import (
    QUARTER_END_WINDOW_DAYS_AFTER,
    QUARTER_END_WINDOW_DAYS_BEFORE,
    QUARTER_RANGE_SIZE,
)


@dataclass(frozen=True)
class QuarterInfo:
    """單一季度的識別資訊。"""

    identifier: str  # "Q4-2025"
    display_label: str  # "Q4'25"
    year: int
    quarter: int


def quarter_identifier(year: int, quarter: int) -> str:
    return f"Q{quarter}-{year}"


def quarter_display_label(year: int, quarter: int) -> str:
    return f"Q{quarter}'{year % 100:02d}"


def quarter_of_month(month: int) -> int:
    return (month - 1) // 3 + 1


def make_quarter_info(year: int, quarter: int) -> QuarterInfo:
    return QuarterInfo(
        identifier=quarter_identifier(year, quarter),
        display_label=quarter_display_label(year, quarter),
        year=year,
        quarter=quarter,
    )


def last_n_completed_quarters(today: date, count: int) -> list[QuarterInfo]:
    """回傳最近 count 個已完成的季度（最新在前），不含 today 所在季度。"""
    year, quarter = today.year, quarter_of_month(today.month)
    result: list[QuarterInfo] = []
    for _ in range(max(count, 0)):
        quarter -= 1
        if quarter == 0:
            quarter = 4
            year -= 1
        result.append(make_quarter_info(year, quarter))
    return result


def quarter_range_id(today: date, count: int = QUARTER_RANGE_SIZE) -> str:
    """滾動季度區間識別碼 "{oldest}:{newest}"，作為快取失效週期。"""
    quarters = last_n_completed_quarters(today, count)
    if not quarters:
        return ""
    return f"{quarters[-1].identifier}:{quarters[0].identifier}"


def _utc_midnight_timestamp(day: date) -> int:
    return int(datetime(day.year, day.month, day.day, tzinfo=UTC).timestamp())


def quarter_end_date(year: int, quarter: int) -> date:
    month = quarter * 3
    return date(year, month, calendar.monthrange(year, month)[1])


def quarter_end_date_range(year: int, quarter: int) -> tuple[int, int]:
    """季末前 5 天至季末後 2 天的時間戳視窗（涵蓋週末 / 假日）。"""
    end = quarter_end_date(year, quarter)
    start = end - timedelta(days=QUARTER_END_WINDOW_DAYS_BEFORE)
    stop = end + timedelta(days=QUARTER_END_WINDOW_DAYS_AFTER)
    return _utc_midnight_timestamp(start), _utc_midnight_timestamp(stop)


def quarter_start_timestamp(year: int, quarter: int) -> int:
    return _utc_midnight_timestamp(date(year, (quarter - 1) * 3 + 1, 1))


def quarter_for_date_string(value: str) -> str | None:
    """將 "YYYY-MM-DD" 對應到季度識別碼；格式錯誤回傳 None。"""
    try:
        day = date.fromisoformat(value[:10])
    except (TypeError, ValueError):
        return None
    return quarter_identifier(day.year, quarter_of_month(day.month))
