"""
Infrastructure — EMA 快取（日 / 週 / 月 EMA 與週線穿越）。

每日刷新之外另有「週五偷看」規則：週五美東 15:30 之後，
若快取最後更新早於當天 15:30，視為需要刷新，讓週 K 線在收盤前先更新一次。
"""

from datetime import datetime, time
from typing import ClassVar

from domain.constants import EMA_CACHE_FILE, EMA_SNEAK_PEEK_MINUTES
from domain.entities import EMACacheData, EMAEntry
from domain.enums import CacheKind, EpochKind
from domain.market_schedule import EASTERN
from infrastructure.cache.base import CacheManager, parse_last_updated

_FRIDAY = 4


def _sneak_peek_cutoff(now_eastern: datetime) -> datetime:
    hours, minutes = divmod(EMA_SNEAK_PEEK_MINUTES, 60)
    return datetime.combine(now_eastern.date(), time(hours, minutes), tzinfo=EASTERN)


def is_in_sneak_peek_window(now: datetime) -> bool:
    now_eastern = now.astimezone(EASTERN)
    return now_eastern.weekday() == _FRIDAY and now_eastern >= _sneak_peek_cutoff(
        now_eastern
    )


class EMACacheManager(CacheManager[EMACacheData, EMAEntry]):
    kind: ClassVar[CacheKind] = CacheKind.EMA
    filename: ClassVar[str] = EMA_CACHE_FILE
    envelope_model: ClassVar[type[EMACacheData]] = EMACacheData
    epoch_kind: ClassVar[EpochKind] = EpochKind.DAILY

    def get_entry(self, symbol: str) -> EMAEntry | None:
        return self.get(symbol)

    def set_entry(self, symbol: str, entry: EMAEntry) -> None:
        self.set(symbol, entry.model_copy())

    def get_all_entries(self) -> dict[str, EMAEntry]:
        return self.get_all()

    def get_missing_weekly(self, candidates: list[str]) -> list[str]:
        """已有日 EMA 但缺週 EMA 的標的。"""
        with self._lock:
            data = self._data()
            return [
                s
                for s in candidates
                if s in data and data[s].day is not None and data[s].week is None
            ]

    def needs_daily_refresh(self) -> bool:
        if super().needs_daily_refresh():
            return True
        now = self._clock()
        if not is_in_sneak_peek_window(now):
            return False
        with self._lock:
            envelope = self._envelope
            stamped = parse_last_updated(envelope.last_updated) if envelope else None
        if stamped is None:
            return True
        return stamped < _sneak_peek_cutoff(now.astimezone(EASTERN))
