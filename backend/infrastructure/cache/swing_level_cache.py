"""
Infrastructure — 波段突破 / 跌破價位快取。
"""

from typing import ClassVar

from domain.constants import SWING_LEVEL_CACHE_FILE
from domain.entities import SwingLevelCacheData, SwingLevelEntry
from domain.enums import CacheKind, EpochKind
from infrastructure.cache.base import CacheManager


class SwingLevelCacheManager(CacheManager[SwingLevelCacheData, SwingLevelEntry]):
    kind: ClassVar[CacheKind] = CacheKind.SWING_LEVEL
    filename: ClassVar[str] = SWING_LEVEL_CACHE_FILE
    envelope_model: ClassVar[type[SwingLevelCacheData]] = SwingLevelCacheData
    epoch_kind: ClassVar[EpochKind] = EpochKind.QUARTER_RANGE
    daily_refresh: ClassVar[bool] = True

    def get_entry(self, symbol: str) -> SwingLevelEntry | None:
        return self.get(symbol)

    def set_entry(self, symbol: str, entry: SwingLevelEntry) -> None:
        self.set(symbol, entry.model_copy())

    def get_all_entries(self) -> dict[str, SwingLevelEntry]:
        return self.get_all()

    def clear_for_new_range(self, quarter_range: str) -> None:
        self.clear_for(quarter_range)
