"""
Infrastructure — 區間最高收盤價快取。
滾動季度區間改變時整份清空；另有每日刷新。
"""

from typing import ClassVar

from domain.constants import HIGHEST_CLOSE_CACHE_FILE
from domain.entities import HighestCloseCacheData
from domain.enums import CacheKind, EpochKind
from infrastructure.cache.base import CacheManager


class HighestCloseCacheManager(CacheManager[HighestCloseCacheData, float]):
    kind: ClassVar[CacheKind] = CacheKind.HIGHEST_CLOSE
    filename: ClassVar[str] = HIGHEST_CLOSE_CACHE_FILE
    envelope_model: ClassVar[type[HighestCloseCacheData]] = HighestCloseCacheData
    epoch_kind: ClassVar[EpochKind] = EpochKind.QUARTER_RANGE
    daily_refresh: ClassVar[bool] = True

    def get_highest_close(self, symbol: str) -> float | None:
        return self.get(symbol)

    def set_highest_close(self, symbol: str, price: float) -> None:
        self.set(symbol, price)

    def get_all_prices(self) -> dict[str, float]:
        return self.get_all()

    def clear_for_new_range(self, quarter_range: str) -> None:
        self.clear_for(quarter_range)
