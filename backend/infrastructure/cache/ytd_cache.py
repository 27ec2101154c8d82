"""
Infrastructure — YTD 基準價快取（前一年度最後收盤價）。
跨年時整份清空。
"""

from typing import ClassVar

from domain.constants import YTD_CACHE_FILE
from domain.entities import YTDCacheData
from domain.enums import CacheKind, EpochKind
from infrastructure.cache.base import CacheManager


class YTDCacheManager(CacheManager[YTDCacheData, float]):
    kind: ClassVar[CacheKind] = CacheKind.YTD
    filename: ClassVar[str] = YTD_CACHE_FILE
    envelope_model: ClassVar[type[YTDCacheData]] = YTDCacheData
    epoch_kind: ClassVar[EpochKind] = EpochKind.YEAR

    def get_start_price(self, symbol: str) -> float | None:
        return self.get(symbol)

    def set_start_price(self, symbol: str, price: float) -> None:
        self.set(symbol, price)

    def get_all_prices(self) -> dict[str, float]:
        return self.get_all()

    def needs_year_rollover(self) -> bool:
        return self.needs_invalidation()

    def clear_for_new_year(self) -> None:
        self.clear_for()
