"""Infrastructure — 日線 RSI 快取，每日刷新。"""

from typing import ClassVar

from domain.constants import RSI_CACHE_FILE
from domain.entities import RSICacheData
from domain.enums import CacheKind, EpochKind
from infrastructure.cache.base import CacheManager


class RSICacheManager(CacheManager[RSICacheData, float]):
    kind: ClassVar[CacheKind] = CacheKind.RSI
    filename: ClassVar[str] = RSI_CACHE_FILE
    envelope_model: ClassVar[type[RSICacheData]] = RSICacheData
    epoch_kind: ClassVar[EpochKind] = EpochKind.DAILY

    def get_rsi(self, symbol: str) -> float | None:
        return self.get(symbol)

    def set_rsi(self, symbol: str, value: float) -> None:
        self.set(symbol, value)

    def get_all_values(self) -> dict[str, float]:
        return self.get_all()
