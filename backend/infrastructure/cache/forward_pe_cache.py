"""
Infrastructure — 季度 forward P/E 歷史快取。

與其他快取不同：空 dict 是合法的快取狀態，代表「已成功抓取、上游無資料」，
與「從未抓取」（key 不存在）區分，回填時不會重複抓取這類標的。
"""

from typing import ClassVar

from domain.constants import FORWARD_PE_CACHE_FILE
from domain.entities import ForwardPECacheData
from domain.enums import CacheKind, EpochKind
from infrastructure.cache.base import CacheManager


class ForwardPECacheManager(CacheManager[ForwardPECacheData, dict[str, float]]):
    kind: ClassVar[CacheKind] = CacheKind.FORWARD_PE
    filename: ClassVar[str] = FORWARD_PE_CACHE_FILE
    envelope_model: ClassVar[type[ForwardPECacheData]] = ForwardPECacheData
    epoch_kind: ClassVar[EpochKind] = EpochKind.QUARTER_RANGE

    def get_forward_pe(self, symbol: str) -> dict[str, float] | None:
        return self.get(symbol)

    def set_forward_pe(self, symbol: str, quarter_pes: dict[str, float]) -> None:
        self.set(symbol, dict(quarter_pes))

    def get_all_data(self) -> dict[str, dict[str, float]]:
        return self.get_all()

    def clear_for_new_range(self, quarter_range: str) -> None:
        self.clear_for(quarter_range)
