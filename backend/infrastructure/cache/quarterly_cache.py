"""
Infrastructure — 季末收盤價快取 (quarter-id → symbol → price)。
沒有週期欄位；離開滾動視窗的季度以 prune_old_quarters() 移除。
"""

from collections.abc import Iterable
from typing import ClassVar

from domain.constants import QUARTERLY_CACHE_FILE
from domain.entities import QuarterlyCacheData
from domain.enums import CacheKind, EpochKind
from infrastructure.cache.base import CacheManager
from logging_config import get_logger

logger = get_logger(__name__)


class QuarterlyCacheManager(CacheManager[QuarterlyCacheData, dict[str, float]]):
    kind: ClassVar[CacheKind] = CacheKind.QUARTERLY
    filename: ClassVar[str] = QUARTERLY_CACHE_FILE
    envelope_model: ClassVar[type[QuarterlyCacheData]] = QuarterlyCacheData
    # 無週期欄位；以季度集合（滾動區間）決定保留範圍
    epoch_kind: ClassVar[EpochKind] = EpochKind.QUARTER_RANGE

    def get_price(self, symbol: str, quarter: str) -> float | None:
        with self._lock:
            return self._data().get(quarter, {}).get(symbol)

    def set_prices(self, quarter: str, prices: dict[str, float]) -> None:
        """合併寫入單一季度的價格（同 key 後寫者勝）。"""
        if not prices:
            return
        with self._lock:
            self._ensure_envelope()
            self._data().setdefault(quarter, {}).update(prices)
            self._stamp()

    def get_missing_for_quarter(
        self, quarter: str, symbols: Iterable[str]
    ) -> list[str]:
        with self._lock:
            existing = self._data().get(quarter, {})
            return [s for s in symbols if s not in existing]

    def get_all_quarter_prices(self) -> dict[str, dict[str, float]]:
        return self.get_all()

    def prune_old_quarters(self, keeping: Iterable[str]) -> list[str]:
        """移除不在 keeping 內的季度，回傳被移除的季度 id。"""
        active = set(keeping)
        with self._lock:
            self._ensure_loaded()
            data = self._data()
            removed = [q for q in data if q not in active]
            for quarter in removed:
                del data[quarter]
            if removed:
                self._stamp()
        if removed:
            logger.info("季度快取已移除過期季度：%s", ", ".join(sorted(removed)))
        return removed

    def clear_all_quarters(self) -> None:
        self.clear()

    def needs_invalidation(self, current_epoch=None) -> bool:
        return False
