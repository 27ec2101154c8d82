"""
Infrastructure — 快取管理器共用骨架。
每個實例獨佔一份記憶體中的信封 (envelope)，所有讀寫皆經由同一把鎖序列化，
UI 重新整理路徑與背景回填可安全並行呼叫。

失效週期以 EpochKind 表示，每種週期對應一個判斷函式（年度 / 滾動季度區間 / 每日）。
"""

import copy
import os
import threading
from collections.abc import Callable, Iterable
from datetime import date, datetime
from typing import Any, ClassVar, Generic, TypeVar

from domain import constants
from domain.analysis import quarter_range_id
from domain.entities import CacheEnvelope
from domain.enums import CacheKind, EpochKind
from domain.market_schedule import EASTERN, utc_now
from infrastructure.persistence.cache_storage import CacheStorage
from logging_config import get_logger

logger = get_logger(__name__)

E = TypeVar("E", bound=CacheEnvelope)
V = TypeVar("V")

Clock = Callable[[], datetime]


# ---------------------------------------------------------------------------
# Epoch Rules：一種週期一組（目前週期、是否過期）函式
# ---------------------------------------------------------------------------


def eastern_date(moment: datetime) -> date:
    return moment.astimezone(EASTERN).date()


def parse_last_updated(value: str) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return None
    return parsed


def _year_epoch(now: datetime) -> int:
    return now.astimezone(EASTERN).year


def _quarter_range_epoch(now: datetime) -> str:
    return quarter_range_id(eastern_date(now))


def _daily_epoch(now: datetime) -> date:
    return eastern_date(now)


def _year_is_stale(envelope: CacheEnvelope, epoch: Any) -> bool:
    return getattr(envelope, "year", None) != epoch


def _quarter_range_is_stale(envelope: CacheEnvelope, epoch: Any) -> bool:
    return getattr(envelope, "quarter_range", None) != epoch


def _day_is_stale(envelope: CacheEnvelope, epoch: Any) -> bool:
    """last_updated 為空或無法解析，或與 epoch（美東日期）不同日，即視為過期。"""
    stamped = parse_last_updated(envelope.last_updated)
    if stamped is None:
        return True
    return eastern_date(stamped) != epoch


EPOCH_OF_NOW: dict[EpochKind, Callable[[datetime], Any]] = {
    EpochKind.YEAR: _year_epoch,
    EpochKind.QUARTER_RANGE: _quarter_range_epoch,
    EpochKind.DAILY: _daily_epoch,
}

IS_STALE: dict[EpochKind, Callable[[CacheEnvelope, Any], bool]] = {
    EpochKind.YEAR: _year_is_stale,
    EpochKind.QUARTER_RANGE: _quarter_range_is_stale,
    EpochKind.DAILY: _day_is_stale,
}


# ---------------------------------------------------------------------------
# CacheManager
# ---------------------------------------------------------------------------


class CacheManager(Generic[E, V]):
    """
    泛型快取管理器：Uninitialized → Loaded → {clean | dirty}。

    子類別宣告：
        kind / filename / envelope_model：快取種類、檔名與信封型別
        epoch_kind：主要失效週期
        daily_refresh：是否另有每日刷新（僅 QUARTER_RANGE 快取需要宣告）
    """

    kind: ClassVar[CacheKind]
    filename: ClassVar[str]
    envelope_model: ClassVar[type[CacheEnvelope]]
    epoch_kind: ClassVar[EpochKind]
    daily_refresh: ClassVar[bool] = False

    def __init__(self, cache_dir: str | None = None, clock: Clock = utc_now):
        directory = cache_dir or constants.CACHE_DIR
        self._storage: CacheStorage = CacheStorage(
            os.path.join(directory, self.filename), self.envelope_model
        )
        self._clock = clock
        self._lock = threading.RLock()
        self._envelope: E | None = None
        self._loaded = False
        self._dirty = False

    # -- lifecycle ----------------------------------------------------------

    @property
    def path(self) -> str:
        return self._storage.path

    @property
    def is_loaded(self) -> bool:
        with self._lock:
            return self._loaded

    @property
    def is_dirty(self) -> bool:
        with self._lock:
            return self._dirty

    def load(self) -> None:
        """從磁碟載入；重複呼叫不會覆蓋已在記憶體中的狀態。"""
        with self._lock:
            self._ensure_loaded()

    def save(self, force: bool = False) -> bool:
        """寫回磁碟。尚無信封時為 no-op；寫入失敗保留記憶體狀態（仍為 dirty）。"""
        with self._lock:
            self._ensure_loaded()
            if self._envelope is None:
                return False
            if not self._dirty and not force:
                return True
            if not self._storage.save(self._envelope):
                return False
            self._dirty = False
            return True

    # -- reads --------------------------------------------------------------

    def get(self, key: str) -> V | None:
        with self._lock:
            value = self._data().get(key)
            return copy.deepcopy(value)

    def get_missing(self, candidates: Iterable[str]) -> list[str]:
        """回傳 candidates 中尚未存在的 key（保留順序）。未載入視為全部缺失。"""
        with self._lock:
            data = self._data()
            return [key for key in candidates if key not in data]

    def get_all(self) -> dict[str, V]:
        with self._lock:
            return copy.deepcopy(self._data())

    @property
    def last_updated(self) -> str | None:
        with self._lock:
            self._ensure_loaded()
            return self._envelope.last_updated if self._envelope else None

    # -- writes -------------------------------------------------------------

    def set(self, key: str, value: V) -> None:
        with self._lock:
            self._ensure_envelope()
            self._data()[key] = value
            self._stamp()

    def set_many(self, values: dict[str, V]) -> None:
        if not values:
            return
        with self._lock:
            self._ensure_envelope()
            self._data().update(values)
            self._stamp()

    def clear(self) -> None:
        """清空全部資料並重建當前週期的信封。"""
        with self._lock:
            self._ensure_loaded()
            self._envelope = self._new_envelope()
            self._dirty = True

    # -- invalidation -------------------------------------------------------

    def current_epoch(self) -> Any:
        return EPOCH_OF_NOW[self.epoch_kind](self._clock())

    def needs_invalidation(self, current_epoch: Any = None) -> bool:
        """尚無信封或週期改變時為 True，直到 clear_for() 被呼叫。"""
        epoch = self.current_epoch() if current_epoch is None else current_epoch
        with self._lock:
            self._ensure_loaded()
            if self._envelope is None:
                return True
            return IS_STALE[self.epoch_kind](self._envelope, epoch)

    def clear_for(self, new_epoch: Any = None) -> None:
        epoch = self.current_epoch() if new_epoch is None else new_epoch
        with self._lock:
            self._ensure_loaded()
            if self.epoch_kind == EpochKind.DAILY:
                # 蓋上清除時間，清除後 needs_invalidation() 即為 False
                self._ensure_envelope()
                self._data().clear()
                self._stamp()
                logger.info("快取 [%s] 已跨日清空。", self.kind.value)
                return
            self._envelope = self._new_envelope(epoch)
            self._dirty = True
        logger.info("快取 [%s] 週期變更，已清空（epoch=%s）。", self.kind.value, epoch)

    def needs_daily_refresh(self) -> bool:
        if not (self.daily_refresh or self.epoch_kind == EpochKind.DAILY):
            return False
        today = _daily_epoch(self._clock())
        with self._lock:
            self._ensure_loaded()
            if self._envelope is None:
                return True
            return _day_is_stale(self._envelope, today)

    def clear_for_daily_refresh(self) -> None:
        with self._lock:
            self._ensure_loaded()
            self._clear_entries_for_daily_refresh()

    # -- internals (caller holds the lock) -----------------------------------

    def _ensure_loaded(self) -> None:
        """寫入前先載入磁碟內容，避免以空信封覆蓋既有檔案。"""
        if self._loaded:
            return
        self._envelope = self._storage.load()  # type: ignore[assignment]
        self._loaded = True
        self._dirty = False
        logger.debug("快取 [%s] 已載入（%d 筆）。", self.kind.value, len(self._data()))

    def _data(self) -> dict:
        if self._envelope is None:
            return {}
        return getattr(self._envelope, self._envelope.DATA_FIELD)

    def _epoch_fields(self, epoch: Any) -> dict:
        field = self.envelope_model.EPOCH_FIELD
        return {field: epoch} if field else {}

    def _new_envelope(self, epoch: Any = None) -> E:
        if epoch is None and self.envelope_model.EPOCH_FIELD:
            epoch = self.current_epoch()
        return self.envelope_model(  # type: ignore[return-value]
            last_updated=self._clock().isoformat(), **self._epoch_fields(epoch)
        )

    def _ensure_envelope(self) -> None:
        self._ensure_loaded()
        if self._envelope is None:
            self._envelope = self._new_envelope()

    def _stamp(self) -> None:
        if self._envelope is None:
            raise RuntimeError(
                f"快取 [{self.kind.value}] 尚未建立信封，無法更新時間戳。"
            )
        self._envelope.last_updated = self._clock().isoformat()
        self._dirty = True

    def _clear_entries_for_daily_refresh(self) -> None:
        if self._envelope is None:
            return
        self._data().clear()
        self._envelope.last_updated = ""
        self._dirty = True
        logger.info("快取 [%s] 每日刷新，已清空資料。", self.kind.value)
