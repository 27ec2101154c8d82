"""
Infrastructure — 限流並行對映 (throttled fan-out)。
同時在飛行中的呼叫不超過 max_concurrency；每完成一個、補位前先等待 delay 秒
（每個補位各自延遲，而非全域固定間隔），暖機後吞吐約為 max_concurrency / delay。
回傳 None 或拋出例外的 key 直接略過，不視為錯誤。
"""

import time
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import TypeVar

from domain.constants import (
    THROTTLE_BACKFILL_CONCURRENCY,
    THROTTLE_BACKFILL_DELAY,
    THROTTLE_DEFAULT_CONCURRENCY,
    THROTTLE_DEFAULT_DELAY,
    THROTTLE_FINNHUB_CONCURRENCY,
    THROTTLE_FINNHUB_DELAY,
)
from logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_EXHAUSTED = object()


@dataclass(frozen=True)
class ThrottleProfile:
    max_concurrency: int
    delay: float  # seconds, before each replacement launch


DEFAULT = ThrottleProfile(THROTTLE_DEFAULT_CONCURRENCY, THROTTLE_DEFAULT_DELAY)
# 背景回填：單一併發、慢速，避免觸發 upstream 限流
BACKFILL = ThrottleProfile(THROTTLE_BACKFILL_CONCURRENCY, THROTTLE_BACKFILL_DELAY)
FINNHUB_BACKFILL = ThrottleProfile(
    THROTTLE_FINNHUB_CONCURRENCY, THROTTLE_FINNHUB_DELAY
)


def throttled_map(
    keys: Iterable[str],
    operation: Callable[[str], T | None],
    max_concurrency: int = THROTTLE_DEFAULT_CONCURRENCY,
    delay: float = THROTTLE_DEFAULT_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> dict[str, T]:
    """對每個 key 執行 operation，回傳 {key: 非 None 結果}。重複的 key 只執行一次。"""
    unique_keys = list(dict.fromkeys(keys))
    results: dict[str, T] = {}
    if not unique_keys:
        return results

    workers = max(1, min(max_concurrency, len(unique_keys)))
    remaining = iter(unique_keys)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        in_flight: dict[Future, str] = {}
        for _ in range(workers):
            key = next(remaining)
            in_flight[pool.submit(operation, key)] = key

        while in_flight:
            done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
            for future in done:
                key = in_flight.pop(future)
                try:
                    value = future.result()
                except Exception as exc:
                    logger.debug("throttled_map：%s 執行失敗，略過。%s", key, exc)
                    value = None
                if value is not None:
                    results[key] = value

                next_key = next(remaining, _EXHAUSTED)
                if next_key is _EXHAUSTED:
                    continue
                if delay > 0:
                    sleep(delay)
                in_flight[pool.submit(operation, next_key)] = next_key  # type: ignore[arg-type]

    return results


def throttled_map_with_profile(
    keys: Iterable[str],
    operation: Callable[[str], T | None],
    profile: ThrottleProfile = DEFAULT,
) -> dict[str, T]:
    return throttled_map(
        keys, operation, max_concurrency=profile.max_concurrency, delay=profile.delay
    )
