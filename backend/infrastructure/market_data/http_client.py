"""
Infrastructure — Upstream HTTP 傳輸層 (curl_cffi)。
負責速率限制、同 key 請求去重、短期 L1 快取與「時段感知」重試。

重試規則（tenacity）：
- 最多 2 次嘗試，固定間隔 0.5 秒。
- 針對網路例外與非 2xx 回應重試，但 429 不重試（已被限流，重試只會更糟）。
- 僅在正規盤 / 休市時段重試；盤前、盤後資料優先度低，直接放棄。
所有公開函式皆不拋出例外，失敗一律回傳 None。
"""

import threading
import time
from collections.abc import Callable
from typing import Any, TypeVar

from cachetools import TTLCache
from curl_cffi import requests as cffi_requests
from curl_cffi.curl import CurlError
from tenacity import RetryCallState, retry, stop_after_attempt, wait_fixed

from domain.constants import (
    CHART_CACHE_MAXSIZE,
    CHART_CACHE_TTL,
    CURL_CFFI_IMPERSONATE,
    HTTP_RETRY_ATTEMPTS,
    HTTP_RETRY_WAIT,
    HTTP_STATUS_TOO_MANY_REQUESTS,
    UPSTREAM_REQUEST_TIMEOUT,
    YAHOO_RATE_LIMIT_CPS,
)
from domain.enums import MarketState
from domain.market_schedule import MarketSchedule
from logging_config import get_logger

T = TypeVar("T")

logger = get_logger(__name__)

_RETRYABLE_EXCEPTIONS = (CurlError, ConnectionError, OSError)
_RETRY_SESSIONS = frozenset({MarketState.OPEN, MarketState.CLOSED})

_schedule = MarketSchedule()


# ---------------------------------------------------------------------------
# Rate Limiter：限制 Yahoo 呼叫頻率，避免被封鎖
# ---------------------------------------------------------------------------


class RateLimiter:
    """Thread-safe rate limiter，確保呼叫間隔不低於 min_interval。"""

    def __init__(self, calls_per_second: float = YAHOO_RATE_LIMIT_CPS):
        self._min_interval = 1.0 / calls_per_second
        self._lock = threading.Lock()
        self._last_call = 0.0

    def wait(self) -> None:
        with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_call
            if elapsed < self._min_interval:
                time.sleep(self._min_interval - elapsed)
            self._last_call = time.monotonic()


_rate_limiter = RateLimiter(calls_per_second=YAHOO_RATE_LIMIT_CPS)


# ---------------------------------------------------------------------------
# Session-aware Retry
# ---------------------------------------------------------------------------


def is_retry_allowed() -> bool:
    """盤前 / 盤後不重試（純時間判斷，忽略假日）。"""
    return _schedule.current_session() in _RETRY_SESSIONS


def is_retryable_status(status_code: int) -> bool:
    if status_code == HTTP_STATUS_TOO_MANY_REQUESTS:
        return False
    return not 200 <= status_code < 300


def _should_retry(retry_state: RetryCallState) -> bool:
    outcome = retry_state.outcome
    if outcome is None or not is_retry_allowed():
        return False
    if outcome.failed:
        return isinstance(outcome.exception(), _RETRYABLE_EXCEPTIONS)
    return is_retryable_status(outcome.result().status_code)


def _return_last_outcome(retry_state: RetryCallState) -> Any:
    """重試用盡：回傳最後一次的回應（或重新拋出最後的例外）。"""
    if retry_state.outcome is None:
        raise RuntimeError("retry finished without an outcome")
    return retry_state.outcome.result()


_session_aware_retry = retry(
    stop=stop_after_attempt(HTTP_RETRY_ATTEMPTS),
    wait=wait_fixed(HTTP_RETRY_WAIT),
    retry=_should_retry,
    retry_error_callback=_return_last_outcome,
)


def _get_session() -> cffi_requests.Session:
    """建立 curl_cffi Session，模擬 Chrome TLS 指紋避免被 Yahoo 阻擋。"""
    return cffi_requests.Session(impersonate=CURL_CFFI_IMPERSONATE)


@_session_aware_retry
def _http_get(url: str, params: dict | None, headers: dict | None):
    _rate_limiter.wait()
    with _get_session() as session:
        return session.get(
            url, params=params, headers=headers, timeout=UPSTREAM_REQUEST_TIMEOUT
        )


def fetch_json(
    url: str, params: dict | None = None, headers: dict | None = None
) -> dict | None:
    """GET 並解碼 JSON。非 2xx、網路錯誤、解碼失敗皆回傳 None。"""
    try:
        response = _http_get(url, params, headers)
    except Exception as exc:
        logger.debug("HTTP 請求失敗 %s：%s", url, exc)
        return None

    if not 200 <= response.status_code < 300:
        logger.debug("HTTP %d：%s", response.status_code, url)
        return None

    try:
        payload = response.json()
    except ValueError as exc:
        logger.debug("JSON 解碼失敗 %s：%s", url, exc)
        return None
    return payload if isinstance(payload, dict) else None


# ---------------------------------------------------------------------------
# In-flight 重複請求去重：避免同一 key 並發觸發多次 upstream 呼叫
# ---------------------------------------------------------------------------
_inflight_lock = threading.Lock()
_inflight_events: dict[str, threading.Event] = {}


def _deduped_fetch(
    key: str, fetcher: Callable[[], T], result_getter: Callable[[], T]
) -> T:
    """確保同一 key 的 upstream 呼叫在任意時刻只有一個在飛行中。

    若已有相同 key 的請求進行中，等待其完成後透過 result_getter 取用結果（讀 L1 快取）。
    """
    with _inflight_lock:
        if key in _inflight_events:
            event = _inflight_events[key]
            should_wait = True
        else:
            event = threading.Event()
            _inflight_events[key] = event
            should_wait = False

    if should_wait:
        event.wait()
        return result_getter()

    try:
        return fetcher()
    finally:
        # set() before pop(): late arrivals read L1 instead of calling upstream again
        event.set()
        with _inflight_lock:
            _inflight_events.pop(key, None)


# ---------------------------------------------------------------------------
# L1 快取（記憶體）：同一批次內相同的 chart 請求只打一次
# ---------------------------------------------------------------------------
_json_cache: TTLCache = TTLCache(maxsize=CHART_CACHE_MAXSIZE, ttl=CHART_CACHE_TTL)
_json_cache_lock = threading.Lock()


def _cache_key(url: str, params: dict | None) -> str:
    query = "&".join(f"{k}={v}" for k, v in sorted((params or {}).items()))
    return f"{url}?{query}"


def _cache_get(key: str) -> dict | None:
    with _json_cache_lock:
        return _json_cache.get(key)


def cached_fetch_json(url: str, params: dict | None = None) -> dict | None:
    """L1 → 去重 → fetch_json。失敗結果不寫入快取。"""
    key = _cache_key(url, params)
    cached = _cache_get(key)
    if cached is not None:
        return cached

    def _fetch() -> dict | None:
        payload = fetch_json(url, params)
        if payload is not None:
            with _json_cache_lock:
                _json_cache[key] = payload
        return payload

    return _deduped_fetch(key, _fetch, lambda: _cache_get(key))


def clear_http_cache() -> int:
    """清除 L1 記憶體快取，回傳清除筆數。"""
    with _json_cache_lock:
        count = len(_json_cache)
        _json_cache.clear()
    logger.info("已清除 HTTP L1 快取（%d 筆）。", count)
    return count
