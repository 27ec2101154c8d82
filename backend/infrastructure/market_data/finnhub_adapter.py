"""
Optional Finnhub candle adapter for US equity history.
Activated only when FINNHUB_API_KEY env var is set; the key travels in the
X-Finnhub-Token header, never in the query string.
Includes a circuit breaker (see FINNHUB_CIRCUIT_BREAKER_* in domain.constants).
"""

import os
import time

import requests

from domain.constants import (
    FINNHUB_CANDLE_URL,
    FINNHUB_CIRCUIT_BREAKER_COOLDOWN,
    FINNHUB_CIRCUIT_BREAKER_THRESHOLD,
    FINNHUB_REQUEST_TIMEOUT,
    FINNHUB_TOKEN_HEADER,
)
from logging_config import get_logger

logger = get_logger(__name__)

_consecutive_failures = 0
_circuit_open_until: float = 0


def _get_api_key() -> str | None:
    return os.getenv("FINNHUB_API_KEY") or None


def is_available() -> bool:
    """Returns True if the key is set and the circuit breaker is not open."""
    if not _get_api_key():
        return False
    if time.time() < _circuit_open_until:
        logger.debug("Finnhub circuit breaker open, skipping (source=finnhub)")
        return False
    return True


def is_routable(symbol: str) -> bool:
    """Finnhub 免費方案只涵蓋美股個股：排除指數 (^)、期貨 / 外匯 (=)、加密貨幣 (-USD)。"""
    return not (
        symbol.startswith("^") or "=" in symbol or symbol.upper().endswith("-USD")
    )


def _record_failure(symbol: str, reason: object) -> None:
    global _consecutive_failures, _circuit_open_until
    _consecutive_failures += 1
    if _consecutive_failures >= FINNHUB_CIRCUIT_BREAKER_THRESHOLD:
        _circuit_open_until = time.time() + FINNHUB_CIRCUIT_BREAKER_COOLDOWN
        logger.warning(
            "Finnhub circuit breaker opened after %d failures (source=finnhub)",
            _consecutive_failures,
        )
    else:
        logger.warning(
            "Finnhub %s K 線取得失敗 (source=finnhub, failures=%d)：%s",
            symbol,
            _consecutive_failures,
            reason,
        )


def fetch_candles(
    symbol: str, resolution: str, period1: int, period2: int
) -> tuple[list[int], list[float]] | None:
    """
    Fetch candles for a US ticker.
    Returns (timestamps, closes) or None when disabled / failed / no data.
    """
    global _consecutive_failures

    api_key = _get_api_key()
    if not api_key:
        return None

    if time.time() < _circuit_open_until:
        logger.debug(
            "Finnhub circuit breaker open, skipping %s (source=finnhub)", symbol
        )
        return None

    params = {
        "symbol": symbol,
        "resolution": resolution,
        "from": period1,
        "to": period2,
    }

    try:
        resp = requests.get(
            FINNHUB_CANDLE_URL,
            params=params,
            headers={FINNHUB_TOKEN_HEADER: api_key},
            timeout=FINNHUB_REQUEST_TIMEOUT,
        )
        resp.raise_for_status()
        payload = resp.json()
    except Exception as e:
        _record_failure(symbol, e)
        return None

    if not isinstance(payload, dict):
        _record_failure(symbol, "unexpected payload")
        return None

    closes = payload.get("c")
    timestamps = payload.get("t")
    if payload.get("s") != "ok" or not closes or not timestamps:
        # 200 OK but no candles (e.g. s=no_data); don't count as success or failure
        logger.debug("Finnhub %s 無 K 線資料 (source=finnhub)", symbol)
        return None

    _consecutive_failures = 0  # reset on success
    paired = [(int(t), float(c)) for t, c in zip(timestamps, closes) if c is not None]
    return [t for t, _ in paired], [c for _, c in paired]


def fetch_daily_candles(
    symbol: str, period1: int, period2: int
) -> tuple[list[int], list[float]] | None:
    return fetch_candles(symbol, "D", period1, period2)
