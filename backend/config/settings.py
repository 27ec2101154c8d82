"""
Config — 從環境變數覆寫 domain 常數，並建立預設標的設定。
在應用程式啟動時呼叫一次 init_settings()。
"""

import os

from domain import constants
from domain.entities import TickerConfig
from logging_config import get_logger

logger = get_logger(__name__)


def _env_symbols(name: str) -> list[str] | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    return [s.strip().upper() for s in raw.split(",") if s.strip()]


def init_settings() -> None:
    """Override domain constants from environment. Call once at startup."""
    cache_dir = os.getenv("CACHE_DIR")
    if cache_dir:
        constants.CACHE_DIR = cache_dir

    delay = os.getenv("BACKFILL_DELAY_SECONDS")
    if delay:
        try:
            constants.BACKFILL_DELAY_SECONDS = max(0.0, float(delay))
        except ValueError:
            logger.warning("BACKFILL_DELAY_SECONDS 格式錯誤（%s），沿用預設值。", delay)


def load_ticker_config() -> TickerConfig:
    """WATCHLIST / UNIVERSE / INDEX_SYMBOLS / ALWAYS_OPEN_SYMBOLS（逗號分隔）覆寫預設值。"""
    watchlist = _env_symbols("WATCHLIST")
    index_symbols = _env_symbols("INDEX_SYMBOLS")
    always_open = _env_symbols("ALWAYS_OPEN_SYMBOLS")
    return TickerConfig(
        watchlist=(
            watchlist if watchlist is not None else list(constants.DEFAULT_WATCHLIST)
        ),
        universe=_env_symbols("UNIVERSE") or [],
        index_symbols=(
            index_symbols
            if index_symbols is not None
            else list(constants.DEFAULT_INDEX_SYMBOLS)
        ),
        always_open_symbols=(
            always_open
            if always_open is not None
            else list(constants.DEFAULT_ALWAYS_OPEN_SYMBOLS)
        ),
        closed_market_symbol=constants.CLOSED_MARKET_SYMBOL,
    )
