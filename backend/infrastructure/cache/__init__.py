"""infrastructure.cache sub-package — the seven persisted market-data caches."""

from infrastructure.cache.base import CacheManager  # noqa: F401
from infrastructure.cache.ema_cache import EMACacheManager  # noqa: F401
from infrastructure.cache.forward_pe_cache import ForwardPECacheManager  # noqa: F401
from infrastructure.cache.highest_close_cache import (  # noqa: F401
    HighestCloseCacheManager,
)
from infrastructure.cache.quarterly_cache import QuarterlyCacheManager  # noqa: F401
from infrastructure.cache.rsi_cache import RSICacheManager  # noqa: F401
from infrastructure.cache.swing_level_cache import SwingLevelCacheManager  # noqa: F401
from infrastructure.cache.ytd_cache import YTDCacheManager  # noqa: F401
