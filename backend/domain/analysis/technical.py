"""
Domain — 純粹的技術分析計算函式（EMA、RSI、波段高低點）。
不依賴任何外部服務或框架，僅接收收盤價序列並回傳結果。
可獨立測試。
"""

from dataclasses import dataclass, field

from domain.constants import EMA_PERIOD, RSI_PERIOD, SWING_THRESHOLD

# ---------------------------------------------------------------------------
# EMA
# ---------------------------------------------------------------------------


def _ema_series(closes: list[float], period: int) -> list[float]:
    """SMA 種子 + 逐筆平滑。回傳的 series[j] 對應 closes[period - 1 + j]。"""
    multiplier = 2.0 / (period + 1)
    ema = sum(closes[:period]) / period
    series = [ema]
    for close in closes[period:]:
        ema = (close - ema) * multiplier + ema
        series.append(ema)
    return series


def compute_ema(closes: list[float], period: int = EMA_PERIOD) -> float | None:
    """
    指數移動平均。以前 period 筆的簡單平均為種子，
    之後以 2/(period+1) 為乘數逐筆平滑。資料不足時回傳 None。
    """
    if period <= 0 or len(closes) < period:
        return None
    return _ema_series(closes, period)[-1]


def detect_weekly_crossover(
    closes: list[float], period: int = EMA_PERIOD
) -> int | None:
    """
    偵測最新一根 K 線由下往上穿越 EMA。
    成立時回傳穿越前連續位於 EMA 下方（含等於）的週數（≥ 1），否則回傳 None。
    """
    if period <= 0 or len(closes) < period + 1:
        return None

    series = _ema_series(closes, period)
    offset = period - 1
    last = len(series) - 1

    if not (
        closes[offset + last] > series[last]
        and closes[offset + last - 1] <= series[last - 1]
    ):
        return None

    weeks_below = 1
    for j in range(last - 2, -1, -1):
        if closes[offset + j] > series[j]:
            break
        weeks_below += 1
    return weeks_below


def count_weeks_below(closes: list[float], period: int = EMA_PERIOD) -> int | None:
    """最新收盤位於 EMA 下方（含等於）時，回傳連續在下方的週數（含最新一週）。"""
    if period <= 0 or len(closes) < period + 1:
        return None

    series = _ema_series(closes, period)
    offset = period - 1
    last = len(series) - 1

    if closes[offset + last] > series[last]:
        return None

    weeks_below = 1
    for j in range(last - 1, -1, -1):
        if closes[offset + j] > series[j]:
            break
        weeks_below += 1
    return weeks_below


# ---------------------------------------------------------------------------
# RSI
# ---------------------------------------------------------------------------


def compute_rsi(closes: list[float], period: int = RSI_PERIOD) -> float | None:
    """
    以 Wilder's Smoothed Method 計算 RSI。
    需要至少 period+1 筆收盤價。純函式，無副作用；不四捨五入。
    """
    if period <= 0 or len(closes) < period + 1:
        return None

    deltas = [closes[i] - closes[i - 1] for i in range(1, len(closes))]

    gains = [d if d > 0 else 0.0 for d in deltas[:period]]
    losses = [-d if d < 0 else 0.0 for d in deltas[:period]]
    avg_gain = sum(gains) / period
    avg_loss = sum(losses) / period

    for d in deltas[period:]:
        gain = d if d > 0 else 0.0
        loss = -d if d < 0 else 0.0
        avg_gain = (avg_gain * (period - 1) + gain) / period
        avg_loss = (avg_loss * (period - 1) + loss) / period

    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


# ---------------------------------------------------------------------------
# Swing Levels
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SwingResult:
    """波段分析結果。index 指向輸入 closes 的位置（供換算日期）。"""

    breakout_price: float | None = None
    breakout_index: int | None = None
    breakdown_price: float | None = None
    breakdown_index: int | None = None
    # (index, price) of every recorded significant high / low, in order
    significant_highs: tuple[tuple[int, float], ...] = field(default=())
    significant_lows: tuple[tuple[int, float], ...] = field(default=())


def _significant_highs(
    closes: list[float], threshold: float
) -> list[tuple[int, float]]:
    highs: list[tuple[int, float]] = []
    running_max, max_index = closes[0], 0
    for i, close in enumerate(closes):
        if close > running_max:
            running_max, max_index = close, i
        if running_max <= 0:
            continue
        if (running_max - close) / running_max >= threshold:
            highs.append((max_index, running_max))
            running_max, max_index = close, i
    return highs


def _significant_lows(
    closes: list[float], threshold: float
) -> list[tuple[int, float]]:
    lows: list[tuple[int, float]] = []
    running_min, min_index = closes[0], 0
    for i, close in enumerate(closes):
        if close < running_min:
            running_min, min_index = close, i
        if running_min <= 0:
            continue
        if (close - running_min) / running_min >= threshold:
            lows.append((min_index, running_min))
            running_min, min_index = close, i
    return lows


def analyze_swing(
    closes: list[float], threshold: float = SWING_THRESHOLD
) -> SwingResult:
    """
    單趟掃描找出顯著高點 / 低點（反轉幅度 ≥ threshold）。

    - 突破價 (breakout)：所有顯著高點中的最高者。
    - 跌破價 (breakdown)：所有顯著低點中價格「最高」者，即最近、最相關的支撐。
    同價時取最早出現者。空序列回傳全 None。
    """
    if not closes:
        return SwingResult()

    highs = _significant_highs(closes, threshold)
    lows = _significant_lows(closes, threshold)

    breakout = max(highs, key=lambda h: h[1]) if highs else None
    breakdown = max(lows, key=lambda low: low[1]) if lows else None

    return SwingResult(
        breakout_price=breakout[1] if breakout else None,
        breakout_index=breakout[0] if breakout else None,
        breakdown_price=breakdown[1] if breakdown else None,
        breakdown_index=breakdown[0] if breakdown else None,
        significant_highs=tuple(highs),
        significant_lows=tuple(lows),
    )
