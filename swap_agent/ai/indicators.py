"""
Technical indicators over a price series
"""
from typing import List, Optional, Sequence

import pandas as pd
from pydantic import BaseModel

SHORT_WINDOW = 5
LONG_WINDOW = 20
RSI_PERIOD = 14
CHANGE_LOOKBACK = 24


def _series(prices: Sequence[float]) -> pd.Series:
    return pd.Series(list(prices), dtype="float64")


def sma(prices: Sequence[float], window: int) -> Optional[float]:
    """Simple moving average of the last `window` samples"""
    if window <= 0 or len(prices) < window:
        return None
    return float(_series(prices).tail(window).mean())


def rsi(prices: Sequence[float], period: int = RSI_PERIOD) -> float:
    """
    Relative Strength Index over the last `period` price deltas

    Plain averages of gains and losses (no Wilder smoothing). Returns 50
    (neutral) when there is not enough history or the series is flat, and
    100 when there were gains but no losses.
    """
    if len(prices) <= period:
        return 50.0

    deltas = _series(prices).diff().tail(period)
    avg_gain = float(deltas.clip(lower=0).sum()) / period
    avg_loss = float(-deltas.clip(upper=0).sum()) / period
    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else 50.0

    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def price_change_24h(prices: Sequence[float], lookback: int = CHANGE_LOOKBACK) -> float:
    """Percent change from `lookback` samples ago to the latest sample"""
    if len(prices) < lookback:
        return 0.0
    series = _series(prices)
    base = series.iloc[-lookback]
    if base == 0:
        return 0.0
    return float((series.iloc[-1] - base) / base * 100.0)


def ma_crossover(prices: Sequence[float], short: int = SHORT_WINDOW, long: int = LONG_WINDOW) -> Optional[str]:
    """
    'golden' when the short SMA crossed above the long SMA on the latest
    sample, 'death' when it crossed below, otherwise None
    """
    if len(prices) < long + 1:
        return None
    series = _series(prices)
    spread = series.rolling(short).mean() - series.rolling(long).mean()
    prev_diff, curr_diff = spread.iloc[-2], spread.iloc[-1]
    if prev_diff <= 0 < curr_diff:
        return "golden"
    if prev_diff >= 0 > curr_diff:
        return "death"
    return None


class MarketIndicators(BaseModel):
    """Indicator snapshot for the latest price"""
    current_price: float
    rsi: float = 50.0
    short_ma: Optional[float] = None
    long_ma: Optional[float] = None
    crossover: Optional[str] = None
    price_change_24h: float = 0.0
    samples: int = 0


def compute_indicators(prices: List[float]) -> MarketIndicators:
    if not prices:
        raise ValueError("Cannot compute indicators without prices")
    return MarketIndicators(
        current_price=prices[-1],
        rsi=rsi(prices),
        short_ma=sma(prices, SHORT_WINDOW),
        long_ma=sma(prices, LONG_WINDOW),
        crossover=ma_crossover(prices),
        price_change_24h=price_change_24h(prices),
        samples=len(prices),
    )
