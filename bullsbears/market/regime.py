"""
Market regime classification.

The regime is a pure function of the most recent ``window`` prices:

1. Volatile: the population stdev of tick-to-tick returns (in percent)
   exceeds ``volatile_stdev_pct``, regardless of direction.
2. Bullish / bearish: the percent change from the first to the last price
   of the window is above ``threshold_pct`` / below ``-threshold_pct``.
3. Neutral otherwise, and whenever fewer than ``window`` prices exist.
"""

import statistics
from typing import Sequence

from .models import MarketRegime


def percent_change(prices: Sequence[float]) -> float:
    """Percent change from the first to the last price."""
    if len(prices) < 2 or prices[0] == 0:
        return 0.0
    return (prices[-1] - prices[0]) / prices[0] * 100


def return_stdev(prices: Sequence[float]) -> float:
    """Population stdev of tick-to-tick percent returns."""
    returns = [
        (curr - prev) / prev * 100
        for prev, curr in zip(prices, prices[1:])
        if prev != 0
    ]
    if len(returns) < 2:
        return 0.0
    return statistics.pstdev(returns)


def classify_regime(
    prices: Sequence[float],
    window: int = 10,
    threshold_pct: float = 2.0,
    volatile_stdev_pct: float = 1.0,
) -> MarketRegime:
    """
    Classify the market regime from a price history (oldest first).

    Args:
        prices: Price history, oldest first.
        window: Number of most recent prices to inspect.
        threshold_pct: Trend threshold in percent.
        volatile_stdev_pct: Return stdev (percent) above which the market is volatile.

    Returns:
        The derived MarketRegime.
    """
    if window < 2 or len(prices) < window:
        return MarketRegime.NEUTRAL

    recent = list(prices[-window:])

    if return_stdev(recent) > volatile_stdev_pct:
        return MarketRegime.VOLATILE

    change = percent_change(recent)
    if change > threshold_pct:
        return MarketRegime.BULLISH
    if change < -threshold_pct:
        return MarketRegime.BEARISH
    return MarketRegime.NEUTRAL
