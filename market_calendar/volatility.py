"""
Blended volatility.

Each record's volatility becomes a weighted mix of its own high-low range
(the value produced by the validator) and the standard deviation of close to
close returns over a trailing window ending at that record.
"""

import logging
from typing import List, Sequence

import numpy as np

from .models import DailyRecord
from .utils import finite_or_zero

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = 7
DAILY_WEIGHT = 0.6
ROLLING_WEIGHT = 0.4


def rolling_volatility(closes: Sequence[float]) -> float:
    """
    Population standard deviation of simple returns, in percent.

    Non-positive or non-finite prices are ignored. Returns 0 when fewer than
    two usable prices remain or the result is not finite.
    """
    prices = np.asarray([p for p in closes if _valid_price(p)], dtype=float)
    if prices.size < 2:
        return 0.0

    with np.errstate(divide="ignore", invalid="ignore"):
        returns = np.diff(prices) / prices[:-1]
    returns = returns[np.isfinite(returns)]
    if returns.size == 0:
        return 0.0

    return finite_or_zero(np.std(returns) * 100)


def enhance_volatility(
    records: Sequence[DailyRecord],
    window: int = DEFAULT_WINDOW,
    daily_weight: float = DAILY_WEIGHT,
    rolling_weight: float = ROLLING_WEIGHT,
) -> List[DailyRecord]:
    """
    Replace each record's volatility with the blended value.

    Args:
        records: Ordered daily records
        window: Trailing window size, including the current record
        daily_weight: Weight of the record's own volatility
        rolling_weight: Weight of the trailing returns volatility

    Returns:
        New list of the same length; only ``volatility`` differs
    """
    if len(records) < 2:
        return list(records)

    enhanced = []
    for i, record in enumerate(records):
        daily = max(0.0, finite_or_zero(record.volatility or 0.0))

        trailing = records[max(0, i - window + 1):i + 1]
        closes = [r.close for r in trailing if _valid_price(r.close)]
        if len(closes) < 2:
            enhanced.append(record.with_volatility(daily))
            continue

        rolling = max(0.0, rolling_volatility(closes))
        value = finite_or_zero(daily * daily_weight + rolling * rolling_weight)
        enhanced.append(record.with_volatility(value))

    return enhanced


def _valid_price(price) -> bool:
    return isinstance(price, (int, float)) and not isinstance(price, bool) and np.isfinite(price) and price > 0
