"""
Week and month aggregation of daily records.

This module handles:
- Bucket construction and per-bucket metrics
- Weekly buckets covering a month's calendar view
- Monthly buckets keyed by ``yyyy-MM``
- Period metrics and period-to-period comparison
"""

import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .models import AggregationScheme, Bucket, DailyRecord
from .utils import month_end, month_start, records_to_frame, safe_divide, week_end, week_start

logger = logging.getLogger(__name__)


def period_return(records: Sequence[DailyRecord]) -> float:
    """(last close - first open) / first open; 0 when empty or first open is 0."""
    if not records or records[0].open == 0:
        return 0.0
    return (records[-1].close - records[0].open) / records[0].open


def build_bucket(start: date, end: date, records: Sequence[DailyRecord]) -> Bucket:
    """Build a bucket from the records dated within ``[start, end]``."""
    selected = tuple(r for r in records if start <= r.date <= end)
    avg_volatility = float(np.mean([r.volatility for r in selected])) if selected else 0.0
    return Bucket(
        start=start,
        end=end,
        records=selected,
        avg_volatility=avg_volatility,
        total_volume=float(sum(r.volume for r in selected)),
        period_return=period_return(selected),
    )


def weekly_buckets(records: Sequence[DailyRecord], month: date) -> List[Bucket]:
    """
    Monday-to-Sunday buckets spanning the calendar view of ``month``.

    The first bucket holds the 1st of the month and the last bucket holds its
    last day, so days from neighbouring months at either edge are included
    when present in ``records``.
    """
    first = week_start(month_start(month))
    last = week_start(month_end(month))

    buckets = []
    current = first
    while current <= last:
        buckets.append(build_bucket(current, week_end(current), records))
        current += timedelta(days=7)
    return buckets


def monthly_buckets(records: Sequence[DailyRecord]) -> List[Bucket]:
    """One bucket per calendar month present in ``records``, ordered by month."""
    if not records:
        return []

    df = records_to_frame(records)
    df["position"] = np.arange(len(records))

    buckets = []
    for period, group in df.groupby(df.index.to_period("M")):
        start = period.start_time.date()
        selected = tuple(records[i] for i in group["position"])
        buckets.append(Bucket(
            start=start,
            end=month_end(start),
            records=selected,
            avg_volatility=float(group["volatility"].mean()),
            total_volume=float(group["volume"].sum()),
            period_return=period_return(selected),
        ))

    logger.debug(f"Grouped {len(records)} records into {len(buckets)} monthly buckets")
    return buckets


def aggregate(
    records: Sequence[DailyRecord],
    scheme: AggregationScheme,
    month: Optional[date] = None,
) -> List[Bucket]:
    """
    Group daily records into buckets.

    Args:
        records: Ordered daily records
        scheme: WEEKLY or MONTHLY
        month: Month whose calendar view the weekly buckets span; defaults
            to the month of the last record

    Returns:
        Buckets in chronological order; weekly buckets may be empty
    """
    scheme = AggregationScheme(scheme)

    if scheme is AggregationScheme.MONTHLY:
        return monthly_buckets(records)

    if month is None:
        if not records:
            return []
        month = records[-1].date
    return weekly_buckets(records, month)


def bucket_statistics(buckets: Sequence[Bucket]) -> Dict[str, Any]:
    """Cross-bucket statistics; buckets without records are ignored."""
    populated = [b for b in buckets if not b.is_empty]
    if not populated:
        return {
            "buckets": 0,
            "avg_volatility": 0.0,
            "total_volume": 0.0,
            "best": None,
            "worst": None,
            "most_volatile": None,
        }

    return {
        "buckets": len(populated),
        "avg_volatility": float(np.mean([b.avg_volatility for b in populated])),
        "total_volume": float(sum(b.total_volume for b in populated)),
        "best": max(populated, key=lambda b: b.period_return),
        "worst": min(populated, key=lambda b: b.period_return),
        "most_volatile": max(populated, key=lambda b: b.avg_volatility),
    }


def period_metrics(records: Sequence[DailyRecord]) -> Optional[Dict[str, Any]]:
    """Summary metrics for a selected period, or None when it has no records."""
    if not records:
        return None

    max_price = max(r.high for r in records)
    min_price = min(r.low for r in records)
    return {
        "total_volume": float(sum(r.volume for r in records)),
        "avg_volatility": float(np.mean([r.volatility for r in records])),
        "total_return": period_return(records) * 100,
        "max_price": max_price,
        "min_price": min_price,
        "price_range": max_price - min_price,
        "avg_price": float(np.mean([(r.high + r.low) / 2 for r in records])),
        "trading_days": len(records),
    }


def compare_periods(
    current: Sequence[DailyRecord],
    other: Sequence[DailyRecord],
) -> Dict[str, Any]:
    """
    Compare two periods' metrics.

    ``changes`` holds absolute differences (current minus other) for every
    metric present on both sides, and ``relative_changes`` the same as a
    percentage of the other side.
    """
    current_metrics = period_metrics(current)
    other_metrics = period_metrics(other)

    changes: Dict[str, float] = {}
    relative_changes: Dict[str, float] = {}
    if current_metrics and other_metrics:
        for name, value in current_metrics.items():
            changes[name] = value - other_metrics[name]
            relative_changes[name] = safe_divide(
                value - other_metrics[name], abs(other_metrics[name]), fill_value=0.0
            ) * 100

    return {
        "current": current_metrics,
        "comparison": other_metrics,
        "changes": changes,
        "relative_changes": relative_changes,
    }


def normalized_closes(records: Sequence[DailyRecord]) -> List[float]:
    """Closes as percent change from the first open, for overlaying two symbols."""
    if not records:
        return []
    base = records[0].open or 1
    return [(r.close - base) / base * 100 for r in records]
