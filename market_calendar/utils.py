"""
Utility functions for the market calendar pipeline.

This module provides:
- Date/time utilities (epoch conversion, month and week bounds)
- Math utilities
- Formatting helpers
- DataFrame conversion and CSV export
"""

import calendar
import logging
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

import numpy as np
import pandas as pd

from .models import DailyRecord

logger = logging.getLogger(__name__)

MS_PER_DAY = 86_400_000


def to_epoch_ms(day: date, end_of_day: bool = False) -> int:
    """Epoch milliseconds of the UTC start (or last millisecond) of ``day``."""
    moment = datetime.combine(day, time.min, tzinfo=timezone.utc)
    ms = int(moment.timestamp() * 1000)
    return ms + MS_PER_DAY - 1 if end_of_day else ms


def from_epoch_ms(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def month_start(day: date) -> date:
    return day.replace(day=1)


def month_end(day: date) -> date:
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def week_start(day: date) -> date:
    """Monday of the ISO week containing ``day``."""
    return day - timedelta(days=day.weekday())


def week_end(day: date) -> date:
    return week_start(day) + timedelta(days=6)


def safe_divide(
    numerator: float,
    denominator: float,
    fill_value: Optional[float] = None
) -> float:
    """
    Safely divide two values, handling division by zero.

    Args:
        numerator: Numerator
        denominator: Denominator
        fill_value: Value to use when denominator is zero

    Returns:
        Result of division
    """
    if denominator == 0:
        return fill_value if fill_value is not None else float('inf')
    return numerator / denominator


def finite_or_zero(value: float) -> float:
    """Replace NaN or infinite values by 0."""
    return float(value) if np.isfinite(value) else 0.0


def format_volume(volume: float) -> str:
    """Format a volume with B/M/K suffixes."""
    if volume >= 1e9:
        return f"{volume / 1e9:.2f}B"
    elif volume >= 1e6:
        return f"{volume / 1e6:.2f}M"
    elif volume >= 1e3:
        return f"{volume / 1e3:.2f}K"
    return f"{volume:.2f}"


def records_to_frame(records: Iterable[DailyRecord]) -> pd.DataFrame:
    """Convert records to a DataFrame indexed by date with a performance column."""
    rows = [r.to_dict() for r in records]
    columns = ["date", "open", "high", "low", "close", "volume", "volatility"]
    df = pd.DataFrame(rows, columns=columns)
    df["date"] = pd.to_datetime(df["date"])
    df["performance"] = (df["close"] - df["open"]) / df["open"] * 100
    return df.set_index("date")


def export_csv(
    records: Sequence[DailyRecord],
    path: Union[str, Path],
) -> Path:
    """
    Write records to CSV the way the dashboard export does.

    Prices and percentages are rounded to two decimals and volume to whole
    units.

    Args:
        records: Daily records to export
        path: Output file path

    Returns:
        Path of the written file
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    df = records_to_frame(records).reset_index()
    out = pd.DataFrame({
        "Date": df["date"].dt.strftime("%Y-%m-%d"),
        "Open": df["open"].round(2),
        "High": df["high"].round(2),
        "Low": df["low"].round(2),
        "Close": df["close"].round(2),
        "Volume": df["volume"].round(0),
        "Volatility": df["volatility"].round(2),
        "Performance": df["performance"].round(2),
    })
    out.to_csv(path, index=False)

    logger.info(f"Exported {len(out)} records to {path}")
    return path


def export_filename(symbol: str, month: date) -> str:
    return f"{symbol}_{month.strftime('%Y-%m')}_market_data.csv"
