"""
Data integrity validation for kline requests and rows.

This module handles:
- Request validation (symbol format, date range sanity)
- Conversion of raw kline rows to a typed DataFrame
- Row-level validation with vectorised rejection masks
- Dropped-row diagnostics
"""

import re
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from .config import Config
from .exceptions import InputError
from .models import DailyRecord, TimeRange
from .monitoring.metrics import MetricsCollector
from .utils import to_epoch_ms

logger = logging.getLogger(__name__)

SYMBOL_PATTERN = re.compile(r"^[A-Z]{2,10}USDT?$")

# Fixed positions in a Binance kline row.
KLINE_COLUMNS = [
    "open_time", "open", "high", "low", "close", "volume",
    "close_time", "quote_asset_volume", "number_of_trades",
    "taker_buy_base_asset_volume", "taker_buy_quote_asset_volume", "ignore"
]
MIN_KLINE_FIELDS = 11

PRICE_COLUMNS = ["open", "high", "low", "close"]
NUMERIC_COLUMNS = PRICE_COLUMNS + ["volume"]

# Latest open time pandas can turn into a timestamp.
MAX_OPEN_TIME_MS = pd.Timestamp.max.value // 1_000_000

# Checked in this order; a row is reported under the first reason it fails.
REJECTION_MESSAGES = {
    "malformed": "invalid kline structure",
    "non_numeric": "invalid numeric data",
    "non_positive_price": "price values must be positive",
    "negative_volume": "volume must not be negative",
    "price_relationship": "invalid price relationships",
    "timestamp": "invalid timestamp",
    "pre_launch": "date is before launch",
}


def validate_trading_symbol(symbol: str) -> bool:
    return isinstance(symbol, str) and bool(SYMBOL_PATTERN.match(symbol))


def daily_volatility(open_price: pd.Series, high: pd.Series, low: pd.Series) -> pd.Series:
    """Single-day high-low range as a percentage of the open, floored at 0."""
    volatility = (high - low) / open_price * 100
    return volatility.where(open_price > 0, 0.0).clip(lower=0.0)


def _to_numeric(column: pd.Series) -> pd.Series:
    """Coerce a raw column to float; booleans, blanks and non-finite values become NaN."""
    is_bool = column.map(lambda value: isinstance(value, (bool, np.bool_))).astype(bool)
    values = pd.to_numeric(column.mask(is_bool), errors="coerce").astype(float)
    return values.where(np.isfinite(values))


def kline_frame(rows: Sequence[Any]) -> pd.DataFrame:
    """
    Convert raw kline rows to a DataFrame with numeric price columns.

    Rows that are not sequences of at least ``MIN_KLINE_FIELDS`` values keep
    their position but carry no data and are flagged in the ``malformed``
    column.

    Args:
        rows: Raw rows as returned by the klines endpoint

    Returns:
        DataFrame with one row per input row, in input order
    """
    width = len(KLINE_COLUMNS)
    structured = [
        isinstance(row, (list, tuple)) and len(row) >= MIN_KLINE_FIELDS
        for row in rows
    ]
    data = [
        list(row[:width]) + [None] * (width - len(row)) if ok else [None] * width
        for row, ok in zip(rows, structured)
    ]

    df = pd.DataFrame(data, columns=KLINE_COLUMNS)
    for col in ["open_time"] + NUMERIC_COLUMNS:
        df[col] = _to_numeric(df[col])
    df["malformed"] = ~np.array(structured, dtype=bool)
    return df


@dataclass
class ValidationResult:
    """Result of validating a batch of kline rows."""
    records: List[DailyRecord] = field(default_factory=list)
    issues: List[str] = field(default_factory=list)
    dropped_by_reason: Dict[str, int] = field(default_factory=dict)

    @property
    def dropped(self) -> int:
        return sum(self.dropped_by_reason.values())

    @property
    def valid(self) -> bool:
        return not self.issues

    def drop(self, reason: str, message: str):
        self.dropped_by_reason[reason] = self.dropped_by_reason.get(reason, 0) + 1
        self.issues.append(message)


class DataValidator:
    """
    Validates kline requests and normalizes raw kline rows.

    Request problems raise :class:`InputError`. Row problems never raise: the
    row is dropped, logged and counted in the returned
    :class:`ValidationResult`.
    """

    def __init__(self, config: Optional[Config] = None, metrics: Optional[MetricsCollector] = None):
        self.config = config or Config()
        self.metrics = metrics or MetricsCollector()
        self.launch_date = self.config.fetch.launch_date
        self.max_range_days = self.config.fetch.max_range_days

    def validate_symbol(self, symbol: str):
        if not validate_trading_symbol(symbol):
            raise InputError(f"Invalid trading symbol format: {symbol!r}")

    def validate_range(self, time_range: TimeRange):
        span = (time_range.end - time_range.start).days
        if span > self.max_range_days:
            raise InputError(
                f"Date range too large ({span} days, limit {self.max_range_days}). "
                "Please select a more recent period."
            )

    def validate_request(self, symbol: str, time_range: TimeRange):
        """Raise InputError if the request must not reach the network."""
        self.validate_symbol(symbol)
        self.validate_range(time_range)

    def rejection_reasons(self, df: pd.DataFrame) -> np.ndarray:
        """
        Reason code per row of a :func:`kline_frame`, empty for valid rows.

        Zero volume is valid; every price must be positive and bracketed by
        the row's high and low.
        """
        body = df[["open", "close"]]
        masks = [
            df["malformed"],
            df[NUMERIC_COLUMNS].isna().any(axis=1),
            (df[PRICE_COLUMNS] <= 0).any(axis=1),
            df["volume"] < 0,
            (df["high"] < body.max(axis=1)) | (df["low"] > body.min(axis=1)),
            df["open_time"].isna() | (df["open_time"] <= 0) | (df["open_time"] > MAX_OPEN_TIME_MS),
            df["open_time"] < to_epoch_ms(self.launch_date),
        ]
        return np.select(
            [mask.to_numpy(dtype=bool) for mask in masks],
            list(REJECTION_MESSAGES),
            default="",
        )

    def validate_klines(self, rows: Sequence[Any], offset: int = 0) -> ValidationResult:
        """
        Validate raw kline rows and convert the good ones to DailyRecords.

        Args:
            rows: Raw rows as returned by the klines endpoint
            offset: Index of the first row within the whole fetch, for diagnostics

        Returns:
            ValidationResult with records in input order
        """
        result = ValidationResult()
        df = kline_frame(rows)
        reasons = self.rejection_reasons(df)

        for position in np.flatnonzero(reasons != ""):
            reason = str(reasons[position])
            index = offset + int(position)
            message = f"{REJECTION_MESSAGES[reason]}: {rows[position]!r}"
            logger.warning(f"Dropping kline at index {index}: {message}")
            self.metrics.record_dropped_row(reason)
            result.drop(reason, f"index {index}: {message}")

        kept = df[reasons == ""]
        days = pd.to_datetime(kept["open_time"].astype("int64"), unit="ms", utc=True).dt.date
        volatility = daily_volatility(kept["open"], kept["high"], kept["low"])

        result.records = [
            DailyRecord(
                date=day,
                open=float(o),
                high=float(h),
                low=float(l),
                close=float(c),
                volume=float(v),
                volatility=float(vol),
            )
            for day, o, h, l, c, v, vol in zip(
                days, kept["open"], kept["high"], kept["low"],
                kept["close"], kept["volume"], volatility,
            )
        ]

        self.metrics.increment("validation_total")
        return result
