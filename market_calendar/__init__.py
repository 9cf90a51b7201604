"""
Market calendar data pipeline.

This package is responsible for:
- Fetching daily klines from the Binance API under a rate limit
- Validating and normalizing rows into DailyRecords
- Blending daily and rolling volatility
- Aggregating records into week and month buckets
- Detecting recurring patterns and evaluating threshold alerts
"""

from .config import Config, BINANCE_LAUNCH_DATE
from .exceptions import InputError, MarketDataError, ResponseFormatError, TransportError
from .models import (
    AggregationScheme,
    Alert,
    AlertCondition,
    AlertMetric,
    Bucket,
    DailyRecord,
    EmptyReason,
    FetchResult,
    Pattern,
    PatternType,
    Severity,
    TimeRange,
)
from .rate_limiter import RateLimiter
from .validators import DataValidator
from .fetcher import BinanceKlineFetcher
from .volatility import enhance_volatility
from .aggregator import aggregate, compare_periods, period_metrics
from .patterns import PatternDetector, PatternThresholds, detect_patterns
from .alerts import AlertEvaluator, create_alert, evaluate_alerts
from .monitoring.metrics import MetricsCollector

__version__ = "1.0.0"
__all__ = [
    "AggregationScheme",
    "Alert",
    "AlertCondition",
    "AlertEvaluator",
    "AlertMetric",
    "BINANCE_LAUNCH_DATE",
    "BinanceKlineFetcher",
    "Bucket",
    "Config",
    "DailyRecord",
    "DataValidator",
    "EmptyReason",
    "FetchResult",
    "InputError",
    "MarketDataError",
    "MetricsCollector",
    "Pattern",
    "PatternDetector",
    "PatternThresholds",
    "PatternType",
    "RateLimiter",
    "ResponseFormatError",
    "Severity",
    "TimeRange",
    "TransportError",
    "aggregate",
    "compare_periods",
    "create_alert",
    "detect_patterns",
    "enhance_volatility",
    "evaluate_alerts",
    "period_metrics",
]
