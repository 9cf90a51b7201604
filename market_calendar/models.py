"""
Value objects shared across the pipeline.

All entities are plain dataclasses owned by the caller; none of them keeps a
reference to the client that produced it.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .exceptions import InputError


class AggregationScheme(str, Enum):
    """Bucket partition schemes."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class PatternType(str, Enum):
    """Pattern categories emitted by the detector."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    VOLATILITY = "volatility"
    VOLUME = "volume"
    ANOMALY = "anomaly"


class Severity(str, Enum):
    """Pattern severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AlertMetric(str, Enum):
    """Metrics an alert can watch."""
    VOLATILITY = "volatility"
    PERFORMANCE = "performance"
    VOLUME = "volume"


class AlertCondition(str, Enum):
    """Threshold comparison direction."""
    ABOVE = "above"
    BELOW = "below"


class EmptyReason(str, Enum):
    """Why a fetch produced no records."""
    NONE = "none"
    PRE_LAUNCH = "pre_launch"
    NO_DATA = "no_data"


@dataclass(frozen=True)
class DailyRecord:
    """One trading day for one symbol."""
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: float
    volatility: float = 0.0

    @property
    def performance(self) -> float:
        """Signed intraday return in percent."""
        if self.open == 0:
            return 0.0
        return (self.close - self.open) / self.open * 100

    def with_volatility(self, volatility: float) -> 'DailyRecord':
        return replace(self, volatility=volatility)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
            "volatility": self.volatility,
        }


@dataclass(frozen=True)
class TimeRange:
    """Inclusive calendar date range."""
    start: date
    end: date

    def __post_init__(self):
        if self.start > self.end:
            raise InputError(
                f"Invalid date range: start {self.start} is after end {self.end}"
            )

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


@dataclass(frozen=True)
class Bucket:
    """A week or month of daily records with summary metrics."""
    start: date
    end: date
    records: Tuple[DailyRecord, ...]
    avg_volatility: float
    total_volume: float
    period_return: float

    @property
    def trading_days(self) -> int:
        return len(self.records)

    @property
    def is_empty(self) -> bool:
        return not self.records

    @property
    def key(self) -> str:
        return self.start.strftime("%Y-%m-%d")


@dataclass
class Pattern:
    """A heuristically detected recurring tendency."""
    id: str
    type: PatternType
    name: str
    description: str
    confidence: float
    occurrences: int
    avg_impact: float
    severity: Severity


@dataclass
class Alert:
    """User-defined threshold rule on the latest record."""
    id: str
    metric: AlertMetric
    condition: AlertCondition
    threshold: float
    enabled: bool = True
    triggered: bool = False
    last_triggered_at: Optional[datetime] = None

    def reset(self) -> 'Alert':
        """Clear the triggered flag so the alert can fire again."""
        return replace(self, triggered=False)

    def set_enabled(self, enabled: bool) -> 'Alert':
        """Change the enabled state; any change clears the triggered flag."""
        return replace(self, enabled=enabled, triggered=False)

    def toggle(self) -> 'Alert':
        return self.set_enabled(not self.enabled)


@dataclass
class FetchResult:
    """Records from one fetch, paired with a reason code when empty."""
    symbol: str
    start: date
    end: date
    records: List[DailyRecord] = field(default_factory=list)
    reason: EmptyReason = EmptyReason.NONE
    dropped: int = 0
    issues: List[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.records

    def matches(self, symbol: str, start: date, end: date) -> bool:
        """True if this result answers a request with these parameters."""
        return self.symbol == symbol and self.start == start and self.end == end
