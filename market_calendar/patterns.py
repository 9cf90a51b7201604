"""
Heuristic pattern detection over a daily record history.

Every detector is an independent pure function over the full history and
returns zero or more patterns. Confidence scores are fixed heuristic scalings
clamped to per-detector ceilings, not statistical confidence intervals.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np

from .models import DailyRecord, Pattern, PatternType, Severity

logger = logging.getLogger(__name__)

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


@dataclass(frozen=True)
class PatternThresholds:
    """Tuning constants for the detectors."""
    min_records: int = 30

    weekly_min_volatility: float = 2.0
    weekly_high_volatility: float = 3.0
    weekly_min_count: int = 4
    weekly_confidence_scale: float = 7.0
    weekly_confidence_cap: float = 95.0

    monthly_min_return: float = 1.0
    monthly_medium_return: float = 1.5
    monthly_high_return: float = 3.0
    monthly_min_count: int = 5
    monthly_confidence_scale: float = 3.0
    monthly_confidence_cap: float = 90.0

    cluster_volatility: float = 2.0
    cluster_min_count: int = 3
    cluster_confidence_cap: float = 85.0

    spike_multiple: float = 2.0
    spike_min_count: int = 3
    spike_confidence_scale: float = 10.0
    spike_confidence_cap: float = 80.0

    anomaly_multiple: float = 3.0
    anomaly_min_count: int = 2
    anomaly_confidence_scale: float = 20.0
    anomaly_confidence_cap: float = 75.0


DEFAULT_THRESHOLDS = PatternThresholds()


def day_of_week(record: DailyRecord) -> int:
    """0 for Sunday through 6 for Saturday."""
    return (record.date.weekday() + 1) % 7


def month_period(record: DailyRecord) -> str:
    day = record.date.day
    if day <= 10:
        return "early"
    if day <= 20:
        return "mid"
    return "late"


def _abs_return(record: DailyRecord) -> float:
    return abs(record.performance)


def detect_weekly_volatility(
    records: Sequence[DailyRecord],
    thresholds: PatternThresholds = DEFAULT_THRESHOLDS,
) -> List[Pattern]:
    """Flag the weekday with the highest mean volatility."""
    if not records:
        return []

    by_day: Dict[int, List[float]] = {}
    for record in records:
        by_day.setdefault(day_of_week(record), []).append(record.volatility)

    best_day: Optional[int] = None
    best_mean = float("-inf")
    for day in sorted(by_day):
        mean = float(np.mean(by_day[day]))
        if mean > best_mean:
            best_day, best_mean = day, mean

    count = len(by_day[best_day])
    if best_mean <= thresholds.weekly_min_volatility or count < thresholds.weekly_min_count:
        return []

    name = DAY_NAMES[best_day]
    return [Pattern(
        id="weekly-volatility",
        type=PatternType.WEEKLY,
        name=f"{name} Volatility",
        description=f"Higher volatility typically occurs on {name}s",
        confidence=min(
            thresholds.weekly_confidence_cap,
            count / len(records) * 100 * thresholds.weekly_confidence_scale,
        ),
        occurrences=count,
        avg_impact=best_mean,
        severity=Severity.HIGH if best_mean > thresholds.weekly_high_volatility else Severity.MEDIUM,
    )]


def detect_monthly_periods(
    records: Sequence[DailyRecord],
    thresholds: PatternThresholds = DEFAULT_THRESHOLDS,
) -> List[Pattern]:
    """Flag early/mid/late month periods with a consistent mean return."""
    by_period: Dict[str, List[DailyRecord]] = {}
    for record in records:
        by_period.setdefault(month_period(record), []).append(record)

    patterns = []
    for period, items in by_period.items():
        mean_return = float(np.mean([r.performance for r in items]))
        magnitude = abs(mean_return)
        if magnitude <= thresholds.monthly_min_return or len(items) < thresholds.monthly_min_count:
            continue

        if magnitude > thresholds.monthly_high_return:
            severity = Severity.HIGH
        elif magnitude > thresholds.monthly_medium_return:
            severity = Severity.MEDIUM
        else:
            severity = Severity.LOW

        rising = mean_return > 0
        patterns.append(Pattern(
            id=f"monthly-{period}",
            type=PatternType.MONTHLY,
            name=f"{period.capitalize()}-Month {'Rally' if rising else 'Decline'}",
            description=(
                f"{period.capitalize()} month periods show "
                f"{'positive' if rising else 'negative'} performance tendency"
            ),
            confidence=min(
                thresholds.monthly_confidence_cap,
                len(items) / len(records) * 100 * thresholds.monthly_confidence_scale,
            ),
            occurrences=len(items),
            avg_impact=magnitude,
            severity=severity,
        ))
    return patterns


def count_volatility_clusters(records: Sequence[DailyRecord], level: float) -> int:
    """Number of runs of at least two consecutive records above ``level``."""
    clusters = 0
    in_cluster = False
    for previous, current in zip(records, records[1:]):
        if current.volatility > level and previous.volatility > level:
            if not in_cluster:
                clusters += 1
                in_cluster = True
        else:
            in_cluster = False
    return clusters


def detect_volatility_clustering(
    records: Sequence[DailyRecord],
    thresholds: PatternThresholds = DEFAULT_THRESHOLDS,
) -> List[Pattern]:
    """Flag repeated runs of high volatility days."""
    level = thresholds.cluster_volatility
    clusters = count_volatility_clusters(records, level)
    if clusters < thresholds.cluster_min_count:
        return []

    high = [r.volatility for r in records if r.volatility > level]
    return [Pattern(
        id="volatility-clustering",
        type=PatternType.VOLATILITY,
        name="Volatility Clustering",
        description="High volatility periods tend to be followed by more high volatility",
        confidence=min(
            thresholds.cluster_confidence_cap,
            clusters / (len(records) / 10) * 100,
        ),
        occurrences=clusters,
        avg_impact=float(np.mean(high)),
        severity=Severity.MEDIUM,
    )]


def detect_volume_spikes(
    records: Sequence[DailyRecord],
    thresholds: PatternThresholds = DEFAULT_THRESHOLDS,
) -> List[Pattern]:
    """Flag repeated days trading well above the mean volume."""
    if not records:
        return []

    mean_volume = float(np.mean([r.volume for r in records]))
    spikes = [r.volume for r in records if r.volume > mean_volume * thresholds.spike_multiple]
    if len(spikes) < thresholds.spike_min_count:
        return []

    return [Pattern(
        id="volume-spikes",
        type=PatternType.VOLUME,
        name="Volume Spikes",
        description="Periodic volume spikes indicate increased market interest",
        confidence=min(
            thresholds.spike_confidence_cap,
            len(spikes) / len(records) * 100 * thresholds.spike_confidence_scale,
        ),
        occurrences=len(spikes),
        avg_impact=float(np.mean(spikes)) / mean_volume,
        severity=Severity.LOW,
    )]


def detect_price_anomalies(
    records: Sequence[DailyRecord],
    thresholds: PatternThresholds = DEFAULT_THRESHOLDS,
) -> List[Pattern]:
    """Flag days whose absolute intraday move dwarfs the typical one."""
    if not records:
        return []

    moves = [_abs_return(r) for r in records]
    mean_move = float(np.mean(moves))
    flagged = [m for m in moves if m > mean_move * thresholds.anomaly_multiple]
    if len(flagged) < thresholds.anomaly_min_count:
        return []

    return [Pattern(
        id="price-anomalies",
        type=PatternType.ANOMALY,
        name="Price Anomalies",
        description="Unusual price movements detected that deviate significantly from normal patterns",
        confidence=min(
            thresholds.anomaly_confidence_cap,
            len(flagged) / len(records) * 100 * thresholds.anomaly_confidence_scale,
        ),
        occurrences=len(flagged),
        avg_impact=float(np.mean(flagged)),
        severity=Severity.HIGH,
    )]


DETECTORS = (
    detect_weekly_volatility,
    detect_monthly_periods,
    detect_volatility_clustering,
    detect_volume_spikes,
    detect_price_anomalies,
)


def detect_patterns(
    records: Sequence[DailyRecord],
    historical: Sequence[DailyRecord] = (),
    thresholds: PatternThresholds = DEFAULT_THRESHOLDS,
) -> List[Pattern]:
    """
    Run every detector over ``historical + records``.

    De-duplicating overlapping history is the caller's job. Returns an empty
    list when fewer than ``thresholds.min_records`` records are supplied.

    Returns:
        Patterns sorted by confidence, highest first
    """
    history = list(historical) + list(records)
    if len(history) < thresholds.min_records:
        logger.debug(f"Skipping pattern detection: {len(history)} records")
        return []

    patterns: List[Pattern] = []
    for detector in DETECTORS:
        patterns.extend(detector(history, thresholds))

    logger.debug(f"Detected {len(patterns)} patterns over {len(history)} records")
    return sorted(patterns, key=lambda p: p.confidence, reverse=True)


class PatternDetector:
    """Detector bound to a fixed set of thresholds."""

    def __init__(self, thresholds: PatternThresholds = DEFAULT_THRESHOLDS):
        self.thresholds = thresholds

    def detect(
        self,
        records: Sequence[DailyRecord],
        historical: Sequence[DailyRecord] = (),
    ) -> List[Pattern]:
        return detect_patterns(records, historical, self.thresholds)
