"""
Threshold alerts on the latest daily record.

This module handles:
- Alert rule creation
- Metric computation per alert metric
- Trigger evaluation (fires once until reset)
- Best-effort notification through pluggable channels
"""

import uuid
import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from .models import Alert, AlertCondition, AlertMetric, DailyRecord

logger = logging.getLogger(__name__)

Notifier = Callable[[Alert, DailyRecord, float], None]

UNITS = {
    AlertMetric.VOLATILITY: "%",
    AlertMetric.PERFORMANCE: "%",
    AlertMetric.VOLUME: "M",
}


def create_alert(
    metric: AlertMetric = AlertMetric.VOLATILITY,
    condition: AlertCondition = AlertCondition.ABOVE,
    threshold: float = 2.0,
    alert_id: Optional[str] = None,
) -> Alert:
    """Create an enabled, untriggered alert."""
    return Alert(
        id=alert_id or uuid.uuid4().hex,
        metric=AlertMetric(metric),
        condition=AlertCondition(condition),
        threshold=threshold,
    )


def metric_value(record: DailyRecord, metric: AlertMetric) -> float:
    """
    Value of ``metric`` for ``record``.

    Volatility is used as is, performance as the absolute intraday return in
    percent and volume in millions of base-asset units.
    """
    metric = AlertMetric(metric)
    if metric is AlertMetric.VOLATILITY:
        return record.volatility
    if metric is AlertMetric.PERFORMANCE:
        return abs(record.performance)
    if metric is AlertMetric.VOLUME:
        return record.volume / 1_000_000
    raise ValueError(f"Unknown alert metric: {metric}")


def condition_met(condition: AlertCondition, value: float, threshold: float) -> bool:
    condition = AlertCondition(condition)
    if condition is AlertCondition.ABOVE:
        return value > threshold
    return value < threshold


def describe(alert: Alert) -> str:
    return f"{alert.metric.value} is {alert.condition.value} {alert.threshold}{UNITS[alert.metric]}"


class AlertEvaluator:
    """
    Evaluates alerts against the latest record.

    Features:
    - Alerts fire once and stay triggered until reset or re-enabled
    - Multiple notification channels
    - Notification failures are logged and never propagate
    """

    def __init__(
        self,
        channels: Iterable[str] = ("log",),
        symbol: str = "",
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.symbol = symbol
        self._clock = clock
        self.active_channels = list(channels)
        self.channels: Dict[str, Notifier] = {
            "log": self._log_notification,
        }

    def add_channel(self, name: str, callback: Notifier, activate: bool = True):
        """Add a notification channel."""
        self.channels[name] = callback
        if activate and name not in self.active_channels:
            self.active_channels.append(name)
        logger.info(f"Added notification channel: {name}")

    def evaluate(self, latest: Optional[DailyRecord], alerts: Sequence[Alert]) -> List[Alert]:
        """
        Evaluate every enabled alert against ``latest``.

        Args:
            latest: Most recent daily record, or None when there is no data
            alerts: Current alert list; not mutated

        Returns:
            Alert list in the same order, with newly fired alerts marked
            triggered
        """
        if latest is None:
            return list(alerts)

        updated = []
        for alert in alerts:
            if not alert.enabled or alert.triggered:
                updated.append(alert)
                continue

            value = metric_value(latest, alert.metric)
            if not condition_met(alert.condition, value, alert.threshold):
                updated.append(alert)
                continue

            fired = replace(alert, triggered=True, last_triggered_at=self._clock())
            updated.append(fired)
            self._send_notification(fired, latest, value)

        return updated

    def _send_notification(self, alert: Alert, record: DailyRecord, value: float):
        """Send alert notification through active channels."""
        for channel_name in self.active_channels:
            callback = self.channels.get(channel_name)
            if callback is None:
                continue
            try:
                callback(alert, record, value)
            except Exception as e:
                logger.error(f"Error sending notification via {channel_name}: {str(e)}")

    def _log_notification(self, alert: Alert, record: DailyRecord, value: float):
        """Log notification handler."""
        prefix = f"Market Alert - {self.symbol}" if self.symbol else "Market Alert"
        logger.warning(f"{prefix}: {describe(alert)} (value {value:.2f} on {record.date})")


def evaluate_alerts(
    latest: Optional[DailyRecord],
    alerts: Sequence[Alert],
    notify: Optional[Notifier] = None,
) -> List[Alert]:
    """Evaluate alerts with the log channel plus an optional extra notifier."""
    evaluator = AlertEvaluator()
    if notify is not None:
        evaluator.add_channel("callback", notify)
    return evaluator.evaluate(latest, alerts)
