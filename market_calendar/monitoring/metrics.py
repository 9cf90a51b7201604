"""
Pipeline metrics collection.

This module handles:
- Request and error counters
- Dropped-row accounting for the kline validator
- Timing summaries for API calls and rate-limit waits
"""

import threading
import logging
from typing import Dict, Any, Optional
from dataclasses import dataclass
from collections import defaultdict

logger = logging.getLogger(__name__)


@dataclass
class MetricSummary:
    """Summary statistics for a metric."""
    count: int = 0
    sum: float = 0.0
    min: float = float('inf')
    max: float = float('-inf')
    avg: float = 0.0

    def update(self, value: float):
        """Update summary with new value."""
        self.count += 1
        self.sum += value
        self.min = min(self.min, value)
        self.max = max(self.max, value)
        self.avg = self.sum / self.count


class MetricsCollector:
    """
    Collects counters, gauges and timing summaries.

    One collector is usually shared by a fetcher, its validator and its rate
    limiter so that a single snapshot describes a whole fetch session.
    """

    def __init__(self):
        self.counters: Dict[str, int] = defaultdict(int)
        self.gauges: Dict[str, float] = defaultdict(float)
        self.summaries: Dict[str, MetricSummary] = defaultdict(MetricSummary)

        self.lock = threading.Lock()

    def increment(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        """Increment a counter, optionally also under a tagged name."""
        with self.lock:
            self.counters[name] += value
            if tags:
                self.counters[self._tagged(name, tags)] += value

    def set_gauge(self, name: str, value: float):
        with self.lock:
            self.gauges[name] = value

    def record_timing(self, name: str, value: float):
        """Record a timing value in seconds."""
        with self.lock:
            self.summaries[name].update(value)

    def record_api_call(self, endpoint: str, duration: float, rows: int):
        """Record API call metrics."""
        self.increment("api_calls_total", tags={"endpoint": endpoint})
        self.record_timing("api_duration_seconds", duration)
        self.increment("api_rows_received", rows, tags={"endpoint": endpoint})

    def record_error(self, component: str, error_type: str):
        self.increment("errors_total", tags={"component": component, "error_type": error_type})

    def record_dropped_row(self, reason: str):
        self.increment("rows_dropped", tags={"reason": reason})

    def record_wait(self, seconds: float):
        self.increment("rate_limit_waits")
        self.record_timing("rate_limit_wait_seconds", seconds)

    def get_counter(self, name: str, tags: Optional[Dict[str, str]] = None) -> int:
        """Get counter value."""
        key = self._tagged(name, tags) if tags else name
        with self.lock:
            return self.counters.get(key, 0)

    def get_gauge(self, name: str) -> float:
        with self.lock:
            return self.gauges.get(name, 0.0)

    def get_all_metrics(self) -> Dict[str, Any]:
        """Get all current metrics."""
        with self.lock:
            return {
                "counters": dict(self.counters),
                "gauges": dict(self.gauges),
                "summaries": {
                    name: {
                        "count": summary.count,
                        "sum": summary.sum,
                        "min": summary.min,
                        "max": summary.max,
                        "avg": summary.avg
                    }
                    for name, summary in self.summaries.items()
                }
            }

    def reset(self):
        """Reset all metrics."""
        with self.lock:
            self.counters.clear()
            self.gauges.clear()
            self.summaries.clear()

        logger.info("Reset all metrics")

    @staticmethod
    def _tagged(name: str, tags: Dict[str, str]) -> str:
        labels = ",".join(f"{k}={v}" for k, v in sorted(tags.items()))
        return f"{name}{{{labels}}}"
