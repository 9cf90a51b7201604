"""
API rate limiting for the Binance REST endpoints.

This module handles:
- Sliding-window request accounting
- Cooperative suspension of callers that would exceed the quota
- Wait-time metrics
"""

import time
import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, Optional

from .config import Config
from .monitoring.metrics import MetricsCollector

logger = logging.getLogger(__name__)


@dataclass
class RateLimitMetrics:
    """Metrics for rate limiter performance."""
    requests_made: int = 0
    requests_limited: int = 0
    total_wait_time: float = 0.0
    max_wait_time: float = 0.0


class RateLimiter:
    """
    Keeps at most ``max_requests`` calls inside any sliding ``time_window``.

    Each call to :meth:`wait_if_needed` reserves a slot in the window. When the
    window is full the slot is scheduled for the moment the oldest blocking
    request expires (plus ``safety_margin``) and the caller sleeps until then.
    The lock only guards the timestamp queue, so a sleeping caller never holds
    it and other callers keep being served in arrival order.

    Times are in seconds. Instances are independent; pass one explicitly to
    every fetcher that should share a quota.
    """

    def __init__(
        self,
        max_requests: int = 1200,
        time_window: float = 60.0,
        safety_margin: float = 0.1,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if max_requests <= 0:
            raise ValueError("max_requests must be positive")
        if time_window <= 0:
            raise ValueError("time_window must be positive")

        self.max_requests = max_requests
        self.time_window = time_window
        self.safety_margin = safety_margin
        self.metrics = metrics or MetricsCollector()
        self._clock = clock
        self._sleep = sleep

        self._requests: Deque[float] = deque()
        self._lock = asyncio.Lock()
        self.metrics_data = RateLimitMetrics()

        logger.info(
            f"Initialized RateLimiter with {max_requests} requests per {time_window}s"
        )

    @classmethod
    def from_config(cls, config: Config, metrics: Optional[MetricsCollector] = None) -> 'RateLimiter':
        return cls(
            max_requests=config.rate_limit.max_requests,
            time_window=config.rate_limit.time_window,
            safety_margin=config.rate_limit.safety_margin,
            metrics=metrics,
        )

    def _prune(self, now: float):
        while self._requests and now - self._requests[0] >= self.time_window:
            self._requests.popleft()

    async def wait_if_needed(self) -> float:
        """
        Wait if issuing another request would exceed the quota.

        Returns:
            Time waited in seconds
        """
        async with self._lock:
            now = self._clock()
            self._prune(now)

            wait_time = 0.0
            if len(self._requests) >= self.max_requests:
                blocking = self._requests[len(self._requests) - self.max_requests]
                wait_time = max(0.0, self.time_window - (now - blocking) + self.safety_margin)

            self._requests.append(now + wait_time)
            self.metrics.set_gauge("rate_limit_in_window", len(self._requests))
            self.metrics_data.requests_made += 1

            if wait_time > 0:
                self.metrics_data.requests_limited += 1
                self.metrics_data.total_wait_time += wait_time
                self.metrics_data.max_wait_time = max(self.metrics_data.max_wait_time, wait_time)

        if wait_time > 0:
            logger.info(f"Rate limit reached, waiting {wait_time:.3f}s")
            self.metrics.record_wait(wait_time)
            await self._sleep(wait_time)

        return wait_time

    @property
    def pending(self) -> int:
        """Number of requests currently counted against the window."""
        self._prune(self._clock())
        return len(self._requests)

    def reset(self):
        self._requests.clear()
        self.metrics_data = RateLimitMetrics()

    def get_metrics(self) -> Dict[str, Any]:
        """Get rate limiter metrics."""
        return {
            "max_requests": self.max_requests,
            "time_window": self.time_window,
            "in_window": self.pending,
            "requests_made": self.metrics_data.requests_made,
            "requests_limited": self.metrics_data.requests_limited,
            "limit_rate": (
                self.metrics_data.requests_limited /
                max(1, self.metrics_data.requests_made) * 100
            ),
            "total_wait_time": self.metrics_data.total_wait_time,
            "max_wait_time": self.metrics_data.max_wait_time,
        }
