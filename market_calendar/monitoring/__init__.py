"""
Monitoring subpackage.

This package handles:
- Request, error and dropped-row counters
- Timing summaries
"""

from .metrics import MetricsCollector

__all__ = ["MetricsCollector"]
