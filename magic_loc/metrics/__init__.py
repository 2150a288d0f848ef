"""
Metrics Module: gateway counters, drop reasons, histograms.

Components fetch the process-wide collector once, at construction:

    from magic_loc.metrics import get_metrics

    self.metrics = get_metrics()
    self.metrics.increment('frames_in')
    self.metrics.increment_drop('unstuff_error')
    self.metrics.record_histogram('solver_iterations', 6)

Tests call reset_metrics() before building components so that each test
starts from zero.
"""

import threading
from typing import Optional

from .counters import CounterSnapshot, MetricsCollector

_collector: Optional[MetricsCollector] = None
_collector_lock = threading.Lock()


def get_metrics() -> MetricsCollector:
    """Process-wide collector, created on first use."""
    global _collector
    with _collector_lock:
        if _collector is None:
            _collector = MetricsCollector()
        return _collector


def reset_metrics() -> MetricsCollector:
    """Replace the process-wide collector with a fresh one."""
    global _collector
    with _collector_lock:
        _collector = MetricsCollector()
        return _collector


__all__ = ['CounterSnapshot', 'MetricsCollector', 'get_metrics', 'reset_metrics']
