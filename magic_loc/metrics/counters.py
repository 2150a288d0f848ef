"""
Gateway diagnostics: counters, drop reasons and histograms.

One MetricsCollector is shared by the reader threads, the gateway loop and
the publish sink, so every access goes through a single lock.

Nothing is dropped silently. Every frame, report or message the gateway
throws away is counted under one of DROP_REASONS (plus the general
'items_dropped' counter).
"""

import logging
import statistics
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_SAMPLES = 10000


@dataclass
class CounterSnapshot:
    """Copy of the collector state at `timestamp`."""

    timestamp: float
    counters: Dict[str, int]
    drop_reasons: Dict[str, int]
    histograms: Dict[str, List[float]]

    def total_dropped(self) -> int:
        return sum(self.drop_reasons.values())

    def drop_rate(self, total_items: int) -> float:
        """Dropped items as a percentage of `total_items`."""
        if total_items == 0:
            return 0.0
        return self.total_dropped() * 100.0 / total_items


def _nearest_rank(sorted_samples: List[float], fraction: float) -> float:
    index = min(len(sorted_samples) - 1, int(len(sorted_samples) * fraction))
    return sorted_samples[index]


class MetricsCollector:
    """
    Thread-safe gateway counters.

    Usage:
        collector = MetricsCollector()
        collector.increment('frames_in')
        collector.increment_drop('unstuff_error')
        collector.record_histogram('solver_iterations', 7)

        snapshot = collector.snapshot()
        print(f"Total dropped: {snapshot.total_dropped()}")
    """

    DROP_REASONS = {
        'framing_resync': 'Header mismatch, bytes skipped to next delimiter',
        'unstuff_error': 'Corrupted zero-suppressed payload',
        'unknown_packet': 'Unrecognized packet type tag',
        'parse_error': 'Payload does not match the record layout',
        'sync_discard': 'Range report never correlated across all anchors',
        'publish_failed': 'Publish sink rejected the message',
    }

    STANDARD_COUNTERS = (
        # Ingest
        'bytes_in',
        'frames_in',
        'range_reports',
        'imu_reports',
        'cir_reports',
        # Processing
        'batches_synchronized',
        'position_estimates',
        'no_estimates',
        'imu_interval_anomalies',
        'sync_stalls',
        'stream_failures',
        # Output
        'messages_published',
    )

    def __init__(self):
        self._lock = threading.Lock()
        self._start_time = time.time()
        self._counters: Dict[str, int] = defaultdict(int)
        self._drop_reasons: Dict[str, int] = defaultdict(int)
        self._histograms: Dict[str, Deque[float]] = {}
        self._zero_standard_keys()

    def _zero_standard_keys(self):
        # Present from the start so summaries always list them
        with self._lock:
            for name in self.STANDARD_COUNTERS:
                self._counters.setdefault(name, 0)
            for reason in self.DROP_REASONS:
                self._drop_reasons.setdefault(reason, 0)

    def increment(self, counter_name: str, value: int = 1):
        with self._lock:
            self._counters[counter_name] += value

    def increment_drop(self, reason: str, value: int = 1):
        """
        Count `value` dropped items under `reason`.

        Reasons outside DROP_REASONS are still counted, with a warning.
        """
        if reason not in self.DROP_REASONS:
            logger.warning(f"Unknown drop reason '{reason}'")

        with self._lock:
            self._drop_reasons[reason] += value
            self._counters['items_dropped'] += value

    def get_counter(self, counter_name: str) -> int:
        with self._lock:
            return self._counters.get(counter_name, 0)

    def get_drop_count(self, reason: str) -> int:
        with self._lock:
            return self._drop_reasons.get(reason, 0)

    def record_histogram(self, histogram_name: str, value: float,
                         max_samples: int = DEFAULT_MAX_SAMPLES):
        """
        Add a sample to a histogram.

        Each histogram keeps only its most recent `max_samples` values; the
        bound is fixed by the first sample recorded.
        """
        with self._lock:
            samples = self._histograms.get(histogram_name)
            if samples is None:
                samples = self._histograms[histogram_name] = deque(maxlen=max_samples)
            samples.append(value)

    def get_histogram_stats(self, histogram_name: str) -> Optional[Dict[str, float]]:
        """
        Summary statistics of one histogram.

        Returns:
            Dict with count, min, max, mean, median, p95 and p99, or None
            if nothing was recorded
        """
        with self._lock:
            samples = sorted(self._histograms.get(histogram_name, ()))

        if not samples:
            return None
        return {
            'count': len(samples),
            'min': samples[0],
            'max': samples[-1],
            'mean': statistics.mean(samples),
            'median': statistics.median(samples),
            'p95': _nearest_rank(samples, 0.95),
            'p99': _nearest_rank(samples, 0.99),
        }

    def snapshot(self) -> CounterSnapshot:
        with self._lock:
            return CounterSnapshot(
                timestamp=time.time(),
                counters=dict(self._counters),
                drop_reasons=dict(self._drop_reasons),
                histograms={name: list(s) for name, s in self._histograms.items()},
            )

    def reset(self):
        """Zero everything and restart the uptime clock."""
        with self._lock:
            self._start_time = time.time()
            self._counters.clear()
            self._drop_reasons.clear()
            self._histograms.clear()
        self._zero_standard_keys()

    def get_uptime(self) -> float:
        """Seconds since creation or the last reset()."""
        return time.time() - self._start_time

    def format_summary(self) -> str:
        """Multi-line report of counters, non-zero drops and histograms."""
        snapshot = self.snapshot()
        rule = "=" * 70
        lines = [
            "",
            rule,
            f"  METRICS SUMMARY (uptime: {self.get_uptime():.1f}s)",
            rule,
            "",
            "COUNTERS:",
        ]
        lines.extend(f"  {name:30s}: {value:8d}" for name, value in sorted(snapshot.counters.items()))

        total_dropped = snapshot.total_dropped()
        if total_dropped:
            lines += ["", "DROP REASONS:"]
            for reason, count in sorted(snapshot.drop_reasons.items()):
                if count:
                    lines.append(f"  {reason:30s}: {count:8d} ({count * 100.0 / total_dropped:5.1f}%)")

        if snapshot.histograms:
            lines += ["", "HISTOGRAMS:"]
            for name in sorted(snapshot.histograms):
                stats = self.get_histogram_stats(name)
                if stats:
                    lines.append(
                        f"  {name}: count={stats['count']}, mean={stats['mean']:.3f}, "
                        f"p95={stats['p95']:.3f}, max={stats['max']:.3f}"
                    )

        lines += [rule, ""]
        return "\n".join(lines)

    def print_summary(self):
        print(self.format_summary())
